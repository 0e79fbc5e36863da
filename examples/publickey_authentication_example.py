#!/usr/bin/env python3
"""
Publickey Authentication Example

Demonstrates how to use sshuserauth's PublickeyAuthenticator against an
in-memory server that checks signatures like an SSH daemon would.

Features:
1. Loading keys into a LocalKeyManager
2. Query-before-sign with SSH_MSG_USERAUTH_PK_OK
3. RSA SHA-2 algorithm fallback
4. DisallowedMethod handling
5. State machine trace export
"""

from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

from sshuserauth import DisallowedMethod, LocalKeyManager, PacketTransport, PublickeyAuthenticator
from sshuserauth.core.crypto import verify_signature
from sshuserauth.publickey import PublickeyConfig, UserAuthRequest, encode_server_message
from sshuserauth.publickey.types import Accepted, Continue, KeyOk


SESSION_ID = b"example-exchange-hash"


class DemoServer:
    """
    Packet channel standing in for an SSH server.

    Accepts only authorized keys, only under the listed algorithms, and
    drops publickey after `max_signed` failed signatures.
    """

    def __init__(self, authorized, algorithms, max_signed=3):
        self.authorized = set(authorized)
        self.algorithms = set(algorithms)
        self.max_signed = max_signed
        self.failed_signed = 0
        self.pending = []

    def send_packet(self, payload):
        request = UserAuthRequest.from_bytes(payload)
        print(f"   -> {request.algorithm} signed={request.has_signature}")
        self.pending.append(encode_server_message(self._verdict(request)))

    def read_packet(self):
        return self.pending.pop(0)

    def _verdict(self, request):
        known = request.key_blob in self.authorized and request.algorithm in self.algorithms
        if not request.has_signature:
            if known:
                return KeyOk(algorithm=request.algorithm, key_blob=request.key_blob)
            return Continue(allowed_methods=["publickey", "password"])

        if known and verify_signature(
            request.key_blob, request.signature, request.signing_payload(SESSION_ID)
        ):
            return Accepted()

        self.failed_signed += 1
        if self.failed_signed >= self.max_signed:
            return Continue(allowed_methods=["password"])
        return Continue(allowed_methods=["publickey", "password"])


def main():
    """Demonstrate publickey authentication."""

    print("=" * 70)
    print("sshuserauth - Publickey Authentication")
    print("=" * 70)
    print()

    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    ed_key = ed25519.Ed25519PrivateKey.generate()

    keys = LocalKeyManager()
    rsa_identity = keys.add_key(rsa_key, comment="rsa")
    ed_identity = keys.add_key(ed_key, comment="ed25519")

    # ==========================================================================
    # EXAMPLE 1: Second key accepted
    # ==========================================================================
    print("1. Server only knows the Ed25519 key")
    print("-" * 40)

    server = DemoServer(
        authorized=[ed_identity.blob],
        algorithms=["ssh-ed25519", "rsa-sha2-256"],
    )
    auth = PublickeyAuthenticator(
        transport=PacketTransport(channel=server, session_id=SESSION_ID),
        key_manager=keys,
    )
    print(f"   Result: {auth.authenticate('ssh-connection', 'jdoe')}")
    print(f"   Final State: {auth.state.name}")
    print()

    # ==========================================================================
    # EXAMPLE 2: RSA algorithm fallback
    # ==========================================================================
    print("2. Server only allows rsa-sha2-256 for the RSA key")
    print("-" * 40)

    server = DemoServer(authorized=[rsa_identity.blob], algorithms=["rsa-sha2-256"])
    auth = PublickeyAuthenticator(
        transport=PacketTransport(channel=server, session_id=SESSION_ID),
        key_manager=keys,
        config=PublickeyConfig(pubkey_algorithms="rsa-sha2-512,rsa-sha2-256,ssh-rsa"),
    )
    print(f"   Result: {auth.authenticate('ssh-connection', 'jdoe')}")
    print()

    # ==========================================================================
    # EXAMPLE 3: Server gives up on publickey
    # ==========================================================================
    print("3. Signatures never verify, server withdraws publickey")
    print("-" * 40)

    # Accepts the query for both keys but holds a different session id
    server = DemoServer(
        authorized=[rsa_identity.blob, ed_identity.blob],
        algorithms=["ssh-ed25519", "rsa-sha2-512"],
        max_signed=1,
    )
    auth = PublickeyAuthenticator(
        transport=PacketTransport(channel=server, session_id=b"not-the-servers-session"),
        key_manager=keys,
    )
    try:
        auth.authenticate("ssh-connection", "jdoe")
    except DisallowedMethod as e:
        print(f"   DisallowedMethod: continue with {sorted(e.allowed_methods)}")
    print()

    # ==========================================================================
    # TRACE
    # ==========================================================================
    print("4. State machine trace of the last call")
    print("-" * 40)
    for t in auth.get_trace():
        print(f"   {t.from_state.name:15} --[{t.event_type}]--> {t.to_state.name}")
    print()
    print("   (Full trace can be exported with auth.export_trace_json())")
    print()


if __name__ == "__main__":
    main()
