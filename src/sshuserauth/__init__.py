"""
sshuserauth - SSH Publickey User Authentication

Client side of the SSH "publickey" user-authentication method
(RFC 4252), driven by an explicit state machine with invariant
checking and an exportable transition trace.

Supported:
- Query-before-sign with SSH_MSG_USERAUTH_PK_OK
- rsa-sha2-256 / rsa-sha2-512 signatures for RSA keys (RFC 8332)
- server-sig-algs filtering (RFC 8308)
- Ed25519, ECDSA, RSA and DSA keys and OpenSSH certificates

Example Usage:
    from sshuserauth import LocalKeyManager, PacketTransport, PublickeyAuthenticator

    transport = PacketTransport(channel=channel, session_id=exchange_hash)
    keys = LocalKeyManager.from_private_keys([private_key])
    auth = PublickeyAuthenticator(transport=transport, key_manager=keys)

    if auth.authenticate("ssh-connection", "jdoe"):
        print("Authenticated!")

        # Export the state machine trace
        trace = auth.export_trace_json()
"""

from sshuserauth.core.exceptions import (
    DisallowedMethod,
    ProtocolError,
    SigningFailure,
    UserAuthError,
)
from sshuserauth.core.types import AuthMethod, Identity
from sshuserauth.publickey.authenticator import PublickeyAuthenticator, PublickeyConfig
from sshuserauth.publickey.key_manager import KeyManager, LocalKeyManager
from sshuserauth.transport.session import PacketTransport, UserAuthTransport

__version__ = "0.1.0"

__all__ = [
    # Main API
    "PublickeyAuthenticator",
    "PublickeyConfig",
    "LocalKeyManager",
    "KeyManager",
    "PacketTransport",
    "UserAuthTransport",
    # Types
    "AuthMethod",
    "Identity",
    # Exceptions
    "UserAuthError",
    "DisallowedMethod",
    "ProtocolError",
    "SigningFailure",
    # Metadata
    "__version__",
]
