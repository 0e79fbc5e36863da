"""
Pytest configuration and shared fixtures for sshuserauth tests.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from sshuserauth.core.types import Identity
from sshuserauth.core.wire import SSHWriter
from sshuserauth.publickey.authenticator import PublickeyAuthenticator, PublickeyConfig
from sshuserauth.publickey.messages import UserAuthRequest
from sshuserauth.publickey.types import Continue, KeyOk, ServerMessage


SESSION_ID = b"abcxyz123"
USERNAME = "jamis"
SERVICE = "ssh-connection"


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


Reply = Union[ServerMessage, Callable[[UserAuthRequest], ServerMessage]]


class ScriptedTransport:
    """
    UserAuthTransport that answers each request from a script.

    Each script entry is either a server message or a callable taking
    the request just sent and returning the message.
    """

    def __init__(
        self,
        replies: Sequence[Reply] = (),
        session_id: bytes = SESSION_ID,
        server_sig_algs: Optional[frozenset] = None,
    ) -> None:
        self.session_id = session_id
        self.server_sig_algs = server_sig_algs
        self.replies: List[Reply] = list(replies)
        self.raw_sent: List[bytes] = []

    @property
    def sent(self) -> List[UserAuthRequest]:
        return [UserAuthRequest.from_bytes(raw) for raw in self.raw_sent]

    def send_auth_request(self, message: bytes) -> None:
        self.raw_sent.append(message)

    def receive_next(self) -> ServerMessage:
        if not self.replies:
            raise AssertionError("server script exhausted")
        reply = self.replies.pop(0)
        if callable(reply):
            return reply(self.sent[-1])
        return reply


class FakeKeyManager:
    """KeyManager over fixed identities, recording every sign() call."""

    def __init__(
        self,
        identities: Sequence[Identity] = (),
        signatures: Optional[Dict[bytes, bytes]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self._identities = list(identities)
        self.signatures = signatures or {}
        self.error = error
        self.sign_calls: List[Tuple[Identity, str, bytes]] = []

    def identities(self) -> List[Identity]:
        return list(self._identities)

    def sign(self, identity: Identity, algorithm: str, data: bytes) -> bytes:
        self.sign_calls.append((identity, algorithm, data))
        if self.error is not None:
            raise self.error
        raw = self.signatures.get(identity.blob, b"sig-" + identity.comment.encode())
        return SSHWriter().write_string(algorithm).write_string(raw).to_bytes()


def key_ok() -> Callable[[UserAuthRequest], KeyOk]:
    """Reply with PK_OK echoing the probed algorithm and key."""
    return lambda request: KeyOk(algorithm=request.algorithm, key_blob=request.key_blob)


def failure(*methods: str, partial: bool = False) -> Continue:
    """Helper to create an SSH_MSG_USERAUTH_FAILURE verdict."""
    return Continue(allowed_methods=methods, partial_success=partial)


def make_identity(key_type: str, material: bytes, comment: str = "") -> Identity:
    """Helper to create an identity with a well-formed blob."""
    blob = SSHWriter().write_string(key_type).write_string(material).to_bytes()
    return Identity(key_type=key_type, blob=blob, comment=comment)


# =============================================================================
# IDENTITY FIXTURES
# =============================================================================


@pytest.fixture
def rsa_identity() -> Identity:
    """Fake RSA identity."""
    return make_identity("ssh-rsa", b"rsa-public-material", comment="one")


@pytest.fixture
def dss_identity() -> Identity:
    """Fake DSA identity."""
    return make_identity("ssh-dss", b"dss-public-material", comment="two")


@pytest.fixture
def ed25519_identity() -> Identity:
    """Fake Ed25519 identity."""
    return make_identity("ssh-ed25519", b"e" * 32, comment="three")


@pytest.fixture
def key_manager(rsa_identity: Identity, dss_identity: Identity) -> FakeKeyManager:
    """Key manager offering an RSA key, then a DSA key."""
    return FakeKeyManager([rsa_identity, dss_identity])


# =============================================================================
# AUTHENTICATOR FIXTURES
# =============================================================================


@pytest.fixture
def rsa_only_config() -> PublickeyConfig:
    """Config that prefers only the legacy ssh-rsa algorithm."""
    return PublickeyConfig(pubkey_algorithms=["ssh-rsa"])


@pytest.fixture
def make_authenticator(
    key_manager: FakeKeyManager, rsa_only_config: PublickeyConfig
) -> Callable[..., PublickeyAuthenticator]:
    """Factory for an authenticator over a scripted transport."""

    def _make(
        replies: Sequence[Reply] = (),
        config: Optional[PublickeyConfig] = None,
        manager: Optional[FakeKeyManager] = None,
        server_sig_algs: Optional[frozenset] = None,
    ) -> PublickeyAuthenticator:
        transport = ScriptedTransport(replies, server_sig_algs=server_sig_algs)
        return PublickeyAuthenticator(
            transport=transport,
            key_manager=manager if manager is not None else key_manager,
            config=config if config is not None else rsa_only_config,
        )

    return _make


# =============================================================================
# REAL KEY FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """RSA private key (generated once per session)."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def ed25519_private_key() -> ed25519.Ed25519PrivateKey:
    """Ed25519 private key."""
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture
def ecdsa_private_key() -> ec.EllipticCurvePrivateKey:
    """ECDSA P-256 private key."""
    return ec.generate_private_key(ec.SECP256R1())


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
