"""
sshuserauth Key Manager

The key manager owns the private keys: it lists the identities that may
be offered and signs authentication payloads with them. The
authenticator only ever sees public identities and signature blobs.

KeyManager is a structural protocol so that agent- or token-backed
implementations can be plugged in; LocalKeyManager keeps cryptography
private key objects in memory.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

import attrs
import structlog

from sshuserauth.core.crypto import identity_from_public_key, sign_data
from sshuserauth.core.exceptions import CryptoError, SigningFailure
from sshuserauth.core.types import Identity
from sshuserauth.publickey.algorithms import compatible_algorithms

logger = structlog.get_logger()


@runtime_checkable
class KeyManager(Protocol):
    """Source of identities and signatures."""

    def identities(self) -> Iterable[Identity]:
        """Identities to offer, in the order they should be tried."""
        ...

    def sign(self, identity: Identity, algorithm: str, data: bytes) -> bytes:
        """
        Sign data with the private key behind identity.

        Returns:
            SSH signature blob: string(algorithm) || string(signature)

        Raises:
            SigningFailure: If the identity cannot produce a signature
        """
        ...


@attrs.define
class LocalKeyManager:
    """
    In-memory key manager over cryptography private keys.

    Example:
        from cryptography.hazmat.primitives.asymmetric import ed25519

        manager = LocalKeyManager()
        manager.add_key(ed25519.Ed25519PrivateKey.generate(), comment="work")
    """

    _entries: List[Tuple[Identity, Any]] = attrs.field(factory=list, alias="_entries")
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @classmethod
    def from_private_keys(cls, private_keys: Iterable[Any]) -> "LocalKeyManager":
        """Create a manager holding the given keys, in order."""
        manager = cls()
        for key in private_keys:
            manager.add_key(key)
        return manager

    def add_key(self, private_key: Any, comment: str = "") -> Identity:
        """
        Register a private key and return its public identity.

        Raises:
            CryptoError: If the key has no SSH public encoding
        """
        identity = identity_from_public_key(private_key.public_key(), comment=comment)
        if self._find(identity) is not None:
            self._logger.debug("key_already_loaded", fingerprint=identity.fingerprint)
            return identity

        self._entries.append((identity, private_key))
        self._logger.debug(
            "key_loaded",
            key_type=identity.key_type,
            fingerprint=identity.fingerprint,
        )
        return identity

    def identities(self) -> List[Identity]:
        return [identity for identity, _ in self._entries]

    def sign(self, identity: Identity, algorithm: str, data: bytes) -> bytes:
        private_key = self._find(identity)
        if private_key is None:
            raise SigningFailure(f"No private key for {identity.fingerprint}")

        if algorithm not in compatible_algorithms(identity.key_type):
            raise SigningFailure(
                f"{identity.key_type} key cannot sign with {algorithm}"
            )

        try:
            signature = sign_data(private_key, algorithm, data)
        except CryptoError as e:
            raise SigningFailure(e.message) from e

        self._logger.debug(
            "data_signed",
            fingerprint=identity.fingerprint,
            algorithm=algorithm,
        )
        return signature

    def _find(self, identity: Identity) -> Optional[Any]:
        for known, private_key in self._entries:
            if known.blob == identity.blob:
                return private_key
        return None

    def __len__(self) -> int:
        return len(self._entries)
