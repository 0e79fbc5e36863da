"""
Unit tests for sshuserauth.publickey.key_manager module.
"""

import pytest

from sshuserauth.core.crypto import decode_signature, verify_signature
from sshuserauth.core.exceptions import SigningFailure
from sshuserauth.publickey.key_manager import KeyManager, LocalKeyManager

from tests.conftest import FakeKeyManager, make_identity


class TestLocalKeyManager:
    """Tests for LocalKeyManager."""

    def test_satisfies_protocol(self):
        assert isinstance(LocalKeyManager(), KeyManager)
        assert isinstance(FakeKeyManager(), KeyManager)

    def test_identities_in_order(self, rsa_private_key, ed25519_private_key):
        """Test identities come back in the order keys were added."""
        manager = LocalKeyManager.from_private_keys([rsa_private_key, ed25519_private_key])
        assert [i.key_type for i in manager.identities()] == ["ssh-rsa", "ssh-ed25519"]
        assert len(manager) == 2

    def test_add_key_deduplicates(self, ed25519_private_key):
        """Test adding the same key twice keeps one identity."""
        manager = LocalKeyManager()
        first = manager.add_key(ed25519_private_key, comment="a")
        second = manager.add_key(ed25519_private_key, comment="b")

        assert first.blob == second.blob
        assert len(manager.identities()) == 1

    def test_empty_manager(self):
        """Test an empty manager has no identities."""
        assert LocalKeyManager().identities() == []

    @pytest.mark.parametrize("algorithm", ["rsa-sha2-512", "rsa-sha2-256", "ssh-rsa"])
    def test_sign_rsa(self, rsa_private_key, algorithm):
        """Test RSA signatures verify against the identity blob."""
        manager = LocalKeyManager()
        identity = manager.add_key(rsa_private_key)

        signature = manager.sign(identity, algorithm, b"payload")
        assert decode_signature(signature)[0] == algorithm
        assert verify_signature(identity.blob, signature, b"payload")

    def test_sign_ed25519(self, ed25519_private_key):
        manager = LocalKeyManager()
        identity = manager.add_key(ed25519_private_key)
        signature = manager.sign(identity, "ssh-ed25519", b"payload")
        assert verify_signature(identity.blob, signature, b"payload")

    def test_unknown_identity(self, ed25519_private_key):
        """Test signing for an identity it does not hold."""
        manager = LocalKeyManager()
        manager.add_key(ed25519_private_key)
        stranger = make_identity("ssh-ed25519", b"not ours")

        with pytest.raises(SigningFailure):
            manager.sign(stranger, "ssh-ed25519", b"payload")

    def test_incompatible_algorithm(self, ed25519_private_key):
        """Test an algorithm of another key type is refused."""
        manager = LocalKeyManager()
        identity = manager.add_key(ed25519_private_key)

        with pytest.raises(SigningFailure):
            manager.sign(identity, "rsa-sha2-256", b"payload")
