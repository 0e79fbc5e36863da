"""
sshuserauth Cryptographic Operations

Wrapper around the cryptography library for SSH public-key operations:
key blob encoding, signature blob encoding, signing and verification.
Uses established libraries - NO custom cryptographic implementations.

Supported key types:
- ssh-rsa (signature algorithms ssh-rsa, rsa-sha2-256, rsa-sha2-512)
- ssh-ed25519
- ecdsa-sha2-nistp256 / nistp384 / nistp521
- ssh-dss
"""

from __future__ import annotations

import base64
import hmac
from typing import Any, Dict, Tuple

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from sshuserauth.core.exceptions import CryptoError
from sshuserauth.core.types import CERTIFICATE_SUFFIX, Identity
from sshuserauth.core.wire import SSHReader, SSHWriter


# Hash used by each RSA signature algorithm (RFC 4253, RFC 8332)
RSA_SIGNATURE_HASHES: Dict[str, Any] = {
    "ssh-rsa": hashes.SHA1,
    "rsa-sha2-256": hashes.SHA256,
    "rsa-sha2-512": hashes.SHA512,
}

# Hash used by each ECDSA curve (RFC 5656 section 6.2.1)
ECDSA_CURVE_HASHES: Dict[str, Any] = {
    "ecdsa-sha2-nistp256": hashes.SHA256,
    "ecdsa-sha2-nistp384": hashes.SHA384,
    "ecdsa-sha2-nistp521": hashes.SHA512,
}

DSA_SIGNATURE_PART_SIZE = 20


# =============================================================================
# KEY ENCODING
# =============================================================================


def base_algorithm(algorithm: str) -> str:
    """
    Strip the OpenSSH certificate suffix from an algorithm name.

    Certificate signatures use the plain algorithm name, e.g.
    "rsa-sha2-256-cert-v01@openssh.com" signs as "rsa-sha2-256".
    """
    if algorithm.endswith(CERTIFICATE_SUFFIX):
        return algorithm[: -len(CERTIFICATE_SUFFIX)]
    return algorithm


def encode_public_key(public_key: Any) -> Tuple[str, bytes]:
    """
    Encode a public key into its SSH key type and blob.

    Args:
        public_key: A cryptography public key object

    Returns:
        Tuple of (key_type, blob)

    Raises:
        CryptoError: If the key type has no SSH encoding
    """
    try:
        line = public_key.public_bytes(
            serialization.Encoding.OpenSSH,
            serialization.PublicFormat.OpenSSH,
        )
    except (TypeError, ValueError) as e:
        raise CryptoError(f"Cannot encode public key: {e}") from e

    key_type, encoded = line.split(b" ")[:2]
    return key_type.decode("ascii"), base64.b64decode(encoded)


def decode_public_key(blob: bytes) -> Any:
    """
    Decode an SSH public key blob into a cryptography public key.

    Raises:
        CryptoError: If the blob is malformed or of an unsupported type
    """
    try:
        key_type = SSHReader(blob).read_string()
        line = key_type + b" " + base64.b64encode(blob)
        return serialization.load_ssh_public_key(line)
    except (ValueError, TypeError) as e:
        raise CryptoError(f"Cannot decode public key blob: {e}") from e
    except UnsupportedAlgorithm as e:
        raise CryptoError(f"Unsupported public key blob: {e}") from e


def identity_from_public_key(public_key: Any, comment: str = "") -> Identity:
    """Build an Identity from a cryptography public key."""
    key_type, blob = encode_public_key(public_key)
    return Identity(key_type=key_type, blob=blob, comment=comment)


# =============================================================================
# SIGNATURE BLOBS
# =============================================================================


def encode_signature(algorithm: str, raw_signature: bytes) -> bytes:
    """Frame a raw signature as an SSH signature blob."""
    return SSHWriter().write_string(algorithm).write_string(raw_signature).to_bytes()


def decode_signature(signature_blob: bytes) -> Tuple[str, bytes]:
    """
    Split an SSH signature blob into algorithm name and raw signature.

    Raises:
        CryptoError: If the blob is malformed
    """
    try:
        reader = SSHReader(signature_blob)
        algorithm = reader.read_string().decode("ascii")
        raw = reader.read_string()
        reader.expect_end()
    except (ValueError, UnicodeDecodeError) as e:
        raise CryptoError(f"Malformed signature blob: {e}") from e
    return algorithm, raw


# =============================================================================
# SIGNING / VERIFICATION
# =============================================================================


def sign_data(private_key: Any, algorithm: str, data: bytes) -> bytes:
    """
    Sign data with a private key under an SSH signature algorithm.

    Args:
        private_key: A cryptography private key object
        algorithm: SSH signature algorithm name (certificate names allowed)
        data: Bytes to sign

    Returns:
        SSH signature blob: string(algorithm) || string(signature)

    Raises:
        CryptoError: If the key cannot sign with this algorithm
    """
    algorithm = base_algorithm(algorithm)

    try:
        if isinstance(private_key, rsa.RSAPrivateKey):
            hash_cls = RSA_SIGNATURE_HASHES.get(algorithm)
            if hash_cls is None:
                raise CryptoError(f"RSA key cannot sign with {algorithm}")
            raw = private_key.sign(data, padding.PKCS1v15(), hash_cls())

        elif isinstance(private_key, ed25519.Ed25519PrivateKey):
            if algorithm != "ssh-ed25519":
                raise CryptoError(f"Ed25519 key cannot sign with {algorithm}")
            raw = private_key.sign(data)

        elif isinstance(private_key, ec.EllipticCurvePrivateKey):
            key_type, _ = encode_public_key(private_key.public_key())
            if algorithm != key_type:
                raise CryptoError(f"{key_type} key cannot sign with {algorithm}")
            der = private_key.sign(data, ec.ECDSA(ECDSA_CURVE_HASHES[key_type]()))
            r, s = decode_dss_signature(der)
            raw = SSHWriter().write_mpint(r).write_mpint(s).to_bytes()

        elif isinstance(private_key, dsa.DSAPrivateKey):
            if algorithm != "ssh-dss":
                raise CryptoError(f"DSA key cannot sign with {algorithm}")
            r, s = decode_dss_signature(private_key.sign(data, hashes.SHA1()))
            raw = r.to_bytes(DSA_SIGNATURE_PART_SIZE, "big") + s.to_bytes(
                DSA_SIGNATURE_PART_SIZE, "big"
            )

        else:
            raise CryptoError(f"Unsupported private key type: {type(private_key).__name__}")
    except CryptoError:
        raise
    except Exception as e:
        raise CryptoError(f"Signing with {algorithm} failed: {e}") from e

    return encode_signature(algorithm, raw)


def verify_signature(blob: bytes, signature_blob: bytes, data: bytes) -> bool:
    """
    Verify an SSH signature blob over data against a public key blob.

    Returns:
        True if the signature is valid, False otherwise

    Raises:
        CryptoError: If the key or signature blob cannot be decoded
    """
    public_key = decode_public_key(blob)
    algorithm, raw = decode_signature(signature_blob)

    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            hash_cls = RSA_SIGNATURE_HASHES.get(algorithm)
            if hash_cls is None:
                return False
            public_key.verify(raw, data, padding.PKCS1v15(), hash_cls())

        elif isinstance(public_key, ed25519.Ed25519PublicKey):
            if algorithm != "ssh-ed25519":
                return False
            public_key.verify(raw, data)

        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            hash_cls = ECDSA_CURVE_HASHES.get(algorithm)
            if hash_cls is None:
                return False
            reader = SSHReader(raw)
            der = encode_dss_signature(reader.read_mpint(), reader.read_mpint())
            public_key.verify(der, data, ec.ECDSA(hash_cls()))

        elif isinstance(public_key, dsa.DSAPublicKey):
            if algorithm != "ssh-dss" or len(raw) != 2 * DSA_SIGNATURE_PART_SIZE:
                return False
            r = int.from_bytes(raw[:DSA_SIGNATURE_PART_SIZE], "big")
            s = int.from_bytes(raw[DSA_SIGNATURE_PART_SIZE:], "big")
            public_key.verify(encode_dss_signature(r, s), data, hashes.SHA1())

        else:
            return False
    except (InvalidSignature, ValueError):
        return False

    return True


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Compare two byte strings in constant time.

    Args:
        a: First byte string
        b: Second byte string

    Returns:
        True if equal, False otherwise
    """
    return hmac.compare_digest(a, b)
