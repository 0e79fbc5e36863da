"""
sshuserauth Core Types

Fundamental type definitions shared by the authentication methods.

Design Principles:
- Immutable: All types use frozen attrs for safety
- Validated: Type constraints enforced at construction
"""

from __future__ import annotations

import base64
import hashlib
from enum import Enum

import attrs
from attrs import field, validators


CERTIFICATE_SUFFIX = "-cert-v01@openssh.com"


# =============================================================================
# ENUMS
# =============================================================================


class AuthMethod(Enum):
    """
    SSH user-authentication method names.

    Values are the method-name strings carried on the wire (RFC 4252).
    """

    NONE = "none"
    PUBLICKEY = "publickey"
    PASSWORD = "password"
    HOSTBASED = "hostbased"
    KEYBOARD_INTERACTIVE = "keyboard-interactive"

    def __str__(self) -> str:
        return self.value


# =============================================================================
# IDENTITY TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Identity:
    """
    A public key (or certificate) the client may offer.

    INVARIANT: key_type and blob are non-empty
    INVARIANT: blob is the exact encoding sent on the wire
    """

    key_type: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    blob: bytes = field(validator=[validators.instance_of(bytes), validators.min_len(1)], repr=False)
    comment: str = field(default="", validator=validators.instance_of(str))

    @property
    def is_certificate(self) -> bool:
        """True for OpenSSH certificate identities."""
        return self.key_type.endswith(CERTIFICATE_SUFFIX)

    @property
    def fingerprint(self) -> str:
        """OpenSSH-style SHA256 fingerprint of the blob."""
        digest = hashlib.sha256(self.blob).digest()
        return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")

    def __str__(self) -> str:
        label = f"{self.key_type} {self.fingerprint}"
        return f"{label} {self.comment}" if self.comment else label


# =============================================================================
# SESSION TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class AuthContext:
    """
    Immutable inputs of one authentication call.

    session_id comes from the transport's key exchange; service_name
    and username come from the caller.
    """

    session_id: bytes = field(validator=validators.instance_of(bytes), repr=False)
    service_name: str = field(validator=validators.instance_of(str))
    username: str = field(validator=validators.instance_of(str))
