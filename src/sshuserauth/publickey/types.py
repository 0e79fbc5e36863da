"""
sshuserauth Publickey Types

States, context, server verdicts and state-machine events for the
publickey user-authentication method (RFC 4252 section 7).
"""

from __future__ import annotations

from enum import Enum, auto
from typing import FrozenSet, Optional, Tuple, Union

import attrs
from attrs import field

from sshuserauth.core.types import AuthMethod


# =============================================================================
# PUBLICKEY STATE MACHINE
# =============================================================================


class PublickeyState(Enum):
    """
    Publickey authentication states.

    One (identity, algorithm) pair is in flight between READY and the
    next return to READY.
    """

    READY = auto()
    PROBE_SENT = auto()
    KEY_ACCEPTED = auto()
    SIGNATURE_SENT = auto()
    AUTHENTICATED = auto()
    DISALLOWED = auto()
    EXHAUSTED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (
            PublickeyState.AUTHENTICATED,
            PublickeyState.DISALLOWED,
            PublickeyState.EXHAUSTED,
            PublickeyState.FAILED,
        )


@attrs.define
class PublickeyContext:
    """
    Publickey session context.

    Mutable state maintained during one authenticate() call.
    """

    # Fixed for the whole call
    username: str = ""
    service_name: str = ""

    # Pair in flight
    key_blob: Optional[bytes] = None
    key_fingerprint: str = ""
    algorithm: str = ""
    key_ok: bool = False

    # (blob, algorithm) in the order they were probed
    attempted: Tuple[Tuple[bytes, str], ...] = ()

    probes_sent: int = 0
    signatures_sent: int = 0

    # From the last SSH_MSG_USERAUTH_FAILURE
    allowed_methods: FrozenSet[str] = frozenset()
    partial_success: bool = False

    error_message: str = ""


# =============================================================================
# SERVER VERDICTS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Accepted:
    """SSH_MSG_USERAUTH_SUCCESS."""


@attrs.define(frozen=True, slots=True)
class Continue:
    """
    SSH_MSG_USERAUTH_FAILURE.

    allowed_methods are the methods that may productively continue.
    """

    allowed_methods: FrozenSet[str] = field(factory=frozenset, converter=frozenset)
    partial_success: bool = False

    @property
    def allows_publickey(self) -> bool:
        return AuthMethod.PUBLICKEY.value in self.allowed_methods


@attrs.define(frozen=True, slots=True)
class KeyOk:
    """SSH_MSG_USERAUTH_PK_OK."""

    algorithm: str
    key_blob: bytes = field(repr=False)


@attrs.define(frozen=True, slots=True)
class Banner:
    """SSH_MSG_USERAUTH_BANNER. Informational, may arrive at any time."""

    message: str
    language: str = ""


@attrs.define(frozen=True, slots=True)
class Unrecognized:
    """Any message that is not part of the publickey exchange."""

    message_type: int
    payload: bytes = field(default=b"", repr=False)


ServerVerdict = Union[Accepted, Continue, KeyOk]
ServerMessage = Union[Accepted, Continue, KeyOk, Banner, Unrecognized]


# =============================================================================
# PUBLICKEY EVENTS (for state machine)
# =============================================================================


@attrs.define(frozen=True, slots=True)
class ProbeSent:
    """Event: Query request (no signature) sent for a pair."""

    key_blob: bytes = field(repr=False)
    key_fingerprint: str
    algorithm: str


@attrs.define(frozen=True, slots=True)
class KeyOkReceived:
    """Event: Server would accept a signature from the probed pair."""

    algorithm: str


@attrs.define(frozen=True, slots=True)
class SignedRequestSent:
    """Event: Signed request sent for the pair in flight."""

    algorithm: str


@attrs.define(frozen=True, slots=True)
class AuthAccepted:
    """Event: Server accepted the authentication."""


@attrs.define(frozen=True, slots=True)
class CandidateRejected:
    """Event: Server rejected the pair in flight; publickey may continue."""

    allowed_methods: FrozenSet[str]
    partial_success: bool = False


@attrs.define(frozen=True, slots=True)
class MethodDisallowed:
    """Event: Server rejected a signed request and dropped publickey."""

    allowed_methods: FrozenSet[str]
    partial_success: bool = False


@attrs.define(frozen=True, slots=True)
class CandidatesExhausted:
    """Event: No identity or algorithm left to try."""


@attrs.define(frozen=True, slots=True)
class ProtocolViolation:
    """Event: Unexpected or malformed server response."""

    error_message: str


@attrs.define(frozen=True, slots=True)
class SigningFailed:
    """Event: The key manager could not sign for the pair in flight."""

    error_message: str
