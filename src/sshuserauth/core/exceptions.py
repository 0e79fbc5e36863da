"""
sshuserauth Exception Types

Custom exceptions for SSH user-authentication errors.
"""

from typing import FrozenSet, Iterable, Optional


class UserAuthError(Exception):
    """Base exception for all sshuserauth errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class AuthenticationError(UserAuthError):
    """
    Authentication failed.

    This indicates the authentication exchange completed but the
    server refused to continue with the method that was tried.
    """

    pass


class DisallowedMethod(AuthenticationError):
    """
    The server withdrew the publickey method for this session.

    Raised when a signed request is answered with SSH_MSG_USERAUTH_FAILURE
    whose list of continuable methods no longer contains "publickey".
    A higher-level driver may still try other methods in `allowed_methods`.
    """

    def __init__(
        self,
        allowed_methods: Iterable[str] = (),
        message: Optional[str] = None,
    ) -> None:
        self.allowed_methods: FrozenSet[str] = frozenset(allowed_methods)
        if message is None:
            remaining = ",".join(sorted(self.allowed_methods)) or "none"
            message = f"publickey authentication disallowed (can continue: {remaining})"
        super().__init__(message, code=51)  # SSH_MSG_USERAUTH_FAILURE


class ProtocolError(UserAuthError):
    """
    Protocol-level error.

    This indicates an error in the protocol exchange itself,
    such as malformed messages or unexpected responses.
    """

    pass


class CryptoError(UserAuthError):
    """
    Cryptographic operation failed.

    This indicates an error while encoding, signing or verifying
    with a key.
    """

    pass


class SigningFailure(CryptoError):
    """
    The key manager could not produce a signature.

    Fatal to the authentication call: the next identity is not tried.
    """

    pass


class StateError(UserAuthError):
    """
    Invalid state transition.

    This indicates an attempt to perform an operation that is
    not valid in the current protocol state.
    """

    pass


class InvariantViolation(UserAuthError):
    """
    Protocol invariant was violated.

    This is a serious error indicating the state machine has entered
    a state its invariants forbid, e.g. a key retried with an algorithm
    it already failed with.
    """

    pass
