"""
sshuserauth Core Module

Provides foundational types and abstractions used by the authentication methods.

Components:
- types: Core type definitions (Identity, AuthContext, AuthMethod)
- state_machine: Base state machine with invariant checking
- wire: SSH binary encoding
- crypto: Public-key encoding, signing and verification
- exceptions: Custom exception types
"""

from sshuserauth.core.types import AuthContext, AuthMethod, Identity
from sshuserauth.core.state_machine import StateMachineBase, Transition
from sshuserauth.core.exceptions import (
    UserAuthError,
    AuthenticationError,
    DisallowedMethod,
    ProtocolError,
    CryptoError,
    SigningFailure,
    StateError,
    InvariantViolation,
)

__all__ = [
    # Types
    "AuthContext",
    "AuthMethod",
    "Identity",
    # State Machine
    "StateMachineBase",
    "Transition",
    # Exceptions
    "UserAuthError",
    "AuthenticationError",
    "DisallowedMethod",
    "ProtocolError",
    "CryptoError",
    "SigningFailure",
    "StateError",
    "InvariantViolation",
]
