"""
sshuserauth Publickey Method

Client side of SSH "publickey" user authentication (RFC 4252 section 7).

Components:
- authenticator: PublickeyAuthenticator and its state machine
- algorithms: Signature algorithm candidate selection
- key_manager: KeyManager protocol and in-memory LocalKeyManager
- messages: USERAUTH request and server reply encoding
- types: States, context, server verdicts and events
"""

from sshuserauth.publickey.algorithms import (
    DEFAULT_PUBKEY_ALGORITHMS,
    compatible_algorithms,
    select_candidates,
)
from sshuserauth.publickey.authenticator import (
    ALLOWED_TRANSITIONS,
    PublickeyAuthenticator,
    PublickeyConfig,
    PublickeyStateMachine,
    create_publickey_authenticator,
)
from sshuserauth.publickey.key_manager import KeyManager, LocalKeyManager
from sshuserauth.publickey.messages import (
    UserAuthRequest,
    encode_server_message,
    parse_server_message,
)
from sshuserauth.publickey.types import (
    Accepted,
    Banner,
    Continue,
    KeyOk,
    PublickeyContext,
    PublickeyState,
    ServerMessage,
    ServerVerdict,
    Unrecognized,
)

__all__ = [
    # Authenticator
    "PublickeyAuthenticator",
    "PublickeyConfig",
    "PublickeyStateMachine",
    "ALLOWED_TRANSITIONS",
    "create_publickey_authenticator",
    # Algorithms
    "DEFAULT_PUBKEY_ALGORITHMS",
    "compatible_algorithms",
    "select_candidates",
    # Keys
    "KeyManager",
    "LocalKeyManager",
    # Messages
    "UserAuthRequest",
    "encode_server_message",
    "parse_server_message",
    # Types
    "PublickeyContext",
    "PublickeyState",
    "Accepted",
    "Banner",
    "Continue",
    "KeyOk",
    "Unrecognized",
    "ServerMessage",
    "ServerVerdict",
]
