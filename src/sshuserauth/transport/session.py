"""
sshuserauth Session Transport

Boundary between the authentication methods and the SSH transport layer.

The authenticator talks to a UserAuthTransport: it sends one encoded
SSH_MSG_USERAUTH_REQUEST at a time and blocks for the next parsed
server message. Packet framing, encryption and the key exchange that
produced the session identifier all live below this boundary.

PacketTransport adapts any packet-level channel (one decrypted payload
per call) to that interface:
- parses user-authentication replies
- consumes SSH_MSG_USERAUTH_BANNER messages
- records server-sig-algs from SSH_MSG_EXT_INFO (RFC 8308)
"""

from __future__ import annotations

from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Optional,
    Protocol,
    runtime_checkable,
)

import attrs
import structlog
from returns.result import Failure, Result, Success

from sshuserauth.core.exceptions import ProtocolError
from sshuserauth.core.wire import SSHReader
from sshuserauth.publickey.messages import parse_server_message
from sshuserauth.publickey.types import Banner, ServerMessage, Unrecognized

logger = structlog.get_logger()


SSH_MSG_EXT_INFO = 7


# =============================================================================
# INTERFACES
# =============================================================================


@runtime_checkable
class UserAuthTransport(Protocol):
    """
    What an authentication method needs from the SSH session.

    A transport may also carry a `server_sig_algs` attribute: the
    signature algorithms from the server's EXT_INFO (RFC 8308), or None.
    It is optional and read with getattr.
    """

    @property
    def session_id(self) -> bytes:
        """Exchange hash H from the first key exchange."""
        ...

    def send_auth_request(self, message: bytes) -> None:
        """Send one encoded SSH_MSG_USERAUTH_REQUEST."""
        ...

    def receive_next(self) -> ServerMessage:
        """Block until the next server message relevant to authentication."""
        ...


@runtime_checkable
class PacketChannel(Protocol):
    """A connected, keyed SSH transport exchanging packet payloads."""

    def send_packet(self, payload: bytes) -> None:
        ...

    def read_packet(self) -> bytes:
        ...


# =============================================================================
# EXTENSION NEGOTIATION
# =============================================================================


def parse_ext_info(payload: bytes) -> Result[Dict[str, bytes], str]:
    """
    Parse an SSH_MSG_EXT_INFO payload into extension name -> value.

    Returns:
        Success(extensions) or Failure(error)
    """
    try:
        reader = SSHReader(payload)
        msg_type = reader.read_byte()
        if msg_type != SSH_MSG_EXT_INFO:
            return Failure(f"Expected type {SSH_MSG_EXT_INFO}, got {msg_type}")

        extensions: Dict[str, bytes] = {}
        for _ in range(reader.read_uint32()):
            name = reader.read_string().decode("ascii")
            extensions[name] = reader.read_string()
        reader.expect_end()
    except (ValueError, UnicodeDecodeError) as e:
        return Failure(f"Malformed EXT_INFO: {e}")

    return Success(extensions)


# =============================================================================
# PACKET TRANSPORT
# =============================================================================


def _to_algorithm_set(value: Any) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    return frozenset(value)


@attrs.define
class PacketTransport:
    """
    UserAuthTransport over a packet channel.

    Example:
        transport = PacketTransport(channel=channel, session_id=kex.exchange_hash)
        authenticator = PublickeyAuthenticator(transport=transport, key_manager=keys)
        authenticator.authenticate("ssh-connection", "jdoe")
    """

    channel: PacketChannel
    session_id: bytes = attrs.field(repr=False)
    server_sig_algs: Optional[FrozenSet[str]] = attrs.field(
        default=None, converter=_to_algorithm_set
    )
    banner_handler: Optional[Callable[[Banner], None]] = None

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def send_auth_request(self, message: bytes) -> None:
        self.channel.send_packet(message)
        self._logger.debug("userauth_request_sent", length=len(message))

    def receive_next(self) -> ServerMessage:
        """
        Return the next server message, skipping banners and EXT_INFO.

        Raises:
            ProtocolError: If a payload cannot be parsed
        """
        while True:
            payload = self.channel.read_packet()

            if payload[:1] == bytes([SSH_MSG_EXT_INFO]):
                self._process_ext_info(payload)
                continue

            result = parse_server_message(payload)
            if isinstance(result, Failure):
                self._logger.warning("userauth_reply_malformed", error=result.failure())
                raise ProtocolError(result.failure(), code=payload[0] if payload else None)

            message = result.unwrap()
            if isinstance(message, Banner):
                self._logger.info("userauth_banner", banner=message.message)
                if self.banner_handler is not None:
                    self.banner_handler(message)
                continue

            if isinstance(message, Unrecognized):
                self._logger.debug(
                    "userauth_unrecognized_message",
                    message_type=message.message_type,
                )
            return message

    def _process_ext_info(self, payload: bytes) -> None:
        result = parse_ext_info(payload)
        if isinstance(result, Failure):
            raise ProtocolError(result.failure(), code=SSH_MSG_EXT_INFO)

        extensions = result.unwrap()
        self._logger.debug("ext_info_received", extensions=sorted(extensions))

        sig_algs = extensions.get("server-sig-algs")
        if sig_algs is not None:
            try:
                names = sig_algs.decode("ascii")
            except UnicodeDecodeError as e:
                raise ProtocolError(f"Malformed server-sig-algs: {e}", code=SSH_MSG_EXT_INFO) from e
            self.server_sig_algs = frozenset(name for name in names.split(",") if name)
