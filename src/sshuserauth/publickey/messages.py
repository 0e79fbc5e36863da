"""
sshuserauth Publickey Messages

Wire format of the publickey user-authentication messages (RFC 4252).

Client -> Server:
    byte      SSH_MSG_USERAUTH_REQUEST
    string    user name
    string    service name
    string    "publickey"
    boolean   has-signature
    string    public key algorithm name
    string    public key blob
    string    signature              (only if has-signature is TRUE)

The signature is computed over:
    string    session identifier
    ...       the request above, has-signature TRUE, without the signature

Server -> Client:
    SSH_MSG_USERAUTH_FAILURE   name-list, boolean partial success
    SSH_MSG_USERAUTH_SUCCESS
    SSH_MSG_USERAUTH_BANNER    string message, string language tag
    SSH_MSG_USERAUTH_PK_OK     string algorithm, string key blob
"""

from __future__ import annotations

from typing import Optional

import attrs
from attrs import field, validators
from returns.result import Failure, Result, Success

from sshuserauth.core.types import AuthMethod
from sshuserauth.core.wire import SSHReader, SSHWriter
from sshuserauth.publickey.types import (
    Accepted,
    Banner,
    Continue,
    KeyOk,
    ServerMessage,
    Unrecognized,
)


# Message numbers (RFC 4250 section 4.1.2)
SSH_MSG_USERAUTH_REQUEST = 50
SSH_MSG_USERAUTH_FAILURE = 51
SSH_MSG_USERAUTH_SUCCESS = 52
SSH_MSG_USERAUTH_BANNER = 53
SSH_MSG_USERAUTH_PK_OK = 60


@attrs.define(frozen=True, slots=True)
class UserAuthRequest:
    """
    SSH_MSG_USERAUTH_REQUEST for the publickey method.

    A request without a signature is a query ("would you accept this
    key?"); with a signature it is an actual authentication attempt.
    """

    username: str = field(validator=validators.instance_of(str))
    service_name: str = field(validator=validators.instance_of(str))
    algorithm: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    key_blob: bytes = field(validator=validators.instance_of(bytes), repr=False)
    signature: Optional[bytes] = field(
        default=None,
        validator=validators.optional(validators.instance_of(bytes)),
        repr=False,
    )

    @property
    def has_signature(self) -> bool:
        return self.signature is not None

    def _write_body(self, has_signature: bool) -> SSHWriter:
        return (
            SSHWriter()
            .write_byte(SSH_MSG_USERAUTH_REQUEST)
            .write_string(self.username)
            .write_string(self.service_name)
            .write_string(AuthMethod.PUBLICKEY.value)
            .write_bool(has_signature)
            .write_string(self.algorithm)
            .write_string(self.key_blob)
        )

    def to_bytes(self) -> bytes:
        """Serialize to wire format."""
        writer = self._write_body(self.has_signature)
        if self.signature is not None:
            writer.write_string(self.signature)
        return writer.to_bytes()

    def unsigned_bytes(self) -> bytes:
        """The signed form of this request with the signature field left out."""
        return self._write_body(True).to_bytes()

    def signing_payload(self, session_id: bytes) -> bytes:
        """Exact bytes the private key has to sign for this request."""
        return SSHWriter().write_string(session_id).write_bytes(self.unsigned_bytes()).to_bytes()

    def with_signature(self, signature: bytes) -> "UserAuthRequest":
        """Return the signed request carrying `signature` verbatim."""
        return attrs.evolve(self, signature=signature)

    @classmethod
    def from_bytes(cls, data: bytes) -> "UserAuthRequest":
        """
        Parse from wire format.

        Raises:
            ValueError: If the data is not a publickey request
        """
        reader = SSHReader(data)
        msg_type = reader.read_byte()
        if msg_type != SSH_MSG_USERAUTH_REQUEST:
            raise ValueError(f"Expected type {SSH_MSG_USERAUTH_REQUEST}, got {msg_type}")

        username = reader.read_text()
        service_name = reader.read_text()
        method = reader.read_text()
        if method != AuthMethod.PUBLICKEY.value:
            raise ValueError(f"Expected publickey method, got {method!r}")

        has_signature = reader.read_bool()
        algorithm = reader.read_text()
        key_blob = reader.read_string()
        signature = reader.read_string() if has_signature else None
        reader.expect_end()

        return cls(
            username=username,
            service_name=service_name,
            algorithm=algorithm,
            key_blob=key_blob,
            signature=signature,
        )


# =============================================================================
# SERVER MESSAGES
# =============================================================================


def parse_server_message(payload: bytes) -> Result[ServerMessage, str]:
    """
    Parse a server packet received during user authentication.

    Message types outside the user-authentication range are returned as
    Unrecognized rather than rejected; deciding whether they are
    acceptable is up to the caller.

    Returns:
        Success(message) or Failure(error)
    """
    if not payload:
        return Failure("Empty user-authentication packet")

    reader = SSHReader(payload)
    msg_type = reader.read_byte()

    try:
        if msg_type == SSH_MSG_USERAUTH_SUCCESS:
            message: ServerMessage = Accepted()
        elif msg_type == SSH_MSG_USERAUTH_FAILURE:
            methods = reader.read_namelist()
            partial = reader.read_bool()
            message = Continue(allowed_methods=methods, partial_success=partial)
        elif msg_type == SSH_MSG_USERAUTH_PK_OK:
            algorithm = reader.read_string().decode("ascii")
            message = KeyOk(algorithm=algorithm, key_blob=reader.read_string())
        elif msg_type == SSH_MSG_USERAUTH_BANNER:
            text = reader.read_text()
            message = Banner(message=text, language=reader.read_text())
        else:
            return Success(Unrecognized(message_type=msg_type, payload=payload[1:]))
        reader.expect_end()
    except (ValueError, UnicodeDecodeError) as e:
        return Failure(f"Malformed message type {msg_type}: {e}")

    return Success(message)


def encode_server_message(message: ServerMessage) -> bytes:
    """Serialize a server message to wire format."""
    writer = SSHWriter()

    if isinstance(message, Accepted):
        writer.write_byte(SSH_MSG_USERAUTH_SUCCESS)
    elif isinstance(message, Continue):
        writer.write_byte(SSH_MSG_USERAUTH_FAILURE)
        writer.write_namelist(sorted(message.allowed_methods))
        writer.write_bool(message.partial_success)
    elif isinstance(message, KeyOk):
        writer.write_byte(SSH_MSG_USERAUTH_PK_OK)
        writer.write_string(message.algorithm)
        writer.write_string(message.key_blob)
    elif isinstance(message, Banner):
        writer.write_byte(SSH_MSG_USERAUTH_BANNER)
        writer.write_string(message.message)
        writer.write_string(message.language)
    elif isinstance(message, Unrecognized):
        writer.write_byte(message.message_type)
        writer.write_bytes(message.payload)
    else:
        raise TypeError(f"Not a server message: {type(message).__name__}")

    return writer.to_bytes()
