"""
Unit tests for sshuserauth.publickey.messages module.

Tests request encoding and server reply parsing.
"""

import pytest
from returns.result import Failure, Success

from sshuserauth.core.wire import SSHWriter, string
from sshuserauth.publickey.messages import (
    SSH_MSG_USERAUTH_BANNER,
    SSH_MSG_USERAUTH_FAILURE,
    SSH_MSG_USERAUTH_PK_OK,
    SSH_MSG_USERAUTH_SUCCESS,
    UserAuthRequest,
    encode_server_message,
    parse_server_message,
)
from sshuserauth.publickey.types import Accepted, Banner, Continue, KeyOk, Unrecognized


@pytest.fixture
def probe() -> UserAuthRequest:
    return UserAuthRequest(
        username="jamis",
        service_name="ssh-connection",
        algorithm="ssh-ed25519",
        key_blob=b"\x00\x00\x00\x0bssh-ed25519key",
    )


class TestUserAuthRequest:
    """Tests for UserAuthRequest."""

    def test_probe_encoding(self, probe):
        """Test the query has has-signature FALSE and no signature field."""
        assert probe.to_bytes() == (
            b"\x32"
            + string("jamis")
            + string("ssh-connection")
            + string("publickey")
            + b"\x00"
            + string("ssh-ed25519")
            + string(probe.key_blob)
        )
        assert not probe.has_signature

    def test_signed_encoding(self, probe):
        """Test the signed request appends the signature to the unsigned form."""
        signed = probe.with_signature(b"signature-blob")
        assert signed.to_bytes() == probe.unsigned_bytes() + string(b"signature-blob")
        assert signed.has_signature

    def test_unsigned_bytes_sets_flag(self, probe):
        """Test the signed-over request has has-signature TRUE."""
        unsigned = probe.unsigned_bytes()
        assert unsigned != probe.to_bytes()
        assert unsigned.replace(b"publickey\x01", b"publickey\x00") == probe.to_bytes()

    def test_signing_payload(self, probe):
        """Test the payload is string(session_id) then the request."""
        payload = probe.signing_payload(b"abcxyz123")
        assert payload == string(b"abcxyz123") + probe.unsigned_bytes()
        assert payload[4 + 9] == 50

    def test_from_bytes(self, probe):
        """Test parsing back both forms."""
        assert UserAuthRequest.from_bytes(probe.to_bytes()) == probe
        signed = probe.with_signature(b"sig")
        assert UserAuthRequest.from_bytes(signed.to_bytes()) == signed

    def test_from_bytes_rejects_other_methods(self):
        """Test a password request is not a publickey request."""
        data = (
            SSHWriter()
            .write_byte(50)
            .write_string("jamis")
            .write_string("ssh-connection")
            .write_string("password")
            .to_bytes()
        )
        with pytest.raises(ValueError):
            UserAuthRequest.from_bytes(data)

    def test_from_bytes_rejects_trailing_data(self, probe):
        """Test trailing bytes are rejected."""
        with pytest.raises(ValueError):
            UserAuthRequest.from_bytes(probe.to_bytes() + b"\x00")

    def test_repr_hides_key_material(self, probe):
        """Test the blob and signature are left out of repr."""
        signed = probe.with_signature(b"secret-signature")
        assert "secret-signature" not in repr(signed)
        assert "key_blob" not in repr(signed)

    def test_empty_algorithm_rejected(self):
        """Test an empty algorithm name is invalid."""
        with pytest.raises(ValueError):
            UserAuthRequest(username="u", service_name="s", algorithm="", key_blob=b"k")


class TestParseServerMessage:
    """Tests for parse_server_message()."""

    def test_success(self):
        assert parse_server_message(bytes([SSH_MSG_USERAUTH_SUCCESS])) == Success(Accepted())

    def test_failure(self):
        """Test FAILURE parses into Continue."""
        payload = (
            SSHWriter()
            .write_byte(SSH_MSG_USERAUTH_FAILURE)
            .write_namelist(["publickey", "password"])
            .write_bool(True)
            .to_bytes()
        )
        message = parse_server_message(payload).unwrap()
        assert isinstance(message, Continue)
        assert message.allowed_methods == {"publickey", "password"}
        assert message.partial_success is True
        assert message.allows_publickey

    def test_failure_empty_namelist(self):
        """Test FAILURE with no continuable methods."""
        payload = SSHWriter().write_byte(51).write_namelist([]).write_bool(False).to_bytes()
        message = parse_server_message(payload).unwrap()
        assert message.allowed_methods == frozenset()
        assert not message.allows_publickey

    def test_pk_ok(self):
        """Test PK_OK parses algorithm and key blob."""
        payload = (
            SSHWriter()
            .write_byte(SSH_MSG_USERAUTH_PK_OK)
            .write_string("rsa-sha2-256")
            .write_string(b"blob")
            .to_bytes()
        )
        assert parse_server_message(payload).unwrap() == KeyOk(
            algorithm="rsa-sha2-256", key_blob=b"blob"
        )

    def test_banner(self):
        """Test BANNER parses message and language."""
        payload = (
            SSHWriter()
            .write_byte(SSH_MSG_USERAUTH_BANNER)
            .write_string("Authorized use only\r\n")
            .write_string("en")
            .to_bytes()
        )
        assert parse_server_message(payload).unwrap() == Banner(
            message="Authorized use only\r\n", language="en"
        )

    def test_unrecognized(self):
        """Test other message types are passed through."""
        message = parse_server_message(b"\x62rest").unwrap()
        assert message == Unrecognized(message_type=98, payload=b"rest")

    def test_empty_payload(self):
        assert isinstance(parse_server_message(b""), Failure)

    def test_truncated_failure(self):
        """Test a FAILURE without the partial-success flag is malformed."""
        payload = SSHWriter().write_byte(51).write_namelist(["publickey"]).to_bytes()
        result = parse_server_message(payload)
        assert isinstance(result, Failure)
        assert "51" in result.failure()

    def test_trailing_bytes(self):
        """Test a SUCCESS with trailing bytes is malformed."""
        assert isinstance(parse_server_message(b"\x34\x00"), Failure)


class TestEncodeServerMessage:
    """Tests for encode_server_message()."""

    @pytest.mark.parametrize(
        "message",
        [
            Accepted(),
            Continue(allowed_methods=["password", "publickey"], partial_success=True),
            KeyOk(algorithm="ssh-ed25519", key_blob=b"blob"),
            Banner(message="hello"),
            Unrecognized(message_type=80, payload=b"\x01"),
        ],
    )
    def test_parses_back(self, message):
        """Test encoded messages parse to an equal message."""
        assert parse_server_message(encode_server_message(message)).unwrap() == message

    def test_rejects_other_objects(self):
        with pytest.raises(TypeError):
            encode_server_message("not a message")
