"""
sshuserauth Wire Encoding

SSH binary data representations (RFC 4251 section 5) used by
user-authentication messages.

Examples:
    byte     0x32
    boolean  0x01
    string   00 00 00 07 73 73 68 2d 72 73 61   ("ssh-rsa")
    name-list 00 00 00 12 70 75 62 6c 69 63 6b 65 79 2c 70 61 73 73 77 6f 72 64
              ("publickey,password")
"""

from __future__ import annotations

import struct
from typing import Iterable, List, Union


HEAD_LEN = 4


class SSHReader:
    """
    Sequential reader over an SSH-encoded byte string.

    Every read raises ValueError when the data is truncated.
    """

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.head = 0  # next unread byte

    @property
    def remaining(self) -> int:
        return len(self.data) - self.head

    def read_bytes(self, n: int) -> bytes:
        if n > self.remaining:
            raise ValueError(
                f"truncated SSH data: wanted {n} bytes, {self.remaining} left"
            )
        b = self.data[self.head : self.head + n]
        self.head += n
        return b

    def read_byte(self) -> int:
        return self.read_bytes(1)[0]

    def read_bool(self) -> bool:
        return self.read_byte() != 0

    def read_uint32(self) -> int:
        return struct.unpack(">I", self.read_bytes(4))[0]

    def read_string(self) -> bytes:
        return self.read_bytes(self.read_uint32())

    def read_text(self) -> str:
        """Read a string and decode it as UTF-8."""
        return self.read_string().decode("utf-8")

    def read_namelist(self) -> List[str]:
        raw = self.read_string()
        if not raw:
            return []
        return raw.decode("ascii").split(",")

    def read_mpint(self) -> int:
        raw = self.read_string()
        # zero is represented with an empty string
        if not raw:
            return 0
        return int.from_bytes(raw, "big", signed=True)

    def expect_end(self) -> None:
        """Raise ValueError if unread data is left."""
        if self.remaining:
            raise ValueError(f"{self.remaining} bytes of trailing SSH data")


class SSHWriter:
    """Accumulates SSH-encoded fields."""

    def __init__(self) -> None:
        self._data = bytearray()

    def write_bytes(self, data: bytes) -> "SSHWriter":
        self._data.extend(data)
        return self

    def write_byte(self, value: int) -> "SSHWriter":
        return self.write_bytes(struct.pack(">B", value))

    def write_bool(self, value: bool) -> "SSHWriter":
        return self.write_byte(1 if value else 0)

    def write_uint32(self, value: int) -> "SSHWriter":
        return self.write_bytes(struct.pack(">I", value))

    def write_string(self, data: Union[str, bytes]) -> "SSHWriter":
        # Text is UTF-8; names are US-ASCII, which is a subset
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.write_uint32(len(data))
        return self.write_bytes(data)

    def write_namelist(self, names: Iterable[str]) -> "SSHWriter":
        return self.write_string(",".join(names).encode("ascii"))

    def write_mpint(self, value: int) -> "SSHWriter":
        # zero is represented with an empty string
        if value == 0:
            return self.write_uint32(0)
        length = (~value if value < 0 else value).bit_length() // 8 + 1
        return self.write_string(value.to_bytes(length, "big", signed=True))

    def to_bytes(self) -> bytes:
        return bytes(self._data)


def string(payload: Union[str, bytes]) -> bytes:
    """Frame a payload as an SSH string."""
    return SSHWriter().write_string(payload).to_bytes()
