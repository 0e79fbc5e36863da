"""
sshuserauth Transport Layer

Boundary between authentication methods and the SSH transport.

Components:
- session: UserAuthTransport protocol and PacketTransport adapter
"""

from sshuserauth.transport.session import (
    SSH_MSG_EXT_INFO,
    PacketChannel,
    PacketTransport,
    UserAuthTransport,
    parse_ext_info,
)

__all__ = [
    "UserAuthTransport",
    "PacketChannel",
    "PacketTransport",
    "parse_ext_info",
    "SSH_MSG_EXT_INFO",
]
