"""Transport layer for RCON sessions.

Components:
- base: RconTransport capability interface
- udp: connected datagram socket
- tcp: length-framed stream connection
"""

from .base import DEFAULT_CONNECT_TIMEOUT, DEFAULT_TIMEOUT, RconTransport
from .tcp import TcpTransport
from .udp import UdpTransport

__all__ = [
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "RconTransport",
    "TcpTransport",
    "UdpTransport",
]
