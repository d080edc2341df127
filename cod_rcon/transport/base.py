"""Transport abstraction for RCON sessions.

A transport is a byte pipe to one server. It knows nothing about passwords,
challenge tokens or request ids; the session layers those on top.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..protocol import TransportKind

DEFAULT_TIMEOUT = 5.0
DEFAULT_CONNECT_TIMEOUT = 5.0


class RconTransport(ABC):
    """Abstract send/receive pipe to a single RCON endpoint.

    Implementations:
    - UdpTransport: connected datagram socket, one datagram per receive
    - TcpTransport: stream connection, one length-framed packet per receive
    """

    kind: TransportKind

    def __init__(
        self,
        host: str,
        port: int,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self._connect_timeout = connect_timeout

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the underlying socket is usable."""
        ...

    @abstractmethod
    async def open(self) -> None:
        """Bind/connect the socket.

        Raises:
            RconConnectFailed: If the socket cannot be set up.
        """
        ...

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """Send one message.

        Raises:
            RconNotConnected: If the transport is not open.
            RconIoError: On socket failure.
        """
        ...

    @abstractmethod
    async def receive(self, max_size: int, timeout: float = DEFAULT_TIMEOUT) -> bytes:
        """Receive one message.

        Raises:
            RconNotConnected: If the transport is not open.
            RconTimeout: If nothing arrives within ``timeout`` seconds.
            RconIoError: On socket failure.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        ...
