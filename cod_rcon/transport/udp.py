"""Connected UDP datagram transport."""

from __future__ import annotations

import asyncio
import logging

from ..errors import RconConnectFailed, RconIoError, RconNotConnected, RconTimeout
from ..protocol import TransportKind
from .base import DEFAULT_TIMEOUT, RconTransport

_LOGGER = logging.getLogger(__name__)


class _RconDatagramProtocol(asyncio.DatagramProtocol):
    """Queue inbound datagrams and socket errors for UdpTransport.receive()."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[bytes | Exception] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr) -> None:
        self.queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            self.queue.put_nowait(exc)


class UdpTransport(RconTransport):
    """Datagram socket fixed to one remote endpoint.

    The local side is an ephemeral port chosen by the OS. Socket errors are
    retryable: a dropped datagram does not break the session.
    """

    kind = TransportKind.UDP

    def __init__(self, host: str, port: int, **kwargs) -> None:
        super().__init__(host, port, **kwargs)
        self._transport: asyncio.DatagramTransport | None = None
        self._protocol: _RconDatagramProtocol | None = None

    @property
    def is_open(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    async def open(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await asyncio.wait_for(
                loop.create_datagram_endpoint(
                    _RconDatagramProtocol,
                    remote_addr=(self.host, self.port),
                ),
                timeout=self._connect_timeout,
            )
        except TimeoutError as err:
            raise RconConnectFailed("UDP socket setup timed out") from err
        except OSError as err:
            raise RconConnectFailed(
                f"Failed to open UDP socket to {self.host}:{self.port}"
            ) from err

        self._transport = transport
        self._protocol = protocol
        _LOGGER.debug(
            "Opened UDP channel to %s:%s from %s",
            self.host,
            self.port,
            transport.get_extra_info("sockname"),
        )

    async def send(self, data: bytes) -> None:
        if self._transport is None:
            raise RconNotConnected("UDP transport is not open")
        try:
            self._transport.sendto(data)
        except OSError as err:
            raise RconIoError(
                "Failed to send datagram", errno=err.errno, retryable=True
            ) from err

    async def receive(self, max_size: int, timeout: float = DEFAULT_TIMEOUT) -> bytes:
        if self._protocol is None:
            raise RconNotConnected("UDP transport is not open")
        try:
            item = await asyncio.wait_for(self._protocol.queue.get(), timeout=timeout)
        except TimeoutError as err:
            raise RconTimeout(
                f"No datagram received within {timeout}s", retryable=True
            ) from err

        if isinstance(item, Exception):
            raise RconIoError(
                f"Datagram socket error: {item}",
                errno=getattr(item, "errno", None),
                retryable=True,
            ) from item
        return item[:max_size]

    async def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._protocol = None
