"""Length-framed TCP stream transport."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..errors import (
    RconConnectFailed,
    RconFramingError,
    RconIoError,
    RconMalformedRead,
    RconNotConnected,
    RconTimeout,
)
from ..protocol import TransportKind, read_tcp_frame_size
from .base import DEFAULT_TIMEOUT, RconTransport

_LOGGER = logging.getLogger(__name__)

_SIZE_FIELD_LENGTH = 4


class TcpTransport(RconTransport):
    """Persistent stream connection returning whole frames.

    A single stream read may return a short chunk, so ``receive`` reads the
    size prefix and then exactly that many bytes. Errors are not retryable:
    after a failure the stream position is unknown.
    """

    kind = TransportKind.TCP

    def __init__(self, host: str, port: int, **kwargs) -> None:
        super().__init__(host, port, **kwargs)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def open(self) -> None:
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self._connect_timeout,
            )
        except TimeoutError as err:
            raise RconConnectFailed("TCP connection timed out") from err
        except OSError as err:
            raise RconConnectFailed(
                f"Failed to connect to {self.host}:{self.port}"
            ) from err
        _LOGGER.debug("Opened TCP stream to %s:%s", self.host, self.port)

    async def send(self, data: bytes) -> None:
        if self._writer is None:
            raise RconNotConnected("TCP transport is not open")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as err:
            raise RconIoError("Failed to write to stream", errno=err.errno) from err

    async def receive(self, max_size: int, timeout: float = DEFAULT_TIMEOUT) -> bytes:
        """Receive one whole frame.

        An invalid size prefix leaves the rest of the frame unread, so the
        stream is closed before RconFramingError is raised.
        """
        if self._reader is None:
            raise RconNotConnected("TCP transport is not open")
        try:
            return await asyncio.wait_for(self._read_frame(max_size), timeout=timeout)
        except TimeoutError as err:
            raise RconTimeout(f"No packet received within {timeout}s") from err
        except asyncio.IncompleteReadError as err:
            raise RconIoError("Connection closed by server") from err
        except OSError as err:
            raise RconIoError("Failed to read from stream", errno=err.errno) from err
        except RconFramingError:
            _LOGGER.warning(
                "Closing TCP stream to %s:%s after a framing error", self.host, self.port
            )
            await self.close()
            raise

    async def _read_frame(self, max_size: int) -> bytes:
        assert self._reader is not None
        header = await self._reader.readexactly(_SIZE_FIELD_LENGTH)
        try:
            size = read_tcp_frame_size(header)
        except RconMalformedRead as err:
            raise RconFramingError(str(err)) from err
        if _SIZE_FIELD_LENGTH + size > max_size:
            raise RconFramingError(
                f"Packet of {size} bytes exceeds receive limit of {max_size}"
            )
        return header + await self._reader.readexactly(size)

    async def close(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
