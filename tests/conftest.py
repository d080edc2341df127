"""Pytest configuration and fixtures for cod_rcon tests."""

from __future__ import annotations

import struct
from unittest.mock import AsyncMock

import pytest

from cod_rcon.transport import RconTransport

OOB = b"\xff\xff\xff\xff"


def udp_datagram(text: str) -> bytes:
    """Build a server-side out-of-band datagram."""
    return OOB + text.encode("utf-8")


def tcp_frame(request_id: int, packet_type: int, body: bytes = b"") -> bytes:
    """Build a server-side TCP frame without going through the codec."""
    payload = struct.pack("<ii", request_id, packet_type) + body + b"\x00\x00"
    return struct.pack("<i", len(payload)) + payload


def create_mock_transport(received: list[bytes | Exception] | None = None) -> AsyncMock:
    """Create a transport double.

    Args:
        received: Items returned (or raised) by successive receive() calls

    Returns:
        AsyncMock shaped like an RconTransport
    """
    transport = AsyncMock(spec=RconTransport)
    transport.receive.side_effect = list(received or [])
    return transport


@pytest.fixture
def mock_transport() -> AsyncMock:
    """Transport double with no queued responses."""
    return create_mock_transport()
