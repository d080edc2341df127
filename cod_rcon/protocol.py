"""Wire codecs for the UDP and TCP RCON variants.

This module is pure: it turns typed packets into bytes and back, and never
touches a socket or session state.

UDP datagrams are out-of-band packets: ``0xFFFFFFFF`` followed by ASCII text.
The datagram boundary is the message boundary, there is no length field.

TCP packets use Source-style framing::

    <int32 size><int32 request_id><int32 type><body>\\0\\0

All integers are little-endian and ``size`` covers everything after itself.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum, IntEnum

from .errors import RconDisabledMode, RconMalformedRead

OOB_MARKER = b"\xff\xff\xff\xff"

# Keep commands inside one unfragmented datagram
MAX_UDP_PAYLOAD = 1400

# request_id + type + two NUL terminators
MIN_TCP_PACKET_SIZE = 10
MAX_TCP_PACKET_SIZE = 4096
MAX_TCP_RESPONSE_SIZE = 65536

_SIZE_FIELD = struct.Struct("<i")
_HEADER_FIELDS = struct.Struct("<ii")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_TOKEN_TRIM = " \t\r\n\x00"


class TransportKind(str, Enum):
    """Wire variant a session talks."""

    UDP = "udp"
    TCP = "tcp"


class PacketType(IntEnum):
    """TCP packet types corresponding to the ``SERVERDATA_`` constants."""

    RESPONSE_VALUE = 0
    COMMAND = 2
    AUTH_RESPONSE = 2
    AUTH = 3


class PacketKind(Enum):
    """Wire-neutral packet kinds."""

    AUTH = "auth"
    COMMAND = "command"
    RESPONSE = "response"


@dataclass(frozen=True)
class Packet:
    """Wire-neutral request representation.

    ``request_id`` is only meaningful for the TCP variant.
    """

    kind: PacketKind
    body: bytes = b""
    request_id: int = 0


@dataclass(frozen=True)
class ChallengeGrant:
    """Challenge token issued by a UDP server."""

    token: str


@dataclass(frozen=True)
class UdpResponse:
    """Command output carried by a UDP datagram."""

    text: str


@dataclass(frozen=True)
class TcpPacket:
    """A decoded TCP frame."""

    request_id: int
    packet_type: int
    body: str


def encode_udp_command(
    password: str, challenge_token: str | None, command: str
) -> bytes:
    """Build an ``rcon`` datagram.

    Args:
        password: RCON password, sent with every command.
        challenge_token: Token from the last challenge grant, or None when
            challenge mode is disabled.
        command: Console command to run.

    Returns:
        ``0xFFFFFFFF "rcon " [token "\\n"] password " " command "\\n"``

    Raises:
        ValueError: If an argument contains a NUL byte, the password contains
            whitespace, the token is empty, or the datagram is too large.
    """
    if "\x00" in password or "\x00" in command:
        raise ValueError("Password and command must not contain NUL bytes")
    if any(ch in password for ch in " \n"):
        raise ValueError("Password must not contain spaces or newlines")

    payload = "rcon "
    if challenge_token is not None:
        if not challenge_token:
            raise ValueError("Challenge token must not be empty")
        payload += challenge_token + "\n"
    payload += f"{password} {command}\n"

    data = OOB_MARKER + payload.encode("utf-8")
    if len(data) > MAX_UDP_PAYLOAD:
        raise ValueError(
            f"Datagram is {len(data)} bytes, limit is {MAX_UDP_PAYLOAD}"
        )
    return data


def encode_udp_challenge_request() -> bytes:
    """Build the out-of-band probe asking the server for a challenge token."""
    return OOB_MARKER + b"challenge rcon\n"


def encode_udp_probe() -> bytes:
    """Build the empty-command probe that completes the UDP handshake."""
    return OOB_MARKER + b"\x00"


def decode_udp_response(data: bytes) -> ChallengeGrant | UdpResponse:
    """Decode a datagram received from a UDP server.

    A body of exactly ``challenge rcon <token>`` is a challenge grant. Anything
    else is command output whose two-character terminator is stripped.

    Raises:
        RconMalformedRead: If the marker is missing or the body is not UTF-8.
    """
    data = bytes(data)
    if data[: len(OOB_MARKER)] != OOB_MARKER:
        raise RconMalformedRead("Datagram is missing the out-of-band marker")

    try:
        text = data[len(OOB_MARKER) :].decode("utf-8")
    except UnicodeDecodeError as err:
        raise RconMalformedRead("Datagram body is not valid UTF-8") from err

    tokens = text.split(" ")
    if len(tokens) == 3 and tokens[0] == "challenge" and tokens[1] == "rcon":
        token = tokens[2].strip(_TOKEN_TRIM)
        if not token:
            raise RconMalformedRead("Challenge grant carries an empty token")
        return ChallengeGrant(token)

    return UdpResponse(text[:-2])


def encode_tcp_packet(
    request_id: int, packet_type: int, body: str | bytes = b""
) -> bytes:
    """Frame a TCP packet.

    Raises:
        ValueError: If the id is outside int32, the body contains NUL, or the
            packet exceeds ``MAX_TCP_PACKET_SIZE``.
    """
    if not _INT32_MIN <= request_id <= _INT32_MAX:
        raise ValueError(f"Request id {request_id} does not fit in int32")
    if isinstance(body, str):
        body = body.encode("utf-8")
    if b"\x00" in body:
        raise ValueError("Packet body must not contain NUL bytes")

    size = _HEADER_FIELDS.size + len(body) + 2
    if size > MAX_TCP_PACKET_SIZE:
        raise ValueError(f"Packet is {size} bytes, limit is {MAX_TCP_PACKET_SIZE}")

    return (
        _SIZE_FIELD.pack(size)
        + _HEADER_FIELDS.pack(request_id, int(packet_type))
        + body
        + b"\x00\x00"
    )


def read_tcp_frame_size(header: bytes) -> int:
    """Parse the 4-byte size prefix of a TCP frame.

    Raises:
        RconMalformedRead: If the header is short or the size is out of range.
    """
    if len(header) != _SIZE_FIELD.size:
        raise RconMalformedRead(
            f"Need {_SIZE_FIELD.size} bytes for the size field; got {len(header)}"
        )
    (size,) = _SIZE_FIELD.unpack(header)
    if not MIN_TCP_PACKET_SIZE <= size <= MAX_TCP_RESPONSE_SIZE:
        raise RconMalformedRead(f"Invalid packet size {size}")
    return size


def decode_tcp_packet(data: bytes) -> tuple[TcpPacket, bytes]:
    """Decode one TCP frame from the start of ``data``.

    Returns:
        The decoded packet and whatever bytes follow it. If ``data`` held
        exactly one frame the remainder is empty.

    Raises:
        RconMalformedRead: If the buffer does not hold a valid frame.
    """
    data = bytes(data)
    size = read_tcp_frame_size(data[: _SIZE_FIELD.size])
    end = _SIZE_FIELD.size + size
    if len(data) < end:
        raise RconMalformedRead(
            f"Packet is {size} bytes long but got {len(data) - _SIZE_FIELD.size}"
        )

    frame = data[_SIZE_FIELD.size : end]
    request_id, packet_type = _HEADER_FIELDS.unpack_from(frame)
    if frame[-2:] != b"\x00\x00":
        raise RconMalformedRead("Packet is missing its NUL terminators")

    try:
        body = frame[_HEADER_FIELDS.size : -2].decode("utf-8")
    except UnicodeDecodeError as err:
        raise RconMalformedRead("Packet body is not valid UTF-8") from err

    return TcpPacket(request_id, packet_type, body), data[end:]


_TCP_TYPES = {
    PacketKind.AUTH: PacketType.AUTH,
    PacketKind.COMMAND: PacketType.COMMAND,
    PacketKind.RESPONSE: PacketType.RESPONSE_VALUE,
}


def encode_packet(
    packet: Packet,
    transport: TransportKind,
    *,
    password: str = "",
    challenge_token: str | None = None,
) -> bytes:
    """Encode a wire-neutral packet with the strategy for ``transport``.

    UDP servers only understand ``rcon`` commands, so the password travels in
    every datagram and AUTH/RESPONSE packets have no UDP encoding.

    Raises:
        RconDisabledMode: If the packet kind has no encoding on ``transport``.
    """
    if transport is TransportKind.TCP:
        return encode_tcp_packet(
            packet.request_id, _TCP_TYPES[packet.kind], packet.body
        )

    if packet.kind is not PacketKind.COMMAND:
        raise RconDisabledMode(
            f"{packet.kind.value} packets are not used by the UDP transport"
        )
    try:
        command = packet.body.decode("utf-8")
    except UnicodeDecodeError as err:
        raise ValueError("Command is not valid UTF-8") from err
    return encode_udp_command(password, challenge_token, command)
