"""Asyncio client for the UDP and TCP variants of the RCON protocol."""

__version__ = "0.1.0"

from .config import ConfigLoadError, Endpoint, RconConfig, load_config
from .errors import (
    RconAuthenticationError,
    RconChallengeFailed,
    RconClientError,
    RconConnectFailed,
    RconDisabledMode,
    RconFramingError,
    RconIoError,
    RconMalformedRead,
    RconNoChallengeToken,
    RconNotConnected,
    RconReceiveAuth,
    RconTcpAuthError,
    RconTimeout,
)
from .protocol import (
    ChallengeGrant,
    Packet,
    PacketKind,
    PacketType,
    TcpPacket,
    TransportKind,
    UdpResponse,
    decode_tcp_packet,
    decode_udp_response,
    encode_packet,
    encode_tcp_packet,
    encode_udp_command,
)
from .session import AuthState, CommandResult, RconSession

__all__ = [
    "AuthState",
    "ChallengeGrant",
    "CommandResult",
    "ConfigLoadError",
    "Endpoint",
    "Packet",
    "PacketKind",
    "PacketType",
    "RconAuthenticationError",
    "RconChallengeFailed",
    "RconClientError",
    "RconConfig",
    "RconConnectFailed",
    "RconDisabledMode",
    "RconFramingError",
    "RconIoError",
    "RconMalformedRead",
    "RconNoChallengeToken",
    "RconNotConnected",
    "RconReceiveAuth",
    "RconSession",
    "RconTcpAuthError",
    "RconTimeout",
    "TcpPacket",
    "TransportKind",
    "UdpResponse",
    "__version__",
    "decode_tcp_packet",
    "decode_udp_response",
    "encode_packet",
    "encode_tcp_packet",
    "encode_udp_command",
    "load_config",
]
