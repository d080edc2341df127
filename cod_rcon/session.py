"""RCON session: connection state, authentication and command correlation.

This module provides the canonical API for talking to one RCON server. It
handles:
- Transport selection (UDP or TCP, fixed at construction)
- The UDP challenge handshake and challenge token cache
- The TCP auth exchange and request id correlation
- Deterministic release of the socket on close and on fatal errors

A session allows one outstanding request at a time. Callers that share a
session between tasks must serialize ``execute`` themselves.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum

from .config import Endpoint, RconConfig
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
    OOB_MARKER,
    ChallengeGrant,
    Packet,
    PacketKind,
    PacketType,
    TcpPacket,
    TransportKind,
    decode_tcp_packet,
    decode_udp_response,
    encode_packet,
    encode_udp_challenge_request,
    encode_udp_probe,
)
from .transport import RconTransport, TcpTransport, UdpTransport

_LOGGER = logging.getLogger(__name__)

# Request id a Source-style server answers with when auth is rejected
AUTH_FAILED_ID = -1
_INT32_MAX = 2**31 - 1


class AuthState(str, Enum):
    """Authentication state of a session."""

    UNAUTHENTICATED = "unauthenticated"
    CHALLENGE_PENDING = "challenge_pending"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandResult:
    """Decoded output of one command."""

    text: str


class RconSession:
    """Session with a single RCON server.

    Usage:
        session = RconSession("127.0.0.1", 27960, "secret", challenge=True)
        await session.connect()
        result = await session.execute("status")
        await session.close()

    or, releasing the socket automatically:

        async with RconSession("127.0.0.1", 27015, "secret", transport="tcp") as s:
            result = await s.execute("status")
    """

    def __init__(self, host: str, port: int, password: str, **options) -> None:
        """Initialize session.

        Args:
            host: Server hostname or IP
            port: Server port
            password: RCON password
            **options: Remaining RconConfig fields (transport, challenge,
                timeout, connect_timeout, initial_request_id,
                receive_buffer_size, multi_packet)
        """
        config = RconConfig(host=host, port=port, password=password, **options)
        self._config = config
        self._endpoint = config.endpoint
        self._transport: RconTransport = self._create_transport()

        self._open = False
        self._closed = False
        self._auth_state = AuthState.UNAUTHENTICATED
        self._challenge_token: str | None = None
        self._request_id = config.initial_request_id
        # TCP ids whose responses nobody waits for
        self._discard_ids: set[int] = set()

    @classmethod
    def from_config(cls, config: RconConfig) -> RconSession:
        """Create a session from a resolved config."""
        options = asdict(config)
        host = options.pop("host")
        port = options.pop("port")
        password = options.pop("password")
        return cls(host, port, password, **options)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> RconConfig:
        return self._config

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def transport_kind(self) -> TransportKind:
        return self._config.transport

    @property
    def auth_state(self) -> AuthState:
        return self._auth_state

    @property
    def challenge_token(self) -> str | None:
        return self._challenge_token

    @property
    def request_id(self) -> int:
        """Id of the most recent TCP request."""
        return self._request_id

    @property
    def is_connected(self) -> bool:
        return self._open and self._auth_state is AuthState.AUTHENTICATED

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the transport and authenticate.

        Raises:
            RconConnectFailed: If the socket cannot be set up.
            RconTcpAuthError: If the TCP auth exchange fails.
            RconChallengeFailed: If the UDP challenge handshake fails.
            RconNotConnected: If the session was closed or has failed.
        """
        if self._open:
            raise RconClientError("Session is already connected")
        if self._closed or self._auth_state is AuthState.FAILED:
            raise RconNotConnected("Session is no longer usable, create a new one")

        _LOGGER.info(
            "[%s] Connecting over %s", self._endpoint, self.transport_kind.value.upper()
        )
        try:
            await self._transport.open()
        except RconConnectFailed as err:
            _LOGGER.warning("[%s] Connection failed: %s", self._endpoint, err)
            self._auth_state = AuthState.FAILED
            raise
        self._open = True

        try:
            if self.transport_kind is TransportKind.TCP:
                await self._authenticate_tcp()
            else:
                await self._handshake_udp()
        except (RconAuthenticationError, RconConnectFailed) as err:
            _LOGGER.error("[%s] Handshake failed: %s", self._endpoint, err)
            await self._fail()
            raise
        except BaseException:
            await self._fail()
            raise

        self._auth_state = AuthState.AUTHENTICATED
        _LOGGER.info("[%s] Session authenticated", self._endpoint)

    async def close(self) -> None:
        """Release the transport.

        Raises:
            RconNotConnected: If the session is not connected.
        """
        if not self._open:
            raise RconNotConnected("Session is not connected")
        _LOGGER.info("[%s] Closing session", self._endpoint)
        await self._release()
        self._closed = True
        self._auth_state = AuthState.UNAUTHENTICATED
        self._challenge_token = None

    async def __aenter__(self) -> RconSession:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._open:
            await self.close()

    # -------------------------------------------------------------------------
    # Public API: Commands
    # -------------------------------------------------------------------------

    async def execute(
        self, command: str, *, expect_response: bool = True
    ) -> CommandResult | None:
        """Run a console command on the server.

        Args:
            command: Command text.
            expect_response: Wait for and decode the server's answer.

        Returns:
            The command output, or None when no response was requested.

        Raises:
            RconNotConnected: If the session is not connected.
            RconNoChallengeToken: If challenge mode has no token yet.
            RconReceiveAuth: If the server answered with a new challenge token.
            RconMalformedRead: If the answer does not parse or correlate.
            RconTcpAuthError: If a TCP server revoked authentication.
            RconTimeout: If no answer arrived in time.
            RconIoError: On socket failure.
        """
        self._ensure_connected()
        if self.transport_kind is TransportKind.TCP:
            return await self._execute_tcp(command, expect_response)
        return await self._execute_udp(command, expect_response)

    async def refresh_challenge(self) -> str:
        """Re-run the UDP challenge handshake and store the new token.

        On failure the previously stored token is kept and the session stays
        usable.

        Raises:
            RconDisabledMode: On TCP sessions or when challenge mode is off.
            RconChallengeFailed: If the server did not grant a token.
        """
        self._ensure_connected()
        if self.transport_kind is not TransportKind.UDP or not self._config.challenge:
            raise RconDisabledMode("Challenge handshake requires UDP challenge mode")
        token = await self._request_challenge()
        self._challenge_token = token
        return token

    def clear_challenge(self) -> None:
        """Forget the stored challenge token.

        Used when the server has invalidated it, e.g. after a restart. In
        challenge mode ``execute`` then raises RconNoChallengeToken until
        ``refresh_challenge`` succeeds.

        Raises:
            RconDisabledMode: On TCP sessions.
        """
        self._ensure_connected()
        if self.transport_kind is not TransportKind.UDP:
            raise RconDisabledMode("Challenge tokens are only used over UDP")
        _LOGGER.debug("[%s] Challenge token cleared", self._endpoint)
        self._challenge_token = None

    async def send_raw(self, data: bytes) -> None:
        """Send a pre-encoded out-of-band datagram.

        Raises:
            RconDisabledMode: On TCP sessions.
            ValueError: If ``data`` lacks the out-of-band marker.
        """
        self._ensure_connected()
        if self.transport_kind is not TransportKind.UDP:
            raise RconDisabledMode("Raw datagrams are only available over UDP")
        if not data.startswith(OOB_MARKER):
            raise ValueError("Datagram must start with the out-of-band marker")
        await self._send(data)

    # -------------------------------------------------------------------------
    # UDP
    # -------------------------------------------------------------------------

    async def _handshake_udp(self) -> None:
        if self._config.challenge:
            self._challenge_token = await self._request_challenge()
            self._auth_state = AuthState.CHALLENGE_PENDING
        try:
            await self._send(encode_udp_probe())
        except RconIoError as err:
            raise RconConnectFailed("Failed to send handshake probe") from err

    async def _request_challenge(self) -> str:
        try:
            await self._send(encode_udp_challenge_request())
            response = decode_udp_response(await self._receive())
        except (RconIoError, RconTimeout, RconMalformedRead) as err:
            raise RconChallengeFailed("Challenge request failed") from err

        if not isinstance(response, ChallengeGrant):
            raise RconChallengeFailed("Server answered the challenge request without a token")
        _LOGGER.debug("[%s] Challenge token received", self._endpoint)
        return response.token

    async def _execute_udp(
        self, command: str, expect_response: bool
    ) -> CommandResult | None:
        token: str | None = None
        if self._config.challenge:
            if not self._challenge_token:
                raise RconNoChallengeToken(
                    "Challenge mode is enabled but no token was obtained"
                )
            token = self._challenge_token

        packet = Packet(PacketKind.COMMAND, command.encode("utf-8"))
        await self._send(
            encode_packet(
                packet,
                TransportKind.UDP,
                password=self._config.password,
                challenge_token=token,
            )
        )
        if not expect_response:
            return None

        try:
            response = decode_udp_response(await self._receive())
        except RconMalformedRead as err:
            _LOGGER.warning("[%s] Discarding malformed datagram: %s", self._endpoint, err)
            raise

        if isinstance(response, ChallengeGrant):
            _LOGGER.warning(
                "[%s] Challenge grant received instead of a response", self._endpoint
            )
            self._challenge_token = response.token
            raise RconReceiveAuth(response.token)
        return CommandResult(response.text)

    # -------------------------------------------------------------------------
    # TCP
    # -------------------------------------------------------------------------

    async def _authenticate_tcp(self) -> None:
        request_id = self._next_request_id()
        packet = Packet(PacketKind.AUTH, self._config.password.encode("utf-8"), request_id)
        try:
            await self._send(encode_packet(packet, TransportKind.TCP))
            reply = await self._receive_tcp_packet()
            # Source servers send an empty RESPONSE_VALUE ahead of the auth ack
            if reply.packet_type == PacketType.RESPONSE_VALUE:
                reply = await self._receive_tcp_packet()
        except (RconIoError, RconTimeout, RconMalformedRead, ValueError) as err:
            raise RconTcpAuthError("Auth exchange failed") from err

        if reply.packet_type != PacketType.AUTH_RESPONSE:
            raise RconTcpAuthError(f"Unexpected packet type {reply.packet_type} during auth")
        if reply.request_id == AUTH_FAILED_ID:
            raise RconTcpAuthError("Server rejected the password")
        if reply.request_id != request_id:
            raise RconTcpAuthError(
                f"Auth response id {reply.request_id} does not match request id {request_id}"
            )

    async def _execute_tcp(
        self, command: str, expect_response: bool
    ) -> CommandResult | None:
        request_id = self._next_request_id()
        data = encode_packet(
            Packet(PacketKind.COMMAND, command.encode("utf-8"), request_id),
            TransportKind.TCP,
        )
        try:
            await self._send(data)
            if not expect_response:
                self._discard_ids.add(request_id)
                return None
            if self._config.multi_packet:
                text = await self._receive_multi_packet(request_id)
            else:
                text = (await self._receive_correlated(request_id)).body
        except (RconIoError, RconTimeout, RconTcpAuthError, RconFramingError) as err:
            _LOGGER.error("[%s] Stream failed: %s", self._endpoint, err)
            await self._fail()
            raise
        return CommandResult(text)

    async def _receive_multi_packet(self, request_id: int) -> str:
        # The server answers the empty sentinel only after the full response
        sentinel_id = self._next_request_id()
        await self._send(
            encode_packet(Packet(PacketKind.RESPONSE, b"", sentinel_id), TransportKind.TCP)
        )
        parts: list[str] = []
        while True:
            packet = await self._receive_correlated(request_id, sentinel_id)
            if packet.request_id == sentinel_id:
                break
            parts.append(packet.body)
        # Some servers follow the sentinel echo with a terminator packet
        self._discard_ids.add(sentinel_id)
        return "".join(parts)

    async def _receive_correlated(self, *expected_ids: int) -> TcpPacket:
        while True:
            packet = await self._receive_tcp_packet()
            if packet.request_id in self._discard_ids and packet.request_id not in expected_ids:
                _LOGGER.debug(
                    "[%s] Dropping unawaited response id=%d",
                    self._endpoint,
                    packet.request_id,
                )
                continue
            break

        if packet.request_id == AUTH_FAILED_ID:
            raise RconTcpAuthError("Server no longer accepts this session")
        if packet.request_id not in expected_ids:
            # The real answer is still in flight
            self._discard_ids.update(expected_ids)
            raise RconMalformedRead(
                f"Response id {packet.request_id} does not match request id {expected_ids[0]}"
            )
        if packet.packet_type != PacketType.RESPONSE_VALUE:
            self._discard_ids.update(expected_ids)
            raise RconMalformedRead(f"Unexpected packet type {packet.packet_type}")
        # Responses arrive in order, anything older has been drained
        self._discard_ids.clear()
        return packet

    async def _receive_tcp_packet(self) -> TcpPacket:
        packet, _ = decode_tcp_packet(await self._receive())
        _LOGGER.debug(
            "[%s] Received packet id=%d type=%d",
            self._endpoint,
            packet.request_id,
            packet.packet_type,
        )
        return packet

    def _next_request_id(self) -> int:
        self._request_id = self._request_id + 1 if self._request_id < _INT32_MAX else 1
        return self._request_id

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _create_transport(self) -> RconTransport:
        transport_cls: type[RconTransport] = (
            TcpTransport if self._config.transport is TransportKind.TCP else UdpTransport
        )
        return transport_cls(
            self._endpoint.host,
            self._endpoint.port,
            connect_timeout=self._config.connect_timeout,
        )

    def _ensure_connected(self) -> None:
        if not self.is_connected:
            raise RconNotConnected(
                f"Session is not connected (state: {self._auth_state.value})"
            )

    async def _send(self, data: bytes) -> None:
        _LOGGER.debug("[%s] Sending %d bytes: %s", self._endpoint, len(data), self._redact(data))
        await self._transport.send(data)

    async def _receive(self) -> bytes:
        data = await self._transport.receive(
            self._config.receive_buffer_size, self._config.timeout
        )
        _LOGGER.debug("[%s] Received %d bytes", self._endpoint, len(data))
        return data

    def _redact(self, data: bytes) -> str:
        text = data.decode("utf-8", "replace")
        if self._config.password:
            text = text.replace(self._config.password, "***")
        return repr(text)

    async def _fail(self) -> None:
        self._auth_state = AuthState.FAILED
        await self._release()

    async def _release(self) -> None:
        self._open = False
        await self._transport.close()
