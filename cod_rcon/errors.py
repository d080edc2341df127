"""Client error types for RCON server interactions."""

from __future__ import annotations


class RconClientError(Exception):
    """Base error for RCON client failures."""


class RconConnectFailed(RconClientError):
    """Binding or connecting the socket failed."""


class RconAuthenticationError(RconClientError):
    """The server rejected the authentication handshake."""


class RconTcpAuthError(RconAuthenticationError):
    """TCP auth exchange was rejected or never acknowledged."""


class RconChallengeFailed(RconAuthenticationError):
    """UDP challenge handshake did not yield a challenge token."""


class RconNotConnected(RconClientError):
    """Operation attempted before connect or after close."""


class RconDisabledMode(RconClientError):
    """Operation is not valid for the configured transport."""


class RconNoChallengeToken(RconClientError):
    """Challenge mode is enabled but no token has been obtained."""


class RconMalformedRead(RconClientError):
    """Received bytes do not match the expected framing."""


class RconReceiveAuth(RconClientError):
    """A challenge grant arrived where a command response was expected.

    The session has already stored the new token; re-issue the command.
    """

    def __init__(self, token: str) -> None:
        super().__init__("Challenge token refreshed by server, re-send command")
        self.token = token


class RconIoError(RconClientError):
    """Low-level socket failure while talking to the server."""

    def __init__(
        self, message: str, *, errno: int | None = None, retryable: bool = False
    ) -> None:
        super().__init__(message)
        self.errno = errno
        self.retryable = retryable


class RconTimeout(RconClientError):
    """Timeout while waiting for the server."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class RconFramingError(RconMalformedRead):
    """A TCP size prefix was invalid; the stream position is lost."""
