"""Session configuration.

All defaults are resolved here, once, so the session only ever sees a fully
initialised value. Configs can also be loaded from YAML files.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .protocol import TransportKind
from .transport.base import DEFAULT_CONNECT_TIMEOUT, DEFAULT_TIMEOUT

DEFAULT_PORT = 27960
DEFAULT_REQUEST_ID = 0x0012D4A6
DEFAULT_RECEIVE_BUFFER_SIZE = 65536
MIN_RECEIVE_BUFFER_SIZE = 4096
_INT32_MAX = 2**31 - 1


class ConfigLoadError(Exception):
    """Raised when a config file cannot be loaded."""


@dataclass(frozen=True)
class Endpoint:
    """Address of one RCON server."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class RconConfig:
    """Connection settings for one RCON session.

    Attributes:
        host: Server hostname or IP.
        password: RCON password.
        port: Server port.
        transport: Wire variant to use.
        challenge: Whether UDP commands must carry a challenge token.
        timeout: Receive timeout (seconds).
        connect_timeout: Socket setup timeout (seconds).
        initial_request_id: First TCP request id; incremented per request.
        receive_buffer_size: Largest message a single receive returns.
        multi_packet: Collect multi-packet TCP responses.
    """

    host: str
    password: str
    port: int = DEFAULT_PORT
    transport: TransportKind = TransportKind.UDP
    challenge: bool = False
    timeout: float = DEFAULT_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    initial_request_id: int = DEFAULT_REQUEST_ID
    receive_buffer_size: int = DEFAULT_RECEIVE_BUFFER_SIZE
    multi_packet: bool = False

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host is required")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"port must be an integer, got {type(self.port).__name__}")
        if not 0 < self.port <= 65535:
            raise ValueError(f"port {self.port} is out of range")
        if not isinstance(self.transport, TransportKind):
            object.__setattr__(self, "transport", TransportKind(self.transport))
        if self.timeout <= 0 or self.connect_timeout <= 0:
            raise ValueError("timeouts must be positive")
        if not 0 < self.initial_request_id <= _INT32_MAX:
            raise ValueError("initial_request_id must be a positive int32")
        if self.receive_buffer_size < MIN_RECEIVE_BUFFER_SIZE:
            raise ValueError(
                f"receive_buffer_size must be at least {MIN_RECEIVE_BUFFER_SIZE}"
            )
        if self.challenge and self.transport is TransportKind.TCP:
            raise ValueError("challenge mode is only available over UDP")

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(self.host, self.port)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> RconConfig:
        """Build a config from a plain mapping, ignoring unknown keys.

        Raises:
            ValueError: If a required key is missing or a value is invalid.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        for required in ("host", "password"):
            if required not in kwargs:
                raise ValueError(f"{required} is required")
        if "transport" in kwargs:
            kwargs["transport"] = TransportKind(str(kwargs["transport"]).lower())
        return cls(**kwargs)


def load_config(path: Path) -> RconConfig:
    """Load a session config from a YAML file.

    Args:
        path: YAML file holding a mapping of RconConfig fields.

    Raises:
        ConfigLoadError: If the file is missing or not a mapping.
        ValueError: If a value is invalid.
    """
    if not path.exists():
        raise ConfigLoadError(f"File not found: {path}")
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Config must be a mapping: {path}")
    return RconConfig.from_mapping(data)
