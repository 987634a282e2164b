"""Tunable handshake settings.

The defaults match the classic proxy client behaviour: poll every 50 ms for a
proxy response and give up after 15 seconds. Settings can also be loaded from
the ``[handshake]`` table of a TOML file:

    [handshake]
    poll_interval = 0.05
    response_timeout = 15.0
    connect_timeout = 30.0
    read_chunk_size = 8192
"""

import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Final

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from proxy_tunnel.core.exceptions import ProxyConfigurationError

DEFAULT_POLL_INTERVAL: Final = 0.05  # seconds
DEFAULT_RESPONSE_TIMEOUT: Final = 15.0  # seconds
DEFAULT_CONNECT_TIMEOUT: Final = 30.0  # seconds
DEFAULT_READ_CHUNK_SIZE: Final = 8192  # bytes

SETTINGS_TABLE: Final = "handshake"


@dataclass(frozen=True)
class HandshakeSettings:
    """Timing and buffering knobs for one connection attempt.

    Attributes:
        poll_interval: Seconds slept between "has the proxy answered" checks
        response_timeout: Seconds to wait for the first response byte
        connect_timeout: Seconds allowed for the TCP connect, or None for no limit
        read_chunk_size: Maximum bytes per read while collecting a response
    """

    poll_interval: float = DEFAULT_POLL_INTERVAL
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT
    connect_timeout: float | None = DEFAULT_CONNECT_TIMEOUT
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ProxyConfigurationError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.response_timeout <= 0:
            raise ProxyConfigurationError(f"response_timeout must be positive, got {self.response_timeout}")
        if self.connect_timeout is not None and self.connect_timeout <= 0:
            raise ProxyConfigurationError(f"connect_timeout must be positive, got {self.connect_timeout}")
        if self.read_chunk_size <= 0:
            raise ProxyConfigurationError(f"read_chunk_size must be positive, got {self.read_chunk_size}")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "HandshakeSettings":
        """Build settings from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ProxyConfigurationError(f"Unknown handshake settings: {', '.join(sorted(unknown))}")
        try:
            return cls(**data)
        except TypeError as e:
            raise ProxyConfigurationError(f"Invalid handshake settings: {e}") from e


def load_settings(path: str | Path) -> HandshakeSettings:
    """Read handshake settings from a TOML file.

    Args:
        path: TOML file containing an optional ``[handshake]`` table

    Returns:
        HandshakeSettings: Settings with file values over the defaults

    Raises:
        ProxyConfigurationError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ProxyConfigurationError(f"Could not read settings from {path}: {e}") from e

    table = data.get(SETTINGS_TABLE, {})
    if not isinstance(table, dict):
        raise ProxyConfigurationError(f"[{SETTINGS_TABLE}] in {path} must be a table")
    return HandshakeSettings.from_mapping(table)
