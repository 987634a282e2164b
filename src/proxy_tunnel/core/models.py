"""Value objects describing where a tunnel goes and through which proxy.

This module provides the immutable configuration model for the client:
- The proxy endpoint (host, port and optional credentials)
- The destination target of the tunnel
- The supported proxy dialects and their defaults

All objects validate themselves at construction, so an invalid configuration
is reported before any network I/O takes place.

Example:
    endpoint = ProxyEndpoint("10.0.0.1", 3128, username="alice", password="")
    target = DestinationTarget("example.com", 443)
"""

import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import Final

from proxy_tunnel.core.exceptions import ProxyConfigurationError

MIN_PORT: Final = 1
MAX_PORT: Final = 65535

SOCKS_DEFAULT_PORT: Final = 1080
HTTP_DEFAULT_PORT: Final = 8080


class ProtocolVariant(str, Enum):
    """Proxy dialects understood by the handshake engine."""

    SOCKS4 = "socks4"
    SOCKS4A = "socks4a"
    HTTP = "http"

    @property
    def proxy_name(self) -> str:
        """Human readable dialect name."""
        return {
            ProtocolVariant.SOCKS4: "SOCKS4",
            ProtocolVariant.SOCKS4A: "SOCKS4a",
            ProtocolVariant.HTTP: "HTTP",
        }[self]

    @property
    def default_port(self) -> int:
        """Port used when the caller does not give one."""
        if self is ProtocolVariant.HTTP:
            return HTTP_DEFAULT_PORT
        return SOCKS_DEFAULT_PORT


def _check_port(port: int, what: str) -> None:
    if isinstance(port, bool) or not isinstance(port, int):
        raise ProxyConfigurationError(f"{what} port must be an integer, got {port!r}")
    if not MIN_PORT <= port <= MAX_PORT:
        raise ProxyConfigurationError(
            f"{what} port must be between {MIN_PORT} and {MAX_PORT}, got {port}"
        )


def validate_credentials(username: str | None, password: str | None) -> tuple[str, str] | None:
    """Check the username/password pairing rule.

    A username requires a password (the empty string is allowed) and a
    password requires a username.

    Returns:
        tuple[str, str] | None: The pair, or None when both are absent

    Raises:
        ProxyConfigurationError: If only one half of the pair is given
    """
    if username is not None and password is None:
        raise ProxyConfigurationError("A proxy password must be given with a username (it may be empty)")
    if username is None and password is not None:
        raise ProxyConfigurationError("A proxy password was given without a username")
    if username is None or password is None:
        return None
    return username, password


@dataclass(frozen=True)
class ProxyEndpoint:
    """Proxy server the tunnel is negotiated with.

    Attributes:
        host: Host name or IP address of the proxy server
        port: Port the proxy listens on
        username: Optional user name (SOCKS4 user-id, HTTP Basic user)
        password: Password paired with ``username``; may be empty, never absent
    """

    host: str
    port: int
    username: str | None = None
    password: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip():
            raise ProxyConfigurationError("Proxy host must be a non-empty string")
        _check_port(self.port, "Proxy")
        validate_credentials(self.username, self.password)

    @property
    def credentials(self) -> tuple[str, str] | None:
        """Return ``(username, password)`` or ``None`` when unauthenticated."""
        return validate_credentials(self.username, self.password)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class DestinationTarget:
    """Host and port the proxy is asked to connect to.

    Attributes:
        host: Domain name or literal IPv4 address
        port: Destination TCP port
    """

    host: str
    port: int

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip():
            raise ProxyConfigurationError("Destination host must be a non-empty string")
        _check_port(self.port, "Destination")

    @property
    def is_ipv4_literal(self) -> bool:
        """Whether ``host`` is a dotted-quad IPv4 address."""
        try:
            ipaddress.IPv4Address(self.host)
        except ValueError:
            return False
        return True

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class HandshakeContext:
    """Who was asked for what; used to build error messages."""

    proxy: ProxyEndpoint | None
    proxy_address: str
    destination: DestinationTarget

    @classmethod
    def build(
        cls,
        proxy: ProxyEndpoint | None,
        destination: DestinationTarget,
        peer: tuple[str, int] | None = None,
    ) -> "HandshakeContext":
        """Create a context, naming the proxy by endpoint or by transport peer."""
        if proxy is not None:
            address = str(proxy)
        elif peer is not None:
            address = f"{peer[0]}:{peer[1]}"
        else:
            address = "<unknown proxy>"
        return cls(proxy=proxy, proxy_address=address, destination=destination)
