"""Custom exceptions for the proxy tunnel client.

This module defines the error taxonomy raised by the handshake engine.
Every error carries enough context to diagnose a failed tunnel:
- The proxy endpoint that was contacted
- The destination that was requested
- The raw status code or response fragment, where one exists
- The original cause (chained via ``raise ... from``)

The exceptions are designed to be caught by callers as a single ``ProxyError``
family, or individually when a caller wants to react to one kind of failure
(for example retrying on ``ProxyTimeoutError`` but not on ``ProxyRejectedError``).

Example:
    try:
        transport = await client.create_connection("example.com", 443)
    except ProxyRejectedError as e:
        console.print(f"[red]Proxy refused the tunnel: {e}")
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proxy_tunnel.core.models import DestinationTarget, ProxyEndpoint


class ErrorKind(str, Enum):
    """Coarse classification of a proxy failure."""

    CONFIGURATION = "configuration"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    PROTOCOL_VIOLATION = "protocol_violation"
    REJECTED = "rejected"
    ADDRESS_RESOLUTION = "address_resolution"
    CANCELLED = "cancelled"


class RejectionKind(str, Enum):
    """Dialect-specific reason a proxy refused the tunnel."""

    REJECTED = "rejected"
    IDENTD_UNREACHABLE = "identd_unreachable"
    IDENTD_MISMATCH = "identd_mismatch"
    BAD_GATEWAY = "bad_gateway"
    HTTP_STATUS = "http_status"
    UNKNOWN = "unknown"


class ProxyError(Exception):
    """Base exception for proxy errors."""

    kind: ErrorKind = ErrorKind.CONNECTION

    def __init__(
        self,
        message: str,
        *,
        proxy: ProxyEndpoint | None = None,
        destination: DestinationTarget | None = None,
        code: int | None = None,
        response: str | bytes | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.proxy = proxy
        self.destination = destination
        self.code = code
        self.response = response

    def __str__(self) -> str:
        return self.message


class ProxyConfigurationError(ProxyError):
    """Raised when the proxy endpoint, destination or settings are invalid."""

    kind = ErrorKind.CONFIGURATION


class ProxyConnectionError(ProxyError):
    """Raised when the transport to the proxy cannot be opened or fails mid-handshake."""

    kind = ErrorKind.CONNECTION


class ProxyTimeoutError(ProxyError):
    """Raised when the proxy does not answer within the response timeout."""

    kind = ErrorKind.TIMEOUT


class ProtocolViolationError(ProxyError):
    """Raised when the proxy answers with something the dialect cannot parse."""

    kind = ErrorKind.PROTOCOL_VIOLATION


class ProxyRejectedError(ProxyError):
    """Raised when the proxy explicitly refuses to open the tunnel."""

    kind = ErrorKind.REJECTED

    def __init__(self, message: str, *, rejection: RejectionKind, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.rejection = rejection


class AddressResolutionError(ProxyError):
    """Raised when a destination cannot be expressed as an IPv4 address."""

    kind = ErrorKind.ADDRESS_RESOLUTION


class ProxyCancelledError(ProxyError):
    """Raised when the caller cancels a connection attempt."""

    kind = ErrorKind.CANCELLED
