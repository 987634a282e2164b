"""Translation of raw proxy answers into typed errors.

Every dialect reports failure differently: SOCKS4 with a single reply byte,
HTTP with a status line. This module is the one place that turns those raw
values into the ``ProxyError`` taxonomy, always naming the proxy and the
destination so that a failed tunnel can be diagnosed from the message alone.
"""

from http import HTTPStatus
from typing import Final

from proxy_tunnel.core.exceptions import (
    ProtocolViolationError,
    ProxyCancelledError,
    ProxyConnectionError,
    ProxyRejectedError,
    ProxyTimeoutError,
    RejectionKind,
)
from proxy_tunnel.core.models import HandshakeContext

# SOCKS4 reply codes
SOCKS4_REQUEST_GRANTED: Final = 90
SOCKS4_REQUEST_REJECTED: Final = 91
SOCKS4_IDENTD_UNREACHABLE: Final = 92
SOCKS4_IDENTD_MISMATCH: Final = 93

HTTP_BAD_GATEWAY: Final = 502


def socks4_reply_error(code: int, context: HandshakeContext) -> ProxyRejectedError:
    """Map a non-granted SOCKS4 reply code to a rejection error."""
    proxy = context.proxy_address
    dest = context.destination
    if code == SOCKS4_REQUEST_REJECTED:
        rejection = RejectionKind.REJECTED
        msg = (
            f"Proxy {proxy} rejected or failed the request to connect to "
            f"destination {dest.host} on port {dest.port}."
        )
    elif code == SOCKS4_IDENTD_UNREACHABLE:
        rejection = RejectionKind.IDENTD_UNREACHABLE
        msg = (
            f"Proxy {proxy} rejected the request to connect to destination {dest.host} "
            f"on port {dest.port} because it cannot connect to identd on the client."
        )
    elif code == SOCKS4_IDENTD_MISMATCH:
        rejection = RejectionKind.IDENTD_MISMATCH
        msg = (
            f"Proxy {proxy} rejected the request to connect to destination {dest.host} "
            f"on port {dest.port} because the client program and identd report different user-ids."
        )
    else:
        rejection = RejectionKind.UNKNOWN
        msg = (
            f"Proxy {proxy} sent an unsupported SOCKS4 reply code {code} for "
            f"destination {dest.host} on port {dest.port}."
        )
    return ProxyRejectedError(
        msg,
        rejection=rejection,
        proxy=context.proxy,
        destination=dest,
        code=code,
    )


def http_status_error(code: int, reason: str, status_line: str, context: HandshakeContext) -> ProxyRejectedError:
    """Map a non-200 CONNECT status to a rejection error."""
    proxy = context.proxy_address
    dest = context.destination
    if code == HTTP_BAD_GATEWAY:
        rejection = RejectionKind.BAD_GATEWAY
        msg = (
            f"Proxy {proxy} responded with a 502 code - Bad Gateway for destination {dest}. "
            "The proxy may not allow tunnels to this port; some gateways (e.g. Microsoft ISA "
            "Server) only permit SSL tunnels to port 443. Server response: "
            f"{status_line}"
        )
    else:
        rejection = RejectionKind.HTTP_STATUS
        if not reason:
            try:
                reason = HTTPStatus(code).phrase
            except ValueError:
                reason = "Unknown status"
        msg = f"Proxy {proxy} responded with a {code} code - {reason} (destination {dest})"
    return ProxyRejectedError(
        msg,
        rejection=rejection,
        proxy=context.proxy,
        destination=dest,
        code=code,
        response=status_line,
    )


def protocol_violation(
    detail: str,
    context: HandshakeContext,
    response: str | bytes | None = None,
) -> ProtocolViolationError:
    """Build an error for a response the dialect cannot make sense of."""
    msg = f"{detail} Proxy {context.proxy_address}, destination {context.destination}."
    if response is not None:
        msg += f" Server response: {response!r}"
    return ProtocolViolationError(
        msg,
        proxy=context.proxy,
        destination=context.destination,
        response=response,
    )


def response_timeout(context: HandshakeContext, waited: float) -> ProxyTimeoutError:
    """Build an error for a proxy that never answered."""
    return ProxyTimeoutError(
        f"A timeout occurred while waiting {waited:.2f}s for the proxy server at "
        f"{context.proxy_address} to respond (destination {context.destination}).",
        proxy=context.proxy,
        destination=context.destination,
    )


def connection_failure(context: HandshakeContext, cause: BaseException) -> ProxyConnectionError:
    """Build an error for a transport-level failure; chain ``cause`` when raising."""
    return ProxyConnectionError(
        f"Connection to proxy host {context.proxy_address} failed "
        f"(destination {context.destination}): {str(cause) or type(cause).__name__}",
        proxy=context.proxy,
        destination=context.destination,
    )


def cancelled(context: HandshakeContext) -> ProxyCancelledError:
    """Build an error for an attempt the caller cancelled."""
    return ProxyCancelledError(
        f"Connection attempt through proxy {context.proxy_address} to {context.destination} was cancelled.",
        proxy=context.proxy,
        destination=context.destination,
    )
