"""Proxy client facade and main entry point for establishing tunnels.

This module ties the handshake engine together. A ``ProxyClient`` is bound to
one dialect and drives a single request/response exchange per call:

1. Validate the destination (configuration errors never touch the network)
2. Build the dialect's request
3. Open a transport to the proxy, or use the one supplied by the caller
4. Write the request, wait for the answer, read and parse it
5. Hand the transport to the caller, or close it and raise a ``ProxyError``

The core never retries and never looks at bytes after the handshake.

Example:
    client = HttpProxyClient("10.0.0.1", 3128)
    transport = await client.create_connection("example.com", 443)
    sock = transport.detach()
"""

import asyncio
import socket

from loguru import logger

from proxy_tunnel.core.exceptions import AddressResolutionError, ProxyConfigurationError, ProxyError
from proxy_tunnel.core.lib.codec import HandshakeCodec
from proxy_tunnel.core.lib.dns_handler import DNSResolver
from proxy_tunnel.core.lib.http_connect import HttpConnectCodec
from proxy_tunnel.core.lib.socks4 import Socks4aCodec, Socks4Codec
from proxy_tunnel.core.lib.transport import SocketTransport, Transport, open_transport
from proxy_tunnel.core.lib.translator import connection_failure, response_timeout
from proxy_tunnel.core.lib.waiter import check_cancelled, run_cancellable, wait_for_data
from proxy_tunnel.core.models import (
    DestinationTarget,
    HandshakeContext,
    ProtocolVariant,
    ProxyEndpoint,
    validate_credentials,
)
from proxy_tunnel.core.settings import HandshakeSettings
from proxy_tunnel.core.utils.utils import HeaderSource, format_hex, resolve_header_block

CODECS: dict[ProtocolVariant, HandshakeCodec] = {
    ProtocolVariant.SOCKS4: Socks4Codec(),
    ProtocolVariant.SOCKS4A: Socks4aCodec(),
    ProtocolVariant.HTTP: HttpConnectCodec(),
}


class ProxyClient:
    """Establish tunnels through one proxy using one dialect."""

    def __init__(
        self,
        variant: ProtocolVariant | str,
        proxy_host: str | None = None,
        proxy_port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        *,
        transport: Transport | socket.socket | None = None,
        settings: HandshakeSettings | None = None,
        extra_headers: HeaderSource = None,
        resolver: DNSResolver | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            variant: Proxy dialect
            proxy_host: Proxy host; may be omitted when ``transport`` is given
            proxy_port: Proxy port, the dialect's default port when omitted
            username: SOCKS4 user-id or HTTP Basic user name
            password: Password paired with ``username`` (may be empty)
            transport: Already connected transport or socket to the proxy
            settings: Timing settings, the defaults when omitted
            extra_headers: Extra HTTP header lines, or a callable producing them
            resolver: Client-side resolver used by SOCKS4 for host names

        Raises:
            ProxyConfigurationError: If the configuration is invalid
        """
        try:
            self.variant = ProtocolVariant(variant)
        except ValueError as e:
            raise ProxyConfigurationError(f"Unsupported proxy type {variant!r}") from e
        self.codec = CODECS[self.variant]

        self.credentials = validate_credentials(username, password)
        self.endpoint: ProxyEndpoint | None = None
        if proxy_host is not None or proxy_port is not None:
            self.endpoint = ProxyEndpoint(
                proxy_host if proxy_host is not None else "",
                proxy_port if proxy_port is not None else self.variant.default_port,
                username,
                password,
            )
        elif transport is None:
            raise ProxyConfigurationError("Either a proxy host or an open transport is required")

        if isinstance(transport, socket.socket):
            transport = SocketTransport(transport)
        self._transport: Transport | None = transport

        self.settings = settings or HandshakeSettings()
        self.extra_headers = extra_headers
        self.resolver = resolver

    @property
    def proxy_name(self) -> str:
        """Dialect name, e.g. ``"SOCKS4a"``."""
        return self.variant.proxy_name

    async def _prepare_destination(self, destination: DestinationTarget) -> DestinationTarget:
        """Resolve a SOCKS4 host name client-side when a resolver is configured."""
        if self.variant is not ProtocolVariant.SOCKS4 or self.resolver is None or destination.is_ipv4_literal:
            return destination
        try:
            address = await asyncio.to_thread(self.resolver.resolve, destination.host)
        except AddressResolutionError as e:
            raise AddressResolutionError(e.message, proxy=self.endpoint, destination=destination) from e
        logger.debug(f"Resolved {destination.host} to {address} for SOCKS4")
        return DestinationTarget(address, destination.port)

    async def _open(self, context: HandshakeContext, cancel_event: asyncio.Event | None) -> Transport:
        if self._transport is not None:
            return self._transport
        if self.endpoint is None:
            raise ProxyConfigurationError(
                "The supplied transport was already handed over and no proxy host is configured",
                destination=context.destination,
            )
        try:
            return await run_cancellable(
                open_transport(self.endpoint.host, self.endpoint.port, self.settings.connect_timeout),
                context,
                cancel_event,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not connect to proxy {self.endpoint}: {e}")
            raise connection_failure(context, e) from e

    async def create_connection(
        self,
        destination_host: str,
        destination_port: int,
        cancel_event: asyncio.Event | None = None,
    ) -> Transport:
        """Negotiate a tunnel to the destination.

        Args:
            destination_host: Destination host name or IPv4 address
            destination_port: Destination port
            cancel_event: Optional cancellation token; set it to abort the attempt

        Returns:
            Transport: Connected tunnel, now owned by the caller

        Raises:
            ProxyError: Typed failure; the transport is closed before raising
        """
        destination = DestinationTarget(destination_host, destination_port)
        destination = await self._prepare_destination(destination)
        try:
            request = self.codec.build_request(
                destination,
                self.credentials,
                resolve_header_block(self.extra_headers),
            )
        except ProxyError as e:
            raise type(e)(e.message, proxy=self.endpoint, destination=destination) from (e.__cause__ or e)

        peer = getattr(self._transport, "peername", None)
        context = HandshakeContext.build(self.endpoint, destination, peer)
        check_cancelled(cancel_event, context)

        transport = await self._open(context, cancel_event)
        try:
            await self._handshake(transport, request, context, cancel_event)
        except BaseException:
            transport.close()
            self._transport = None
            raise

        self._transport = None
        logger.info(f"{self.proxy_name} tunnel to {destination} established through {context.proxy_address}")
        return transport

    async def _handshake(
        self,
        transport: Transport,
        request: bytes,
        context: HandshakeContext,
        cancel_event: asyncio.Event | None,
    ) -> None:
        check_cancelled(cancel_event, context)
        logger.debug(f"Sending {len(request)} byte {self.proxy_name} request: {format_hex(request)}")
        try:
            await transport.write(request)
            check_cancelled(cancel_event, context)
            await wait_for_data(
                transport,
                context,
                poll_interval=self.settings.poll_interval,
                timeout=self.settings.response_timeout,
                cancel_event=cancel_event,
            )
            response = await run_cancellable(
                self.codec.read_response(transport, self.settings),
                context,
                cancel_event,
                timeout=self.settings.response_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Proxy {context.proxy_address} stopped short of a complete response")
            raise response_timeout(context, self.settings.response_timeout) from e
        except OSError as e:
            raise connection_failure(context, e) from e
        check_cancelled(cancel_event, context)
        self.codec.parse_response(response, context)


class Socks4ProxyClient(ProxyClient):
    """SOCKS4 client; ``user_id`` is sent to the proxy for identd checks."""

    def __init__(
        self,
        proxy_host: str | None = None,
        proxy_port: int | None = None,
        user_id: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(
            ProtocolVariant.SOCKS4,
            proxy_host,
            proxy_port,
            user_id,
            "" if user_id is not None else None,
            **kwargs,
        )


class Socks4aProxyClient(ProxyClient):
    """SOCKS4a client; the proxy resolves destination names."""

    def __init__(
        self,
        proxy_host: str | None = None,
        proxy_port: int | None = None,
        user_id: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(
            ProtocolVariant.SOCKS4A,
            proxy_host,
            proxy_port,
            user_id,
            "" if user_id is not None else None,
            **kwargs,
        )


class HttpProxyClient(ProxyClient):
    """HTTP CONNECT client with optional Basic authentication."""

    def __init__(
        self,
        proxy_host: str | None = None,
        proxy_port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(ProtocolVariant.HTTP, proxy_host, proxy_port, username, password, **kwargs)


async def open_connection(
    client: ProxyClient,
    destination_host: str,
    destination_port: int,
    cancel_event: asyncio.Event | None = None,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Negotiate a tunnel and wrap it in asyncio streams."""
    transport = await client.create_connection(destination_host, destination_port, cancel_event)
    if not isinstance(transport, SocketTransport):
        transport.close()
        raise ProxyConfigurationError("open_connection needs a socket-backed transport")
    return await asyncio.open_connection(sock=transport.detach())


def create_connection_sync(client: ProxyClient, destination_host: str, destination_port: int) -> socket.socket:
    """Blocking variant of ``create_connection`` returning a plain socket."""

    async def _run() -> socket.socket:
        transport = await client.create_connection(destination_host, destination_port)
        if not isinstance(transport, SocketTransport):
            transport.close()
            raise ProxyConfigurationError("create_connection_sync needs a socket-backed transport")
        return transport.detach()

    return asyncio.run(_run())
