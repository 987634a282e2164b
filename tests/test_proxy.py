"""Tests for the ProxyClient facade."""

import asyncio
import socket
import threading
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from proxy_tunnel.core.exceptions import (
    AddressResolutionError,
    ProtocolViolationError,
    ProxyCancelledError,
    ProxyConfigurationError,
    ProxyConnectionError,
    ProxyRejectedError,
    ProxyTimeoutError,
)
from proxy_tunnel.core.lib.transport import SocketTransport
from proxy_tunnel.core.proxy import (
    HttpProxyClient,
    ProxyClient,
    Socks4aProxyClient,
    Socks4ProxyClient,
    create_connection_sync,
    open_connection,
)
from proxy_tunnel.core.settings import HandshakeSettings

GRANTED = b"\x00\x5a\x00\x00\x00\x00\x00\x00"
FAST = HandshakeSettings(poll_interval=0.01, response_timeout=0.2, connect_timeout=2.0)


class TestConstruction:
    """Tests for ProxyClient configuration checks."""

    def test_requires_host_or_transport(self):
        with pytest.raises(ProxyConfigurationError):
            ProxyClient("http")

    def test_unknown_variant(self):
        with pytest.raises(ProxyConfigurationError):
            ProxyClient("socks5", "proxy.local")

    def test_default_ports(self):
        assert HttpProxyClient("proxy.local").endpoint.port == 8080
        assert Socks4ProxyClient("proxy.local").endpoint.port == 1080
        assert Socks4aProxyClient("proxy.local").endpoint.port == 1080

    def test_username_without_password(self):
        with pytest.raises(ProxyConfigurationError):
            HttpProxyClient("proxy.local", 3128, username="alice")

    def test_username_with_empty_password(self):
        client = HttpProxyClient("proxy.local", 3128, username="alice", password="")
        assert client.credentials == ("alice", "")

    def test_socks_user_id(self):
        client = Socks4ProxyClient("proxy.local", user_id="bob")
        assert client.credentials == ("bob", "")

    def test_invalid_proxy_port(self):
        with pytest.raises(ProxyConfigurationError):
            HttpProxyClient("proxy.local", 0)

    def test_raw_socket_is_wrapped(self):
        a, b = socket.socketpair()
        try:
            client = HttpProxyClient(transport=a)
            assert isinstance(client._transport, SocketTransport)
        finally:
            a.close()
            b.close()

    def test_proxy_name(self):
        assert Socks4aProxyClient("proxy.local").proxy_name == "SOCKS4a"


class TestCreateConnection:
    """Tests for ProxyClient.create_connection() over an in-memory transport."""

    @pytest.mark.asyncio
    async def test_socks4a_success_hands_over_transport(self, fake_transport):
        transport = fake_transport([GRANTED])
        client = Socks4aProxyClient(transport=transport, settings=FAST)

        result = await client.create_connection("example.com", 443)

        assert result is transport
        assert not transport.closed
        assert client._transport is None
        assert bytes(transport.written[4:8]) == b"\x00\x00\x00\x01"

    @pytest.mark.asyncio
    async def test_request_is_written_before_polling(self, fake_transport):
        transport = fake_transport([GRANTED])
        await Socks4aProxyClient(transport=transport, settings=FAST).create_connection("example.com", 443)
        assert transport.events[0] == "write"
        assert transport.events.index("poll") < transport.events.index("read")

    @pytest.mark.asyncio
    async def test_rejection_closes_transport(self, fake_transport):
        transport = fake_transport([b"\x00\x5b\x00\x00\x00\x00\x00\x00"])
        client = Socks4ProxyClient(transport=transport, settings=FAST)

        with pytest.raises(ProxyRejectedError):
            await client.create_connection("93.184.216.34", 80)

        assert transport.closed
        assert client._transport is None

    @pytest.mark.asyncio
    async def test_socks4_domain_fails_before_any_write(self, fake_transport):
        transport = fake_transport([GRANTED])
        client = Socks4ProxyClient("proxy.local", 1080, transport=transport, settings=FAST)

        with pytest.raises(AddressResolutionError) as exc_info:
            await client.create_connection("example.com", 443)

        assert transport.written == b""
        assert exc_info.value.proxy == client.endpoint
        assert exc_info.value.destination.host == "example.com"

    @pytest.mark.asyncio
    async def test_socks4_uses_resolver(self, fake_transport):
        resolver = MagicMock()
        resolver.resolve.return_value = "93.184.216.34"
        transport = fake_transport([GRANTED])
        client = Socks4ProxyClient(transport=transport, settings=FAST, resolver=resolver)

        await client.create_connection("example.com", 80)

        resolver.resolve.assert_called_once_with("example.com")
        assert bytes(transport.written[4:8]) == bytes([93, 184, 216, 34])

    @pytest.mark.asyncio
    async def test_socks4a_ignores_resolver(self, fake_transport):
        resolver = MagicMock()
        transport = fake_transport([GRANTED])
        client = Socks4aProxyClient(transport=transport, settings=FAST, resolver=resolver)
        await client.create_connection("example.com", 80)
        resolver.resolve.assert_not_called()

    @pytest.mark.asyncio
    async def test_resolver_failure_carries_context(self, fake_transport):
        resolver = MagicMock()
        resolver.resolve.side_effect = AddressResolutionError("Could not resolve nowhere.invalid")
        client = Socks4ProxyClient("proxy.local", transport=fake_transport([]), resolver=resolver)

        with pytest.raises(AddressResolutionError) as exc_info:
            await client.create_connection("nowhere.invalid", 80)
        assert exc_info.value.proxy == client.endpoint

    @pytest.mark.asyncio
    async def test_invalid_destination_port(self, fake_transport):
        client = HttpProxyClient(transport=fake_transport([]), settings=FAST)
        with pytest.raises(ProxyConfigurationError):
            await client.create_connection("example.com", 0)

    @pytest.mark.asyncio
    async def test_http_success_with_callable_headers(self, fake_transport):
        transport = fake_transport([b"HTTP/1.0 200 Connection Established\r\n\r\n"])
        client = HttpProxyClient(
            "proxy.local",
            3128,
            "alice",
            "pw",
            transport=transport,
            settings=FAST,
            extra_headers=lambda: "User-Agent: unused",
        )

        await client.create_connection("example.com", 443)

        written = bytes(transport.written)
        assert written.startswith(b"CONNECT example.com:443 HTTP/1.0\r\nUser-Agent: unused\r\nHOST: ")
        assert b"Proxy-Authorization: Basic " in written

    @pytest.mark.asyncio
    async def test_http_violation_closes_transport(self, fake_transport):
        transport = fake_transport([b"garbage\r\n"])
        with pytest.raises(ProtocolViolationError):
            await HttpProxyClient(transport=transport, settings=FAST).create_connection("example.com", 443)
        assert transport.closed

    @pytest.mark.asyncio
    async def test_silent_proxy_times_out_and_closes(self, fake_transport):
        transport = fake_transport([])
        with pytest.raises(ProxyTimeoutError):
            await HttpProxyClient(transport=transport, settings=FAST).create_connection("example.com", 443)
        assert transport.closed

    @pytest.mark.asyncio
    async def test_cancel_event_aborts(self, fake_transport):
        transport = fake_transport([])
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.03, cancel.set)
        settings = HandshakeSettings(poll_interval=0.01, response_timeout=5.0)

        with pytest.raises(ProxyCancelledError):
            await HttpProxyClient(transport=transport, settings=settings).create_connection(
                "example.com", 443, cancel_event=cancel
            )
        assert transport.closed

    @pytest.mark.asyncio
    async def test_task_cancellation_closes_transport(self, fake_transport):
        transport = fake_transport([])
        settings = HandshakeSettings(poll_interval=0.01, response_timeout=5.0)
        task = asyncio.create_task(
            HttpProxyClient(transport=transport, settings=settings).create_connection("example.com", 443)
        )
        await asyncio.sleep(0.03)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert transport.closed

    @pytest.mark.asyncio
    async def test_write_failure_becomes_connection_error(self, fake_transport):
        transport = fake_transport([])
        transport.write = AsyncMock(side_effect=BrokenPipeError("broken pipe"))
        with pytest.raises(ProxyConnectionError) as exc_info:
            await HttpProxyClient(transport=transport, settings=FAST).create_connection("example.com", 443)
        assert isinstance(exc_info.value.__cause__, BrokenPipeError)
        assert transport.closed

    @pytest.mark.asyncio
    async def test_supplied_transport_is_used_once(self, fake_transport):
        client = Socks4aProxyClient(transport=fake_transport([GRANTED]), settings=FAST)
        await client.create_connection("example.com", 443)
        with pytest.raises(ProxyConfigurationError):
            await client.create_connection("example.com", 443)

    @pytest.mark.asyncio
    async def test_connect_failure_is_wrapped(self):
        with patch(
            "proxy_tunnel.core.proxy.open_transport",
            new_callable=AsyncMock,
            side_effect=ConnectionRefusedError(111, "Connection refused"),
        ):
            client = HttpProxyClient("proxy.local", 3128, settings=FAST)
            with pytest.raises(ProxyConnectionError) as exc_info:
                await client.create_connection("example.com", 443)
        assert "proxy.local:3128" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)

    @pytest.mark.asyncio
    async def test_cancel_during_connect(self):
        async def slow_open(host, port, timeout):
            await asyncio.sleep(2)
            raise OSError("unreachable")

        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        start = time.monotonic()

        with patch("proxy_tunnel.core.proxy.open_transport", new=slow_open):
            client = HttpProxyClient("proxy.local", 3128, settings=FAST)
            with pytest.raises(ProxyCancelledError):
                await client.create_connection("example.com", 443, cancel_event=cancel)

        assert time.monotonic() - start < 1.0


async def _serve_socks4a(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Minimal SOCKS4a proxy: grant every request, then echo."""
    await reader.readexactly(8)
    await reader.readuntil(b"\x00")  # user-id
    await reader.readuntil(b"\x00")  # domain
    writer.write(GRANTED)
    await writer.drain()
    while data := await reader.read(1024):
        writer.write(data)
        await writer.drain()
    writer.close()


async def _serve_http(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Minimal CONNECT proxy: answer 200, then echo."""
    await reader.readuntil(b"\r\n\r\n")
    writer.write(b"HTTP/1.0 200 Connection Established\r\n\r\n")
    await writer.drain()
    while data := await reader.read(1024):
        writer.write(data)
        await writer.drain()
    writer.close()


async def _serve_refusing_http(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    await reader.readuntil(b"\r\n\r\n")
    writer.write(b"HTTP/1.1 403 Forbidden\r\n\r\n")
    await writer.drain()
    writer.close()


async def _serve_short_socks4_reply(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Send two bytes of a SOCKS4 reply and hold the connection open."""
    await reader.readexactly(8)
    writer.write(b"\x00\x5a")
    await writer.drain()
    await reader.read()
    writer.close()


class TestOverSockets:
    """End-to-end tests against local asyncio proxies."""

    @pytest.mark.asyncio
    async def test_socks4a_tunnel_carries_payload(self):
        server = await asyncio.start_server(_serve_socks4a, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            client = Socks4aProxyClient("127.0.0.1", port, settings=FAST)
            reader, writer = await open_connection(client, "example.com", 443)
            writer.write(b"ping")
            await writer.drain()
            assert await reader.readexactly(4) == b"ping"
            writer.close()
            await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_http_tunnel_returns_socket_transport(self):
        server = await asyncio.start_server(_serve_http, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            client = HttpProxyClient("127.0.0.1", port, settings=FAST)
            transport = await client.create_connection("example.com", 443)
            assert isinstance(transport, SocketTransport)
            assert transport.peername == ("127.0.0.1", port)
            await transport.write(b"hello")
            assert await asyncio.wait_for(transport.read(5), 2.0) == b"hello"
            transport.close()

    @pytest.mark.asyncio
    async def test_http_refusal_closes_socket(self):
        server = await asyncio.start_server(_serve_refusing_http, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            a = socket.socket()
            a.connect(("127.0.0.1", port))
            client = HttpProxyClient(transport=a, settings=FAST)
            with pytest.raises(ProxyRejectedError, match="403"):
                await client.create_connection("example.com", 443)
            assert a.fileno() == -1

    @pytest.mark.asyncio
    async def test_refused_connection(self):
        unused = socket.socket()
        unused.bind(("127.0.0.1", 0))
        port = unused.getsockname()[1]
        unused.close()

        client = HttpProxyClient("127.0.0.1", port, settings=FAST)
        with pytest.raises(ProxyConnectionError):
            await client.create_connection("example.com", 443)

    @pytest.mark.asyncio
    async def test_short_socks4_reply_times_out(self):
        server = await asyncio.start_server(_serve_short_socks4_reply, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            settings = HandshakeSettings(poll_interval=0.01, response_timeout=0.3)
            client = Socks4aProxyClient("127.0.0.1", port, settings=settings)
            start = time.monotonic()
            with pytest.raises(ProxyTimeoutError):
                await asyncio.wait_for(client.create_connection("example.com", 443), 3.0)
            assert time.monotonic() - start < 2.0

    @pytest.mark.asyncio
    async def test_cancel_while_reply_is_incomplete(self):
        server = await asyncio.start_server(_serve_short_socks4_reply, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            settings = HandshakeSettings(poll_interval=0.01, response_timeout=5.0)
            client = Socks4aProxyClient("127.0.0.1", port, settings=settings)
            cancel = asyncio.Event()
            asyncio.get_running_loop().call_later(0.2, cancel.set)
            with pytest.raises(ProxyCancelledError):
                await asyncio.wait_for(client.create_connection("example.com", 443, cancel_event=cancel), 3.0)


def test_create_connection_sync_returns_blocking_socket():
    listener = socket.socket()
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    port = listener.getsockname()[1]

    def serve():
        conn, _ = listener.accept()
        with conn:
            request = b""
            while b"\r\n\r\n" not in request:
                request += conn.recv(1024)
            conn.sendall(b"HTTP/1.0 200 Connection Established\r\n\r\n")
            conn.sendall(conn.recv(1024))

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    try:
        sock = create_connection_sync(HttpProxyClient("127.0.0.1", port, settings=FAST), "example.com", 443)
        with sock:
            assert sock.getblocking()
            sock.sendall(b"echo")
            assert sock.recv(4) == b"echo"
    finally:
        thread.join(timeout=2)
        listener.close()
