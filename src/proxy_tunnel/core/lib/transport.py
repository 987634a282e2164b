"""Byte-stream transport to the proxy server.

The handshake engine talks to the proxy through the small ``Transport``
protocol below rather than through a socket directly. ``SocketTransport`` is
the production implementation: an asyncio adapter over a non-blocking
``socket.socket``. Tests substitute in-memory fakes.

Once a handshake succeeds the transport (and its socket) belongs to the
caller; the engine never reads or writes it again.
"""

import asyncio
import select
import socket
from typing import Protocol, runtime_checkable

from loguru import logger


@runtime_checkable
class Transport(Protocol):
    """Open bidirectional byte stream to a proxy."""

    def data_available(self) -> bool:
        """Return True if a read would not block."""
        ...

    async def write(self, data: bytes) -> None:
        """Send all of ``data``."""
        ...

    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; ``b""`` means the peer closed."""
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...


class SocketTransport:
    """Transport backed by a TCP socket driven by the running event loop."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._was_blocking = sock.getblocking()
        sock.setblocking(False)

    @property
    def raw_socket(self) -> socket.socket:
        """The wrapped socket (non-blocking while owned by the transport)."""
        return self._sock

    @property
    def peername(self) -> tuple[str, int] | None:
        """Remote address of the socket, if connected."""
        try:
            host, port, *_ = self._sock.getpeername()
        except OSError:
            return None
        return host, port

    def data_available(self) -> bool:
        if self._sock.fileno() == -1:
            return False
        readable, _, _ = select.select([self._sock], [], [], 0)
        return bool(readable)

    async def write(self, data: bytes) -> None:
        loop = asyncio.get_running_loop()
        await loop.sock_sendall(self._sock, data)

    async def read(self, size: int) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.sock_recv(self._sock, size)

    def close(self) -> None:
        self._sock.close()

    def detach(self) -> socket.socket:
        """Hand the socket over, restoring the blocking mode it arrived with.

        Sockets opened by ``open_transport`` are returned in blocking mode.
        """
        self._sock.setblocking(self._was_blocking)
        return self._sock


async def open_transport(host: str, port: int, timeout: float | None = None) -> SocketTransport:
    """Open a TCP connection to the proxy.

    Every address the host resolves to is tried in order, as the socket layer
    does for ``socket.create_connection``.

    Args:
        host: Proxy host name or IP address
        port: Proxy port
        timeout: Seconds allowed for the whole attempt, or None for no limit

    Returns:
        SocketTransport: Connected transport

    Raises:
        OSError: If no address could be connected to
        TimeoutError: If the connect did not finish within ``timeout``
    """
    loop = asyncio.get_running_loop()

    async def _connect() -> socket.socket:
        addrinfo = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        if not addrinfo:
            raise OSError(f"getaddrinfo returned no addresses for {host}")

        last_error: OSError | None = None
        for family, type_, proto, _, addr in addrinfo:
            sock = socket.socket(family, type_, proto)
            sock.setblocking(False)
            try:
                await loop.sock_connect(sock, addr)
            except OSError as e:
                logger.debug(f"Connect to {addr} failed: {e}")
                sock.close()
                last_error = e
                continue
            except BaseException:
                sock.close()
                raise
            sock.setblocking(True)
            return sock
        if last_error is None:
            raise OSError(f"Could not connect to {host}:{port}")
        raise last_error

    sock = await asyncio.wait_for(_connect(), timeout)
    logger.debug(f"Connected to proxy {host}:{port}")
    return SocketTransport(sock)
