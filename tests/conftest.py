"""Shared fixtures for the proxy tunnel tests."""

from collections import deque

import pytest

from proxy_tunnel.core.models import DestinationTarget, HandshakeContext, ProxyEndpoint


class FakeTransport:
    """In-memory transport.

    ``chunks`` are handed out one per read (split when larger than the read
    size). Data is reported available once ``available_after`` polls have
    happened and while chunks remain.
    """

    def __init__(self, chunks=(), available_after: int = 0) -> None:
        self.chunks = deque(chunks)
        self.available_after = available_after
        self.written = bytearray()
        self.events: list[str] = []
        self.polls = 0
        self.closed = False

    def data_available(self) -> bool:
        self.polls += 1
        self.events.append("poll")
        return bool(self.chunks) and self.polls > self.available_after

    async def write(self, data: bytes) -> None:
        self.events.append("write")
        self.written += data

    async def read(self, size: int) -> bytes:
        self.events.append("read")
        if not self.chunks:
            return b""
        chunk = self.chunks.popleft()
        if len(chunk) > size:
            self.chunks.appendleft(chunk[size:])
            chunk = chunk[:size]
        return chunk

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_transport():
    """Factory for FakeTransport instances."""
    return FakeTransport


@pytest.fixture
def context() -> HandshakeContext:
    """Context for a proxy at 10.0.0.1:1080 asked for example.com:443."""
    return HandshakeContext.build(ProxyEndpoint("10.0.0.1", 1080), DestinationTarget("example.com", 443))
