"""Handshake engine components."""

from .codec import HandshakeCodec
from .dns_handler import DNSResolver
from .http_connect import HttpConnectCodec
from .socks4 import Socks4aCodec, Socks4Codec
from .transport import SocketTransport, Transport, open_transport
from .waiter import wait_for_data

__all__ = [
    "DNSResolver",
    "HandshakeCodec",
    "HttpConnectCodec",
    "open_transport",
    "SocketTransport",
    "Socks4aCodec",
    "Socks4Codec",
    "Transport",
    "wait_for_data",
]
