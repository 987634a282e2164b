"""SOCKS4 and SOCKS4a handshake codecs.

This module implements the client side of the SOCKS4 CONNECT handshake and
its 4a extension:

Request (both dialects):
    +----+----+----+----+----+----+----+----+----+----+....+----+
    | VN | CD | DSTPORT |      DSTIP        | USERID       |NULL|
    +----+----+----+----+----+----+----+----+----+----+....+----+
       1    1      2              4           variable       1

SOCKS4a sets DSTIP to 0.0.0.1 and appends the destination domain name
followed by a second NULL, asking the proxy to resolve the name itself.

Reply (both dialects):
    +----+----+----+----+----+----+----+----+
    | VN | CD | DSTPORT |      DSTIP        |
    +----+----+----+----+----+----+----+----+
       1    1      2              4

Only CD is meaningful: 90 grants the request, 91-93 reject it.

The two dialects share ``read_socks4_reply`` and ``parse_socks4_reply``; they
differ only in how the request is built.
"""

import ipaddress
import struct
from typing import Final

from loguru import logger

from proxy_tunnel.core.exceptions import AddressResolutionError, ProxyConfigurationError
from proxy_tunnel.core.lib.transport import Transport
from proxy_tunnel.core.lib.translator import SOCKS4_REQUEST_GRANTED, protocol_violation, socks4_reply_error
from proxy_tunnel.core.models import DestinationTarget, HandshakeContext, ProtocolVariant
from proxy_tunnel.core.settings import HandshakeSettings

SOCKS4_VERSION: Final = 4
CONNECT_CMD: Final = 1
REPLY_LENGTH: Final = 8
REPLY_CODE_INDEX: Final = 1

# 0.0.0.x with x non-zero tells a 4a server to read a domain name
SOCKS4A_RESOLVE_MARKER: Final = b"\x00\x00\x00\x01"


def _user_id_bytes(credentials: tuple[str, str] | None) -> bytes:
    user_id = credentials[0] if credentials else ""
    try:
        return user_id.encode("ascii")
    except UnicodeEncodeError as e:
        raise ProxyConfigurationError(f"SOCKS4 user-id must be ASCII, got {user_id!r}") from e


def _header(destination: DestinationTarget, address: bytes) -> bytes:
    return struct.pack("!BBH", SOCKS4_VERSION, CONNECT_CMD, destination.port) + address


async def read_socks4_reply(transport: Transport, settings: HandshakeSettings) -> bytes:
    """Read the fixed-size reply, continuing short reads until EOF.

    The loop has no deadline of its own; the client runs it under the response
    timeout and the cancellation token.
    """
    reply = b""
    while len(reply) < REPLY_LENGTH:
        chunk = await transport.read(REPLY_LENGTH - len(reply))
        if not chunk:
            break
        reply += chunk
    return reply


def parse_socks4_reply(reply: bytes, context: HandshakeContext) -> None:
    """Accept a granted reply or raise the matching error."""
    if len(reply) <= REPLY_CODE_INDEX:
        raise protocol_violation("Proxy closed the connection before sending a complete SOCKS4 reply.", context, reply)

    code = reply[REPLY_CODE_INDEX]
    if code != SOCKS4_REQUEST_GRANTED:
        logger.warning(f"SOCKS4 proxy {context.proxy_address} refused {context.destination} with code {code}")
        raise socks4_reply_error(code, context)


class Socks4Codec:
    """SOCKS4: the destination must already be an IPv4 address."""

    variant = ProtocolVariant.SOCKS4

    def build_request(
        self,
        destination: DestinationTarget,
        credentials: tuple[str, str] | None,
        extra_headers: str = "",
    ) -> bytes:
        try:
            address = ipaddress.IPv4Address(destination.host).packed
        except ValueError as e:
            raise AddressResolutionError(
                f"SOCKS4 cannot resolve host names; {destination.host!r} is not an IPv4 address. "
                "Use SOCKS4a or resolve the name first.",
                destination=destination,
            ) from e
        return _header(destination, address) + _user_id_bytes(credentials) + b"\x00"

    async def read_response(self, transport: Transport, settings: HandshakeSettings) -> bytes:
        return await read_socks4_reply(transport, settings)

    def parse_response(self, response: bytes, context: HandshakeContext) -> None:
        parse_socks4_reply(response, context)


class Socks4aCodec:
    """SOCKS4a: the proxy resolves the destination name."""

    variant = ProtocolVariant.SOCKS4A

    def build_request(
        self,
        destination: DestinationTarget,
        credentials: tuple[str, str] | None,
        extra_headers: str = "",
    ) -> bytes:
        try:
            host = destination.host.encode("idna")
        except UnicodeError as e:
            raise ProxyConfigurationError(f"Destination host {destination.host!r} is not a valid domain name") from e
        return _header(destination, SOCKS4A_RESOLVE_MARKER) + _user_id_bytes(credentials) + b"\x00" + host + b"\x00"

    async def read_response(self, transport: Transport, settings: HandshakeSettings) -> bytes:
        return await read_socks4_reply(transport, settings)

    def parse_response(self, response: bytes, context: HandshakeContext) -> None:
        parse_socks4_reply(response, context)
