"""HTTP CONNECT handshake codec.

Request:
    CONNECT example.com:443 HTTP/1.0<CR><LF>
    [... caller supplied header lines ending with <CR><LF>]
    HOST: example.com:443<CR><LF>
    [Proxy-Authorization: Basic base64(user:password)<CR><LF>]
    <CR><LF>

Response:
    HTTP/1.0 200 Connection Established<CR><LF>
    [... other header lines, ignored]
    <CR><LF>

The response is collected by reading whatever is pending until the transport
stops reporting data. This does not scan for the blank line that ends the
headers, so a proxy that flushes its answer in bursts can be under-read and a
destination that talks first can be over-read.
"""

import base64
import codecs
from typing import Final

from loguru import logger

from proxy_tunnel.core.exceptions import ProxyConfigurationError
from proxy_tunnel.core.lib.transport import Transport
from proxy_tunnel.core.lib.translator import http_status_error, protocol_violation
from proxy_tunnel.core.models import DestinationTarget, HandshakeContext, ProtocolVariant
from proxy_tunnel.core.settings import HandshakeSettings
from proxy_tunnel.core.utils.utils import normalize_header_block

HTTP_OK: Final = 200
LINE_END: Final = "\r\n"


def basic_credentials(username: str, password: str) -> str:
    """Encode a user/password pair for a Basic authorization header."""
    return base64.b64encode(f"{username}:{password}".encode()).decode("ascii")


def authority(destination: DestinationTarget) -> str:
    """Render ``host:port`` for the request line, IDNA-encoding non-ASCII names."""
    try:
        host = destination.host.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise ProxyConfigurationError(f"Destination host {destination.host!r} is not a valid domain name") from e
    return f"{host}:{destination.port}"


def status_line(response: str) -> str:
    """Return the first line of a response, up to the first carriage return."""
    end = response.find("\r")
    if end == -1:
        end = response.find("\n")
    return response if end == -1 else response[:end]


def parse_status_line(line: str, context: HandshakeContext) -> tuple[int, str]:
    """Split a status line into ``(code, reason)``.

    Raises:
        ProtocolViolationError: If the line is not an HTTP status line
    """
    if "HTTP" not in line:
        raise protocol_violation("No HTTP response received from proxy.", context, line)

    parts = line.split(" ", 2)
    if len(parts) < 2 or not (parts[1].isascii() and parts[1].isdigit()):
        raise protocol_violation("An invalid response code was received from proxy.", context, line)

    reason = parts[2].strip() if len(parts) > 2 else ""
    return int(parts[1]), reason


class HttpConnectCodec:
    """HTTP/1.0 CONNECT tunnelling with optional Basic proxy authentication."""

    variant = ProtocolVariant.HTTP

    def build_request(
        self,
        destination: DestinationTarget,
        credentials: tuple[str, str] | None,
        extra_headers: str = "",
    ) -> bytes:
        target = authority(destination)
        request = f"CONNECT {target} HTTP/1.0{LINE_END}"
        request += normalize_header_block(extra_headers)
        request += f"HOST: {target}{LINE_END}"
        if credentials is not None:
            request += f"Proxy-Authorization: Basic {basic_credentials(*credentials)}{LINE_END}"
        request += LINE_END
        try:
            return request.encode("ascii")
        except UnicodeEncodeError as e:
            raise ProxyConfigurationError("Extra HTTP headers must be ASCII") from e

    async def read_response(self, transport: Transport, settings: HandshakeSettings) -> str:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        parts: list[str] = []
        while True:
            chunk = await transport.read(settings.read_chunk_size)
            if not chunk:
                break
            parts.append(decoder.decode(chunk))
            if not transport.data_available():
                break
        parts.append(decoder.decode(b"", final=True))
        return "".join(parts)

    def parse_response(self, response: str, context: HandshakeContext) -> None:
        line = status_line(response)
        logger.debug(f"HTTP proxy {context.proxy_address} answered: {line!r}")
        code, reason = parse_status_line(line, context)
        if code != HTTP_OK:
            logger.warning(f"HTTP proxy {context.proxy_address} refused {context.destination} with status {code}")
            raise http_status_error(code, reason, line, context)
