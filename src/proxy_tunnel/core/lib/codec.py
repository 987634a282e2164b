"""Common interface implemented by every handshake dialect."""

from typing import Protocol

from proxy_tunnel.core.lib.transport import Transport
from proxy_tunnel.core.models import DestinationTarget, HandshakeContext, ProtocolVariant
from proxy_tunnel.core.settings import HandshakeSettings


class HandshakeCodec(Protocol):
    """Request encoder and response decoder for one proxy dialect.

    ``build_request`` is pure and runs before any I/O. ``read_response`` is
    called only once the transport reports pending data. ``parse_response``
    returns on success and raises a ``ProxyError`` otherwise.
    """

    variant: ProtocolVariant

    def build_request(
        self,
        destination: DestinationTarget,
        credentials: tuple[str, str] | None,
        extra_headers: str,
    ) -> bytes: ...

    async def read_response(self, transport: Transport, settings: HandshakeSettings) -> bytes | str: ...

    def parse_response(self, response: bytes | str, context: HandshakeContext) -> None: ...
