"""Proxy client for opening TCP tunnels through SOCKS4, SOCKS4a and HTTP CONNECT proxies."""

import pathlib
import sys

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from proxy_tunnel.core.exceptions import (
    AddressResolutionError,
    ErrorKind,
    ProtocolViolationError,
    ProxyCancelledError,
    ProxyConfigurationError,
    ProxyConnectionError,
    ProxyError,
    ProxyRejectedError,
    ProxyTimeoutError,
    RejectionKind,
)
from proxy_tunnel.core.lib.dns_handler import DNSResolver
from proxy_tunnel.core.lib.transport import SocketTransport, Transport
from proxy_tunnel.core.models import DestinationTarget, ProtocolVariant, ProxyEndpoint
from proxy_tunnel.core.proxy import (
    HttpProxyClient,
    ProxyClient,
    Socks4aProxyClient,
    Socks4ProxyClient,
    create_connection_sync,
    open_connection,
)
from proxy_tunnel.core.settings import HandshakeSettings, load_settings


def get_version() -> str:
    """Read version from pyproject.toml."""
    current_dir = pathlib.Path(__file__).parent
    # Look for pyproject.toml in parent directories
    for parent in [current_dir, *current_dir.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            with pyproject_path.open("rb") as f:
                pyproject_data = tomllib.load(f)
            if pyproject_data.get("project", {}).get("name") == "proxy-tunnel":
                return pyproject_data["project"]["version"]

    # Fallback version if file not found
    return "0.0.0"


__version__ = get_version()

__all__ = [
    "AddressResolutionError",
    "create_connection_sync",
    "DestinationTarget",
    "DNSResolver",
    "ErrorKind",
    "HandshakeSettings",
    "HttpProxyClient",
    "load_settings",
    "open_connection",
    "ProtocolVariant",
    "ProtocolViolationError",
    "ProxyCancelledError",
    "ProxyClient",
    "ProxyConfigurationError",
    "ProxyConnectionError",
    "ProxyEndpoint",
    "ProxyError",
    "ProxyRejectedError",
    "ProxyTimeoutError",
    "RejectionKind",
    "SocketTransport",
    "Socks4aProxyClient",
    "Socks4ProxyClient",
    "Transport",
]
