"""Client-side IPv4 resolution for SOCKS4 using dnspython.

Plain SOCKS4 cannot carry host names, so a caller that wants to reach a
named destination through a SOCKS4 proxy has to resolve it first. A
``DNSResolver`` handed to the client does that before the request is built.
"""

import socket
from typing import TYPE_CHECKING, ClassVar, cast

import dns.exception
import dns.resolver
from loguru import logger

from proxy_tunnel.core.exceptions import AddressResolutionError

if TYPE_CHECKING:
    from dns.resolver import Resolver

# DNS resolver constants
DEFAULT_TIMEOUT = 1.0  # seconds
DEFAULT_LIFETIME = 3.0  # seconds


class DNSResolver:
    """Resolve names to IPv4 addresses, system resolver first then dnspython."""

    # Class-level cache shared by all resolvers
    _resolve_cache: ClassVar[dict[str, str]] = {}

    def __init__(self, nameservers: list[str] | None = None, use_system: bool = True) -> None:
        """Initialize the resolver.

        Args:
            nameservers: Name servers for dnspython; the system configuration when None
            use_system: Try ``socket.getaddrinfo`` before dnspython
        """
        self.use_system = use_system
        self.resolver = cast("Resolver", dns.resolver.Resolver(configure=nameservers is None))
        self.resolver.timeout = DEFAULT_TIMEOUT
        self.resolver.lifetime = DEFAULT_LIFETIME
        if nameservers is not None:
            self.resolver.nameservers = nameservers

    def _try_system_dns(self, domain: str) -> str | None:
        try:
            infos = socket.getaddrinfo(domain, None, socket.AF_INET, socket.SOCK_STREAM)
        except socket.gaierror as e:
            logger.debug(f"System DNS resolution failed for {domain}: {e}")
            return None
        return str(infos[0][4][0]) if infos else None

    def _try_configured_resolver(self, domain: str) -> str | None:
        try:
            answer = self.resolver.resolve(domain, "A")
        except dns.exception.DNSException as e:
            logger.debug(f"Configured resolver failed for {domain}: {e}")
            return None
        return str(answer[0])

    def resolve(self, domain: str) -> str:
        """Resolve domain name to an IPv4 address.

        Args:
            domain: Domain name to resolve

        Returns:
            str: Dotted-quad IPv4 address

        Raises:
            AddressResolutionError: If no method produced an address
        """
        if domain in self._resolve_cache:
            return self._resolve_cache[domain]

        ip = self._try_system_dns(domain) if self.use_system else None
        if ip is None:
            ip = self._try_configured_resolver(domain)
        if ip is None:
            msg = f"Could not resolve {domain} to an IPv4 address"
            logger.warning(msg)
            raise AddressResolutionError(msg)

        self._resolve_cache[domain] = ip
        return ip

    @classmethod
    def clear_cache(cls) -> None:
        """Forget every cached answer."""
        cls._resolve_cache.clear()
