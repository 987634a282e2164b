"""Command-line interface for the proxy tunnel client.

This module provides the ``proxy-tunnel`` command, handling:
- Command-line argument parsing
- Settings loading
- Running one handshake through the chosen proxy
- Error reporting

The CLI is built using Typer and is mainly a diagnostic tool: it tells whether
a proxy accepts a tunnel to a destination and, if not, why.

Example:
    # Run from command line:
    $ proxy-tunnel connect example.com:443 --proxy 10.0.0.1:3128 --type http
"""

import asyncio
import dataclasses
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape

from proxy_tunnel import __version__
from proxy_tunnel.core.exceptions import ProxyConfigurationError, ProxyError
from proxy_tunnel.core.lib.dns_handler import DNSResolver
from proxy_tunnel.core.models import ProtocolVariant
from proxy_tunnel.core.proxy import ProxyClient
from proxy_tunnel.core.settings import HandshakeSettings, load_settings
from proxy_tunnel.core.utils.log_config import setup_logging

console = Console()
app = typer.Typer(help="Open TCP tunnels through SOCKS4, SOCKS4a and HTTP CONNECT proxies")


def split_host_port(value: str, default_port: int | None = None) -> tuple[str, int]:
    """Split ``HOST[:PORT]`` into its parts.

    Args:
        value: Address as given on the command line
        default_port: Port used when ``value`` has none

    Returns:
        tuple[str, int]: Host and port

    Raises:
        ProxyConfigurationError: If the port is missing or not a number
    """
    host, sep, port = value.rpartition(":")
    if not sep:
        if default_port is None:
            raise ProxyConfigurationError(f"{value!r} must be given as HOST:PORT")
        return value, default_port
    if not port.isdigit():
        raise ProxyConfigurationError(f"Invalid port in {value!r}")
    return host, int(port)


@app.callback(invoke_without_command=True)
def version_callback():
    """Show version information."""
    console.print(f"[cyan]Proxy Tunnel v{__version__}[/cyan]")


@app.command(name="connect")
def connect(
    target: str = typer.Argument(..., help="Destination as HOST:PORT"),
    proxy: str = typer.Option(..., "--proxy", "-x", help="Proxy as HOST[:PORT]"),
    proxy_type: ProtocolVariant = typer.Option(
        ProtocolVariant.HTTP, "--type", "-t", case_sensitive=False, help="Proxy dialect"
    ),
    user: str | None = typer.Option(None, "--user", "-u", help="User name or SOCKS4 user-id"),
    password: str | None = typer.Option(None, "--password", "-p", help="Password for --user"),
    header: list[str] | None = typer.Option(None, "--header", "-H", help="Extra HTTP header line"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds to wait for the proxy response"),
    config: Path | None = typer.Option(None, "--config", help="TOML file with a [handshake] table"),
    resolve: bool = typer.Option(default=False, help="Resolve names locally for SOCKS4"),
    debug: bool = typer.Option(
        default=False,
        help="Enable debug logging",
    ),
):
    """Negotiate a tunnel and report whether the proxy accepted it."""
    setup_logging(debug=debug)

    try:
        settings = load_settings(config) if config else HandshakeSettings()
        if timeout is not None:
            settings = dataclasses.replace(settings, response_timeout=timeout)

        dest_host, dest_port = split_host_port(target)
        proxy_host, proxy_port = split_host_port(proxy, proxy_type.default_port)
        if proxy_type is not ProtocolVariant.HTTP and user is not None and password is None:
            password = ""

        client = ProxyClient(
            proxy_type,
            proxy_host,
            proxy_port,
            user,
            password,
            settings=settings,
            extra_headers="\r\n".join(header) if header else None,
            resolver=DNSResolver() if resolve else None,
        )

        with console.status(f"Negotiating {client.proxy_name} tunnel to {dest_host}:{dest_port}..."):
            transport = asyncio.run(client.create_connection(dest_host, dest_port))
        transport.close()
    except ProxyError as e:
        logger.debug(f"{e.kind.value}: {e.message}")
        console.print(f"[red]Error ({e.kind.value}):[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled")
        raise typer.Exit(code=130) from None
    except Exception as e:
        logger.exception("Unexpected error while negotiating tunnel")
        console.print(f"[red]Error: {escape(str(e))}")
        raise typer.Exit(code=1) from e

    console.print(
        f"[bold green]{client.proxy_name} tunnel to {dest_host}:{dest_port} "
        f"established through {proxy_host}:{proxy_port}"
    )


if __name__ == "__main__":
    app()
