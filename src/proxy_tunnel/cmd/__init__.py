"""Command line interface modules.

This package provides the ``proxy-tunnel`` command, which negotiates a tunnel
through a proxy and reports whether the proxy accepted it. It is a thin layer
over ``proxy_tunnel.core`` and adds no handshake behaviour of its own.
"""
