"""Core handshake engine.

This package contains the components that negotiate a tunnel through a proxy:
- Configuration and target model
- Transport adapter over TCP sockets
- Response waiter with timeout and cancellation
- Handshake codecs (SOCKS4, SOCKS4a, HTTP CONNECT)
- Error translation into a typed exception taxonomy
- The ``ProxyClient`` facade

The core package has no knowledge of the command-line interface; it can be
used directly as a library.
"""
