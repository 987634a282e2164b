"""Common utility functions."""

from collections.abc import Callable
from typing import Final

CRLF: Final = "\r\n"

# Longest prefix of a request shown in debug logs
HEX_PREVIEW_BYTES: Final = 32

HeaderSource = str | Callable[[], str] | None


def resolve_header_block(source: HeaderSource) -> str:
    """Return the extra header text from a string or a zero-argument callable.

    Args:
        source: Header text, a callable producing it, or None

    Returns:
        str: Header text, empty when nothing was supplied
    """
    if source is None:
        return ""
    if callable(source):
        return source() or ""
    return source


def normalize_header_block(block: str) -> str:
    """Make a non-empty header block end with a line terminator.

    Args:
        block: Free-form header lines

    Returns:
        str: ``block`` ending in CRLF, or the empty string
    """
    if block and not block.endswith(CRLF):
        return block + CRLF
    return block


def format_hex(data: bytes, limit: int = HEX_PREVIEW_BYTES) -> str:
    """Format bytes as space separated hex pairs for logging.

    Args:
        data: Bytes to format
        limit: Maximum number of bytes shown before eliding

    Returns:
        str: e.g. ``"04 01 01 bb ..."``
    """
    shown = data[:limit].hex(" ")
    if len(data) > limit:
        shown += " ..."
    return shown
