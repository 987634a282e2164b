"""Utility functions and helpers."""

from proxy_tunnel.core.utils.log_config import setup_logging
from proxy_tunnel.core.utils.utils import format_hex, normalize_header_block, resolve_header_block

__all__ = ["format_hex", "normalize_header_block", "resolve_header_block", "setup_logging"]
