"""Utility helpers for the WeChat Publisher MCP server."""

from .async_helpers import KeyedLock

__all__ = ["KeyedLock"]
