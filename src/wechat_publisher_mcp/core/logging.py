"""Logging configuration for the WeChat Publisher MCP server.

Records are tagged with the id of the OAuth request being served and have
bearer credentials (access tokens, refresh tokens, authorization codes)
masked before they reach a handler.
"""

import logging
import os
import re
import sys
from contextvars import ContextVar

# Context variable to store request_id across async calls
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Credentials minted by the provider: a kind prefix and a urlsafe body
_SECRET_PATTERN = re.compile(r"\b(access|refresh|authcode)_([A-Za-z0-9_-]{4})[A-Za-z0-9_-]{4,}")

# SDK loggers that carry OAuth traffic worth seeing in debug mode
_AUTH_LOGGERS = ("mcp.server.auth", "fastmcp.server.auth")


def mask_secrets(text: str) -> str:
    """Replace every issued credential in ``text`` by its prefix and first characters."""
    return _SECRET_PATTERN.sub(r"\1_\2…", text)


class RequestIdFilter(logging.Filter):
    """Logging filter that adds request_id to log records."""

    def filter(self, record):
        """Add request_id to the log record if available."""
        request_id = request_id_ctx.get()
        record.request_id = f"[{request_id}] " if request_id else ""
        return True


class SecretMaskingFilter(logging.Filter):
    """Masks issued tokens and codes in the rendered message."""

    def filter(self, record):
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def configure_logging() -> logging.Logger:
    """Configure and return the logger for the application.

    Logs go to stderr so the stdio transport keeps stdout for protocol
    messages.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] [%(name)s] %(request_id)s%(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    logger = logging.getLogger("wechat-publisher-mcp")

    filters = (RequestIdFilter(), SecretMaskingFilter())
    for handler in logging.root.handlers:
        for log_filter in filters:
            if not any(isinstance(f, type(log_filter)) for f in handler.filters):
                handler.addFilter(log_filter)

    if os.getenv("MCP_DEBUG", "").lower() in ("true", "1", "yes"):
        logger.setLevel(logging.DEBUG)
        logging.getLogger("wechat_publisher_mcp").setLevel(logging.DEBUG)
        for name in _AUTH_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled, OAuth request logging included")

    return logger


# Initialize logger
logger = configure_logging()
