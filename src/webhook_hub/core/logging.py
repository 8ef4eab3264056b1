"""Logging setup for the Webhook Hub service."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stream handler to the package logger.

    Safe to call more than once; the handler is only installed the first time.

    Args:
        level: Log level name such as ``"INFO"`` or ``"DEBUG"``.

    Returns:
        The configured ``webhook_hub`` logger.
    """
    logger = logging.getLogger("webhook_hub")
    logger.setLevel(level.upper())
    if not any(getattr(handler, "_webhook_hub", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._webhook_hub = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
