"""Runtime logging configuration utilities."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from .structured import JsonFormatter

__all__ = ["setup_logging"]

_NOISY_LOGGERS = ("discord.gateway", "discord.client", "urllib3.connectionpool")


def _ensure_stream_handler(logger: logging.Logger, formatter: logging.Formatter) -> None:
    """Ensure ``logger`` has a stream handler using ``formatter``."""

    stream_handler_found = False
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setFormatter(formatter)
            stream_handler_found = True
    if not stream_handler_found:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def setup_logging(
    *,
    level: str | int = logging.INFO,
    static_fields: Mapping[str, str] | None = None,
    quiet_loggers: Iterable[str] = _NOISY_LOGGERS,
) -> logging.Logger:
    """Configure JSON logging for the runtime.

    Parameters
    ----------
    level:
        Root log level, either a level name or number.
    static_fields:
        Static fields included with every structured log event (env, bot).
    quiet_loggers:
        Library loggers capped at WARNING so gateway chatter stays out of
        the operator log.

    Returns
    -------
    logging.Logger
        The configured root logger.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(level if isinstance(level, int) else str(level).upper())
    _ensure_stream_handler(root_logger, JsonFormatter(static=dict(static_fields or {})))

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
