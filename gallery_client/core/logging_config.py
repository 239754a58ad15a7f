from __future__ import annotations

import logging

# Subscription polling issues one GET per live document every few seconds;
# httpx logs each of those at INFO.
_POLL_SNIPPETS: tuple[str, ...] = (
    "HTTP Request: GET",
    "subscription poll",
)

_NOISY_LOGGERS: tuple[str, ...] = (
    "httpx",
    "httpcore",
    "httpcore.connection",
    "httpcore.http11",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "asyncio",
)


class _SuppressPollingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging hook
        if record.levelno > logging.INFO:
            return True
        try:
            message = record.getMessage()
        except Exception:
            return True
        for snippet in _POLL_SNIPPETS:
            if snippet in message:
                return False
        return True


_POLL_FILTER = _SuppressPollingFilter()


def _ensure_filter(logger: logging.Logger) -> None:
    for existing in logger.filters:
        if existing is _POLL_FILTER:
            return
    logger.addFilter(_POLL_FILTER)


def _ensure_stream_handler(logger: logging.Logger) -> None:
    handler_exists = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    if handler_exists:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
    logger.addHandler(handler)


def configure_logging(level_name: str | None = None) -> None:
    """Configure the root logger and suppress per-poll request chatter."""

    lvl = getattr(logging, (level_name or 'INFO').upper(), logging.INFO)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(lvl)
    _ensure_stream_handler(root_logger)
    _ensure_filter(root_logger)

    for noisy_name in _NOISY_LOGGERS:
        logger = logging.getLogger(noisy_name)
        if logger.level < logging.INFO:
            logger.setLevel(logging.INFO)
        logger.propagate = False
        _ensure_filter(logger)
