from __future__ import annotations

import logging

from snapslock.core.redact import redact_any

_CONFIGURED = False


class RedactFilter(logging.Filter):
    """Rewrites the rendered message so secrets never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        record.msg = redact_any(message)
        record.args = ()
        return True


def configure_logging(level: int = logging.INFO) -> None:
    global _CONFIGURED
    logging.basicConfig(level=level, format="%(levelname)s %(name)s %(message)s")
    if _CONFIGURED:
        return
    redact_filter = RedactFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(redact_filter)
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
