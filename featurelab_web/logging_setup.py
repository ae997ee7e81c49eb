from __future__ import annotations

import logging
import sys

STRUCTURED_FIELDS = (
    "event",
    "endpoint",
    "correlation_id",
    "attempt",
    "max_retries",
    "will_retry",
    "error",
    "duration_ms",
    "history_id",
    "strategy",
)

_CONFIGURED = False


class KeyValueFormatter(logging.Formatter):
    """Appends the structured `extra` fields of a record as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        pairs = [
            f"{name}={getattr(record, name)!r}"
            for name in STRUCTURED_FIELDS
            if hasattr(record, name)
        ]
        return f"{base} | {' '.join(pairs)}" if pairs else base


def setup_logging(level: str = "INFO") -> None:
    """Install one stream handler on the package logger; repeat calls only adjust the level."""
    global _CONFIGURED
    logger = logging.getLogger("featurelab_web")
    logger.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(KeyValueFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    _CONFIGURED = True


__all__ = ["KeyValueFormatter", "setup_logging"]
