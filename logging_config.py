from __future__ import annotations

import json
import logging
import time
from enum import Enum
from logging.config import dictConfig
from typing import Iterable, Iterator, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "batch_id",
    "vehicle_id",
    "tx_hash",
    "store_path",
    "status",
    "reason",
    "duration_seconds",
    "reading_count",
    "strategy",
)

_configured = False


class ContextualFormatter(logging.Formatter):
    """Render a record as one greppable line followed by its shipment context.

    A relay log line is only useful if it can be tied back to a batch, a
    vehicle or a transaction, so the known ``extra`` keys are appended as
    ``key=value`` pairs in a fixed order. Values containing whitespace (revert
    reasons, store errors) are quoted to keep each pair a single token.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = " ".join(self._context_pairs(record))
        return f"{message} | {context}" if context else message

    def _context_pairs(self, record: logging.LogRecord) -> Iterator[str]:
        for key in self._extra_keys:
            value = getattr(record, key, None)
            if value is None:
                continue
            text = str(value.value if isinstance(value, Enum) else value)
            if not text or any(char.isspace() for char in text):
                text = json.dumps(text)
            yield f"{key}={text}"


# Client libraries that would otherwise log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "web3", "urllib3")


def build_logging_config(level: str | int) -> dict:
    """dictConfig payload: one stderr handler, contextual lines, quiet clients."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": "logging_config.ContextualFormatter",
                "fmt": "%(asctime)sZ %(levelname)-7s %(name)s: %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "extra_keys": list(_DEFAULT_EXTRA_KEYS),
            }
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "contextual",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {"handlers": ["stderr"], "level": level},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the relay's logging setup once per process."""
    global _configured
    if _configured:
        return
    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
