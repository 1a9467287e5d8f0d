"""Process-wide logging configuration for the server entrypoint.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the CLI ``run`` command.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from typing import Any

from brother_nature.config import LoggingSettings

_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
}

# Matches hex blobs long enough to be signatures, keys or signed transactions.
_LONG_HEX = re.compile(r"\b[0-9A-Fa-f]{96,}\b")
_SEED = re.compile(r"\bs[1-9A-HJ-NP-Za-km-z]{28,}\b")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class RedactionFilter(logging.Filter):
    """Masks seed-like and signature-sized hex strings in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SEED.sub("[REDACTED]", _LONG_HEX.sub("[REDACTED]", message))
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(settings: LoggingSettings, *, stream=None) -> logging.Handler:
    """Install a single stream handler on the root logger.

    Calling it again replaces the handler installed by the previous call.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    if settings.format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FORMATS.get(settings.format, _FORMATS["detailed"])))
    handler.addFilter(RedactionFilter())
    handler.set_name("brother_nature")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == "brother_nature":
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    return handler
