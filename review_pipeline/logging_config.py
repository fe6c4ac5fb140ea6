# review_pipeline/logging_config.py
"""
Stderr-only logging configuration.

Review results may be printed on stdout (CLI --json), so ALL logging goes to
stderr. JSON lines by default, plain text when json_output is False.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Extra LogRecord attributes copied into the JSON line when present
_EXTRA_FIELDS = ("attempt", "error_class", "path", "tokens", "status_code")


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON line."""
        log_data: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure root logging to stderr.

    Clears existing handlers to prevent stdout pollution.

    Args:
        level: Root log level name
        json_output: JSON lines (True) or "LEVEL: message" text (False)
    """
    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO, which would leak URLs on each retry
    for logger_name in ["httpx", "httpcore"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
