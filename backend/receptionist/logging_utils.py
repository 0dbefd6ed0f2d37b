"""Structured logging helpers."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

ALERT_LOGGER = "receptionist.alerts"

_EXTRA_FIELDS = (
    "call_sid",
    "contractor_id",
    "job_id",
    "step",
    "alert_severity",
    "detail",
)


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_obj["exception"] = self.formatException(record.exc_info)
        # Merge any extra fields attached via `extra={...}`
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_obj[key] = val
        return json.dumps(log_obj, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure the root logger with JSON output to stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.setLevel(level)
    # Avoid duplicate handlers on repeated calls
    if not root.handlers:
        root.addHandler(handler)


def send_alert(message: str, severity: str = "warning", **context: object) -> None:
    """Raise an operator alert.

    Alerts are ordinary log records on a dedicated logger so that the log
    shipper can route them (pager for ``critical``, chat for ``warning``).
    """
    level = logging.CRITICAL if severity == "critical" else logging.WARNING
    extra = {"alert_severity": severity}
    for key, value in context.items():
        if key in _EXTRA_FIELDS:
            extra[key] = value  # type: ignore[assignment]
    logging.getLogger(ALERT_LOGGER).log(level, message, extra=extra)
