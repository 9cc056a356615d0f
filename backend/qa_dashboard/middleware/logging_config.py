"""
Logging setup shared by the API and the worker.

LOG_FORMAT=json emits one JSON object per line (timestamp, level, logger,
message, request_id, plus duration_ms / result_id when attached to the
record); anything else keeps the plain text format.
"""

import json
import logging
from datetime import datetime, timezone

from qa_dashboard.middleware.request_context import get_request_id

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_EXTRA_FIELDS = ("duration_ms", "result_id")


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    if log_format != "json":
        logging.basicConfig(level=level, format=TEXT_FORMAT)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # selenium logs every wire command at DEBUG
    logging.getLogger("selenium").setLevel(max(level, logging.INFO))
