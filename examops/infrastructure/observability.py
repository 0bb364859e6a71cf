"""Structured Logging — JSON log lines whose extras double as pipeline metrics.

Invariants:
    - Every line carries timestamp, level, logger and message
    - Only whitelisted extras (tenant/exam/schedule/payment ids, batch counters, durations)
      are serialized; arbitrary record attributes never leak into the output
    - setup_logging is idempotent: calling it twice does not duplicate handlers

Design Decisions:
    - Batch counters and durations travel as log extras: the log pipeline is the metrics sink
    - Driver loggers (sqlalchemy.engine, httpx) are held at WARNING so per-query and
      per-request chatter does not drown batch progress lines
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "tenant_id", "exam_id", "schedule_id", "payment_id", "error_code", "path",
    "attempt", "batch_index", "processed_offset", "total_records",
    "records_attempted", "records_succeeded", "duration_ms",
    "dimensions", "decision", "ticket_status",
)

_QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")
_HANDLER_NAME = "examops"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, extras limited to `fields`."""

    def __init__(self, fields: tuple[str, ...] = EXTRA_FIELDS):
        super().__init__()
        self.fields = fields

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(
            (key, record.__dict__[key]) for key in self.fields
            if record.__dict__.get(key) is not None
        )
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the examops root handler (JSON in production, plain text otherwise)."""
    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        JSONFormatter() if fmt == "json"
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
