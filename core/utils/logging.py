import json
import logging
from datetime import datetime, UTC

AUDIT_EXTRA_KEYS = ("user", "project", "task", "comment", "role", "room", "event", "key", "prefix")


class JSONFormatter(logging.Formatter):
    """Minimal JSON log formatter suitable for shipping to stdout.

    Usage: set as formatter for handlers; includes level, logger, message, timestamp,
    and selected extras if present (user, project, task, comment, role, room, event, key, prefix).
    """

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        # Context passed via extra={"project": ..., "user": ...}
        for key in AUDIT_EXTRA_KEYS:
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        data["src"] = f"{record.pathname}:{record.lineno}"
        return json.dumps(data, ensure_ascii=False, default=str)
