"""
Structured Logging - JSON or plain log output with request correlation.

Every record carries the current request id and user id (context variables
set by the HTTP middleware and the auth dependency).
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variables for request correlation
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [req=%(request_id)s user=%(user_id)s] %(message)s"


class ContextFilter(logging.Filter):
    """Copies the correlation context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        record.user_id = user_id_var.get("") or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        req_id = request_id_var.get("")
        if req_id:
            log_entry["request_id"] = req_id
        usr_id = user_id_var.get("")
        if usr_id:
            log_entry["user_id"] = usr_id

        extra = getattr(record, "extra_data", None)
        if extra:
            log_entry["data"] = extra

        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(log_entry)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Install one stdout handler on the root logger (idempotent)."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_surveypilot", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler._surveypilot = True
    handler.addFilter(ContextFilter())
    handler.setFormatter(StructuredFormatter() if json_logs else logging.Formatter(PLAIN_FORMAT))

    root.addHandler(handler)
    root.setLevel(level.upper())


def set_request_context(request_id: str = "", user_id: Optional[int] = None):
    """Set context variables for the current request."""
    if request_id:
        request_id_var.set(request_id)
    if user_id is not None:
        user_id_var.set(str(user_id))


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())[:12]
