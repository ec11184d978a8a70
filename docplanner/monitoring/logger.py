# docplanner/monitoring/logger.py
"""
Structured JSON logger for the document operation planner.
"""
import logging
import json
from datetime import datetime, timezone
from docplanner.config import settings

def get_request_context():
    # Import lazily to avoid import cycles
    from docplanner.monitoring.context import get_request_context as _g
    return _g()

# Fields every record carries; anything else passed through `extra` is
# appended under "context".
_BASE_FIELDS = ("request_id", "tool", "document_id", "component")
_RESERVED = set(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "component": getattr(record, "component", None) or record.module,
            "request_id": getattr(record, "request_id", None),
            "tool": getattr(record, "tool", None),
            "document_id": getattr(record, "document_id", None),
        }
        context = {
            k: v for k, v in record.__dict__.items()
            if k not in _RESERVED and k not in _BASE_FIELDS
        }
        if context:
            log_record["context"] = context
        return json.dumps(log_record, default=str)

logger = logging.getLogger("docplanner")
logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
handler = logging.StreamHandler()
handler.setFormatter(JsonFormatter())
logger.handlers = [handler]

# Helper to log with context
def log(level: str, message: str, component: str = None, request_id: str = None, tool: str = None, document_id: str = None, **kwargs):
    # Map legacy 'module' kwarg to 'component' to avoid LogRecord collision
    if "module" in kwargs and not component:
        component = kwargs.pop("module")
    kwargs.pop("module", None)
    # Fill missing fields from contextvars
    ctx = get_request_context()
    if request_id is None:
        request_id = ctx.get("request_id")
    if tool is None:
        tool = ctx.get("tool")
    if document_id is None:
        document_id = ctx.get("document_id")

    extra = {
        "request_id": request_id,
        "tool": tool,
        "document_id": document_id,
        "component": component,
        **{k: v for k, v in kwargs.items() if k not in _RESERVED},
    }
    logger.log(getattr(logging, level.upper(), logging.INFO), message, extra=extra)
