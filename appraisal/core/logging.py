import logging
from contextvars import ContextVar
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from appraisal.core.clock import utcnow
from appraisal.core.config import settings

# Set per request by CorrelationIdMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "passlib")


class RequestContextFilter(logging.Filter):
    """Stamps every record with the current request id (empty outside requests)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class AppraisalJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.app_name
        if not log_record.get("request_id"):
            log_record.pop("request_id", None)


def _build_formatter() -> logging.Formatter:
    if settings.log_format == "text":
        return logging.Formatter("%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s")
    return AppraisalJsonFormatter("%(timestamp) %(level) %(name) %(request_id) %(message)")


def setup_logging():
    root = logging.getLogger()
    # Re-importing the app (tests, --reload) must not stack handlers
    if any(getattr(h, "_appraisal_handler", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler._appraisal_handler = True
    handler.setFormatter(_build_formatter())
    handler.addFilter(RequestContextFilter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level, logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
