import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Optional, Union

from pythonjsonlogger import jsonlogger

TRACE_ID_CTX: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s %(service)s"

# libraries that log every statement or request at INFO
_NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx")


class TraceIdFilter(logging.Filter):
    """Stamps each record with the current trace id and the service name."""

    def __init__(self, service: str = "seatlock"):
        super().__init__()
        self.service = service

    def filter(self, record):
        record.trace_id = TRACE_ID_CTX.get()
        record.service = self.service
        return True


def current_trace_id() -> Optional[str]:
    return TRACE_ID_CTX.get()


def new_trace_id(trace_id: Optional[str] = None) -> str:
    """Bind ``trace_id`` (or a fresh one) to the current context."""
    trace_id = trace_id or uuid.uuid4().hex
    TRACE_ID_CTX.set(trace_id)
    return trace_id


def setup_logging(level: Union[int, str] = logging.INFO, service: str = "seatlock"):
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
    handler.addFilter(TraceIdFilter(service))
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
