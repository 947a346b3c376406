import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def new_request_id(incoming: Optional[str] = None) -> str:
    """Bind a request ID to the current context and return it."""
    request_id = incoming or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter that includes the request ID."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        """Add custom fields to the log record."""
        super().add_fields(log_record, record, message_dict)

        # Request ID of the HTTP request being served, if any
        if not log_record.get('request_id'):
            request_id = request_id_var.get()
            if request_id:
                log_record['request_id'] = request_id

        # Add standard fields
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['module'] = record.module
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno

def setup_logging(level: str = "INFO") -> None:
    """Configure logging with JSON formatting."""
    # Remove existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Configure JSON logging
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)

    # Set up root logger
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Configure third-party loggers
    logging.getLogger("uvicorn").handlers = [handler]
    logging.getLogger("uvicorn.access").handlers = [handler]
    logging.getLogger("fastapi").handlers = [handler]

    # Set log levels for noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.info("Logging configured", extra={
        "log_level": level,
        "format": "json"
    })
