import logging
import logging.config
import os
import sys
import time
import uuid
from typing import Optional

import structlog

APP_LOGGER = "tracker"
ROTATE_BYTES = 10 * 1024 * 1024
ROTATE_BACKUPS = 5

# Socket.IO transport chatter drowns out job/step events at INFO
QUIET_LOGGERS = ("engineio", "socketio", "werkzeug")


def _build_handlers(log_level: str, log_file: Optional[str]) -> dict:
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "plain",
            "stream": sys.stdout,
        }
    }
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": ROTATE_BYTES,
            "backupCount": ROTATE_BACKUPS,
        }
    return handlers


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Wire structlog onto stdlib logging for the tracker.

    Every event is rendered as one JSON object. Values bound through
    OperationContext (operation_id, operation_type) are merged into each event
    logged while the operation runs.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        log_file: Optional rotating JSON log file; stdout only when None
    """
    log_level = log_level.upper()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = _build_handlers(log_level, log_file)
    handler_names = list(handlers)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
            "json": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": structlog.processors.JSONRenderer(),
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {"level": log_level, "handlers": handler_names, "propagate": False},
            APP_LOGGER: {"level": log_level, "handlers": handler_names, "propagate": False},
            **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        },
    })

    logger = structlog.get_logger(APP_LOGGER)
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class OperationContext:
    """
    Log one core operation (create_job, update_step, ...) from start to finish.

    The operation id is bound into structlog's context for the duration of the
    block, so store and service logs emitted inside it can be correlated.
    Exceptions are logged and re-raised.
    """

    def __init__(self, operation_type: str, operation_id: Optional[str] = None, **context):
        self.operation_type = operation_type
        self.operation_id = operation_id or uuid.uuid4().hex[:8]
        self.context = {key: value for key, value in context.items() if value is not None}
        self.logger = get_logger(f"{APP_LOGGER}.operations")
        self._started = None
        self._tokens = None

    def __enter__(self):
        self._tokens = structlog.contextvars.bind_contextvars(
            operation_id=self.operation_id,
            operation_type=self.operation_type,
        )
        self._started = time.monotonic()
        self.logger.info("Operation started", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = round(time.monotonic() - self._started, 4)
        try:
            if exc_type is None:
                self.logger.info("Operation completed", duration_seconds=elapsed, **self.context)
            else:
                self.logger.error(
                    "Operation failed",
                    duration_seconds=elapsed,
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                    **self.context,
                )
        finally:
            structlog.contextvars.reset_contextvars(**self._tokens)
        return False
