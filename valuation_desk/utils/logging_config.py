"""
Structured logging for the Valuation Desk.

Application code logs through the standard ``logging`` module with
``extra={...}`` fields. structlog renders every record: JSON lines for
production and a readable console layout for development. A shared processor
chain adds to each record:
- the service name and version
- the request correlation id, method, path and signed-in user
- every ``extra`` field as a top-level key

Files rotate by size. Each response carries an ``X-Correlation-ID`` header.
"""

import logging
import logging.handlers
import os
import sys
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog
from flask import Flask, g, has_request_context, request

SERVICE_NAME = "valuation-desk"
SERVICE_VERSION = "1.0.0"
ROOT_LOGGER_NAME = "valuation_desk"
CORRELATION_HEADER = "X-Correlation-ID"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


@dataclass
class LoggingSettings:
    level: str = "INFO"
    log_format: str = "development"
    log_file: Optional[str] = "logs/app.log"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    enable_console: bool = True

    @property
    def json_output(self) -> bool:
        return self.log_format.lower() == "json"

    @classmethod
    def from_app(cls, app: Flask) -> "LoggingSettings":
        defaults = cls()
        return cls(
            level=app.config.get("LOG_LEVEL", defaults.level),
            log_format=app.config.get("LOG_FORMAT", defaults.log_format),
            log_file=app.config.get("LOG_FILE", defaults.log_file),
            max_bytes=app.config.get("LOG_MAX_BYTES", defaults.max_bytes),
            backup_count=app.config.get("LOG_BACKUP_COUNT", defaults.backup_count),
            enable_console=app.config.get("LOG_ENABLE_CONSOLE", defaults.enable_console),
        )

    @classmethod
    def from_env(cls) -> "LoggingSettings":
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "development"),
            log_file=os.getenv("LOG_FILE", "logs/app.log"),
            max_bytes=int(os.getenv("LOG_MAX_BYTES", "10485760")),
            backup_count=int(os.getenv("LOG_BACKUP_COUNT", "5")),
            enable_console=os.getenv("LOG_ENABLE_CONSOLE", "true").lower() == "true",
        )


def add_record_extras(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Lift ``extra={...}`` fields of a stdlib record into the event"""
    record = event_dict.get("_record")
    if record is not None:
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                event_dict.setdefault(key, value)
    return event_dict


def add_request_context(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if has_request_context():
        event_dict.setdefault("correlation_id", g.get("correlation_id", "no-request"))
        event_dict.setdefault("method", request.method)
        event_dict.setdefault("path", request.path)
        event_dict.setdefault("remote_addr", request.remote_addr)
        event_dict.setdefault("user_id", g.get("user_id") or "anonymous")
    else:
        event_dict.setdefault("correlation_id", "system")
    return event_dict


def add_service_info(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", SERVICE_VERSION)
    return event_dict


SHARED_PROCESSORS = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    add_record_extras,
    add_request_context,
    add_service_info,
]


def build_formatter(json_output: bool, colors: bool = False) -> logging.Formatter:
    """A stdlib formatter that renders records through structlog"""
    processors = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_output:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=colors))
    return structlog.stdlib.ProcessorFormatter(processors=processors, foreign_pre_chain=SHARED_PROCESSORS)


class LoggingManager:
    """Owns the handlers of the application's root logger."""

    def __init__(self, name: str = ROOT_LOGGER_NAME):
        self.name = name
        self.configured = False

    def configure(self, settings: LoggingSettings) -> logging.Logger:
        logger = logging.getLogger(self.name)
        logger.setLevel(getattr(logging, str(settings.level).upper(), logging.INFO))
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        if settings.log_file:
            log_dir = os.path.dirname(settings.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                settings.log_file, maxBytes=settings.max_bytes, backupCount=settings.backup_count, encoding="utf-8"
            )
            file_handler.setFormatter(build_formatter(settings.json_output))
            logger.addHandler(file_handler)

        if settings.enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(build_formatter(settings.json_output, colors=sys.stdout.isatty()))
            logger.addHandler(console_handler)

        if not logger.handlers:
            logger.addHandler(logging.NullHandler())

        # structlog-native loggers share the chain and the handlers above
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *SHARED_PROCESSORS,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        self.configured = True
        logger.info(
            "Logging configured",
            extra={
                "category": "logging_configured",
                "log_level": settings.level,
                "log_format": settings.log_format,
                "log_file": settings.log_file or None,
            },
        )
        return logger

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        if not self.configured:
            self.configure(LoggingSettings.from_env())
        return logging.getLogger(f"{self.name}.{name}" if name else self.name)


logging_manager = LoggingManager()


def setup_flask_logging(app: Flask) -> logging.Logger:
    """Configure logging from ``app.config`` and hook request start and end logs."""
    logger = logging_manager.configure(LoggingSettings.from_app(app))

    app.logger.handlers.clear()
    for handler in logger.handlers:
        app.logger.addHandler(handler)
    app.logger.setLevel(logger.level)

    request_logger = logging_manager.get_logger("request")

    @app.before_request
    def start_request_log():
        incoming = request.headers.get(CORRELATION_HEADER, "")[:64]
        g.correlation_id = incoming or uuid.uuid4().hex[:8]
        g.request_started = time.perf_counter()
        request_logger.debug(
            "Request started", extra={"category": "request_start", "content_length": request.content_length}
        )

    @app.after_request
    def finish_request_log(response):
        started = g.get("request_started")
        duration = (time.perf_counter() - started) * 1000 if started is not None else 0.0
        request_logger.info(
            "Request completed",
            extra={"category": "request_end", "status_code": response.status_code, "duration_ms": round(duration, 2)},
        )
        response.headers[CORRELATION_HEADER] = g.get("correlation_id", "no-request")
        return response

    @app.teardown_request
    def log_request_exception(exception=None):
        if exception is not None:
            request_logger.error(
                "Request failed with exception",
                extra={
                    "category": "request_exception",
                    "exception_type": type(exception).__name__,
                    "exception_message": str(exception),
                },
            )

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Child logger of the application logger, configured from the environment on first use."""
    return logging_manager.get_logger(name)


def log_database_operation(operation: str, key: Optional[str] = None, **kwargs):
    """Log a storage read or write."""
    get_logger("storage").debug(
        f"Storage {operation}: {key}",
        extra={"category": "storage_operation", "operation": operation, "key": key, **kwargs},
    )


def log_security_event(event_type: str, details: Dict[str, Any]):
    """Log a failed login, a denied action or another security-relevant event."""
    get_logger("security").warning(
        f"Security event: {event_type}", extra={"category": "security_event", "event_type": event_type, **details}
    )


def log_performance_metric(metric_name: str, value: float, unit: str = "ms", **kwargs):
    get_logger("performance").info(
        f"{metric_name}={value:.2f}{unit}",
        extra={"category": "performance_metric", "metric_name": metric_name, "value": value, "unit": unit, **kwargs},
    )


def log_business_event(event_type: str, entity_type: Optional[str] = None, entity_id: Optional[str] = None, **kwargs):
    """Log a domain change such as a created invoice or a changed status."""
    get_logger("business").info(
        f"{entity_type or 'record'} {entity_id or ''} {event_type}".strip(),
        extra={
            "category": "business_event",
            "event_type": event_type,
            "entity_type": entity_type,
            "entity_id": entity_id,
            **kwargs,
        },
    )
