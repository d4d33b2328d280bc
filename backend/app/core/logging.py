"""
Structured logging for the booking API, built on structlog.

Every record carries the service name and environment. Records emitted while
a request is in flight also carry request_id, method and path, bound as
contextvars by RequestLoggingMiddleware; services add trip_id, seats and
user_id as keyword fields on the event itself.

Rendering: one JSON object per line in production or with JSON_LOGS=true,
coloured key=value console output otherwise.
"""

import logging
import sys
import structlog
from app.core.config import get_settings

# Library loggers kept at WARNING
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio")


def _service_fields(app_name: str, environment: str):
    def add_service_fields(logger, method_name, event_dict):
        event_dict.setdefault("service", app_name)
        event_dict.setdefault("env", environment)
        return event_dict

    return add_service_fields


def _renderer(json_logs: bool):
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def setup_logging() -> None:
    settings = get_settings()
    json_logs = settings.JSON_LOGS or settings.ENVIRONMENT == "production"

    processors = [
        structlog.contextvars.merge_contextvars,
        _service_fields(settings.APP_NAME, settings.ENVIRONMENT),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_logs:
        # Console renderer prints tracebacks itself
        processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_logs),
        ]
    ))

    root_logger = logging.getLogger()
    # Replaced, not appended: lifespan runs once per TestClient/app start
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
