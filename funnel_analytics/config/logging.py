"""
Logging Configuration for Funnel Analytics

Every record, from structlog or the stdlib (uvicorn, SQLAlchemy), goes
through one processor chain and one stdout handler. Records carry the
service name and environment so analytics logs can be told apart from
the tracker's when both ship to the same sink.
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level
from structlog.types import EventDict, Processor

from funnel_analytics.config.settings import Settings, get_settings

# Stdlib loggers routed through our handler, and their level floor
# (None follows the configured level)
ROUTED_LOGGERS: Dict[str, Optional[int]] = {
    "uvicorn": None,
    "uvicorn.error": None,
    "uvicorn.access": logging.WARNING,
    "gunicorn.error": None,
    "sqlalchemy.engine": logging.WARNING,
}


def service_context(settings: Settings) -> Processor:
    """Processor stamping each record with the service name and environment."""
    service = settings.app_name
    environment = settings.app_env

    def add_service_context(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service_context


def drop_color_message(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    """uvicorn duplicates its message with ANSI codes under `color_message`."""
    event_dict.pop("color_message", None)
    return event_dict


def shared_processors(settings: Settings) -> List[Processor]:
    """Processors applied to structlog and foreign stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        service_context(settings),
        drop_color_message,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def renderer_for(log_format: str) -> Processor:
    if log_format == "json":
        return JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
    """
    settings = get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    numeric_level = logging.getLevelName(level)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors = shared_processors(settings)
    structlog.configure(
        processors=processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[
                ProcessorFormatter.remove_processors_meta,
                renderer_for(settings.monitoring.log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)

    for name, floor in ROUTED_LOGGERS.items():
        routed = logging.getLogger(name)
        routed.handlers = []
        routed.propagate = True
        routed.setLevel(max(numeric_level, floor) if floor is not None else numeric_level)

    if settings.database.echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
    )
