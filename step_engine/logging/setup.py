"""
Structured logging configuration for the step engine
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor

from step_engine import __version__
from step_engine.config import Settings, settings as default_settings

# Client libraries that log every reconnect and metadata refresh at INFO.
QUIET_LOGGERS = ("aiokafka", "kafka", "asyncpg")


def service_context(settings: Settings) -> Processor:
    """Build a processor stamping each event with the engine's identity."""

    def add_service_context(logger, method_name, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", settings.service_name)
        event_dict.setdefault("environment", settings.environment)
        event_dict.setdefault("version", __version__)
        return event_dict

    return add_service_context


def setup_logging(settings: Settings | None = None) -> structlog.BoundLogger:
    """
    Configure structlog on top of stdlib logging

    Args:
        settings: Service settings; the module-level settings are used when omitted

    Returns:
        Logger bound to the service name
    """
    settings = settings or default_settings
    level = getattr(logging, settings.log_level.upper())

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        service_context(settings),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(settings.service_name)
