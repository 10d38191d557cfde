"""
Logging configuration for cloudfailover
"""

import logging
import sys

import structlog

# Level names accepted from declarations, mapped onto stdlib levels
LOG_LEVELS: dict[str, int] = {
    "silly": logging.DEBUG,
    "verbose": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def resolve_log_level(log_level: str) -> int:
    """Translate a level name into a stdlib logging level.

    Args:
        log_level: Level name, case insensitive

    Returns:
        Numeric logging level

    Raises:
        ValueError: the name is not a known level
    """
    try:
        return LOG_LEVELS[log_level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {log_level}") from None


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
) -> None:
    """Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output logs in JSON format
    """
    level = resolve_log_level(log_level)

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    logging.getLogger().setLevel(level)

    # Configure structlog
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_logs:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ])
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        ])

    # Loggers are not cached so that set_log_level applies to existing ones
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def set_log_level(log_level: str, json_logs: bool = False) -> None:
    """Re-apply logging configuration with a new level.

    Args:
        log_level: New level name
        json_logs: Whether to output logs in JSON format
    """
    configure_logging(log_level=log_level, json_logs=json_logs)
    structlog.get_logger(__name__).info("Log level updated", level=log_level.lower())

