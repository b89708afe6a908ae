"""Structured logging module with JSON output and gateway context support.

This module provides a centralized logging configuration using structlog for
structured JSON logging. Every event logged while a monitor is running carries
the gateway endpoint it is watching.
"""

import logging
import sys
from contextvars import ContextVar
from pathlib import Path

import structlog
from structlog.types import EventDict, WrappedLogger


_gateway_endpoint: ContextVar[str | None] = ContextVar("gateway_endpoint", default=None)


def bind_gateway(host: str, port: int, client_id: int) -> None:
    """Bind the monitored gateway endpoint to the current context.

    Each monitor runs in its own task, so the binding stays local to it.

    Args:
        host: Configured gateway host
        port: Gateway port
        client_id: Client ID the monitor connects as
    """
    _gateway_endpoint.set(f"{host}:{port}/{client_id}")


def get_gateway() -> str | None:
    """Get the gateway endpoint bound to the current context, if any."""
    return _gateway_endpoint.get()


def add_gateway(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add the bound gateway endpoint to log entries if available.

    Args:
        logger: The wrapped logger instance
        method_name: The name of the method being called
        event_dict: The event dictionary to modify

    Returns:
        Modified event dictionary with gateway if available
    """
    gateway = get_gateway()
    if gateway and "gateway" not in event_dict:
        event_dict["gateway"] = gateway
    return event_dict


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output (in addition to console)
        json_output: If True, output JSON format; if False, use human-readable format
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Logs go to stderr; stdout is reserved for console notices
    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        stream=sys.stderr,
        force=True,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        add_gateway,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))

        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


__all__ = [
    "setup_logging",
    "get_logger",
    "bind_gateway",
    "get_gateway",
    "add_gateway",
]
