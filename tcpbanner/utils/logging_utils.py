"""
Shared log line helpers.

Every line starts with a bracketed tag so scan output can be filtered by
stage: ``[CONNECTION]`` for socket lifecycle, ``[NEGOTIATION]`` for Telnet
handling and ``[DATA]`` for received bytes.
"""

import logging
from typing import Any


def _suffix(sep: str, value: Any) -> str:
    return f"{sep}{value}" if value else ""


def log_connection_event(
    logger: logging.Logger, event_type: str, host: str = "", port: int = 0
) -> None:
    """Log a socket lifecycle step, with the target when known."""
    target = f"{host}:{port}" if host and port else ""
    logger.info(f"[CONNECTION] {event_type}{_suffix(' - ', target)}")


def log_negotiation_event(
    logger: logging.Logger, event_type: str, details: str = ""
) -> None:
    """Log a Telnet control sequence that was stripped or passed through."""
    logger.debug(f"[NEGOTIATION] {event_type}{_suffix(': ', details)}")


def log_debug_operation(
    logger: logging.Logger, operation: str, details: Any = None
) -> None:
    if details is None:
        logger.debug(operation)
    else:
        logger.debug(f"{operation}: {details}")


def log_data_processing(
    logger: logging.Logger, operation: str, data_info: str = ""
) -> None:
    """Log handling of bytes read from the peer."""
    logger.debug(f"[DATA] {operation}{_suffix(' - ', data_info)}")


__all__ = [
    "log_connection_event",
    "log_negotiation_event",
    "log_debug_operation",
    "log_data_processing",
]
