"""
Utilities package for tcpbanner.

Contains common logging helpers used across the tcpbanner codebase.
"""

from .logging_utils import (
    log_connection_event,
    log_data_processing,
    log_debug_operation,
    log_negotiation_event,
)

__all__ = [
    "log_connection_event",
    "log_negotiation_event",
    "log_debug_operation",
    "log_data_processing",
]
