"""Exceptions for tcpbanner with contextual information."""

from typing import Any, Dict, Optional


class TCPBannerError(Exception):
    """Base error for tcpbanner with contextual information."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        """
        Initialize a tcpbanner error.

        Args:
            message: Error message
            context: Optional context information (host, port, field, state, etc.)
            original_exception: Original exception that caused this error
        """
        super().__init__(message)
        self.context = context or {}
        self.original_exception = original_exception

    def __str__(self) -> str:
        """Get string representation with context."""
        base_msg = super().__str__()
        if self.context:
            context_items = []
            for key, value in self.context.items():
                if isinstance(value, str) and len(value) > 50:
                    value = value[:47] + "..."
                context_items.append(f"{key}={value}")
            context_str = ", ".join(context_items)
            return f"{base_msg} (Context: {context_str})"
        return base_msg

    def __repr__(self) -> str:
        base_repr = super().__repr__()
        if self.context:
            return f"{base_repr} (context={self.context!r})"
        return base_repr

    def add_context(self, key: str, value: Any) -> None:
        """Add context information to the exception."""
        self.context[key] = value

    def get_context(self, key: str, default: Any = None) -> Any:
        """Get context information from the exception, or ``default``."""
        return self.context.get(key, default)


class ConfigurationError(TCPBannerError, ValueError):
    """Invalid scan request field, raised before any connection attempt."""

    pass


class NotConnectedError(TCPBannerError):
    """Error raised when data is handled without a live connection."""

    pass


class ScanStateError(TCPBannerError):
    """Raised when the scan engine is driven out of its lifecycle order."""

    pass
