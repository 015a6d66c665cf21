"""Telnet protocol handling for banner capture."""

from .negotiator import TelnetNegotiator

__all__ = ["TelnetNegotiator"]
