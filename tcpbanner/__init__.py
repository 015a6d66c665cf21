"""
tcpbanner package init.
Exports the scan engine, its data types and the logging setup helpers.
"""

import argparse
import asyncio
import datetime
import json
import logging
import os
import sys
from typing import List, Optional

from .exceptions import (
    ConfigurationError,
    NotConnectedError,
    ScanStateError,
    TCPBannerError,
)
from .protocol.negotiator import TelnetNegotiator
from .scan import (
    DEFAULT_BANNER_LENGTH,
    DEFAULT_TIMEOUT,
    ScanRequest,
    ScanResult,
    ScanState,
    ScanStatus,
    TCPScan,
    format_banner,
)


class JSONFormatter(logging.Formatter):
    """JSON formatter with structured scan fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.datetime.now().isoformat(),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        # Scan target and outcome, when the call site supplies them
        for key in ("host", "port", "status"):
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "WARNING") -> None:
    """
    Setup basic logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    use_json = os.environ.get("TCPBANNER_LOG_JSON", "false").lower() == "true"
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    if use_json:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    else:
        logging.basicConfig(level=getattr(logging, level.upper()))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="tcpbanner - TCP reachability and banner probe"
    )
    parser.add_argument("host", help="Host to probe")
    parser.add_argument("port", type=int, help="TCP port to probe")
    parser.add_argument(
        "--banner-length",
        type=int,
        default=DEFAULT_BANNER_LENGTH,
        help=f"Maximum banner length (default {DEFAULT_BANNER_LENGTH})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"Scan deadline in seconds (default {DEFAULT_TIMEOUT})",
    )
    parser.add_argument("--json", action="store_true", help="Print result as JSON")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point: scan one host/port and print the result."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        scanner = TCPScan(
            args.host,
            args.port,
            banner_length=args.banner_length,
            timeout=args.timeout,
        )
    except ConfigurationError as e:
        print(f"Invalid scan request: {e}", file=sys.stderr)
        return 2

    result = asyncio.run(scanner.analyze())

    if args.json:
        print(json.dumps(result.to_dict()))
    else:
        state = "open" if result.open else "closed"
        print(
            f"{args.host}:{args.port} {state} {result.status_text}"
            + (f" | {result.banner}" if result.banner else "")
        )
    return 0


__all__ = [
    "TCPScan",
    "ScanRequest",
    "ScanResult",
    "ScanState",
    "ScanStatus",
    "TelnetNegotiator",
    "format_banner",
    "TCPBannerError",
    "ConfigurationError",
    "NotConnectedError",
    "ScanStateError",
    "JSONFormatter",
    "setup_logging",
    "main",
]


if __name__ == "__main__":
    sys.exit(main())
