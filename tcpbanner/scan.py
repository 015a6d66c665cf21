"""
TCP scan engine.

A ``TCPScan`` drives one connection attempt to a single ``(host, port)``
through an explicit state machine and produces exactly one ``ScanResult``:

    IDLE -> CONNECTING -> {CONNECTED, FAILED} -> CLOSED

Connect, data, close, timeout and error events are all routed through
``TCPScan._dispatch``. Network outcomes never raise out of ``analyze()``;
they are reported through ``ScanResult.status``.
"""

import asyncio
import errno
import logging
import math
import re
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .exceptions import ConfigurationError, NotConnectedError, ScanStateError
from .protocol.negotiator import TelnetNegotiator
from .utils.logging_utils import (
    log_connection_event,
    log_data_processing,
    log_debug_operation,
)

logger = logging.getLogger(__name__)

DEFAULT_BANNER_LENGTH = 512
DEFAULT_TIMEOUT = 2.0  # seconds
READ_SIZE = 4096

REFUSED_ERRNOS = {errno.ECONNREFUSED}
UNREACHABLE_ERRNOS = {errno.EHOSTUNREACH, errno.ENETUNREACH}

# asyncio folds per-address failures into one OSError with errno=None
_ERRNO_PATTERN = re.compile(r"\[Errno (\d+)\]")

_BANNER_ESCAPES = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t"})


class ScanStatus(str, Enum):
    """Outcome classification reported to the caller."""

    UNSET = "UNSET"
    OPEN = "OPEN"
    RESPONSE = "RESPONSE"
    SILENCE = "SILENCE"
    TIMEOUT = "TIMEOUT"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    HOST_UNREACHABLE = "HOST_UNREACHABLE"
    FAILURE = "FAILURE"


class ScanState(Enum):
    """Lifecycle states of a single scan."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    FAILED = "FAILED"
    CLOSED = "CLOSED"


class ScanEvent(Enum):
    """Socket events that drive state transitions."""

    CONNECT = "CONNECT"
    DATA = "DATA"
    CLOSE = "CLOSE"
    TIMEOUT = "TIMEOUT"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ScanRequest:
    """Validated scan parameters. ``timeout`` is in seconds."""

    host: str
    port: int
    banner_length: int = DEFAULT_BANNER_LENGTH
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigurationError(
                "No host provided.", context={"field": "host", "value": self.host}
            )
        if self.port is None:
            raise ConfigurationError("No port provided.", context={"field": "port"})
        if (
            isinstance(self.port, bool)
            or not isinstance(self.port, int)
            or not 1 <= self.port <= 65535
        ):
            raise ConfigurationError(
                "Port must be an integer between 1 and 65535.",
                context={"field": "port", "value": self.port},
            )
        if (
            isinstance(self.banner_length, bool)
            or not isinstance(self.banner_length, int)
            or self.banner_length <= 0
        ):
            raise ConfigurationError(
                "Banner length must be a positive integer.",
                context={"field": "banner_length", "value": self.banner_length},
            )
        if (
            isinstance(self.timeout, bool)
            or not isinstance(self.timeout, (int, float))
            or not math.isfinite(self.timeout)
            or self.timeout <= 0
        ):
            raise ConfigurationError(
                "Timeout must be a positive, finite number of seconds.",
                context={"field": "timeout", "value": self.timeout},
            )


@dataclass(frozen=True)
class ScanResult:
    """Finalized outcome of a scan. Built once and never mutated."""

    open: bool
    status: ScanStatus
    raw: bytes = b""
    banner: str = ""
    detail: Optional[str] = None

    @property
    def status_text(self) -> str:
        if self.status is ScanStatus.FAILURE and self.detail:
            return f"FAILURE: {self.detail}"
        return self.status.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "open": self.open,
            "status": self.status.value,
            "detail": self.detail,
            "raw": self.raw.hex(),
            "banner": self.banner,
        }


def format_banner(data: bytes, limit: int) -> str:
    """
    Turn captured banner bytes into a single printable line.

    Decodes as UTF-8 (invalid sequences become U+FFFD), escapes newline,
    carriage return and tab as two-character sequences, trims plain spaces
    at both ends and truncates to ``limit`` characters.
    """
    text = data.decode("utf-8", errors="replace")
    text = text.translate(_BANNER_ESCAPES)
    text = text.strip(" ")
    return text[:limit]


def _error_codes(exc: BaseException) -> Set[int]:
    code = getattr(exc, "errno", None)
    if code is not None:
        return {code}
    return {int(m) for m in _ERRNO_PATTERN.findall(str(exc))}


def classify_error(exc: BaseException) -> ScanStatus:
    """Map a connection error to the status it is reported as."""
    codes = _error_codes(exc)
    if isinstance(exc, ConnectionRefusedError) or codes & REFUSED_ERRNOS:
        return ScanStatus.CONNECTION_REFUSED
    if codes & UNREACHABLE_ERRNOS:
        return ScanStatus.HOST_UNREACHABLE
    return ScanStatus.FAILURE


class TCPScan:
    """
    Probe one TCP endpoint and capture its opening banner.

    One scan per instance: ``analyze()`` may only be called once. The
    timeout is a single absolute deadline armed when the connection attempt
    starts; it covers both connecting and waiting for data.
    """

    def __init__(
        self,
        host: str,
        port: int,
        banner_length: int = DEFAULT_BANNER_LENGTH,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.request = ScanRequest(
            host=host, port=port, banner_length=banner_length, timeout=timeout
        )
        self.negotiator = TelnetNegotiator()
        self.result: Optional[ScanResult] = None

        self._state = ScanState.IDLE
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

        # Accumulator, mutated only from the event handlers below
        self._open = False
        self._status = ScanStatus.UNSET
        self._detail: Optional[str] = None
        self._raw: List[bytes] = []
        self._banner_raw = bytearray()

    @classmethod
    def from_request(cls, request: ScanRequest) -> "TCPScan":
        return cls(
            request.host,
            request.port,
            banner_length=request.banner_length,
            timeout=request.timeout,
        )

    @property
    def state(self) -> ScanState:
        return self._state

    def __repr__(self) -> str:
        return (
            f"TCPScan(host={self.request.host!r}, port={self.request.port}, "
            f"state={self._state.value})"
        )

    async def analyze(self) -> ScanResult:
        """
        Run the scan to completion.

        Returns:
            The finalized ScanResult.

        Raises:
            ScanStateError: If this instance has already been used.
        """
        if self._state is not ScanState.IDLE:
            raise ScanStateError(
                "analyze() called on a scan that already started",
                context={"state": self._state.value},
            )

        host, port = self.request.host, self.request.port
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.request.timeout
        self._state = ScanState.CONNECTING
        log_connection_event(logger, "Connecting", host, port)

        try:
            try:
                self._reader, self._writer = await asyncio.wait_for(
                    asyncio.open_connection(host, port),
                    timeout=deadline - loop.time(),
                )
            except (asyncio.TimeoutError, TimeoutError):
                await self._dispatch(ScanEvent.TIMEOUT)
            except (OSError, UnicodeError) as e:
                await self._dispatch(ScanEvent.ERROR, e)
            else:
                await self._dispatch(ScanEvent.CONNECT)

            while self._state is ScanState.CONNECTED:
                await self._read_next(loop, deadline)
        finally:
            # A live writer here means the scan was cancelled or raised
            if self._writer is not None:
                self._writer.transport.abort()
                self._writer = None
                self._reader = None

        return await self._finalize()

    async def _read_next(
        self, loop: asyncio.AbstractEventLoop, deadline: float
    ) -> None:
        assert self._reader is not None
        remaining = deadline - loop.time()
        if remaining <= 0:
            await self._dispatch(ScanEvent.TIMEOUT)
            return
        try:
            chunk = await asyncio.wait_for(self._reader.read(READ_SIZE), remaining)
        except (asyncio.TimeoutError, TimeoutError):
            await self._dispatch(ScanEvent.TIMEOUT)
        except OSError as e:
            await self._dispatch(ScanEvent.ERROR, e)
        else:
            if chunk:
                await self._dispatch(ScanEvent.DATA, chunk)
            else:
                await self._dispatch(ScanEvent.CLOSE)

    async def _dispatch(self, event: ScanEvent, payload: Any = None) -> None:
        """Single transition function for all socket events."""
        if self._state is ScanState.CLOSED:
            log_debug_operation(logger, f"[SCAN] Ignoring {event.value} after close")
            return

        if event is ScanEvent.CONNECT:
            self._on_connect()
        elif event is ScanEvent.DATA:
            await self._on_data(payload)
        elif event is ScanEvent.CLOSE:
            await self._on_close()
        elif event is ScanEvent.TIMEOUT:
            await self._on_timeout()
        elif event is ScanEvent.ERROR:
            await self._on_error(payload)

    def _on_connect(self) -> None:
        self._open = True
        self._state = ScanState.CONNECTED
        log_connection_event(
            logger, "Connected", self.request.host, self.request.port
        )

    async def _on_data(self, chunk: bytes) -> None:
        if self._writer is None:
            raise NotConnectedError(
                "Received data without a live connection",
                context={"state": self._state.value, "bytes": len(chunk)},
            )
        self._raw.append(chunk)
        log_data_processing(logger, "Received chunk", f"{len(chunk)} bytes")

        cleaned = self.negotiator.negotiate(chunk, self._writer)
        # Cap is checked before appending, so the buffer may overshoot by one chunk
        if len(self._banner_raw) < self.request.banner_length:
            self._banner_raw += cleaned
            return

        logger.info(
            f"[SCAN] Banner cap of {self.request.banner_length} bytes reached, "
            "closing connection"
        )
        await self._finalize()

    async def _on_close(self) -> None:
        if not self._banner_raw:
            # Connected but never sent a banner byte
            self._open = False
        log_connection_event(
            logger, "Closed by peer", self.request.host, self.request.port
        )
        await self._finalize()

    async def _on_timeout(self) -> None:
        self._status = ScanStatus.RESPONSE if self._open else ScanStatus.TIMEOUT
        logger.info(
            f"[SCAN] Timed out after {self.request.timeout}s "
            f"({'connected' if self._open else 'not connected'})"
        )
        await self._finalize()

    async def _on_error(self, exc: BaseException) -> None:
        self._status = classify_error(exc)
        self._detail = str(exc) or exc.__class__.__name__
        self._state = ScanState.FAILED
        logger.info(
            f"[SCAN] {self.request.host}:{self.request.port} "
            f"{self._status.value}: {self._detail}"
        )
        await self._finalize()

    async def _finalize(self) -> ScanResult:
        """Build the result once; later calls return the same object."""
        if self.result is not None:
            return self.result

        if self._status is ScanStatus.UNSET:
            self._status = ScanStatus.RESPONSE if self._open else ScanStatus.SILENCE

        banner = format_banner(bytes(self._banner_raw), self.request.banner_length)
        log_debug_operation(logger, "[SCAN] Formatted banner", repr(banner))

        await self._release()
        self._state = ScanState.CLOSED

        self.result = ScanResult(
            open=self._open,
            status=self._status,
            raw=b"".join(self._raw),
            banner=banner,
            detail=self._detail,
        )
        logger.info(
            f"[SCAN] {self.request.host}:{self.request.port} finished: "
            f"status={self.result.status_text} open={self.result.open} "
            f"raw={len(self.result.raw)} bytes",
            extra={
                "host": self.request.host,
                "port": self.request.port,
                "status": self.result.status.value,
            },
        )
        return self.result

    async def _release(self) -> None:
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is None:
            return
        writer.transport.abort()
        with suppress(OSError):
            await writer.wait_closed()
