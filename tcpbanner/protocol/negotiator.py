"""
Telnet option negotiation for banner capture.

The scanner is not a terminal: every option the peer offers or requests is
refused, and every recognized IAC sequence is removed from the chunk so only
banner bytes reach the scan engine.
"""

import logging
from typing import Any, List, Optional, Tuple

from ..utils.logging_utils import log_negotiation_event
from .utils import (
    DO,
    DONT,
    IAC,
    NEGOTIATION_COMMANDS,
    SB,
    SE,
    SIMPLE_COMMANDS,
    WILL,
    WONT,
    command_name,
    option_name,
    send_iac,
)

logger = logging.getLogger(__name__)

# Refusal sent back for each request verb
REFUSALS = {
    DO: WONT,
    WILL: DONT,
}


class TelnetNegotiator:
    """
    Refuse-all Telnet responder and IAC stripper.

    Works strictly on the chunk in hand. A sequence that does not terminate
    inside the chunk (for example ``IAC DO`` with the option byte arriving in
    the next read) is left in the output as ordinary bytes; there is no
    cross-chunk reassembly.
    """

    def __init__(self) -> None:
        self.history: List[Tuple[str, int, int]] = []

    def negotiate(self, chunk: bytes, writer: Optional[Any]) -> bytes:
        """
        Answer and strip Telnet control sequences from ``chunk``.

        Args:
            chunk: Raw bytes as read from the connection.
            writer: Live connection writer used for refusals. ``None`` skips
                the replies but still strips.

        Returns:
            The chunk with recognized control sequences removed.
        """
        if IAC not in chunk:
            return chunk

        out = bytearray()
        i = 0
        n = len(chunk)
        while i < n:
            byte = chunk[i]
            if byte != IAC:
                out.append(byte)
                i += 1
                continue

            if i + 1 >= n:
                log_negotiation_event(logger, "Truncated IAC at chunk end")
                out += chunk[i:]
                break

            cmd = chunk[i + 1]
            if cmd == IAC:
                # Escaped 0xFF data byte
                out.append(IAC)
                i += 2
            elif cmd in NEGOTIATION_COMMANDS:
                if i + 2 >= n:
                    log_negotiation_event(
                        logger, f"Truncated IAC {command_name(cmd)} at chunk end"
                    )
                    out += chunk[i:]
                    break
                self._handle_option(cmd, chunk[i + 2], writer)
                i += 3
            elif cmd == SB:
                end = self._find_subnegotiation_end(chunk, i + 2)
                if end < 0:
                    log_negotiation_event(logger, "Unterminated subnegotiation")
                    out += chunk[i:]
                    break
                log_negotiation_event(
                    logger, "Skipped subnegotiation", f"{end - i} bytes"
                )
                i = end
            elif cmd in SIMPLE_COMMANDS:
                log_negotiation_event(logger, f"Stripped IAC {command_name(cmd)}")
                i += 2
            else:
                # Not a Telnet command; leave both bytes as data
                out += chunk[i : i + 2]
                i += 2

        return bytes(out)

    @staticmethod
    def _find_subnegotiation_end(chunk: bytes, start: int) -> int:
        """Return the index just past ``IAC SE``, or -1 if absent from chunk."""
        j = start
        n = len(chunk)
        while j + 1 < n:
            if chunk[j] == IAC:
                if chunk[j + 1] == SE:
                    return j + 2
                # IAC IAC inside the payload is an escaped data byte
                j += 2
                continue
            j += 1
        return -1

    def _handle_option(self, command: int, option: int, writer: Optional[Any]) -> None:
        """Refuse a WILL/DO request; WONT/DONT need no answer."""
        logger.debug(
            f"[TELNET] Received IAC {command_name(command)} {option_name(option)} "
            f"(0x{option:02x})"
        )
        self.history.append(("in", command, option))

        reply = REFUSALS.get(command)
        if reply is None:
            # Option is already off on our side
            return

        logger.debug(
            f"[TELNET] Refusing {option_name(option)} with {command_name(reply)}"
        )
        send_iac(writer, bytes([reply, option]))
        if writer is not None:
            self.history.append(("out", reply, option))
