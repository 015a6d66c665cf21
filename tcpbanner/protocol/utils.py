"""Telnet constants and low-level write helpers.

Writer parameters are typed loosely: anything with a ``write(bytes)``
method works (``asyncio.StreamWriter``, a transport, or a test double).
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Telnet commands (RFC 854)
IAC = 0xFF
DONT = 0xFE
DO = 0xFD
WONT = 0xFC
WILL = 0xFB
SB = 0xFA
GA = 0xF9  # Go Ahead
EL = 0xF8  # Erase Line
EC = 0xF7  # Erase Character
AYT = 0xF6  # Are You There
AO = 0xF5  # Abort Output
IP = 0xF4  # Interrupt Process
BRK = 0xF3  # Break
DM = 0xF2  # Data Mark
NOP = 0xF1  # No Operation
SE = 0xF0

# Option negotiation verbs, each followed by exactly one option byte
NEGOTIATION_COMMANDS = (WILL, WONT, DO, DONT)
# Two-byte commands with no option byte
SIMPLE_COMMANDS = (GA, EL, EC, AYT, AO, IP, BRK, DM, NOP, SE)

# Telnet Options
TELOPT_BINARY = 0x00
TELOPT_ECHO = 0x01
TELOPT_SGA = 0x03
TELOPT_STATUS = 0x05
TELOPT_TM = 0x06
TELOPT_TTYPE = 0x18  # Terminal Type
TELOPT_EOR = 0x19  # End of Record
TELOPT_NAWS = 0x1F
TELOPT_TSPEED = 0x20
TELOPT_LFLOW = 0x21
TELOPT_LINEMODE = 0x22
TELOPT_XDISPLOC = 0x23
TELOPT_OLD_ENVIRON = 0x24
TELOPT_AUTHENTICATION = 0x25
TELOPT_ENCRYPT = 0x26
TELOPT_NEW_ENVIRON = 0x27
TELOPT_TN3270E = 0x28
TELOPT_CHARSET = 0x2A
TELOPT_COM_PORT_OPTION = 0x2C
TELOPT_START_TLS = 0x2E
TELOPT_EXOPL = 0xFF  # Extended-Options-List

COMMAND_NAMES = {
    DO: "DO",
    DONT: "DONT",
    WILL: "WILL",
    WONT: "WONT",
    SB: "SB",
    SE: "SE",
    GA: "GA",
    EL: "EL",
    EC: "EC",
    AYT: "AYT",
    AO: "AO",
    IP: "IP",
    BRK: "BRK",
    DM: "DM",
    NOP: "NOP",
}

OPTION_NAMES = {
    TELOPT_BINARY: "BINARY",
    TELOPT_ECHO: "ECHO",
    TELOPT_SGA: "SGA",
    TELOPT_STATUS: "STATUS",
    TELOPT_TM: "TIMING-MARK",
    TELOPT_TTYPE: "TTYPE",
    TELOPT_EOR: "EOR",
    TELOPT_NAWS: "NAWS",
    TELOPT_TSPEED: "TSPEED",
    TELOPT_LFLOW: "LFLOW",
    TELOPT_LINEMODE: "LINEMODE",
    TELOPT_XDISPLOC: "XDISPLOC",
    TELOPT_OLD_ENVIRON: "OLD-ENVIRON",
    TELOPT_AUTHENTICATION: "AUTHENTICATION",
    TELOPT_ENCRYPT: "ENCRYPT",
    TELOPT_NEW_ENVIRON: "NEW-ENVIRON",
    TELOPT_TN3270E: "TN3270E",
    TELOPT_CHARSET: "CHARSET",
    TELOPT_COM_PORT_OPTION: "COM-PORT-OPTION",
    TELOPT_START_TLS: "START-TLS",
    TELOPT_EXOPL: "EXOPL",
}


def command_name(command: int) -> str:
    """Get the human-readable name for a Telnet command byte."""
    return COMMAND_NAMES.get(command, f"0x{command:02x}")


def option_name(option: int) -> str:
    """Get the human-readable name for a Telnet option."""
    return OPTION_NAMES.get(option, f"0x{option:02x}")


def send_iac(writer: Optional[Any], command: bytes) -> None:
    """Send an IAC command to the writer.

    Ensures the IAC (0xFF) prefix is present exactly once. If the provided
    command already begins with IAC, it will not be duplicated. Never awaits
    ``drain()``.
    """
    if writer is None:
        logger.debug("[TELNET] Writer is None, skipping IAC send")
        return
    payload = (
        command if (len(command) > 0 and command[0] == IAC) else bytes([IAC]) + command
    )
    try:
        writer.write(payload)
    except (OSError, RuntimeError) as e:
        # Transport already torn down
        logger.error(f"[TELNET] Failed to send IAC command: {e}")
        return
    logger.debug(f"[TELNET] Sent IAC command: {payload.hex()}")
