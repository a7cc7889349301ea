"""Shared runtime constants for the ET232 driver.

This is the canonical source of truth for protocol constants and
connection defaults.  Other modules should import from here rather than
defining their own copies.
"""

# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

WRITE_OPCODE = ord("I")
READ_OPCODE = ord("H")

CHECKSUM_MIN = 0x30
CHECKSUM_MAX = 0x90

FRAME_TERMINATOR = b"\r"  # CR: ends every request
LINE_TERMINATOR = b"\n"  # LF: ends every response

HANDSHAKE_PREAMBLE = b"\x00CC"  # emitted once by the device at power-on
HANDSHAKE_ATTEMPTS = 100

MAX_BYTE = 0xFF
KNOB_RESOLUTION = 1.0 / MAX_BYTE

# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

IDLE_POLL_INTERVAL = 0.01  # seconds between queue checks while idle

# ---------------------------------------------------------------------------
# Connection defaults
# ---------------------------------------------------------------------------

DEFAULT_PORT = "/dev/ttyUSB0"
DEFAULT_BAUD = 19200
DEFAULT_TIMEOUT = 1.0
DEFAULT_LOG_LEVEL = "WARNING"
