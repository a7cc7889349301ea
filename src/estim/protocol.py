"""
ET232 serial protocol: frame encoding, checksum, response parsing, and
the power-on handshake.

This module sits between the transport (raw serial I/O) and the
controller (user-facing API).  It knows how to:

* build request frames (opcode, hex-encoded arguments, checksum, ``CR``),
* parse the hex byte returned by a read,
* run a complete request/response exchange under the link lock,
* wait for the device's power-on preamble.

Request frame layout::

    <opcode> <arg as 2 hex chars>... <checksum as 2 hex chars> \\r

Every response is a single line terminated by ``LF``.

It does **not** own the serial port — that belongs to
:class:`~estim.transport.SerialTransport`.
"""

from __future__ import annotations

import logging
import threading

from .constants import (
    CHECKSUM_MAX,
    CHECKSUM_MIN,
    FRAME_TERMINATOR,
    HANDSHAKE_ATTEMPTS,
    HANDSHAKE_PREAMBLE,
    LINE_TERMINATOR,
    MAX_BYTE,
    READ_OPCODE,
    WRITE_OPCODE,
)
from .exceptions import (
    EstimError,
    HandshakeTimeoutError,
    InvalidSettingError,
    ProtocolParseError,
    TimeoutError,
    TransportError,
)
from .knob import RegisterKnob
from .registers import (
    Register,
    RegisterMap,
    Setting,
    default_register_map,
    setting_name,
    validate_address,
    validate_byte,
)
from .transport import LinkTransport

logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")

# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


def checksum(data: bytes) -> int:
    """Return the 8-bit sum of the bytes of *data* within ``0x30..0x90``.

    Bytes outside that range do not contribute.

    Example:
        >>> checksum(bytes([ord("H"), 0x11]))
        72
    """
    return sum(b for b in data if CHECKSUM_MIN <= b <= CHECKSUM_MAX) & MAX_BYTE


def encode_command(opcode: int, *args: int) -> bytes:
    """Build a complete request frame.

    The checksum covers the raw opcode and argument bytes, not their hex
    text.

    Example:
        >>> encode_command(ord("H"), 0x11)
        b'H1148\\r'
    """
    for arg in args:
        validate_byte(arg, "argument")
    raw = bytes([opcode, *args])
    body = bytes([opcode]) + "".join(f"{arg:02X}" for arg in args).encode("ascii")
    return body + f"{checksum(raw):02X}".encode("ascii") + FRAME_TERMINATOR


def parse_read_response(line: bytes | str) -> int:
    """Parse the hex byte returned by a read command.

    The trailing ``LF`` (if present) is removed before parsing.

    Raises:
        ProtocolParseError: If the response is not a one- or two-digit hex byte.
    """
    if isinstance(line, bytes):
        text = line.decode("ascii", errors="replace")
    else:
        text = line
    if text.endswith("\n"):
        text = text[:-1]
    if not (1 <= len(text) <= 2) or not set(text) <= _HEX_DIGITS:
        raise ProtocolParseError(f"Expected a hex byte in response, got {text!r}")
    return int(text, 16)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ET232Protocol:
    """Builds frames, exchanges them over a transport, and parses replies.

    All exchanges are serialized by an internal lock, so any number of
    threads (and knobs) may share one instance.

    Args:
        transport: An open :class:`~estim.transport.LinkTransport`.
        register_map: Table used by :meth:`write_setting`.  Defaults to the
            packaged map.
    """

    def __init__(self, transport: LinkTransport, register_map: RegisterMap | None = None) -> None:
        self._tx = transport
        self._lock = threading.Lock()
        self.register_map = register_map if register_map is not None else default_register_map()

    # -- Transport helpers --------------------------------------------------

    def _command(self, opcode: int, *args: int) -> bytes:
        """Send one frame and return the reply line without its ``LF``."""
        frame = encode_command(opcode, *args)
        with self._lock:
            # A late reply to a timed-out command must not answer this one.
            self._tx.reset_input()
            self._tx.write(frame)
            line = self._tx.read_line(LINE_TERMINATOR)
        return line[: -len(LINE_TERMINATOR)]

    # -- Register access ----------------------------------------------------

    def read(self, register: int) -> int:
        """Return the byte stored at *register*."""
        address = validate_address(register)
        response = self._command(READ_OPCODE, address)
        return parse_read_response(response)

    def write(self, register: int, value: int) -> None:
        """Store *value* at *register*.

        Any reply line counts as success; only transport failures raise.
        """
        address = validate_address(register)
        value = validate_byte(value, "value")
        logger.debug("Writing 0x%02X to %s", value, self.register_map.name_of(address))
        self._command(WRITE_OPCODE, address, value)

    def write_setting(self, register: int, setting: Setting | str) -> None:
        """Store the raw byte that *setting* names for *register*.

        Raises:
            InvalidSettingError: If the pair is not in the register map.
                Nothing is written in that case.
        """
        address = validate_address(register)
        value = self.register_map.resolve_setting(address, setting)
        if value is None:
            raise InvalidSettingError(
                f"Setting {setting_name(setting)!r} is not valid for register "
                f"{self.register_map.name_of(address)}"
            )
        self.write(address, value)

    def new_knob(self, register: int) -> RegisterKnob:
        """Return a ``[0, 1]`` knob over *register*."""
        return RegisterKnob(self, validate_address(register))

    # -- Handshake ----------------------------------------------------------

    def handshake(self, attempts: int = HANDSHAKE_ATTEMPTS) -> None:
        """Wait for the device's power-on preamble.

        This must be done every time the device is power-cycled, and the
        device must be switched on (or reset) while this runs.  Each
        attempt is one line read, bounded by the transport's read timeout.

        Raises:
            HandshakeTimeoutError: If the preamble is not seen in *attempts* reads.
        """
        logger.info("Attempting serial handshake (power-cycle the device now)")
        with self._lock:
            for attempt in range(1, attempts + 1):
                try:
                    line = self._tx.read_line(LINE_TERMINATOR)
                except TimeoutError as exc:
                    # The preamble is not LF-terminated, so it usually
                    # arrives as the tail of a timed-out read.
                    line = exc.partial
                except TransportError as exc:
                    logger.debug("Handshake attempt %d: %s", attempt, exc)
                    continue

                if line.endswith(LINE_TERMINATOR):
                    line = line[: -len(LINE_TERMINATOR)]
                if line == HANDSHAKE_PREAMBLE:
                    logger.info("Handshake complete after %d attempt(s)", attempt)
                    return

        raise HandshakeTimeoutError(f"Failed to connect to the ET232 after {attempts} attempts")

    def handshake_if_needed(self) -> None:
        """Handshake only if the device is not already accepting commands."""
        try:
            self.read(Register.POT_A)
        except EstimError as exc:
            logger.info("Device not responding (%s); falling back to handshake", exc)
            self.handshake()
            return
        logger.info("Device already connected; skipping handshake")
