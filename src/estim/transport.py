"""
Serial transport layer for the ET232.

Handles the physical serial connection and the two primitives the
protocol needs: write a frame, and read one line up to a terminator.
Knows nothing about what frames mean — that's :mod:`protocol`'s job.

Typical usage (via :class:`~estim.controller.ET232`)::

    transport = SerialTransport("/dev/ttyUSB0")
    transport.open()
    transport.write(b"H8CD4\\r")
    line = transport.read_line()
    transport.close()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import serial

from .constants import DEFAULT_BAUD, DEFAULT_PORT, DEFAULT_TIMEOUT, LINE_TERMINATOR
from .exceptions import ConnectionError, TimeoutError, TransportError

logger = logging.getLogger(__name__)


class LinkTransport(ABC):
    """A byte-oriented duplex channel with a bounded per-read timeout."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write *data* to the link.

        Raises:
            TransportError: If the write fails.
        """

    @abstractmethod
    def read_line(self, terminator: bytes = LINE_TERMINATOR) -> bytes:
        """Read up to and including *terminator*.

        Raises:
            TimeoutError: If the read timeout expires first.  The bytes
                received so far are available on ``exc.partial``.
            TransportError: On any other I/O failure.
        """

    @abstractmethod
    def reset_input(self) -> None:
        """Discard any bytes received but not yet read.

        Raises:
            TransportError: If the input buffer cannot be cleared.
        """


class SerialTransport(LinkTransport):
    """Manages a serial connection to an ET232.

    Args:
        port: Serial port path (e.g. ``/dev/ttyUSB0`` or ``COM1``).
        baudrate: Baud rate (default 19200).
        timeout: Per-read timeout in seconds.  Also the upper bound on how
            long :meth:`read_line` waits for a terminator.
    """

    def __init__(
        self,
        port: str = DEFAULT_PORT,
        baudrate: int = DEFAULT_BAUD,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self._ser: serial.Serial | None = None

    # -- Lifecycle ----------------------------------------------------------

    def open(self) -> None:
        """Open the serial port.

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        logger.info("Opening serial port %s at %d baud", self.port, self.baudrate)
        try:
            self._ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.timeout,
            )
        except serial.SerialException as exc:
            raise ConnectionError(f"Cannot open {self.port}: {exc}") from exc

    def close(self) -> None:
        """Close the serial port (safe to call multiple times)."""
        if self._ser and self._ser.is_open:
            self._ser.close()
            logger.info("Serial port %s closed", self.port)

    @property
    def is_open(self) -> bool:
        """Return ``True`` if the serial port is currently open."""
        return self._ser is not None and self._ser.is_open

    # -- I/O ----------------------------------------------------------------

    def write(self, data: bytes) -> None:
        ser = self._require_open()
        logger.debug("TX: %r", data)
        try:
            ser.write(data)
            ser.flush()
        except serial.SerialException as exc:
            raise TransportError(f"Write to {self.port} failed: {exc}") from exc

    def reset_input(self) -> None:
        ser = self._require_open()
        try:
            ser.reset_input_buffer()
        except serial.SerialException as exc:
            raise TransportError(f"Reset of {self.port} input buffer failed: {exc}") from exc

    def read_line(self, terminator: bytes = LINE_TERMINATOR) -> bytes:
        ser = self._require_open()
        try:
            # read_until blocks until it sees the terminator or the serial
            # timeout expires, returning whatever arrived either way.
            data = ser.read_until(terminator)
        except serial.SerialException as exc:
            raise TransportError(f"Read from {self.port} failed: {exc}") from exc
        logger.debug("RX: %r", data)

        if not data.endswith(terminator):
            raise TimeoutError(f"Timed out waiting for {terminator!r} on {self.port}", data)
        return data

    # -- Internal -----------------------------------------------------------

    def _require_open(self) -> serial.Serial:
        """Return the open serial port or raise."""
        if not self.is_open:
            raise ConnectionError("Serial port not open — call open() first.")
        assert self._ser is not None  # for type-checker
        return self._ser
