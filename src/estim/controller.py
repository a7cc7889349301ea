"""
ET232 Controller Interface

Python API for the ErosTek ET232 over its RS232 link.

Protocol details:
    - Baud: 19200, 8N1, 1 s read timeout
    - Request: opcode, hex-encoded argument bytes, checksum, CR
    - Response: one line terminated by LF
    - After power-on the device sends ``NUL C C`` and then accepts commands
"""

from __future__ import annotations

import logging

from .config import DeviceConfig
from .constants import DEFAULT_BAUD, DEFAULT_PORT, DEFAULT_TIMEOUT
from .exceptions import ConnectionError
from .knob import RegisterKnob
from .protocol import ET232Protocol
from .registers import RegisterMap, Setting, default_register_map, load_register_map
from .scheduler import KnobQueue
from .transport import SerialTransport

logger = logging.getLogger(__name__)


class ET232:
    """Interface for an ET232 via RS232.

    Composes a :class:`~estim.transport.SerialTransport` (raw serial I/O)
    with an :class:`~estim.protocol.ET232Protocol` (framing and handshake).

    Use as a context manager for automatic connection handling::

        with ET232("/dev/ttyUSB0") as et232:
            et232.handshake_if_needed()
            et232.write_setting(Register.ANALOG_OVERRIDE, Setting.OVERRIDE_ALL)
            et232.write(Register.POT_A, 80)
    """

    def __init__(
        self,
        port: str = DEFAULT_PORT,
        baudrate: int = DEFAULT_BAUD,
        timeout: float = DEFAULT_TIMEOUT,
        register_map: RegisterMap | None = None,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.register_map = register_map if register_map is not None else default_register_map()
        self._tx: SerialTransport | None = None
        self._p: ET232Protocol | None = None

    @classmethod
    def from_config(cls, config: DeviceConfig) -> ET232:
        """Build an unconnected device from a loaded :class:`DeviceConfig`."""
        register_map = load_register_map(config.register_map) if config.register_map else None
        return cls(
            port=config.port,
            baudrate=config.baudrate,
            timeout=config.timeout,
            register_map=register_map,
        )

    # -- Context manager ----------------------------------------------------

    def __enter__(self) -> ET232:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    # -- Connection ---------------------------------------------------------

    def connect(self) -> None:
        """Open the serial connection.

        This does not handshake; call :meth:`handshake` or
        :meth:`handshake_if_needed` before sending commands to a device
        that was just powered on.
        """
        if self.is_connected:
            logger.debug("Already connected to %s", self.port)
            return
        self._tx = SerialTransport(self.port, self.baudrate, self.timeout)
        self._tx.open()
        self._p = ET232Protocol(self._tx, self.register_map)

    def disconnect(self) -> None:
        """Close the serial connection (safe to call multiple times)."""
        if self._tx is not None:
            self._tx.close()

    @property
    def is_connected(self) -> bool:
        """Return ``True`` if the serial port is open."""
        return self._tx is not None and self._tx.is_open

    @property
    def protocol(self) -> ET232Protocol:
        """The protocol layer, for callers that need it directly."""
        if self._p is None:
            raise ConnectionError("Not connected — call connect() first.")
        return self._p

    # -- Register access ----------------------------------------------------

    def read(self, register: int) -> int:
        """Return the byte stored at *register*."""
        return self.protocol.read(register)

    def write(self, register: int, value: int) -> None:
        """Store *value* at *register*."""
        self.protocol.write(register, value)

    def write_setting(self, register: int, setting: Setting | str) -> None:
        """Store the raw byte named by *setting* at *register*."""
        self.protocol.write_setting(register, setting)

    # -- Handshake ----------------------------------------------------------

    def handshake(self) -> None:
        """Wait for the power-on preamble.  Power-cycle the device while this runs."""
        self.protocol.handshake()

    def handshake_if_needed(self) -> None:
        """Handshake only if the device is not already accepting commands."""
        self.protocol.handshake_if_needed()

    # -- Knobs --------------------------------------------------------------

    def new_knob(self, register: int) -> RegisterKnob:
        """Return a ``[0, 1]`` knob over *register*."""
        return self.protocol.new_knob(register)

    def new_knob_queue(self, register: int) -> KnobQueue:
        """Return a :class:`KnobQueue` over a fresh knob on *register*."""
        return KnobQueue(self.new_knob(register))

    # -- Information --------------------------------------------------------

    def snapshot(self) -> dict[str, int]:
        """Read every mapped register, in address order."""
        return {info.name: self.read(info.address) for info in self.register_map}

    def info(self) -> str:
        """Summarize the device state as ``Name: value`` lines.

        Registers with named settings show the setting name when the
        stored byte matches one; everything else is shown in hex.
        """
        lines = []
        for info in self.register_map:
            val = self.read(info.address)
            setting = self.register_map.name_setting(info.address, val)
            lines.append(f"{info.name}: {setting}" if setting else f"{info.name}: 0x{val:02X}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Convenience factory
# ---------------------------------------------------------------------------


def get_device(port: str = DEFAULT_PORT) -> ET232:
    """Return a device instance (use as a context manager).

    Example::

        with get_device("/dev/ttyUSB0") as et232:
            et232.handshake_if_needed()
    """
    return ET232(port)
