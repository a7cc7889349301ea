"""ErosTek ET232 Python Interface"""

from .constants import HANDSHAKE_ATTEMPTS, KNOB_RESOLUTION
from .controller import ET232, get_device
from .exceptions import (
    ConnectionError,
    EstimError,
    HandshakeTimeoutError,
    InvalidSettingError,
    ProtocolParseError,
    TimeoutError,
    TransportError,
    ValidationError,
)
from .knob import Knob, RegisterKnob
from .protocol import ET232Protocol
from .registers import Register, RegisterMap, Setting, default_register_map, load_register_map
from .scheduler import Event, EventQueue, KnobQueue

__all__ = [
    "ConnectionError",
    "ET232",
    "ET232Protocol",
    "EstimError",
    "Event",
    "EventQueue",
    "HANDSHAKE_ATTEMPTS",
    "HandshakeTimeoutError",
    "InvalidSettingError",
    "KNOB_RESOLUTION",
    "Knob",
    "KnobQueue",
    "ProtocolParseError",
    "Register",
    "RegisterKnob",
    "RegisterMap",
    "Setting",
    "TimeoutError",
    "TransportError",
    "ValidationError",
    "default_register_map",
    "get_device",
    "load_register_map",
]
__version__ = "0.1.0"
