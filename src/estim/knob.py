"""Normalized ``[0, 1]`` control values over 8-bit registers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .constants import KNOB_RESOLUTION, MAX_BYTE

if TYPE_CHECKING:
    from .protocol import ET232Protocol

logger = logging.getLogger(__name__)


class Knob(ABC):
    """Anything that can be set to a value in ``[0, 1]``."""

    @abstractmethod
    def set(self, value: float) -> None:
        """Set the knob to *value*; out-of-range values are clamped."""

    @abstractmethod
    def resolution(self) -> float:
        """Return the smallest representable step."""


def value_to_raw(value: float) -> int:
    """Clamp *value* to ``[0, 1]`` and scale it to a byte, rounding toward zero."""
    value = min(max(value, 0.0), 1.0)
    return int(value * MAX_BYTE)


class RegisterKnob(Knob):
    """A knob backed by one device register.

    Stateless apart from its register; each :meth:`set` is one device
    write, serialized by the protocol's link lock.
    """

    def __init__(self, protocol: ET232Protocol, register: int) -> None:
        self.protocol = protocol
        self.register = register

    def __repr__(self) -> str:
        return f"RegisterKnob({self.protocol.register_map.name_of(self.register)})"

    def set(self, value: float) -> None:
        logger.debug("Setting %r to %.4f", self, value)
        self.protocol.write(self.register, value_to_raw(value))

    def resolution(self) -> float:
        return KNOB_RESOLUTION
