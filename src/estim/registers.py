"""
ET232 register map: addresses, descriptions, and named settings.

The register table is data, not code.  It is loaded once from the YAML
file shipped at ``estim/data/registers.yaml`` (or from a user-supplied
copy) and never mutated afterwards::

    from estim.registers import Register, Setting, default_register_map

    regs = default_register_map()
    regs.resolve_setting(Register.MODE_OVERRIDE, Setting.MODE_INTENSE)  # 0x8A

Settings are keyed by the ``(register, setting)`` pair.  The same name can
map to different raw bytes under different registers (``OverrideOff`` is
``0x00`` under ``ModeOverride`` but ``0x8F`` under ``AnalogOverride``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from functools import lru_cache
from importlib import resources
from pathlib import Path
from types import MappingProxyType

import yaml

from .constants import MAX_BYTE
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Register(IntEnum):
    """Known ET232 memory addresses."""

    PULSE_WIDTH_A = 0x08
    FREQ_REC_A = 0x09
    PULSE_AMP_A = 0x0A
    POWER_COMP_A = 0x0B
    PULSE_POLARITY_EN_A = 0x0C
    PULSE_WIDTH_B = 0x0E
    FREQ_REC_B = 0x0F
    PULSE_AMP_B = 0x10
    POWER_COMP_B = 0x11
    PULSE_POLARITY_EN_B = 0x12
    POT_B = 0x88
    POT_MA = 0x89
    BATTERY_VOLTAGE = 0x8A
    AUDIO_INPUT = 0x8B
    POT_A = 0x8C
    MODE = 0xA2
    MODE_OVERRIDE = 0xA3
    ANALOG_OVERRIDE = 0xA4
    AUTO_POWER_OFF_TIMER = 0xD3
    PROGRAM_FADE_IN_TIMER = 0xD8


class Setting(str, Enum):
    """Named settings used by the packaged register map."""

    MODE_WAVES = "ModeWaves"
    MODE_INTENSE = "ModeIntense"
    MODE_RANDOM = "ModeRandom"
    MODE_AUDIO_SOFT = "ModeAudioSoft"
    MODE_AUDIO_LOUD = "ModeAudioLoud"
    MODE_AUDIO_WAVES = "ModeAudioWaves"
    MODE_USER = "ModeUser"
    MODE_HI_FREQ = "ModeHiFreq"
    MODE_CLIMB = "ModeClimb"
    MODE_THROB = "ModeThrob"
    MODE_COMBO = "ModeCombo"
    MODE_THRUST = "ModeThrust"
    MODE_THUMP = "ModeThump"
    MODE_RAMP = "ModeRamp"
    MODE_STROKE = "ModeStroke"
    MODE_OFF = "ModeOff"

    OVERRIDE_ALL = "OverrideAll"
    OVERRIDE_OFF = "OverrideOff"

    def __str__(self) -> str:
        return self.value


def setting_name(setting: Setting | str) -> str:
    """Return the plain string name of *setting*."""
    if isinstance(setting, Setting):
        return setting.value
    return str(setting)


def validate_address(register: int) -> int:
    """Return *register* as a plain ``int`` or raise if it is not a byte."""
    if isinstance(register, bool) or not isinstance(register, int):
        raise ValidationError(f"Register must be an integer, got {register!r}")
    if not (0 <= register <= MAX_BYTE):
        raise ValidationError(f"Register must be 0x00-0xFF, got {register:#x}")
    return int(register)


def validate_byte(value: int, label: str = "value") -> int:
    """Return *value* as a plain ``int`` or raise if it is not 0-255."""
    if isinstance(value, bool) or not isinstance(value, int) or not (0 <= value <= MAX_BYTE):
        raise ValidationError(f"{label} must be an integer 0-255, got {value!r}")
    return int(value)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegisterInfo:
    """One entry of the register map."""

    name: str
    address: int
    description: str = ""
    settings: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def label(self) -> str:
        """Human-readable label, e.g. ``Mode (0xA2)``."""
        return f"{self.name} (0x{self.address:02X})"


class RegisterMap:
    """Immutable lookup table over a set of :class:`RegisterInfo` entries."""

    def __init__(self, registers: list[RegisterInfo]) -> None:
        by_address: dict[int, RegisterInfo] = {}
        by_name: dict[str, RegisterInfo] = {}
        for info in registers:
            if info.address in by_address:
                raise ValidationError(
                    f"Duplicate address 0x{info.address:02X} for "
                    f"{by_address[info.address].name!r} and {info.name!r}"
                )
            by_address[info.address] = info
            by_name[info.name] = info
        self._by_address = MappingProxyType(dict(sorted(by_address.items())))
        self._by_name = MappingProxyType(by_name)

    def __iter__(self) -> Iterator[RegisterInfo]:
        return iter(self._by_address.values())

    def __len__(self) -> int:
        return len(self._by_address)

    def __contains__(self, register: object) -> bool:
        return register in self._by_address

    def get(self, register: int) -> RegisterInfo | None:
        """Return the entry at *register*, or ``None`` if it is unmapped."""
        return self._by_address.get(int(register))

    def lookup(self, name: str) -> RegisterInfo:
        """Return the entry called *name* (case-insensitive).

        Raises:
            KeyError: If no register has that name.
        """
        info = self._by_name.get(name)
        if info is not None:
            return info
        folded = name.casefold()
        for candidate in self._by_name.values():
            if candidate.name.casefold() == folded:
                return candidate
        raise KeyError(name)

    def name_of(self, register: int) -> str:
        """Return the register's name, or its hex address if unmapped."""
        info = self.get(register)
        return info.name if info else f"0x{int(register):02X}"

    def resolve_setting(self, register: int, setting: Setting | str) -> int | None:
        """Return the raw byte for ``(register, setting)``, or ``None``."""
        info = self.get(register)
        if info is None:
            return None
        return info.settings.get(setting_name(setting))

    def name_setting(self, register: int, raw: int) -> str | None:
        """Return the setting name whose raw byte under *register* is *raw*."""
        info = self.get(register)
        if info is None:
            return None
        for name, value in info.settings.items():
            if value == raw:
                return name
        return None


# ---------------------------------------------------------------------------
# Loading & validation
# ---------------------------------------------------------------------------


def load_register_map(path: str | Path | None = None) -> RegisterMap:
    """Load and validate a register map from a YAML file.

    Args:
        path: Path to the YAML file.  ``None`` loads the packaged map.

    Returns:
        A validated :class:`RegisterMap`.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValidationError: If the file is malformed or contains invalid values.
    """
    if path is None:
        source = resources.files("estim") / "data" / "registers.yaml"
        text = source.read_text(encoding="utf-8")
        origin = "packaged register map"
    else:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Register map not found: {path}")
        text = path.read_text(encoding="utf-8")
        origin = str(path)

    raw = yaml.safe_load(text)
    if not isinstance(raw, dict):
        raise ValidationError(f"{origin} must be a YAML mapping, got {type(raw).__name__}")

    raw_registers = raw.get("registers")
    if not isinstance(raw_registers, dict) or not raw_registers:
        raise ValidationError(f"{origin} must contain a non-empty 'registers' mapping")

    registers = [_parse_register(name, data) for name, data in raw_registers.items()]
    regs = RegisterMap(registers)
    logger.debug("Loaded %d registers from %s", len(regs), origin)
    return regs


@lru_cache(maxsize=1)
def default_register_map() -> RegisterMap:
    """Return the packaged register map, loaded once per process."""
    return load_register_map()


def _parse_register(name: object, data: object) -> RegisterInfo:
    if not isinstance(name, str) or not name:
        raise ValidationError(f"Register name must be a non-empty string, got {name!r}")
    if not isinstance(data, dict):
        raise ValidationError(f"Register {name}: entry must be a mapping")

    address = validate_byte(data.get("address"), f"Register {name}: 'address'")

    description = data.get("description", "")
    if not isinstance(description, str):
        raise ValidationError(f"Register {name}: 'description' must be a string")

    raw_settings = data.get("settings") or {}
    if not isinstance(raw_settings, dict):
        raise ValidationError(f"Register {name}: 'settings' must be a mapping")

    settings: dict[str, int] = {}
    seen: dict[int, str] = {}
    for setting, value in raw_settings.items():
        if not isinstance(setting, str) or not setting:
            raise ValidationError(
                f"Register {name}: setting names must be non-empty strings, got {setting!r}"
            )
        value = validate_byte(value, f"Register {name}: setting {setting!r}")
        if value in seen:
            raise ValidationError(
                f"Register {name}: settings {seen[value]!r} and {setting!r} "
                f"share raw value 0x{value:02X}"
            )
        seen[value] = setting
        settings[setting] = value

    return RegisterInfo(
        name=name,
        address=address,
        description=description,
        settings=MappingProxyType(settings),
    )
