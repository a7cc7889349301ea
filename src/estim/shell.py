"""
Interactive command shell for poking at an ET232.

Registers can be given by name (``Mode``, ``PotA``) or number (``0x8C``);
values by setting name (``ModeIntense``) or number (``80``, ``0x50``)::

    estim> read Mode
    0x0A
    estim> write ModeOverride ModeRamp
    estim> write 0x8C 80
    estim> info

The shell reports errors and carries on; it never raises out of a command.
"""

from __future__ import annotations

import cmd
import logging
from typing import IO

from .controller import ET232
from .exceptions import EstimError, InvalidSettingError, ValidationError
from .registers import RegisterMap, validate_address, validate_byte

logger = logging.getLogger(__name__)


def parse_register(token: str, register_map: RegisterMap) -> int:
    """Resolve *token* as a register name, falling back to a number.

    Raises:
        ValidationError: If *token* is neither.
    """
    try:
        return register_map.lookup(token).address
    except KeyError:
        pass
    try:
        return validate_address(int(token, 0))
    except ValueError as exc:
        raise ValidationError(f"Unknown register {token!r}") from exc


def parse_byte(token: str) -> int:
    """Parse *token* as a byte in decimal, hex (``0x``) or any ``int(x, 0)`` form."""
    try:
        value = int(token, 0)
    except ValueError as exc:
        raise ValidationError(f"Invalid value {token!r}") from exc
    return validate_byte(value)


class EstimShell(cmd.Cmd):
    """``read`` / ``write`` / ``info`` / ``handshake`` over a connected device."""

    intro = 'ET232 shell. Type "help" to get a list of commands.'
    prompt = "estim> "

    def __init__(self, device: ET232, stdout: IO[str] | None = None) -> None:
        super().__init__(stdout=stdout)
        self.device = device

    def _print(self, text: str) -> None:
        self.stdout.write(f"{text}\n")

    def onecmd(self, line: str) -> bool:
        try:
            return super().onecmd(line)
        except EstimError as exc:
            logger.debug("Command %r failed", line, exc_info=True)
            self._print(f"Error: {exc}")
            return False

    def emptyline(self) -> bool:
        return False

    def default(self, line: str) -> None:
        self._print(f"Unknown command: {line.split()[0]}")

    # -- Commands -----------------------------------------------------------

    def do_read(self, arg: str) -> None:
        """Read a memory address. Ex: read 0x11, read Mode"""
        args = arg.split()
        if len(args) != 1:
            self._print("expected 1 argument")
            return
        register = parse_register(args[0], self.device.register_map)
        val = self.device.read(register)
        self._print(f"0x{val:02X}")

    def do_write(self, arg: str) -> None:
        """Write a memory address. Ex: write 0x8C 0x50, write ModeOverride ModeRamp"""
        args = arg.split()
        if len(args) != 2:
            self._print("expected 2 arguments")
            return
        register = parse_register(args[0], self.device.register_map)
        try:
            self.device.write_setting(register, args[1])
            return
        except InvalidSettingError:
            pass
        self.device.write(register, parse_byte(args[1]))

    def do_info(self, arg: str) -> None:
        """Display the current value of every known register."""
        self._print(self.device.info())

    def do_registers(self, arg: str) -> None:
        """List known registers and their named settings."""
        for info in self.device.register_map:
            line = f"0x{info.address:02X}  {info.name:20s} {info.description}"
            if info.settings:
                line += f"  [{', '.join(info.settings)}]"
            self._print(line)

    def do_handshake(self, arg: str) -> None:
        """Perform a serial handshake with the device."""
        self._print("Performing serial handshake. Please reset the device.")
        self.device.handshake()
        self._print("Connected!")

    def do_quit(self, arg: str) -> bool:
        """Exit the shell."""
        return True

    do_exit = do_quit

    def do_EOF(self, arg: str) -> bool:  # noqa: N802 – cmd.Cmd naming
        self._print("")
        return True

    # -- Batch mode ---------------------------------------------------------

    def run_commands(self, commands: str) -> None:
        """Run a ``;``-separated list of commands, echoing each one."""
        for command in commands.split(";"):
            command = command.strip()
            if not command:
                continue
            self._print(command)
            self.onecmd(command)
