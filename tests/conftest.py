"""Shared pytest fixtures for ET232 tests."""

from __future__ import annotations

import threading
from collections import deque
from unittest.mock import patch

import pytest
import serial

from estim import ET232
from estim.knob import Knob
from estim.protocol import ET232Protocol
from estim.transport import SerialTransport


def _checksum(data: bytes) -> int:
    return sum(b for b in data if 0x30 <= b <= 0x90) % 256


class FakeSerial:
    """Lightweight stand-in for ``serial.Serial`` that behaves like an ET232.

    Implements the subset of the pyserial API used by
    :class:`~estim.transport.SerialTransport`: ``write``, ``read_until``,
    ``reset_input_buffer``, ``flush``, ``close``, and ``is_open``.

    Every written frame is decoded against a small register memory: reads
    (``H``) answer with the stored byte as hex, writes (``I``) update it.
    Call :meth:`set_response` to stage a raw reply for the **next** frame
    instead.  Frames with a bad checksum are recorded in :attr:`bad_frames`
    and get no reply.

    Unsolicited input (the power-on preamble, line noise) is staged with
    :meth:`queue_reads`; each chunk is delivered by one ``read_until`` call
    when nothing else is buffered.  An empty buffer reads as a timeout.
    """

    def __init__(self) -> None:
        self.is_open: bool = True
        self.written: list[bytes] = []
        self.bad_frames: list[bytes] = []
        self.memory: dict[int, int] = {}
        self.read_calls: int = 0
        self.fail_reads: bool = False
        self.resets: int = 0
        self._incoming = bytearray()
        self._script: deque[bytes] = deque()
        self._next: bytes | None = None

    # -- Helpers for tests --------------------------------------------------

    def set_response(self, data: bytes) -> None:
        """Stage a raw reply for the **next** written frame."""
        self._next = data

    def queue_reads(self, *chunks: bytes) -> None:
        """Stage chunks to be returned by successive idle ``read_until`` calls."""
        self._script.extend(chunks)

    def inject(self, data: bytes) -> None:
        """Put *data* straight into the input buffer, as if it just arrived."""
        self._incoming += data

    # -- pyserial interface -------------------------------------------------

    def write(self, data: bytes) -> int:
        self.written.append(data)
        if self._next is not None:
            self._incoming += self._next
            self._next = None
        else:
            self._incoming += self._emulate(data)
        return len(data)

    def read_until(self, expected: bytes = b"\n", size: int | None = None) -> bytes:
        """Return everything up to and including *expected*."""
        self.read_calls += 1
        if self.fail_reads:
            raise serial.SerialException("device disconnected")
        if not self._incoming and self._script:
            self._incoming += self._script.popleft()
        idx = self._incoming.find(expected)
        if idx == -1:
            # Terminator not found: return everything (mimics timeout)
            data = bytes(self._incoming)
            self._incoming.clear()
        else:
            end = idx + len(expected)
            data = bytes(self._incoming[:end])
            del self._incoming[:end]
        return data

    def reset_input_buffer(self) -> None:
        self.resets += 1
        self._incoming.clear()

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.is_open = False

    # -- Device emulation ---------------------------------------------------

    def _emulate(self, frame: bytes) -> bytes:
        opcode, body, chk = frame[:1], frame[1:-3], frame[-3:-1]
        args = bytes.fromhex(body.decode("ascii"))
        if int(chk, 16) != _checksum(opcode + args) or not frame.endswith(b"\r"):
            self.bad_frames.append(frame)
            return b""
        if opcode == b"H":
            return f"{self.memory.get(args[0], 0):02X}\n".encode("ascii")
        if opcode == b"I":
            self.memory[args[0]] = args[1]
            return b"\n"
        return b""


class RecordingKnob(Knob):
    """In-memory knob that records every value it is set to."""

    def __init__(self, resolution: float = 1.0 / 255, fail_on: set[float] | None = None) -> None:
        self._resolution = resolution
        self._fail_on = fail_on or set()
        self._lock = threading.Lock()
        self.log: list[tuple[str, float]] = []

    @property
    def values(self) -> list[float]:
        with self._lock:
            return [v for kind, v in self.log if kind == "set"]

    def record(self, kind: str, value: float = 0.0) -> None:
        with self._lock:
            self.log.append((kind, value))

    def set(self, value: float) -> None:
        if value in self._fail_on:
            raise RuntimeError(f"cannot set {value}")
        self.record("set", value)

    def resolution(self) -> float:
        return self._resolution


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_serial() -> FakeSerial:
    """Return a fresh ``FakeSerial`` instance."""
    return FakeSerial()


@pytest.fixture()
def transport(fake_serial: FakeSerial) -> SerialTransport:
    """Return a ``SerialTransport`` wired to a fake serial port."""
    with patch("estim.transport.serial.Serial", return_value=fake_serial):
        tx = SerialTransport("/dev/fake")
        tx.open()
        return tx


@pytest.fixture()
def protocol(transport: SerialTransport) -> ET232Protocol:
    """Return an ``ET232Protocol`` wired to a fake transport."""
    return ET232Protocol(transport)


@pytest.fixture()
def device(fake_serial: FakeSerial) -> ET232:
    """Return a connected ``ET232`` wired to a fake serial port."""
    with patch("estim.transport.serial.Serial", return_value=fake_serial):
        et232 = ET232("/dev/fake")
        et232.connect()
        return et232


@pytest.fixture()
def knob() -> RecordingKnob:
    """Return an in-memory knob with the ET232's resolution."""
    return RecordingKnob()


@pytest.fixture()
def make_knob():
    """Return a factory for extra in-memory knobs."""
    return RecordingKnob
