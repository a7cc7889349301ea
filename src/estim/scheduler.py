"""
Sequential, non-blocking scheduling of knob operations.

A :class:`KnobQueue` wraps a :class:`~estim.knob.Knob` with a FIFO of timed
events run by one background thread.  Enqueuing never blocks on the
device; events run strictly in order and never overlap::

    queue = KnobQueue(device.new_knob(Register.POT_A))
    queue.ramp(0.2, 0.4, 3.0)          # sweep over three seconds
    queue.pulse(0.5, 1.0)              # then hold 50% for a second
    queue.callback(lambda: print("Setting A to 0!"))
    queue.pulse(0.0, 1.0)
    queue.wait_done()

Each event's action runs as soon as it is dequeued; the worker then idles
for the event's duration before taking the next one.  :meth:`KnobQueue.clear`
drops everything pending and cuts the current idle period short.
"""

from __future__ import annotations

import functools
import logging
import math
import threading
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .constants import IDLE_POLL_INTERVAL
from .exceptions import ValidationError
from .knob import Knob

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """An action followed by *duration* seconds of idle time."""

    duration: float
    action: Callable[[], object]

    def __post_init__(self) -> None:
        if self.duration < 0:
            raise ValidationError(f"Event duration must be >= 0 s, got {self.duration}")


class EventQueue:
    """FIFO of :class:`Event` objects drained by a dedicated daemon thread.

    The queue lock is held only while the deque is mutated or while the
    worker waits on a condition, never while an action runs.

    Args:
        poll_interval: Seconds between queue checks while idle.  The worker
            is also woken early whenever events are added or cleared.
        name: Name for the worker thread.
    """

    def __init__(self, poll_interval: float = IDLE_POLL_INTERVAL, name: str | None = None) -> None:
        self.poll_interval = poll_interval
        self._events: deque[Event] = deque()
        self._lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._drained = threading.Condition(self._lock)
        self._in_flight = False
        self._generation = 0  # bumped by clear()
        self._drains = 0  # bumped each time the queue goes idle
        self._worker = threading.Thread(
            target=self._run, name=name or "estim-event-queue", daemon=True
        )
        self._worker.start()

    def __len__(self) -> int:
        """Number of events not yet started."""
        with self._lock:
            return len(self._events)

    @property
    def busy(self) -> bool:
        """``True`` while events are pending or one is in flight."""
        with self._lock:
            return bool(self._events) or self._in_flight

    # -- Producers ----------------------------------------------------------

    def add(self, event: Event) -> None:
        """Append *event* to the queue."""
        self.add_many((event,))

    def add_many(self, events: Iterable[Event]) -> None:
        """Append *events* as one contiguous, uninterleaved batch."""
        batch = list(events)
        if not batch:
            return
        with self._lock:
            self._events.extend(batch)
            self._wakeup.notify_all()

    def clear(self) -> None:
        """Drop all pending events and interrupt the current idle period.

        An action that is already running is allowed to finish.
        """
        with self._lock:
            dropped = len(self._events)
            self._events.clear()
            self._generation += 1
            self._wakeup.notify_all()
            if not self._in_flight:
                # Nothing running: the queue is idle right now.
                self._drains += 1
                self._drained.notify_all()
        logger.debug("Cleared %d pending event(s)", dropped)

    def wait_done(self, timeout: float | None = None) -> bool:
        """Block until the queue has been idle at some point after this call.

        New work may arrive immediately after a waiter is released.

        Returns:
            ``False`` if *timeout* expired first, otherwise ``True``.
        """
        with self._lock:
            if not self._events and not self._in_flight:
                return True
            seen = self._drains
            return self._drained.wait_for(lambda: self._drains != seen, timeout)

    # -- Worker -------------------------------------------------------------

    def _run(self) -> None:
        while True:
            event, generation = self._next_event()
            self._execute(event)
            self._hold(event.duration, generation)

    def _next_event(self) -> tuple[Event, int]:
        with self._lock:
            while not self._events:
                if self._in_flight:
                    self._in_flight = False
                    self._drains += 1
                    self._drained.notify_all()
                self._wakeup.wait(self.poll_interval)
            self._in_flight = True
            return self._events.popleft(), self._generation

    def _execute(self, event: Event) -> None:
        try:
            event.action()
        except Exception:
            # One failed write must not strand the rest of the sequence.
            logger.exception("Event action %r failed", event.action)

    def _hold(self, duration: float, generation: int) -> None:
        if duration <= 0:
            return
        with self._lock:
            self._wakeup.wait_for(lambda: self._generation != generation, duration)


class KnobQueue(Knob):
    """A :class:`Knob` with a queue of timed operations against it.

    ``set`` and ``resolution`` pass straight through to the wrapped knob;
    everything else is queued and returns immediately (except
    :meth:`wait_done`).
    """

    def __init__(self, knob: Knob, poll_interval: float = IDLE_POLL_INTERVAL) -> None:
        self.knob = knob
        self._queue = EventQueue(poll_interval, name=f"knob-queue {knob!r}")

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def busy(self) -> bool:
        return self._queue.busy

    def set(self, value: float) -> None:
        self.knob.set(value)

    def resolution(self) -> float:
        return self.knob.resolution()

    # -- Queued operations --------------------------------------------------

    def callback(self, fn: Callable[[], object]) -> None:
        """Queue a call to *fn* with no hold time."""
        self._queue.add(Event(0.0, fn))

    def pulse(self, value: float, duration: float) -> None:
        """Queue setting the knob to *value*, held for *duration* seconds."""
        logger.debug("Pulse of %.4f for %.3f s", value, duration)
        self._queue.add(self._pulse_event(value, duration))

    def ramp(self, start: float, end: float, duration: float) -> int:
        """Queue a stepwise sweep from *start* towards *end* over *duration* seconds.

        One pulse is queued per representable step.  The last value reached
        can fall short of *end* by up to one step.

        Returns:
            The number of steps queued (``0`` if the range is narrower than
            one step, in which case nothing is queued).
        """
        resolution = self.resolution()
        steps = int(abs(end - start) / resolution)
        if steps == 0:
            logger.debug("Ramp %.4f -> %.4f is below knob resolution; skipped", start, end)
            return 0

        step = math.copysign(resolution, end - start)
        hold = duration / steps
        self._queue.add_many(self._pulse_event(start + i * step, hold) for i in range(steps))
        logger.debug("Ramp %.4f -> %.4f queued as %d steps of %.4f s", start, end, steps, hold)
        return steps

    def clear(self) -> None:
        """Drop all pending operations and cut the current hold short."""
        self._queue.clear()

    def wait_done(self, timeout: float | None = None) -> bool:
        """Block until every queued operation has run (or been cleared)."""
        return self._queue.wait_done(timeout)

    def _pulse_event(self, value: float, duration: float) -> Event:
        return Event(duration, functools.partial(self.knob.set, value))
