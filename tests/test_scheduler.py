"""Tests for the knob event scheduler."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from estim import KNOB_RESOLUTION, ValidationError
from estim.scheduler import Event, EventQueue, KnobQueue

WAIT = 5.0  # generous upper bound for anything that should finish promptly


def _gate(queue: KnobQueue) -> tuple[threading.Event, threading.Event]:
    """Queue a callback that blocks the worker until released.

    Returns ``(started, release)``.  Once ``started`` is set, everything
    queued afterwards stays pending until ``release`` is set.
    """
    started = threading.Event()
    release = threading.Event()

    def block():
        started.set()
        release.wait(WAIT)

    queue.callback(block)
    assert started.wait(WAIT)
    return started, release


@pytest.fixture()
def queue(knob):
    q = KnobQueue(knob)
    yield q
    q.clear()


class TestEvent:
    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError, match=">= 0"):
            Event(-0.1, lambda: None)

    def test_zero_duration_allowed(self):
        assert Event(0.0, lambda: None).duration == 0.0


class TestEventQueue:
    def test_runs_in_order(self):
        q = EventQueue()
        seen = []
        q.add_many(Event(0.0, lambda i=i: seen.append(i)) for i in range(10))
        assert q.wait_done(WAIT)
        assert seen == list(range(10))

    def test_add_many_empty_is_noop(self):
        q = EventQueue()
        q.add_many([])
        assert len(q) == 0
        assert not q.busy

    def test_busy_while_event_in_flight(self):
        q = EventQueue()
        started = threading.Event()
        release = threading.Event()
        q.add(Event(0.0, lambda: (started.set(), release.wait(WAIT))))
        assert started.wait(WAIT)
        assert q.busy
        assert len(q) == 0
        release.set()
        assert q.wait_done(WAIT)
        assert not q.busy

    def test_hold_delays_next_event(self):
        q = EventQueue()
        stamps = []
        q.add(Event(0.2, lambda: stamps.append(time.monotonic())))
        q.add(Event(0.0, lambda: stamps.append(time.monotonic())))
        assert q.wait_done(WAIT)
        assert stamps[1] - stamps[0] >= 0.19


class TestKnobQueueOrdering:
    def test_pulse_callback_pulse(self, queue, knob):
        queue.pulse(0.5, 0.01)
        queue.callback(lambda: knob.record("cb"))
        queue.pulse(0.0, 0.01)
        assert queue.wait_done(WAIT)
        assert knob.log == [("set", 0.5), ("cb", 0.0), ("set", 0.0)]

    def test_enqueue_does_not_block(self, queue, knob):
        t0 = time.monotonic()
        queue.pulse(0.3, 1.0)
        queue.pulse(0.6, 1.0)
        assert time.monotonic() - t0 < 0.5

    def test_set_and_resolution_pass_through(self, queue, knob):
        queue.set(0.7)
        assert knob.values == [0.7]
        assert queue.resolution() == KNOB_RESOLUTION

    def test_failing_action_does_not_stop_queue(self, make_knob, caplog):
        knob = make_knob(fail_on={0.25})
        q = KnobQueue(knob)
        with caplog.at_level(logging.ERROR, logger="estim.scheduler"):
            q.pulse(0.25, 0.0)
            q.pulse(0.75, 0.0)
            assert q.wait_done(WAIT)
        assert knob.values == [0.75]
        assert "failed" in caplog.text

    def test_queues_on_one_knob_are_independent(self, knob):
        a = KnobQueue(knob)
        b = KnobQueue(knob)
        _, release = _gate(a)
        a.pulse(0.1, 0.0)
        b.pulse(0.9, 0.0)
        assert b.wait_done(WAIT)
        assert knob.values == [0.9]
        a.clear()
        release.set()
        assert a.wait_done(WAIT)
        assert knob.values == [0.9]


class TestRamp:
    def test_step_count(self, queue):
        _, release = _gate(queue)
        steps = queue.ramp(0.2, 0.4, 3.0)
        assert steps == 51
        assert len(queue) == steps
        queue.clear()
        release.set()

    def test_hold_splits_duration_across_steps(self, queue):
        _, release = _gate(queue)
        steps = queue.ramp(0.2, 0.4, 3.0)
        holds = [event.duration for event in queue._queue._events]
        queue.clear()
        release.set()

        assert len(holds) == steps
        for hold in holds:
            assert hold == pytest.approx(3.0 / steps)
        assert sum(holds) <= 3.0 + 1e-9

    def test_values_climb_by_resolution(self, queue, knob):
        steps = queue.ramp(0.2, 0.4, 0.0)
        assert queue.wait_done(WAIT)
        values = knob.values
        assert len(values) == steps
        assert values[0] == pytest.approx(0.2)
        for i, value in enumerate(values):
            assert value == pytest.approx(0.2 + i * KNOB_RESOLUTION)
        assert values[-1] <= 0.4

    def test_descending_ramp(self, queue, knob):
        steps = queue.ramp(0.4, 0.2, 0.0)
        assert queue.wait_done(WAIT)
        values = knob.values
        assert len(values) == steps
        assert values == sorted(values, reverse=True)
        assert values[-1] >= 0.2

    def test_zero_width_ramp_is_noop(self, queue, knob):
        _, release = _gate(queue)
        assert queue.ramp(0.3, 0.3, 1.0) == 0
        assert queue.ramp(0.3, 0.3 + KNOB_RESOLUTION / 2, 1.0) == 0
        assert len(queue) == 0
        release.set()
        assert queue.wait_done(WAIT)
        assert knob.values == []

    def test_coarse_knob(self, make_knob):
        q = KnobQueue(make_knob(resolution=0.25))
        assert q.ramp(0.0, 1.0, 0.0) == 4
        assert q.wait_done(WAIT)
        assert q.knob.values == [0.0, 0.25, 0.5, 0.75]

    def test_total_duration(self, make_knob):
        q = KnobQueue(make_knob(resolution=0.1))
        t0 = time.monotonic()
        assert q.ramp(0.0, 0.5, 0.5) == 5
        assert q.wait_done(WAIT)
        elapsed = time.monotonic() - t0
        # Holding each step for the whole duration would take 2.5 s.
        assert 0.45 <= elapsed < 1.5

    def test_ramp_is_contiguous(self, queue, knob):
        """Steps from one ramp are not interleaved with other producers."""
        _, release = _gate(queue)
        barrier = threading.Barrier(2)

        def other():
            barrier.wait()
            for _ in range(20):
                queue.pulse(1.0, 0.0)

        t = threading.Thread(target=other)
        t.start()
        barrier.wait()
        steps = queue.ramp(0.0, 0.1, 0.0)
        t.join(WAIT)
        release.set()
        assert queue.wait_done(WAIT)

        values = knob.values
        start = values.index(0.0)
        ramp_values = values[start : start + steps]
        assert 1.0 not in ramp_values


class TestClearAndWait:
    def test_wait_done_on_idle_queue(self, queue):
        t0 = time.monotonic()
        assert queue.wait_done(WAIT)
        assert time.monotonic() - t0 < 0.5

    def test_wait_done_timeout(self, queue):
        queue.pulse(0.5, 10.0)
        assert queue.wait_done(timeout=0.05) is False

    def test_clear_interrupts_hold(self, queue, knob):
        for _ in range(5):
            queue.pulse(0.5, 10.0)
        deadline = time.monotonic() + WAIT
        while not knob.values and time.monotonic() < deadline:
            time.sleep(0.005)

        t0 = time.monotonic()
        queue.clear()
        assert queue.wait_done(timeout=1.0)
        assert time.monotonic() - t0 < 1.0
        assert len(queue) == 0
        assert knob.values == [0.5]

    def test_clear_drops_pending_only(self, queue, knob):
        _, release = _gate(queue)
        queue.pulse(0.1, 0.0)
        queue.pulse(0.2, 0.0)
        assert len(queue) == 2
        queue.clear()
        assert len(queue) == 0
        release.set()
        assert queue.wait_done(WAIT)
        assert knob.values == []

    def test_queue_usable_after_clear(self, queue, knob):
        queue.pulse(0.5, 10.0)
        queue.clear()
        queue.pulse(0.6, 0.0)
        assert queue.wait_done(WAIT)
        assert knob.values[-1] == 0.6

    def test_multiple_waiters_released(self, queue):
        queue.pulse(0.1, 0.2)
        results = []

        def waiter():
            results.append(queue.wait_done(WAIT))

        threads = [threading.Thread(target=waiter) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(WAIT)
        assert results == [True, True, True]

    def test_clear_from_another_thread_releases_waiter(self, queue):
        queue.pulse(0.5, 10.0)
        timer = threading.Timer(0.05, queue.clear)
        timer.start()
        t0 = time.monotonic()
        assert queue.wait_done(WAIT)
        assert time.monotonic() - t0 < 2.0
        timer.join()
