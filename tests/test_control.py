"""Tests for cooperative task control.

Validates that:
    - Cancellation raises at the next checkpoint, including while paused
    - Pause blocks the calling thread until resumed
    - Progress is clamped, mapped into sub-ranges and never decreases
    - show_progress=False silences reports but keeps cancel/pause
"""

from __future__ import annotations

import threading
import time

import pytest

from marching_waves.control import Checkpoint, TaskControl
from marching_waves.errors import Cancelled


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def events() -> list:
    return []


@pytest.fixture()
def checkpoint(events: list) -> Checkpoint:
    return Checkpoint(TaskControl(), on_progress=lambda p, m: events.append((p, m)))


def _run_in_thread(fn) -> tuple[threading.Thread, dict]:
    outcome: dict = {}

    def target() -> None:
        try:
            fn()
            outcome['ok'] = True
        except Cancelled as exc:
            outcome['error'] = exc

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread, outcome


# ---------------------------------------------------------------------------
# TaskControl
# ---------------------------------------------------------------------------


class TestTaskControl:
    def test_initial_state(self) -> None:
        control = TaskControl()
        assert not control.is_cancelled
        assert not control.is_paused
        control.raise_if_cancelled()
        control.wait_while_paused()

    def test_cancel_raises(self) -> None:
        control = TaskControl()
        control.cancel()
        assert control.is_cancelled
        with pytest.raises(Cancelled, match="Cancelled by user"):
            control.raise_if_cancelled()

    def test_pause_after_cancel_is_ignored(self) -> None:
        control = TaskControl()
        control.cancel()
        control.pause()
        assert not control.is_paused

    def test_pause_blocks_until_resume(self) -> None:
        control = TaskControl()
        control.pause()
        thread, outcome = _run_in_thread(control.wait_while_paused)

        time.sleep(0.2)
        assert thread.is_alive(), "paused waiter returned early"

        control.resume()
        thread.join(timeout=2.0)
        assert not thread.is_alive()
        assert outcome == {'ok': True}

    def test_cancel_releases_paused_waiter(self) -> None:
        control = TaskControl()
        control.pause()
        thread, outcome = _run_in_thread(control.wait_while_paused)

        time.sleep(0.1)
        control.cancel()
        thread.join(timeout=2.0)
        assert not thread.is_alive()
        assert isinstance(outcome.get('error'), Cancelled)


# ---------------------------------------------------------------------------
# Checkpoint
# ---------------------------------------------------------------------------


class TestCheckpoint:
    def test_noop_never_reports(self) -> None:
        cp = Checkpoint.noop()
        cp(50.0, "ignored")
        cp()
        assert not cp.control.is_cancelled

    def test_reports_progress(self, checkpoint: Checkpoint, events: list) -> None:
        checkpoint(10.0, "a")
        checkpoint()
        checkpoint(40.0, "b")
        assert events == [(10.0, "a"), (40.0, "b")]

    def test_progress_never_decreases(self, checkpoint: Checkpoint, events: list) -> None:
        checkpoint(50.0, "up")
        checkpoint(30.0, "down")
        checkpoint(150.0, "over")
        assert [p for p, _ in events] == [50.0, 50.0, 100.0]

    def test_scaled_maps_range(self, checkpoint: Checkpoint, events: list) -> None:
        checkpoint.scaled(60.0, 90.0)(50.0, "half")
        assert events[-1] == (pytest.approx(75.0), "half")

        # Nested slices compose
        checkpoint.scaled(60.0, 80.0).scaled(50.0, 100.0)(0.0, "nested")
        assert events[-1][0] == pytest.approx(75.0)  # 70 clamped to the high-water mark

    def test_scaled_shares_high_water_mark(self, checkpoint: Checkpoint, events: list) -> None:
        first = checkpoint.scaled(0.0, 50.0)
        second = checkpoint.scaled(50.0, 100.0)
        first(100.0)
        second(0.0)
        second(100.0)
        assert [p for p, _ in events] == [50.0, 50.0, 100.0]

    def test_silent_child(self, checkpoint: Checkpoint, events: list) -> None:
        silent = checkpoint.scaled(0.0, 90.0, show_progress=False)
        silent(50.0, "hidden")
        assert events == []

        checkpoint.control.cancel()
        with pytest.raises(Cancelled):
            silent()

    def test_cancel_raises_before_report(self, checkpoint: Checkpoint, events: list) -> None:
        checkpoint.control.cancel()
        with pytest.raises(Cancelled):
            checkpoint(10.0, "late")
        assert events == []

    def test_pause_blocks_checkpoint(self, checkpoint: Checkpoint, events: list) -> None:
        checkpoint.control.pause()
        thread, outcome = _run_in_thread(lambda: checkpoint(20.0, "after pause"))

        time.sleep(0.2)
        assert thread.is_alive()
        assert events == []

        checkpoint.control.resume()
        thread.join(timeout=2.0)
        assert outcome == {'ok': True}
        assert events == [(20.0, "after pause")]
