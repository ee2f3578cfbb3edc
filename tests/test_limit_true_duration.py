"""Tests for the limit-true-duration operator.

Mirror image of when-true-for: true immediately, demoted to false once the
predicate has held for the threshold, measured from the last change.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from statewatch.domain.state import StateSnapshot
from statewatch.scheduling.virtual import VirtualScheduler
from statewatch.store.state_hub import StateHub


# ── Helpers ──────────────────────────────────────────────────────────────────

_BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
_TICK = timedelta(seconds=1)

ON = "On"
OFF = "Off"
ENTITY_ID = "domain.test_entity"


def _is_off(snapshot: StateSnapshot) -> bool:
    return snapshot.is_off


@pytest.fixture
def scheduler() -> VirtualScheduler:
    return VirtualScheduler(start=_BASE)


@pytest.fixture
def hub(scheduler: VirtualScheduler) -> StateHub:
    hub = StateHub(clock=scheduler.now)
    hub.set_state(ENTITY_ID, ON, last_changed=_BASE)
    return hub


# ── Elapsed time before subscription ─────────────────────────────────────────

class TestLimitTrueDurationAtSubscription:
    def test_last_changed_shorter_ago_than_threshold_is_true(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.entity(ENTITY_ID).limit_true_duration(_TICK, scheduler, now=lambda: _BASE).subscribe(results.append)
        assert results[-1] is True

    def test_last_changed_longer_ago_than_threshold_is_false(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.entity(ENTITY_ID).limit_true_duration(
            _TICK, scheduler, now=lambda: _BASE + _TICK
        ).subscribe(results.append)
        assert results[-1] is False

    def test_subscribe_after_threshold_passes_is_false(self, hub, scheduler) -> None:
        results: list[bool] = []
        observable = hub.entity(ENTITY_ID).limit_true_duration(_TICK, scheduler, now=lambda: _BASE)
        hub.set_state(ENTITY_ID, ON, last_changed=_BASE - _TICK)
        observable.subscribe(results.append)
        assert results[-1] is False

    def test_last_changed_halfway_is_false_after_remaining_time(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.entity(ENTITY_ID).limit_true_duration(
            4 * _TICK, scheduler, now=lambda: _BASE + 2 * _TICK
        ).subscribe(results.append)
        assert results[-1] is True

        scheduler.advance_by(_TICK)
        assert results[-1] is True

        scheduler.advance_by(_TICK)
        assert results[-1] is False
        assert results == [True, False]

    def test_elapsed_equal_to_threshold_is_false_without_timer(self, hub, scheduler) -> None:
        results: list[bool] = []
        scheduler.advance_by(2 * _TICK)
        hub.entity(ENTITY_ID).limit_true_duration(2 * _TICK, scheduler).subscribe(results.append)
        assert results == [False]
        assert scheduler.pending_count == 0

    def test_zero_threshold_is_false(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.entity(ENTITY_ID).limit_true_duration(timedelta(0), scheduler).subscribe(results.append)
        assert results == [False]


class TestLimitTrueDurationWithPredicate:
    def test_last_changed_shorter_ago_than_threshold_is_true(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.set_state(ENTITY_ID, OFF, last_changed=_BASE)
        hub.entity(ENTITY_ID).limit_true_duration(
            timedelta(minutes=1), scheduler, predicate=_is_off, now=lambda: _BASE
        ).subscribe(results.append)
        assert results[-1] is True

    def test_last_changed_longer_ago_than_threshold_is_false(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.set_state(ENTITY_ID, OFF, last_changed=_BASE)
        hub.entity(ENTITY_ID).limit_true_duration(
            _TICK, scheduler, predicate=_is_off, now=lambda: _BASE + _TICK
        ).subscribe(results.append)
        assert results[-1] is False

    def test_subscribe_after_threshold_passes_is_false(self, hub, scheduler) -> None:
        results: list[bool] = []
        observable = hub.entity(ENTITY_ID).limit_true_duration(
            _TICK, scheduler, predicate=_is_off, now=lambda: _BASE
        )
        hub.set_state(ENTITY_ID, OFF, last_changed=_BASE - _TICK)
        observable.subscribe(results.append)
        assert results[-1] is False

    def test_last_changed_halfway_is_false_after_remaining_time(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.set_state(ENTITY_ID, OFF, last_changed=_BASE)
        hub.entity(ENTITY_ID).limit_true_duration(
            4 * _TICK, scheduler, predicate=_is_off, now=lambda: _BASE + 2 * _TICK
        ).subscribe(results.append)
        assert results[-1] is True

        scheduler.advance_by(_TICK)
        assert results[-1] is True

        scheduler.advance_by(_TICK)
        assert results[-1] is False


# ── Transitions after subscription ───────────────────────────────────────────

class TestLimitTrueDurationTransitions:
    def test_turning_true_emits_true_then_demotes(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.set_state(ENTITY_ID, OFF, last_changed=_BASE)
        hub.entity(ENTITY_ID).limit_true_duration(3 * _TICK, scheduler).subscribe(results.append)
        assert results == [False]

        scheduler.advance_by(_TICK)
        hub.set_state(ENTITY_ID, ON)
        assert results == [False, True]

        scheduler.advance_by(2 * _TICK)
        assert results == [False, True]

        scheduler.advance_by(_TICK)
        assert results == [False, True, False]

    def test_turning_false_cancels_demotion(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.entity(ENTITY_ID).limit_true_duration(4 * _TICK, scheduler).subscribe(results.append)
        scheduler.advance_by(_TICK)
        hub.set_state(ENTITY_ID, OFF)

        assert results == [True, False]
        assert scheduler.pending_count == 0
        scheduler.advance_by(10 * _TICK)
        assert results == [True, False]

    def test_repeated_true_never_extends_the_window(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.entity(ENTITY_ID).limit_true_duration(4 * _TICK, scheduler).subscribe(results.append)

        for _ in range(3):
            scheduler.advance_by(_TICK)
            hub.set_state(ENTITY_ID, ON, last_changed=scheduler.now())

        scheduler.advance_by(_TICK)
        assert results == [True, False]

        # Still true after the window closed: no re-promotion
        hub.set_state(ENTITY_ID, ON)
        scheduler.advance_by(10 * _TICK)
        assert results == [True, False]

    def test_true_again_after_false_opens_a_new_window(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.entity(ENTITY_ID).limit_true_duration(2 * _TICK, scheduler).subscribe(results.append)
        scheduler.advance_by(2 * _TICK)
        hub.set_state(ENTITY_ID, OFF)
        scheduler.advance_by(_TICK)
        hub.set_state(ENTITY_ID, ON)
        scheduler.advance_by(2 * _TICK)
        assert results == [True, False, True, False]


# ── Teardown ─────────────────────────────────────────────────────────────────

class TestLimitTrueDurationTeardown:
    def test_dispose_before_deadline_prevents_demotion(self, hub, scheduler) -> None:
        spy = MagicMock()
        subscription = hub.entity(ENTITY_ID).limit_true_duration(4 * _TICK, scheduler).subscribe(spy)
        spy.assert_called_once_with(True)

        subscription.dispose()
        scheduler.advance_by(10 * _TICK)
        spy.assert_called_once_with(True)
        assert scheduler.pending_count == 0

    def test_observer_turning_entity_off_on_true_cancels_demotion(self, hub, scheduler) -> None:
        results: list[bool] = []
        hub.set_state(ENTITY_ID, OFF, last_changed=_BASE)

        def _on_next(value: bool) -> None:
            results.append(value)
            if value:
                hub.set_state(ENTITY_ID, OFF)

        hub.entity(ENTITY_ID).limit_true_duration(4 * _TICK, scheduler).subscribe(_on_next)
        hub.set_state(ENTITY_ID, ON)

        assert results == [False, True, False]
        assert scheduler.pending_count == 0

    def test_dispose_inside_on_next_leaves_no_timer(self, hub, scheduler) -> None:
        results: list[bool] = []
        subscriptions = []
        hub.set_state(ENTITY_ID, OFF, last_changed=_BASE)

        def _on_next(value: bool) -> None:
            results.append(value)
            if value:
                subscriptions[0].dispose()

        subscriptions.append(
            hub.entity(ENTITY_ID).limit_true_duration(4 * _TICK, scheduler).subscribe(_on_next)
        )
        hub.set_state(ENTITY_ID, ON)

        assert results == [False, True]
        assert scheduler.pending_count == 0
        assert hub.state_changes(ENTITY_ID).observer_count == 0

        scheduler.advance_by(10 * _TICK)
        assert results == [False, True]

    def test_accessor_error_is_delivered(self, hub, scheduler) -> None:
        errors: list[BaseException] = []

        def _bad_clock():
            raise RuntimeError("clock unavailable")

        hub.entity(ENTITY_ID).limit_true_duration(
            _TICK, scheduler, now=_bad_clock
        ).subscribe(lambda _: None, errors.append)
        assert [type(e) for e in errors] == [RuntimeError]
