"""Tests for SessionState."""

from datetime import datetime, timedelta, timezone

import pytest

from breathwork.core.exceptions import StateUpdateFailed


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state(clock):
    from breathwork.services.session_state import SessionState

    return SessionState(clock=clock)


class TestLifecycle:
    def test_initial_state(self, state):
        snapshot = state.snapshot
        assert not snapshot.is_running
        assert not snapshot.is_paused
        assert snapshot.current_technique_id is None
        assert snapshot.current_phase is None
        assert not state.is_session_active()

    def test_initialize_installs_without_starting(self, state, registry):
        assert state.initialize("box4", registry) is True
        assert state.current_technique_id == "box4"
        assert state.current_phase.phase.key == "inhale"
        assert not state.is_running

    def test_initialize_unknown_id(self, state, registry):
        assert state.initialize("nope", registry) is False
        assert state.current_technique_id is None

    def test_start_session(self, state, box4, clock):
        state.start_session("box4", box4)

        snapshot = state.snapshot
        assert snapshot.is_running
        assert not snapshot.is_paused
        assert snapshot.elapsed_seconds == 0
        assert snapshot.session_start_time == clock.now
        assert snapshot.current_phase == box4.phase_at(0)

    def test_start_requires_technique(self, state):
        with pytest.raises(StateUpdateFailed):
            state.start_session("box4", None)
        assert not state.is_running

    def test_pause_and_resume(self, state, box4):
        state.start_session("box4", box4)
        state.update_timer(3, box4.phase_at(3))

        state.pause_session()
        assert state.is_paused and not state.is_running
        assert state.elapsed_seconds == 3

        state.resume_session()
        assert state.is_running and not state.is_paused
        assert state.elapsed_seconds == 3

    def test_pause_when_idle_is_noop(self, state):
        state.pause_session()
        assert not state.is_paused

    def test_resume_when_not_paused_is_noop(self, state, box4):
        state.start_session("box4", box4)
        state.resume_session()
        assert state.is_running

    def test_stop_keeps_phase(self, state, box4):
        state.start_session("box4", box4)
        state.update_timer(5, box4.phase_at(5))

        state.stop_session()

        snapshot = state.snapshot
        assert not snapshot.is_running
        assert snapshot.elapsed_seconds == 0
        assert snapshot.session_start_time is None
        assert snapshot.current_phase == box4.phase_at(5)

    def test_reset_clears_phase(self, state, box4):
        state.start_session("box4", box4)
        state.update_timer(5, box4.phase_at(5))

        state.reset_session()

        snapshot = state.snapshot
        assert snapshot.current_phase is None
        assert snapshot.phase_index == 0
        assert snapshot.time_left == 0
        assert snapshot.current_technique_id == "box4"

    def test_change_technique_restarts_cycle(self, state, box4, technique_478):
        state.start_session("box4", box4)
        state.update_timer(20, box4.phase_at(20))

        state.change_technique("478", technique_478)

        assert state.current_technique_id == "478"
        assert state.elapsed_seconds == 0
        assert state.cycles_completed == 0
        assert state.current_phase == technique_478.phase_at(0)
        assert state.is_running

    def test_restore_position(self, state, box4, technique_478):
        state.start_session("478", technique_478)

        state.restore_position("box4", box4, 6, 0)

        assert state.current_technique_id == "box4"
        assert state.elapsed_seconds == 6
        assert state.current_phase == box4.phase_at(6)


class TestUpdateTimer:
    def test_stores_phase_and_cycles(self, state, box4, clock):
        state.start_session("box4", box4)
        clock.advance(17)

        state.update_timer(17, box4.phase_at(17))

        snapshot = state.snapshot
        assert snapshot.elapsed_seconds == 17
        assert snapshot.cycles_completed == 1
        assert snapshot.phase_index == 0
        assert snapshot.time_in_phase == 1
        assert snapshot.time_left == 3
        assert snapshot.session_duration_ms == 17000

    def test_accepts_phase_dict(self, state, box4):
        state.start_session("box4", box4)
        state.update_timer(5, box4.phase_at(5).model_dump())
        assert state.current_phase == box4.phase_at(5)

    def test_missing_phase_rejected(self, state, box4):
        state.start_session("box4", box4)
        with pytest.raises(StateUpdateFailed) as exc_info:
            state.update_timer(1, None)
        assert exc_info.value.field == "current_phase"
        assert state.elapsed_seconds == 0

    def test_negative_time_rejected(self, state, box4):
        state.start_session("box4", box4)
        with pytest.raises(StateUpdateFailed):
            state.update_timer(-1, box4.phase_at(0))

    def test_non_integer_time_rejected(self, state, box4):
        state.start_session("box4", box4)
        with pytest.raises(StateUpdateFailed):
            state.update_timer(1.5, box4.phase_at(1))

    def test_invalid_phase_dict_rejected(self, state, box4):
        state.start_session("box4", box4)
        with pytest.raises(StateUpdateFailed):
            state.update_timer(1, {"phase_index": 0})


class TestObservers:
    def test_one_notification_per_mutation(self, state, box4):
        changes = []
        state.subscribe(changes.append)

        state.start_session("box4", box4)
        state.update_timer(1, box4.phase_at(1))

        assert len(changes) == 2
        assert changes[1].changed("elapsed_seconds")
        assert changes[1].changes["elapsed_seconds"] == {"from": 0, "to": 1}
        assert changes[1].current.current_phase == box4.phase_at(1)

    def test_no_notification_without_change(self, state):
        changes = []
        state.subscribe(changes.append)

        state.pause_session()
        state.stop_session()

        assert changes == []

    def test_subscribe_to_key(self, state, box4):
        seen = []
        state.subscribe_to_key(
            "is_paused", lambda change, snapshot: seen.append((change, snapshot.is_running))
        )

        state.start_session("box4", box4)
        state.update_timer(1, box4.phase_at(1))
        state.pause_session()

        assert seen == [({"from": False, "to": True}, False)]

    def test_unsubscribe(self, state, box4):
        changes = []
        unsubscribe = state.subscribe(changes.append)
        assert state.observer_count == 1

        unsubscribe()
        state.start_session("box4", box4)

        assert changes == []
        assert state.observer_count == 0

    def test_observer_failure_does_not_break_update(self, state, box4):
        def broken(change):
            raise RuntimeError("observer bug")

        state.subscribe(broken)
        state.start_session("box4", box4)

        assert state.is_running

    def test_snapshot_is_a_copy(self, state, box4):
        state.start_session("box4", box4)
        snapshot = state.snapshot
        snapshot.elapsed_seconds = 99
        assert state.elapsed_seconds == 0


class TestDerivedValues:
    def test_progress(self, state, box4):
        state.start_session("box4", box4)
        state.update_timer(6, box4.phase_at(6))

        assert state.technique_duration() == 16
        assert state.total_phases() == 4
        assert state.session_progress() == pytest.approx(37.5)
        assert state.cycle_progress() == pytest.approx(37.5)
        assert state.phase_progress() == pytest.approx(50.0)

    def test_progress_past_first_cycle(self, state, box4):
        state.start_session("box4", box4)
        state.update_timer(20, box4.phase_at(20))

        assert state.session_progress() == 100.0
        assert state.cycle_progress() == pytest.approx(25.0)

    def test_progress_without_technique(self, state):
        assert state.session_progress() == 0.0
        assert state.cycle_progress() == 0.0
        assert state.phase_progress() == 0.0

    def test_average_cycle_time(self, state, box4):
        state.start_session("box4", box4)
        assert state.average_cycle_time() == 0.0

        state.update_timer(32, box4.phase_at(32))
        assert state.average_cycle_time() == 16.0

    def test_session_duration_minutes(self, state, box4, clock):
        state.start_session("box4", box4)
        clock.advance(125)
        state.update_timer(1, box4.phase_at(1))

        assert state.session_duration_minutes() == 2

    def test_export_and_import(self, state, box4, clock, registry):
        from breathwork.services.session_state import SessionState

        state.start_session("box4", box4)
        clock.advance(40)
        state.update_timer(40, box4.phase_at(40))

        data = state.export_session_data()
        assert data["technique_id"] == "box4"
        assert data["cycles_completed"] == 2
        assert data["duration_ms"] == 40000
        assert data["average_cycle_time"] == 20.0
        assert data["session_stats"]["elapsed_seconds"] == 40

        restored = SessionState(clock=clock)
        restored.import_session_data(data, registry)

        assert restored.current_technique_id == "box4"
        assert restored.cycles_completed == 2
        assert restored.snapshot.session_duration_ms == 40000
        assert not restored.is_running

    def test_validate_state(self, state, box4):
        state.start_session("box4", box4)
        state.validate_state()
