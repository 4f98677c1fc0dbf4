"""Integration tests for BreathingController wiring.

The controller fixture uses a manual scheduler, so ticks are driven with
controller.scheduler.tick().
"""

import json

import pytest

from breathwork.core.exceptions import (
    CommandExecutionFailed,
    StateUpdateFailed,
    StorageError,
    TechniqueNotFoundError,
)
from breathwork.services.breathing_controller import BreathingController
from breathwork.services.phase_scheduler import PhaseScheduler
from breathwork.services.preferences_state import InMemoryStore


def tick(controller, count):
    for _ in range(count):
        controller.scheduler.tick()


class FailingStore(InMemoryStore):
    async def set(self, key, value):
        raise StorageError("read-only")


class TestInitialize:
    async def test_installs_selected_technique(self, controller):
        assert controller.is_initialized
        assert controller.session_state.current_technique_id == "box4"
        assert controller.scheduler.technique.id == "box4"
        assert not controller.session_state.is_running
        assert controller.theme_service.current_theme() == "dark"

    async def test_restores_stored_preferences(self, registry):
        store = InMemoryStore(
            {
                "breathing-app-preferences": json.dumps(
                    {"selectedTechniqueId": "478", "currentTheme": "ocean"}
                )
            }
        )
        controller = BreathingController(
            registry=registry, store=store, scheduler=PhaseScheduler(use_clock=False)
        )
        await controller.initialize()

        assert controller.session_state.current_technique_id == "478"
        assert controller.theme_service.current_theme() == "ocean"
        await controller.shutdown()

    async def test_unknown_stored_technique_falls_back(self, registry):
        store = InMemoryStore(
            {"breathing-app-preferences": json.dumps({"selected_technique_id": "gone"})}
        )
        controller = BreathingController(
            registry=registry, store=store, scheduler=PhaseScheduler(use_clock=False)
        )
        await controller.initialize()

        assert controller.session_state.current_technique_id == "box4"
        await controller.shutdown()


class TestSessionFlow:
    async def test_start_and_tick(self, controller):
        await controller.start_session("box4")
        tick(controller, 5)

        snapshot = controller.session_state.snapshot
        assert snapshot.is_running
        assert snapshot.elapsed_seconds == 5
        assert snapshot.phase_index == 1
        assert snapshot.time_in_phase == 1
        assert snapshot.time_left == 3

    async def test_start_defaults_to_selected_technique(self, controller):
        controller.preferences_state.set_selected_technique_id("478")

        await controller.start_session()

        assert controller.session_state.current_technique_id == "478"

    async def test_start_unknown_technique(self, controller):
        with pytest.raises(TechniqueNotFoundError):
            await controller.start_session("nope")
        assert controller.invoker.history() == []

    async def test_cues_follow_ticks(self, controller):
        await controller.start_session("box4")
        tick(controller, 4)

        played = list(controller.audio.played)
        assert len(played) == 5
        assert [b.frequency_hz for b in played] == [440.0, 440.0, 440.0, 600.0, 440.0]

    async def test_no_cues_while_paused(self, controller):
        await controller.start_session("box4")
        await controller.pause_session()
        count = len(controller.audio.played)

        tick(controller, 3)

        assert len(controller.audio.played) == count

    async def test_pause_resume(self, controller):
        await controller.start_session("box4")
        tick(controller, 7)
        await controller.pause_session()
        await controller.resume_session()
        tick(controller, 1)

        assert controller.session_state.elapsed_seconds == 8

    async def test_cycle_completion(self, controller):
        await controller.start_session("box4")
        tick(controller, 33)

        assert controller.session_state.cycles_completed == 2

    async def test_stop_rewinds(self, controller):
        await controller.start_session("box4")
        tick(controller, 6)

        controller.stop_session()

        snapshot = controller.session_state.snapshot
        assert not snapshot.is_running and not snapshot.is_paused
        assert snapshot.elapsed_seconds == 0
        assert snapshot.current_phase.phase_index == 0
        assert controller.scheduler.current_time == 0
        assert len(controller.invoker.history()) == 1

    async def test_change_technique_while_running(self, controller, technique_478):
        await controller.start_session("box4")
        tick(controller, 10)

        await controller.change_technique("478")

        snapshot = controller.session_state.snapshot
        assert snapshot.current_technique_id == "478"
        assert snapshot.elapsed_seconds == 0
        assert snapshot.current_phase == technique_478.phase_at(0)
        assert controller.preferences_state.selected_technique_id == "478"

        tick(controller, 12)
        assert controller.session_state.current_phase == technique_478.phase_at(12)

    async def test_change_technique_cues_new_second_zero(self, controller):
        await controller.start_session("box4")

        await controller.change_technique("478")
        assert len(controller.audio.played) == 2

        await controller.undo()
        assert len(controller.audio.played) == 3

    async def test_undo_redo_sync_selection(self, controller):
        await controller.start_session("box4")
        await controller.change_technique("478")

        await controller.undo()
        assert controller.session_state.current_technique_id == "box4"
        assert controller.preferences_state.selected_technique_id == "box4"

        await controller.redo()
        assert controller.preferences_state.selected_technique_id == "478"

    async def test_undo_start(self, controller):
        await controller.start_session("box4")
        tick(controller, 2)

        await controller.undo()

        assert not controller.session_state.is_running
        assert not controller.scheduler.is_running

    async def test_nothing_to_undo(self, controller):
        with pytest.raises(CommandExecutionFailed):
            await controller.undo()


class TestPreferences:
    async def test_selection_installs_technique_when_idle(self, controller):
        await controller.update_preferences({"selected_technique_id": "478"})

        assert controller.session_state.current_technique_id == "478"
        assert controller.scheduler.technique.id == "478"

    async def test_selection_ignored_while_running(self, controller):
        await controller.start_session("box4")

        await controller.update_preferences({"selected_technique_id": "478"})

        assert controller.session_state.current_technique_id == "box4"

    async def test_unknown_selection_rejected(self, controller):
        with pytest.raises(TechniqueNotFoundError):
            await controller.update_preferences({"selected_technique_id": "nope"})

    async def test_update_persists(self, controller):
        await controller.update_preferences({"vibration_enabled": True, "sound_volume": 0.5})

        stored = json.loads(controller.store.data["breathing-app-preferences"])
        assert stored["vibration_enabled"] is True
        assert stored["sound_volume"] == 0.5

    async def test_theme_update_applies_theme(self, controller):
        await controller.update_preferences({"current_theme": "forest"})
        assert controller.theme_service.current_theme() == "forest"

        with pytest.raises(StateUpdateFailed):
            await controller.update_preferences({"current_theme": "neon"})

    async def test_change_theme_is_undoable(self, controller):
        await controller.change_theme("light")
        assert controller.theme_service.current_theme() == "light"

        await controller.undo()

        assert controller.preferences_state.current_theme == "dark"
        assert controller.theme_service.current_theme() == "dark"

    async def test_sound_toggle_gates_cues(self, controller):
        await controller.set_sound_enabled(False)
        await controller.set_vibration_enabled(True)
        await controller.start_session("box4")
        tick(controller, 3)

        assert len(controller.audio.played) == 0
        assert list(controller.vibration.pulses) == [10, 10, 10, 50]

    async def test_storage_failure_is_not_fatal(self, registry):
        controller = BreathingController(
            registry=registry,
            store=FailingStore(),
            scheduler=PhaseScheduler(use_clock=False),
        )
        await controller.initialize()

        await controller.set_sound_volume(0.1)

        assert controller.preferences_state.sound_volume == 0.1
        await controller.shutdown()


class TestStatus:
    async def test_status(self, controller):
        await controller.start_session("box4")
        tick(controller, 2)

        status = controller.status()

        assert set(status) == {"session", "technique", "scheduler", "preferences", "history"}
        assert status["session"]["elapsed_seconds"] == 2
        assert status["technique"]["id"] == "box4"
        assert status["scheduler"]["current_time"] == 2
        assert status["history"]["can_undo"] is True

    async def test_shutdown_persists_and_disposes(self, registry):
        store = InMemoryStore()
        controller = BreathingController(
            registry=registry, store=store, scheduler=PhaseScheduler(use_clock=False)
        )
        await controller.initialize()
        controller.preferences_state.set_high_contrast(True)

        await controller.shutdown()

        assert json.loads(store.data["breathing-app-preferences"])["high_contrast"] is True
        assert controller.scheduler.technique is None
        assert controller.scheduler.capabilities()["listener_count"] == 0
