"""
Breathing controller: the composition root of the session core.

Builds and owns one of each collaborator (technique registry, session and
preferences state, scheduler, command invoker, cue dispatcher, theme
service), wires them together and exposes the user actions. There are no
module-level instances; whoever needs a controller constructs one (the
FastAPI lifespan, the terminal runner, tests).

Tick flow:
    scheduler update -> SessionState.update_timer -> CueDispatcher.dispatch
"""

from typing import Any, Callable, Dict, List, Optional

import structlog

from breathwork.core.config import BreathingConfig, breathing_config, settings
from breathwork.core.exceptions import StateUpdateFailed, StorageError
from breathwork.core.technique_loader import TechniqueRegistry, load_techniques
from breathwork.domain.models.session import StateChange, TimerEvent
from breathwork.services.backends import (
    LoggingAudioBackend,
    LoggingVibrationBackend,
    ThemeService,
)
from breathwork.services.commands import (
    ChangeTechniqueCommand,
    ChangeThemeCommand,
    CommandContext,
    CommandInvoker,
    PauseBreathingCommand,
    StartBreathingCommand,
)
from breathwork.services.commands.base import resolve
from breathwork.services.cue_dispatcher import CueDispatcher
from breathwork.services.phase_scheduler import CYCLE_COMPLETE, UPDATE, PhaseScheduler
from breathwork.services.preferences_state import PreferencesState
from breathwork.services.protocols import (
    IAudioBackend,
    IThemeService,
    IVibrationBackend,
    KeyValueStore,
)
from breathwork.services.session_state import Clock, SessionState

log = structlog.get_logger(__name__)


class BreathingController:
    """Owns the session core and runs user actions through the invoker.

    Example:
        controller = BreathingController(store=SettingsRepository(db_path))
        await controller.initialize()
        await controller.start_session("478")
        ...
        await controller.shutdown()
    """

    def __init__(
        self,
        registry: Optional[TechniqueRegistry] = None,
        store: Optional[KeyValueStore] = None,
        scheduler: Optional[PhaseScheduler] = None,
        audio: Optional[IAudioBackend] = None,
        vibration: Optional[IVibrationBackend] = None,
        theme_service: Optional[IThemeService] = None,
        config: Optional[BreathingConfig] = None,
        max_history: Optional[int] = None,
        default_technique_id: Optional[str] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or breathing_config
        self.registry = registry or load_techniques()
        self.default_technique_id = default_technique_id or settings.default_technique_id
        self.store = store

        self.session_state = SessionState(clock=clock)
        self.preferences_state = PreferencesState(
            defaults=self.config.preferences, store=store, themes=self.config.themes
        )
        self.scheduler = scheduler or PhaseScheduler()
        self.invoker = CommandInvoker(max_history=max_history)
        self.audio = audio or LoggingAudioBackend()
        self.vibration = vibration or LoggingVibrationBackend()
        self.theme_service = theme_service or ThemeService(self.config.themes)
        self.cue_dispatcher = CueDispatcher(
            self.preferences_state, self.audio, self.vibration, self.config.cues
        )
        self.context = CommandContext(
            session_state=self.session_state,
            scheduler=self.scheduler,
            preferences_state=self.preferences_state,
            theme_service=self.theme_service,
        )

        self._initialized = False
        self._unsubscribers: List[Callable[[], None]] = []
        self._wire()

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def initialize(self) -> None:
        """Load preferences, install the selected technique and apply the theme."""
        await self.preferences_state.load()
        if not self.preferences_state.validate():
            log.warning("preferences_invalid_using_defaults")
            self.preferences_state.reset_to_defaults()

        technique_id = self._resolve_technique_id(self.preferences_state.selected_technique_id)
        self._install_idle(technique_id)
        await resolve(self.theme_service.apply_theme(self.preferences_state.current_theme))

        self._initialized = True
        log.info(
            "controller_initialized",
            technique_id=technique_id,
            theme=self.preferences_state.current_theme,
            techniques=len(self.registry),
        )

    async def shutdown(self) -> None:
        """Stop the clock, drop subscriptions and persist preferences."""
        self.scheduler.dispose()
        self.cue_dispatcher.detach()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self._persist()
        log.info("controller_shutdown")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # ==========================================================================
    # Session actions
    # ==========================================================================

    async def start_session(self, technique_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Start a session with the given or the selected technique.

        Raises:
            TechniqueNotFoundError: Unknown technique id
            CommandExecutionFailed: The start command failed or was rejected
        """
        technique_id = (
            technique_id
            or self.preferences_state.selected_technique_id
            or self.session_state.current_technique_id
        )
        technique = self.registry.get(technique_id)
        result = await self.invoker.execute_command(
            StartBreathingCommand(technique_id, technique), self.context
        )
        await self._select_technique(technique_id)
        return result

    async def pause_session(self) -> Dict[str, Any]:
        return await self.invoker.execute_command(
            PauseBreathingCommand("pause"), self.context
        )

    async def resume_session(self) -> Dict[str, Any]:
        return await self.invoker.execute_command(
            PauseBreathingCommand("resume"), self.context
        )

    def stop_session(self) -> None:
        """Stop the session and put the phase position back to second 0.

        Not a command: stopping is not recorded in the undo history.
        """
        self.scheduler.stop()
        self.session_state.stop_session()
        self.session_state.reset_session()
        technique = self.scheduler.technique or self.session_state.technique
        if technique is not None:
            self.session_state.seed_technique(technique.id, technique)
        self.scheduler.rewind()

    async def change_technique(self, technique_id: str) -> Dict[str, Any]:
        """
        Raises:
            TechniqueNotFoundError: Unknown technique id
            CommandExecutionFailed: The command failed or was rejected
        """
        technique = self.registry.get(technique_id)
        result = await self.invoker.execute_command(
            ChangeTechniqueCommand(technique_id, technique), self.context
        )
        await self._select_technique(technique_id)
        return result

    async def change_theme(self, theme: str) -> Dict[str, Any]:
        result = await self.invoker.execute_command(
            ChangeThemeCommand(theme, self.preferences_state.themes), self.context
        )
        await self._persist()
        return result

    async def undo(self) -> Dict[str, Any]:
        result = await self.invoker.undo(self.context)
        await self._sync_selection()
        return result

    async def redo(self) -> Dict[str, Any]:
        result = await self.invoker.redo(self.context)
        await self._sync_selection()
        return result

    # ==========================================================================
    # Preferences
    # ==========================================================================

    async def set_sound_enabled(self, enabled: bool) -> None:
        self.preferences_state.set_sound_enabled(enabled)
        await self._persist()

    async def set_vibration_enabled(self, enabled: bool) -> None:
        self.preferences_state.set_vibration_enabled(enabled)
        await self._persist()

    async def set_sound_volume(self, volume: float) -> None:
        self.preferences_state.set_sound_volume(volume)
        await self._persist()

    async def update_preferences(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Apply several preference fields and persist them.

        The theme goes through the theme service too; a changed
        selected_technique_id is installed when no session is active.

        Raises:
            StateUpdateFailed: Invalid value or unknown theme
            TechniqueNotFoundError: Unknown selected_technique_id
        """
        technique_id = values.get("selected_technique_id")
        if technique_id is not None:
            self.registry.get(technique_id)
        changes = self.preferences_state.update_preferences(values)
        if "current_theme" in changes:
            await resolve(self.theme_service.apply_theme(self.preferences_state.current_theme))
        await self._persist()
        return changes

    # ==========================================================================
    # Status
    # ==========================================================================

    def status(self) -> Dict[str, Any]:
        snapshot = self.session_state.snapshot
        return {
            "session": self.session_state.session_stats(),
            "technique": snapshot.technique.model_dump() if snapshot.technique else None,
            "scheduler": self.scheduler.state(),
            "preferences": self.preferences_state.summary(),
            "history": self.invoker.capabilities(),
        }

    # ==========================================================================
    # Wiring
    # ==========================================================================

    def _wire(self) -> None:
        self._unsubscribers.extend(
            [
                self.scheduler.on(UPDATE, self._on_tick),
                self.scheduler.on(CYCLE_COMPLETE, self._on_cycle_complete),
                self.preferences_state.subscribe(self._on_preferences_changed),
            ]
        )
        self.cue_dispatcher.attach(self.scheduler, dispatch_updates=False)

    def _on_tick(self, event: TimerEvent) -> None:
        try:
            self.session_state.update_timer(event.current_time, event.current_phase)
        except StateUpdateFailed as e:
            log.error("tick_rejected", current_time=event.current_time, error=e.message)
            return
        if self.session_state.is_running:
            self.cue_dispatcher.dispatch(event)

    def _on_cycle_complete(self, event: TimerEvent) -> None:
        log.info(
            "cycle_completed",
            technique_id=self.session_state.current_technique_id,
            cycles=event.cycles_completed,
            current_time=event.current_time,
        )

    def _on_preferences_changed(self, change: StateChange) -> None:
        if not change.changed("selected_technique_id"):
            return
        if self.session_state.is_session_active():
            return
        technique_id = change.changes["selected_technique_id"]["to"]
        if technique_id in self.registry and technique_id != self.session_state.current_technique_id:
            self._install_idle(technique_id)

    def _install_idle(self, technique_id: str) -> None:
        technique = self.registry.get(technique_id)
        self.session_state.seed_technique(technique_id, technique)
        self.scheduler.set_technique(technique)
        self.scheduler.rewind()

    def _resolve_technique_id(self, technique_id: Optional[str]) -> str:
        if technique_id in self.registry:
            return technique_id
        fallback = (
            self.default_technique_id
            if self.default_technique_id in self.registry
            else self.registry.default_id
        )
        log.warning(
            "selected_technique_unknown", technique_id=technique_id, fallback=fallback
        )
        return fallback

    async def _select_technique(self, technique_id: str) -> None:
        if self.preferences_state.selected_technique_id != technique_id:
            self.preferences_state.set_selected_technique_id(technique_id)
        await self._persist()

    async def _sync_selection(self) -> None:
        """Keep the persisted selection on the technique the session shows."""
        technique_id = self.session_state.current_technique_id
        if technique_id is not None:
            await self._select_technique(technique_id)
        else:
            await self._persist()

    async def _persist(self) -> None:
        if self.store is None:
            return
        try:
            await self.preferences_state.save()
        except StorageError as e:
            log.warning("preferences_save_failed", error=e.message)
