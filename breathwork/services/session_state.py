"""
Breathing session state.

Canonical snapshot of "where the session is" plus bookkeeping, independent of
how time advances. The PhaseScheduler drives it through update_timer(); the
commands drive the lifecycle transitions. Every mutation replaces the whole
snapshot and then publishes one StateChange, so observers never see partial
phase data.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

import structlog
from pydantic import ValidationError

from breathwork.core.exceptions import StateUpdateFailed
from breathwork.core.technique_loader import TechniqueRegistry
from breathwork.domain.models.session import SessionSnapshot, StateChange
from breathwork.domain.models.technique import PhaseInfo, Technique
from breathwork.services.notifier import Notifier, Unsubscribe

log = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState:
    """Holds the session snapshot and its mutation methods.

    Example:
        state = SessionState()
        state.subscribe(lambda change: print(change.current.elapsed_seconds))
        state.start_session("box4", registry.get("box4"))
        state.update_timer(1, technique.phase_at(1))
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or _utcnow
        self._snapshot = SessionSnapshot()
        self._notifier: Notifier[StateChange] = Notifier("session_state")

    # ==========================================================================
    # Observation
    # ==========================================================================

    @property
    def snapshot(self) -> SessionSnapshot:
        """Copy of the current snapshot."""
        return self._snapshot.model_copy()

    def subscribe(self, callback: Callable[[StateChange], None]) -> Unsubscribe:
        return self._notifier.subscribe(callback)

    def unsubscribe(self, callback: Callable[[StateChange], None]) -> None:
        self._notifier.unsubscribe(callback)

    def subscribe_to_key(
        self, key: str, callback: Callable[[Dict[str, Any], SessionSnapshot], None]
    ) -> Unsubscribe:
        """Call back only when one snapshot field changed.

        The callback receives ``{"from": old, "to": new}`` and the new snapshot.
        """

        def on_change(change: StateChange) -> None:
            if change.changed(key):
                callback(change.changes[key], change.current)

        return self._notifier.subscribe(on_change)

    @property
    def observer_count(self) -> int:
        return self._notifier.subscriber_count

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def initialize(self, technique_id: str, registry: TechniqueRegistry) -> bool:
        """Install a technique and its initial phase without starting.

        Returns False (and leaves the state untouched) for an unknown id.
        """
        technique = registry.find(technique_id)
        if technique is None:
            log.warning("initial_technique_not_found", technique_id=technique_id)
            return False
        self.seed_technique(technique_id, technique)
        return True

    def seed_technique(self, technique_id: str, technique: Technique) -> None:
        """Install technique and the phase position for elapsed second 0."""
        self._require_technique(technique, technique_id)
        self._set_state(
            current_technique_id=technique_id,
            technique=technique,
            **self._position_fields(technique, 0),
        )

    def start_session(self, technique_id: str, technique: Technique) -> None:
        """Begin a session at elapsed second 0 of the given technique."""
        self._require_technique(technique, technique_id)
        self._set_state(
            is_running=True,
            is_paused=False,
            current_technique_id=technique_id,
            technique=technique,
            session_start_time=self._clock(),
            session_duration_ms=0,
            elapsed_seconds=0,
            cycles_completed=0,
            **self._position_fields(technique, 0),
        )
        log.info("session_started", technique_id=technique_id)

    def pause_session(self) -> None:
        if not self._snapshot.is_running:
            return
        self._set_state(is_running=False, is_paused=True)
        log.info("session_paused", elapsed_seconds=self._snapshot.elapsed_seconds)

    def resume_session(self) -> None:
        if not self._snapshot.is_paused:
            return
        self._set_state(is_running=True, is_paused=False)
        log.info("session_resumed", elapsed_seconds=self._snapshot.elapsed_seconds)

    def stop_session(self) -> None:
        """Stop and clear elapsed time; the phase position is left as-is.

        Callers that need a clean phase also call reset_session().
        """
        self._set_state(
            is_running=False,
            is_paused=False,
            elapsed_seconds=0,
            cycles_completed=0,
            session_start_time=None,
            session_duration_ms=0,
        )
        log.info("session_stopped")

    def reset_session(self) -> None:
        """Stop and zero everything, including the phase position."""
        self._set_state(
            is_running=False,
            is_paused=False,
            elapsed_seconds=0,
            phase_index=0,
            time_in_phase=0,
            time_left=0,
            cycles_completed=0,
            session_start_time=None,
            session_duration_ms=0,
            current_phase=None,
        )

    def update_timer(
        self, elapsed_seconds: int, phase_info: Union[PhaseInfo, Dict[str, Any], None]
    ) -> None:
        """Apply one scheduler tick.

        The phase snapshot is stored verbatim; cycles_completed and
        session_duration_ms are recomputed.

        Raises:
            StateUpdateFailed: Missing/invalid phase snapshot or negative time
        """
        if phase_info is None:
            raise StateUpdateFailed(
                "Timer update without phase information", field="current_phase"
            )
        if isinstance(elapsed_seconds, bool) or not isinstance(elapsed_seconds, int):
            raise StateUpdateFailed(
                "elapsed_seconds must be an integer",
                field="elapsed_seconds",
                value=elapsed_seconds,
            )
        if elapsed_seconds < 0:
            raise StateUpdateFailed(
                "elapsed_seconds must be non-negative",
                field="elapsed_seconds",
                value=elapsed_seconds,
            )
        if not isinstance(phase_info, PhaseInfo):
            try:
                phase_info = PhaseInfo.model_validate(phase_info)
            except ValidationError as e:
                raise StateUpdateFailed(
                    "Invalid phase information",
                    field="current_phase",
                    value=str(e),
                ) from e

        updates: Dict[str, Any] = {
            "elapsed_seconds": elapsed_seconds,
            "current_phase": phase_info,
            "phase_index": phase_info.phase_index,
            "time_in_phase": phase_info.time_in_phase,
            "time_left": phase_info.time_left,
        }

        technique = self._snapshot.technique
        if technique is not None and technique.total_duration > 0:
            updates["cycles_completed"] = elapsed_seconds // technique.total_duration

        if self._snapshot.session_start_time is not None:
            delta = self._clock() - self._snapshot.session_start_time
            updates["session_duration_ms"] = max(0, int(delta.total_seconds() * 1000))

        self._set_state(**updates)

    def change_technique(self, technique_id: str, technique: Technique) -> None:
        """Replace the technique and restart the cycle at elapsed second 0."""
        self._require_technique(technique, technique_id)
        self._set_state(
            current_technique_id=technique_id,
            technique=technique,
            elapsed_seconds=0,
            cycles_completed=0,
            **self._position_fields(technique, 0),
        )
        log.info("technique_changed", technique_id=technique_id)

    def restore_position(
        self,
        technique_id: Optional[str],
        technique: Optional[Technique],
        elapsed_seconds: int,
        cycles_completed: int,
    ) -> None:
        """Put back a technique together with previously captured time fields."""
        updates: Dict[str, Any] = {
            "current_technique_id": technique_id,
            "technique": technique,
            "elapsed_seconds": elapsed_seconds,
            "cycles_completed": cycles_completed,
        }
        if technique is not None:
            updates.update(self._position_fields(technique, elapsed_seconds))
        else:
            updates.update(
                current_phase=None, phase_index=0, time_in_phase=0, time_left=0
            )
        self._set_state(**updates)

    # ==========================================================================
    # Read accessors
    # ==========================================================================

    @property
    def is_running(self) -> bool:
        return self._snapshot.is_running

    @property
    def is_paused(self) -> bool:
        return self._snapshot.is_paused

    @property
    def current_technique_id(self) -> Optional[str]:
        return self._snapshot.current_technique_id

    @property
    def technique(self) -> Optional[Technique]:
        return self._snapshot.technique

    @property
    def elapsed_seconds(self) -> int:
        return self._snapshot.elapsed_seconds

    @property
    def cycles_completed(self) -> int:
        return self._snapshot.cycles_completed

    @property
    def current_phase(self) -> Optional[PhaseInfo]:
        return self._snapshot.current_phase

    def is_session_active(self) -> bool:
        return self._snapshot.is_active

    def technique_duration(self) -> int:
        technique = self._snapshot.technique
        return technique.total_duration if technique else 0

    def total_phases(self) -> int:
        technique = self._snapshot.technique
        return technique.phase_count if technique else 0

    def session_progress(self) -> float:
        """Percent of one cycle covered by total elapsed time, capped at 100."""
        total = self.technique_duration()
        if total == 0:
            return 0.0
        return min(100.0, self._snapshot.elapsed_seconds / total * 100)

    def cycle_progress(self) -> float:
        """Percent of the current cycle elapsed."""
        total = self.technique_duration()
        if total == 0:
            return 0.0
        return min(100.0, (self._snapshot.elapsed_seconds % total) / total * 100)

    def phase_progress(self) -> float:
        """Percent of the current phase elapsed."""
        technique = self._snapshot.technique
        index = self._snapshot.phase_index
        if technique is None or index >= technique.phase_count:
            return 0.0
        duration = technique.durations_sec[index]
        return min(100.0, self._snapshot.time_in_phase / duration * 100)

    def session_duration_minutes(self) -> int:
        return self._snapshot.session_duration_ms // 60000

    def average_cycle_time(self) -> float:
        """Elapsed seconds per completed cycle (0 before the first cycle)."""
        if self._snapshot.cycles_completed == 0:
            return 0.0
        return self._snapshot.elapsed_seconds / self._snapshot.cycles_completed

    def session_stats(self) -> Dict[str, Any]:
        s = self._snapshot
        return {
            "is_running": s.is_running,
            "is_paused": s.is_paused,
            "elapsed_seconds": s.elapsed_seconds,
            "session_duration_ms": s.session_duration_ms,
            "cycles_completed": s.cycles_completed,
            "current_technique_id": s.current_technique_id,
            "session_progress": self.session_progress(),
            "cycle_progress": self.cycle_progress(),
            "phase_progress": self.phase_progress(),
            "current_phase": s.current_phase.model_dump() if s.current_phase else None,
            "phase_index": s.phase_index,
            "time_in_phase": s.time_in_phase,
            "time_left": s.time_left,
        }

    def export_session_data(self) -> Dict[str, Any]:
        """Session summary for reporting."""
        s = self._snapshot
        return {
            "session_stats": self.session_stats(),
            "technique_id": s.current_technique_id,
            "start_time": s.session_start_time.isoformat() if s.session_start_time else None,
            "end_time": self._clock().isoformat(),
            "duration_ms": s.session_duration_ms,
            "cycles_completed": s.cycles_completed,
            "average_cycle_time": self.average_cycle_time(),
        }

    def import_session_data(
        self, data: Dict[str, Any], registry: Optional[TechniqueRegistry] = None
    ) -> None:
        """Restore reporting fields from export_session_data() output.

        The technique is only reinstalled when a registry is given and knows
        the exported id.
        """
        updates: Dict[str, Any] = {
            "session_duration_ms": int(data.get("duration_ms") or 0),
            "cycles_completed": int(data.get("cycles_completed") or 0),
        }
        start_time = data.get("start_time")
        updates["session_start_time"] = (
            datetime.fromisoformat(start_time) if start_time else None
        )

        technique_id = data.get("technique_id")
        technique = registry.find(technique_id) if registry else None
        if technique is not None:
            updates.update(
                current_technique_id=technique_id,
                technique=technique,
                **self._position_fields(technique, 0),
            )
        self._set_state(**updates)

    def validate_state(self) -> None:
        """Check the snapshot invariants.

        Raises:
            StateUpdateFailed: An invariant does not hold
        """
        self._check_invariants(self._snapshot)

    # ==========================================================================
    # Internals
    # ==========================================================================

    @staticmethod
    def _position_fields(technique: Technique, elapsed_seconds: int) -> Dict[str, Any]:
        info = technique.phase_at(elapsed_seconds)
        return {
            "current_phase": info,
            "phase_index": info.phase_index,
            "time_in_phase": info.time_in_phase,
            "time_left": info.time_left,
        }

    @staticmethod
    def _require_technique(technique: Optional[Technique], technique_id: Optional[str]):
        if technique is None:
            raise StateUpdateFailed(
                "A technique is required", field="technique", technique_id=technique_id
            )
        if not isinstance(technique, Technique):
            raise StateUpdateFailed(
                "technique must be a Technique",
                field="technique",
                value=type(technique).__name__,
            )

    @staticmethod
    def _check_invariants(snapshot: SessionSnapshot) -> None:
        if snapshot.is_running and snapshot.is_paused:
            raise StateUpdateFailed(
                "Session cannot be running and paused at once", field="is_paused"
            )
        if snapshot.is_running and snapshot.technique is None:
            raise StateUpdateFailed("Running session has no technique", field="technique")
        if snapshot.is_running and snapshot.current_phase is None:
            raise StateUpdateFailed(
                "Running session has no current phase", field="current_phase"
            )

    def _set_state(self, **updates: Any) -> None:
        previous = self._snapshot
        try:
            current = SessionSnapshot(**{**dict(previous), **updates})
        except ValidationError as e:
            raise StateUpdateFailed(
                "Invalid session state update",
                field=",".join(updates),
                value=str(e),
            ) from e
        self._check_invariants(current)

        changes = {
            key: {"from": getattr(previous, key), "to": getattr(current, key)}
            for key in updates
            if getattr(previous, key) != getattr(current, key)
        }
        self._snapshot = current
        if not changes:
            return

        log.debug("session_state_updated", changed=sorted(changes))
        self._notifier.notify(
            StateChange(
                previous=previous.model_copy(),
                current=current.model_copy(),
                changes=changes,
            )
        )
