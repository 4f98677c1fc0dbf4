"""
Shared test fixtures.

Schedulers in tests run without the real-time clock (use_clock=False) and
are advanced with tick(), so every test is deterministic.
"""

import pytest
import tempfile
from pathlib import Path
from unittest.mock import patch

from breathwork.core.technique_loader import load_techniques
from breathwork.persistence.database import init_database
from breathwork.services.breathing_controller import BreathingController
from breathwork.services.commands import CommandContext
from breathwork.services.phase_scheduler import PhaseScheduler
from breathwork.services.preferences_state import InMemoryStore, PreferencesState
from breathwork.services.session_state import SessionState


@pytest.fixture(scope="session")
def registry():
    """Technique catalogue from config/techniques.yaml."""
    return load_techniques()


@pytest.fixture
def box4(registry):
    return registry.get("box4")


@pytest.fixture
def technique_478(registry):
    return registry.get("478")


@pytest.fixture
def scheduler():
    """Scheduler driven manually through tick()."""
    return PhaseScheduler(use_clock=False)


@pytest.fixture
def session_state():
    return SessionState()


@pytest.fixture
def preferences_state():
    return PreferencesState(store=InMemoryStore())


@pytest.fixture
def command_context(session_state, scheduler, preferences_state):
    """Command context with the scheduler feeding ticks into the session state."""
    scheduler.on(
        "update", lambda e: session_state.update_timer(e.current_time, e.current_phase)
    )
    return CommandContext(
        session_state=session_state,
        scheduler=scheduler,
        preferences_state=preferences_state,
    )


@pytest.fixture
async def controller(registry):
    """Initialized controller with an in-memory store and a manual scheduler."""
    controller = BreathingController(
        registry=registry,
        store=InMemoryStore(),
        scheduler=PhaseScheduler(use_clock=False),
    )
    await controller.initialize()
    yield controller
    await controller.shutdown()


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from breathwork.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("breathwork.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path
