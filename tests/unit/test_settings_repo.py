"""Tests for SettingsRepository."""

import pytest

from breathwork.core.exceptions import StorageError
from breathwork.persistence.repositories.settings_repo import SettingsRepository
from breathwork.services.preferences_state import PreferencesState


@pytest.fixture
def repo(test_db):
    return SettingsRepository(test_db)


@pytest.mark.asyncio
async def test_get_missing_key(repo):
    """Reading an unknown key returns None."""
    assert await repo.get("nope") is None


@pytest.mark.asyncio
async def test_set_and_get(repo):
    """Values round-trip and a second write replaces the first."""
    await repo.set("prefs", '{"a": 1}')
    await repo.set("prefs", '{"a": 2}')

    assert await repo.get("prefs") == '{"a": 2}'
    assert await repo.list_all() == {"prefs": '{"a": 2}'}


@pytest.mark.asyncio
async def test_delete(repo):
    """Delete reports whether a row was removed."""
    await repo.set("prefs", "{}")

    assert await repo.delete("prefs") is True
    assert await repo.delete("prefs") is False
    assert await repo.get("prefs") is None


@pytest.mark.asyncio
async def test_uninitialized_database_raises_storage_error(tmp_path):
    """Missing schema surfaces as StorageError, not a raw sqlite error."""
    repo = SettingsRepository(tmp_path / "empty.db")

    with pytest.raises(StorageError):
        await repo.get("prefs")
    with pytest.raises(StorageError):
        await repo.set("prefs", "{}")


@pytest.mark.asyncio
async def test_preferences_persist_through_repository(repo):
    """PreferencesState can use the repository as its store."""
    prefs = PreferencesState(store=repo)
    prefs.set_current_theme("sunset")
    prefs.set_sound_volume(0.8)
    await prefs.save()

    reloaded = PreferencesState(store=repo)
    assert await reloaded.load() is True
    assert reloaded.current_theme == "sunset"
    assert reloaded.sound_volume == 0.8
