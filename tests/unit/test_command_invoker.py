"""Tests for CommandInvoker history and single-flight execution."""

import asyncio

import pytest

from breathwork.core.exceptions import CommandExecutionFailed
from breathwork.services.commands import (
    ChangeTechniqueCommand,
    CommandContext,
    CommandInvoker,
    CommandKind,
    PauseBreathingCommand,
    StartBreathingCommand,
)
from breathwork.services.commands.base import Command


class RecordingCommand(Command):
    """Appends to a shared log on execute/undo."""

    kind = CommandKind.CHANGE_THEME

    def __init__(self, label, log, fail_on=()):
        super().__init__(label)
        self.label = label
        self.log = log
        self.fail_on = fail_on
        self.executions = 0

    async def execute(self, context):
        self.executions += 1
        if "execute" in self.fail_on or (
            "redo" in self.fail_on and self.executions > 1
        ):
            raise RuntimeError(f"{self.label} failed")
        self.previous_state = {}
        self.log.append(("execute", self.label))
        return {"success": True, "label": self.label}

    async def undo(self, context):
        if "undo" in self.fail_on:
            raise RuntimeError(f"{self.label} undo failed")
        self.log.append(("undo", self.label))
        return {"success": True, "undone": self.label}


class BlockingCommand(RecordingCommand):
    def __init__(self, label, log, release):
        super().__init__(label, log)
        self.release = release

    async def execute(self, context):
        await self.release.wait()
        return await super().execute(context)


@pytest.fixture
def invoker():
    return CommandInvoker(max_history=5)


@pytest.fixture
def context():
    return CommandContext()


class TestExecute:
    async def test_records_history(self, invoker, context):
        log = []
        result = await invoker.execute_command(RecordingCommand("a", log), context)

        assert result == {"success": True, "label": "a"}
        assert invoker.current_index == 0
        assert invoker.can_undo()
        assert not invoker.can_redo()
        assert invoker.current_command().label == "a"

    async def test_failed_command_not_recorded(self, invoker, context):
        log = []
        with pytest.raises(CommandExecutionFailed) as exc_info:
            await invoker.execute_command(
                RecordingCommand("a", log, fail_on=("execute",)), context
            )

        assert exc_info.value.context["original_error"] == "a failed"
        assert invoker.history() == []
        assert not invoker.is_executing

    async def test_invalid_command_not_recorded(self, invoker, context):
        with pytest.raises(CommandExecutionFailed):
            await invoker.execute_command(PauseBreathingCommand("sideways"), context)
        assert invoker.history() == []

    async def test_rejects_non_commands(self, invoker, context):
        with pytest.raises(CommandExecutionFailed):
            await invoker.execute_command(object(), context)

    async def test_single_flight(self, invoker, context):
        log = []
        release = asyncio.Event()
        first = asyncio.create_task(
            invoker.execute_command(BlockingCommand("slow", log, release), context)
        )
        await asyncio.sleep(0)
        assert invoker.is_executing

        with pytest.raises(CommandExecutionFailed):
            await invoker.execute_command(RecordingCommand("fast", log), context)
        with pytest.raises(CommandExecutionFailed):
            await invoker.undo(context)

        release.set()
        await first

        assert log == [("execute", "slow")]
        assert not invoker.is_executing
        assert [entry["description"] for entry in invoker.history()] == ["slow"]


class TestUndoRedo:
    async def test_undo_then_redo(self, invoker, context):
        log = []
        await invoker.execute_command(RecordingCommand("a", log), context)
        await invoker.execute_command(RecordingCommand("b", log), context)

        await invoker.undo(context)
        assert invoker.current_index == 0
        assert invoker.can_redo()

        await invoker.redo(context)
        assert invoker.current_index == 1
        assert log == [
            ("execute", "a"),
            ("execute", "b"),
            ("undo", "b"),
            ("execute", "b"),
        ]

    async def test_nothing_to_undo(self, invoker, context):
        with pytest.raises(CommandExecutionFailed, match="Nothing to undo"):
            await invoker.undo(context)
        assert not invoker.is_executing

    async def test_nothing_to_redo(self, invoker, context):
        await invoker.execute_command(RecordingCommand("a", []), context)
        with pytest.raises(CommandExecutionFailed, match="Nothing to redo"):
            await invoker.redo(context)

    async def test_new_command_truncates_redo_tail(self, invoker, context):
        log = []
        for label in "abc":
            await invoker.execute_command(RecordingCommand(label, log), context)
        await invoker.undo(context)
        await invoker.undo(context)

        await invoker.execute_command(RecordingCommand("d", log), context)

        assert [e["description"] for e in invoker.history()] == ["a", "d"]
        assert not invoker.can_redo()

    async def test_failed_undo_keeps_cursor(self, invoker, context):
        await invoker.execute_command(
            RecordingCommand("a", [], fail_on=("undo",)), context
        )
        with pytest.raises(CommandExecutionFailed):
            await invoker.undo(context)
        assert invoker.current_index == 0

    async def test_failed_redo_rolls_cursor_back(self, invoker, context):
        await invoker.execute_command(
            RecordingCommand("a", [], fail_on=("redo",)), context
        )
        await invoker.undo(context)

        with pytest.raises(CommandExecutionFailed):
            await invoker.redo(context)

        assert invoker.current_index == -1
        assert invoker.can_redo()

    async def test_not_undoable(self, invoker, context):
        command = RecordingCommand("a", [])
        await invoker.execute_command(command, context)
        command.previous_state = None

        assert not invoker.can_undo()
        with pytest.raises(CommandExecutionFailed, match="cannot be undone"):
            await invoker.undo(context)


class TestHistoryBound:
    async def test_oldest_evicted(self, context):
        invoker = CommandInvoker(max_history=3)
        for label in "abcd":
            await invoker.execute_command(RecordingCommand(label, []), context)

        history = invoker.history()
        assert [e["description"] for e in history] == ["b", "c", "d"]
        assert invoker.current_index == 2
        assert all(e["executed"] for e in history)

    def test_invalid_bound(self):
        with pytest.raises(ValueError):
            CommandInvoker(max_history=-1)
        with pytest.raises(ValueError):
            CommandInvoker(max_history=0)

    def test_default_bound_from_settings(self):
        assert CommandInvoker().max_history == 50

    async def test_clear_history(self, invoker, context):
        await invoker.execute_command(RecordingCommand("a", []), context)
        invoker.clear_history()
        assert invoker.history() == []
        assert invoker.capabilities()["current_index"] == -1


class TestWithSessionCommands:
    async def test_start_change_undo_redo(
        self, invoker, command_context, session_state, scheduler, box4, technique_478
    ):
        await invoker.execute_command(StartBreathingCommand("box4", box4), command_context)
        for _ in range(3):
            scheduler.tick()
        await invoker.execute_command(
            ChangeTechniqueCommand("478", technique_478), command_context
        )

        await invoker.undo(command_context)
        assert session_state.current_technique_id == "box4"

        await invoker.redo(command_context)
        assert session_state.current_technique_id == "478"
        assert session_state.is_running

        history = invoker.history()
        assert [e["kind"] for e in history] == ["start", "change_technique"]

    async def test_start_undo_redo_round_trip(
        self, invoker, command_context, session_state, box4
    ):
        await invoker.execute_command(StartBreathingCommand("box4", box4), command_context)

        await invoker.undo(command_context)
        assert not session_state.is_running

        await invoker.redo(command_context)
        assert session_state.is_running
        assert session_state.current_technique_id == "box4"

    async def test_rejected_command_leaves_state_alone(
        self, invoker, command_context, session_state, technique_478
    ):
        release = asyncio.Event()
        blocked = asyncio.create_task(
            invoker.execute_command(BlockingCommand("slow", [], release), command_context)
        )
        await asyncio.sleep(0)

        with pytest.raises(CommandExecutionFailed):
            await invoker.execute_command(
                StartBreathingCommand("478", technique_478), command_context
            )

        assert not session_state.is_running
        assert session_state.current_technique_id is None
        release.set()
        await blocked
