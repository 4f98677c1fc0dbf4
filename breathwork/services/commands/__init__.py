"""
Command layer.

Every session-mutating user action is a Command executed through the
CommandInvoker, which serializes execution and keeps the undo/redo history.
"""

from .base import Command, CommandContext, CommandKind
from .invoker import CommandInvoker
from .session_commands import (
    ChangeTechniqueCommand,
    PauseBreathingCommand,
    StartBreathingCommand,
)
from .theme_commands import ChangeThemeCommand

__all__ = [
    "Command",
    "CommandContext",
    "CommandKind",
    "CommandInvoker",
    "StartBreathingCommand",
    "PauseBreathingCommand",
    "ChangeTechniqueCommand",
    "ChangeThemeCommand",
]
