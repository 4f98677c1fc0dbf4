"""
Custom exception hierarchy for the breathing session core.

All application exceptions inherit from BreathworkError and carry a context
dict with the identifiers relevant to the failure (command name, technique id,
offending field, original message).
"""

from typing import Any, Dict, Optional


class BreathworkError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = dict(context or {})
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging and API responses."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(BreathworkError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# Technique Errors
# =============================================================================


class TechniqueError(BreathworkError):
    """Technique definition or lookup error."""

    pass


class TechniqueNotFoundError(TechniqueError):
    """Technique id is not in the registry."""

    def __init__(self, technique_id: str):
        super().__init__(
            f"Technique not found: {technique_id}",
            {"technique_id": technique_id},
        )
        self.technique_id = technique_id


# =============================================================================
# Session Core Errors
# =============================================================================


class CommandExecutionFailed(BreathworkError):
    """A command failed validation, execution, undo or redo.

    Also raised when the invoker rejects a command because another one is
    still in flight, or when the history has nothing to undo/redo.
    """

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        original_error: Optional[str] = None,
        **ids: Any,
    ):
        context: Dict[str, Any] = {}
        if command is not None:
            context["command"] = command
        if original_error is not None:
            context["original_error"] = original_error
        context.update(ids)
        super().__init__(message, context)
        self.command = command
        self.original_error = original_error


class DependencyInjectionFailed(BreathworkError):
    """A required collaborator is missing from the execution context."""

    def __init__(self, message: str, dependency: Optional[str] = None, **extra: Any):
        super().__init__(message, {"dependency": dependency, **extra})
        self.dependency = dependency


class StateUpdateFailed(BreathworkError):
    """A session state invariant check failed."""

    def __init__(
        self, message: str, field: Optional[str] = None, value: Any = None, **extra: Any
    ):
        super().__init__(message, {"field": field, "value": value, **extra})
        self.field = field


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(BreathworkError):
    """Key-value store read or write failed."""

    pass
