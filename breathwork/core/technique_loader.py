"""Technique loader for the technique catalogue YAML.

Loads technique definitions from config/techniques.yaml into a
TechniqueRegistry: a validated mapping from technique id to Technique,
resolved once at startup. Lookups never import or construct anything at
runtime; an unknown id is a TechniqueNotFoundError.
"""

from pathlib import Path
from typing import Dict, Iterator, List, Optional

import structlog
import yaml
from pydantic import ValidationError

from breathwork.core.exceptions import ConfigurationError, TechniqueNotFoundError
from breathwork.domain.models.technique import Technique

log = structlog.get_logger(__name__)

DEFAULT_TECHNIQUES_FILE = (
    Path(__file__).resolve().parent.parent.parent / "config" / "techniques.yaml"
)


class TechniqueRegistry:
    """Read-only catalogue of techniques keyed by id.

    Example:
        registry = load_techniques()
        box = registry.get("box4")
        box.phase_at(5).phase.key  # 'hold1'
    """

    def __init__(self, techniques: List[Technique], default_id: Optional[str] = None):
        self._techniques: Dict[str, Technique] = {}
        for technique in techniques:
            if technique.id in self._techniques:
                raise ConfigurationError(
                    f"Duplicate technique id: {technique.id}",
                    {"technique_id": technique.id},
                )
            self._techniques[technique.id] = technique

        if not self._techniques:
            raise ConfigurationError("Technique catalogue is empty")

        if default_id is not None and default_id not in self._techniques:
            raise ConfigurationError(
                f"Default technique {default_id} is not in the catalogue",
                {"technique_id": default_id},
            )
        self._default_id = default_id or next(iter(self._techniques))

    def get(self, technique_id: str) -> Technique:
        """Look up a technique.

        Raises:
            TechniqueNotFoundError: Unknown id
        """
        try:
            return self._techniques[technique_id]
        except KeyError:
            raise TechniqueNotFoundError(technique_id) from None

    def find(self, technique_id: Optional[str]) -> Optional[Technique]:
        """Like get() but returns None for unknown or empty ids."""
        if not technique_id:
            return None
        return self._techniques.get(technique_id)

    def default(self) -> Technique:
        return self._techniques[self._default_id]

    @property
    def default_id(self) -> str:
        return self._default_id

    def ids(self) -> List[str]:
        return list(self._techniques)

    def all(self) -> List[Technique]:
        return list(self._techniques.values())

    def __contains__(self, technique_id: object) -> bool:
        return technique_id in self._techniques

    def __iter__(self) -> Iterator[Technique]:
        return iter(self._techniques.values())

    def __len__(self) -> int:
        return len(self._techniques)


def load_techniques(
    path: Optional[Path] = None, default_id: Optional[str] = None
) -> TechniqueRegistry:
    """Load the technique catalogue from YAML.

    Args:
        path: Override config/techniques.yaml (for testing)
        default_id: Technique returned by registry.default(); must exist

    Returns:
        TechniqueRegistry with every technique validated

    Raises:
        ConfigurationError: Missing file, malformed YAML structure, invalid
            technique definition or duplicate ids
    """
    path = Path(path) if path is not None else DEFAULT_TECHNIQUES_FILE
    if not path.exists():
        raise ConfigurationError(
            f"Technique catalogue not found: {path}", {"path": str(path)}
        )

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    entries = data.get("techniques")
    if not isinstance(entries, list):
        raise ConfigurationError(
            f"{path}: expected a 'techniques' list", {"path": str(path)}
        )

    techniques = []
    for entry in entries:
        try:
            techniques.append(Technique(**entry))
        except (TypeError, ValidationError) as e:
            technique_id = entry.get("id") if isinstance(entry, dict) else None
            raise ConfigurationError(
                f"Invalid technique definition: {technique_id}",
                {"path": str(path), "technique_id": technique_id, "error": str(e)},
            ) from e

    registry = TechniqueRegistry(techniques, default_id=default_id)
    log.info(
        "techniques_loaded",
        path=str(path),
        count=len(registry),
        default=registry.default_id,
    )
    return registry
