"""Technique domain models.

A technique is an immutable breathing pattern: an ordered list of phases with
an index-aligned list of whole-second durations. The session core only ever
asks a technique two things: its total cycle length and which phase a given
elapsed second falls into.

Core Models:
    - Phase: One named segment (inhale, hold, exhale)
    - PhaseInfo: Resolved position inside a cycle for one elapsed second
    - Technique: Ordered phases + durations, with phase lookup
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Phase(BaseModel):
    """Single named segment of a technique."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1, description="Stable phase key, e.g. 'inhale'")
    name: str = Field(min_length=1, description="Display name, e.g. 'Inhale'")


class PhaseInfo(BaseModel):
    """Position of one elapsed second inside a technique cycle.

    Invariant: time_in_phase + time_left == duration, with
    0 <= time_in_phase < duration.
    """

    model_config = ConfigDict(frozen=True)

    phase_index: int = Field(ge=0)
    phase: Phase
    duration: int = Field(gt=0)
    time_in_phase: int = Field(ge=0)
    time_left: int = Field(gt=0)

    @property
    def is_last_second(self) -> bool:
        """True on the final second of the phase."""
        return self.time_left == 1


class Technique(BaseModel):
    """Immutable breathing technique definition.

    Loaded from config/techniques.yaml by the technique loader and referenced
    by id everywhere else.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    benefits: str = ""
    pattern: str = Field(default="", description="Display label, e.g. '4-4-4-4'")
    phases: List[Phase] = Field(min_length=1)
    durations_sec: List[int] = Field(min_length=1)
    instructions: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_durations(self) -> "Technique":
        """Durations must be index-aligned with phases and positive."""
        if len(self.phases) != len(self.durations_sec):
            raise ValueError(
                f"Technique {self.id}: {len(self.phases)} phases but "
                f"{len(self.durations_sec)} durations"
            )
        for index, duration in enumerate(self.durations_sec):
            if duration <= 0:
                raise ValueError(
                    f"Technique {self.id}: duration of phase {index} must be positive"
                )
        return self

    @property
    def total_duration(self) -> int:
        """Length of one full cycle in seconds."""
        return sum(self.durations_sec)

    @property
    def phase_count(self) -> int:
        return len(self.phases)

    def phase_at(self, elapsed_seconds: int) -> PhaseInfo:
        """Resolve the phase for an elapsed second.

        Elapsed time past the end of a cycle wraps around, so this can be fed
        the session's total elapsed seconds directly.

        Raises:
            ValueError: If elapsed_seconds is negative
        """
        if elapsed_seconds < 0:
            raise ValueError(f"elapsed_seconds must be >= 0, got {elapsed_seconds}")

        offset = elapsed_seconds % self.total_duration
        phase_end = 0
        for index, duration in enumerate(self.durations_sec):
            phase_end += duration
            if offset < phase_end:
                time_in_phase = offset - (phase_end - duration)
                return PhaseInfo(
                    phase_index=index,
                    phase=self.phases[index],
                    duration=duration,
                    time_in_phase=time_in_phase,
                    time_left=duration - time_in_phase,
                )

        # offset < total_duration always lands inside the loop
        raise AssertionError(f"unreachable: offset {offset} in {self.id}")
