"""Tests for the Technique model and phase lookup."""

import pytest
from pydantic import ValidationError

from breathwork.domain.models.technique import Phase, Technique


def make_technique(durations, technique_id="t"):
    return Technique(
        id=technique_id,
        name="Test",
        phases=[Phase(key=f"p{i}", name=f"P{i}") for i in range(len(durations))],
        durations_sec=durations,
    )


class TestTechniqueValidation:
    def test_lengths_must_match(self):
        with pytest.raises(ValidationError):
            Technique(
                id="bad",
                name="Bad",
                phases=[Phase(key="inhale", name="Inhale")],
                durations_sec=[4, 4],
            )

    def test_durations_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_technique([4, 0])

    def test_needs_at_least_one_phase(self):
        with pytest.raises(ValidationError):
            make_technique([])

    def test_is_frozen(self):
        technique = make_technique([4])
        with pytest.raises(ValidationError):
            technique.id = "other"


class TestPhaseAt:
    def test_total_duration_is_sum(self, registry):
        """Every catalogue technique's total equals the sum of its durations."""
        for technique in registry:
            assert technique.total_duration == sum(technique.durations_sec)

    def test_time_left_plus_time_in_phase_is_duration(self, registry):
        """phase_at(k).time_left + time_in_phase == duration for every second."""
        for technique in registry:
            for k in range(technique.total_duration * 2):
                info = technique.phase_at(k)
                assert info.time_left + info.time_in_phase == info.duration
                assert 0 <= info.time_in_phase < info.duration

    def test_initial_phase(self, box4):
        info = box4.phase_at(0)
        assert info.phase_index == 0
        assert info.time_in_phase == 0
        assert info.time_left == 4
        assert info.phase.key == "inhale"

    def test_box4_second_five(self, box4):
        info = box4.phase_at(5)
        assert (info.phase_index, info.time_in_phase, info.time_left) == (1, 1, 3)
        assert info.phase.key == "hold1"

    def test_last_second_of_phase(self, box4):
        assert box4.phase_at(3).is_last_second
        assert not box4.phase_at(4).is_last_second

    def test_wraps_after_cycle(self, technique_478):
        assert technique_478.phase_at(19) == technique_478.phase_at(0)
        assert technique_478.phase_at(19 + 11) == technique_478.phase_at(11)

    def test_uneven_phases(self, technique_478):
        info = technique_478.phase_at(11)
        assert info.phase.key == "exhale"
        assert info.time_in_phase == 0
        assert info.time_left == 8

    def test_negative_elapsed_rejected(self, box4):
        with pytest.raises(ValueError):
            box4.phase_at(-1)
