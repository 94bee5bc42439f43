"""
Unit tests for the SM-2 interval calculator and scheduler.
"""

from datetime import UTC, date, datetime

import pytest

from learnloop.study.scheduler import (
    SM2Config,
    SM2Scheduler,
    grade_from_response,
    next_interval,
    performance_from_response,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class TestNextInterval:
    """Tests for the pass/fail interval rules."""

    def test_first_pass_is_one_day(self):
        update = next_interval(1, 0, 2.5, 1.0)
        assert update.interval == 1
        assert update.repetitions == 1
        assert update.ease_factor == pytest.approx(2.6)

    def test_second_pass_is_six_days(self):
        update = next_interval(1, 1, 2.6, 1.0)
        assert update.interval == 6
        assert update.repetitions == 2
        assert update.ease_factor == pytest.approx(2.7)

    def test_later_pass_multiplies_by_current_ease(self):
        # round(6 * 2.7) = 16, using the ease passed in
        update = next_interval(6, 2, 2.7, 1.0)
        assert update.interval == 16
        assert update.repetitions == 3

    def test_interval_rounds_half_up(self):
        update = next_interval(5, 2, 2.5, 0.8)
        assert update.interval == 13

    def test_grade_four_spaced_interval_keeps_ease(self):
        update = next_interval(6, 2, 2.5, 0.8)
        assert update.interval == 15
        assert update.repetitions == 3
        assert update.ease_factor == pytest.approx(2.5, abs=1e-6)

    def test_threshold_performance_passes_but_lowers_ease(self):
        update = next_interval(1, 0, 2.5, 0.6)
        assert update.repetitions == 1
        assert update.ease_factor == pytest.approx(2.36)

    def test_grade_four_keeps_ease(self):
        assert next_interval(1, 0, 2.5, 0.8).ease_factor == pytest.approx(2.5)

    def test_fail_resets(self):
        update = next_interval(16, 3, 2.5, 0.4)
        assert update.interval == 1
        assert update.repetitions == 0
        assert update.ease_factor == pytest.approx(2.18)

    def test_ease_never_below_minimum(self):
        update = next_interval(1, 0, 1.5, 0.0)
        assert update.ease_factor == pytest.approx(1.3)

    def test_performance_is_clamped(self):
        assert next_interval(1, 0, 2.5, 1.5) == next_interval(1, 0, 2.5, 1.0)
        assert next_interval(1, 0, 2.5, -1.0) == next_interval(1, 0, 2.5, 0.0)

    def test_custom_config(self):
        config = SM2Config(first_interval=2, second_interval=5)
        assert next_interval(1, 0, 2.5, 1.0, config).interval == 2
        assert next_interval(2, 1, 2.5, 1.0, config).interval == 5


class TestGradeFromResponse:
    @pytest.mark.parametrize(
        "is_correct,response_ms,grade",
        [
            (True, 3000, 5),
            (True, 5000, 4),
            (True, 7000, 4),
            (True, 12000, 3),
            (False, 1000, 2),
            (False, 8000, 1),
            (False, 10000, 0),
            (True, None, 4),
            (False, None, 0),
        ],
    )
    def test_grades(self, is_correct, response_ms, grade):
        assert grade_from_response(is_correct, response_ms) == grade

    def test_performance_scale(self):
        assert performance_from_response(True, 1000) == 1.0
        assert performance_from_response(False, None) == 0.0
        assert performance_from_response(True, None) == pytest.approx(0.8)


class TestSM2Scheduler:
    def test_initial_state(self):
        state = SM2Scheduler().initial_state("u1", "q1")
        assert state.ease_factor == 2.5
        assert state.repetitions == 0
        assert state.next_review is None
        assert state.is_due(date(2024, 6, 1))

    def test_advance_sets_next_review_and_bumps_version(self):
        scheduler = SM2Scheduler()
        state = scheduler.initial_state("u1", "q1")

        advanced = scheduler.advance(state, 1.0, NOW)

        assert advanced.next_review == date(2024, 6, 2)
        assert advanced.last_reviewed == NOW
        assert advanced.version == state.version + 1
        assert advanced.repetitions == 1
        # Input untouched
        assert state.repetitions == 0
        assert state.next_review is None

    def test_sequence_of_passes_grows_interval(self):
        scheduler = SM2Scheduler()
        state = scheduler.initial_state("u1", "q1")
        intervals = []
        for _ in range(4):
            state = scheduler.advance(state, 1.0, NOW)
            intervals.append(state.interval_days)
        assert intervals[:2] == [1, 6]
        assert intervals[2] > intervals[1]
        assert intervals[3] > intervals[2]
