"""
Unit tests for letter grades, percentages and result statuses.
"""
import math

import pytest

from grading import (
    InvalidPercentage,
    InvalidScoreRange,
    ResultStatus,
    classify_grade,
    compute_percentage,
    resolve_result_status,
)


class TestClassifyGrade:

    @pytest.mark.parametrize("percentage", [80, 84.9, 89.99, 90, 100])
    def test_top_band(self, percentage):
        assert classify_grade(percentage) in ("A", "A+")

    @pytest.mark.parametrize("percentage", [0, 10, 49.9])
    def test_lowest_band(self, percentage):
        assert classify_grade(percentage) == "F"

    @pytest.mark.parametrize(
        "percentage, expected",
        [(50, "D"), (55, "D+"), (60, "C"), (65, "C+"), (70, "B"), (75, "B+"), (80, "A"), (90, "A+")],
    )
    def test_cutoff_belongs_to_upper_band(self, percentage, expected):
        assert classify_grade(percentage) == expected

    def test_just_below_cutoff_stays_in_lower_band(self):
        assert classify_grade(69.99) == "C+"

    @pytest.mark.parametrize("percentage", [-0.1, 100.1, 250, math.nan])
    def test_out_of_range_rejected(self, percentage):
        with pytest.raises(InvalidPercentage):
            classify_grade(percentage)


class TestComputePercentage:

    def test_rounds_to_one_decimal(self):
        assert compute_percentage(2, 3) == 66.7

    def test_full_marks(self):
        assert compute_percentage(85, 100) == 85.0
        assert classify_grade(compute_percentage(85, 100)) == "A"

    @pytest.mark.parametrize("score, max_score", [(101, 100), (-1, 100), (5, 0)])
    def test_invalid_range_rejected(self, score, max_score):
        with pytest.raises(InvalidScoreRange):
            compute_percentage(score, max_score)


class TestResolveResultStatus:

    def test_absent_wins_over_marks(self):
        assert resolve_result_status(80, passing_marks=50, submitted=False) == ResultStatus.ABSENT

    def test_absent_without_marks(self):
        assert resolve_result_status(None, passing_marks=50, submitted=False) == ResultStatus.ABSENT

    def test_missing_marks_is_incomplete(self):
        assert resolve_result_status(None, passing_marks=50, submitted=True) == ResultStatus.INCOMPLETE

    def test_pass_at_threshold(self):
        assert resolve_result_status(50, passing_marks=50, submitted=True) == ResultStatus.PASS

    def test_fail_below_threshold(self):
        assert resolve_result_status(49.5, passing_marks=50, submitted=True) == ResultStatus.FAIL

    def test_marks_above_total_rejected(self):
        with pytest.raises(InvalidScoreRange):
            resolve_result_status(120, passing_marks=50, submitted=True, total_marks=100)

    def test_negative_marks_rejected(self):
        with pytest.raises(InvalidScoreRange, match="cannot be negative"):
            resolve_result_status(-1, passing_marks=50, submitted=True)

    def test_negative_marks_rejected_when_absent(self):
        with pytest.raises(InvalidScoreRange):
            resolve_result_status(-5, passing_marks=50, submitted=False, total_marks=100)

    def test_marks_above_total_rejected_when_absent(self):
        with pytest.raises(InvalidScoreRange):
            resolve_result_status(150, passing_marks=50, submitted=False, total_marks=100)
