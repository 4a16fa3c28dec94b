"""
Grading rules

Letter grades, percentages and exam result statuses. Everything here is pure
and works on plain numbers, so any collection can feed it.
"""
import logging
import math
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

# Lower bound of each band, highest first. A value equal to a cutoff belongs
# to that band.
GRADE_BANDS = (
    (90, "A+"),
    (80, "A"),
    (75, "B+"),
    (70, "B"),
    (65, "C+"),
    (60, "C"),
    (55, "D+"),
    (50, "D"),
)
FAILING_GRADE = "F"

PRECISION = 1


class GradingError(Exception):
    """Base class for rejected grading input."""


class InvalidPercentage(GradingError):
    def __init__(self, percentage):
        self.percentage = percentage
        super().__init__(f"Percentage must be between 0 and 100, got {percentage}")


class InvalidScoreRange(GradingError):
    def __init__(self, score, max_score):
        self.score = score
        self.max_score = max_score
        if max_score is None:
            message = f"Score cannot be negative, got {score}"
        elif max_score <= 0:
            message = f"Maximum score must be positive, got {max_score}"
        else:
            message = f"Score must be between 0 and {max_score}, got {score}"
        super().__init__(message)


class ResultStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    ABSENT = "absent"
    INCOMPLETE = "incomplete"


def round_to_precision(value: float) -> float:
    return round(value, PRECISION)


def classify_grade(percentage: float) -> str:
    """Map a percentage in [0, 100] to a letter grade."""
    if math.isnan(percentage) or percentage < 0 or percentage > 100:
        raise InvalidPercentage(percentage)
    for cutoff, letter in GRADE_BANDS:
        if percentage >= cutoff:
            return letter
    return FAILING_GRADE


def compute_percentage(score: float, max_score: float) -> float:
    if max_score <= 0 or score < 0 or score > max_score:
        raise InvalidScoreRange(score, max_score)
    return round_to_precision(score / max_score * 100)


def resolve_result_status(
    marks_obtained: Optional[float],
    passing_marks: float,
    submitted: bool,
    total_marks: Optional[float] = None,
) -> ResultStatus:
    """Work out the status of one exam result.

    Marks outside [0, total_marks] are rejected whatever the submission state.
    Absence then wins over everything, then missing marks (grading not
    finished), then the comparison against the exam's passing marks.
    """
    if marks_obtained is not None and (
        marks_obtained < 0 or (total_marks is not None and marks_obtained > total_marks)
    ):
        raise InvalidScoreRange(marks_obtained, total_marks)
    if not submitted:
        return ResultStatus.ABSENT
    if marks_obtained is None:
        return ResultStatus.INCOMPLETE
    if marks_obtained >= passing_marks:
        return ResultStatus.PASS
    return ResultStatus.FAIL
