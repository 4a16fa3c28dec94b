"""
Report aggregation

Statistics and groupings built from records that were already loaded from the
database. Nothing in this module touches storage; every function takes plain
records and returns a fresh, frozen result.
"""
import datetime as dt
import logging
from collections import Counter
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from grading import (
    ResultStatus,
    classify_grade,
    compute_percentage,
    round_to_precision,
)

logger = logging.getLogger(__name__)

TREND_IMPROVING = "improving"
TREND_DECLINING = "declining"
TREND_STABLE = "stable"

# Attendance rates are compared in percentage points, term averages relatively.
ATTENDANCE_TREND_POINTS = 5
ACADEMIC_TREND_RATIO = 0.05

PASSING_AVERAGE = 50


def _rate(part: float, whole: float) -> float:
    if whole <= 0:
        return 0
    return round_to_precision(part / whole * 100)


class Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Exam results
# ---------------------------------------------------------------------------

class ExamResultRecord(Record):
    exam_id: str
    student_id: str
    marks_obtained: Optional[float] = Field(None, ge=0)
    status: ResultStatus
    submitted_at: Optional[dt.datetime] = None


class ExamEntry(Record):
    student_id: str
    result: Optional[ExamResultRecord] = None

    @property
    def status(self) -> ResultStatus:
        if self.result is None:
            return ResultStatus.ABSENT
        return self.result.status


class ExamSummary(Record):
    total_students: int = 0
    total_submitted: int = 0
    total_passed: int = 0
    total_failed: int = 0
    total_absent: int = 0
    total_incomplete: int = 0
    highest_marks: float = 0
    lowest_marks: float = 0
    average_marks: float = 0
    pass_rate: float = 0
    submission_rate: float = 0


def pair_exam_results(
    student_ids: Iterable[str], results: Iterable[ExamResultRecord]
) -> List[ExamEntry]:
    """Pair every enrolled student with their result, or None."""
    by_student = {result.student_id: result for result in results}
    entries = [ExamEntry(student_id=sid, result=by_student.pop(sid, None)) for sid in student_ids]
    if by_student:
        logger.warning(
            "Ignoring %d exam result(s) for students outside the enrolled set: %s",
            len(by_student),
            ", ".join(sorted(by_student)),
        )
    return entries


def summarize_exam_results(entries: Sequence[ExamEntry]) -> ExamSummary:
    counts = Counter(entry.status for entry in entries)
    submitted = [entry.result for entry in entries if entry.status != ResultStatus.ABSENT]
    marks = [result.marks_obtained for result in submitted if result.marks_obtained is not None]

    total_students = len(entries)
    total_submitted = len(submitted)
    total_passed = counts[ResultStatus.PASS]

    summary = ExamSummary(
        total_students=total_students,
        total_submitted=total_submitted,
        total_passed=total_passed,
        total_failed=counts[ResultStatus.FAIL],
        total_absent=counts[ResultStatus.ABSENT],
        total_incomplete=counts[ResultStatus.INCOMPLETE],
        highest_marks=max(marks) if marks else 0,
        lowest_marks=min(marks) if marks else 0,
        average_marks=round_to_precision(sum(marks) / len(marks)) if marks else 0,
        pass_rate=_rate(total_passed, total_submitted),
        submission_rate=_rate(total_submitted, total_students),
    )
    logger.debug("Exam summary over %d students: %s", total_students, summary)
    return summary


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------

class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class AttendanceRecord(Record):
    student_id: str
    date: dt.date
    status: AttendanceStatus


class AttendanceSummary(Record):
    total: int = 0
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    present_percentage: float = 0
    absent_percentage: float = 0
    late_percentage: float = 0
    excused_percentage: float = 0
    attendance_rate: float = 0


class DailyAttendance(Record):
    date: dt.date
    total: int
    present: int
    absent: int
    late: int
    excused: int


def attendance_window(
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    today: Optional[dt.date] = None,
    days: int = 30,
) -> Tuple[Optional[dt.date], Optional[dt.date]]:
    """Date bounds for an attendance query.

    Without any bound the window is the trailing ``days`` days ending today.
    A single bound leaves the other side open.
    """
    if start_date is None and end_date is None:
        today = today or dt.date.today()
        return today - dt.timedelta(days=days), today
    return start_date, end_date


def month_bounds(today: Optional[dt.date] = None) -> Tuple[dt.date, dt.date, dt.date]:
    """Start of the previous month, start of this month, and today."""
    today = today or dt.date.today()
    this_month = today.replace(day=1)
    previous_month = (this_month - dt.timedelta(days=1)).replace(day=1)
    return previous_month, this_month, today


def summarize_attendance(records: Iterable[AttendanceRecord]) -> AttendanceSummary:
    counts = Counter(record.status for record in records)
    total = sum(counts.values())
    present = counts[AttendanceStatus.PRESENT]
    absent = counts[AttendanceStatus.ABSENT]
    late = counts[AttendanceStatus.LATE]
    excused = counts[AttendanceStatus.EXCUSED]
    return AttendanceSummary(
        total=total,
        present=present,
        absent=absent,
        late=late,
        excused=excused,
        present_percentage=_rate(present, total),
        absent_percentage=_rate(absent, total),
        late_percentage=_rate(late, total),
        excused_percentage=_rate(excused, total),
        attendance_rate=_rate(present + late, total),
    )


def daily_attendance(records: Iterable[AttendanceRecord]) -> List[DailyAttendance]:
    days: Dict[dt.date, Counter] = {}
    for record in records:
        days.setdefault(record.date, Counter())[record.status] += 1
    return [
        DailyAttendance(
            date=day,
            total=sum(counts.values()),
            present=counts[AttendanceStatus.PRESENT],
            absent=counts[AttendanceStatus.ABSENT],
            late=counts[AttendanceStatus.LATE],
            excused=counts[AttendanceStatus.EXCUSED],
        )
        for day, counts in sorted(days.items())
    ]


def attendance_trend(current_rate: float, previous_rate: float) -> str:
    if current_rate > previous_rate + ATTENDANCE_TREND_POINTS:
        return TREND_IMPROVING
    if current_rate < previous_rate - ATTENDANCE_TREND_POINTS:
        return TREND_DECLINING
    return TREND_STABLE


# ---------------------------------------------------------------------------
# Grades
# ---------------------------------------------------------------------------

class GradeRecord(Record):
    """One graded assessment. percentage and letter_grade are always derived."""

    student_id: str = Field(..., min_length=1)
    course_id: str = Field(..., min_length=1)
    class_id: str = Field(..., min_length=1)
    academic_year: str
    term: str = Field(..., min_length=1)
    exam_type: str
    score: float
    max_score: float
    percentage: float = 0
    letter_grade: str = ""
    id: Optional[str] = None
    remarks: Optional[str] = None
    student: Optional[dict] = None
    course: Optional[dict] = None
    school_class: Optional[dict] = None

    @model_validator(mode="before")
    @classmethod
    def derive_grade(cls, data):
        # GradingError is not a ValueError, so pydantic lets it through.
        if isinstance(data, dict) and data.get("score") is not None and data.get("max_score") is not None:
            percentage = compute_percentage(data["score"], data["max_score"])
            data = {**data, "percentage": percentage, "letter_grade": classify_grade(percentage)}
        return data


class StudentGrades(Record):
    student_id: str
    student: Optional[dict] = None
    grades: List[GradeRecord] = []


class TermGrades(Record):
    term: str
    students: Dict[str, StudentGrades] = {}


class ClassGrades(Record):
    class_id: str
    school_class: Optional[dict] = None
    terms: Dict[str, TermGrades] = {}


class GradeReport(Record):
    classes: Dict[str, ClassGrades] = {}
    terms: List[str] = []

    @property
    def entry_count(self) -> int:
        return sum(
            len(student.grades)
            for school_class in self.classes.values()
            for term in school_class.terms.values()
            for student in term.students.values()
        )


def group_grade_report(grades: Iterable[GradeRecord]) -> GradeReport:
    """Group grades class -> term -> student.

    Keys keep the order in which they first appear. Each grade lands in the
    bucket named by its own class_id, term and student_id; callers must pass
    consistent records.
    """
    tree: Dict[str, dict] = {}
    for grade in grades:
        class_node = tree.setdefault(
            grade.class_id, {"school_class": grade.school_class, "terms": {}}
        )
        term_node = class_node["terms"].setdefault(grade.term, {})
        student_node = term_node.setdefault(
            grade.student_id, {"student": grade.student, "grades": []}
        )
        student_node["grades"].append(grade)

    classes = {
        class_id: ClassGrades(
            class_id=class_id,
            school_class=class_node["school_class"],
            terms={
                term: TermGrades(
                    term=term,
                    students={
                        student_id: StudentGrades(student_id=student_id, **student_node)
                        for student_id, student_node in students.items()
                    },
                )
                for term, students in class_node["terms"].items()
            },
        )
        for class_id, class_node in tree.items()
    }
    terms = sorted({term for node in tree.values() for term in node["terms"]})
    return GradeReport(classes=classes, terms=terms)


def group_grades_by_term(grades: Iterable[GradeRecord]) -> Dict[str, Dict[str, List[GradeRecord]]]:
    grouped: Dict[str, Dict[str, List[GradeRecord]]] = {}
    for grade in grades:
        grouped.setdefault(grade.academic_year, {}).setdefault(grade.term, []).append(grade)
    return grouped


def previous_term(academic_year: str, term: str) -> Optional[Tuple[str, str]]:
    """The term before ``term``: Term 3 -> Term 2 -> Term 1 -> last year's Term 3."""
    if term == "Term 3":
        return academic_year, "Term 2"
    if term == "Term 2":
        return academic_year, "Term 1"
    if term == "Term 1":
        parts = academic_year.split("-")
        if len(parts) == 2 and all(part.strip().isdigit() for part in parts):
            first, second = (int(part) for part in parts)
            return f"{first - 1}-{second - 1}", "Term 3"
    return None


def _average_percentage(grades: Sequence[GradeRecord]) -> float:
    if not grades:
        return 0
    return sum(grade.score / grade.max_score * 100 for grade in grades) / len(grades)


class AcademicSummary(Record):
    current_academic_year: Optional[str] = None
    current_term: Optional[str] = None
    average_score: float = 0
    total_courses: int = 0
    performance_trend: str = TREND_STABLE


def summarize_academic_progress(grades: Sequence[GradeRecord]) -> AcademicSummary:
    """Latest term average for one student, with the trend against the term before."""
    if not grades:
        return AcademicSummary()

    latest = max(grades, key=lambda grade: (grade.academic_year, grade.term))
    academic_year, term = latest.academic_year, latest.term
    current = [g for g in grades if g.academic_year == academic_year and g.term == term]
    average = _average_percentage(current)

    trend = TREND_STABLE
    before = previous_term(academic_year, term)
    if before is not None:
        previous = [g for g in grades if (g.academic_year, g.term) == before]
        if previous:
            previous_average = _average_percentage(previous)
            if average > previous_average * (1 + ACADEMIC_TREND_RATIO):
                trend = TREND_IMPROVING
            elif average < previous_average * (1 - ACADEMIC_TREND_RATIO):
                trend = TREND_DECLINING

    return AcademicSummary(
        current_academic_year=academic_year,
        current_term=term,
        average_score=round_to_precision(average),
        total_courses=len({g.course_id for g in current}),
        performance_trend=trend,
    )


class RankedStudent(Record):
    student_id: str
    student: Optional[dict] = None
    courses: Dict[str, Optional[GradeRecord]] = {}
    average_percentage: float = 0
    overall_grade: str = ""
    rank: int = 0


class ClassStatistics(Record):
    highest_average: float = 0
    lowest_average: float = 0
    class_average: float = 0
    pass_rate: float = 0


class ClassGradeReport(Record):
    students: List[RankedStudent] = []
    statistics: ClassStatistics = ClassStatistics()


def rank_class(
    students: Sequence[dict],
    course_ids: Sequence[str],
    grades: Iterable[GradeRecord],
) -> ClassGradeReport:
    """Rank students by their average percentage across courses.

    ``students`` are documents with an ``_id``. Courses without a grade do not
    count towards the average. Equal averages keep the input order.
    """
    by_student: Dict[str, Dict[str, GradeRecord]] = {}
    for grade in grades:
        by_student.setdefault(grade.student_id, {})[grade.course_id] = grade

    rows = []
    for student in students:
        student_id = str(student["_id"])
        graded = by_student.get(student_id, {})
        courses = {course_id: graded.get(course_id) for course_id in course_ids}
        for course_id, grade in graded.items():
            courses.setdefault(course_id, grade)
        percentages = [grade.percentage for grade in courses.values() if grade is not None]
        average = sum(percentages) / len(percentages) if percentages else 0
        rows.append((student_id, student, courses, average))

    rows.sort(key=lambda row: row[3], reverse=True)
    ranked = [
        RankedStudent(
            student_id=student_id,
            student=student,
            courses=courses,
            average_percentage=round_to_precision(average),
            overall_grade=classify_grade(average),
            rank=position,
        )
        for position, (student_id, student, courses, average) in enumerate(rows, start=1)
    ]

    if not ranked:
        return ClassGradeReport()

    averages = [row[3] for row in rows]
    passing = sum(1 for average in averages if average >= PASSING_AVERAGE)
    statistics = ClassStatistics(
        highest_average=round_to_precision(averages[0]),
        lowest_average=round_to_precision(averages[-1]),
        class_average=round_to_precision(sum(averages) / len(averages)),
        pass_rate=_rate(passing, len(averages)),
    )
    return ClassGradeReport(students=ranked, statistics=statistics)
