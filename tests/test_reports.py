"""
Unit tests for exam, attendance and grade report aggregation.
"""
import datetime as dt
import random

import pytest

from grading import InvalidScoreRange, ResultStatus
from reports import (
    AttendanceRecord,
    AttendanceStatus,
    ExamEntry,
    ExamResultRecord,
    ExamSummary,
    GradeRecord,
    attendance_trend,
    attendance_window,
    daily_attendance,
    group_grade_report,
    group_grades_by_term,
    month_bounds,
    pair_exam_results,
    previous_term,
    rank_class,
    summarize_academic_progress,
    summarize_attendance,
    summarize_exam_results,
)


def result(student_id, marks, status, exam_id="exam-1"):
    return ExamResultRecord(exam_id=exam_id, student_id=student_id, marks_obtained=marks, status=status)


def grade(student_id="s1", class_id="c1", term="Term 1", exam_type="Final Exam", score=80,
          course_id="math", academic_year="2023-2024", max_score=100):
    return GradeRecord(
        student_id=student_id,
        course_id=course_id,
        class_id=class_id,
        academic_year=academic_year,
        term=term,
        exam_type=exam_type,
        score=score,
        max_score=max_score,
    )


class TestExamSummary:

    def test_two_submitted_one_absent(self):
        entries = pair_exam_results(
            ["s1", "s2", "s3"],
            [result("s1", 40, ResultStatus.FAIL), result("s2", 60, ResultStatus.PASS)],
        )
        summary = summarize_exam_results(entries)
        assert summary == ExamSummary(
            total_students=3,
            total_submitted=2,
            total_passed=1,
            total_failed=1,
            total_absent=1,
            total_incomplete=0,
            highest_marks=60,
            lowest_marks=40,
            average_marks=50,
            pass_rate=50,
            submission_rate=66.7,
        )

    def test_nobody_submitted_gives_zeros(self):
        summary = summarize_exam_results(pair_exam_results(["s1", "s2"], []))
        assert summary.total_absent == 2
        assert summary.highest_marks == summary.lowest_marks == summary.average_marks == 0
        assert summary.pass_rate == 0
        assert summary.submission_rate == 0

    def test_no_students(self):
        assert summarize_exam_results([]) == ExamSummary()

    def test_incomplete_counts_as_submitted_without_marks(self):
        entries = pair_exam_results(
            ["s1", "s2"],
            [result("s1", None, ResultStatus.INCOMPLETE), result("s2", 70, ResultStatus.PASS)],
        )
        summary = summarize_exam_results(entries)
        assert summary.total_submitted == 2
        assert summary.total_incomplete == 1
        assert summary.highest_marks == summary.lowest_marks == summary.average_marks == 70
        assert summary.pass_rate == 50

    def test_recorded_absence_is_not_submitted(self):
        entries = pair_exam_results(["s1"], [result("s1", 0, ResultStatus.ABSENT)])
        summary = summarize_exam_results(entries)
        assert summary.total_absent == 1
        assert summary.total_submitted == 0

    def test_results_outside_enrolment_are_ignored(self, caplog):
        entries = pair_exam_results(["s1"], [result("s1", 55, ResultStatus.PASS), result("ghost", 90, ResultStatus.PASS)])
        assert [e.student_id for e in entries] == ["s1"]
        assert "ghost" in caplog.text
        assert summarize_exam_results(entries).highest_marks == 55

    def test_does_not_depend_on_order(self):
        entries = pair_exam_results(
            ["s1", "s2", "s3"],
            [result("s1", 30, ResultStatus.FAIL), result("s2", 90, ResultStatus.PASS), result("s3", 65, ResultStatus.PASS)],
        )
        assert summarize_exam_results(entries) == summarize_exam_results(list(reversed(entries)))

    def test_counts_are_consistent_for_random_sets(self):
        rng = random.Random(1234)
        for _ in range(200):
            entries = []
            for index in range(rng.randint(0, 30)):
                status = rng.choice(list(ResultStatus) + [None])
                if status is None:
                    entries.append(ExamEntry(student_id=f"s{index}"))
                    continue
                marks = None if status == ResultStatus.INCOMPLETE else rng.uniform(0, 100)
                entries.append(ExamEntry(student_id=f"s{index}", result=result(f"s{index}", marks, status)))
            summary = summarize_exam_results(entries)
            assert summary.total_submitted == summary.total_passed + summary.total_failed + summary.total_incomplete
            assert summary.total_students == summary.total_submitted + summary.total_absent
            assert 0 <= summary.pass_rate <= 100
            assert 0 <= summary.submission_rate <= 100
            assert summary.lowest_marks - 0.05 <= summary.average_marks <= summary.highest_marks + 0.05

    def test_summary_is_frozen(self):
        summary = summarize_exam_results([])
        with pytest.raises(Exception):
            summary.total_students = 5


class TestAttendanceSummary:

    def _records(self, statuses):
        start = dt.date(2024, 3, 1)
        return [
            AttendanceRecord(student_id="s1", date=start + dt.timedelta(days=i), status=status)
            for i, status in enumerate(statuses)
        ]

    def test_ten_days(self):
        records = self._records(["present"] * 7 + ["absent"] * 2 + ["late"])
        summary = summarize_attendance(records)
        assert (summary.total, summary.present, summary.absent, summary.late, summary.excused) == (10, 7, 2, 1, 0)
        assert summary.present_percentage == 70
        assert summary.absent_percentage == 20
        assert summary.late_percentage == 10
        assert summary.excused_percentage == 0
        assert summary.attendance_rate == 80

    def test_empty(self):
        summary = summarize_attendance([])
        assert summary.total == 0
        assert summary.present_percentage == summary.attendance_rate == 0

    def test_percentages_add_up(self):
        rng = random.Random(99)
        statuses = [s.value for s in AttendanceStatus]
        for _ in range(100):
            records = self._records([rng.choice(statuses) for _ in range(rng.randint(1, 40))])
            summary = summarize_attendance(records)
            total = (summary.present_percentage + summary.absent_percentage
                     + summary.late_percentage + summary.excused_percentage)
            assert total == pytest.approx(100, abs=0.2)

    def test_daily_breakdown_sorted_by_date(self):
        records = [
            AttendanceRecord(student_id="s1", date=dt.date(2024, 3, 2), status="absent"),
            AttendanceRecord(student_id="s2", date=dt.date(2024, 3, 1), status="present"),
            AttendanceRecord(student_id="s1", date=dt.date(2024, 3, 1), status="late"),
        ]
        days = daily_attendance(records)
        assert [d.date for d in days] == [dt.date(2024, 3, 1), dt.date(2024, 3, 2)]
        assert (days[0].total, days[0].present, days[0].late) == (2, 1, 1)
        assert days[1].absent == 1

    def test_default_window_is_trailing_thirty_days(self):
        today = dt.date(2024, 3, 31)
        assert attendance_window(today=today) == (dt.date(2024, 3, 1), today)

    def test_single_bound_leaves_other_side_open(self):
        start = dt.date(2024, 1, 1)
        assert attendance_window(start_date=start) == (start, None)

    def test_month_bounds(self):
        assert month_bounds(dt.date(2024, 1, 15)) == (dt.date(2023, 12, 1), dt.date(2024, 1, 1), dt.date(2024, 1, 15))

    @pytest.mark.parametrize(
        "current, previous, expected",
        [(90, 80, "improving"), (80, 90, "declining"), (85, 80, "stable"), (75, 80, "stable")],
    )
    def test_attendance_trend(self, current, previous, expected):
        assert attendance_trend(current, previous) == expected


class TestGradeRecord:

    def test_percentage_and_letter_are_derived(self):
        record = grade(score=85)
        assert record.percentage == 85.0
        assert record.letter_grade == "A"

    def test_score_above_max_rejected(self):
        with pytest.raises(InvalidScoreRange):
            grade(score=110, max_score=100)


class TestGradeReport:

    def test_same_student_same_term_share_one_bucket(self):
        report = group_grade_report([grade(exam_type="Midterm"), grade(exam_type="Final Exam")])
        students = report.classes["c1"].terms["Term 1"].students
        assert list(students) == ["s1"]
        assert len(students["s1"].grades) == 2

    def test_keys_keep_first_appearance_order(self):
        report = group_grade_report([
            grade(class_id="c2", term="Term 2", student_id="s9"),
            grade(class_id="c1", term="Term 1", student_id="s1"),
            grade(class_id="c2", term="Term 1", student_id="s3"),
            grade(class_id="c2", term="Term 2", student_id="s2"),
        ])
        assert list(report.classes) == ["c2", "c1"]
        assert list(report.classes["c2"].terms) == ["Term 2", "Term 1"]
        assert list(report.classes["c2"].terms["Term 2"].students) == ["s9", "s2"]
        assert report.terms == ["Term 1", "Term 2"]

    def test_every_record_lands_exactly_once(self):
        rng = random.Random(7)
        records = [
            grade(
                student_id=rng.choice(["s1", "s2", "s3"]),
                class_id=rng.choice(["c1", "c2"]),
                term=rng.choice(["Term 1", "Term 2", "Term 3"]),
                exam_type=f"quiz-{i}",
                score=rng.randint(0, 100),
            )
            for i in range(60)
        ]
        report = group_grade_report(records)
        assert report.entry_count == len(records)
        for school_class in report.classes.values():
            for term in school_class.terms.values():
                for student in term.students.values():
                    for g in student.grades:
                        assert (g.class_id, g.term, g.student_id) == (school_class.class_id, term.term, student.student_id)

    def test_metadata_taken_from_first_record(self):
        first = grade().model_copy(update={"student": {"first_name": "Ama"}, "school_class": {"name": "Form 1A"}})
        report = group_grade_report([first, grade(exam_type="Quiz")])
        assert report.classes["c1"].school_class == {"name": "Form 1A"}
        assert report.classes["c1"].terms["Term 1"].students["s1"].student == {"first_name": "Ama"}

    def test_empty_input(self):
        report = group_grade_report([])
        assert report.classes == {}
        assert report.entry_count == 0

    def test_group_by_year_and_term(self):
        grouped = group_grades_by_term([
            grade(academic_year="2023-2024", term="Term 2"),
            grade(academic_year="2023-2024", term="Term 1"),
            grade(academic_year="2022-2023", term="Term 3"),
        ])
        assert list(grouped) == ["2023-2024", "2022-2023"]
        assert list(grouped["2023-2024"]) == ["Term 2", "Term 1"]


class TestAcademicSummary:

    @pytest.mark.parametrize(
        "academic_year, term, expected",
        [
            ("2023-2024", "Term 3", ("2023-2024", "Term 2")),
            ("2023-2024", "Term 2", ("2023-2024", "Term 1")),
            ("2023-2024", "Term 1", ("2022-2023", "Term 3")),
            ("2023", "Term 1", None),
            ("2023-2024", "Semester 1", None),
        ],
    )
    def test_previous_term(self, academic_year, term, expected):
        assert previous_term(academic_year, term) == expected

    def test_no_grades(self):
        summary = summarize_academic_progress([])
        assert summary.current_term is None
        assert summary.average_score == 0
        assert summary.performance_trend == "stable"

    def test_improving_against_previous_year(self):
        summary = summarize_academic_progress([
            grade(academic_year="2022-2023", term="Term 3", score=60),
            grade(academic_year="2023-2024", term="Term 1", score=80, course_id="math"),
            grade(academic_year="2023-2024", term="Term 1", score=70, course_id="english"),
        ])
        assert summary.current_academic_year == "2023-2024"
        assert summary.current_term == "Term 1"
        assert summary.average_score == 75.0
        assert summary.total_courses == 2
        assert summary.performance_trend == "improving"

    def test_declining(self):
        summary = summarize_academic_progress([grade(term="Term 1", score=80), grade(term="Term 2", score=60)])
        assert summary.performance_trend == "declining"

    def test_small_change_is_stable(self):
        summary = summarize_academic_progress([grade(term="Term 1", score=80), grade(term="Term 2", score=82)])
        assert summary.performance_trend == "stable"


class TestClassRanking:

    def test_ranks_by_average(self):
        students = [{"_id": "s1"}, {"_id": "s2"}, {"_id": "s3"}]
        grades = [
            grade(student_id="s1", course_id="math", score=40),
            grade(student_id="s1", course_id="english", score=50),
            grade(student_id="s2", course_id="math", score=90),
            grade(student_id="s3", course_id="math", score=70),
            grade(student_id="s3", course_id="english", score=60),
        ]
        report = rank_class(students, ["math", "english"], grades)
        assert [(s.student_id, s.rank) for s in report.students] == [("s2", 1), ("s3", 2), ("s1", 3)]
        assert report.students[0].average_percentage == 90
        assert report.students[0].overall_grade == "A+"
        assert report.students[0].courses["english"] is None
        assert report.statistics.highest_average == 90
        assert report.statistics.lowest_average == 45
        assert report.statistics.class_average == 66.7
        assert report.statistics.pass_rate == 66.7

    def test_student_without_grades_ranks_last(self):
        report = rank_class([{"_id": "s1"}, {"_id": "s2"}], ["math"], [grade(student_id="s2", score=55)])
        assert [s.student_id for s in report.students] == ["s2", "s1"]
        assert report.students[1].overall_grade == "F"

    def test_empty_class(self):
        report = rank_class([], ["math"], [])
        assert report.students == []
        assert report.statistics.class_average == 0
