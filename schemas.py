"""
Database Schemas

MongoDB collection schemas as Pydantic models.
Each Pydantic model represents a collection in your database.
Class name -> collection name (lowercased)

References to other documents are stored as the referenced _id string.

App entities:
- Student
- Teacher
- SchoolClass
- Course
- Exam
- ExamResult
- Grade
- Attendance
"""
from enum import Enum
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
import datetime as dt

from reports import AttendanceStatus


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class ExamType(str, Enum):
    QUIZ = "quiz"
    ASSIGNMENT = "assignment"
    MIDTERM = "midterm"
    FINAL = "final"
    PRACTICAL = "practical"
    OTHER = "other"


class ExamStatus(str, Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Student(BaseModel):
    admission_number: str = Field(..., min_length=1, description="Unique admission number")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    date_of_birth: Optional[dt.date] = None
    gender: Optional[Gender] = None
    address: Optional[str] = None
    parent_contact: Optional[str] = None
    enrollment_date: Optional[dt.date] = None
    form: str = Field(..., description="Form/grade level, e.g. Form 1")
    stream: Optional[str] = Field(None, description="Stream within the form, e.g. A")
    class_id: Optional[str] = Field(None, description="Reference to class _id as string")
    hostel: Optional[str] = None


class Teacher(BaseModel):
    staff_id: str = Field(..., min_length=1, description="Unique staff number")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    date_of_birth: Optional[dt.date] = None
    gender: Optional[Gender] = None
    address: Optional[str] = None
    contact_number: Optional[str] = None
    qualification: Optional[str] = None
    specialization: List[str] = []
    joining_date: Optional[dt.date] = None
    subjects: List[str] = []
    class_ids: List[str] = []


class ScheduleSlot(BaseModel):
    day: str
    start_time: str
    end_time: str
    room: Optional[str] = None


class SchoolClass(BaseModel):
    name: str = Field(..., min_length=1, description="e.g. Form 1A")
    academic_year: str = Field(..., description="e.g. 2023-2024")
    form: str = Field(..., description="e.g. Form 1")
    stream: Optional[str] = None
    class_teacher_id: Optional[str] = None
    student_ids: List[str] = []
    course_ids: List[str] = []
    schedule: List[ScheduleSlot] = []
    capacity: Optional[int] = Field(None, ge=0)
    is_active: bool = True


class Course(BaseModel):
    course_code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    credits: float = Field(..., ge=0)
    duration: Optional[str] = None
    level: Optional[str] = None
    department: Optional[str] = None
    is_active: bool = True
    syllabus: Optional[str] = None
    prerequisites: List[str] = []
    teacher_ids: List[str] = []


class Exam(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    exam_type: ExamType
    course_id: str
    class_id: Optional[str] = None
    total_marks: float = Field(..., gt=0)
    passing_marks: float = Field(..., ge=0)
    duration: int = Field(..., ge=1, description="Minutes")
    exam_date: dt.date
    start_time: str
    end_time: str
    instructions: Optional[str] = None
    status: ExamStatus = ExamStatus.SCHEDULED

    @model_validator(mode="after")
    def check_passing_marks(self):
        if self.passing_marks > self.total_marks:
            raise ValueError("Passing marks cannot exceed total marks")
        return self


class ExamResult(BaseModel):
    """Marks entry for one student. Status is worked out on save."""

    student_id: str
    marks_obtained: Optional[float] = Field(None, description="Leave empty while grading is unfinished")
    submitted: bool = True
    feedback: Optional[str] = None


class Grade(BaseModel):
    student_id: str
    course_id: str
    class_id: str
    academic_year: str = Field(..., min_length=1)
    term: str = Field(..., min_length=1, description="e.g. Term 1")
    exam_type: str = Field(..., min_length=1, description="e.g. Final Exam")
    score: float
    max_score: float
    remarks: Optional[str] = None


class Attendance(BaseModel):
    student_id: str = Field(..., description="Reference to student _id as string")
    class_id: str = Field(..., description="Reference to class _id as string")
    course_id: Optional[str] = None
    date: dt.date = Field(..., description="Attendance date (YYYY-MM-DD)")
    status: AttendanceStatus
    remarks: Optional[str] = None


class BulkAttendanceEntry(BaseModel):
    student_id: str
    status: AttendanceStatus
    remarks: Optional[str] = None


class BulkAttendance(BaseModel):
    class_id: str
    course_id: Optional[str] = None
    date: dt.date
    entries: List[BulkAttendanceEntry]
