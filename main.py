import csv
import datetime as dt
import logging
import re
from io import StringIO
from typing import List, Optional

from bson import ObjectId
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import config
import database
from database import (
    DatabaseUnavailable,
    create_document,
    delete_document,
    get_db,
    get_document,
    get_documents,
    get_page,
    object_id,
    serialize,
    update_document,
    upsert_document,
)
from grading import GradingError, ResultStatus, classify_grade, compute_percentage, resolve_result_status
from reports import (
    AttendanceRecord,
    ExamResultRecord,
    GradeRecord,
    attendance_trend,
    attendance_window,
    daily_attendance,
    group_grade_report,
    group_grades_by_term,
    month_bounds,
    pair_exam_results,
    rank_class,
    summarize_academic_progress,
    summarize_attendance,
    summarize_exam_results,
)
from schemas import (
    Student as StudentSchema,
    Teacher as TeacherSchema,
    SchoolClass as SchoolClassSchema,
    Course as CourseSchema,
    Exam as ExamSchema,
    ExamResult as ExamResultSchema,
    Grade as GradeSchema,
    Attendance as AttendanceSchema,
    BulkAttendance as BulkAttendanceSchema,
)

config.configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="School Records API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STUDENT_FIELDS = ("first_name", "last_name", "admission_number")
CLASS_FIELDS = ("name", "academic_year", "form", "stream")
COURSE_FIELDS = ("name", "course_code")


class IdList(BaseModel):
    ids: List[str]


@app.exception_handler(GradingError)
async def grading_error_handler(request: Request, exc: GradingError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(DatabaseUnavailable)
async def database_unavailable_handler(request: Request, exc: DatabaseUnavailable):
    return JSONResponse(status_code=500, content={"detail": "Database not available"})


@app.get("/")
def read_root():
    return {"message": "School Records API ready"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["database_name"] = getattr(database.db, 'name', 'unknown')
            response["connection_status"] = "Connected"
            try:
                response["collections"] = database.db.list_collection_names()[:10]
            except Exception as e:
                logger.exception("Listing collections failed")
                response["database"] = f"⚠️ Connected but error listing collections: {str(e)[:80]}"
        else:
            response["database"] = "❌ Database not initialized"
    except Exception as e:
        logger.exception("Database check failed")
        response["database"] = f"❌ Error: {str(e)[:120]}"
    response["database_url"] = "✅ Set" if config.DATABASE_URL else "❌ Not Set"
    response["database_name"] = "✅ Set" if config.DATABASE_NAME else "❌ Not Set"
    return response


# Schemas endpoint for viewer
@app.get("/schema")
def get_schema():
    from schemas import Student, Teacher, SchoolClass, Course, Exam, ExamResult, Grade, Attendance
    def model_fields(model):
        return {k: str(v.annotation) for k, v in model.model_fields.items()}
    return {
        "student": model_fields(Student),
        "teacher": model_fields(Teacher),
        "schoolclass": model_fields(SchoolClass),
        "course": model_fields(Course),
        "exam": model_fields(Exam),
        "examresult": model_fields(ExamResult),
        "grade": model_fields(Grade),
        "attendance": model_fields(Attendance),
    }


# Helpers

def parse_id(value: str, entity: str) -> ObjectId:
    _id = object_id(value)
    if _id is None:
        raise HTTPException(status_code=400, detail=f"Invalid {entity} ID")
    return _id


def fetch(collection: str, value: str, entity: str) -> dict:
    doc = get_document(collection, parse_id(value, entity))
    if doc is None:
        raise HTTPException(status_code=404, detail=f"{entity.capitalize()} not found")
    return doc


def ensure_unique(collection: str, key: dict, message: str, exclude: Optional[ObjectId] = None):
    query = dict(key)
    if exclude is not None:
        query["_id"] = {"$ne": exclude}
    if get_db()[collection].find_one(query) is not None:
        raise HTTPException(status_code=409, detail=message)


def day_start(value: dt.date) -> dt.datetime:
    return dt.datetime.combine(value, dt.time.min)


def as_date(value) -> dt.date:
    return value.date() if isinstance(value, dt.datetime) else value


def date_range(start: Optional[dt.date], end: Optional[dt.date]) -> dict:
    rng = {}
    if start:
        rng["$gte"] = day_start(start)
    if end:
        rng["$lte"] = day_start(end)
    return rng


def pick(doc: Optional[dict], fields) -> Optional[dict]:
    if doc is None:
        return None
    picked = {"_id": str(doc["_id"])}
    picked.update({field: doc.get(field) for field in fields})
    return picked


def lookup(collection: str, ids, fields) -> dict:
    """Documents by string id, trimmed to ``fields``."""
    oids = [oid for oid in (object_id(i) for i in set(ids)) if oid is not None]
    if not oids:
        return {}
    docs = get_documents(collection, {"_id": {"$in": oids}})
    return {str(doc["_id"]): pick(doc, fields) for doc in docs}


def class_students(class_id: str) -> list:
    return get_documents("student", {"class_id": class_id}, sort=[("last_name", 1), ("first_name", 1)])


def attendance_record(doc: dict) -> AttendanceRecord:
    return AttendanceRecord(student_id=doc["student_id"], date=as_date(doc["date"]), status=doc["status"])


def result_status(doc: dict, exam: dict) -> ResultStatus:
    """Status of a stored result against the exam's current marks."""
    return resolve_result_status(
        doc.get("marks_obtained"),
        passing_marks=exam["passing_marks"],
        submitted=doc.get("submitted", doc.get("status") != ResultStatus.ABSENT),
        total_marks=exam["total_marks"],
    )


def exam_result_record(doc: dict, exam: dict) -> ExamResultRecord:
    return ExamResultRecord(
        exam_id=doc["exam_id"],
        student_id=doc["student_id"],
        marks_obtained=doc.get("marks_obtained"),
        status=result_status(doc, exam),
        submitted_at=doc.get("submitted_at"),
    )


def grade_records(docs: list, with_metadata: bool = False) -> List[GradeRecord]:
    students = classes = courses = {}
    if with_metadata:
        students = lookup("student", [d["student_id"] for d in docs], STUDENT_FIELDS)
        classes = lookup("schoolclass", [d["class_id"] for d in docs], CLASS_FIELDS)
        courses = lookup("course", [d["course_id"] for d in docs], COURSE_FIELDS)
    return [
        GradeRecord(
            id=str(doc["_id"]),
            student_id=doc["student_id"],
            course_id=doc["course_id"],
            class_id=doc["class_id"],
            academic_year=doc["academic_year"],
            term=doc["term"],
            exam_type=doc["exam_type"],
            score=doc["score"],
            max_score=doc["max_score"],
            remarks=doc.get("remarks"),
            student=students.get(doc["student_id"]),
            school_class=classes.get(doc["class_id"]),
            course=courses.get(doc["course_id"]),
        )
        for doc in docs
    ]


# Students CRUD
@app.post("/students")
def create_student(payload: StudentSchema):
    ensure_unique("student", {"admission_number": payload.admission_number}, "Admission number already exists")
    _id = create_document("student", payload)
    return {"_id": _id}


@app.get("/students")
def list_students(
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    search: Optional[str] = None,
    form: Optional[str] = None,
    stream: Optional[str] = None,
    class_id: Optional[str] = None,
):
    filt: dict = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt["$or"] = [{field: pattern} for field in STUDENT_FIELDS]
    if form:
        filt["form"] = form
    if stream:
        filt["stream"] = stream
    if class_id:
        filt["class_id"] = class_id
    docs, pagination = get_page("student", filt, page, limit, sort=[("created_at", -1)])
    return {"students": [serialize(d) for d in docs], "pagination": pagination}


@app.get("/students/{student_id}")
def get_student(student_id: str):
    return serialize(fetch("student", student_id, "student"))


@app.put("/students/{student_id}")
def update_student(student_id: str, payload: StudentSchema):
    _id = parse_id(student_id, "student")
    ensure_unique("student", {"admission_number": payload.admission_number}, "Admission number already exists", exclude=_id)
    if not update_document("student", _id, payload):
        raise HTTPException(status_code=404, detail="Student not found")
    return {"updated": True}


@app.delete("/students/{student_id}")
def delete_student(student_id: str):
    _id = parse_id(student_id, "student")
    db = get_db()
    db["attendance"].delete_many({"student_id": student_id})
    db["grade"].delete_many({"student_id": student_id})
    db["examresult"].delete_many({"student_id": student_id})
    db["schoolclass"].update_many({"student_ids": student_id}, {"$pull": {"student_ids": student_id}})
    if not delete_document("student", _id):
        raise HTTPException(status_code=404, detail="Student not found")
    return {"deleted": True}


# Teachers CRUD
@app.post("/teachers")
def create_teacher(payload: TeacherSchema):
    ensure_unique("teacher", {"staff_id": payload.staff_id}, "Staff ID already exists")
    _id = create_document("teacher", payload)
    return {"_id": _id}


@app.get("/teachers")
def list_teachers(
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    search: Optional[str] = None,
):
    filt: dict = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt["$or"] = [{"first_name": pattern}, {"last_name": pattern}, {"staff_id": pattern}]
    docs, pagination = get_page("teacher", filt, page, limit, sort=[("last_name", 1), ("first_name", 1)])
    return {"teachers": [serialize(d) for d in docs], "pagination": pagination}


@app.get("/teachers/{teacher_id}")
def get_teacher(teacher_id: str):
    return serialize(fetch("teacher", teacher_id, "teacher"))


@app.put("/teachers/{teacher_id}")
def update_teacher(teacher_id: str, payload: TeacherSchema):
    _id = parse_id(teacher_id, "teacher")
    ensure_unique("teacher", {"staff_id": payload.staff_id}, "Staff ID already exists", exclude=_id)
    if not update_document("teacher", _id, payload):
        raise HTTPException(status_code=404, detail="Teacher not found")
    return {"updated": True}


@app.delete("/teachers/{teacher_id}")
def delete_teacher(teacher_id: str):
    if not delete_document("teacher", parse_id(teacher_id, "teacher")):
        raise HTTPException(status_code=404, detail="Teacher not found")
    get_db()["schoolclass"].update_many({"class_teacher_id": teacher_id}, {"$set": {"class_teacher_id": None}})
    return {"deleted": True}


# Classes CRUD
@app.post("/classes")
def create_class(payload: SchoolClassSchema):
    ensure_unique(
        "schoolclass",
        {"name": payload.name, "academic_year": payload.academic_year},
        "Class already exists for this academic year",
    )
    _id = create_document("schoolclass", payload)
    return {"_id": _id}


@app.get("/classes")
def list_classes(academic_year: Optional[str] = None, form: Optional[str] = None):
    filt: dict = {}
    if academic_year:
        filt["academic_year"] = academic_year
    if form:
        filt["form"] = form
    docs = get_documents("schoolclass", filt, sort=[("academic_year", -1), ("name", 1)])
    return [serialize(d) for d in docs]


@app.get("/classes/{class_id}")
def get_class(class_id: str):
    return serialize(fetch("schoolclass", class_id, "class"))


@app.put("/classes/{class_id}")
def update_class(class_id: str, payload: SchoolClassSchema):
    _id = parse_id(class_id, "class")
    ensure_unique(
        "schoolclass",
        {"name": payload.name, "academic_year": payload.academic_year},
        "Class already exists for this academic year",
        exclude=_id,
    )
    # Membership only changes through the assignment endpoints.
    changes = payload.model_dump(exclude={"student_ids", "course_ids"})
    if not update_document("schoolclass", _id, changes):
        raise HTTPException(status_code=404, detail="Class not found")
    return {"updated": True}


@app.delete("/classes/{class_id}")
def delete_class(class_id: str):
    if not delete_document("schoolclass", parse_id(class_id, "class")):
        raise HTTPException(status_code=404, detail="Class not found")
    get_db()["student"].update_many({"class_id": class_id}, {"$set": {"class_id": None}})
    return {"deleted": True}


@app.put("/classes/{class_id}/students")
def assign_students(class_id: str, payload: IdList):
    _id = fetch("schoolclass", class_id, "class")["_id"]
    oids = [parse_id(i, "student") for i in payload.ids]
    db = get_db()
    db["student"].update_many({"class_id": class_id, "_id": {"$nin": oids}}, {"$set": {"class_id": None}})
    db["student"].update_many({"_id": {"$in": oids}}, {"$set": {"class_id": class_id}})
    update_document("schoolclass", _id, {"student_ids": payload.ids})
    return {"updated": True, "count": len(payload.ids)}


@app.put("/classes/{class_id}/courses")
def assign_courses(class_id: str, payload: IdList):
    _id = fetch("schoolclass", class_id, "class")["_id"]
    for course_id in payload.ids:
        parse_id(course_id, "course")
    update_document("schoolclass", _id, {"course_ids": payload.ids})
    return {"updated": True, "count": len(payload.ids)}


@app.get("/classes/{class_id}/students")
def list_class_students(class_id: str):
    fetch("schoolclass", class_id, "class")
    return [serialize(d) for d in class_students(class_id)]


# Courses CRUD
@app.post("/courses")
def create_course(payload: CourseSchema):
    ensure_unique("course", {"course_code": payload.course_code}, "Course code already exists")
    _id = create_document("course", payload)
    return {"_id": _id}


@app.get("/courses")
def list_courses(department: Optional[str] = None, active: Optional[bool] = None):
    filt: dict = {}
    if department:
        filt["department"] = department
    if active is not None:
        filt["is_active"] = active
    return [serialize(d) for d in get_documents("course", filt, sort=[("name", 1)])]


@app.get("/courses/{course_id}")
def get_course(course_id: str):
    return serialize(fetch("course", course_id, "course"))


@app.put("/courses/{course_id}")
def update_course(course_id: str, payload: CourseSchema):
    _id = parse_id(course_id, "course")
    ensure_unique("course", {"course_code": payload.course_code}, "Course code already exists", exclude=_id)
    if not update_document("course", _id, payload):
        raise HTTPException(status_code=404, detail="Course not found")
    return {"updated": True}


@app.delete("/courses/{course_id}")
def delete_course(course_id: str):
    if not delete_document("course", parse_id(course_id, "course")):
        raise HTTPException(status_code=404, detail="Course not found")
    return {"deleted": True}


# Exams
@app.post("/exams")
def create_exam(payload: ExamSchema):
    fetch("course", payload.course_id, "course")
    if payload.class_id:
        fetch("schoolclass", payload.class_id, "class")
    _id = create_document("exam", payload)
    return {"_id": _id}


@app.get("/exams")
def list_exams(
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    course_id: Optional[str] = None,
    class_id: Optional[str] = None,
    status: Optional[str] = None,
):
    filt = {key: value for key, value in
            (("course_id", course_id), ("class_id", class_id), ("status", status)) if value}
    docs, pagination = get_page("exam", filt, page, limit, sort=[("exam_date", -1)])
    return {"exams": [serialize(d) for d in docs], "pagination": pagination}


@app.get("/exams/{exam_id}")
def get_exam(exam_id: str):
    return serialize(fetch("exam", exam_id, "exam"))


@app.put("/exams/{exam_id}")
def update_exam(exam_id: str, payload: ExamSchema):
    _id = parse_id(exam_id, "exam")
    fetch("course", payload.course_id, "course")
    if payload.class_id:
        fetch("schoolclass", payload.class_id, "class")
    marks = {"passing_marks": payload.passing_marks, "total_marks": payload.total_marks}
    # Every stored result must still fit before anything is written.
    restated = [(doc, result_status(doc, marks)) for doc in get_documents("examresult", {"exam_id": exam_id})]
    if not update_document("exam", _id, payload):
        raise HTTPException(status_code=404, detail="Exam not found")
    changed = 0
    for doc, status in restated:
        if status != doc.get("status"):
            update_document("examresult", doc["_id"], {"status": status})
            changed += 1
    if changed:
        logger.info("Restated %d result(s) for exam %s", changed, exam_id)
    return {"updated": True}


@app.delete("/exams/{exam_id}")
def delete_exam(exam_id: str):
    _id = parse_id(exam_id, "exam")
    if get_db()["examresult"].find_one({"exam_id": exam_id}) is not None:
        raise HTTPException(status_code=409, detail="Cannot delete exam with existing results. Delete the results first.")
    if not delete_document("exam", _id):
        raise HTTPException(status_code=404, detail="Exam not found")
    return {"deleted": True}


@app.post("/exams/{exam_id}/results")
def record_exam_result(exam_id: str, payload: ExamResultSchema):
    exam = fetch("exam", exam_id, "exam")
    fetch("student", payload.student_id, "student")
    status = resolve_result_status(
        payload.marks_obtained,
        passing_marks=exam["passing_marks"],
        submitted=payload.submitted,
        total_marks=exam["total_marks"],
    )
    key = {"exam_id": exam_id, "student_id": payload.student_id}
    now = dt.datetime.now(dt.timezone.utc)
    data = {
        "marks_obtained": payload.marks_obtained,
        "submitted": payload.submitted,
        "status": status,
        "feedback": payload.feedback,
        "graded_at": now,
    }
    if payload.submitted and get_db()["examresult"].find_one(key) is None:
        data["submitted_at"] = now
    doc = upsert_document("examresult", key, data)
    logger.info("Recorded %s result for student %s on exam %s", status.value, payload.student_id, exam_id)
    return serialize(doc)


@app.get("/exams/{exam_id}/results")
def get_exam_results(exam_id: str):
    exam = fetch("exam", exam_id, "exam")
    result_docs = get_documents("examresult", {"exam_id": exam_id})
    if exam.get("class_id"):
        students = class_students(exam["class_id"])
    else:
        students = get_documents("student", sort=[("last_name", 1), ("first_name", 1)])

    entries = pair_exam_results(
        (str(s["_id"]) for s in students),
        (exam_result_record(doc, exam) for doc in result_docs),
    )
    docs_by_student = {doc["student_id"]: doc for doc in result_docs}
    return {
        "exam": serialize(exam),
        "students_with_results": [
            {"student": serialize(student), "result": serialize(docs_by_student.get(entry.student_id))}
            for student, entry in zip(students, entries)
        ],
        "statistics": summarize_exam_results(entries),
    }


@app.delete("/exam-results/{result_id}")
def delete_exam_result(result_id: str):
    if not delete_document("examresult", parse_id(result_id, "result")):
        raise HTTPException(status_code=404, detail="Result not found")
    return {"deleted": True}


@app.get("/students/{student_id}/exam-results")
def list_student_exam_results(student_id: str):
    fetch("student", student_id, "student")
    results = get_documents("examresult", {"student_id": student_id})
    exams = lookup("exam", [r["exam_id"] for r in results],
                   ("title", "exam_type", "total_marks", "passing_marks", "exam_date", "course_id"))
    rows = [{**serialize(r), "exam": exams.get(r["exam_id"])} for r in results]
    rows.sort(key=lambda row: (row["exam"] or {}).get("exam_date") or dt.datetime.min, reverse=True)
    return rows


# Grades
@app.post("/grades")
def save_grade(payload: GradeSchema):
    percentage = compute_percentage(payload.score, payload.max_score)
    fetch("student", payload.student_id, "student")
    fetch("course", payload.course_id, "course")
    fetch("schoolclass", payload.class_id, "class")
    key = {
        "student_id": payload.student_id,
        "course_id": payload.course_id,
        "term": payload.term,
        "exam_type": payload.exam_type,
    }
    data = {
        **payload.model_dump(),
        "percentage": percentage,
        "letter_grade": classify_grade(percentage),
        "graded_at": dt.datetime.now(dt.timezone.utc),
    }
    return serialize(upsert_document("grade", key, data))


def grade_filter(student_id=None, class_id=None, course_id=None, term=None, academic_year=None) -> dict:
    pairs = (
        ("student_id", student_id),
        ("class_id", class_id),
        ("course_id", course_id),
        ("term", term),
        ("academic_year", academic_year),
    )
    return {key: value for key, value in pairs if value}


@app.get("/grades")
def list_grades(
    student_id: Optional[str] = None,
    class_id: Optional[str] = None,
    course_id: Optional[str] = None,
    term: Optional[str] = None,
    academic_year: Optional[str] = None,
):
    filt = grade_filter(student_id, class_id, course_id, term, academic_year)
    return [serialize(d) for d in get_documents("grade", filt)]


@app.get("/grades/report")
def grade_report(
    class_id: Optional[str] = None,
    course_id: Optional[str] = None,
    term: Optional[str] = None,
    academic_year: Optional[str] = None,
):
    filt = grade_filter(class_id=class_id, course_id=course_id, term=term, academic_year=academic_year)
    docs = get_documents("grade", filt, sort=[("academic_year", -1), ("term", 1)])
    return group_grade_report(grade_records(docs, with_metadata=True))


@app.delete("/grades/{grade_id}")
def delete_grade(grade_id: str):
    if not delete_document("grade", parse_id(grade_id, "grade")):
        raise HTTPException(status_code=404, detail="Grade not found")
    return {"deleted": True}


@app.get("/students/{student_id}/grades")
def list_student_grades(student_id: str):
    fetch("student", student_id, "student")
    docs = get_documents("grade", {"student_id": student_id}, sort=[("academic_year", -1), ("term", -1)])
    grades = grade_records(docs, with_metadata=True)
    return {"grades": grades, "grouped": group_grades_by_term(grades)}


@app.get("/students/{student_id}/academic-summary")
def student_academic_summary(student_id: str):
    fetch("student", student_id, "student")
    docs = get_documents("grade", {"student_id": student_id})
    return summarize_academic_progress(grade_records(docs))


@app.get("/classes/{class_id}/grade-report")
def class_grade_report(class_id: str, term: str, academic_year: str, exam_type: str = "Final Exam"):
    school_class = fetch("schoolclass", class_id, "class")
    students = [pick(s, STUDENT_FIELDS) for s in class_students(class_id)]
    course_ids = school_class.get("course_ids") or [str(c["_id"]) for c in get_documents("course", sort=[("name", 1)])]
    docs = get_documents("grade", {
        "class_id": class_id,
        "term": term,
        "academic_year": academic_year,
        "exam_type": exam_type,
    })
    return {
        "school_class": serialize(school_class),
        "term": term,
        "academic_year": academic_year,
        "exam_type": exam_type,
        "generated_at": dt.datetime.now(dt.timezone.utc),
        "report": rank_class(students, course_ids, grade_records(docs, with_metadata=True)),
    }


# Attendance
def save_attendance(student_id: str, class_id: str, course_id: Optional[str], date: dt.date, status, remarks):
    key = {"student_id": student_id, "class_id": class_id, "date": day_start(date)}
    if course_id:
        key["course_id"] = course_id
    data = {"status": status}
    if remarks is not None:
        data["remarks"] = remarks
    return upsert_document("attendance", key, data)


@app.post("/attendance")
def mark_attendance(payload: AttendanceSchema):
    fetch("student", payload.student_id, "student")
    fetch("schoolclass", payload.class_id, "class")
    doc = save_attendance(
        payload.student_id, payload.class_id, payload.course_id, payload.date, payload.status, payload.remarks
    )
    return serialize(doc)


@app.post("/attendance/bulk")
def mark_bulk_attendance(payload: BulkAttendanceSchema):
    fetch("schoolclass", payload.class_id, "class")
    saved, skipped = [], []
    for entry in payload.entries:
        if object_id(entry.student_id) is None:
            skipped.append(entry.student_id)
            continue
        saved.append(serialize(save_attendance(
            entry.student_id, payload.class_id, payload.course_id, payload.date, entry.status, entry.remarks
        )))
    if skipped:
        logger.warning("Skipped %d malformed student id(s) in bulk attendance for class %s", len(skipped), payload.class_id)
    return {"saved": len(saved), "skipped": skipped, "records": saved}


@app.get("/attendance")
def list_attendance(
    student_id: Optional[str] = None,
    class_id: Optional[str] = None,
    on_date: Optional[dt.date] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
):
    filt: dict = {}
    if student_id:
        filt["student_id"] = student_id
    if class_id:
        filt["class_id"] = class_id
    if on_date:
        filt["date"] = day_start(on_date)
    if start_date or end_date:
        filt["date"] = date_range(start_date, end_date)
    docs = get_documents("attendance", filt, sort=[("date", -1)])
    return [serialize(d) for d in docs]


@app.get("/attendance/export")
def export_attendance_csv(start_date: Optional[dt.date] = None, end_date: Optional[dt.date] = None):
    filt: dict = {}
    if start_date or end_date:
        filt["date"] = date_range(start_date, end_date)
    rows = get_documents("attendance", filt, sort=[("date", 1)])
    # Build CSV
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["_id", "student_id", "class_id", "date", "status", "remarks"])
    for r in rows:
        writer.writerow([
            str(r.get("_id")), r.get("student_id"), r.get("class_id"),
            as_date(r.get("date")).isoformat(), r.get("status"), r.get("remarks") or "",
        ])
    csv_bytes = output.getvalue().encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={
        "Content-Disposition": "attachment; filename=attendance.csv"
    })


@app.get("/attendance/statistics")
def attendance_statistics(
    class_id: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
):
    if start_date is None and end_date is None:
        _, start_date, _ = month_bounds()
    filt = {"date": date_range(start_date, end_date)}
    class_data = None
    if class_id:
        school_class = fetch("schoolclass", class_id, "class")
        filt["class_id"] = class_id
        class_data = {
            "details": serialize(school_class),
            "student_count": get_db()["student"].count_documents({"class_id": class_id}),
        }
    records = [attendance_record(d) for d in get_documents("attendance", filt)]
    return {
        "overall": summarize_attendance(records),
        "daily": daily_attendance(records),
        "class": class_data,
    }


@app.get("/students/{student_id}/attendance")
def student_attendance(
    student_id: str,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
):
    fetch("student", student_id, "student")
    start_date, end_date = attendance_window(start_date, end_date, days=config.ATTENDANCE_WINDOW_DAYS)
    docs = get_documents(
        "attendance",
        {"student_id": student_id, "date": date_range(start_date, end_date)},
        sort=[("date", -1)],
    )
    return {
        "records": [serialize(d) for d in docs],
        "summary": summarize_attendance(attendance_record(d) for d in docs),
        "window": {"start_date": start_date, "end_date": end_date},
    }


@app.get("/students/{student_id}/attendance/trend")
def student_attendance_trend(student_id: str):
    fetch("student", student_id, "student")
    previous_start, current_start, today = month_bounds()
    docs = get_documents("attendance", {"student_id": student_id, "date": {"$gte": day_start(previous_start)}})
    records = [attendance_record(d) for d in docs]
    current = summarize_attendance(r for r in records if r.date >= current_start)
    previous = summarize_attendance(r for r in records if r.date < current_start)
    week_ago = today - dt.timedelta(days=7)
    recent_absences = [
        serialize(d) for d, r in zip(docs, records)
        if r.status == "absent" and r.date >= week_ago
    ]
    recent_absences.sort(key=lambda d: d["date"], reverse=True)
    return {
        "current_month": current,
        "previous_month": previous,
        "trend": attendance_trend(current.attendance_rate, previous.attendance_rate),
        "recent_absences": recent_absences,
    }


@app.delete("/attendance/{attendance_id}")
def delete_attendance(attendance_id: str):
    if not delete_document("attendance", parse_id(attendance_id, "attendance")):
        raise HTTPException(status_code=404, detail="Attendance not found")
    return {"deleted": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
