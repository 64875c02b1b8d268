from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import connect, ensure_indexes
from errors import MissingRequiredField, SchoolError, ValidationError
from schemas import (
    AverageOut,
    CourseCreate,
    CourseOut,
    CourseUpdate,
    MessageOut,
    StudentCreate,
    StudentOut,
    StudentUpdate,
    TeacherCreate,
    TeacherOut,
    TeacherUpdate,
    TestCreate,
    TestOut,
    TestUpdate,
)
from school import School
from settings import Settings, configure_logging, load_settings

logger = structlog.get_logger(__name__)


@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def get_school() -> School:
    settings = get_settings()
    return School(connect(settings), settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    school = get_school()
    ensure_indexes(school.db)
    logger.info(
        "api_startup",
        database=settings.database_name,
        id_policy=settings.id_policy,
        test_storage=settings.test_storage,
    )
    yield


app = FastAPI(title="School API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error envelope: every failure is rendered as {"error": message}

def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(SchoolError)
async def school_error_handler(request: Request, exc: SchoolError):
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = exc.errors()
    if any(p["type"] == "missing" for p in problems):
        err = MissingRequiredField()
    else:
        details = "; ".join(
            f"{'.'.join(str(part) for part in p['loc'][1:]) or 'body'}: {p['msg']}" for p in problems
        )
        err = ValidationError(f"Invalid request: {details}")
    return error_response(err.status_code, err.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return error_response(500, "Internal Server Error")


@app.get("/")
def read_root():
    return {
        "message": "School API is running",
        "endpoints": ["/teachers", "/students", "/courses", "/tests"],
    }


@app.get("/health")
def health(school: School = Depends(get_school)):
    resp = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": school.settings.database_name,
        "id_policy": school.settings.id_policy,
        "test_storage": school.settings.test_storage,
        "collections": [],
    }
    try:
        resp["collections"] = school.db.list_collection_names()[:10]
        resp["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        resp["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return resp


# Teachers

@app.get("/teachers", response_model=List[TeacherOut])
def list_teachers(department: Optional[str] = None, school: School = Depends(get_school)):
    return school.teachers.list({"department": department})


@app.get("/teachers/{teacher_id}", response_model=TeacherOut)
def get_teacher(teacher_id: str, school: School = Depends(get_school)):
    return school.teachers.get(teacher_id)


@app.post("/teachers", response_model=TeacherOut, status_code=201)
def create_teacher(payload: TeacherCreate, school: School = Depends(get_school)):
    return school.teachers.create(payload)


@app.put("/teachers/{teacher_id}", response_model=TeacherOut)
def update_teacher(teacher_id: str, payload: TeacherUpdate, school: School = Depends(get_school)):
    return school.teachers.update(teacher_id, payload)


@app.delete("/teachers/{teacher_id}", response_model=MessageOut)
def delete_teacher(teacher_id: str, school: School = Depends(get_school)):
    school.teachers.delete(teacher_id)
    return {"message": "Teacher deleted"}


# Students

@app.get("/students", response_model=List[StudentOut])
def list_students(
    homeroom: Optional[str] = None,
    grade: Optional[str] = None,
    school: School = Depends(get_school),
):
    return school.students.list({"homeroom": homeroom, "grade": grade})


@app.get("/students/{student_id}", response_model=StudentOut)
def get_student(student_id: str, school: School = Depends(get_school)):
    return school.students.get(student_id)


@app.post("/students", response_model=StudentOut, status_code=201)
def create_student(payload: StudentCreate, school: School = Depends(get_school)):
    return school.students.create(payload)


@app.put("/students/{student_id}", response_model=StudentOut)
def update_student(student_id: str, payload: StudentUpdate, school: School = Depends(get_school)):
    return school.students.update(student_id, payload)


@app.delete("/students/{student_id}", response_model=MessageOut)
def delete_student(student_id: str, school: School = Depends(get_school)):
    school.students.delete(student_id)
    return {"message": "Student deleted"}


@app.get("/students/{student_id}/tests", response_model=List[TestOut])
def student_tests(student_id: str, school: School = Depends(get_school)):
    """Tests of one student by date. An unknown student is a 404, not an empty list."""
    return school.tests.for_student(student_id)


@app.get("/students/{student_id}/average", response_model=AverageOut)
def student_average(student_id: str, school: School = Depends(get_school)):
    """Percentage average, 0 without tests. An unknown student is a 404, not 0."""
    return {"average": school.metrics.average_for(student_id)}


# Courses

@app.get("/courses", response_model=List[CourseOut])
def list_courses(
    semester: Optional[str] = None,
    teacherId: Optional[str] = None,
    school: School = Depends(get_school),
):
    return school.courses.list({"semester": semester, "teacherId": teacherId})


@app.get("/courses/{course_id}", response_model=CourseOut)
def get_course(course_id: str, school: School = Depends(get_school)):
    return school.courses.get(course_id)


@app.post("/courses", response_model=CourseOut, status_code=201)
def create_course(payload: CourseCreate, school: School = Depends(get_school)):
    return school.courses.create(payload)


@app.put("/courses/{course_id}", response_model=CourseOut)
def update_course(course_id: str, payload: CourseUpdate, school: School = Depends(get_school)):
    return school.courses.update(course_id, payload)


@app.delete("/courses/{course_id}", response_model=MessageOut)
def delete_course(course_id: str, school: School = Depends(get_school)):
    school.courses.delete(course_id)
    return {"message": "Course deleted"}


@app.get("/courses/{course_id}/tests", response_model=List[TestOut])
def course_tests(course_id: str, school: School = Depends(get_school)):
    return school.tests.for_course(course_id)


# Tests

@app.get("/tests", response_model=List[TestOut])
def list_tests(
    studentId: Optional[str] = None,
    courseId: Optional[str] = None,
    school: School = Depends(get_school),
):
    return school.tests.list({"studentId": studentId, "courseId": courseId})


@app.get("/tests/{test_id}", response_model=TestOut)
def get_test(test_id: str, school: School = Depends(get_school)):
    return school.tests.get(test_id)


@app.post("/tests", response_model=TestOut, status_code=201)
def create_test(payload: TestCreate, school: School = Depends(get_school)):
    return school.tests.create(payload)


@app.put("/tests/{test_id}", response_model=TestOut)
def update_test(test_id: str, payload: TestUpdate, school: School = Depends(get_school)):
    return school.tests.update(test_id, payload)


@app.delete("/tests/{test_id}", response_model=MessageOut)
def delete_test(test_id: str, school: School = Depends(get_school)):
    school.tests.delete(test_id)
    return {"message": "Test deleted"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
