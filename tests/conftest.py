"""Shared fixtures: a mongomock-backed School for every storage variant."""

import mongomock
import pytest
from fastapi.testclient import TestClient

import schemas
from main import app, get_school
from school import School
from settings import Settings

VARIANTS = [
    ("objectid", "normalized"),
    ("objectid", "embedded"),
    ("sequential", "normalized"),
    ("sequential", "embedded"),
]


@pytest.fixture(params=VARIANTS, ids=["-".join(v) for v in VARIANTS])
def settings(request):
    id_policy, test_storage = request.param
    return Settings(database_name="school_test", id_policy=id_policy, test_storage=test_storage)


@pytest.fixture
def db():
    return mongomock.MongoClient()["school_test"]


@pytest.fixture
def school(db, settings):
    return School(db, settings)


class Factory:
    """Creates records through the repositories with sensible defaults."""

    def __init__(self, school):
        self.school = school

    def teacher(self, **fields):
        data = {"firstName": "Grace", "lastName": "Hopper", "department": "Computer Science"}
        data.update(fields)
        return self.school.teachers.create(schemas.TeacherCreate(**data))

    def student(self, **fields):
        data = {"firstName": "Ada", "lastName": "Lovelace", "grade": 11, "studentNumber": "S-1001", "homeroom": "204"}
        data.update(fields)
        return self.school.students.create(schemas.StudentCreate(**data))

    def course(self, **fields):
        data = {"code": "ICS3U", "name": "Intro to Computer Science", "semester": "1", "room": "118"}
        data.update(fields)
        return self.school.courses.create(schemas.CourseCreate(**data))

    def test(self, student, course, **fields):
        data = {
            "studentId": str(student["id"]),
            "courseId": str(course["id"]),
            "testName": "Unit 1",
            "date": "2024-10-01",
            "mark": 8,
            "outOf": 10,
        }
        data.update(fields)
        return self.school.tests.create(schemas.TestCreate(**data))


@pytest.fixture
def make(school):
    return Factory(school)


@pytest.fixture
def client(school):
    app.dependency_overrides[get_school] = lambda: school
    yield TestClient(app)
    app.dependency_overrides.clear()
