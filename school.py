"""
Wiring of repositories, reference checks and metrics for one database.

A School is built once per application and handed to the routes as a
FastAPI dependency, so tests can swap in a mongomock database.
"""

from pymongo.database import Database

from identifiers import policy_for
from integrity import ReferenceValidator
from metrics import MetricCalculator
from repository import (
    CourseRepository,
    EmbeddedTestRepository,
    StudentRepository,
    TeacherRepository,
    TestRepository,
)
from settings import Settings


class School:
    def __init__(self, db: Database, settings: Settings):
        self.db = db
        self.settings = settings
        self.policy = policy_for(settings.id_policy)
        self.validator = ReferenceValidator(db, embedded_tests=settings.embedded_tests)

        args = (db, self.policy, self.validator)
        retries = settings.insert_retries
        self.students = StudentRepository(*args, insert_retries=retries)
        self.teachers = TeacherRepository(*args, insert_retries=retries)
        self.courses = CourseRepository(*args, insert_retries=retries, embedded_tests=settings.embedded_tests)
        if settings.embedded_tests:
            self.tests = EmbeddedTestRepository(*args)
        else:
            self.tests = TestRepository(*args, insert_retries=retries)
        self.metrics = MetricCalculator(self.tests)
