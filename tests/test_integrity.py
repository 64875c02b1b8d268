"""Tests for the reference validator, using raw documents."""

import mongomock
import pytest

from errors import InvalidReference, NotFound, ReferentialIntegrityViolation
from integrity import ReferenceValidator


@pytest.fixture
def db():
    db = mongomock.MongoClient()["integrity"]
    db["student"].insert_one({"_id": 1, "firstName": "Ada"})
    db["teacher"].insert_one({"_id": 1, "firstName": "Grace"})
    db["course"].insert_one({"_id": 1, "code": "ICS3U", "teacherId": 1, "tests": []})
    return db


class TestCreateTest:
    def test_both_references_exist(self, db):
        ReferenceValidator(db).validate_create_test(1, 1)

    @pytest.mark.parametrize("student_id,course_id,message", [(2, 1, "Student"), (1, 2, "Course")])
    def test_missing_reference(self, db, student_id, course_id, message):
        with pytest.raises(InvalidReference, match=message):
            ReferenceValidator(db).validate_create_test(student_id, course_id)


class TestDeleteNormalized:
    def test_unreferenced_student(self, db):
        doc = ReferenceValidator(db).validate_delete("student", 1)
        assert doc["firstName"] == "Ada"

    def test_missing_record(self, db):
        with pytest.raises(NotFound, match="Student not found"):
            ReferenceValidator(db).validate_delete("student", 99)

    def test_student_with_test(self, db):
        db["test"].insert_one({"_id": 1, "studentId": 1, "courseId": 1})
        with pytest.raises(ReferentialIntegrityViolation):
            ReferenceValidator(db).validate_delete("student", 1)

    def test_course_with_test(self, db):
        db["test"].insert_one({"_id": 1, "studentId": 1, "courseId": 1})
        with pytest.raises(ReferentialIntegrityViolation):
            ReferenceValidator(db).validate_delete("course", 1)

    def test_teacher_with_course(self, db):
        with pytest.raises(ReferentialIntegrityViolation, match="assigned to courses"):
            ReferenceValidator(db).validate_delete("teacher", 1)

    def test_embedded_array_is_ignored(self, db):
        db["course"].update_one({"_id": 1}, {"$push": {"tests": {"id": 1, "studentId": 1}}})
        ReferenceValidator(db).validate_delete("student", 1)


class TestDeleteEmbedded:
    def test_student_referenced_inside_course(self, db):
        db["course"].update_one({"_id": 1}, {"$push": {"tests": {"id": 1, "studentId": 1}}})
        with pytest.raises(ReferentialIntegrityViolation, match="existing tests"):
            ReferenceValidator(db, embedded_tests=True).validate_delete("student", 1)

    def test_course_owning_tests(self, db):
        db["course"].update_one({"_id": 1}, {"$push": {"tests": {"id": 1, "studentId": 1}}})
        with pytest.raises(ReferentialIntegrityViolation):
            ReferenceValidator(db, embedded_tests=True).validate_delete("course", 1)

    def test_empty_course(self, db):
        ReferenceValidator(db, embedded_tests=True).validate_delete("course", 1)
