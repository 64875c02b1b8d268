"""
Reference checks run before a Test is created and before a Student,
Course or Teacher is deleted.

Checks and writes are separate round trips and MongoDB transactions are
not used (they need a replica set). A dependant created between the check
and the delete can therefore be orphaned. The embedded-course delete closes
this gap with a guarded ``delete_one`` in ``repository.CourseRepository``.
"""

from typing import Any, Dict, Optional

import structlog
from pymongo.database import Database

from database import exists, get_document
from errors import InvalidReference, NotFound, ReferentialIntegrityViolation

logger = structlog.get_logger(__name__)

ENTITIES = {
    "student": "Student",
    "teacher": "Teacher",
    "course": "Course",
    "test": "Test",
}


class ReferenceValidator:
    def __init__(self, db: Database, embedded_tests: bool = False):
        self.db = db
        self.embedded_tests = embedded_tests

    def validate_create_test(self, student_id: Any, course_id: Any) -> None:
        self.validate_student_ref(student_id)
        self.validate_course_ref(course_id)

    def validate_student_ref(self, student_id: Any) -> None:
        if not exists(self.db["student"], {"_id": student_id}):
            raise InvalidReference("Student not found")

    def validate_course_ref(self, course_id: Any) -> None:
        if not exists(self.db["course"], {"_id": course_id}):
            raise InvalidReference("Course not found")

    def validate_teacher_ref(self, teacher_id: Any) -> None:
        if not exists(self.db["teacher"], {"_id": teacher_id}):
            raise InvalidReference("Teacher not found")

    def validate_delete(self, entity: str, record_id: Any) -> Dict[str, Any]:
        """Return the record about to be deleted, or raise if it is missing or still referenced."""
        label = ENTITIES[entity]
        doc = get_document(self.db[entity], {"_id": record_id})
        if doc is None:
            raise NotFound(f"{label} not found")
        blocker = self._blocker(entity, doc)
        if blocker:
            logger.info("delete_blocked", entity=entity, id=str(record_id), reason=blocker)
            raise ReferentialIntegrityViolation(blocker)
        return doc

    def _blocker(self, entity: str, doc: Dict[str, Any]) -> Optional[str]:
        record_id = doc["_id"]
        if entity == "student":
            if self.embedded_tests:
                referenced = exists(self.db["course"], {"tests.studentId": record_id})
            else:
                referenced = exists(self.db["test"], {"studentId": record_id})
            if referenced:
                return "Cannot delete student with existing tests"
        elif entity == "course":
            if self.embedded_tests:
                referenced = bool(doc.get("tests"))
            else:
                referenced = exists(self.db["test"], {"courseId": record_id})
            if referenced:
                return "Cannot delete course with existing tests"
        elif entity == "teacher":
            if exists(self.db["course"], {"teacherId": record_id}):
                return "Cannot delete teacher assigned to courses"
        return None
