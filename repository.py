"""
Repositories for Students, Teachers, Courses and Tests.

Each repository takes raw identifier tokens from the caller, parses them
with the configured IdPolicy and returns plain dicts carrying a single
``id`` field. References to other records are rendered the same way.

Tests live either in their own ``test`` collection (TestRepository) or
inside the owning course document (EmbeddedTestRepository). The embedded
flavour only uses single-document atomic updates ($push, $pull and
positional $set) so concurrent course edits cannot lose tests.
"""

from typing import Any, Dict, List, Optional, Tuple

import structlog
from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database

from database import Sort, create_document, exists, get_document, get_documents, storage_errors
from errors import InvalidReference, MalformedIdentifier, NotFound, ReferentialIntegrityViolation, ValidationError
from identifiers import IdPolicy
from integrity import ENTITIES, ReferenceValidator
from schemas import PartialPayload, Payload

logger = structlog.get_logger(__name__)

REF = "ref"


def _set_unset(changes: Dict[str, Any]) -> Dict[str, Any]:
    update = {}
    to_set = {k: v for k, v in changes.items() if v is not None}
    to_unset = {k: "" for k, v in changes.items() if v is None}
    if to_set:
        update["$set"] = to_set
    if to_unset:
        update["$unset"] = to_unset
    return update


class Repository:
    entity = ""
    sort: Sort = ()
    ref_fields: Tuple[str, ...] = ()
    filter_fields: Dict[str, Any] = {}

    def __init__(self, db: Database, policy: IdPolicy, validator: ReferenceValidator, insert_retries: int = 0):
        self.db = db
        self.policy = policy
        self.validator = validator
        self.insert_retries = insert_retries

    @property
    def label(self) -> str:
        return ENTITIES[self.entity]

    @property
    def collection(self):
        return self.db[self.entity]

    def parse_id(self, token: Any) -> Any:
        return self.policy.parse(token)

    def parse_ref(self, field: str, token: Any) -> Any:
        try:
            return self.policy.parse(token)
        except MalformedIdentifier:
            raise MalformedIdentifier(f"Invalid {field}") from None

    def render(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        out = {"id": self.policy.render(doc["_id"])}
        for key, value in doc.items():
            if key in ("_id", "tests") or value is None:
                continue
            if key in self.ref_fields:
                value = self.policy.render(value)
            out[key] = value
        return out

    def require(self, entity: str, record_id: Any) -> None:
        if not exists(self.db[entity], {"_id": record_id}):
            raise NotFound(f"{ENTITIES[entity]} not found")

    def query(self, filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        query = {}
        for name, value in (filters or {}).items():
            if value is None:
                continue
            kind = self.filter_fields.get(name)
            if kind is None:
                raise ValidationError(f"Unknown filter: {name}")
            if kind == REF:
                query[name] = self.parse_ref(name, value)
                continue
            try:
                query[name] = kind(value)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid {name}") from None
        return query

    def get(self, token: Any) -> Dict[str, Any]:
        doc = get_document(self.collection, {"_id": self.parse_id(token)})
        if doc is None:
            raise NotFound(f"{self.label} not found")
        return self.render(doc)

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        docs = get_documents(self.collection, self.query(filters), self.sort)
        return [self.render(doc) for doc in docs]

    def create(self, payload: Payload) -> Dict[str, Any]:
        data = {k: v for k, v in payload.model_dump().items() if v is not None}
        data = self.prepare_create(data)
        doc = create_document(
            self.collection,
            data,
            id_factory=self.policy.allocator(self.collection),
            retries=self.insert_retries,
        )
        logger.info(f"{self.entity}_created", id=str(doc["_id"]))
        return self.render(doc)

    def prepare_create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return data

    def update(self, token: Any, payload: PartialPayload) -> Dict[str, Any]:
        record_id = self.parse_id(token)
        self.require(self.entity, record_id)
        changes = self.prepare_update(payload.changes())
        if not changes:
            return self.get(token)
        with storage_errors(f"{self.entity}.update"):
            doc = self.collection.find_one_and_update(
                {"_id": record_id},
                _set_unset(changes),
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise NotFound(f"{self.label} not found")
        logger.info(f"{self.entity}_updated", id=str(record_id), fields=sorted(changes))
        return self.render(doc)

    def prepare_update(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        return changes

    def delete(self, token: Any) -> None:
        record_id = self.parse_id(token)
        self.validator.validate_delete(self.entity, record_id)
        with storage_errors(f"{self.entity}.delete"):
            res = self.collection.delete_one(self.delete_filter(record_id))
        if res.deleted_count == 0:
            self.delete_missed(record_id)
        logger.info(f"{self.entity}_deleted", id=str(record_id))

    def delete_filter(self, record_id: Any) -> Dict[str, Any]:
        return {"_id": record_id}

    def delete_missed(self, record_id: Any) -> None:
        raise NotFound(f"{self.label} not found")


class StudentRepository(Repository):
    entity = "student"
    sort = (("lastName", ASCENDING), ("firstName", ASCENDING), ("_id", ASCENDING))
    filter_fields = {"homeroom": str, "grade": int}


class TeacherRepository(Repository):
    entity = "teacher"
    sort = (("lastName", ASCENDING), ("firstName", ASCENDING), ("_id", ASCENDING))
    filter_fields = {"department": str}


class CourseRepository(Repository):
    entity = "course"
    sort = (("code", ASCENDING), ("_id", ASCENDING))
    ref_fields = ("teacherId",)
    filter_fields = {"semester": str, "teacherId": REF}

    def __init__(self, *args, embedded_tests: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.embedded_tests = embedded_tests

    def _teacher(self, token: Any) -> Any:
        teacher_id = self.parse_ref("teacherId", token)
        self.validator.validate_teacher_ref(teacher_id)
        return teacher_id

    def prepare_create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if "teacherId" in data:
            data["teacherId"] = self._teacher(data["teacherId"])
        if self.embedded_tests:
            data["tests"] = []
        return data

    def prepare_update(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        if changes.get("teacherId") is not None:
            changes["teacherId"] = self._teacher(changes["teacherId"])
        return changes

    def delete_filter(self, record_id: Any) -> Dict[str, Any]:
        if not self.embedded_tests:
            return {"_id": record_id}
        # only matches while the course owns no tests
        return {"_id": record_id, "$or": [{"tests": {"$size": 0}}, {"tests": {"$exists": False}}]}

    def delete_missed(self, record_id: Any) -> None:
        if exists(self.collection, {"_id": record_id}):
            raise ReferentialIntegrityViolation("Cannot delete course with existing tests")
        raise NotFound(f"{self.label} not found")


class TestRepository(Repository):
    __test__ = False

    entity = "test"
    sort = (("date", ASCENDING), ("_id", ASCENDING))
    ref_fields = ("studentId", "courseId")
    filter_fields = {"studentId": REF, "courseId": REF}

    def prepare_create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        data["studentId"] = self.parse_ref("studentId", data["studentId"])
        data["courseId"] = self.parse_ref("courseId", data["courseId"])
        self.validator.validate_create_test(data["studentId"], data["courseId"])
        return data

    def prepare_update(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        if "studentId" in changes:
            changes["studentId"] = self.parse_ref("studentId", changes["studentId"])
            self.validator.validate_student_ref(changes["studentId"])
        if "courseId" in changes:
            changes["courseId"] = self.parse_ref("courseId", changes["courseId"])
            self.validator.validate_course_ref(changes["courseId"])
        return changes

    def for_student(self, token: Any) -> List[Dict[str, Any]]:
        student_id = self.parse_id(token)
        self.require("student", student_id)
        return self.list({"studentId": student_id})

    def for_course(self, token: Any) -> List[Dict[str, Any]]:
        course_id = self.parse_id(token)
        self.require("course", course_id)
        return self.list({"courseId": course_id})


class EmbeddedTestRepository(Repository):
    """Tests stored in the ``tests`` array of their course.

    Test ids are unique across every course, so a test can be addressed
    without knowing its course.
    """

    __test__ = False

    entity = "test"
    filter_fields = {"studentId": REF, "courseId": REF}

    @property
    def collection(self):
        return self.db["course"]

    def render_test(self, course_id: Any, test: Dict[str, Any]) -> Dict[str, Any]:
        out = {
            "id": self.policy.render(test["id"]),
            "studentId": self.policy.render(test["studentId"]),
            "courseId": self.policy.render(course_id),
        }
        for key, value in test.items():
            if key not in out and value is not None:
                out[key] = value
        return out

    def _collect(self, courses: List[Dict[str, Any]], student_id: Any = None) -> List[Tuple[Any, Dict[str, Any]]]:
        found = []
        for course in courses:
            for test in course.get("tests", []):
                if student_id is None or test["studentId"] == student_id:
                    found.append((course["_id"], test))
        return found

    def _by_date(self, found):
        found = sorted(found, key=lambda pair: (pair[1]["date"], pair[1]["id"]))
        return [self.render_test(course_id, test) for course_id, test in found]

    def _owner(self, test_id: Any) -> Dict[str, Any]:
        course = get_document(self.collection, {"tests.id": test_id})
        if course is None:
            raise NotFound("Test not found")
        return course

    def get(self, token: Any) -> Dict[str, Any]:
        test_id = self.parse_id(token)
        course = self._owner(test_id)
        for test in course["tests"]:
            if test["id"] == test_id:
                return self.render_test(course["_id"], test)
        raise NotFound("Test not found")

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        query = self.query(filters)
        course_query = {}
        if "courseId" in query:
            course_query["_id"] = query["courseId"]
        if "studentId" in query:
            course_query["tests.studentId"] = query["studentId"]
        courses = get_documents(self.collection, course_query)
        return self._by_date(self._collect(courses, query.get("studentId")))

    def create(self, payload: Payload) -> Dict[str, Any]:
        data = {k: v for k, v in payload.model_dump().items() if v is not None}
        student_id = self.parse_ref("studentId", data.pop("studentId"))
        course_id = self.parse_ref("courseId", data.pop("courseId"))
        self.validator.validate_create_test(student_id, course_id)
        with storage_errors("course.tests.push"):
            test = {"id": self.policy.allocate_nested(self.collection, "tests"), "studentId": student_id}
            test.update(data)
            res = self.collection.update_one({"_id": course_id}, {"$push": {"tests": test}})
        if res.matched_count == 0:
            raise InvalidReference("Course not found")
        logger.info("test_created", id=str(test["id"]), course_id=str(course_id))
        return self.render_test(course_id, test)

    def update(self, token: Any, payload: PartialPayload) -> Dict[str, Any]:
        test_id = self.parse_id(token)
        course = self._owner(test_id)
        changes = payload.changes()
        if "courseId" in changes:
            if self.parse_ref("courseId", changes.pop("courseId")) != course["_id"]:
                raise ValidationError("courseId cannot be changed for a test stored in its course")
        if "studentId" in changes:
            changes["studentId"] = self.parse_ref("studentId", changes["studentId"])
            self.validator.validate_student_ref(changes["studentId"])
        if changes:
            # a null optional field is stored as null, which render_test drops
            update = {"$set": {f"tests.$.{k}": v for k, v in changes.items()}}
            with storage_errors("course.tests.set"):
                res = self.collection.update_one({"_id": course["_id"], "tests.id": test_id}, update)
            if res.matched_count == 0:
                raise NotFound("Test not found")
            logger.info("test_updated", id=str(test_id), fields=sorted(changes))
        return self.get(token)

    def delete(self, token: Any) -> None:
        test_id = self.parse_id(token)
        with storage_errors("course.tests.pull"):
            res = self.collection.update_one({"tests.id": test_id}, {"$pull": {"tests": {"id": test_id}}})
        if res.matched_count == 0:
            raise NotFound("Test not found")
        logger.info("test_deleted", id=str(test_id))

    def for_student(self, token: Any) -> List[Dict[str, Any]]:
        student_id = self.parse_id(token)
        self.require("student", student_id)
        courses = get_documents(self.collection, {"tests.studentId": student_id})
        return self._by_date(self._collect(courses, student_id))

    def for_course(self, token: Any) -> List[Dict[str, Any]]:
        course_id = self.parse_id(token)
        course = get_document(self.collection, {"_id": course_id})
        if course is None:
            raise NotFound("Course not found")
        tests = sorted(course.get("tests", []), key=lambda test: test["id"])
        return [self.render_test(course_id, test) for test in tests]
