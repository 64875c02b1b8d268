"""
Database Schemas for the School API

Each entity has a Create model (POST body), an Update model (PUT body,
every field optional, only the supplied ones are applied) and an Out model
(response). The Mongo collection is the lowercase entity name:
Student -> "student", Test -> "test".

Payloads are lenient about scalar types: numbers may arrive as text and
text fields accept numbers. Unknown fields are rejected.
"""

from typing import ClassVar, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

EntityId = Union[int, str]


class Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)


class PartialPayload(Payload):
    # fields that may be omitted from an update but not cleared with null
    required_fields: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def no_null_required(self):
        for name in self.model_fields_set & set(self.required_fields):
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


# Students

class StudentCreate(Payload):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    grade: int
    studentNumber: str = Field(..., min_length=1)
    homeroom: Optional[str] = None


class StudentUpdate(PartialPayload):
    required_fields = ("firstName", "lastName", "grade", "studentNumber")

    firstName: Optional[str] = Field(None, min_length=1)
    lastName: Optional[str] = Field(None, min_length=1)
    grade: Optional[int] = None
    studentNumber: Optional[str] = Field(None, min_length=1)
    homeroom: Optional[str] = None


class StudentOut(BaseModel):
    id: EntityId
    firstName: str
    lastName: str
    grade: int
    studentNumber: str
    homeroom: Optional[str] = None


# Teachers

class TeacherCreate(Payload):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    employeeNumber: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    room: Optional[str] = None


class TeacherUpdate(PartialPayload):
    required_fields = ("firstName", "lastName")

    firstName: Optional[str] = Field(None, min_length=1)
    lastName: Optional[str] = Field(None, min_length=1)
    employeeNumber: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    room: Optional[str] = None


class TeacherOut(BaseModel):
    id: EntityId
    firstName: str
    lastName: str
    employeeNumber: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    room: Optional[str] = None


# Courses

class CourseCreate(Payload):
    code: str = Field(..., min_length=1, description="Course code e.g., MTH1W")
    name: str = Field(..., min_length=1)
    teacherId: Optional[str] = None
    semester: str
    room: str = Field(..., min_length=1)
    schedule: Optional[str] = None


class CourseUpdate(PartialPayload):
    required_fields = ("code", "name", "semester", "room")

    code: Optional[str] = Field(None, min_length=1)
    name: Optional[str] = Field(None, min_length=1)
    teacherId: Optional[str] = None
    semester: Optional[str] = None
    room: Optional[str] = Field(None, min_length=1)
    schedule: Optional[str] = None


class CourseOut(BaseModel):
    id: EntityId
    code: str
    name: str
    teacherId: Optional[EntityId] = None
    semester: str
    room: str
    schedule: Optional[str] = None


# Tests

class TestCreate(Payload):
    studentId: str
    courseId: str
    testName: str = Field(..., min_length=1)
    date: str = Field(..., min_length=1, description="Free-form date, not validated as a calendar date")
    mark: float
    outOf: float = Field(..., gt=0)
    weight: Optional[float] = None


class TestUpdate(PartialPayload):
    required_fields = ("studentId", "courseId", "testName", "date", "mark", "outOf")

    studentId: Optional[str] = None
    courseId: Optional[str] = None
    testName: Optional[str] = Field(None, min_length=1)
    date: Optional[str] = Field(None, min_length=1)
    mark: Optional[float] = None
    outOf: Optional[float] = Field(None, gt=0)
    weight: Optional[float] = None


class TestOut(BaseModel):
    id: EntityId
    studentId: EntityId
    courseId: EntityId
    testName: str
    date: str
    mark: float
    outOf: float
    weight: Optional[float] = None


class AverageOut(BaseModel):
    average: float


class MessageOut(BaseModel):
    message: str
