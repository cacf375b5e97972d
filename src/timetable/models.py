"""Pydantic models for timetable data.

Raw store rows are converted into these by ``src.timetable.normalize``; the
rest of the package only ever sees the canonical shapes defined here.
"""

from pydantic import BaseModel, ConfigDict, Field

from src.timetable.ids import (
    ClassRef,
    LessonId,
    StudentRef,
    SubjectRef,
    TeacherRef,
)

NO_TEACHER = "No teacher assigned"
UNKNOWN_CLASS = "Unknown Class"
UNKNOWN_COURSE = "Unknown Course"
UNTITLED = "Untitled"
UNKNOWN_CHILD = "Unknown Child"


class Lesson(BaseModel):
    """A weekly-recurring lesson row. ``day`` is 0-6 with Monday=0."""

    model_config = ConfigDict(frozen=True)

    id: LessonId
    title: str | None = None
    class_ref: ClassRef | None = None
    subject_ref: SubjectRef | None = None
    day: int = Field(default=0, ge=0, le=6)
    start_hour: int = 9
    start_minute: int = 0
    end_hour: int = 10
    end_minute: int = 0
    location: str | None = None
    color: str | None = None


class ClassRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: ClassRef
    name: str | None = None
    default_teacher_ref: TeacherRef | None = None


class SubjectRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: SubjectRef
    name: str | None = None
    color: str | None = None


class TeacherAssignment(BaseModel):
    """Explicit class-subject-teacher row overriding the class default."""

    model_config = ConfigDict(frozen=True)

    class_ref: ClassRef
    subject_ref: SubjectRef
    teacher_ref: TeacherRef | None = None


class Teacher(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: TeacherRef
    first_name: str | None = None
    last_name: str | None = None

    @property
    def display_name(self) -> str:
        """'First Last' with missing parts dropped; empty if both are missing."""
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Enrollment(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_ref: StudentRef
    class_ref: ClassRef


class Child(BaseModel):
    """A student linked to a parent account."""

    model_config = ConfigDict(frozen=True)

    id: StudentRef
    name: str = UNKNOWN_CHILD


class ResolvedEvent(BaseModel):
    """A lesson joined with its display labels and effective teacher.

    Rebuilt on every assembly. ``degraded`` marks rows whose join failed and
    which carry placeholder labels. ``stored_title`` and ``stored_color`` are
    the lesson row's own values, before any fallback.
    """

    model_config = ConfigDict(frozen=True)

    id: LessonId
    title: str
    class_ref: ClassRef | None = None
    subject_ref: SubjectRef | None = None
    day: int = Field(ge=0, le=6)
    start_hour: int
    start_minute: int = 0
    end_hour: int
    end_minute: int = 0
    location: str | None = None
    color: str
    class_name: str = UNKNOWN_CLASS
    course_name: str = UNKNOWN_COURSE
    teacher_name: str = Field(default=NO_TEACHER, min_length=1)
    teacher_id: TeacherRef | None = None
    degraded: bool = False
    stored_title: str | None = None
    stored_color: str | None = None

    @property
    def start_minutes(self) -> int:
        return self.start_hour * 60 + self.start_minute

    @property
    def end_minutes(self) -> int:
        return self.end_hour * 60 + self.end_minute


class LessonPatch(BaseModel):
    """Desired state of a lesson for create/update.

    Only fields that were explicitly set are written on update.
    """

    title: str | None = None
    class_ref: ClassRef | None = None
    subject_ref: SubjectRef | None = None
    day: int | None = Field(default=None, ge=0, le=6)
    start_hour: int | None = Field(default=None, ge=0, le=23)
    start_minute: int | None = Field(default=None, ge=0, le=59)
    end_hour: int | None = Field(default=None, ge=0, le=23)
    end_minute: int | None = Field(default=None, ge=0, le=59)
    location: str | None = None
    color: str | None = None

    def to_row(self) -> dict:
        """Store row for the fields that were set, keyed by canonical column."""
        return self.model_dump(exclude_unset=True)
