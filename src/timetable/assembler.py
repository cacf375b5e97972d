"""Schedule assembly: lessons + reference tables -> resolved events.

Loads the lesson table and the reference tables concurrently, resolves the
teacher once per distinct (class, subject) pair and joins everything into
ResolvedEvent records. A broken reference table or a malformed row degrades
labels; it never blanks the whole week.
"""

import asyncio
from collections.abc import Iterable
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from src.timetable.colors import resolve_color
from src.timetable.ids import ClassRef, StudentRef, SubjectRef
from src.timetable.logging import get_logger
from src.timetable.models import (
    UNKNOWN_CLASS,
    UNKNOWN_COURSE,
    UNTITLED,
    Child,
    ClassRecord,
    Lesson,
    ResolvedEvent,
    SubjectRecord,
)
from src.timetable.normalize import (
    PARENT_REF_KEYS,
    normalize_child,
    normalize_class,
    normalize_enrollment,
    normalize_lessons,
    normalize_subject,
)
from src.timetable.resolver import TeacherResolution, TeacherResolver
from src.timetable.store.base import DataStore, TableNames
from src.timetable.week import week_window

log = get_logger(__name__)


class ScheduleSnapshot(BaseModel):
    """Result of one assembly pass.

    ``error`` is set only when the lesson table itself could not be read;
    reference-table failures show up in ``warnings`` instead.
    """

    model_config = ConfigDict(frozen=True)

    week: list[date]
    events: list[ResolvedEvent] = Field(default_factory=list)
    classes: dict[ClassRef, ClassRecord] = Field(default_factory=dict)
    subjects: dict[SubjectRef, SubjectRecord] = Field(default_factory=dict)
    enrollments: dict[StudentRef, frozenset[ClassRef]] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def find(self, surrogate: int) -> ResolvedEvent | None:
        return next((e for e in self.events if e.id.surrogate == surrogate), None)


class ScheduleAssembler:
    """Builds ScheduleSnapshots from the store."""

    def __init__(
        self,
        store: DataStore,
        resolver: TeacherResolver | None = None,
        *,
        tables: TableNames | None = None,
    ) -> None:
        self.store = store
        self.tables = tables or TableNames()
        self.resolver = resolver or TeacherResolver(store, self.tables)

    async def assemble(
        self,
        week_anchor: date | datetime | None = None,
        *,
        student_refs: Iterable[StudentRef] | None = None,
    ) -> ScheduleSnapshot:
        """Assemble the weekly schedule.

        ``day`` is a weekday index and lessons repeat every week, so the
        anchor only selects the dates of the grid columns.

        Args:
            week_anchor: Any date inside the wanted week (default: today).
            student_refs: Restrict lessons to the classes these students are
                enrolled in (parent and student views).

        Returns:
            ScheduleSnapshot with events and the reference data used.
        """
        week = week_window(week_anchor or date.today())
        students = list(dict.fromkeys(student_refs)) if student_refs is not None else None
        enrollment_filters = {"student_ref": students} if students else None

        lesson_rows, class_rows, subject_rows, enrollment_rows = await asyncio.gather(
            self.store.select(self.tables.lessons),
            self.store.select(self.tables.classes),
            self.store.select(self.tables.subjects),
            self.store.select(self.tables.class_enrollment, filters=enrollment_filters),
            return_exceptions=True,
        )

        warnings: list[str] = []

        if isinstance(lesson_rows, BaseException):
            log.error("lessons_load_failed", error=str(lesson_rows))
            return ScheduleSnapshot(
                week=week, error=f"Failed to load schedule: {lesson_rows}"
            )

        classes = self._index(class_rows, normalize_class, "classes", warnings)
        subjects = self._index(subject_rows, normalize_subject, "subjects", warnings)
        enrollments = self._enrollments(enrollment_rows, warnings)

        lessons = normalize_lessons(lesson_rows)
        if students is not None:
            allowed = set().union(*(enrollments.get(s, frozenset()) for s in students))
            lessons = [lesson for lesson in lessons if lesson.class_ref in allowed]

        teachers = await self.resolver.resolve_many(
            (lesson.class_ref, lesson.subject_ref) for lesson in lessons
        )

        events = []
        for lesson in lessons:
            teacher = teachers.get((lesson.class_ref, lesson.subject_ref), TeacherResolution())
            try:
                events.append(self.build_event(lesson, classes, subjects, teacher))
            except Exception as e:
                log.warning("lesson_join_failed", lesson_id=str(lesson.id), error=str(e))
                events.append(self.placeholder_event(lesson, teacher))

        log.info(
            "schedule_assembled",
            week_start=week[0].isoformat(),
            lessons=len(events),
            teacher_pairs=len(teachers),
            warnings=len(warnings),
        )
        return ScheduleSnapshot(
            week=week,
            events=events,
            classes=classes,
            subjects=subjects,
            enrollments=enrollments,
            warnings=warnings,
        )

    async def load_children(self, parent_ref: str) -> list[Child]:
        """Students linked to a parent account. Empty on any failure."""
        if not parent_ref:
            return []
        try:
            rows = await self.store.select(
                self.tables.users, filters={PARENT_REF_KEYS[0]: parent_ref}
            )
        except Exception as e:
            log.warning("children_load_failed", parent_ref=parent_ref, error=str(e))
            return []
        return [child for child in map(normalize_child, rows) if child is not None]

    @staticmethod
    def build_event(
        lesson: Lesson,
        classes: dict[ClassRef, ClassRecord],
        subjects: dict[SubjectRef, SubjectRecord],
        teacher: TeacherResolution,
    ) -> ResolvedEvent:
        """Join one lesson with its labels and resolved teacher."""
        klass = classes.get(lesson.class_ref) if lesson.class_ref else None
        subject = subjects.get(lesson.subject_ref) if lesson.subject_ref else None
        subject_name = subject.name if subject else None

        return ResolvedEvent(
            id=lesson.id,
            title=lesson.title or subject_name or UNTITLED,
            class_ref=lesson.class_ref,
            subject_ref=lesson.subject_ref,
            day=lesson.day,
            start_hour=lesson.start_hour,
            start_minute=lesson.start_minute,
            end_hour=lesson.end_hour,
            end_minute=lesson.end_minute,
            location=lesson.location,
            color=resolve_color(
                lesson.color,
                subject.color if subject else None,
                subject_name,
                lesson.title,
            ),
            class_name=(klass.name if klass and klass.name else UNKNOWN_CLASS),
            course_name=subject_name or UNKNOWN_COURSE,
            teacher_name=teacher.name,
            teacher_id=teacher.teacher_id,
            stored_title=lesson.title,
            stored_color=lesson.color,
        )

    @staticmethod
    def placeholder_event(lesson: Lesson, teacher: TeacherResolution) -> ResolvedEvent:
        return ResolvedEvent(
            id=lesson.id,
            title=lesson.title or UNTITLED,
            class_ref=lesson.class_ref,
            subject_ref=lesson.subject_ref,
            day=lesson.day,
            start_hour=lesson.start_hour,
            start_minute=lesson.start_minute,
            end_hour=lesson.end_hour,
            end_minute=lesson.end_minute,
            location=lesson.location,
            color=resolve_color(lesson.color, None, None, lesson.title),
            teacher_name=teacher.name,
            teacher_id=teacher.teacher_id,
            stored_title=lesson.title,
            stored_color=lesson.color,
            degraded=True,
        )

    @staticmethod
    def _index(rows, normalizer, table: str, warnings: list[str]) -> dict:
        if isinstance(rows, BaseException):
            log.warning("reference_load_failed", table=table, error=str(rows))
            warnings.append(f"Could not load {table}; some labels may be missing.")
            return {}
        index = {}
        for row in rows:
            try:
                record = normalizer(row)
            except (AttributeError, TypeError, ValueError) as e:
                log.warning("reference_row_unreadable", table=table, error=str(e))
                continue
            if record is not None:
                index[record.id] = record
        return index

    @staticmethod
    def _enrollments(rows, warnings: list[str]) -> dict[StudentRef, frozenset[ClassRef]]:
        if isinstance(rows, BaseException):
            log.warning("reference_load_failed", table="class_enrollment", error=str(rows))
            warnings.append("Could not load class enrollments.")
            return {}
        grouped: dict[StudentRef, set[ClassRef]] = {}
        for row in rows:
            try:
                enrollment = normalize_enrollment(row)
            except (AttributeError, TypeError, ValueError):
                continue
            if enrollment is not None:
                grouped.setdefault(enrollment.student_ref, set()).add(enrollment.class_ref)
        return {student: frozenset(classes) for student, classes in grouped.items()}
