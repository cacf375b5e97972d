"""Teacher resolution for (class, subject) pairs.

A teacher can be pinned per (class, subject) in the class-subject-teacher
table, overriding the class's default teacher; most classes only have the
default. Resolution walks that chain and always ends in a display string:

1. explicit class-subject-teacher row -> that teacher's name
2. the class's default teacher -> that teacher's name
3. "No teacher assigned"

Lookup errors count as "not found" for their step and are logged so data
quality problems stay visible to operators; nothing is raised to callers.
"""

import asyncio
from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.timetable.ids import ClassRef, SubjectRef, TeacherRef
from src.timetable.logging import get_logger
from src.timetable.models import NO_TEACHER
from src.timetable.normalize import (
    normalize_assignment,
    normalize_class,
    normalize_teacher,
)
from src.timetable.store.base import DataStore, TableNames

logger = get_logger(__name__)

Pair = tuple[ClassRef | None, SubjectRef | None]


class TeacherResolution(BaseModel):
    """Outcome of resolving one (class, subject) pair."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default=NO_TEACHER, min_length=1)
    teacher_id: TeacherRef | None = None
    source: Literal["class_subject", "class_default", "carried_over", "none"] = "none"


class TeacherResolver:
    """Resolves the responsible teacher for a (class, subject) pair."""

    def __init__(self, store: DataStore, tables: TableNames | None = None) -> None:
        self.store = store
        self.tables = tables or TableNames()

    async def resolve(
        self, class_ref: ClassRef | None, subject_ref: SubjectRef | None
    ) -> TeacherResolution:
        """Run the fallback chain for one pair. Never raises."""
        if class_ref and subject_ref:
            found = await self._from_assignment(class_ref, subject_ref)
            if found is not None:
                return found

        if class_ref:
            found = await self._from_class_default(class_ref)
            if found is not None:
                return found

        logger.info(
            "teacher_resolution_fallback",
            class_ref=class_ref,
            subject_ref=subject_ref,
            result=NO_TEACHER,
        )
        return TeacherResolution()

    async def resolve_many(self, pairs: Iterable[Pair]) -> dict[Pair, TeacherResolution]:
        """Resolve each distinct pair once, concurrently.

        Many lessons share a pair (a weekly recurring subject), so the chain
        runs per distinct pair, not per lesson.
        """
        unique = list(dict.fromkeys(pairs))
        results = await asyncio.gather(*(self.resolve(c, s) for c, s in unique))
        logger.debug("teachers_resolved", pairs=len(unique))
        return dict(zip(unique, results))

    async def _from_assignment(
        self, class_ref: ClassRef, subject_ref: SubjectRef
    ) -> TeacherResolution | None:
        step = "class_subject"
        try:
            rows = await self.store.select(
                self.tables.class_subject_teacher,
                filters={"class_ref": class_ref, "subject_ref": subject_ref},
            )
        except Exception as e:
            logger.warning(
                "teacher_lookup_failed",
                step=step,
                class_ref=class_ref,
                subject_ref=subject_ref,
                error=str(e),
            )
            return None

        assignments = [a for a in map(normalize_assignment, rows) if a is not None]
        teacher = next((a.teacher_ref for a in assignments if a.teacher_ref), None)
        if teacher is None:
            logger.debug(
                "teacher_resolution_miss",
                step=step,
                class_ref=class_ref,
                subject_ref=subject_ref,
                reason="no_assignment" if not assignments else "no_teacher_ref",
            )
            return None

        name = await self._teacher_name(teacher, step)
        if name is None:
            return None
        return TeacherResolution(name=name, teacher_id=teacher, source=step)

    async def _from_class_default(self, class_ref: ClassRef) -> TeacherResolution | None:
        step = "class_default"
        try:
            rows = await self.store.select(self.tables.classes, filters={"id": class_ref})
        except Exception as e:
            logger.warning(
                "teacher_lookup_failed", step=step, class_ref=class_ref, error=str(e)
            )
            return None

        record = next((c for c in map(normalize_class, rows) if c is not None), None)
        if record is None or record.default_teacher_ref is None:
            logger.info(
                "teacher_resolution_miss",
                step=step,
                class_ref=class_ref,
                reason="class_not_found" if record is None else "no_default_teacher",
            )
            return None

        name = await self._teacher_name(record.default_teacher_ref, step)
        if name is None:
            return None
        return TeacherResolution(
            name=name, teacher_id=record.default_teacher_ref, source=step
        )

    async def _teacher_name(self, teacher_ref: TeacherRef, step: str) -> str | None:
        try:
            rows = await self.store.select(self.tables.users, filters={"id": teacher_ref})
        except Exception as e:
            logger.warning(
                "teacher_lookup_failed",
                step=step,
                teacher_ref=teacher_ref,
                error=str(e),
            )
            return None

        teacher = next((t for t in map(normalize_teacher, rows) if t is not None), None)
        name = teacher.display_name if teacher is not None else ""
        if not name:
            logger.info(
                "teacher_resolution_miss",
                step=step,
                teacher_ref=teacher_ref,
                reason="teacher_not_found" if teacher is None else "empty_name",
            )
            return None
        return name
