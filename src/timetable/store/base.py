"""Data-access capability consumed by the timetable core.

The store itself is a black box; anything that offers these four async
operations can back the assembler and the mutation service.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from src.timetable.config import TimetableConfig, get_config

# column -> value for equality, column -> list/tuple/set for membership
Filters = Mapping[str, Any]

MEMBERSHIP_TYPES = (list, tuple, set, frozenset)


class DataStore(Protocol):
    """Generic relational store.

    ``ordering`` lists column names, a leading '-' means descending.
    ``update`` returns the rows it changed and ``delete`` how many rows it
    removed, so a filter that matched nothing is distinguishable from success.
    """

    async def select(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        filters: Filters | None = None,
        ordering: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]: ...

    async def update(
        self, table: str, patch: Mapping[str, Any], filters: Filters
    ) -> list[dict[str, Any]]: ...

    async def delete(self, table: str, filters: Filters) -> int: ...


class TableNames(BaseModel):
    """Physical names of the logical tables the core reads and writes."""

    model_config = ConfigDict(frozen=True)

    lessons: str = "lessons"
    classes: str = "classes"
    subjects: str = "subjects"
    class_subject_teacher: str = "class_subject_teacher"
    users: str = "users"
    class_enrollment: str = "class_enrollment"

    @classmethod
    def from_config(cls, config: TimetableConfig | None = None) -> "TableNames":
        config = config or get_config()
        return cls(
            lessons=config.lessons_table,
            classes=config.classes_table,
            subjects=config.subjects_table,
            class_subject_teacher=config.class_subject_teacher_table,
            users=config.users_table,
            class_enrollment=config.class_enrollment_table,
        )
