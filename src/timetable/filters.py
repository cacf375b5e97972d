"""Course / class / teacher / child filtering of resolved events.

Filtering never copies or changes events: the output is the input list
minus the events that do not match, in the same order.
"""

import re
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict

from src.timetable.ids import ClassRef, StudentRef
from src.timetable.models import ClassRecord, ResolvedEvent

ALL = "all"

_GRADE = re.compile(r"\d+")


def _active(value: str | None) -> bool:
    return bool(value) and value.strip().lower() != ALL


class FilterState(BaseModel):
    """Selected filter values; None, "" or "all" disables a filter.

    ``require_child`` turns on the parent-view rule: with no child selected
    nothing is shown.
    """

    model_config = ConfigDict(frozen=True)

    course: str | None = None
    class_name: str | None = None
    teacher: str | None = None
    child: StudentRef | None = None
    require_child: bool = False

    def with_changes(self, **changes) -> "FilterState":
        return self.model_copy(update=changes)


class FilterEngine:
    """Applies a FilterState using the class and enrollment lookups of a schedule."""

    def __init__(
        self,
        classes: Mapping[ClassRef, ClassRecord] | None = None,
        enrollments: Mapping[StudentRef, frozenset[ClassRef]] | None = None,
    ) -> None:
        self.classes = classes or {}
        self.enrollments = enrollments or {}

    @classmethod
    def for_snapshot(cls, snapshot) -> "FilterEngine":
        return cls(snapshot.classes, snapshot.enrollments)

    def apply(
        self, events: list[ResolvedEvent], state: FilterState
    ) -> list[ResolvedEvent]:
        if state.require_child and not state.child:
            return []
        return [event for event in events if self.matches(event, state)]

    def matches(self, event: ResolvedEvent, state: FilterState) -> bool:
        if _active(state.course) and event.course_name != state.course:
            return False
        if _active(state.class_name) and not self._class_matches(event, state.class_name):
            return False
        if _active(state.teacher) and state.teacher not in (
            event.teacher_name,
            event.teacher_id,
        ):
            return False
        if state.child:
            enrolled = self.enrollments.get(state.child, frozenset())
            if event.class_ref not in enrolled:
                return False
        return True

    def _class_matches(self, event: ResolvedEvent, wanted: str) -> bool:
        # Joins are inconsistent: accept the denormalized name, the name of
        # the referenced class, or the raw reference.
        if event.class_name == wanted or event.class_ref == wanted:
            return True
        record = self.classes.get(event.class_ref) if event.class_ref else None
        return record is not None and record.name == wanted


def course_options(events: Iterable[ResolvedEvent]) -> list[str]:
    return sorted({event.course_name for event in events})


def teacher_options(events: Iterable[ResolvedEvent]) -> list[str]:
    return sorted({event.teacher_name for event in events})


def class_sort_key(name: str) -> tuple[int, str]:
    """Grade number first, then the full name: 9A < 10A < 10B < 11A."""
    match = _GRADE.search(name)
    return (int(match.group()) if match else 0, name)


def class_options(classes: Iterable[ClassRecord]) -> list[str]:
    names = {record.name for record in classes if record.name}
    return sorted(names, key=class_sort_key)
