"""Lesson create/update/delete with a fallback chain of row-location strategies.

The UI identifies lessons by a numeric surrogate that does not always match
the store's own key, so "update where id = x" can silently match nothing.
Updates and deletes therefore try an ordered list of strategies, stopping
at the first that reports success:

1. direct_key         - by the row's native key, when known and well-typed
2. secondary_key      - by (subject_ref, class_ref), when that pair is unique
3. structural_search  - find rows with the same (title, day); act only on a
                        single match
4. destroy_recreate   - updates only: delete via 1-3, then insert the desired
                        state as a new row

Every attempt yields a StrategyOutcome; the service returns a
MutationResult and never raises. Local state is patched by the caller only
for successful results.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from src.timetable.assembler import ScheduleAssembler, ScheduleSnapshot
from src.timetable.ids import LessonId
from src.timetable.ids import class_ref as to_class_ref
from src.timetable.ids import subject_ref as to_subject_ref
from src.timetable.logging import get_logger
from src.timetable.models import Lesson, LessonPatch, ResolvedEvent
from src.timetable.normalize import (
    CLASS_REF_KEYS,
    SUBJECT_REF_KEYS,
    inserted_key,
    inserted_ref,
    native_key,
)
from src.timetable.resolver import TeacherResolution, TeacherResolver
from src.timetable.store.base import DataStore, Filters, TableNames

log = get_logger(__name__)

Operation = Literal["create", "update", "delete"]
Status = Literal["success", "failed", "fatal", "skipped"]

# Applies the pending write to the rows matching a filter; returns rows affected
RowAction = Callable[[Filters], Awaitable[int]]

REQUIRED_FOR_CREATE = ("day", "start_hour", "end_hour")


class StrategyOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: str
    succeeded: bool
    error: str | None = None
    native_key: int | str | None = None


class MutationResult(BaseModel):
    """Tagged outcome of a create/update/delete.

    ``fatal`` is reserved for a destroy-and-recreate whose delete went
    through but whose insert did not: the lesson is gone from the store.
    """

    model_config = ConfigDict(frozen=True)

    operation: Operation
    status: Status
    lesson_id: LessonId | None = None
    strategy: str | None = None
    event: ResolvedEvent | None = None
    message: str | None = None
    degraded: bool = False
    attempts: list[StrategyOutcome] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"


class StrategyFailed(Exception):
    """Raised inside a strategy to report a clean miss with a reason."""


def _last_error(attempts: list[StrategyOutcome]) -> str | None:
    return next((a.error for a in reversed(attempts) if a.error), None)


def _fresh_id(
    key: int | str | None, snapshot: ScheduleSnapshot, replacing: LessonId | None = None
) -> LessonId:
    """Id for a newly inserted row whose surrogate no other event in ``snapshot`` uses.

    A numeric store key is its own surrogate unless assembly already gave that
    number to an opaque-keyed lesson. ``replacing`` is the lesson the row
    stands in for; its surrogate is free to reuse.
    """
    taken = {e.id.surrogate for e in snapshot.events if e.id != replacing}
    if replacing is not None:
        fallback = replacing.surrogate
    else:
        fallback = max(taken, default=0) + 1
    lesson_id = LessonId.from_native(key, fallback)
    if lesson_id.surrogate in taken:
        return LessonId(native=lesson_id.native, surrogate=fallback)
    return lesson_id


class ResilientMutationService:
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
        self.strategies: list[tuple[str, Callable[..., Awaitable[Any]]]] = [
            ("direct_key", self._direct_key),
            ("secondary_key", self._secondary_key),
            ("structural_search", self._structural_search),
        ]

    # -- public operations -------------------------------------------------

    async def create(self, patch: LessonPatch, *, snapshot: ScheduleSnapshot) -> MutationResult:
        """Insert a new lesson. Single attempt, no fallback chain."""
        row = patch.to_row()
        missing = [f for f in REQUIRED_FOR_CREATE if row.get(f) is None]
        if missing:
            return MutationResult(
                operation="create",
                status="failed",
                message=f"Missing required fields: {', '.join(missing)}",
            )
        row.setdefault("start_minute", 0)
        row.setdefault("end_minute", 0)

        try:
            inserted = await self.store.insert(self.tables.lessons, row)
        except Exception as e:
            log.error("lesson_create_failed", error=str(e))
            return MutationResult(
                operation="create",
                status="failed",
                message=f"Failed to create lesson: {e}",
                attempts=[StrategyOutcome(strategy="insert", succeeded=False, error=str(e))],
            )

        key = inserted_key(inserted)
        lesson_id = _fresh_id(key, snapshot)
        if key is None:
            log.warning("lesson_created_without_key", surrogate=lesson_id.surrogate)

        lesson = Lesson(
            id=lesson_id,
            title=row.get("title"),
            class_ref=to_class_ref(inserted_ref(inserted, CLASS_REF_KEYS) or patch.class_ref),
            subject_ref=to_subject_ref(
                inserted_ref(inserted, SUBJECT_REF_KEYS) or patch.subject_ref
            ),
            day=row["day"],
            start_hour=row["start_hour"],
            start_minute=row["start_minute"],
            end_hour=row["end_hour"],
            end_minute=row["end_minute"],
            location=row.get("location"),
            color=row.get("color"),
        )
        event = await self._build(lesson, snapshot, None)
        log.info("lesson_created", lesson_id=str(lesson_id))
        return MutationResult(
            operation="create",
            status="success",
            lesson_id=lesson_id,
            strategy="insert",
            event=event,
            attempts=[StrategyOutcome(strategy="insert", succeeded=True, native_key=key)],
        )

    async def update(
        self,
        lesson_id: LessonId | None,
        patch: LessonPatch,
        *,
        snapshot: ScheduleSnapshot,
    ) -> MutationResult:
        """Write ``patch`` to the lesson, falling back through the strategy chain."""
        if lesson_id is None:
            return MutationResult(operation="update", status="skipped", message="No lesson selected")
        current = snapshot.find(lesson_id.surrogate)
        if current is None:
            return MutationResult(
                operation="update",
                status="failed",
                lesson_id=lesson_id,
                message="Cannot find the lesson in the current view",
            )
        row = patch.to_row()
        if not row:
            return MutationResult(
                operation="update", status="skipped", lesson_id=lesson_id, message="Nothing to update"
            )

        async def write(filters: Filters) -> int:
            return len(await self.store.update(self.tables.lessons, row, filters))

        attempts = await self._run_chain("update", current, write, snapshot)
        if attempts[-1].succeeded:
            event = await self._build(self._apply_patch(current, patch), snapshot, current)
            return MutationResult(
                operation="update",
                status="success",
                lesson_id=lesson_id,
                strategy=attempts[-1].strategy,
                event=event,
                attempts=attempts,
            )

        return await self._destroy_and_recreate(current, patch, snapshot, attempts)

    async def remove(
        self, lesson_id: LessonId | None, *, snapshot: ScheduleSnapshot
    ) -> MutationResult:
        """Delete the lesson, falling back through the strategy chain.

        With no lesson given this is a no-op and the store is not called.
        """
        if lesson_id is None:
            return MutationResult(operation="delete", status="skipped", message="No lesson selected")
        current = snapshot.find(lesson_id.surrogate)
        if current is None:
            return MutationResult(
                operation="delete",
                status="failed",
                lesson_id=lesson_id,
                message="Could not find the lesson to delete",
            )

        async def drop(filters: Filters) -> int:
            return await self.store.delete(self.tables.lessons, filters)

        attempts = await self._run_chain("delete", current, drop, snapshot)
        if attempts[-1].succeeded:
            return MutationResult(
                operation="delete",
                status="success",
                lesson_id=lesson_id,
                strategy=attempts[-1].strategy,
                attempts=attempts,
            )
        last = _last_error(attempts)
        log.error("lesson_delete_failed", lesson_id=str(lesson_id), error=last)
        return MutationResult(
            operation="delete",
            status="failed",
            lesson_id=lesson_id,
            message="Failed to delete lesson after multiple attempts"
            + (f": {last}" if last else ""),
            attempts=attempts,
        )

    # -- chain -------------------------------------------------------------

    async def _run_chain(
        self,
        operation: str,
        event: ResolvedEvent,
        act: RowAction,
        snapshot: ScheduleSnapshot,
        *,
        prefix: str = "",
    ) -> list[StrategyOutcome]:
        attempts: list[StrategyOutcome] = []
        for name, strategy in self.strategies:
            label = prefix + name
            try:
                key = await strategy(event, act, snapshot)
                outcome = StrategyOutcome(strategy=label, succeeded=True, native_key=key)
                log.info(
                    "mutation_strategy_succeeded",
                    operation=operation,
                    strategy=label,
                    lesson_id=str(event.id),
                )
            except Exception as e:
                outcome = StrategyOutcome(strategy=label, succeeded=False, error=str(e))
                log.warning(
                    "mutation_strategy_failed",
                    operation=operation,
                    strategy=label,
                    lesson_id=str(event.id),
                    error=str(e),
                )
            attempts.append(outcome)
            if outcome.succeeded:
                break
        return attempts

    async def _direct_key(
        self, event: ResolvedEvent, act: RowAction, snapshot: ScheduleSnapshot
    ) -> int | str:
        if not event.id.is_native_known:
            raise StrategyFailed("native key unknown")
        if not event.id.is_well_typed:
            raise StrategyFailed(f"native key {event.id.native!r} is not usable")
        if await act({"id": event.id.native}) == 0:
            raise StrategyFailed(f"no row matched id {event.id.native}")
        return event.id.native

    async def _secondary_key(
        self, event: ResolvedEvent, act: RowAction, snapshot: ScheduleSnapshot
    ) -> int | str | None:
        if event.subject_ref is None:
            raise StrategyFailed("no subject reference")
        siblings = [
            e
            for e in snapshot.events
            if e.subject_ref == event.subject_ref and e.class_ref == event.class_ref
        ]
        if len(siblings) != 1:
            raise StrategyFailed("subject reference is not unique in this schedule")

        filters: dict[str, Any] = {"subject_ref": event.subject_ref}
        if event.class_ref is not None:
            filters["class_ref"] = event.class_ref
        return await self._act_on_single_match(filters, act)

    async def _structural_search(
        self, event: ResolvedEvent, act: RowAction, snapshot: ScheduleSnapshot
    ) -> int | str | None:
        return await self._act_on_single_match({"title": event.title, "day": event.day}, act)

    async def _act_on_single_match(self, filters: Filters, act: RowAction) -> int | str | None:
        rows = await self.store.select(self.tables.lessons, filters=filters)
        if not rows:
            raise StrategyFailed(f"no row matched {dict(filters)}")
        if len(rows) > 1:
            raise StrategyFailed(f"{len(rows)} rows matched {dict(filters)}")
        key = native_key(rows[0].get("id"))
        if key is None:
            raise StrategyFailed("matched row has no key")
        if await act({"id": key}) == 0:
            raise StrategyFailed(f"matched row {key} could not be written")
        return key

    async def _destroy_and_recreate(
        self,
        current: ResolvedEvent,
        patch: LessonPatch,
        snapshot: ScheduleSnapshot,
        attempts: list[StrategyOutcome],
    ) -> MutationResult:
        log.warning(
            "mutation_degraded_path",
            strategy="destroy_recreate",
            lesson_id=str(current.id),
            reason=_last_error(attempts),
        )

        async def drop(filters: Filters) -> int:
            return await self.store.delete(self.tables.lessons, filters)

        deletes = await self._run_chain(
            "update", current, drop, snapshot, prefix="destroy_recreate:"
        )
        attempts = attempts + deletes
        if not deletes[-1].succeeded:
            last = _last_error(attempts)
            log.error("lesson_update_failed", lesson_id=str(current.id), error=last)
            return MutationResult(
                operation="update",
                status="failed",
                lesson_id=current.id,
                message="Failed to update lesson after multiple attempts"
                + (f": {last}" if last else ""),
                attempts=attempts,
            )

        desired = self._apply_patch(current, patch)
        row = {
            "title": desired.title,
            "class_ref": desired.class_ref,
            "subject_ref": desired.subject_ref,
            "day": desired.day,
            "start_hour": desired.start_hour,
            "start_minute": desired.start_minute,
            "end_hour": desired.end_hour,
            "end_minute": desired.end_minute,
            "location": desired.location,
            "color": desired.color,
        }
        try:
            inserted = await self.store.insert(self.tables.lessons, row)
        except Exception as e:
            # The old row is gone; surfaced as fatal, never retried
            log.critical(
                "lesson_recreate_failed",
                lesson_id=str(current.id),
                deleted_key=deletes[-1].native_key,
                row=row,
                error=str(e),
            )
            attempts.append(
                StrategyOutcome(strategy="destroy_recreate", succeeded=False, error=str(e))
            )
            return MutationResult(
                operation="update",
                status="fatal",
                lesson_id=current.id,
                message=f"Lesson was deleted but could not be recreated: {e}",
                degraded=True,
                attempts=attempts,
            )

        key = inserted_key(inserted)
        new_id = _fresh_id(key, snapshot, replacing=current.id)
        attempts.append(
            StrategyOutcome(strategy="destroy_recreate", succeeded=True, native_key=key)
        )
        log.warning(
            "lesson_recreated",
            old_lesson_id=str(current.id),
            new_lesson_id=str(new_id),
        )
        event = await self._build(desired.model_copy(update={"id": new_id}), snapshot, current)
        return MutationResult(
            operation="update",
            status="success",
            lesson_id=current.id,
            strategy="destroy_recreate",
            event=event,
            degraded=True,
            attempts=attempts,
        )

    # -- local state -------------------------------------------------------

    @staticmethod
    def _apply_patch(current: ResolvedEvent, patch: LessonPatch) -> Lesson:
        """The stored lesson as it should look after ``patch``.

        Title and color start from the stored values, not the display ones,
        so fallback titles and derived colors are never written back.
        """
        changes = patch.to_row()

        def take(field: str) -> Any:
            value = changes.get(field)
            return getattr(current, field) if value is None else value

        return Lesson(
            id=current.id,
            title=changes.get("title", current.stored_title),
            class_ref=changes.get("class_ref", current.class_ref),
            subject_ref=changes.get("subject_ref", current.subject_ref),
            day=take("day"),
            start_hour=take("start_hour"),
            start_minute=take("start_minute"),
            end_hour=take("end_hour"),
            end_minute=take("end_minute"),
            location=changes.get("location", current.location),
            color=changes.get("color", current.stored_color),
        )

    async def _build(
        self,
        lesson: Lesson,
        snapshot: ScheduleSnapshot,
        previous: ResolvedEvent | None,
    ) -> ResolvedEvent:
        same_pair = previous is not None and (
            previous.class_ref,
            previous.subject_ref,
        ) == (lesson.class_ref, lesson.subject_ref)
        if same_pair:
            teacher = TeacherResolution(
                name=previous.teacher_name,
                teacher_id=previous.teacher_id,
                source="carried_over",
            )
        else:
            teacher = await self.resolver.resolve(lesson.class_ref, lesson.subject_ref)
        return ScheduleAssembler.build_event(lesson, snapshot.classes, snapshot.subjects, teacher)


def apply_result(events: list[ResolvedEvent], result: MutationResult) -> list[ResolvedEvent]:
    """Optimistically patch a local event list with a mutation result.

    Anything but a success leaves ``events`` untouched, so the view never
    shows a write that did not persist.
    """
    if not result.ok:
        return events
    if result.operation == "create" and result.event is not None:
        return events + [result.event]
    if result.lesson_id is None:
        return events
    target = result.lesson_id.surrogate
    if result.operation == "delete":
        return [e for e in events if e.id.surrogate != target]
    if result.event is not None:
        return [result.event if e.id.surrogate == target else e for e in events]
    return events
