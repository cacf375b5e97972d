"""Weekly timetable view controller.

One explicit state machine per view replaces a scatter of loading/saving
flags:

    IDLE -> LOADING -> READY -> MUTATING -> READY | ERROR
    LOADING -> ERROR; ERROR -> LOADING | READY

Week navigation is latched: while one transition is settling, further
previous/next requests and edits are dropped, not queued. Loads carry a generation
number and a result that arrives after a newer load started is discarded.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from enum import Enum

from src.timetable.assembler import ScheduleAssembler, ScheduleSnapshot
from src.timetable.config import TimetableConfig, get_config
from src.timetable.errors import InvalidTransitionError
from src.timetable.filters import FilterEngine, FilterState
from src.timetable.ids import LessonId, StudentRef
from src.timetable.layout import GridGeometry, GridLayoutEngine, NowIndicator, PositionedEvent
from src.timetable.logging import get_logger
from src.timetable.models import Child, LessonPatch, ResolvedEvent
from src.timetable.mutations import MutationResult, ResilientMutationService, apply_result
from src.timetable.week import shift_week, week_window

log = get_logger(__name__)


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    MUTATING = "mutating"
    ERROR = "error"


TRANSITIONS: dict[ViewState, frozenset[ViewState]] = {
    ViewState.IDLE: frozenset({ViewState.LOADING}),
    ViewState.LOADING: frozenset({ViewState.LOADING, ViewState.READY, ViewState.ERROR}),
    ViewState.READY: frozenset({ViewState.LOADING, ViewState.MUTATING}),
    ViewState.MUTATING: frozenset({ViewState.READY, ViewState.ERROR}),
    ViewState.ERROR: frozenset({ViewState.LOADING, ViewState.READY}),
}


class TimetableView:
    """Admin timetable: load, navigate, filter, lay out and edit one week."""

    def __init__(
        self,
        assembler: ScheduleAssembler,
        mutations: ResilientMutationService,
        *,
        config: TimetableConfig | None = None,
        anchor: date | None = None,
        clock: Callable[[], datetime] = datetime.now,
        refresh_after_mutation: bool = True,
    ) -> None:
        config = config or get_config()
        self.assembler = assembler
        self.mutations = mutations
        self.layout_engine = GridLayoutEngine(GridGeometry.from_config(config))
        self.settle_seconds = config.navigation_settle_seconds
        self.clock = clock
        self.refresh_after_mutation = refresh_after_mutation

        self.anchor: date = anchor or clock().date()
        self.state = ViewState.IDLE
        self.snapshot: ScheduleSnapshot | None = None
        self.events: list[ResolvedEvent] = []
        self.filters = FilterState()
        self.selected: LessonId | None = None
        self.error: str | None = None
        self.fatal = False

        self._generation = 0
        self._navigating = False

    # -- state machine -----------------------------------------------------

    def _transition(self, target: ViewState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"{self.state.value} -> {target.value}")
        log.debug("view_transition", source=self.state.value, target=target.value)
        self.state = target

    @property
    def week(self) -> list[date]:
        return week_window(self.anchor)

    @property
    def is_navigating(self) -> bool:
        return self._navigating

    # -- loading and navigation -------------------------------------------

    def _student_refs(self) -> list[StudentRef] | None:
        return None

    async def load(self) -> ScheduleSnapshot | None:
        """Assemble the current week.

        Returns None if a newer load superseded it or an edit is in flight.
        """
        if self.state is ViewState.MUTATING:
            log.info("load_dropped", state=self.state.value)
            return None
        self._generation += 1
        generation = self._generation
        self._transition(ViewState.LOADING)

        snapshot = await self.assembler.assemble(self.anchor, student_refs=self._student_refs())

        if generation != self._generation:
            log.debug("stale_schedule_discarded", generation=generation, current=self._generation)
            return None

        if not snapshot.ok:
            self.error = snapshot.error
            self._transition(ViewState.ERROR)
            return snapshot

        self.snapshot = snapshot
        self.events = list(snapshot.events)
        self.error = None
        self.fatal = False
        if self.selected is not None and snapshot.find(self.selected.surrogate) is None:
            self.selected = None
        self._transition(ViewState.READY)
        return snapshot

    async def next_week(self) -> bool:
        return await self._navigate(1)

    async def previous_week(self) -> bool:
        return await self._navigate(-1)

    async def go_to(self, anchor: date) -> bool:
        """Jump to the week containing ``anchor``."""
        weeks = (week_window(anchor)[0] - self.week[0]).days // 7
        return await self._navigate(weeks)

    async def _navigate(self, weeks: int) -> bool:
        if self._navigating or self.state is ViewState.MUTATING:
            log.info("navigation_dropped", weeks=weeks, state=self.state.value)
            return False
        self._navigating = True
        try:
            await asyncio.sleep(self.settle_seconds)
            if self.state is ViewState.MUTATING:
                log.info("navigation_dropped", weeks=weeks, state=self.state.value)
                return False
            self.anchor = shift_week(self.anchor, weeks)
            await self.load()
        finally:
            self._navigating = False
        return True

    # -- filtering and layout ---------------------------------------------

    def set_filters(self, **changes) -> FilterState:
        self.filters = self.filters.with_changes(**changes)
        return self.filters

    def visible_events(self) -> list[ResolvedEvent]:
        engine = FilterEngine.for_snapshot(self.snapshot) if self.snapshot else FilterEngine()
        return engine.apply(self.events, self.filters)

    def columns(self) -> dict[int, list[PositionedEvent]]:
        return self.layout_engine.by_day(self.visible_events(), self.week)

    def now_indicator(self) -> NowIndicator | None:
        return self.layout_engine.now_indicator(self.clock(), self.week)

    # -- editing -----------------------------------------------------------

    def select(self, lesson_id: LessonId | None) -> None:
        if lesson_id is not None and not any(e.id == lesson_id for e in self.events):
            raise KeyError(f"lesson {lesson_id} is not in the current view")
        self.selected = lesson_id

    def dismiss_error(self) -> None:
        if self.state is ViewState.ERROR and self.snapshot is not None:
            self.error = None
            self.fatal = False
            self._transition(ViewState.READY)

    async def save(self, patch: LessonPatch) -> MutationResult:
        """Create a lesson, or update the selected one."""
        if self.selected is None:
            return await self._mutate(
                lambda snapshot: self.mutations.create(patch, snapshot=snapshot)
            )
        selected = self.selected
        return await self._mutate(
            lambda snapshot: self.mutations.update(selected, patch, snapshot=snapshot)
        )

    async def delete_selected(self) -> MutationResult:
        """Delete the selected lesson; without a selection nothing happens."""
        if self.selected is None:
            return MutationResult(operation="delete", status="skipped", message="No lesson selected")
        selected = self.selected
        return await self._mutate(
            lambda snapshot: self.mutations.remove(selected, snapshot=snapshot)
        )

    async def _mutate(
        self, call: Callable[[ScheduleSnapshot], Awaitable[MutationResult]]
    ) -> MutationResult:
        if self._navigating:
            log.info("mutation_dropped", reason="navigating")
            return MutationResult(
                operation="update", status="skipped", message="Week navigation in progress"
            )
        if self.state is not ViewState.READY or self.snapshot is None:
            return MutationResult(
                operation="update", status="skipped", message=f"View is {self.state.value}"
            )
        self._transition(ViewState.MUTATING)

        context = self.snapshot.model_copy(update={"events": self.events})
        result = await call(context)

        if result.ok:
            self.events = apply_result(self.events, result)
            self.selected = None
            self._transition(ViewState.READY)
            if self.refresh_after_mutation:
                await self.load()
        elif result.status == "skipped":
            self._transition(ViewState.READY)
        else:
            self.error = result.message
            self.fatal = result.status == "fatal"
            self._transition(ViewState.ERROR)
        return result


class ParentTimetableView(TimetableView):
    """Read-only timetable of a parent's children.

    A child must be selected before anything is shown.
    """

    def __init__(
        self,
        assembler: ScheduleAssembler,
        mutations: ResilientMutationService,
        parent_ref: str,
        **kwargs,
    ) -> None:
        super().__init__(assembler, mutations, **kwargs)
        self.parent_ref = parent_ref
        self.children: list[Child] = []
        self.filters = FilterState(require_child=True)

    async def load_children(self) -> list[Child]:
        self.children = await self.assembler.load_children(self.parent_ref)
        if self.filters.child and all(c.id != self.filters.child for c in self.children):
            self.set_filters(child=None)
        return self.children

    def select_child(self, child: StudentRef | None) -> None:
        self.set_filters(child=child)

    def _student_refs(self) -> list[StudentRef] | None:
        return [child.id for child in self.children]

    async def _mutate(self, call) -> MutationResult:
        return MutationResult(operation="update", status="skipped", message="Parent view is read-only")
