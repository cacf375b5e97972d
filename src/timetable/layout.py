"""Vertical placement of events on the weekly grid.

Each event becomes a card in the column of its weekday. Its top offset and
height come from its start/end time relative to the first hour row;
partial hours map linearly. Events outside the visible hours are clipped
to the grid, never rejected.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from src.timetable.config import TimetableConfig, get_config
from src.timetable.models import ResolvedEvent
from src.timetable.week import (
    DAYS_PER_WEEK,
    MINUTES_PER_HOUR,
    is_same_calendar_day,
    time_to_offset_pixels,
)


class GridGeometry(BaseModel):
    """Grid dimensions in hours and pixels."""

    model_config = ConfigDict(frozen=True)

    start_hour: int = 8
    end_hour: int = 18
    row_height: float = 80.0
    min_height: float = 30.0

    @classmethod
    def from_config(cls, config: TimetableConfig | None = None) -> "GridGeometry":
        config = config or get_config()
        return cls(
            start_hour=config.grid_start_hour,
            end_hour=config.grid_end_hour,
            row_height=config.pixels_per_hour,
            min_height=config.min_event_height,
        )

    @property
    def height(self) -> float:
        return (self.end_hour - self.start_hour) * self.row_height


class PositionedEvent(BaseModel):
    """A resolved event with its card geometry for one grid column."""

    model_config = ConfigDict(frozen=True)

    event: ResolvedEvent
    column: int
    column_date: date
    top_px: float
    height_px: float
    clipped: bool = False


class NowIndicator(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: int
    top_px: float


class GridLayoutEngine:
    def __init__(self, geometry: GridGeometry | None = None) -> None:
        self.geometry = geometry or GridGeometry()

    def layout(
        self, events: list[ResolvedEvent], week: list[date]
    ) -> list[PositionedEvent]:
        """Position every event in its weekday column, ordered by column then top."""
        if len(week) != DAYS_PER_WEEK:
            raise ValueError(f"week must have {DAYS_PER_WEEK} days, got {len(week)}")

        placed = [self.place(event, week[event.day]) for event in events]
        placed.sort(key=lambda p: (p.column, p.top_px))
        return placed

    def by_day(
        self, events: list[ResolvedEvent], week: list[date]
    ) -> dict[int, list[PositionedEvent]]:
        buckets: dict[int, list[PositionedEvent]] = {i: [] for i in range(DAYS_PER_WEEK)}
        for positioned in self.layout(events, week):
            buckets[positioned.column].append(positioned)
        return buckets

    def place(self, event: ResolvedEvent, column_date: date) -> PositionedEvent:
        g = self.geometry
        grid_start = g.start_hour * MINUTES_PER_HOUR
        grid_end = g.end_hour * MINUTES_PER_HOUR
        start, end = event.start_minutes, event.end_minutes

        if start >= grid_end:
            top, height, clipped = max(0.0, g.height - g.min_height), g.min_height, True
        elif end <= grid_start and end > start:
            top, height, clipped = 0.0, g.min_height, True
        else:
            visible_start = max(start, grid_start)
            visible_end = min(end, grid_end)
            top = self._offset(visible_start)
            height = max(g.min_height, (visible_end - visible_start) / MINUTES_PER_HOUR * g.row_height)
            clipped = visible_start != start or visible_end != end

        return PositionedEvent(
            event=event,
            column=event.day,
            column_date=column_date,
            top_px=max(0.0, top),
            height_px=height,
            clipped=clipped,
        )

    def now_indicator(self, now: datetime, week: list[date]) -> NowIndicator | None:
        """Current-time line, only in today's column and within the visible hours."""
        column = next(
            (i for i, day in enumerate(week) if is_same_calendar_day(day, now)), None
        )
        if column is None:
            return None
        g = self.geometry
        minutes = now.hour * MINUTES_PER_HOUR + now.minute
        if not g.start_hour * MINUTES_PER_HOUR <= minutes <= g.end_hour * MINUTES_PER_HOUR:
            return None
        top = time_to_offset_pixels(now.hour, now.minute, g.start_hour, g.row_height)
        return NowIndicator(column=column, top_px=top)

    def _offset(self, minutes: int) -> float:
        hour, minute = divmod(minutes, MINUTES_PER_HOUR)
        return time_to_offset_pixels(
            hour, minute, self.geometry.start_hour, self.geometry.row_height
        )
