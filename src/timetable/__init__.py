"""Weekly timetable resolution and layout.

Turns loosely-normalized lesson, class, subject and teacher-assignment rows
into a positioned weekly grid, and writes lesson edits back through a
fallback chain of row-location strategies.
"""

from src.timetable.assembler import ScheduleAssembler, ScheduleSnapshot
from src.timetable.filters import FilterEngine, FilterState
from src.timetable.layout import GridGeometry, GridLayoutEngine, PositionedEvent
from src.timetable.models import LessonPatch, ResolvedEvent
from src.timetable.mutations import MutationResult, ResilientMutationService
from src.timetable.resolver import TeacherResolution, TeacherResolver
from src.timetable.view import ParentTimetableView, TimetableView, ViewState

__all__ = [
    "ScheduleAssembler",
    "ScheduleSnapshot",
    "FilterEngine",
    "FilterState",
    "GridGeometry",
    "GridLayoutEngine",
    "PositionedEvent",
    "LessonPatch",
    "ResolvedEvent",
    "MutationResult",
    "ResilientMutationService",
    "TeacherResolution",
    "TeacherResolver",
    "ParentTimetableView",
    "TimetableView",
    "ViewState",
]
