import asyncio
from datetime import date

from src.timetable.assembler import ScheduleAssembler
from src.timetable.colors import color_for
from src.timetable.models import NO_TEACHER, UNKNOWN_CHILD, UNKNOWN_CLASS, UNKNOWN_COURSE, LessonPatch
from src.timetable.mutations import ResilientMutationService
from src.timetable.resolver import TeacherResolver


def _by_native(snapshot):
    return {event.id.native: event for event in snapshot.events}


def test_assemble_joins_labels_and_teachers(store):
    snapshot = asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22)))

    assert snapshot.ok
    assert snapshot.warnings == []
    assert snapshot.week[0] == date(2026, 10, 19)
    assert len(snapshot.events) == 5

    events = _by_native(snapshot)
    assert events[1].title == "Algebra"
    assert events[1].class_name == "10A"
    assert events[1].course_name == "Math"
    assert events[1].teacher_name == "J. Doe"
    assert events[2].teacher_name == "A. Smith"
    assert events[3].teacher_name == "J. Doe"
    assert events[4].teacher_name == NO_TEACHER
    assert events[4].course_name == "Physics"


def test_missing_title_falls_back_to_subject_name(store):
    snapshot = asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22)))
    assert _by_native(snapshot)[3].title == "Math"


def test_dangling_references_get_placeholder_labels(store):
    snapshot = asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22)))
    orphan = _by_native(snapshot)[5]
    assert orphan.class_name == UNKNOWN_CLASS
    assert orphan.course_name == UNKNOWN_COURSE
    assert orphan.teacher_name == NO_TEACHER
    assert orphan.day == 4
    assert (orphan.start_hour, orphan.end_hour) == (14, 15)


def test_colors(store):
    events = _by_native(asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22))))
    assert events[1].color == color_for("Math")
    assert events[2].color == "#ff0000"
    assert events[3].color == "#123456"


def test_teacher_resolved_once_per_pair(store):
    resolver = TeacherResolver(store)
    seen = []
    original = resolver.resolve

    async def counting(class_ref, subject_ref):
        seen.append((class_ref, subject_ref))
        return await original(class_ref, subject_ref)

    resolver.resolve = counting
    asyncio.run(ScheduleAssembler(store, resolver).assemble(date(2026, 10, 22)))

    assert len(seen) == len(set(seen)) == 4


def test_reference_table_failure_degrades_labels(store):
    store.fail("select", "classes")
    snapshot = asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22)))

    assert snapshot.ok
    assert snapshot.warnings
    assert len(snapshot.events) == 5
    assert {event.class_name for event in snapshot.events} == {UNKNOWN_CLASS}
    assert _by_native(snapshot)[1].course_name == "Math"


def test_lessons_failure_is_reported_not_raised(store):
    store.fail("select", "lessons")
    snapshot = asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22)))

    assert not snapshot.ok
    assert "Failed to load schedule" in snapshot.error
    assert snapshot.events == []
    assert len(snapshot.week) == 7


def test_week_anchor_only_moves_column_dates(store):
    assembler = ScheduleAssembler(store)
    this_week = asyncio.run(assembler.assemble(date(2026, 10, 22)))
    next_week = asyncio.run(assembler.assemble(date(2026, 10, 29)))

    assert next_week.week[0] == date(2026, 10, 26)
    assert [e.id for e in this_week.events] == [e.id for e in next_week.events]


def test_student_scope_limits_lessons_to_enrolled_classes(store):
    snapshot = asyncio.run(
        ScheduleAssembler(store).assemble(date(2026, 10, 22), student_refs=["200"])
    )
    assert {event.id.native for event in snapshot.events} == {1, 2, 3}
    assert snapshot.enrollments == {"200": frozenset({"1"})}


def test_empty_student_scope_yields_no_lessons(store):
    snapshot = asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22), student_refs=[]))
    assert snapshot.ok
    assert snapshot.events == []


def test_created_lesson_appears_after_reassembly(store):
    assembler = ScheduleAssembler(store)
    snapshot = asyncio.run(assembler.assemble(date(2026, 10, 22)))
    result = asyncio.run(
        ResilientMutationService(store).create(
            LessonPatch(title="Chemistry", class_ref="2", subject_ref="12", day=4, start_hour=11, end_hour=12),
            snapshot=snapshot,
        )
    )
    assert result.ok

    refreshed = asyncio.run(assembler.assemble(date(2026, 10, 22)))
    created = refreshed.find(result.lesson_id.surrogate)
    assert created is not None
    assert created.title == "Chemistry"
    assert created.course_name == "Physics"
    assert created.class_name == "11B"
    assert (created.day, created.start_hour, created.end_hour) == (4, 11, 12)


def test_load_children(store):
    children = asyncio.run(ScheduleAssembler(store).load_children("300"))
    assert [(c.id, c.name) for c in children] == [("200", "Ana Doe"), ("201", UNKNOWN_CHILD)]


def test_load_children_failure_is_empty(store):
    store.fail("select", "users")
    assert asyncio.run(ScheduleAssembler(store).load_children("300")) == []
    assert asyncio.run(ScheduleAssembler(store).load_children("")) == []
