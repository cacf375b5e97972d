import asyncio
from datetime import date

import pytest

from src.timetable.assembler import ScheduleAssembler
from src.timetable.colors import color_for
from src.timetable.errors import PermanentStoreError
from src.timetable.ids import LessonId
from src.timetable.models import LessonPatch
from src.timetable.mutations import ResilientMutationService, apply_result
from src.timetable.store.memory import InMemoryStore


@pytest.fixture
def snapshot(store):
    return asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22)))


def _lesson_id(snapshot, native):
    return next(e.id for e in snapshot.events if e.id.native == native)


def _row(store, key):
    return next((row for row in store.rows("lessons") if row["id"] == key), None)


def _strategies(result):
    return [a.strategy for a in result.attempts]


def _make_stale(store, old, new):
    """Change a row's key behind the view's back."""
    _row(store, old)["id"] = new


def test_update_by_direct_key(store, snapshot):
    service = ResilientMutationService(store)
    result = asyncio.run(
        service.update(_lesson_id(snapshot, 1), LessonPatch(title="Algebra II"), snapshot=snapshot)
    )

    assert result.ok
    assert result.strategy == "direct_key"
    assert _row(store, 1)["title"] == "Algebra II"
    assert result.event.title == "Algebra II"
    assert result.event.teacher_name == "J. Doe"
    assert result.event.id == _lesson_id(snapshot, 1)


def test_stale_key_and_shared_subject_uses_structural_search(store, snapshot):
    # Lessons 1 and 3 share (class 1, Math); only lesson 1 is "Algebra" on Monday
    _make_stale(store, 1, 500)
    service = ResilientMutationService(store)
    result = asyncio.run(
        service.update(_lesson_id(snapshot, 1), LessonPatch(location="Room 9"), snapshot=snapshot)
    )

    assert result.ok
    assert result.strategy == "structural_search"
    assert _strategies(result) == ["direct_key", "secondary_key", "structural_search"]
    assert _row(store, 500)["location"] == "Room 9"
    assert store.count_calls("insert") == 0
    assert store.count_calls("delete") == 0


def test_stale_key_with_unique_subject_uses_secondary_key(store, snapshot):
    _make_stale(store, 2, 600)
    service = ResilientMutationService(store)
    result = asyncio.run(
        service.update(_lesson_id(snapshot, 2), LessonPatch(end_hour=12), snapshot=snapshot)
    )

    assert result.ok
    assert result.strategy == "secondary_key"
    assert _row(store, 600)["end_hour"] == 12
    assert result.event.end_hour == 12


def test_update_changing_subject_resolves_teacher_again(store, snapshot):
    service = ResilientMutationService(store)
    result = asyncio.run(
        service.update(_lesson_id(snapshot, 2), LessonPatch(subject_ref="10"), snapshot=snapshot)
    )

    assert result.ok
    assert result.event.teacher_name == "J. Doe"
    assert result.event.course_name == "Math"
    assert result.event.color == color_for("Math")


def test_update_falls_back_to_destroy_and_recreate(store, snapshot):
    store.fail("update", "lessons")
    service = ResilientMutationService(store)
    result = asyncio.run(
        service.update(_lesson_id(snapshot, 1), LessonPatch(start_hour=11, end_hour=12), snapshot=snapshot)
    )

    assert result.ok
    assert result.degraded
    assert result.strategy == "destroy_recreate"
    assert _row(store, 1) is None
    recreated = _row(store, 6)
    assert recreated["title"] == "Algebra"
    assert (recreated["start_hour"], recreated["end_hour"]) == (11, 12)
    assert result.event.id.native == 6
    assert result.lesson_id == _lesson_id(snapshot, 1)


def test_recreate_insert_failure_is_fatal(store, snapshot):
    store.fail("update", "lessons")
    store.fail("insert", "lessons", PermanentStoreError("constraint violated"))
    service = ResilientMutationService(store)
    result = asyncio.run(
        service.update(_lesson_id(snapshot, 1), LessonPatch(title="Gone"), snapshot=snapshot)
    )

    assert result.status == "fatal"
    assert not result.ok
    assert "deleted" in result.message
    assert _row(store, 1) is None
    assert store.count_calls("insert") == 1


def test_update_failing_everywhere_reports_last_error(store, snapshot):
    store.fail("update", "lessons", PermanentStoreError("boom"))
    store.fail("delete", "lessons", PermanentStoreError("boom"))
    service = ResilientMutationService(store)
    result = asyncio.run(
        service.update(_lesson_id(snapshot, 1), LessonPatch(title="Never"), snapshot=snapshot)
    )

    assert result.status == "failed"
    assert "boom" in result.message
    assert store.count_calls("insert") == 0
    assert _row(store, 1)["title"] == "Algebra"
    assert apply_result(snapshot.events, result) is snapshot.events


def test_update_of_lesson_not_in_view(store, snapshot):
    result = asyncio.run(
        ResilientMutationService(store).update(
            LessonId.synthesized(999), LessonPatch(title="x"), snapshot=snapshot
        )
    )
    assert result.status == "failed"
    assert result.message == "Cannot find the lesson in the current view"


def test_update_without_changes_is_skipped(store, snapshot):
    calls = store.count_calls()
    result = asyncio.run(
        ResilientMutationService(store).update(_lesson_id(snapshot, 1), LessonPatch(), snapshot=snapshot)
    )
    assert result.status == "skipped"
    assert store.count_calls() == calls


def test_delete_without_selection_is_a_no_op(store, snapshot):
    calls = store.count_calls()
    result = asyncio.run(ResilientMutationService(store).remove(None, snapshot=snapshot))
    assert result.status == "skipped"
    assert store.count_calls() == calls
    assert apply_result(snapshot.events, result) is snapshot.events


def test_delete_by_direct_key(store, snapshot):
    lesson_id = _lesson_id(snapshot, 4)
    result = asyncio.run(ResilientMutationService(store).remove(lesson_id, snapshot=snapshot))

    assert result.ok
    assert result.strategy == "direct_key"
    assert _row(store, 4) is None
    remaining = apply_result(snapshot.events, result)
    assert lesson_id not in [e.id for e in remaining]
    assert len(remaining) == 4


def test_delete_with_stale_key(store, snapshot):
    _make_stale(store, 1, 500)
    result = asyncio.run(
        ResilientMutationService(store).remove(_lesson_id(snapshot, 1), snapshot=snapshot)
    )
    assert result.ok
    assert result.strategy == "structural_search"
    assert _row(store, 500) is None


def test_delete_that_cannot_locate_the_row_fails(store, snapshot):
    # Lesson 3 shares its subject and its title only exists in the joined view
    _make_stale(store, 3, 700)
    result = asyncio.run(
        ResilientMutationService(store).remove(_lesson_id(snapshot, 3), snapshot=snapshot)
    )
    assert result.status == "failed"
    assert "multiple attempts" in result.message
    assert _row(store, 700) is not None


def test_create_returns_event_with_store_key(store, snapshot):
    patch = LessonPatch(title="Chemistry", class_ref="1", subject_ref="10", day=4, start_hour=11, end_hour=12)
    result = asyncio.run(ResilientMutationService(store).create(patch, snapshot=snapshot))

    assert result.ok
    assert result.lesson_id.native == 6
    assert result.event.teacher_name == "J. Doe"
    assert result.event.class_name == "10A"
    assert "color" not in _row(store, 6)

    events = apply_result(snapshot.events, result)
    assert events[-1] is result.event
    assert len(events) == 6


def test_create_normalizes_alternate_key_spelling(tables, snapshot):
    store = InMemoryStore(tables, returned_key_field="lessonId")
    patch = LessonPatch(title="Chemistry", day=4, start_hour=11, end_hour=12)
    result = asyncio.run(ResilientMutationService(store).create(patch, snapshot=snapshot))
    assert result.lesson_id.native == 6
    assert result.lesson_id.surrogate == 6


def test_create_without_echoed_key_gets_fresh_surrogate(tables, snapshot):
    store = InMemoryStore(tables, returned_key_field="ref")
    patch = LessonPatch(title="Chemistry", day=4, start_hour=11, end_hour=12)
    result = asyncio.run(ResilientMutationService(store).create(patch, snapshot=snapshot))

    assert result.ok
    assert not result.lesson_id.is_native_known
    assert result.lesson_id.surrogate == max(e.id.surrogate for e in snapshot.events) + 1


def test_create_requires_day_and_times(store, snapshot):
    result = asyncio.run(
        ResilientMutationService(store).create(LessonPatch(title="x", day=1), snapshot=snapshot)
    )
    assert result.status == "failed"
    assert "start_hour" in result.message
    assert store.count_calls("insert") == 0


def test_create_insert_failure(store, snapshot):
    store.fail("insert", "lessons")
    patch = LessonPatch(title="x", day=1, start_hour=9, end_hour=10)
    result = asyncio.run(ResilientMutationService(store).create(patch, snapshot=snapshot))
    assert result.status == "failed"
    assert apply_result(snapshot.events, result) is snapshot.events


def test_apply_result_replaces_updated_event(store, snapshot):
    lesson_id = _lesson_id(snapshot, 2)
    result = asyncio.run(
        ResilientMutationService(store).update(lesson_id, LessonPatch(title="Poetry"), snapshot=snapshot)
    )
    events = apply_result(snapshot.events, result)
    assert [e.id for e in events] == [e.id for e in snapshot.events]
    assert next(e for e in events if e.id == lesson_id).title == "Poetry"


def _mixed_key_tables(tables):
    tables["lessons"] = [
        {"id": 1, "title": "Algebra", "class_ref": 1, "subject_ref": 10, "day": 0, "start_hour": 9, "end_hour": 10},
        {"id": 2, "title": "Grammar", "class_ref": 1, "subject_ref": 11, "day": 1, "start_hour": 10, "end_hour": 11},
        {"id": "abc-def", "title": "Lab", "class_ref": 2, "subject_ref": 12, "day": 3, "start_hour": 13, "end_hour": 14},
    ]
    return tables


def test_create_keeps_surrogates_unique_with_opaque_keys(tables):
    store = InMemoryStore(_mixed_key_tables(tables))
    snapshot = asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22)))
    assert sorted(e.id.surrogate for e in snapshot.events) == [1, 2, 3]

    patch = LessonPatch(title="Chemistry", day=4, start_hour=11, end_hour=12)
    result = asyncio.run(ResilientMutationService(store).create(patch, snapshot=snapshot))

    assert result.ok
    assert result.lesson_id.native == 3
    assert result.lesson_id.surrogate == 4
    events = apply_result(snapshot.events, result)
    assert len({e.id.surrogate for e in events}) == len(events) == 4


def test_recreated_row_keeps_surrogates_unique(tables):
    store = InMemoryStore(_mixed_key_tables(tables), key_factory=lambda table: 3)
    snapshot = asyncio.run(ScheduleAssembler(store).assemble(date(2026, 10, 22)))
    store.fail("update", "lessons")

    lesson_id = _lesson_id(snapshot, 1)
    result = asyncio.run(
        ResilientMutationService(store).update(lesson_id, LessonPatch(title="Algebra II"), snapshot=snapshot)
    )

    assert result.strategy == "destroy_recreate"
    assert result.event.id.native == 3
    assert result.event.id.surrogate == lesson_id.surrogate
    events = apply_result(snapshot.events, result)
    assert len({e.id.surrogate for e in events}) == len(events) == 3


def test_recreate_writes_stored_values_not_display_fallbacks(store, snapshot):
    # Lesson 3 has no title (shown as its subject) and a stored color;
    # lesson 1 has a title and a color derived from its subject
    store.fail("update", "lessons")
    service = ResilientMutationService(store)

    untitled = asyncio.run(
        service.update(_lesson_id(snapshot, 3), LessonPatch(location="Room 2"), snapshot=snapshot)
    )
    assert untitled.strategy == "destroy_recreate"
    row = _row(store, untitled.event.id.native)
    assert row["title"] is None
    assert row["color"] == "#123456"
    assert untitled.event.title == "Math"

    derived = asyncio.run(
        service.update(_lesson_id(snapshot, 1), LessonPatch(location="Room 3"), snapshot=snapshot)
    )
    row = _row(store, derived.event.id.native)
    assert row["title"] == "Algebra"
    assert row["color"] is None
    assert derived.event.color == color_for("Math")
