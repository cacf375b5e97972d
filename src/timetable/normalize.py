"""Normalization boundary between raw store rows and canonical models.

The backing schema has been written by several code paths over time, so the
same column can appear as ``class_ref``, ``classId``, ``class_id`` or
``classid``, times can be ints, "HH:MM:SS" strings or {"hours": ..} objects,
and days can be indexes, names or dates. Everything is folded into one
shape here so nothing downstream needs to care.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time
from typing import Any

from src.timetable.ids import (
    LessonId,
    class_ref,
    native_key,
    student_ref,
    subject_ref,
    teacher_ref,
    to_ref,
)
from src.timetable.logging import get_logger
from src.timetable.models import (
    UNKNOWN_CHILD,
    Child,
    ClassRecord,
    Enrollment,
    Lesson,
    SubjectRecord,
    Teacher,
    TeacherAssignment,
)

log = get_logger(__name__)

ID_KEYS = ("id", "lesson_id", "lessonId", "uuid")
CLASS_REF_KEYS = ("class_ref", "classId", "class_id", "classid")
SUBJECT_REF_KEYS = ("subject_ref", "subjectId", "subject_id", "subjectid")
TEACHER_REF_KEYS = ("teacher_ref", "teacherId", "teacher_id", "teacherid")
DEFAULT_TEACHER_KEYS = ("default_teacher_ref",) + TEACHER_REF_KEYS
STUDENT_REF_KEYS = ("student_ref", "studentId", "student_id", "studentid")
PARENT_REF_KEYS = ("parent_ref", "parentId", "parent_id", "parentid")

START_KEYS = ("start_hour", "startHour", "start_time", "startTime")
END_KEYS = ("end_hour", "endHour", "end_time", "endTime")
START_MINUTE_KEYS = ("start_minute", "startMinute")
END_MINUTE_KEYS = ("end_minute", "endMinute")

CLASS_NAME_KEYS = ("name", "classname", "class_name", "className")
SUBJECT_NAME_KEYS = ("name", "subjectname", "subject_name", "subjectName")
FIRST_NAME_KEYS = ("first_name", "firstName", "firstname")
LAST_NAME_KEYS = ("last_name", "lastName", "lastname")

DEFAULT_START_HOUR = 9

# Weekday name -> index (0=Monday)
DAY_INDEX = {
    "monday": 0, "tuesday": 1, "wednesday": 2,
    "thursday": 3, "friday": 4, "saturday": 5, "sunday": 6,
    "mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6,
}


def pick(row: Mapping[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """Return the first non-empty value among ``keys``."""
    for key in keys:
        value = row.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return default


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_day(value: Any) -> int:
    """Convert any day representation into 0-6 with Monday=0.

    Integers wrap modulo 7. Unparseable values fall back to Monday.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, datetime):
        return value.weekday()
    if isinstance(value, date):
        return value.weekday()
    if isinstance(value, int):
        return value % 7
    if isinstance(value, float) and value.is_integer():
        return int(value) % 7

    text = str(value).strip().lower()
    if text.lstrip("-").isdigit():
        return int(text) % 7
    if text in DAY_INDEX:
        return DAY_INDEX[text]
    try:
        return date.fromisoformat(text[:10]).weekday()
    except ValueError:
        log.warning("day_unparseable", value=str(value))
        return 0


def _valid_hour(value: int) -> int | None:
    return value if 0 <= value <= 23 else None


def _valid_minute(value: Any) -> int | None:
    try:
        minute = int(value)
    except (TypeError, ValueError):
        return None
    return minute if 0 <= minute <= 59 else None


def parse_clock(value: Any) -> tuple[int | None, int | None]:
    """Split a time value into (hour, minute).

    Either part is None when it is absent or out of range.
    """
    if value is None or isinstance(value, bool):
        return None, None
    if isinstance(value, (datetime, time)):
        return value.hour, value.minute
    if isinstance(value, int):
        return _valid_hour(value), None
    if isinstance(value, float):
        return _valid_hour(int(value)), None
    if isinstance(value, Mapping):
        hours = value.get("hours", value.get("hour"))
        try:
            hour = _valid_hour(int(hours))
        except (TypeError, ValueError):
            hour = None
        return hour, _valid_minute(value.get("minutes", value.get("minute")))

    text = str(value).strip()
    if ":" in text:
        head, _, rest = text.partition(":")
        try:
            hour = _valid_hour(int(head))
        except ValueError:
            return None, None
        return hour, _valid_minute(rest.split(":")[0])
    try:
        return _valid_hour(int(text)), None
    except ValueError:
        return None, None


def normalize_lesson(row: Mapping[str, Any], fallback_surrogate: int) -> Lesson:
    """Convert one lessons row. Never drops the row, defaults fill the gaps."""
    start_hour, start_clock_minute = parse_clock(pick(row, START_KEYS))
    end_hour, end_clock_minute = parse_clock(pick(row, END_KEYS))

    if start_hour is None:
        start_hour = DEFAULT_START_HOUR
    if end_hour is None:
        end_hour = start_hour + 1

    start_minute = _valid_minute(pick(row, START_MINUTE_KEYS))
    if start_minute is None:
        start_minute = start_clock_minute or 0
    end_minute = _valid_minute(pick(row, END_MINUTE_KEYS))
    if end_minute is None:
        end_minute = end_clock_minute or 0

    return Lesson(
        id=LessonId.from_native(pick(row, ID_KEYS), fallback_surrogate),
        title=_text(row.get("title")),
        class_ref=class_ref(pick(row, CLASS_REF_KEYS)),
        subject_ref=subject_ref(pick(row, SUBJECT_REF_KEYS)),
        day=parse_day(row.get("day")),
        start_hour=start_hour,
        start_minute=start_minute,
        end_hour=end_hour,
        end_minute=end_minute,
        location=_text(pick(row, ("location", "room"))),
        color=_text(row.get("color")),
    )


def normalize_lessons(rows: Iterable[Mapping[str, Any]]) -> list[Lesson]:
    """Convert lesson rows, giving every lesson a unique surrogate id.

    Rows with numeric keys keep them as surrogate; the others are numbered
    after the highest numeric key. A row that cannot be read at all becomes
    an empty placeholder lesson instead of disappearing.
    """
    rows = list(rows)
    numeric = [
        key
        for key in (native_key(pick(r, ID_KEYS)) for r in rows if isinstance(r, Mapping))
        if isinstance(key, int) and key > 0
    ]
    next_surrogate = max(numeric, default=0) + 1
    seen: set[int] = set()

    lessons: list[Lesson] = []
    for position, row in enumerate(rows):
        try:
            lesson = normalize_lesson(row, next_surrogate)
        except (AttributeError, TypeError, ValueError) as e:
            log.warning("lesson_row_unreadable", position=position, error=str(e))
            lesson = Lesson(id=LessonId.synthesized(next_surrogate))

        if lesson.id.surrogate in seen:
            # Duplicate numeric key; keep the native key, renumber the surrogate
            lesson = lesson.model_copy(
                update={"id": LessonId(native=lesson.id.native, surrogate=next_surrogate)}
            )
        if lesson.id.surrogate == next_surrogate:
            next_surrogate += 1
        seen.add(lesson.id.surrogate)
        lessons.append(lesson)
    return lessons


def normalize_class(row: Mapping[str, Any]) -> ClassRecord | None:
    ref = class_ref(row.get("id"))
    if ref is None:
        return None
    return ClassRecord(
        id=ref,
        name=_text(pick(row, CLASS_NAME_KEYS)),
        default_teacher_ref=teacher_ref(pick(row, DEFAULT_TEACHER_KEYS)),
    )


def normalize_subject(row: Mapping[str, Any]) -> SubjectRecord | None:
    ref = subject_ref(row.get("id"))
    if ref is None:
        return None
    return SubjectRecord(
        id=ref,
        name=_text(pick(row, SUBJECT_NAME_KEYS)),
        color=_text(row.get("color")),
    )


def normalize_assignment(row: Mapping[str, Any]) -> TeacherAssignment | None:
    cls = class_ref(pick(row, CLASS_REF_KEYS))
    subj = subject_ref(pick(row, SUBJECT_REF_KEYS))
    if cls is None or subj is None:
        return None
    return TeacherAssignment(
        class_ref=cls,
        subject_ref=subj,
        teacher_ref=teacher_ref(pick(row, TEACHER_REF_KEYS)),
    )


def normalize_teacher(row: Mapping[str, Any]) -> Teacher | None:
    ref = teacher_ref(row.get("id"))
    if ref is None:
        return None
    return Teacher(
        id=ref,
        first_name=_text(pick(row, FIRST_NAME_KEYS)),
        last_name=_text(pick(row, LAST_NAME_KEYS)),
    )


def normalize_enrollment(row: Mapping[str, Any]) -> Enrollment | None:
    student = student_ref(pick(row, STUDENT_REF_KEYS))
    cls = class_ref(pick(row, CLASS_REF_KEYS))
    if student is None or cls is None:
        return None
    return Enrollment(student_ref=student, class_ref=cls)


def normalize_child(row: Mapping[str, Any]) -> Child | None:
    ref = student_ref(row.get("id"))
    if ref is None:
        return None
    first = _text(pick(row, FIRST_NAME_KEYS)) or ""
    last = _text(pick(row, LAST_NAME_KEYS)) or ""
    return Child(id=ref, name=f"{first} {last}".strip() or UNKNOWN_CHILD)


def inserted_key(row: Mapping[str, Any] | None) -> int | str | None:
    """Primary key of a freshly inserted row, whichever spelling the store used."""
    if not row:
        return None
    return native_key(pick(row, ID_KEYS))


def inserted_ref(row: Mapping[str, Any] | None, keys: Iterable[str]) -> str | None:
    """A foreign key echoed back by an insert, under any of ``keys``."""
    if not row:
        return None
    return to_ref(pick(row, keys))
