import copy
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.timetable.ids import LessonId  # noqa: E402
from src.timetable.models import ResolvedEvent  # noqa: E402
from src.timetable.store.memory import InMemoryStore  # noqa: E402

SAMPLE_TABLES = {
    "classes": [
        {"id": 1, "name": "10A", "default_teacher_ref": 100},
        {"id": 2, "name": "11B", "default_teacher_ref": None},
        {"id": 3, "classname": "9C", "teacherid": 102},
    ],
    "subjects": [
        {"id": 10, "name": "Math", "color": None},
        {"id": 11, "name": "English", "color": "#ff0000"},
        {"id": 12, "subjectname": "Physics"},
    ],
    "class_subject_teacher": [
        {"class_ref": 1, "subject_ref": 10, "teacher_ref": 101},
    ],
    "users": [
        {"id": 100, "first_name": "A.", "last_name": "Smith"},
        {"id": 101, "first_name": "J.", "last_name": "Doe"},
        {"id": 102, "firstName": "Kim", "lastName": "Lee"},
        {"id": 200, "first_name": "Ana", "last_name": "Doe", "parent_ref": 300},
        {"id": 201, "first_name": None, "last_name": None, "parent_ref": 300},
    ],
    "class_enrollment": [
        {"student_ref": 200, "class_ref": 1},
        {"student_ref": 201, "class_ref": 2},
    ],
    "lessons": [
        {
            "id": 1, "title": "Algebra", "class_ref": 1, "subject_ref": 10,
            "day": 0, "start_hour": 9, "start_minute": 0, "end_hour": 10, "end_minute": 0,
            "location": "Room 1", "color": None,
        },
        {
            "id": 2, "title": "Grammar", "class_ref": 1, "subject_ref": 11,
            "day": 1, "start_hour": 10, "start_minute": 30, "end_hour": 11, "end_minute": 15,
            "location": None, "color": None,
        },
        {
            "id": 3, "title": None, "class_ref": 1, "subject_ref": 10,
            "day": 2, "start_hour": 9, "start_minute": 0, "end_hour": 10, "end_minute": 0,
            "location": None, "color": "#123456",
        },
        {
            "id": 4, "title": "Lab", "class_ref": 2, "subject_ref": 12,
            "day": 3, "start_hour": 13, "start_minute": 0, "end_hour": 14, "end_minute": 30,
            "location": "Lab 2", "color": None,
        },
        {
            "id": 5, "title": "Orphan", "classId": 99, "subjectId": 98,
            "day": "Friday", "start_time": "14:00:00", "end_time": "15:00:00",
        },
    ],
}


@pytest.fixture
def tables():
    return copy.deepcopy(SAMPLE_TABLES)


@pytest.fixture
def store(tables):
    return InMemoryStore(tables)


@pytest.fixture
def make_event():
    def _make(surrogate=1, **overrides):
        fields = dict(
            id=LessonId(native=surrogate, surrogate=surrogate),
            title="Algebra",
            class_ref="1",
            subject_ref="10",
            day=0,
            start_hour=9,
            start_minute=0,
            end_hour=10,
            end_minute=0,
            color="#000000",
            class_name="10A",
            course_name="Math",
            teacher_name="J. Doe",
            teacher_id="101",
        )
        fields.update(overrides)
        return ResolvedEvent(**fields)

    return _make
