"""Typed identifiers for timetable entities.

Foreign keys arrive from the store as ints, numeric strings or UUIDs
depending on the table and the code path that wrote them. Everything past
the normalization boundary works with the wrappers below instead.
"""

import re
import uuid
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict

ClassRef = NewType("ClassRef", str)
SubjectRef = NewType("SubjectRef", str)
TeacherRef = NewType("TeacherRef", str)
StudentRef = NewType("StudentRef", str)

_OPAQUE_KEY = re.compile(r"^[A-Za-z0-9_\-:.]+$")


def to_ref(value: Any) -> str | None:
    """Convert a raw foreign-key value into its canonical string form.

    Integral floats lose their ".0", blanks and booleans become None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def class_ref(value: Any) -> ClassRef | None:
    ref = to_ref(value)
    return ClassRef(ref) if ref is not None else None


def subject_ref(value: Any) -> SubjectRef | None:
    ref = to_ref(value)
    return SubjectRef(ref) if ref is not None else None


def teacher_ref(value: Any) -> TeacherRef | None:
    ref = to_ref(value)
    return TeacherRef(ref) if ref is not None else None


def student_ref(value: Any) -> StudentRef | None:
    ref = to_ref(value)
    return StudentRef(ref) if ref is not None else None


def native_key(value: Any) -> int | str | None:
    """Normalize a primary-key value read from the store.

    Integers and numeric strings become int, anything else non-blank stays
    an opaque string.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not text:
        return None
    if text.lstrip("-").isdigit():
        return int(text)
    return text


def _is_uuid(text: str) -> bool:
    try:
        uuid.UUID(text)
    except ValueError:
        return False
    return True


class LessonId(BaseModel):
    """Identifier of a lesson as seen by the UI.

    ``surrogate`` is always a positive int and unique within one assembled
    schedule. ``native`` is the store's own key when it is known; a lesson
    created locally without the store echoing its key back has none.
    """

    model_config = ConfigDict(frozen=True)

    native: int | str | None = None
    surrogate: int

    @classmethod
    def from_native(cls, value: Any, fallback_surrogate: int) -> "LessonId":
        """Build an id from a store key.

        Numeric keys double as the surrogate. Opaque keys (UUIDs, slugs)
        and missing keys take ``fallback_surrogate`` instead.
        """
        native = native_key(value)
        if isinstance(native, int) and native > 0:
            return cls(native=native, surrogate=native)
        return cls(native=native, surrogate=fallback_surrogate)

    @classmethod
    def synthesized(cls, surrogate: int) -> "LessonId":
        return cls(native=None, surrogate=surrogate)

    @property
    def is_native_known(self) -> bool:
        return self.native is not None

    @property
    def is_well_typed(self) -> bool:
        """True when the native key can safely be used in an equality filter."""
        if isinstance(self.native, int):
            return self.native > 0
        if isinstance(self.native, str):
            return _is_uuid(self.native) or bool(_OPAQUE_KEY.match(self.native))
        return False

    def __str__(self) -> str:
        if self.native is not None:
            return str(self.native)
        return f"local-{self.surrogate}"
