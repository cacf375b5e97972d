"""Deterministic event colors.

A lesson without a stored color gets one derived from its subject name, so
the same subject renders in the same color in every session without the
color being persisted.
"""

FALLBACK_COLOR = "#4F46E5"


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def color_for(text: str | None) -> str:
    """Hash ``text`` into a '#rrggbb' color.

    Uses the classic ``hash * 31 + code unit`` string hash over UTF-16 code
    units, truncated to 32 bits, keeping the low 24 bits as the color, so
    colors match the ones the web views already show for each subject.
    """
    if not text:
        return FALLBACK_COLOR
    encoded = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = unit + (_int32(_int32(h) << 5) - h)
    return "#" + format(_int32(h) & 0x00FFFFFF, "06x")


def resolve_color(
    lesson_color: str | None,
    subject_color: str | None,
    subject_name: str | None,
    title: str | None,
) -> str:
    """Stored lesson color, else subject color, else hash of subject name, else of title."""
    for candidate in (lesson_color, subject_color):
        if candidate:
            return candidate
    if subject_name:
        return color_for(subject_name)
    return color_for(title)
