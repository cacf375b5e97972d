import re

from src.timetable.colors import FALLBACK_COLOR, color_for, resolve_color

HEX = re.compile(r"^#[0-9a-f]{6}$")


def test_known_values():
    assert color_for("a") == "#000061"
    assert color_for("ab") == "#000c21"


def test_color_is_deterministic_and_well_formed():
    for name in ["Math", "English", "Physics", "Éducation physique", "数学", "x" * 200]:
        color = color_for(name)
        assert HEX.match(color)
        assert color_for(name) == color


def test_empty_text_uses_fallback():
    assert color_for("") == FALLBACK_COLOR
    assert color_for(None) == FALLBACK_COLOR


def test_resolve_color_precedence():
    assert resolve_color("#111111", "#222222", "Math", "Algebra") == "#111111"
    assert resolve_color(None, "#222222", "Math", "Algebra") == "#222222"
    assert resolve_color(None, None, "Math", "Algebra") == color_for("Math")
    assert resolve_color(None, None, None, "Algebra") == color_for("Algebra")
