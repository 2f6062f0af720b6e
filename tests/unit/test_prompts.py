"""Unit tests for lesson generation prompts."""

import pytest

from faloclaro.lesson.prompts import (
    EXAMPLE_LESSON_MAX_CHARS,
    build_system_prompt,
    build_user_prompt,
    get_phase,
)


class TestGetPhase:
    @pytest.mark.parametrize(
        "day,phase",
        [(1, "A1"), (10, "A1"), (11, "A2"), (30, "A2"), (31, "B1"), (50, "B1"), (51, "B2"), (60, "B2")],
    )
    def test_phase_boundaries(self, day, phase):
        assert get_phase(day) == phase


class TestPrompts:
    def test_system_prompt_lists_used_words(self):
        prompt = build_system_prompt(
            course_methodology="Course rules",
            lesson_methodology="Lesson rules",
            used_words=["olá", "obrigado"],
            day_number=12,
            phase="A2",
            topic_ru="Кафе",
            topic_en="Cafe",
        )

        assert "Course rules" in prompt
        assert "olá, obrigado" in prompt
        assert "Day: 12" in prompt
        assert "Elementary level" in prompt
        assert "No example available" in prompt

    def test_system_prompt_without_words(self):
        prompt = build_system_prompt("", "", [], 1, "A1", "", "")
        assert "None yet" in prompt

    def test_example_lesson_truncated(self):
        example = {"tasks": ["x" * (EXAMPLE_LESSON_MAX_CHARS * 2)]}

        prompt = build_system_prompt("", "", [], 4, "A1", "", "", example_lesson=example)

        assert "x" * EXAMPLE_LESSON_MAX_CHARS not in prompt
        assert "x" * 100 + "..." in prompt

    def test_user_prompt(self):
        prompt = build_user_prompt(5, "A1", "Дом", "Home")
        assert 'topic "Дом" / "Home"' in prompt
        assert "exactly 5 tasks" in prompt
