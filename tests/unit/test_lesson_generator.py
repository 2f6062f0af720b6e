"""Unit tests for LLM lesson drafting."""

import json
from unittest.mock import MagicMock

import pytest
from fakes import FakeSupabase

from faloclaro.models.lesson import GeneratedLesson
from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.services.lesson_generator import (
    LessonGenerationError,
    generate_lesson,
    load_methodologies,
)
from faloclaro.utils.llm_client import LLMGenerationError


def _generated():
    return GeneratedLesson(
        day={"day_number": 12, "title": {"ru": "Кафе", "en": "Cafe"}},
        tasks=[{"task_id": i, "type": t} for i, t in enumerate(
            ["vocabulary", "rules", "listening", "attention", "writing"], start=1
        )],
    )


class TestGeneratedLesson:
    def test_requires_five_tasks(self):
        with pytest.raises(ValueError, match="exactly 5 tasks"):
            GeneratedLesson(tasks=[{"task_id": 1}])


class TestGenerateLesson:
    @pytest.fixture
    def db(self):
        return FakeSupabase(
            {
                "lessons": [
                    {"id": "l12", "day_number": 12, "yaml_content": None},
                    {"id": "l4", "day_number": 4, "yaml_content": {"tasks": [{"task_id": 1, "type": "vocabulary"}]}},
                ],
                "admin_methodologies": [
                    {"type": "course", "content": "Course text"},
                    {"type": "vocabulary", "content": json.dumps({"used_words": ["olá"]})},
                ],
            }
        )

    def test_methodology_defaults(self, db):
        methodologies = load_methodologies(db)

        assert methodologies["course"] == "Course text"
        assert methodologies["lesson"] == "Lesson methodology not set"
        assert methodologies["used_words"] == ["olá"]

    def test_saves_generated_content(self, db):
        llm = MagicMock()
        llm.generate.return_value = _generated()

        row = generate_lesson(db, "l12", "Кафе", "Cafe", llm=llm)

        assert len(row["yaml_content"]["tasks"]) == 5
        assert "estimated_time" not in row["yaml_content"]
        args, kwargs = llm.generate.call_args
        assert args[1] is GeneratedLesson
        assert "phase A2" in args[0]
        assert "olá" in kwargs["system_prompt"]
        assert '"type": "vocabulary"' in kwargs["system_prompt"]

    def test_requires_topics(self, db):
        with pytest.raises(ServiceError, match="topic_ru and topic_en are required"):
            generate_lesson(db, "l12", "Кафе", "", llm=MagicMock())

    def test_unknown_lesson(self, db):
        with pytest.raises(NotFoundError):
            generate_lesson(db, "missing", "Кафе", "Cafe", llm=MagicMock())

    def test_generation_failure(self, db):
        llm = MagicMock()
        llm.generate.side_effect = LLMGenerationError("Failed to generate valid response after 2 attempts")

        with pytest.raises(LessonGenerationError) as exc_info:
            generate_lesson(db, "l12", "Кафе", "Cafe", llm=llm)

        assert exc_info.value.status_code == 500
        assert db.rows("lessons")[0]["yaml_content"] is None
