"""Drafting lesson content with OpenAI from the stored methodologies."""

import logging
from typing import Optional

from faloclaro.lesson.content import parse_yaml_content
from faloclaro.lesson.prompts import build_system_prompt, build_user_prompt, get_phase
from faloclaro.models.lesson import GeneratedLesson
from faloclaro.services.errors import ConfigurationError, NotFoundError, ServiceError
from faloclaro.services.vocabulary import parse_used_words
from faloclaro.utils.llm_client import LLMClient, LLMGenerationError
from faloclaro.utils.supabase_client import Client, fetch_all, fetch_one, now_iso

logger = logging.getLogger(__name__)

EXAMPLE_LESSON_DAY = 4
GENERATION_ATTEMPTS = 2
GENERATION_TEMPERATURE = 0.3
GENERATION_MAX_TOKENS = 8000
METHODOLOGY_DEFAULTS = {
    "course": "Course methodology not set",
    "lesson": "Lesson methodology not set",
}


class LessonGenerationError(ServiceError):
    """The model did not produce a usable lesson."""

    status_code = 500


def load_methodologies(db: Client) -> dict:
    """Course and lesson methodology text plus the used-words list."""
    rows = fetch_all(
        db.table("admin_methodologies")
        .select("type, content")
        .in_("type", ["course", "lesson", "vocabulary"])
    )
    by_type = {row.get("type"): row.get("content") for row in rows}
    return {
        "course": by_type.get("course") or METHODOLOGY_DEFAULTS["course"],
        "lesson": by_type.get("lesson") or METHODOLOGY_DEFAULTS["lesson"],
        "used_words": parse_used_words(by_type.get("vocabulary")),
    }


def load_example_lesson(db: Client) -> Optional[dict]:
    row = fetch_one(
        db.table("lessons").select("yaml_content").eq("day_number", EXAMPLE_LESSON_DAY)
    )
    if not row:
        return None
    return parse_yaml_content(row.get("yaml_content")) or None


def get_llm_client() -> LLMClient:
    try:
        return LLMClient(max_retries=GENERATION_ATTEMPTS)
    except ValueError as e:
        raise ConfigurationError("OpenAI API key not configured") from e


def generate_lesson(
    db: Client,
    lesson_id: str,
    topic_ru: Optional[str],
    topic_en: Optional[str],
    llm: Optional[LLMClient] = None,
) -> dict:
    """Draft a lesson for an existing row and save it as its content.

    Args:
        db: Supabase client
        lesson_id: Lesson to fill
        topic_ru: Lesson topic in Russian
        topic_en: Lesson topic in English
        llm: Client to use (built from the environment when omitted)

    Returns:
        The updated lesson row

    Raises:
        ServiceError: Missing topics (400)
        NotFoundError: Unknown lesson
        LessonGenerationError: Both attempts failed or the save failed
    """
    if not topic_ru or not topic_en:
        raise ServiceError("topic_ru and topic_en are required")

    lesson = fetch_one(db.table("lessons").select("id, day_number, yaml_content").eq("id", lesson_id))
    if not lesson:
        raise NotFoundError("Lesson not found")

    day_number = lesson.get("day_number") or 1
    phase = get_phase(day_number)
    methodologies = load_methodologies(db)

    system_prompt = build_system_prompt(
        methodologies["course"],
        methodologies["lesson"],
        methodologies["used_words"],
        day_number,
        phase,
        topic_ru,
        topic_en,
        load_example_lesson(db),
    )

    llm = llm or get_llm_client()
    try:
        generated = llm.generate(
            build_user_prompt(day_number, phase, topic_ru, topic_en),
            GeneratedLesson,
            temperature=GENERATION_TEMPERATURE,
            max_tokens=GENERATION_MAX_TOKENS,
            system_prompt=system_prompt,
        )
    except LLMGenerationError as e:
        raise LessonGenerationError(str(e)) from e

    content = generated.model_dump(exclude_none=True)
    response = (
        db.table("lessons")
        .update({"yaml_content": content, "updated_at": now_iso()})
        .eq("id", lesson_id)
        .execute()
    )
    if not response.data:
        raise LessonGenerationError("Failed to save generated lesson")

    logger.info(f"✓ Generated day {day_number} ({phase}) lesson on {topic_en!r}")
    return response.data[0]
