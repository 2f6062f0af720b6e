"""Admin CRUD for lessons, levels and methodologies."""

import json
import logging
from typing import Any, Optional

from faloclaro.lesson.authoring_export import export_lesson_row
from faloclaro.lesson.content import parse_yaml_content
from faloclaro.models.lesson import LessonCreate, LessonUpdate, LevelCreate, LevelUpdate
from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.services.vocabulary import add_lesson_words, remove_lesson_words, safe_vocabulary_update
from faloclaro.utils.supabase_client import Client, fetch_all, fetch_one, now_iso

logger = logging.getLogger(__name__)

METHODOLOGY_TYPES = ("course", "lesson", "vocabulary")


def _content_value(value: Any) -> Any:
    """Accept lesson content as an object or as a JSON/YAML string."""
    if isinstance(value, str):
        parsed = parse_yaml_content(value)
        if not parsed:
            raise ServiceError("yaml_content must be a JSON or YAML object")
        return parsed
    return value


# ---- lessons ----


def list_lessons(db: Client) -> list[dict]:
    return fetch_all(db.table("lessons").select("*").order("day_number"))


def get_lesson(db: Client, lesson_id: str) -> dict:
    lesson = fetch_one(db.table("lessons").select("*").eq("id", lesson_id))
    if not lesson:
        raise NotFoundError("Lesson not found")
    return lesson


def create_lesson(db: Client, body: LessonCreate) -> dict:
    """Create an unpublished lesson by default and merge its words into the vocabulary.

    Raises:
        ServiceError: Missing day_number or a lesson already exists for that day
    """
    if not body.day_number:
        raise ServiceError("day_number is required")
    if fetch_one(db.table("lessons").select("id").eq("day_number", body.day_number)):
        raise ServiceError(f"Lesson with day_number {body.day_number} already exists")

    row = body.model_dump(exclude_none=True)
    if "yaml_content" in row:
        row["yaml_content"] = _content_value(row["yaml_content"])
    row["title_pt"] = row.get("title_pt") or row.get("title_en") or row.get("title_ru") or ""

    response = db.table("lessons").insert(row).execute()
    lesson = response.data[0]
    if lesson.get("yaml_content"):
        safe_vocabulary_update(add_lesson_words, db, lesson["yaml_content"])
    logger.info(f"✓ Lesson created for day {body.day_number}")
    return lesson


def update_lesson(db: Client, lesson_id: str, body: LessonUpdate) -> dict:
    """Write only the fields present in ``body``; new content also feeds the vocabulary.

    Raises:
        ServiceError: Nothing to update
        NotFoundError: Unknown lesson
    """
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise ServiceError("No fields to update")
    if "yaml_content" in fields:
        if not fields["yaml_content"]:
            raise ServiceError("yaml_content is required")
        fields["yaml_content"] = _content_value(fields["yaml_content"])
    fields["updated_at"] = now_iso()

    response = db.table("lessons").update(fields).eq("id", lesson_id).execute()
    if not response.data:
        raise NotFoundError("Lesson not found")
    if "yaml_content" in fields:
        safe_vocabulary_update(add_lesson_words, db, fields["yaml_content"])
    return response.data[0]


def delete_lesson(db: Client, lesson_id: str) -> None:
    """Delete a lesson with its tokens and progress, then prune words only it used.

    Raises:
        NotFoundError: Unknown lesson
    """
    lesson = get_lesson(db, lesson_id)

    progress_ids = [
        row["id"]
        for row in fetch_all(db.table("user_progress").select("id").eq("lesson_id", lesson_id))
    ]
    if progress_ids:
        db.table("task_progress").delete().in_("user_progress_id", progress_ids).execute()
    db.table("user_progress").delete().eq("lesson_id", lesson_id).execute()
    db.table("lesson_access_tokens").delete().eq("lesson_id", lesson_id).execute()
    db.table("lessons").delete().eq("id", lesson_id).execute()

    safe_vocabulary_update(remove_lesson_words, db, lesson_id, lesson.get("yaml_content"))
    logger.info(f"✓ Lesson {lesson_id} (day {lesson.get('day_number')}) deleted")


def export_lesson(db: Client, lesson_id: str) -> dict:
    """Downloadable authoring document and a suggested file name."""
    lesson = get_lesson(db, lesson_id)
    document = export_lesson_row(lesson, parse_yaml_content(lesson.get("yaml_content")))
    return {"filename": f"day_{lesson.get('day_number') or 0:02d}.json", "lesson": document}


# ---- levels ----


def list_levels(db: Client) -> list[dict]:
    return fetch_all(db.table("levels").select("*").order("order_index"))


def get_level(db: Client, level_id: str) -> dict:
    level = fetch_one(db.table("levels").select("*").eq("id", level_id))
    if not level:
        raise NotFoundError("Level not found")
    return level


def create_level(db: Client, body: LevelCreate) -> dict:
    """Raises ServiceError when required fields are missing or the number is taken."""
    if not body.level_number or not body.name_ru or not body.name_en:
        raise ServiceError("level_number, name_ru, and name_en are required")
    if fetch_one(db.table("levels").select("id").eq("level_number", body.level_number)):
        raise ServiceError(f"Level with number {body.level_number} already exists")

    response = (
        db.table("levels")
        .insert(
            {
                "level_number": body.level_number,
                "name_ru": body.name_ru,
                "name_en": body.name_en,
                "description_ru": body.description_ru or None,
                "description_en": body.description_en or None,
                "order_index": body.order_index or body.level_number,
            }
        )
        .execute()
    )
    return response.data[0]


def update_level(db: Client, level_id: str, body: LevelUpdate) -> dict:
    fields = body.model_dump(exclude_unset=True)
    # Level numbers are fixed once created
    fields.pop("level_number", None)
    fields["updated_at"] = now_iso()
    response = db.table("levels").update(fields).eq("id", level_id).execute()
    if not response.data:
        raise NotFoundError("Level not found")
    return response.data[0]


def delete_level(db: Client, level_id: str) -> None:
    """Raises ServiceError while any lesson still belongs to the level."""
    if fetch_one(db.table("lessons").select("id").eq("level_id", level_id)):
        raise ServiceError(
            "Cannot delete level: it contains lessons. Remove lessons first or set them to another level."
        )
    db.table("levels").delete().eq("id", level_id).execute()


# ---- methodologies ----


def list_methodologies(db: Client) -> list[dict]:
    return fetch_all(db.table("admin_methodologies").select("*").order("type"))


def update_methodology(db: Client, methodology_type: Optional[str], content: Any) -> dict:
    """Upsert a methodology; non-string content is stored as JSON text.

    Raises:
        ServiceError: Missing type or content, or an unknown type
    """
    if not methodology_type or content is None:
        raise ServiceError("type and content are required")
    if methodology_type not in METHODOLOGY_TYPES:
        raise ServiceError(f"Unknown methodology type: {methodology_type}")

    response = (
        db.table("admin_methodologies")
        .upsert(
            {
                "type": methodology_type,
                "content": content if isinstance(content, str) else json.dumps(content, ensure_ascii=False),
                "updated_at": now_iso(),
            },
            on_conflict="type",
        )
        .execute()
    )
    return response.data[0] if response.data else {"type": methodology_type}
