"""Importing lessons from authoring files.

Two entry points share the metadata rules: the admin upload (one JSON or
YAML document, create or update) and the directory importer used by the
CLI, which merges a ``day_NN.yaml`` with its per-task files.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.utils.supabase_client import Client, fetch_one, now_iso

logger = logging.getLogger(__name__)

TASK_FILE_SUFFIXES = ("vocabulary", "rules", "listening", "attention", "writing")
# Top-level sections of a task file that are copied onto the task
TASK_FILE_SECTIONS = (
    "structure",
    "blocks",
    "ui_rules",
    "items",
    "instruction",
    "main_task",
    "example",
    "alternative",
    "reflection",
    "ui",
    "card_format",
    "content",
)
LISTENING_TYPES = ("listening", "listening_comprehension")


class LessonImportError(ServiceError):
    """The uploaded document cannot be imported."""


def parse_lesson_document(text: str) -> dict:
    """Parse an uploaded lesson as JSON, falling back to YAML.

    Raises:
        LessonImportError: If neither parser yields a mapping
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise LessonImportError(
                "File must be valid JSON or YAML format", details=str(e)
            ) from e
    if not isinstance(data, dict):
        raise LessonImportError("File must be valid JSON or YAML format")
    return data


def _localized(value: Any, language: str) -> str:
    """Russian is the language of plain-string titles."""
    if isinstance(value, str):
        return value if language == "ru" else ""
    if isinstance(value, dict):
        return str(value.get(language) or "")
    return ""


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def extract_metadata(data: dict) -> dict:
    """Day number, titles, subtitles and estimated time of a lesson document.

    Both the ``day`` header format and the flat ``title_ru``/``day_number``
    format are accepted. ``title_pt`` is never empty when any title exists:
    it falls back to English, then Russian.
    """
    day = data.get("day")
    if isinstance(day, dict):
        meta = {
            "day_number": day.get("day_number") or day.get("number"),
            "estimated_time": day.get("estimated_time") or data.get("estimated_time"),
        }
        for field in ("title", "subtitle"):
            for language in ("ru", "en", "pt"):
                meta[f"{field}_{language}"] = _localized(day.get(field), language)
    else:
        meta = {
            "day_number": data.get("day_number") or data.get("number"),
            "estimated_time": data.get("estimated_time"),
        }
        for field in ("title", "subtitle"):
            for language in ("ru", "en", "pt"):
                meta[f"{field}_{language}"] = str(data.get(f"{field}_{language}") or "")

    for field in ("title", "subtitle"):
        for language in ("ru", "en", "pt"):
            meta[f"{field}_{language}"] = _clean(meta[f"{field}_{language}"])

    meta["title_pt"] = meta["title_pt"] or meta["title_en"] or meta["title_ru"] or ""
    return meta


def mirror_correct_flags(item: Any) -> None:
    """Give every option both ``correct`` and ``is_correct`` in place."""
    if not isinstance(item, dict) or not isinstance(item.get("options"), list):
        return
    for option in item["options"]:
        if not isinstance(option, dict):
            continue
        if option.get("is_correct") is not None and option.get("correct") is None:
            option["correct"] = bool(option["is_correct"])
        if option.get("correct") is not None and option.get("is_correct") is None:
            option["is_correct"] = bool(option["correct"])


def normalize_import_task(task: dict) -> dict:
    """Repair authoring slips without changing the task's shape."""
    task = dict(task)
    task_type = task.get("type")
    items = task.get("items")

    if task_type == "attention" and isinstance(items, list):
        task["items"] = [
            {**item, "audio": item["text"]}
            if isinstance(item, dict) and item.get("text") and not item.get("audio")
            else item
            for item in items
        ]
        for item in task["items"]:
            mirror_correct_flags(item)

    elif task_type in LISTENING_TYPES and isinstance(items, list):
        for item in items:
            mirror_correct_flags(item)

    elif task_type == "rules" and isinstance(task.get("blocks"), list):
        for block in task["blocks"]:
            if isinstance(block, dict) and block.get("block_type") == "reinforcement":
                content = block.get("content") or {}
                mirror_correct_flags(content.get("task_1"))
                mirror_correct_flags(content.get("task_2"))

    return task


def build_lesson_content(data: dict, meta: dict) -> dict:
    """Stored ``yaml_content``: the day header (``number`` renamed ``day_number``) and tasks."""
    day = data.get("day")
    if isinstance(day, dict):
        day = dict(day)
        if day.get("number") and not day.get("day_number"):
            day["day_number"] = day.pop("number")
    else:
        day = {
            "day_number": meta["day_number"],
            "title": {"ru": meta["title_ru"] or "", "en": meta["title_en"] or ""},
            "subtitle": {"ru": meta["subtitle_ru"] or "", "en": meta["subtitle_en"] or ""},
            "estimated_time": meta["estimated_time"] or "",
        }

    tasks = data.get("tasks") or []
    return {
        "day": day,
        "tasks": [normalize_import_task(t) if isinstance(t, dict) else t for t in tasks],
    }


def import_lesson(db: Client, text: str, lesson_id: Optional[str] = None) -> dict:
    """Import an uploaded lesson document.

    With ``lesson_id`` the existing lesson is overwritten (titles, subtitles,
    content). Without it a new unpublished lesson is created for the
    document's day.

    Args:
        db: Supabase client
        text: File contents
        lesson_id: Lesson to update, if any

    Returns:
        ``{"success": True, "lesson": row, "message": ...}``

    Raises:
        LessonImportError: Unparseable or incomplete document, duplicate day
        NotFoundError: ``lesson_id`` does not exist
    """
    data = parse_lesson_document(text)
    if not data.get("day") and not data.get("title_ru") and not data.get("title_en"):
        raise LessonImportError(
            "Invalid lesson format. File must contain lesson data with day information or titles."
        )

    meta = extract_metadata(data)
    content = build_lesson_content(data, meta)
    row = {
        "yaml_content": content,
        "title_ru": meta["title_ru"],
        "title_en": meta["title_en"],
        "title_pt": meta["title_pt"],
    }

    if lesson_id:
        if not fetch_one(db.table("lessons").select("id, day_number").eq("id", lesson_id)):
            raise NotFoundError("Lesson not found")
        row.update(
            {
                "subtitle_ru": meta["subtitle_ru"],
                "subtitle_en": meta["subtitle_en"],
                "subtitle_pt": meta["subtitle_pt"],
                "updated_at": now_iso(),
            }
        )
        response = db.table("lessons").update(row).eq("id", lesson_id).execute()
        logger.info(f"✓ Lesson {lesson_id} updated from upload")
        return {
            "success": True,
            "lesson": response.data[0] if response.data else None,
            "message": "Lesson updated successfully",
        }

    day_number = meta["day_number"]
    if not day_number:
        raise LessonImportError("day_number is required for new lessons")
    if fetch_one(db.table("lessons").select("id").eq("day_number", day_number)):
        raise LessonImportError(
            f"Lesson with day_number {day_number} already exists. Use lessonId to update it."
        )

    row.update({"day_number": day_number, "is_published": False})
    for field in ("subtitle_ru", "subtitle_en", "subtitle_pt"):
        if meta[field]:
            row[field] = meta[field]
    response = db.table("lessons").insert(row).execute()
    logger.info(f"✓ Lesson for day {day_number} imported")
    return {
        "success": True,
        "lesson": response.data[0] if response.data else None,
        "message": "Lesson imported successfully",
    }


def _load_yaml(path: Path) -> Optional[dict]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"✗ Error parsing {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def _task_from_file(data: dict) -> dict:
    task = dict(data["task"])
    for section in TASK_FILE_SECTIONS:
        if data.get(section) is not None:
            task[section] = data[section]
    return task


def _merge_vocabulary_task(existing: dict, data: dict) -> None:
    for section in ("ui", "card_format"):
        if data.get(section):
            existing[section] = data[section]
    if isinstance(data.get("content"), dict) and data["content"].get("cards"):
        existing["content"] = data["content"]
    header = data["task"]
    if header.get("estimated_time"):
        existing["estimated_time"] = header["estimated_time"]
    for flag in ("show_timer", "show_settings"):
        if header.get(flag) is not None:
            existing[flag] = header[flag]


def load_lesson_directory(base_dir: Path, day_number: int) -> Optional[dict]:
    """Assemble a lesson from ``{base_dir}/{N} Day/``.

    ``day_NN.yaml`` provides the header (tasks may sit at the top level or
    under ``day``). Each ``dayNN_taskMM_<type>.yaml`` replaces the task with
    the same id, except task 1 whose vocabulary sections are merged in.

    Returns:
        Lesson document with tasks sorted by id, or None when the day file is missing
    """
    day_dir = Path(base_dir) / f"{day_number} Day"
    day_file = day_dir / f"day_{day_number:02d}.yaml"
    if not day_file.exists():
        logger.error(f"✗ Day file not found: {day_file}")
        return None

    document = _load_yaml(day_file)
    if document is None:
        return None

    tasks = list(document.get("tasks") or [])
    day = document.get("day")
    if isinstance(day, dict) and isinstance(day.get("tasks"), list):
        tasks = list(day.pop("tasks")) + tasks

    for index, suffix in enumerate(TASK_FILE_SUFFIXES, start=1):
        task_file = day_dir / f"day{day_number:02d}_task{index:02d}_{suffix}.yaml"
        if not task_file.exists():
            logger.debug(f"Task file not found: {task_file.name}")
            continue
        data = _load_yaml(task_file)
        if not data or not isinstance(data.get("task"), dict):
            logger.warning(f"Task file {task_file.name} has no task data")
            continue

        task = _task_from_file(data)
        existing = next((t for t in tasks if t.get("task_id") == task.get("task_id")), None)
        if existing is None:
            tasks.append(task)
        elif task.get("task_id") == 1 and task.get("type") == "vocabulary":
            _merge_vocabulary_task(existing, data)
        else:
            tasks[tasks.index(existing)] = task

    document["tasks"] = sorted(tasks, key=lambda t: t.get("task_id") or 0)
    return document


def find_lesson_days(base_dir: Path) -> list[int]:
    """Day numbers of the ``{N} Day`` directories under ``base_dir``."""
    days = []
    for entry in Path(base_dir).iterdir():
        name = entry.name
        if entry.is_dir() and name.endswith(" Day") and name[: -len(" Day")].isdigit():
            days.append(int(name[: -len(" Day")]))
    return sorted(days)


def directory_lesson_row(document: dict) -> dict:
    """Lesson columns for a directory import.

    Unlike uploads, missing English and Portuguese titles default to the
    Russian one.
    """
    day = document.get("day") or {}
    title, subtitle = day.get("title"), day.get("subtitle")
    if isinstance(title, str):
        titles = {"ru": title, "en": day.get("title_en") or title, "pt": day.get("title_pt") or title}
    else:
        title = title or {}
        ru = title.get("ru") or ""
        titles = {"ru": ru, "en": title.get("en") or ru, "pt": title.get("pt") or ru}
    if isinstance(subtitle, str):
        subtitles = {
            "ru": subtitle,
            "en": day.get("subtitle_en") or subtitle,
            "pt": day.get("subtitle_pt") or subtitle,
        }
    else:
        subtitle = subtitle or {}
        ru = subtitle.get("ru")
        subtitles = {"ru": ru, "en": subtitle.get("en") or ru, "pt": subtitle.get("pt") or ru}

    return {
        **{f"title_{lang}": value for lang, value in titles.items()},
        **{f"subtitle_{lang}": value for lang, value in subtitles.items()},
        "estimated_time": day.get("estimated_time"),
        "yaml_content": document,
    }


def upsert_directory_lesson(db: Client, day_number: int, document: dict) -> str:
    """Create or overwrite the lesson for ``day_number``; returns ``created`` or ``updated``."""
    row = directory_lesson_row(document)
    if fetch_one(db.table("lessons").select("id").eq("day_number", day_number)):
        db.table("lessons").update(row).eq("day_number", day_number).execute()
        return "updated"
    db.table("lessons").insert({"day_number": day_number, **row}).execute()
    return "created"
