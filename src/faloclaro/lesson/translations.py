"""Localized text lookup for lesson content.

Lesson fields are either plain strings (older lessons) or dicts keyed by
language code.
"""

from typing import Any

FALLBACK_ORDER = ("ru", "en", "pt")


def get_translated_text(value: Any, language: str) -> str:
    """Return ``value`` in ``language``, falling back to ru, en, pt, then ""."""
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for lang in (language, *FALLBACK_ORDER):
            text = value.get(lang)
            if text:
                return text
    return ""


def _field(obj: Any, key: str, language: str) -> str:
    if not isinstance(obj, dict):
        return ""
    return get_translated_text(obj.get(key), language)


def get_day_title(day: Any, language: str) -> str:
    return _field(day, "title", language)


def get_day_subtitle(day: Any, language: str) -> str:
    return _field(day, "subtitle", language)


def get_task_title(task: Any, language: str) -> str:
    return _field(task, "title", language)


def get_task_subtitle(task: Any, language: str) -> str:
    return _field(task, "subtitle", language)


def get_completion_message(task: Any, language: str) -> str:
    return _field(task, "completion_message", language)


def get_block_title(block: Any, language: str) -> str:
    return _field(block, "title", language)


def get_block_explanation_text(block: Any, language: str) -> str:
    return _field(block, "explanation_text", language)


def get_block_note(block: Any, language: str) -> str:
    return _field(block, "note", language)


def get_instruction_text(block_or_instruction: Any, language: str) -> str:
    """Instruction text of a block.

    ``speak_out_loud`` blocks keep it in ``instruction_text``; other blocks
    nest it as ``instruction.text``, ``instruction`` or ``text``.
    """
    if not block_or_instruction:
        return ""
    if not isinstance(block_or_instruction, dict):
        return get_translated_text(block_or_instruction, language)

    text = block_or_instruction.get("instruction_text")
    if not text:
        instruction = block_or_instruction.get("instruction")
        nested = instruction.get("text") if isinstance(instruction, dict) else None
        text = (
            nested
            or instruction
            or block_or_instruction.get("text")
            or block_or_instruction
        )
    return get_translated_text(text, language)


def get_hint_text(hint: Any, language: str) -> str:
    return get_translated_text(hint, language)


def get_question_text(task: Any, language: str) -> str:
    return _field(task, "question", language)


def get_situation_text(task: Any, language: str) -> str:
    return _field(task, "situation_text", language)


def lesson_title(lesson: dict, language: str) -> str:
    """Title of a ``lessons`` row: the column for ``language``, then content ``day.title``."""
    column = lesson.get(f"title_{language}") or lesson.get("title_ru") or lesson.get("title_en")
    if column:
        return column
    content = lesson.get("yaml_content")
    if isinstance(content, dict):
        return get_day_title(content.get("day"), language)
    return ""
