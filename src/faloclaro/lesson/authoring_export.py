"""Canonical lesson document used for download and re-import in the CRM.

The export strips editor artifacts and generated fields (audio URLs), keeps
only the keys each task type actually uses, and carries the lesson header
both flat and as a ``day`` object so the importer can read either.
"""

import copy
from typing import Any, Optional

from faloclaro.lesson.normalizer import normalize_tasks

_COMMON_TASK_KEYS = ("task_id", "type", "title", "subtitle")

TASK_KEYS: dict[str, tuple[str, ...]] = {
    "vocabulary": _COMMON_TASK_KEYS
    + ("recommended_time", "completion_rule", "ui", "content", "completion_message"),
    "rules": _COMMON_TASK_KEYS + ("structure", "blocks", "completion_message"),
    "listening_comprehension": _COMMON_TASK_KEYS
    + ("ui_rules", "items", "completion_message"),
    "attention": _COMMON_TASK_KEYS + ("ui_rules", "items", "completion_message"),
    "writing_optional": _COMMON_TASK_KEYS
    + ("instruction", "main_task", "example", "alternative", "completion_message"),
}

RULES_BLOCK_CONTENT_KEYS: dict[str, tuple[str, ...]] = {
    "reinforcement": ("title", "task_1", "task_2"),
    "comparison": ("title", "comparison_card", "note"),
    "speak_out_loud": ("instruction_text", "action_button"),
}
DEFAULT_BLOCK_CONTENT_KEYS = ("title", "explanation_text", "examples", "hint", "hints")


def _pick(source: dict, keys: tuple[str, ...]) -> dict:
    return {k: source[k] for k in keys if k in source}


def _walk(root: Any):
    """Yield every dict reachable from root, depth first."""
    stack = [root]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            yield current
            stack.extend(current.values())
        elif isinstance(current, list):
            stack.extend(current)


def strip_audio_urls(root: Any) -> None:
    """Remove every ``audio_url`` key in place; URLs are regenerated per environment."""
    for node in _walk(root):
        node.pop("audio_url", None)


def normalize_correct_flags(root: Any) -> None:
    """Rewrite option ``is_correct`` flags as ``correct`` in place."""
    for node in _walk(root):
        options = node.get("options")
        if not isinstance(options, list):
            continue
        for option in options:
            if not isinstance(option, dict) or "is_correct" not in option:
                continue
            if option.get("correct") is None:
                option["correct"] = bool(option["is_correct"])
            del option["is_correct"]


def clean_reinforcement_blocks(task: dict) -> None:
    # The editor sometimes lifts task_1/task_2 to the block root
    if task.get("type") != "rules" or not isinstance(task.get("blocks"), list):
        return

    for block in task["blocks"]:
        if not isinstance(block, dict) or block.get("block_type") != "reinforcement":
            continue
        if not isinstance(block.get("content"), dict):
            block["content"] = {}
        for key in ("task_1", "task_2"):
            lifted = block.pop(key, None)
            if lifted and not block["content"].get(key):
                block["content"][key] = lifted


def canonicalize_rules_block(block: dict) -> dict:
    out = {"block_id": block.get("block_id"), "block_type": block.get("block_type")}
    content = block.get("content")
    if isinstance(content, dict):
        keys = RULES_BLOCK_CONTENT_KEYS.get(
            block.get("block_type"), DEFAULT_BLOCK_CONTENT_KEYS
        )
        out["content"] = _pick(content, keys)
    return out


def canonicalize_task(task: dict) -> dict:
    keys = TASK_KEYS.get(str(task.get("type") or ""))
    if keys is None:
        return task

    out = _pick(task, keys)
    if task.get("type") == "rules" and isinstance(out.get("blocks"), list):
        out["blocks"] = [
            canonicalize_rules_block(b) if isinstance(b, dict) else b
            for b in out["blocks"]
        ]
    return out


def build_authoring_export(
    day_number: Optional[int],
    tasks: list,
    title_ru: str = "",
    title_en: str = "",
    title_pt: str = "",
    subtitle_ru: str = "",
    subtitle_en: str = "",
    subtitle_pt: str = "",
    estimated_time: str = "",
) -> dict:
    """Build the downloadable lesson document.

    Args:
        day_number: Course day of the lesson
        tasks: Task list as stored (not modified)
        title_ru/title_en/title_pt: Localized lesson titles
        subtitle_ru/subtitle_en/subtitle_pt: Localized lesson subtitles
        estimated_time: Human readable duration, e.g. "15–25"

    Returns:
        Export dict with flat header fields, ``tasks`` and a ``day`` object
    """
    normalized = normalize_tasks(copy.deepcopy(tasks or []))

    for task in normalized:
        clean_reinforcement_blocks(task)
    strip_audio_urls(normalized)
    normalize_correct_flags(normalized)

    titles = {"ru": title_ru or "", "en": title_en or "", "pt": title_pt or ""}
    subtitles = {"ru": subtitle_ru or "", "en": subtitle_en or "", "pt": subtitle_pt or ""}

    return {
        "day_number": day_number,
        **{f"title_{lang}": value for lang, value in titles.items()},
        **{f"subtitle_{lang}": value for lang, value in subtitles.items()},
        "estimated_time": estimated_time or "",
        "tasks": [canonicalize_task(t) for t in normalized],
        "day": {
            "day_number": day_number,
            "title": titles,
            "subtitle": subtitles,
            "estimated_time": estimated_time or "",
        },
    }


def export_lesson_row(lesson: dict, content: dict) -> dict:
    """Build the export for a ``lessons`` row and its parsed content."""
    return build_authoring_export(
        day_number=lesson.get("day_number"),
        tasks=content.get("tasks") or [],
        title_ru=lesson.get("title_ru") or "",
        title_en=lesson.get("title_en") or "",
        title_pt=lesson.get("title_pt") or "",
        subtitle_ru=lesson.get("subtitle_ru") or "",
        subtitle_en=lesson.get("subtitle_en") or "",
        subtitle_pt=lesson.get("subtitle_pt") or "",
        estimated_time=lesson.get("estimated_time") or content.get("estimated_time") or "",
    )
