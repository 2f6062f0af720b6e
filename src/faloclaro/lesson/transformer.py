"""Conversion of CRM-authored lessons into the player's task format.

Lessons authored in the CRM describe each task as a ``task_type`` plus a
list of typed ``blocks``. The lesson player understands the older flat
format (``vocabulary``, ``rules``, ``listening_comprehension``,
``attention``, ``writing_optional``). This module maps one onto the other.
"""

from typing import Any, Optional

from faloclaro.lesson.content import parse_yaml_content
from faloclaro.models.lesson import FrontendTaskType

# task_type -> (block types that confirm it, player task type)
_TYPE_RULES: list[tuple[str, tuple[str, ...], FrontendTaskType]] = [
    ("listen_and_repeat", ("listen_and_repeat",), FrontendTaskType.VOCABULARY),
    (
        "speak_correctly",
        ("how_to_say", "reinforcement", "speak_out_loud"),
        FrontendTaskType.RULES,
    ),
    ("understand_meaning", ("listen_phrase",), FrontendTaskType.LISTENING),
    ("choose_situation", ("check_meaning",), FrontendTaskType.ATTENTION),
    ("try_yourself", ("write_by_hand",), FrontendTaskType.WRITING),
]

DEFAULT_LISTENING_UI_RULES = {
    "audio_plays_first": True,
    "show_text_after_answer": True,
}

DEFAULT_ATTENTION_UI_RULES = {
    **DEFAULT_LISTENING_UI_RULES,
    "only_known_words": True,
    "no_similar_distractors": True,
}


def _blocks(task: dict) -> list[dict]:
    blocks = task.get("blocks") or []
    if not isinstance(blocks, list):
        return []
    return [b for b in blocks if isinstance(b, dict)]


def _first_block(task: dict, block_type: str) -> Optional[dict]:
    for block in _blocks(task):
        if block.get("block_type") == block_type:
            return block
    return None


def determine_frontend_type(task: dict) -> FrontendTaskType:
    """Pick the player task type from ``task_type`` and the block types present.

    Unknown combinations fall back to vocabulary.
    """
    task_type = task.get("task_type")
    block_types = {b.get("block_type") for b in _blocks(task)}

    for expected_task_type, confirming_blocks, frontend_type in _TYPE_RULES:
        if task_type == expected_task_type and block_types.intersection(
            confirming_blocks
        ):
            return frontend_type

    return FrontendTaskType.VOCABULARY


def _transform_rules_block(block: dict) -> dict:
    content = block.get("content") or {}
    block_type = block.get("block_type")
    transformed: dict[str, Any] = {"type": block_type}

    if block_type == "how_to_say":
        transformed["title"] = content.get("title") or {}
        transformed["explanation_text"] = content.get("explanation_text") or {}
        transformed["examples"] = content.get("examples") or []
        transformed["hint"] = content.get("hint") or []
    elif block_type == "comparison":
        transformed["comparison_card"] = content.get("comparison_card") or []
        transformed["note"] = content.get("note") or {}
    elif block_type == "reinforcement":
        transformed["task_1"] = content.get("task_1") or None
        transformed["task_2"] = content.get("task_2") or None
    elif block_type == "speak_out_loud":
        transformed["instruction_text"] = content.get("instruction_text") or {}
        transformed["action_button"] = content.get("action_button") or {}
    else:
        transformed["content"] = block.get("content")

    return transformed


def _collect_items(task: dict, block_type: str) -> list:
    items: list = []
    for block in _blocks(task):
        if block.get("block_type") != block_type:
            continue
        block_items = (block.get("content") or {}).get("items")
        if block_items:
            items.extend(block_items)
    return items


def transform_task(task: dict) -> dict:
    """Convert one CRM task into the player format."""
    frontend_type = determine_frontend_type(task)
    transformed: dict[str, Any] = {
        "task_id": task.get("task_id"),
        "type": frontend_type.value,
        "title": task.get("title") or {},
        "subtitle": task.get("subtitle") or {},
        "estimated_time": task.get("estimated_time"),
    }

    if frontend_type is FrontendTaskType.VOCABULARY:
        block = _first_block(task, "listen_and_repeat")
        if block:
            transformed["content"] = block.get("content") or {"cards": []}
            transformed["ui"] = block.get("ui") or {}
            transformed["completion_rule"] = block.get("completion_rule")

    elif frontend_type is FrontendTaskType.RULES:
        blocks = _blocks(task)
        transformed["structure"] = {
            "blocks_order": [b.get("block_id") for b in blocks]
        }
        transformed["blocks"] = {
            b.get("block_id"): _transform_rules_block(b) for b in blocks
        }

    elif frontend_type is FrontendTaskType.LISTENING:
        transformed["items"] = _collect_items(task, "listen_phrase")
        transformed["ui_rules"] = task.get("ui_rules") or dict(
            DEFAULT_LISTENING_UI_RULES
        )

    elif frontend_type is FrontendTaskType.ATTENTION:
        transformed["items"] = _collect_items(task, "check_meaning")
        transformed["ui_rules"] = task.get("ui_rules") or dict(
            DEFAULT_ATTENTION_UI_RULES
        )

    elif frontend_type is FrontendTaskType.WRITING:
        block = _first_block(task, "write_by_hand")
        if block:
            content = block.get("content") or {}
            for key in ("instruction", "main_task", "example", "alternative", "reflection"):
                transformed[key] = content.get(key) or {}
        transformed["optional"] = task.get("optional") is not False

    return transformed


def is_new_structure(lesson: dict) -> bool:
    """True when any task is CRM-authored (has ``task_type`` and a ``blocks`` list)."""
    content = parse_yaml_content((lesson or {}).get("yaml_content"))
    tasks = content.get("tasks")
    if not isinstance(tasks, list):
        return False
    return any(
        isinstance(t, dict) and t.get("task_type") and isinstance(t.get("blocks"), list)
        for t in tasks
    )


def transform_lesson_for_frontend(lesson: dict) -> dict:
    """Return a copy of a lesson row whose tasks are in the player format.

    Rows without content or without a task list are returned unchanged.
    """
    if not lesson or not lesson.get("yaml_content"):
        return lesson

    content = parse_yaml_content(lesson["yaml_content"])
    tasks = content.get("tasks")
    if not isinstance(tasks, list):
        return lesson

    return {
        **lesson,
        "yaml_content": {
            **content,
            "tasks": [transform_task(t) for t in tasks if isinstance(t, dict)],
        },
    }


def prepare_lesson_for_player(lesson: dict) -> dict:
    """Transform CRM-authored lessons and make sure ``yaml_content`` is a dict."""
    if is_new_structure(lesson):
        return transform_lesson_for_frontend(lesson)
    return {**lesson, "yaml_content": parse_yaml_content(lesson.get("yaml_content"))}
