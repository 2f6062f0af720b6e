"""Canonical ordering and repair of a lesson's task list."""

from typing import Any, Optional

from faloclaro.models.lesson import TASK_ID_BY_TYPE, TASK_TYPE_ALIASES, FrontendTaskType

TASK_SLOTS = range(1, 6)
WRITING_TEMPLATE_FORMAT = "template_fill_or_speak"


def template_lines_to_parts(lines: list[str]) -> list[dict]:
    """Turn template lines into text parts, newline-terminated except the last."""
    last = len(lines) - 1
    return [
        {"type": "text", "text": f"{line}\n" if idx < last else line}
        for idx, line in enumerate(lines)
    ]


def _as_task_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _repair_writing_main_task(task: dict) -> None:
    main_task = task.get("main_task")

    # Legacy exports stored the template as a bare list of lines
    if isinstance(main_task, list):
        lines = [s.rstrip() for s in main_task if isinstance(s, str)]
        lines = [s for s in lines if s]
        main_task = {
            "format": WRITING_TEMPLATE_FORMAT,
            "template": lines,
            "template_parts": template_lines_to_parts(lines),
        }

    if not isinstance(main_task, dict):
        main_task = {"format": WRITING_TEMPLATE_FORMAT, "template": []}
    else:
        main_task = dict(main_task)

    template = main_task.get("template")
    if isinstance(template, list) and template and not isinstance(template[0], str):
        flattened = []
        for value in template:
            if isinstance(value, str):
                flattened.append(value)
            elif isinstance(value, dict):
                flattened.append(str(value.get("text") or value.get("content") or ""))
            else:
                flattened.append("")
        main_task["template"] = [v for v in flattened if v]

    if not isinstance(main_task.get("template"), list):
        main_task["template"] = []
    if not isinstance(main_task.get("template_parts"), list):
        main_task["template_parts"] = template_lines_to_parts(main_task["template"])

    task["main_task"] = main_task


def normalize_tasks(tasks: Any) -> list[dict]:
    """Return the lesson's tasks ordered 1..5 with types and ids repaired.

    Non-dict entries are dropped and the input is not mutated. A task keeps
    its explicit ``task_id`` when that slot is free; otherwise it takes the
    slot of its type. Tasks that fit no free slot are discarded.

    Args:
        tasks: Raw ``tasks`` value from lesson content

    Returns:
        At most five tasks, one per slot
    """
    if not isinstance(tasks, list):
        return []

    normalized = [dict(t) for t in tasks if isinstance(t, dict)]

    for task in normalized:
        task_type = str(task.get("type") or "")
        if task_type in TASK_TYPE_ALIASES:
            task["type"] = TASK_TYPE_ALIASES[task_type]

    for task in normalized:
        inferred = TASK_ID_BY_TYPE.get(str(task.get("type") or ""))
        if not task.get("task_id") and inferred:
            task["task_id"] = inferred

    writing_task = next(
        (t for t in normalized if _as_task_id(t.get("task_id")) == 5), None
    ) or next(
        (t for t in normalized if t.get("type") == FrontendTaskType.WRITING.value),
        None,
    )
    if writing_task is not None:
        _repair_writing_main_task(writing_task)

    by_slot: dict[int, dict] = {}
    for task in normalized:
        task_id = _as_task_id(task.get("task_id"))
        if task_id in TASK_SLOTS and task_id not in by_slot:
            by_slot[task_id] = task
    for task in normalized:
        inferred = TASK_ID_BY_TYPE.get(str(task.get("type") or ""))
        if inferred and inferred not in by_slot:
            task["task_id"] = inferred
            by_slot[inferred] = task

    return [by_slot[slot] for slot in TASK_SLOTS if slot in by_slot]
