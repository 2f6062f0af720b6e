"""Parsing of the ``lessons.yaml_content`` column.

The column is JSON, but older rows and authoring uploads store it as a JSON
or YAML string.
"""

import json
import logging
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def parse_yaml_content(raw: Any) -> dict:
    """Return lesson content as a dict, accepting dicts, JSON strings and YAML strings.

    Args:
        raw: Value of ``yaml_content`` as stored

    Returns:
        Parsed content, or an empty dict when the value is empty or unparseable
    """
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return {}

    text = raw.strip()
    if not text:
        return {}

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError as e:
            logger.warning(f"Lesson content is neither JSON nor YAML: {e}")
            return {}

    return parsed if isinstance(parsed, dict) else {}


def get_tasks(content: dict) -> list:
    """Tasks live at the top level, or under ``day`` in older exports."""
    tasks = content.get("tasks")
    if tasks is None and isinstance(content.get("day"), dict):
        tasks = content["day"].get("tasks")
    return tasks if isinstance(tasks, list) else []
