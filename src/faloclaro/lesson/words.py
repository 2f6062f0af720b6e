"""Vocabulary extraction from lesson content."""

from typing import Any

from faloclaro.lesson.content import get_tasks


def _card_words(cards: Any) -> list[str]:
    words = []
    for card in cards or []:
        if not isinstance(card, dict):
            continue
        word = card.get("word")
        if isinstance(word, str) and word.strip():
            words.append(word.strip())
    return words


def extract_words(content: dict) -> list[str]:
    """Return the words of the lesson's vocabulary task, in order, with duplicates.

    Only the task with type ``vocabulary`` and ``task_id`` 1 is considered.
    Cards are read from ``content.cards`` and from the cards of every block
    (``blocks`` may be a list or a dict keyed by block id).
    """
    if not isinstance(content, dict):
        return []

    vocabulary_task = next(
        (
            t
            for t in content.get("tasks") or []
            if isinstance(t, dict) and t.get("type") == "vocabulary" and t.get("task_id") == 1
        ),
        None,
    )
    if vocabulary_task is None:
        return []

    words = _card_words((vocabulary_task.get("content") or {}).get("cards"))

    blocks = vocabulary_task.get("blocks")
    if isinstance(blocks, dict):
        blocks = list(blocks.values())
    for block in blocks or []:
        if isinstance(block, dict):
            words.extend(_card_words((block.get("content") or {}).get("cards")))

    return words


def extract_task1_cards(task: Any) -> list:
    """Return the vocabulary cards of a task in any of the shapes lessons have used.

    Checked in order: ``content.cards``, ``cards``, cards inside ``blocks``,
    then the legacy ``main_words`` + ``additional_words`` lists.
    """
    if not isinstance(task, dict):
        return []

    content = task.get("content") if isinstance(task.get("content"), dict) else {}
    if isinstance(content.get("cards"), list):
        return content["cards"]
    if isinstance(task.get("cards"), list):
        return task["cards"]

    cards: list = []
    if isinstance(task.get("blocks"), list):
        for block in task["blocks"]:
            if not isinstance(block, dict):
                continue
            block_content = block.get("content") if isinstance(block.get("content"), dict) else {}
            if isinstance(block_content.get("cards"), list):
                cards.extend(block_content["cards"])
            elif isinstance(block.get("cards"), list):
                cards.extend(block["cards"])
    if cards:
        return cards

    main_words = task.get("main_words", content.get("main_words"))
    additional_words = task.get("additional_words", content.get("additional_words"))
    if isinstance(main_words, list) or isinstance(additional_words, list):
        return list(main_words or []) + list(additional_words or [])

    return []


def count_lesson_words(content: dict) -> int:
    """Number of vocabulary cards in a lesson (first task typed vocabulary or with id 1)."""
    vocabulary_task = next(
        (
            t
            for t in get_tasks(content)
            if isinstance(t, dict) and (t.get("type") == "vocabulary" or t.get("task_id") == 1)
        ),
        None,
    )
    return len(extract_task1_cards(vocabulary_task))
