"""Global vocabulary document kept in ``admin_methodologies``.

The ``vocabulary`` row stores ``{"used_words": [...]}`` as a JSON string.
Lesson generation reads it to avoid reusing words. Writes are a plain
read-modify-write of the whole document.
"""

import json
import logging
from typing import Iterable, Optional

from faloclaro.lesson.content import parse_yaml_content
from faloclaro.lesson.words import extract_words
from faloclaro.utils.supabase_client import Client, fetch_all, fetch_one, now_iso

logger = logging.getLogger(__name__)

VOCABULARY_TYPE = "vocabulary"


def parse_used_words(content) -> list[str]:
    if not content:
        return []
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("Vocabulary document is not valid JSON; treating it as empty")
            return []
    if not isinstance(content, dict):
        return []
    words = content.get("used_words")
    return [w for w in words if isinstance(w, str) and w] if isinstance(words, list) else []


def load_vocabulary(db: Client) -> list[str]:
    row = fetch_one(
        db.table("admin_methodologies").select("content").eq("type", VOCABULARY_TYPE)
    )
    return parse_used_words(row.get("content") if row else None)


def save_vocabulary(db: Client, words: Iterable[str]) -> list[str]:
    """Store ``words`` de-duplicated and sorted; returns what was stored."""
    used_words = sorted({w for w in words if w})
    db.table("admin_methodologies").upsert(
        {
            "type": VOCABULARY_TYPE,
            "content": json.dumps({"used_words": used_words}, ensure_ascii=False),
            "updated_at": now_iso(),
        },
        on_conflict="type",
    ).execute()
    return used_words


def add_lesson_words(db: Client, content) -> int:
    """Merge a lesson's vocabulary words into the global document.

    Returns:
        Number of words that were new
    """
    words = extract_words(parse_yaml_content(content))
    if not words:
        return 0

    current = set(load_vocabulary(db))
    new_words = set(words) - current
    if new_words:
        save_vocabulary(db, current | new_words)
        logger.info(f"Added {len(new_words)} words to vocabulary")
    return len(new_words)


def remove_lesson_words(db: Client, lesson_id: str, content) -> int:
    """Drop the words of a deleted lesson that no other lesson still uses.

    Args:
        db: Supabase client
        lesson_id: Lesson being deleted (excluded from the "still used" scan)
        content: The lesson's ``yaml_content``

    Returns:
        Number of words removed
    """
    words = set(extract_words(parse_yaml_content(content)))
    if not words:
        return 0

    still_used: set[str] = set()
    for other in fetch_all(db.table("lessons").select("id, yaml_content").neq("id", lesson_id)):
        still_used.update(extract_words(parse_yaml_content(other.get("yaml_content"))))

    current = set(load_vocabulary(db))
    removable = (words - still_used) & current
    if removable:
        save_vocabulary(db, current - removable)
        logger.info(f"Removed {len(removable)} words of lesson {lesson_id} from vocabulary")
    return len(removable)


def sync_vocabulary(db: Client) -> dict:
    """Rebuild the vocabulary document from every lesson.

    Returns:
        Stats dict: processedLessons, totalWordsFound, uniqueWords
    """
    all_words: set[str] = set()
    processed = 0
    total_found = 0

    for lesson in fetch_all(
        db.table("lessons").select("id, yaml_content").order("day_number")
    ):
        if not lesson.get("yaml_content"):
            continue
        words = [w for w in extract_words(parse_yaml_content(lesson["yaml_content"])) if w]
        all_words.update(words)
        total_found += len(words)
        processed += 1

    save_vocabulary(db, all_words)
    logger.info(
        f"✓ Vocabulary synced: {processed} lessons, {total_found} words, {len(all_words)} unique"
    )
    return {
        "processedLessons": processed,
        "totalWordsFound": total_found,
        "uniqueWords": len(all_words),
    }


def safe_vocabulary_update(action, *args) -> Optional[int]:
    """Run a vocabulary update without letting it fail the caller's lesson operation."""
    try:
        return action(*args)
    except Exception as e:
        logger.error(f"✗ Vocabulary update failed ({action.__name__}): {e}")
        return None
