"""Supabase Storage uploads for lesson audio."""

import logging
import re
import time
import unicodedata
from typing import Optional

from faloclaro.constants import FALLBACK_AUDIO_BUCKET, LESSON_AUDIO_BUCKET
from faloclaro.utils.supabase_client import Client

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 100


class StorageUploadError(Exception):
    """Neither audio bucket accepted the file."""


def sanitize_for_path(text: str) -> str:
    """Lower-case ASCII slug of a Portuguese phrase: accents folded, spaces to dashes."""
    folded = unicodedata.normalize("NFKD", text.lower().strip())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    folded = re.sub(r"[^\w\s-]", "", folded, flags=re.ASCII)
    folded = re.sub(r"\s+", "-", folded)
    folded = re.sub(r"-+", "-", folded).strip("-")
    return folded[:MAX_SLUG_LENGTH]


def lesson_audio_path(
    lesson_id: str, block_id: Optional[str], item_id: Optional[str], extension: str = "mp3"
) -> str:
    suffix = item_id or str(int(time.time() * 1000))
    return f"lessons/{lesson_id}/audio/{block_id or 'block'}_{suffix}.{extension}"


def fallback_audio_path(lesson_id: str, text: str) -> str:
    return f"lesson-{lesson_id}/lesson-{lesson_id}-word-{sanitize_for_path(text)}.mp3"


def upload_file(
    db: Client, bucket: str, path: str, data: bytes, content_type: str = "audio/mpeg"
) -> str:
    """Upload (overwriting) and return the public URL."""
    db.storage.from_(bucket).upload(
        path, data, file_options={"content-type": content_type, "upsert": "true"}
    )
    return db.storage.from_(bucket).get_public_url(path)


def upload_lesson_audio(
    db: Client,
    lesson_id: str,
    text: str,
    data: bytes,
    block_id: Optional[str] = None,
    item_id: Optional[str] = None,
) -> dict:
    """Upload generated audio to the lesson bucket, falling back to the legacy bucket.

    Returns:
        Dict with ``bucket``, ``storage_path`` and ``public_url``

    Raises:
        StorageUploadError: If both uploads fail
    """
    path = lesson_audio_path(lesson_id, block_id, item_id)
    try:
        url = upload_file(db, LESSON_AUDIO_BUCKET, path, data)
        return {"bucket": LESSON_AUDIO_BUCKET, "storage_path": path, "public_url": url}
    except Exception as e:
        logger.warning(f"Upload to {LESSON_AUDIO_BUCKET} failed, trying {FALLBACK_AUDIO_BUCKET}: {e}")

    path = fallback_audio_path(lesson_id, text)
    try:
        url = upload_file(db, FALLBACK_AUDIO_BUCKET, path, data)
    except Exception as e:
        logger.error(f"✗ Upload to {FALLBACK_AUDIO_BUCKET} failed: {e}")
        raise StorageUploadError(str(e)) from e
    return {"bucket": FALLBACK_AUDIO_BUCKET, "storage_path": path, "public_url": url}
