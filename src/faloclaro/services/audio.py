"""Lesson and phrase audio: synthesis, upload and bookkeeping."""

import logging
import time
from typing import Optional

from faloclaro.constants import FALLBACK_AUDIO_BUCKET, LESSON_AUDIO_BUCKET
from faloclaro.services.errors import ConfigurationError, ServiceError
from faloclaro.utils.storage import (
    StorageUploadError,
    lesson_audio_path,
    sanitize_for_path,
    upload_file,
    upload_lesson_audio,
)
from faloclaro.utils.supabase_client import Client, fetch_all, fetch_one, now_iso
from faloclaro.utils.tts_client import GoogleTTSClient, TTSConfigurationError

logger = logging.getLogger(__name__)

AUDIO_FILES_CONFLICT = "lesson_id,task_id,block_id,item_id"


def _as_int(value) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def get_tts_client() -> GoogleTTSClient:
    try:
        return GoogleTTSClient()
    except TTSConfigurationError as e:
        raise ConfigurationError(
            "Google Cloud credentials are missing",
            hint="Set GOOGLE_APPLICATION_CREDENTIALS_JSON with your service account JSON credentials",
        ) from e


def describe_tts_error(code, message: str) -> tuple[str, str]:
    """User-facing error and hint for a failed synthesis."""
    code_name = getattr(code, "name", code)
    if "credentials" in (message or "").lower():
        return (
            "Google Cloud credentials are missing or invalid",
            "Please set GOOGLE_APPLICATION_CREDENTIALS_JSON environment variable with your service account JSON credentials",
        )
    if code_name in ("PERMISSION_DENIED", "FORBIDDEN", 7, 403):
        return (
            "Permission denied. Check if the service account has Text-to-Speech API enabled",
            "Enable Text-to-Speech API for your Google Cloud project and grant permissions to the service account",
        )
    if code_name in ("INVALID_ARGUMENT", "BAD_REQUEST", 3, 400):
        return (
            "Invalid request parameters",
            f"Check the text input and voice configuration. Error: {message}",
        )
    return (
        "Failed to generate audio using Google TTS",
        "Check if GOOGLE_APPLICATION_CREDENTIALS or GOOGLE_APPLICATION_CREDENTIALS_JSON environment variable is set correctly",
    )


def record_audio_file(db: Client, row: dict) -> Optional[dict]:
    """Upsert an ``audio_files`` row; failures are logged, not raised."""
    try:
        response = db.table("audio_files").upsert(row, on_conflict=AUDIO_FILES_CONFLICT).execute()
        return response.data[0] if response.data else None
    except Exception as e:
        logger.error(f"Error saving audio file record (non-critical): {e}")
        return None


def set_phrase_audio(db: Client, portuguese_text: str, audio_url: str) -> None:
    """Point the phrase with this text at the audio, creating the phrase if needed."""
    try:
        phrase = fetch_one(
            db.table("phrases").select("id, audio_url").eq("portuguese_text", portuguese_text)
        )
        if phrase:
            db.table("phrases").update({"audio_url": audio_url}).eq("id", phrase["id"]).execute()
        else:
            db.table("phrases").insert(
                {"portuguese_text": portuguese_text, "audio_url": audio_url}
            ).execute()
    except Exception as e:
        logger.error(f"✗ Updating phrase audio for {portuguese_text!r} failed: {e}")


def _audio_file_row(
    lesson_id: str,
    text: str,
    upload: dict,
    method: str,
    task_id=None,
    block_id: Optional[str] = None,
    item_id: Optional[str] = None,
) -> dict:
    row = {
        "lesson_id": _as_int(lesson_id) or lesson_id,
        "text_pt": text,
        "audio_url": upload["public_url"],
        "storage_path": upload["storage_path"],
        "generation_method": method,
    }
    row["generated_at" if method == "tts" else "uploaded_at"] = now_iso()
    if _as_int(task_id) is not None:
        row["task_id"] = _as_int(task_id)
    if block_id:
        row["block_id"] = block_id
    if item_id:
        row["item_id"] = item_id
    return row


def generate_lesson_audio(
    db: Client,
    tts: GoogleTTSClient,
    text: Optional[str],
    lesson_id: Optional[str],
    task_id=None,
    block_id: Optional[str] = None,
    item_id: Optional[str] = None,
) -> dict:
    """Synthesize a lesson phrase, store it and register its URL.

    Raises:
        ServiceError: Missing text or lesson id (400), synthesis or upload failure (500)
    """
    if not text or not text.strip():
        raise ServiceError("Text is required")
    if not lesson_id:
        raise ServiceError("lessonId is required")
    text = text.strip()

    success, metadata = tts.synthesize(text)
    if not success:
        error, hint = describe_tts_error(metadata.get("error_code"), metadata.get("error", ""))
        raise ServiceError(
            error, 500, details=metadata.get("error"), code=str(metadata.get("error_code")), hint=hint
        )

    try:
        upload = upload_lesson_audio(db, lesson_id, text, metadata["audio_content"], block_id, item_id)
    except StorageUploadError as e:
        raise ServiceError(
            "Failed to upload audio",
            500,
            details=str(e),
            hint=f'Check if storage buckets "{LESSON_AUDIO_BUCKET}" or "{FALLBACK_AUDIO_BUCKET}" exist',
        ) from e

    audio_file = record_audio_file(
        db, _audio_file_row(lesson_id, text, upload, "tts", task_id, block_id, item_id)
    )
    set_phrase_audio(db, text, upload["public_url"])

    return {
        "success": True,
        "audioUrl": upload["public_url"],
        "storagePath": upload["storage_path"],
        "bucket": upload["bucket"],
        "audioFile": audio_file,
        "lessonId": lesson_id,
        "text": text,
        "message": "Audio generated and uploaded successfully",
    }


def store_uploaded_audio(
    db: Client,
    data: bytes,
    filename: str,
    content_type: Optional[str],
    lesson_id: Optional[str],
    task_id=None,
    block_id: Optional[str] = None,
    item_id: Optional[str] = None,
    text_pt: Optional[str] = None,
) -> dict:
    """Store an audio file uploaded by an admin.

    Raises:
        ServiceError: Missing file or lesson id, or a non-audio content type
    """
    if not data:
        raise ServiceError("File is required")
    if not lesson_id:
        raise ServiceError("lessonId is required")
    if not content_type or not content_type.startswith("audio/"):
        raise ServiceError("File must be an audio file")

    extension = filename.rsplit(".", 1)[-1] if "." in filename else "mp3"
    path = lesson_audio_path(lesson_id, block_id, item_id, extension)
    try:
        url = upload_file(db, LESSON_AUDIO_BUCKET, path, data, content_type)
    except Exception as e:
        raise ServiceError("Failed to upload audio", 500, details=str(e)) from e

    upload = {"bucket": LESSON_AUDIO_BUCKET, "storage_path": path, "public_url": url}
    audio_file = record_audio_file(
        db, _audio_file_row(lesson_id, text_pt or filename, upload, "upload", task_id, block_id, item_id)
    )
    if text_pt:
        set_phrase_audio(db, text_pt, url)

    return {"success": True, "audioUrl": url, "storagePath": path, "audioFile": audio_file}


def phrases_without_audio(db: Client) -> list[dict]:
    rows = fetch_all(
        db.table("phrases").select("id, portuguese_text, audio_url").order("order_index")
    )
    return [row for row in rows if not row.get("audio_url") and row.get("portuguese_text")]


def generate_phrase_audio(
    db: Client, tts: GoogleTTSClient, phrase: dict, pause_seconds: float = 0.2
) -> Optional[str]:
    """Synthesize one trainer phrase into the legacy bucket and save its URL.

    Returns:
        Public URL, or None when synthesis or upload failed
    """
    success, metadata = tts.synthesize(phrase["portuguese_text"])
    if pause_seconds:
        time.sleep(pause_seconds)
    if not success:
        return None

    path = f"phrase-{phrase['id']}-{sanitize_for_path(phrase['portuguese_text'])}.mp3"
    try:
        url = upload_file(db, FALLBACK_AUDIO_BUCKET, path, metadata["audio_content"])
    except Exception as e:
        logger.error(f"✗ Upload of {path} failed: {e}")
        return None

    db.table("phrases").update({"audio_url": url}).eq("id", phrase["id"]).execute()
    return url
