"""Admin CRM: lessons, levels, methodologies, learners, payments, emails and audio."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile

from faloclaro.api.deps import get_db, require_admin
from faloclaro.models.lesson import (
    AudioGenerateRequest,
    LessonCreate,
    LessonGenerateRequest,
    LessonUpdate,
    LevelCreate,
    LevelUpdate,
    MethodologyUpdate,
)
from faloclaro.models.subscription import TemplateTestRequest, UserCreate, UserRef
from faloclaro.services import admin_content, admin_reports, audio, learners
from faloclaro.services.errors import ServiceError
from faloclaro.services.lesson_generator import generate_lesson
from faloclaro.services.lesson_import import import_lesson
from faloclaro.services.vocabulary import sync_vocabulary
from faloclaro.utils.supabase_client import Client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _require_user_id(body: UserRef) -> str:
    if not body.userId:
        raise ServiceError("User ID is required")
    return body.userId


# ---- lessons ----


@router.get("/lessons")
def list_lessons(db: Client = Depends(get_db)):
    return {"success": True, "lessons": admin_content.list_lessons(db)}


@router.post("/lessons")
def create_lesson(body: LessonCreate, db: Client = Depends(get_db)):
    return {"success": True, "lesson": admin_content.create_lesson(db, body)}


@router.post("/lessons/import")
def import_lesson_file(
    file: Optional[UploadFile] = File(None),
    lessonId: Optional[str] = Form(None),
    db: Client = Depends(get_db),
):
    """Create a lesson from an uploaded JSON/YAML file, or replace ``lessonId``'s content."""
    if file is None:
        raise ServiceError("File is required")
    raw = file.file.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ServiceError("File must be UTF-8 encoded JSON or YAML") from e
    return import_lesson(db, text, lessonId or None)


@router.get("/lessons/{lesson_id}")
def get_lesson(lesson_id: str, db: Client = Depends(get_db)):
    return {"success": True, "lesson": admin_content.get_lesson(db, lesson_id)}


@router.put("/lessons/{lesson_id}")
def update_lesson(lesson_id: str, body: LessonUpdate, db: Client = Depends(get_db)):
    return {"success": True, "lesson": admin_content.update_lesson(db, lesson_id, body)}


@router.delete("/lessons/{lesson_id}")
def delete_lesson(lesson_id: str, db: Client = Depends(get_db)):
    admin_content.delete_lesson(db, lesson_id)
    return {"success": True, "message": "Lesson deleted successfully"}


@router.post("/lessons/{lesson_id}/generate")
def generate(lesson_id: str, body: LessonGenerateRequest, db: Client = Depends(get_db)):
    lesson = generate_lesson(db, lesson_id, body.topic_ru, body.topic_en)
    return {"success": True, "lesson": lesson}


@router.get("/lessons/{lesson_id}/export")
def export(lesson_id: str, db: Client = Depends(get_db)):
    return {"success": True, **admin_content.export_lesson(db, lesson_id)}


# ---- levels ----


@router.get("/levels")
def list_levels(db: Client = Depends(get_db)):
    return {"success": True, "levels": admin_content.list_levels(db)}


@router.post("/levels")
def create_level(body: LevelCreate, db: Client = Depends(get_db)):
    return {"success": True, "level": admin_content.create_level(db, body)}


@router.get("/levels/{level_id}")
def get_level(level_id: str, db: Client = Depends(get_db)):
    return {"success": True, "level": admin_content.get_level(db, level_id)}


@router.put("/levels/{level_id}")
def update_level(level_id: str, body: LevelUpdate, db: Client = Depends(get_db)):
    return {"success": True, "level": admin_content.update_level(db, level_id, body)}


@router.delete("/levels/{level_id}")
def delete_level(level_id: str, db: Client = Depends(get_db)):
    admin_content.delete_level(db, level_id)
    return {"success": True, "message": "Level deleted successfully"}


# ---- methodologies ----


@router.get("/methodologies")
def list_methodologies(db: Client = Depends(get_db)):
    return {"success": True, "methodologies": admin_content.list_methodologies(db)}


@router.put("/methodologies")
def update_methodology(body: MethodologyUpdate, db: Client = Depends(get_db)):
    methodology = admin_content.update_methodology(db, body.type, body.content)
    return {"success": True, "methodology": methodology}


@router.post("/methodologies/sync-vocabulary")
def sync_vocabulary_route(db: Client = Depends(get_db)):
    stats = sync_vocabulary(db)
    return {"success": True, "message": "Vocabulary synced successfully", "stats": stats}


# ---- learners ----


@router.get("/users")
def list_users(db: Client = Depends(get_db)):
    return {"success": True, "users": learners.list_users(db)}


@router.post("/users")
def create_user(body: UserCreate, db: Client = Depends(get_db)):
    language = body.language.value if body.language else None
    user = learners.create_user(db, body.email, language, body.giveFullAccess)
    return {"success": True, "user": user, "message": "User created and email sent successfully"}


@router.post("/users/give-full-access")
def give_full_access(body: UserRef, db: Client = Depends(get_db)):
    result = learners.give_full_access(db, _require_user_id(body))
    return {"success": True, "message": "Full access granted successfully", **result}


@router.post("/users/invite")
def invite(body: UserRef, db: Client = Depends(get_db)):
    learners.invite(db, _require_user_id(body))
    return {"success": True, "message": "Invitation sent successfully"}


@router.post("/users/revoke")
def revoke(body: UserRef, db: Client = Depends(get_db)):
    learners.revoke(db, _require_user_id(body))
    return {"success": True}


@router.delete("/users/{user_id}")
def delete_user(user_id: str, db: Client = Depends(get_db)):
    learners.delete_user(db, user_id)
    return {"success": True, "message": "User deleted successfully"}


@router.get("/stats")
def stats(user_id: Optional[str] = Query(None, alias="userId"), db: Client = Depends(get_db)):
    return {"success": True, "stats": admin_reports.user_stats(db, user_id)}


@router.get("/payments")
def payments(db: Client = Depends(get_db)):
    return {"success": True, "payments": admin_reports.list_payments(db)}


# ---- emails ----


@router.get("/emails/templates")
def list_templates(db: Client = Depends(get_db)):
    return {"success": True, "templates": admin_reports.list_templates(db)}


@router.post("/emails/templates")
def create_template(body: dict[str, Any] = Body(...), db: Client = Depends(get_db)):
    admin_reports.create_template(db, body)
    return {"success": True}


@router.get("/emails/templates/{key}")
def get_template(key: str, db: Client = Depends(get_db)):
    return {"success": True, "template": admin_reports.get_template_or_404(db, key)}


@router.put("/emails/templates/{key}")
def update_template(key: str, body: dict[str, Any] = Body(...), db: Client = Depends(get_db)):
    admin_reports.update_template(db, key, body)
    return {"success": True}


@router.get("/emails/logs")
def email_logs(
    limit: int = Query(100),
    email: Optional[str] = Query(None),
    template: Optional[str] = Query(None),
    campaign: Optional[str] = Query(None),
    db: Client = Depends(get_db),
):
    logs = admin_reports.list_email_logs(db, limit, email, template, campaign)
    return {"success": True, "logs": logs}


@router.get("/emails/campaigns")
def campaigns(db: Client = Depends(get_db)):
    return {"success": True, **admin_reports.list_campaigns(db)}


@router.post("/emails/test-send")
def test_send(body: TemplateTestRequest, db: Client = Depends(get_db)):
    admin_reports.send_test_email(db, body.to, body.templateKey, body.lang, body.statsUserEmail)
    return {"success": True}


# ---- audio ----


@router.post("/audio/generate")
def generate_audio(body: AudioGenerateRequest, db: Client = Depends(get_db)):
    """Synthesize a phrase with Google TTS and attach it to a lesson item."""
    if not body.text or not body.text.strip():
        raise ServiceError("Text is required")
    if not body.lessonId:
        raise ServiceError("lessonId is required")
    tts = audio.get_tts_client()
    return audio.generate_lesson_audio(
        db, tts, body.text, body.lessonId, body.taskId, body.blockId, body.itemId
    )


@router.post("/audio/upload")
def upload_audio(
    file: Optional[UploadFile] = File(None),
    lessonId: Optional[str] = Form(None),
    taskId: Optional[str] = Form(None),
    blockId: Optional[str] = Form(None),
    itemId: Optional[str] = Form(None),
    textPt: Optional[str] = Form(None),
    db: Client = Depends(get_db),
):
    if file is None:
        raise ServiceError("File is required")
    data = file.file.read()
    return audio.store_uploaded_audio(
        db,
        data,
        file.filename or "audio.mp3",
        file.content_type,
        lessonId,
        taskId,
        blockId,
        itemId,
        textPt,
    )
