"""Lesson player endpoints addressed by day and access token."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from faloclaro.api.deps import get_db
from faloclaro.lesson.normalizer import normalize_tasks
from faloclaro.lesson.transformer import prepare_lesson_for_player
from faloclaro.models.lesson import TaskCompletion
from faloclaro.services import access
from faloclaro.services.errors import ServiceError
from faloclaro.utils.supabase_client import Client

router = APIRouter(prefix="/api", tags=["lessons"])


def _player_lesson(lesson: dict) -> dict:
    prepared = prepare_lesson_for_player(lesson)
    content = prepared.get("yaml_content") or {}
    if isinstance(content.get("tasks"), list):
        content = {**content, "tasks": normalize_tasks(content["tasks"])}
    return {**prepared, "yaml_content": content}


@router.get("/lesson/{day}/{token}")
def get_lesson(day: int, token: str, db: Client = Depends(get_db)):
    """Access-checked lesson in the player format with the learner's progress."""
    lesson_access = access.check_lesson_access(db, token, day)
    return {
        "lesson": _player_lesson(lesson_access.lesson),
        "progress": lesson_access.progress,
        "userId": lesson_access.user_id,
        "hasPaidAccess": access.has_paid_access(lesson_access.subscription),
    }


@router.post("/lesson/{day}/{token}/tasks/{task_id}/complete")
def complete_task(
    day: int,
    token: str,
    task_id: int,
    body: Optional[TaskCompletion] = None,
    db: Client = Depends(get_db),
):
    if task_id < 1:
        raise ServiceError("task_id must be positive")
    body = body or TaskCompletion()
    lesson_access = access.check_lesson_access(db, token, day)
    progress = access.complete_task(
        db,
        lesson_access,
        task_id,
        completion_data=body.completion_data,
        task_type=body.task_type,
    )
    return {"success": True, "progress": progress}


@router.get("/lessons")
def list_lessons(token: Optional[str] = Query(None), db: Client = Depends(get_db)):
    """Course overview for the learner behind ``token``."""
    if not token:
        raise ServiceError("Token is required")
    return access.list_course(db, token)
