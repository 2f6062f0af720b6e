"""Token-gated lesson access and progress bookkeeping.

Learners never log in. Each emailed link carries a lesson access token that
identifies the learner; the token must exist and be unexpired. Days 1-3
are open to every learner with a valid token, later days need a paid
subscription.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

from faloclaro.constants import FREE_LESSON_DAYS, TASKS_PER_LESSON
from faloclaro.lesson.content import parse_yaml_content
from faloclaro.lesson.normalizer import normalize_tasks
from faloclaro.models.lesson import ProgressStatus
from faloclaro.models.subscription import PAID_STATUSES
from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.utils.supabase_client import (
    Client,
    add_days,
    fetch_all,
    fetch_one,
    now_iso,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class AccessError(ServiceError):
    """Raised when a lesson link cannot be honoured."""

    STATUS_CODES = {
        "not_found": 404,
        "expired": 403,
        "lesson_not_found": 404,
        "payment_required": 402,
    }

    def __init__(self, reason: str, message: str):
        super().__init__(message, self.STATUS_CODES.get(reason, 400), reason=reason)
        self.reason = reason


@dataclass
class LessonAccess:
    """Result of a successful access check."""

    user_id: str
    token: str
    lesson: dict
    subscription: Optional[dict]
    progress: dict = field(default_factory=dict)


def generate_token() -> str:
    """64 hex chars of cryptographic randomness."""
    return secrets.token_hex(TOKEN_BYTES)


def is_expired(row: dict, now: Optional[datetime] = None) -> bool:
    expires_at = parse_timestamp(row.get("expires_at"))
    if expires_at is None:
        return False
    return expires_at < (now or datetime.now(UTC))


def get_latest_subscription(db: Client, user_id: str) -> Optional[dict]:
    return fetch_one(
        db.table("subscriptions")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
    )


def has_paid_access(subscription: Optional[dict]) -> bool:
    if not subscription:
        return False
    return bool(subscription.get("paid_at")) or subscription.get("status") in PAID_STATUSES


def user_has_paid_access(db: Client, user_id: str) -> bool:
    return has_paid_access(get_latest_subscription(db, user_id))


def is_lesson_unlocked(day_number: int, subscription: Optional[dict]) -> bool:
    if day_number <= FREE_LESSON_DAYS:
        return True
    return has_paid_access(subscription)


def get_token_row(db: Client, token: str) -> Optional[dict]:
    if not token:
        return None
    return fetch_one(db.table("lesson_access_tokens").select("*").eq("token", token))


def get_user_id_by_token(db: Client, token: str) -> Optional[str]:
    row = get_token_row(db, token)
    return row.get("user_id") if row else None


def get_or_create_token(
    db: Client, user_id: str, lesson_id: str, valid_days: int
) -> str:
    """Return the learner's newest unexpired token for a lesson, creating one if needed."""
    existing = fetch_one(
        db.table("lesson_access_tokens")
        .select("*")
        .eq("user_id", user_id)
        .eq("lesson_id", lesson_id)
        .order("created_at", desc=True)
    )
    if existing and existing.get("token") and not is_expired(existing):
        return existing["token"]

    token = generate_token()
    db.table("lesson_access_tokens").insert(
        {
            "user_id": user_id,
            "lesson_id": lesson_id,
            "token": token,
            "expires_at": add_days(valid_days),
            "created_at": now_iso(),
        }
    ).execute()
    logger.info(f"Created access token for user {user_id}, lesson {lesson_id}")
    return token


def grant_lesson_tokens(
    db: Client, user_id: str, lessons: list[dict], valid_days: int
) -> dict[int, str]:
    """Ensure the learner holds a token for each lesson.

    Returns:
        Mapping of day_number -> token
    """
    tokens = {}
    for lesson in sorted(lessons, key=lambda row: row.get("day_number") or 0):
        tokens[lesson.get("day_number")] = get_or_create_token(
            db, user_id, lesson["id"], valid_days
        )
    return tokens


def check_token(db: Client, token: str) -> dict:
    """Describe a token without enforcing anything: exists, expired, and its lesson day."""
    row = get_token_row(db, token)
    if not row or not row.get("user_id"):
        return {"ok": True, "exists": False}

    lesson = None
    if row.get("lesson_id"):
        lesson = fetch_one(
            db.table("lessons").select("id, day_number").eq("id", row["lesson_id"])
        )
    return {
        "ok": True,
        "exists": True,
        "isExpired": is_expired(row),
        "day": lesson.get("day_number") if lesson else None,
    }


def resolve_token(db: Client, token: str) -> dict:
    row = get_token_row(db, token)
    if not row or not row.get("user_id"):
        raise AccessError("not_found", "Invalid or expired link")
    if is_expired(row):
        raise AccessError("expired", "Link has expired")
    return row


def check_lesson_access(db: Client, token: str, day_number: int) -> LessonAccess:
    """Validate a lesson link and load the lesson and the learner's progress.

    Raises:
        AccessError: not_found, expired, lesson_not_found or payment_required
    """
    row = resolve_token(db, token)
    user_id = row["user_id"]

    lesson = fetch_one(db.table("lessons").select("*").eq("day_number", day_number))
    if not lesson:
        raise AccessError("lesson_not_found", "Lesson not found")

    subscription = get_latest_subscription(db, user_id)
    if not is_lesson_unlocked(day_number, subscription):
        raise AccessError(
            "payment_required", "This lesson is available after payment"
        )

    progress = get_or_create_progress(db, user_id, lesson)
    return LessonAccess(
        user_id=user_id,
        token=token,
        lesson=lesson,
        subscription=subscription,
        progress=progress,
    )


def get_or_create_progress(db: Client, user_id: str, lesson: dict) -> dict:
    """Load the learner's progress row for a lesson (created on first visit) with its task rows."""
    progress = fetch_one(
        db.table("user_progress")
        .select("*")
        .eq("user_id", user_id)
        .eq("lesson_id", lesson["id"])
    )
    if progress is None:
        response = (
            db.table("user_progress")
            .insert(
                {
                    "user_id": user_id,
                    "lesson_id": lesson["id"],
                    "day_number": lesson.get("day_number"),
                    "status": ProgressStatus.NOT_STARTED.value,
                    "tasks_completed": 0,
                    "total_tasks": TASKS_PER_LESSON,
                }
            )
            .execute()
        )
        progress = response.data[0]

    progress = dict(progress)
    progress["task_progress"] = fetch_all(
        db.table("task_progress").select("*").eq("user_progress_id", progress["id"])
    )
    return progress


def _lesson_tasks(lesson: dict) -> dict[int, dict]:
    """Normalized tasks keyed by id; lessons without content get the full five slots."""
    tasks = normalize_tasks(parse_yaml_content(lesson.get("yaml_content")).get("tasks"))
    if not tasks:
        return {slot: {} for slot in range(1, TASKS_PER_LESSON + 1)}
    return {int(task["task_id"]): task for task in tasks}


def complete_task(
    db: Client,
    access: LessonAccess,
    task_id: int,
    completion_data: Optional[dict[str, Any]] = None,
    task_type: Optional[str] = None,
) -> dict:
    """Record a finished task and roll the lesson status forward.

    Replaying a completed task refreshes its ``completion_data`` without
    counting it twice. The lesson is ``completed`` once every task is.

    Raises:
        NotFoundError: ``task_id`` is not one of the lesson's tasks

    Returns:
        The updated progress row with ``task_progress``
    """
    lesson_tasks = _lesson_tasks(access.lesson)
    if task_id not in lesson_tasks:
        raise NotFoundError(
            f"Task {task_id} not found in lesson {access.lesson.get('day_number')}"
        )

    progress = access.progress
    completed_at = now_iso()
    existing = next(
        (tp for tp in progress.get("task_progress", []) if tp.get("task_id") == task_id),
        None,
    )

    if existing:
        db.table("task_progress").update(
            {
                "status": ProgressStatus.COMPLETED.value,
                "completion_data": completion_data,
                "completed_at": completed_at,
            }
        ).eq("id", existing["id"]).execute()
    else:
        db.table("task_progress").insert(
            {
                "user_progress_id": progress["id"],
                "task_id": task_id,
                "task_type": task_type
                or lesson_tasks[task_id].get("type")
                or "unknown",
                "status": ProgressStatus.COMPLETED.value,
                "completion_data": completion_data,
                "completed_at": completed_at,
            }
        ).execute()

    task_rows = fetch_all(
        db.table("task_progress").select("*").eq("user_progress_id", progress["id"])
    )
    completed_ids = {
        tp.get("task_id")
        for tp in task_rows
        if tp.get("status") == ProgressStatus.COMPLETED.value
    } & set(lesson_tasks)
    all_completed = completed_ids == set(lesson_tasks)

    update = {
        "tasks_completed": len(completed_ids),
        "status": (
            ProgressStatus.COMPLETED.value
            if all_completed
            else ProgressStatus.IN_PROGRESS.value
        ),
        "completed_at": completed_at if all_completed else None,
        "started_at": progress.get("started_at") or completed_at,
    }
    db.table("user_progress").update(update).eq("id", progress["id"]).execute()
    logger.info(
        f"Task {task_id} completed for user {access.user_id}, day "
        f"{access.lesson.get('day_number')} ({len(completed_ids)} done)"
    )

    return {**progress, **update, "task_progress": task_rows}


def mark_learning_activity(db: Client, token: str) -> Optional[str]:
    """Stamp ``last_learning_activity_at`` for the token's learner; returns the user id."""
    user_id = get_user_id_by_token(db, token)
    if not user_id:
        return None
    db.table("subscription_users").update(
        {"last_learning_activity_at": now_iso()}
    ).eq("id", user_id).execute()
    return user_id


def list_course(db: Client, token: str) -> dict:
    """Course overview for a learner: every lesson with its lock state and progress."""
    row = resolve_token(db, token)
    user_id = row["user_id"]
    subscription = get_latest_subscription(db, user_id)

    lessons = fetch_all(
        db.table("lessons")
        .select("id, day_number, title_ru, title_en, title_pt, subtitle_ru, subtitle_en, subtitle_pt, is_published")
        .order("day_number")
    )
    progress_rows = fetch_all(
        db.table("user_progress").select("*").eq("user_id", user_id)
    )
    progress_by_lesson = {p.get("lesson_id"): p for p in progress_rows}

    return {
        "user_id": user_id,
        "has_paid_access": has_paid_access(subscription),
        "subscription_status": subscription.get("status") if subscription else None,
        "lessons": [
            {
                **lesson,
                "is_unlocked": is_lesson_unlocked(lesson.get("day_number") or 0, subscription),
                "progress_status": progress_by_lesson.get(lesson["id"], {}).get(
                    "status", ProgressStatus.NOT_STARTED.value
                ),
            }
            for lesson in lessons
        ],
    }
