"""Learner sign-up, link checks, settings, course events and checkout."""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from faloclaro.api.deps import get_db
from faloclaro.lesson.content import get_tasks, parse_yaml_content
from faloclaro.models.subscription import (
    CourseCheckoutRequest,
    LessonCompletedEvent,
    LessonTokenRequest,
    RegisterRequest,
    SettingsRequest,
    TestEmailRequest,
)
from faloclaro.services import access, billing, contact, course_events, learners
from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.utils.supabase_client import Client, fetch_one

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.post("/register")
def register(body: RegisterRequest, background_tasks: BackgroundTasks, db: Client = Depends(get_db)):
    """Sign up for the free lessons; the welcome email goes out after the response."""
    language = body.language.value if body.language else None
    result = learners.register(db, body.email, language)
    user = result["user"]
    first_lesson = next(
        (lesson for lesson in result["lessons"] if lesson.get("day_number") == 1), None
    )
    background_tasks.add_task(
        learners.send_welcome, db, user["id"], first_lesson["id"] if first_lesson else None
    )
    return {
        "success": True,
        "userId": user["id"],
        "email": user["email"],
        "tokens": result["tokens"],
    }


@router.get("/check-token")
def check_token(token: Optional[str] = Query(None), db: Client = Depends(get_db)):
    if not token:
        raise ServiceError("Token is required", ok=False)
    return access.check_token(db, token)


@router.get("/check-lesson")
def check_lesson(day: Optional[int] = Query(None), db: Client = Depends(get_db)):
    """Whether a published lesson exists for ``day`` and how many tasks it has."""
    if not day:
        raise ServiceError("Day parameter is required", exists=False)
    lesson = fetch_one(
        db.table("lessons")
        .select("id, day_number, title_ru, title_en, title_pt, yaml_content")
        .eq("day_number", day)
    )
    if not lesson:
        raise NotFoundError("Lesson not found", exists=False)

    tasks = get_tasks(parse_yaml_content(lesson.get("yaml_content")))
    return {
        "exists": True,
        "day_number": lesson.get("day_number"),
        "title_ru": lesson.get("title_ru"),
        "title_en": lesson.get("title_en"),
        "title_pt": lesson.get("title_pt"),
        "has_tasks": bool(tasks),
        "tasks_count": len(tasks),
    }


@router.post("/activity")
def activity(body: LessonTokenRequest, db: Client = Depends(get_db)):
    if not body.lessonToken:
        raise ServiceError("lessonToken is required", success=False)
    course_events.record_activity(db, body.lessonToken)
    return {"success": True}


@router.api_route("/settings", methods=["POST", "PUT"])
def settings(body: SettingsRequest, request: Request, db: Client = Depends(get_db)):
    """POST reads the settings, PUT applies the changed fields."""
    user_id = learners.resolve_settings_user(db, body.lessonToken, body.authAccessToken)
    if request.method == "PUT":
        view = learners.update_settings(
            db,
            user_id,
            language_preference=body.language_preference,
            email=body.email,
            email_notifications_enabled=body.email_notifications_enabled,
        )
    else:
        view = learners.get_settings(db, user_id)
    return {"success": True, "settings": view}


@router.post("/events/lesson-completed")
def lesson_completed(
    body: LessonCompletedEvent, background_tasks: BackgroundTasks, db: Client = Depends(get_db)
):
    if not body.lessonToken or not body.dayNumber:
        raise ServiceError("Missing params", success=False)
    # Unknown tokens fail the request; the emails themselves run after it
    if not access.get_user_id_by_token(db, body.lessonToken):
        raise ServiceError("Invalid token", success=False)
    background_tasks.add_task(
        _lesson_completed_emails, db, body.lessonToken, body.dayNumber
    )
    return {"success": True}


def _lesson_completed_emails(db: Client, lesson_token: str, day_number: int) -> None:
    try:
        course_events.on_lesson_completed(db, lesson_token, day_number)
    except Exception as e:
        logger.error(f"✗ Lesson-completed emails for day {day_number} failed: {e}")


@router.post("/checkout")
def checkout(body: CourseCheckoutRequest, db: Client = Depends(get_db)):
    client = billing.get_billing_client()
    return client.create_course_session(db, body.userId, body.email)


@router.post("/webhook")
async def webhook(request: Request, db: Client = Depends(get_db)):
    """Stripe webhook; the raw body is needed for signature verification."""
    payload = await request.body()
    client = billing.get_billing_client()
    event = client.construct_event(payload, request.headers.get("stripe-signature"))
    billing.handle_webhook_event(db, event)
    return {"received": True}


@router.get("/create-stripe-product")
def check_stripe_product():
    return billing.get_billing_client().check_course_product()


@router.post("/create-stripe-product")
def create_stripe_product():
    return billing.get_billing_client().create_course_product()


@router.get("/check-resend")
def check_resend():
    return contact.resend_status()


@router.post("/test-email")
def test_email(body: TestEmailRequest):
    return contact.send_resend_test(body.email)
