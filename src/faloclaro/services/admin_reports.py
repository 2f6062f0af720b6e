"""Admin read models (learner stats, payments) and email template management."""

import logging
from typing import Any, Optional

from faloclaro.constants import APP_URL, TASKS_PER_LESSON
from faloclaro.lesson.content import get_tasks, parse_yaml_content
from faloclaro.services.email_engine import (
    NO_TOPICS_TEXT,
    build_default_vars,
    compute_weekly_stats,
    get_template,
    render_template_email,
)
from faloclaro.services.errors import ConfigurationError, NotFoundError, ServiceError
from faloclaro.services.learners import get_user_by_email, normalize_email
from faloclaro.utils.resend_client import ResendClient, get_resend_client
from faloclaro.utils.supabase_client import Client, fetch_all, now_iso

logger = logging.getLogger(__name__)

MAX_LOG_LIMIT = 500
TEMPLATE_FIELDS = (
    "name",
    "category",
    "is_active",
    "subject_ru",
    "subject_en",
    "body_ru",
    "body_en",
    "layout_json_ru",
    "layout_json_en",
    "cta_enabled",
    "cta_text_ru",
    "cta_text_en",
    "cta_url_template",
)

# Placeholder values used when previewing a template without a real learner
PREVIEW_VARS = {
    "intro_url": f"{APP_URL}/pt/intro",
    "payment_url": f"{APP_URL}/pt/payment",
    "weekly_lessons_completed": 2,
    "weekly_topics": "Урок 1: Пример; Урок 2: Пример",
    "total_words_learned": 120,
    "module_label_ru": "Модуль 1 (A1)",
    "module_label_en": "Module 1 (A1)",
}


def user_stats(db: Client, user_id: Optional[str]) -> dict:
    """Per-lesson progress of one learner over the whole course.

    Raises:
        ServiceError: If ``user_id`` is missing
    """
    if not user_id:
        raise ServiceError("User ID is required")

    lessons = fetch_all(db.table("lessons").select("id, day_number, yaml_content").order("day_number"))
    progress_rows = fetch_all(db.table("user_progress").select("*").eq("user_id", user_id))
    progress_by_lesson = {row.get("lesson_id"): row for row in progress_rows if row.get("lesson_id")}

    task_rows = []
    if progress_rows:
        task_rows = fetch_all(
            db.table("task_progress")
            .select("*")
            .in_("user_progress_id", [row["id"] for row in progress_rows])
        )
    tasks_by_progress: dict[Any, list] = {}
    for row in task_rows:
        tasks_by_progress.setdefault(row.get("user_progress_id"), []).append(row)

    entries = []
    for lesson in lessons:
        total_tasks = len(get_tasks(parse_yaml_content(lesson.get("yaml_content")))) or TASKS_PER_LESSON
        progress = progress_by_lesson.get(lesson["id"])
        task_progress = tasks_by_progress.get(progress["id"], []) if progress else []
        entries.append(
            {
                "day_number": lesson.get("day_number"),
                "lesson_id": lesson["id"],
                "status": (progress or {}).get("status") or "not_started",
                "started_at": (progress or {}).get("started_at"),
                "completed_at": (progress or {}).get("completed_at"),
                "completed_tasks": sum(1 for t in task_progress if t.get("status") == "completed"),
                "total_tasks": total_tasks,
                "task_progress": task_progress,
            }
        )

    return {
        "totalLessons": len(lessons),
        "startedLessons": sum(1 for e in entries if e["status"] in ("in_progress", "completed")),
        "completedLessons": sum(1 for e in entries if e["status"] == "completed"),
        "lessons": entries,
    }


def list_payments(db: Client) -> list[dict]:
    """Paid subscriptions, newest first, with the learner's email."""
    subscriptions = fetch_all(
        db.table("subscriptions").select("*").eq("status", "paid").order("created_at", desc=True)
    )
    user_ids = list({sub["user_id"] for sub in subscriptions if sub.get("user_id")})
    emails = {}
    if user_ids:
        emails = {
            row["id"]: row.get("email")
            for row in fetch_all(db.table("subscription_users").select("id, email").in_("id", user_ids))
        }
    return [
        {
            "id": sub["id"],
            "user_id": sub.get("user_id"),
            "user_email": emails.get(sub.get("user_id")) or "",
            "amount": sub.get("amount"),
            "currency": sub.get("currency") or "EUR",
            "status": sub.get("status"),
            "paid_at": sub.get("paid_at"),
            "stripe_customer_id": sub.get("stripe_customer_id"),
            "stripe_session_id": sub.get("stripe_subscription_id"),
            "created_at": sub.get("created_at"),
            "updated_at": sub.get("updated_at"),
        }
        for sub in subscriptions
    ]


# ---- email templates ----


def list_templates(db: Client) -> list[dict]:
    return fetch_all(
        db.table("email_templates")
        .select("key, name, category, is_active, subject_ru, subject_en, updated_at")
        .order("category")
        .order("key")
    )


def get_template_or_404(db: Client, key: str) -> dict:
    template = get_template(db, key)
    if not template:
        raise NotFoundError("Not found", success=False)
    return template


def create_template(db: Client, body: dict) -> None:
    key = str(body.get("key") or "").strip()
    name = str(body.get("name") or "").strip()
    if not key or not name:
        raise ServiceError("key and name are required", success=False)

    db.table("email_templates").insert(
        {
            "key": key,
            "name": name,
            "category": str(body.get("category") or "core"),
            "is_active": body.get("is_active") is not False,
            "subject_ru": str(body.get("subject_ru") or ""),
            "subject_en": str(body.get("subject_en") or ""),
            "body_ru": str(body.get("body_ru") or ""),
            "body_en": str(body.get("body_en") or ""),
            "cta_enabled": bool(body.get("cta_enabled")),
            "cta_text_ru": body.get("cta_text_ru"),
            "cta_text_en": body.get("cta_text_en"),
            "cta_url_template": body.get("cta_url_template"),
            "updated_at": now_iso(),
        }
    ).execute()
    logger.info(f"✓ Email template {key} created")


def update_template(db: Client, key: str, body: dict) -> None:
    """Update the editable template fields present in ``body``."""
    fields = {name: body[name] for name in TEMPLATE_FIELDS if name in body}
    fields["updated_at"] = now_iso()
    db.table("email_templates").update(fields).eq("key", key).execute()


def list_email_logs(
    db: Client,
    limit: int = 100,
    email: Optional[str] = None,
    template_key: Optional[str] = None,
    campaign_key: Optional[str] = None,
) -> list[dict]:
    """Recent email log rows, filtered by template, campaign and a recipient email fragment."""
    query = (
        db.table("email_logs")
        .select(
            "id, sent_at, status, error, template_key, campaign_key, campaign_step_index, "
            "email_type, day_number, user_id, lesson_id"
        )
        .order("sent_at", desc=True)
        .limit(min(max(limit, 1), MAX_LOG_LIMIT))
    )
    if template_key:
        query = query.eq("template_key", template_key.strip())
    if campaign_key:
        query = query.eq("campaign_key", campaign_key.strip())
    rows = fetch_all(query)

    user_ids = list({row["user_id"] for row in rows if row.get("user_id")})
    emails = {}
    if user_ids:
        emails = {
            row["id"]: row.get("email") or ""
            for row in fetch_all(db.table("subscription_users").select("id, email").in_("id", user_ids))
        }
    for row in rows:
        row["email"] = emails.get(row.get("user_id"), "")

    needle = (email or "").strip().lower()
    if needle:
        rows = [row for row in rows if needle in row["email"].lower()]
    return rows


def list_campaigns(db: Client) -> dict:
    campaigns = fetch_all(
        db.table("email_campaigns").select("key, name, is_active, updated_at").order("key")
    )
    steps = fetch_all(
        db.table("email_campaign_steps")
        .select("campaign_key, step_index, template_key, delay_hours, stop_conditions")
        .order("campaign_key")
        .order("step_index")
    )
    return {"campaigns": campaigns, "steps": steps}


def send_test_email(
    db: Client,
    to: Optional[str],
    template_key: Optional[str],
    lang: Optional[str] = "ru",
    stats_user_email: Optional[str] = None,
    client: Optional[ResendClient] = None,
) -> None:
    """Send a ``[TEST]`` rendering of a template to ``to``.

    Placeholders come from preview values, or from a real learner's links
    and weekly stats when ``stats_user_email`` names one.

    Raises:
        ServiceError: Bad recipient or template key (400), delivery failure (500)
        NotFoundError: Unknown template
        ConfigurationError: Resend is not configured
    """
    to = (to or "").strip()
    template_key = (template_key or "").strip()
    lang = "en" if (lang or "").strip() == "en" else "ru"
    if not to or "@" not in to or not template_key:
        raise ServiceError("to and templateKey are required", success=False)

    template = get_template_or_404(db, template_key)

    variables: dict[str, Any] = dict(PREVIEW_VARS)
    if stats_user_email and "@" in stats_user_email:
        user = get_user_by_email(db, normalize_email(stats_user_email))
        if user:
            variables.update(build_default_vars(db, user["id"]))
            stats = compute_weekly_stats(db, user["id"])
            variables.update(stats)
            variables["weekly_topics"] = stats["weekly_topics"] or NO_TOPICS_TEXT[lang]

    client = client or get_resend_client()
    if client is None:
        raise ConfigurationError("RESEND_API_KEY not configured", success=False)

    subject, html, text = render_template_email(template, lang, variables)
    success, metadata = client.send_email(to=to, subject=f"[TEST] {subject}", html=html, text=text)
    if not success:
        raise ServiceError(metadata.get("error") or "Failed", 500, success=False)
    logger.info(f"✓ Test {template_key} ({lang}) sent to {to}")
