"""Learner accounts: registration, settings and admin management."""

import logging
from typing import Optional

from faloclaro.constants import FREE_LESSON_DAYS, TRIAL_DAYS, WELCOME_TOKEN_DAYS
from faloclaro.services.access import (
    get_latest_subscription,
    get_token_row,
    grant_lesson_tokens,
)
from faloclaro.services.email_engine import (
    build_default_vars,
    enroll_campaign,
    safe_campaign_call,
    safe_send_template_email,
)
from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.services.lesson_email import send_lesson_email
from faloclaro.utils.supabase_client import (
    Client,
    add_days,
    fetch_all,
    fetch_one,
    now_iso,
)

logger = logging.getLogger(__name__)

WELCOME_TEMPLATE = "core_welcome"
REVOKED_TEMPLATE = "admin_course_revoked"
SIGNUP_CAMPAIGNS = ("campaign_neg_inactivity", "campaign_core_weekly_stats")
SETTINGS_LANGUAGES = ("ru", "en")


def normalize_email(email: Optional[str]) -> str:
    """Lower-cased, trimmed address.

    Raises:
        ServiceError: If the value does not look like an email
    """
    if not email or "@" not in email:
        raise ServiceError("Valid email is required")
    return email.strip().lower()


def get_user_by_email(db: Client, email: str) -> Optional[dict]:
    return fetch_one(db.table("subscription_users").select("*").eq("email", email))


def get_user_or_404(db: Client, user_id: str) -> dict:
    user = fetch_one(db.table("subscription_users").select("*").eq("id", user_id))
    if not user:
        raise NotFoundError("User not found")
    return user


def create_trial_subscription(db: Client, user_id: str) -> dict:
    response = (
        db.table("subscriptions")
        .insert(
            {
                "user_id": user_id,
                "status": "trial",
                "trial_started_at": now_iso(),
                "trial_ends_at": add_days(TRIAL_DAYS),
            }
        )
        .execute()
    )
    return response.data[0]


def get_lessons(db: Client, days: Optional[list[int]] = None) -> list[dict]:
    query = db.table("lessons").select("id, day_number")
    if days is not None:
        query = query.in_("day_number", days)
    return fetch_all(query.order("day_number"))


def free_lesson_days() -> list[int]:
    return list(range(1, FREE_LESSON_DAYS + 1))


def register(db: Client, email: Optional[str], language: Optional[str] = None) -> dict:
    """Sign a learner up (or re-register them) for the free lessons.

    Returns:
        Dict with ``user``, ``lessons`` and ``tokens`` (day -> token)

    Raises:
        ServiceError: On an invalid email, or 500 when the free lessons
            are missing or no token could be issued
    """
    email = normalize_email(email)

    user = get_user_by_email(db, email)
    if user is None:
        response = (
            db.table("subscription_users")
            .insert({"email": email, "language_preference": language or "ru"})
            .execute()
        )
        user = response.data[0]
        logger.info(f"New learner registered: {email}")
    elif language:
        try:
            db.table("subscription_users").update({"language_preference": language}).eq(
                "id", user["id"]
            ).execute()
            user = {**user, "language_preference": language}
        except Exception as e:
            logger.error(f"Failed to update language for {email}: {e}")

    try:
        db.table("subscription_users").update({"registered_at": now_iso()}).eq(
            "id", user["id"]
        ).execute()
    except Exception as e:
        logger.warning(f"Failed to set registered_at for {email}: {e}")

    if get_latest_subscription(db, user["id"]) is None:
        create_trial_subscription(db, user["id"])

    lessons = get_lessons(db, free_lesson_days())
    if not lessons:
        raise ServiceError("Lessons not found", 500)

    tokens = grant_lesson_tokens(db, user["id"], lessons, WELCOME_TOKEN_DAYS)
    if not tokens:
        raise ServiceError("Failed to create access tokens", 500)

    return {"user": user, "lessons": lessons, "tokens": tokens}


def send_welcome(db: Client, user_id: str, first_lesson_id: Optional[str] = None) -> None:
    """Welcome email plus the inactivity and weekly-stats campaigns; never raises."""
    try:
        variables = build_default_vars(db, user_id)
    except Exception as e:
        logger.error(f"✗ Could not build welcome vars for {user_id}: {e}")
        return
    safe_send_template_email(
        db, user_id, WELCOME_TEMPLATE, variables=variables, day_number=1, lesson_id=first_lesson_id
    )
    for campaign_key in SIGNUP_CAMPAIGNS:
        safe_campaign_call(enroll_campaign, db, user_id, campaign_key, context={})


# ---- settings ----


def resolve_settings_user(
    db: Client, lesson_token: Optional[str], auth_access_token: Optional[str]
) -> str:
    """User id from a lesson link token or a Supabase Auth access token.

    Raises:
        ServiceError: 400 when neither resolves
    """
    if lesson_token:
        row = get_token_row(db, lesson_token)
        if not row or not row.get("user_id"):
            raise ServiceError("Invalid lesson token", success=False)
        return row["user_id"]

    if auth_access_token:
        try:
            response = db.auth.get_user(auth_access_token)
        except Exception as e:
            raise ServiceError("Invalid auth session", success=False) from e
        user = getattr(response, "user", None)
        if not user or not getattr(user, "id", None):
            raise ServiceError("Invalid auth session", success=False)
        return user.id

    raise ServiceError("Missing auth", success=False)


def settings_view(user: dict) -> dict:
    flag = user.get("email_notifications_enabled")
    return {
        "email": user.get("email"),
        "language_preference": user.get("language_preference") or "ru",
        "email_notifications_enabled": flag if isinstance(flag, bool) else None,
    }


def get_settings(db: Client, user_id: str) -> dict:
    user = fetch_one(db.table("subscription_users").select("*").eq("id", user_id))
    if not user:
        raise NotFoundError("User not found", success=False)
    return settings_view(user)


def update_settings(
    db: Client,
    user_id: str,
    language_preference: Optional[str] = None,
    email: Optional[str] = None,
    email_notifications_enabled: Optional[bool] = None,
) -> dict:
    """Apply the settings a learner may change and return the stored view."""
    update = {}
    if language_preference in SETTINGS_LANGUAGES:
        update["language_preference"] = language_preference
    if isinstance(email, str) and len(email.strip()) > 3:
        update["email"] = email.strip()
    if update:
        db.table("subscription_users").update(update).eq("id", user_id).execute()

    if isinstance(email_notifications_enabled, bool):
        try:
            db.table("subscription_users").update(
                {"email_notifications_enabled": email_notifications_enabled}
            ).eq("id", user_id).execute()
        except Exception as e:
            logger.warning(f"email_notifications_enabled update failed (ignored): {e}")

    return get_settings(db, user_id)


# ---- admin ----


def list_users(db: Client) -> list[dict]:
    """Users newest first, each with its latest subscription."""
    users = fetch_all(
        db.table("subscription_users").select("*").order("created_at", desc=True)
    )
    subscriptions = fetch_all(
        db.table("subscriptions")
        .select("user_id, status, trial_started_at, trial_ends_at, paid_at, expires_at, created_at")
        .order("created_at", desc=True)
    )
    latest: dict[str, dict] = {}
    for sub in subscriptions:
        latest.setdefault(sub.get("user_id"), sub)

    return [
        {
            "id": user["id"],
            "email": user.get("email"),
            "language_preference": user.get("language_preference"),
            "created_at": user.get("created_at"),
            "subscription_status": (latest.get(user["id"]) or {}).get("status") or "no_subscription",
            "subscription": latest.get(user["id"]),
        }
        for user in users
    ]


def create_user(
    db: Client, email: Optional[str], language: Optional[str] = None, give_full_access: bool = False
) -> dict:
    """Admin-created learner: trial subscription, tokens, and the day-1 lesson email.

    Raises:
        ServiceError: Invalid or duplicate email, or no lessons to unlock
    """
    email = normalize_email(email)
    if get_user_by_email(db, email):
        raise ServiceError("User with this email already exists")

    response = (
        db.table("subscription_users")
        .insert({"email": email, "language_preference": language or "ru"})
        .execute()
    )
    user = response.data[0]

    try:
        create_trial_subscription(db, user["id"])
    except Exception as e:
        logger.error(f"Error creating subscription for {email}: {e}")

    lessons = get_lessons(db, None if give_full_access else free_lesson_days())
    if not lessons:
        raise ServiceError("No lessons found", 500)

    if give_full_access:
        grant_paid_access(db, user["id"])
    grant_lesson_tokens(db, user["id"], lessons, WELCOME_TOKEN_DAYS)

    try:
        send_lesson_email(db, user["id"], lessons[0]["id"], lessons[0].get("day_number") or 1)
    except Exception as e:
        logger.error(f"✗ Lesson email to {email} failed: {e}")

    return user


def grant_paid_access(db: Client, user_id: str) -> None:
    """Mark the learner's latest subscription paid, creating one if they have none."""
    fields = {"status": "paid", "paid_at": now_iso(), "expires_at": None}
    subscription = get_latest_subscription(db, user_id)
    if subscription:
        db.table("subscriptions").update(fields).eq("id", subscription["id"]).execute()
    else:
        db.table("subscriptions").insert({"user_id": user_id, **fields}).execute()


def give_full_access(db: Client, user_id: str) -> dict:
    """Unlock every lesson for a learner and email the day-1 link."""
    get_user_or_404(db, user_id)

    lessons = get_lessons(db)
    if not lessons:
        raise ServiceError("Lessons not found", 500)

    existing = {
        row.get("lesson_id")
        for row in fetch_all(
            db.table("lesson_access_tokens").select("lesson_id").eq("user_id", user_id)
        )
    }
    missing = [lesson for lesson in lessons if lesson["id"] not in existing]
    grant_lesson_tokens(db, user_id, missing, WELCOME_TOKEN_DAYS)
    grant_paid_access(db, user_id)

    day1 = next((lesson for lesson in lessons if lesson.get("day_number") == 1), None)
    if day1:
        try:
            send_lesson_email(db, user_id, day1["id"], 1)
        except Exception as e:
            logger.error(f"✗ Lesson email to {user_id} failed: {e}")

    logger.info(f"✓ Full access granted to {user_id}: {len(missing)} new tokens")
    return {"tokensCreated": len(missing), "totalLessons": len(lessons)}


def invite(db: Client, user_id: str) -> None:
    """Re-send the welcome email, issuing free-lesson tokens first if the learner has none.

    Raises:
        NotFoundError: Unknown user
        ServiceError: 500 when the email could not be sent
    """
    get_user_or_404(db, user_id)

    has_token = fetch_one(
        db.table("lesson_access_tokens").select("token").eq("user_id", user_id)
    )
    if not has_token:
        grant_lesson_tokens(db, user_id, get_lessons(db, free_lesson_days()), WELCOME_TOKEN_DAYS)
        has_token = fetch_one(
            db.table("lesson_access_tokens").select("token").eq("user_id", user_id)
        )

    if has_token:
        result = safe_send_template_email(
            db, user_id, WELCOME_TEMPLATE, variables=build_default_vars(db, user_id), day_number=1
        )
        if not result.get("ok"):
            raise ServiceError("Failed to send email", 500)


def revoke(db: Client, user_id: str) -> None:
    """Return a learner to trial: clear payment and drop tokens for locked days."""
    db.table("subscriptions").update(
        {"status": "trial", "paid_at": None, "expires_at": None}
    ).eq("user_id", user_id).execute()

    locked_ids = [
        row["id"]
        for row in fetch_all(db.table("lessons").select("id").gt("day_number", FREE_LESSON_DAYS))
    ]
    if locked_ids:
        db.table("lesson_access_tokens").delete().eq("user_id", user_id).in_(
            "lesson_id", locked_ids
        ).execute()

    try:
        variables = build_default_vars(db, user_id)
    except Exception as e:
        logger.warning(f"Could not build revoke email vars for {user_id}: {e}")
        variables = {}
    safe_send_template_email(db, user_id, REVOKED_TEMPLATE, variables=variables, day_number=0)
    logger.info(f"Course access revoked for {user_id}")


def delete_user(db: Client, user_id: str) -> None:
    """Delete a learner and their progress, tokens and subscriptions."""
    progress_ids = [
        row["id"]
        for row in fetch_all(db.table("user_progress").select("id").eq("user_id", user_id))
    ]
    for table, column, values in (
        ("task_progress", "user_progress_id", progress_ids),
        ("user_progress", "user_id", None),
        ("lesson_access_tokens", "user_id", None),
        ("subscriptions", "user_id", None),
    ):
        try:
            query = db.table(table).delete()
            query = query.in_(column, values) if values is not None else query.eq(column, user_id)
            if values is None or values:
                query.execute()
        except Exception as e:
            logger.error(f"Error deleting {table} rows of {user_id}: {e}")

    db.table("subscription_users").delete().eq("id", user_id).execute()
    logger.info(f"✓ Deleted user {user_id}")
