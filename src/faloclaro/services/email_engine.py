"""Template emails and drip campaigns.

Templates live in ``email_templates`` with ru/en subject, body and CTA
fields; ``{{placeholder}}`` markers are substituted from a vars dict.
Campaigns are ordered ``email_campaign_steps``; a learner's position in a
campaign is an ``email_enrollments`` row advanced by the dispatcher, which
an external cron triggers.
"""

import html as html_lib
import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from faloclaro.constants import APP_URL, WELCOME_TOKEN_DAYS
from faloclaro.lesson.content import parse_yaml_content
from faloclaro.lesson.words import count_lesson_words
from faloclaro.services.access import get_or_create_token, user_has_paid_access
from faloclaro.utils.resend_client import ResendClient, get_resend_client
from faloclaro.utils.supabase_client import (
    Client,
    add_hours,
    fetch_all,
    fetch_one,
    now_iso,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

WEEKLY_STATS_TEMPLATE = "core_weekly_stats"
DEFAULT_REPEAT_DELAY_HOURS = 168
NO_TOPICS_TEXT = {
    "en": "No completed lessons this week",
    "ru": "Нет завершённых уроков за неделю",
}

MODULES = (
    (1, 14, 1, "Модуль 1 (A1)", "Module 1 (A1)"),
    (15, 30, 2, "Модуль 2 (A2)", "Module 2 (A2)"),
    (31, 45, 3, "Модуль 3 (A2+)", "Module 3 (A2+)"),
    (46, 60, 4, "Модуль 4 (B1)", "Module 4 (B1)"),
)


class EmailSendError(Exception):
    """Raised for campaign configuration problems (delivery failures are returned, not raised)."""


def escape_html(text: Any) -> str:
    return html_lib.escape("" if text is None else str(text), quote=True).replace("&#x27;", "&#39;")


def normalize_template_text(text: Optional[str]) -> str:
    """Turn literal ``\\n``/``\\r\\n``/``\\t`` sequences stored by seeds into real characters."""
    if not text:
        return ""
    return (
        text.replace("\r\n", "\n")
        .replace("\\r\\n", "\n")
        .replace("\\n", "\n")
        .replace("\\t", "\t")
    )


def render_placeholders(template: Optional[str], variables: dict[str, Any]) -> str:
    out = normalize_template_text(template)
    for key, value in (variables or {}).items():
        out = out.replace("{{" + key + "}}", "" if value is None else str(value))
    return out


def get_user_lang(user: Optional[dict]) -> str:
    return "en" if user and user.get("language_preference") == "en" else "ru"


def is_email_enabled(user: Optional[dict]) -> bool:
    """Unknown users and unset flags count as opted in."""
    if not user:
        return True
    return user.get("email_notifications_enabled") is not False


def compute_module_info(day_number: int) -> Optional[dict]:
    for start, end, number, label_ru, label_en in MODULES:
        if start <= day_number <= end:
            return {
                "module_number": number,
                "start_day": start,
                "end_day": end,
                "module_label_ru": label_ru,
                "module_label_en": label_en,
            }
    return None


def get_user(db: Client, user_id: str) -> Optional[dict]:
    return fetch_one(db.table("subscription_users").select("*").eq("id", user_id))


def get_template(db: Client, template_key: str) -> Optional[dict]:
    return fetch_one(db.table("email_templates").select("*").eq("key", template_key))


def get_campaign_steps(db: Client, campaign_key: str) -> list[dict]:
    return fetch_all(
        db.table("email_campaign_steps")
        .select("campaign_key, step_index, template_key, delay_hours, stop_conditions")
        .eq("campaign_key", campaign_key)
        .order("step_index")
    )


def build_default_vars(db: Client, user_id: str) -> dict[str, str]:
    """Intro and payment links built from the learner's day-1 token."""
    token = None
    day1 = fetch_one(db.table("lessons").select("id, day_number").eq("day_number", 1))
    if day1:
        try:
            token = get_or_create_token(db, user_id, day1["id"], WELCOME_TOKEN_DAYS)
        except Exception as e:
            logger.warning(f"Could not issue day-1 token for {user_id}: {e}")

    if not token:
        return {"intro_url": APP_URL, "payment_url": f"{APP_URL}/pt/payment"}
    return {
        "intro_url": f"{APP_URL}/pt/intro?day=1&token={token}",
        "payment_url": f"{APP_URL}/pt/payment?day=4&token={token}",
    }


def _cta_button(url: str, text: str, radius: int = 10, padding: str = "12px 18px") -> str:
    return (
        f'<a href="{escape_html(url)}" style="display:inline-block;background:#111;color:#fff;'
        f'text-decoration:none;padding:{padding};border-radius:{radius}px;font-weight:700;">'
        f"{escape_html(text)}</a>"
    )


def build_email_html(body_text: str, cta_url: Optional[str] = None, cta_text: str = "") -> str:
    cta = f'<div style="margin-top: 24px;">{_cta_button(cta_url, cta_text)}</div>' if cta_url else ""
    return (
        '<div style="font-family: Arial, sans-serif; line-height: 1.6; color: #111; '
        'max-width: 640px; margin: 0 auto; padding: 20px;">'
        f'<div style="white-space: pre-line;">{escape_html(body_text)}</div>{cta}</div>'
    )


def build_weekly_stats_html(
    title: str,
    lessons_completed: int,
    total_words_learned: int,
    topics: list[str],
    footer_text: str,
    cta_url: Optional[str] = None,
    cta_text: Optional[str] = None,
) -> str:
    if topics:
        items = "".join(f'<li style="margin: 6px 0;">{escape_html(t)}</li>' for t in topics)
        topics_html = f'<ul style="margin: 10px 0 0 18px; padding: 0;">{items}</ul>'
    else:
        topics_html = '<div style="color:#666;margin-top:10px;">—</div>'

    cta = _cta_button(cta_url, cta_text or "", radius=14, padding="14px 22px") if cta_url else ""
    tile = "border-radius: 22px; padding: 18px;"
    number = "font-size: 52px; font-weight: 900; line-height: 1;"
    caption = "font-size: 22px; font-weight: 700; margin-top: 8px;"
    return f"""
    <div style="font-family: Inter, Arial, sans-serif; color:#111; max-width: 720px; margin: 0 auto; padding: 22px;">
      <div style="font-size: 22px; font-weight: 800; margin-bottom: 14px;">{escape_html(title)}</div>
      <div style="height:1px;background:#E6E8EB;margin: 12px 0 18px;"></div>
      <div style="display:flex; gap: 14px; flex-wrap: wrap;">
        <div style="flex: 1 1 220px; background:#7CF0A0; {tile}">
          <div style="{number}">{lessons_completed}</div>
          <div style="{caption}">Уроков пройдено</div>
        </div>
        <div style="flex: 2 1 320px; background:#B277FF; color:#fff; {tile}">
          <div style="{number}">{total_words_learned}</div>
          <div style="{caption}">Новых слов</div>
        </div>
      </div>
      <div style="margin-top: 16px; background:#fff; border: 1px solid #111; {tile}">
        <div style="font-size: 26px; font-weight: 900; margin-bottom: 10px;">Пройденные темы уроков</div>
        {topics_html}
      </div>
      <div style="height:1px;background:#E6E8EB;margin: 18px 0;"></div>
      <div style="font-size: 16px; font-weight: 600; margin-bottom: 16px;">{escape_html(footer_text)}</div>
      {cta}
    </div>
    """


def render_template_email(template: dict, lang: str, variables: dict[str, Any]) -> tuple[str, str, str]:
    """Subject, HTML and plain-text body of a template in ``lang``."""
    subject = render_placeholders(template.get(f"subject_{lang}"), variables)
    body_text = render_placeholders(template.get(f"body_{lang}"), variables)

    cta_enabled = bool(template.get("cta_enabled")) and bool(template.get("cta_url_template"))
    cta_url = render_placeholders(template["cta_url_template"], variables) if cta_enabled else None
    cta_text = render_placeholders(template.get(f"cta_text_{lang}") or "", variables) if cta_enabled else ""

    if template.get("key") == WEEKLY_STATS_TEMPLATE:
        topics = [t.strip() for t in str(variables.get("weekly_topics") or "").split(";") if t.strip()]
        html = build_weekly_stats_html(
            title=subject,
            lessons_completed=int(variables.get("weekly_lessons_completed") or 0),
            total_words_learned=int(variables.get("total_words_learned") or 0),
            topics=topics,
            footer_text=body_text.split("\n")[-1] or body_text,
            cta_url=cta_url,
            cta_text=cta_text,
        )
    else:
        html = build_email_html(body_text, cta_url, cta_text)

    text = body_text + (f"\n\n{cta_text}: {cta_url}" if cta_url else "")
    return subject, html, text


def log_email(
    db: Client,
    user_id: str,
    template_key: str,
    status: str,
    error: Optional[str] = None,
    campaign_key: Optional[str] = None,
    campaign_step_index: Optional[int] = None,
    lesson_id: Optional[str] = None,
    day_number: Optional[int] = None,
) -> None:
    """Append an ``email_logs`` row; a logging failure is reported but not raised."""
    try:
        db.table("email_logs").insert(
            {
                "user_id": user_id,
                "lesson_id": lesson_id,
                "day_number": day_number or 0,
                "email_type": "campaign" if campaign_key else "event",
                "template_key": template_key,
                "campaign_key": campaign_key,
                "campaign_step_index": campaign_step_index,
                "status": status,
                "error": error,
                "sent_at": now_iso(),
            }
        ).execute()
    except Exception as e:
        logger.error(f"Failed to write email log for {user_id}/{template_key}: {e}")


def send_template_email(
    db: Client,
    user_id: str,
    template_key: str,
    variables: Optional[dict[str, Any]] = None,
    campaign_key: Optional[str] = None,
    campaign_step_index: Optional[int] = None,
    lesson_id: Optional[str] = None,
    day_number: Optional[int] = None,
    client: Optional[ResendClient] = None,
) -> dict:
    """Render a template for a learner and send it.

    Delivery problems never raise; they come back in the result and are
    recorded in ``email_logs``.

    Args:
        db: Supabase client
        user_id: Recipient learner id
        template_key: ``email_templates.key``
        variables: Placeholder values
        campaign_key: Set when sent by the campaign dispatcher
        campaign_step_index: Step that triggered the send
        lesson_id: Lesson the email is about, if any
        day_number: Course day the email is about, if any
        client: Resend client (built from the environment when omitted)

    Returns:
        ``{"ok": bool, "skipped"?: bool, "error"?: str, "id"?: str}``
    """
    log_context = {
        "campaign_key": campaign_key,
        "campaign_step_index": campaign_step_index,
        "lesson_id": lesson_id,
        "day_number": day_number,
    }
    user = get_user(db, user_id)

    if not is_email_enabled(user):
        log_email(db, user_id, template_key, "skipped", "email_notifications_disabled", **log_context)
        logger.info(f"Skipped {template_key} for {user_id}: notifications disabled")
        return {"ok": True, "skipped": True}

    template = get_template(db, template_key)
    if not template or not template.get("is_active"):
        return {"ok": False, "error": "Template not found or inactive"}

    to_email = user.get("email") if user else None
    if not to_email:
        return {"ok": False, "error": "User email not found"}

    client = client or get_resend_client()
    if client is None:
        return {"ok": False, "error": "RESEND_API_KEY not configured"}

    subject, html, text = render_template_email(template, get_user_lang(user), variables or {})
    success, metadata = client.send_email(to=to_email, subject=subject, html=html, text=text)

    if not success:
        error = metadata.get("error") or "Failed to send"
        log_email(db, user_id, template_key, "failed", error, **log_context)
        return {"ok": False, "error": error}

    log_email(db, user_id, template_key, "sent", **log_context)
    return {"ok": True, "id": metadata.get("id")}


def safe_send_template_email(db: Client, user_id: str, template_key: str, **kwargs) -> dict:
    """``send_template_email`` for request side effects: any exception is logged and swallowed."""
    try:
        result = send_template_email(db, user_id, template_key, **kwargs)
    except Exception as e:
        logger.error(f"✗ {template_key} email to {user_id} failed: {e}")
        return {"ok": False, "error": str(e)}
    if not result.get("ok"):
        logger.warning(f"✗ {template_key} email to {user_id} not sent: {result.get('error')}")
    return result


def enroll_campaign(
    db: Client,
    user_id: str,
    campaign_key: str,
    context: Optional[dict] = None,
    start_at: Optional[datetime] = None,
) -> None:
    """Start (or restart) a learner at step 1 of a campaign.

    The first send is at ``start_at`` or after the first step's delay.

    Raises:
        EmailSendError: If the campaign has no steps
    """
    steps = get_campaign_steps(db, campaign_key)
    if not steps:
        raise EmailSendError(f"Campaign {campaign_key} has no steps")

    first_send = start_at or datetime.now(UTC) + timedelta(hours=steps[0].get("delay_hours") or 0)
    db.table("email_enrollments").upsert(
        {
            "user_id": user_id,
            "campaign_key": campaign_key,
            "status": "active",
            "current_step_index": 1,
            "enrolled_at": now_iso(),
            "next_send_at": first_send.isoformat(),
            "context": context or {},
            "updated_at": now_iso(),
        },
        on_conflict="user_id,campaign_key",
    ).execute()
    logger.info(f"Enrolled {user_id} in {campaign_key}, first send at {first_send.isoformat()}")


def stop_campaign(db: Client, user_id: str, campaign_key: str) -> None:
    db.table("email_enrollments").update(
        {"status": "stopped", "updated_at": now_iso()}
    ).eq("user_id", user_id).eq("campaign_key", campaign_key).execute()


def safe_campaign_call(action, db: Client, user_id: str, campaign_key: str, **kwargs) -> bool:
    """Enroll/stop without failing the caller; returns whether it worked."""
    try:
        action(db, user_id, campaign_key, **kwargs)
        return True
    except Exception as e:
        logger.error(f"✗ {action.__name__}({campaign_key}) for {user_id} failed: {e}")
        return False


def _set_enrollment(db: Client, enrollment_id: str, **fields) -> None:
    db.table("email_enrollments").update({**fields, "updated_at": now_iso()}).eq(
        "id", enrollment_id
    ).execute()


def _active_since(user: Optional[dict], enrolled_at: Any) -> bool:
    last = parse_timestamp((user or {}).get("last_learning_activity_at"))
    enrolled = parse_timestamp(enrolled_at)
    return bool(last and enrolled and last > enrolled)


def _stop_reason(db: Client, enrollment: dict, stop_conditions: dict) -> Optional[str]:
    user = get_user(db, enrollment["user_id"])
    if stop_conditions.get("stop_on_email_off") and not is_email_enabled(user):
        return "email_off"
    if stop_conditions.get("stop_on_paid") and user_has_paid_access(db, enrollment["user_id"]):
        return "paid"
    if stop_conditions.get("stop_on_activity") and _active_since(user, enrollment.get("enrolled_at")):
        return "activity"
    return None


def _advance(db: Client, enrollment: dict, step: dict, steps: list[dict]) -> None:
    next_index = (enrollment.get("current_step_index") or 0) + 1
    next_step = next((s for s in steps if s.get("step_index") == next_index), None)
    if next_step:
        _set_enrollment(
            db,
            enrollment["id"],
            current_step_index=next_index,
            next_send_at=add_hours(next_step.get("delay_hours") or 0),
        )
        return

    conditions = step.get("stop_conditions") or {}
    if conditions.get("repeat"):
        try:
            delay = float(conditions.get("repeat_delay_hours") or DEFAULT_REPEAT_DELAY_HOURS)
        except (TypeError, ValueError):
            delay = DEFAULT_REPEAT_DELAY_HOURS
        _set_enrollment(db, enrollment["id"], current_step_index=1, next_send_at=add_hours(delay))
    else:
        _set_enrollment(db, enrollment["id"], status="completed")


def run_dispatcher_once(
    db: Client, limit: int = 50, client: Optional[ResendClient] = None
) -> dict[str, int]:
    """Send every campaign step that is due, oldest first.

    Returns:
        Counts: processed, sent, stopped, skipped, failed
    """
    due = fetch_all(
        db.table("email_enrollments")
        .select("id, user_id, campaign_key, status, current_step_index, enrolled_at, next_send_at, context")
        .eq("status", "active")
        .lte("next_send_at", now_iso())
        .order("next_send_at")
        .limit(limit)
    )
    counts = {"processed": len(due), "sent": 0, "stopped": 0, "skipped": 0, "failed": 0}

    for enrollment in due:
        steps = get_campaign_steps(db, enrollment["campaign_key"])
        step = next(
            (s for s in steps if s.get("step_index") == enrollment.get("current_step_index")),
            None,
        )
        if step is None:
            _set_enrollment(db, enrollment["id"], status="completed")
            continue

        reason = _stop_reason(db, enrollment, step.get("stop_conditions") or {})
        if reason:
            _set_enrollment(db, enrollment["id"], status="stopped")
            counts["stopped"] += 1
            logger.info(f"Stopped {enrollment['campaign_key']} for {enrollment['user_id']}: {reason}")
            continue

        variables: dict[str, Any] = {
            **build_default_vars(db, enrollment["user_id"]),
            **(enrollment.get("context") or {}),
        }
        if step["template_key"] == WEEKLY_STATS_TEMPLATE:
            stats = compute_weekly_stats(db, enrollment["user_id"])
            lang = get_user_lang(get_user(db, enrollment["user_id"]))
            variables["weekly_lessons_completed"] = stats["weekly_lessons_completed"]
            variables["weekly_topics"] = stats["weekly_topics"] or NO_TOPICS_TEXT[lang]
            variables["total_words_learned"] = stats["total_words_learned"]

        result = send_template_email(
            db,
            enrollment["user_id"],
            step["template_key"],
            variables,
            campaign_key=enrollment["campaign_key"],
            campaign_step_index=step.get("step_index"),
            day_number=0,
            client=client,
        )
        if result.get("skipped"):
            counts["skipped"] += 1
        elif not result.get("ok"):
            counts["failed"] += 1
        else:
            counts["sent"] += 1

        _advance(db, enrollment, step, steps)

    logger.info(f"Dispatcher run: {counts}")
    return counts


def compute_weekly_stats(db: Client, user_id: str) -> dict:
    """Lessons completed in the last 7 days, their topics, and all words learned so far."""
    since = (datetime.now(UTC) - timedelta(days=7)).isoformat()
    weekly = fetch_all(
        db.table("user_progress")
        .select("lesson_id, day_number, status, completed_at")
        .eq("user_id", user_id)
        .eq("status", "completed")
        .gte("completed_at", since)
    )

    topics = ""
    weekly_ids = [row["lesson_id"] for row in weekly if row.get("lesson_id")]
    if weekly_ids:
        lang = get_user_lang(get_user(db, user_id))
        lessons = fetch_all(
            db.table("lessons").select("id, day_number, title_ru, title_en").in_("id", weekly_ids)
        )
        lessons.sort(key=lambda lesson: lesson.get("day_number") or 0)
        topics = "; ".join(
            f"Урок {lesson.get('day_number')}: {lesson.get(f'title_{lang}') or ''}"
            for lesson in lessons
        )

    completed_ids = [
        row["lesson_id"]
        for row in fetch_all(
            db.table("user_progress").select("lesson_id").eq("user_id", user_id).eq("status", "completed")
        )
        if row.get("lesson_id")
    ]
    total_words = 0
    if completed_ids:
        for lesson in fetch_all(
            db.table("lessons").select("id, yaml_content").in_("id", completed_ids)
        ):
            total_words += count_lesson_words(parse_yaml_content(lesson.get("yaml_content")))

    return {
        "weekly_lessons_completed": len(weekly),
        "weekly_topics": topics,
        "total_words_learned": total_words,
    }
