"""Daily lesson email carrying the learner's access link."""

import logging
from typing import Optional

from faloclaro.constants import APP_URL, LESSON_EMAIL_TOKEN_DAYS
from faloclaro.lesson.content import parse_yaml_content
from faloclaro.services.access import get_or_create_token
from faloclaro.services.email_engine import escape_html
from faloclaro.utils.resend_client import ResendClient, get_resend_client
from faloclaro.utils.supabase_client import Client, fetch_one, now_iso

logger = logging.getLogger(__name__)

COPY = {
    "ru": {
        "subject": "День {day} из 60 — новый урок",
        "preview": "Короткий урок португальского",
        "greeting": "Привет!",
        "message": "Сегодня у тебя новый урок: {title}",
        "cta": "Начать урок",
        "footer": "Удачи в изучении португальского!",
    },
    "en": {
        "subject": "Day {day} of 60 — new lesson",
        "preview": "Short Portuguese lesson",
        "greeting": "Hello!",
        "message": "Today you have a new lesson: {title}",
        "cta": "Start lesson",
        "footer": "Good luck learning Portuguese!",
    },
    "pt": {
        "subject": "Dia {day} de 60 — nova lição",
        "preview": "Lição curta de português",
        "greeting": "Olá!",
        "message": "Hoje tens uma nova lição: {title}",
        "cta": "Começar lição",
        "footer": "Boa sorte a aprender português!",
    },
}


def lesson_url(day_number: int, token: str) -> str:
    return f"{APP_URL}/pt/lesson/{day_number}/{token}"


def _day_title(day: dict, language: str) -> str:
    title = day.get("title")
    if isinstance(title, dict):
        return title.get(language) or title.get("ru") or title.get("en") or ""
    if language in ("en", "pt"):
        return day.get(f"title_{language}") or title or ""
    return title or ""


def build_lesson_email(lesson: dict, language: str, url: str) -> dict:
    """Subject, html and text of a lesson email; unknown languages get English."""
    content = parse_yaml_content(lesson.get("yaml_content"))
    day = content.get("day") if isinstance(content.get("day"), dict) else {}
    overrides = content.get("email") if isinstance(content.get("email"), dict) else {}
    copy = COPY.get(language, COPY["en"])

    subject = overrides.get("subject") or copy["subject"].format(day=lesson.get("day_number"))
    preview = overrides.get("preview") or copy["preview"]
    message = copy["message"].format(title=_day_title(day, language))

    html = f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="color: #2563eb;">{copy["greeting"]}</h1>
    <p>{escape_html(message)}</p>
    <p style="color: #666;">{escape_html(preview)}</p>
    <div style="margin: 30px 0;">
      <a href="{escape_html(url)}" style="background-color: #2563eb; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">{copy["cta"]}</a>
    </div>
    <p style="color: #999; font-size: 12px; margin-top: 30px;">{copy["footer"]}</p>
  </body>
</html>"""
    text = "\n\n".join(
        [copy["greeting"], message, preview, f"{copy['cta']}: {url}", copy["footer"]]
    )
    return {"subject": subject, "html": html, "text": text}


def send_lesson_email(
    db: Client,
    user_id: str,
    lesson_id: str,
    day_number: int,
    client: Optional[ResendClient] = None,
) -> dict:
    """Email a learner the link to one lesson, issuing a 30-day token if needed.

    Returns:
        ``{"success": True, "emailId", "lessonUrl"}`` or ``{"success": False, "error"}``
    """
    user = fetch_one(
        db.table("subscription_users").select("email, language_preference").eq("id", user_id)
    )
    if not user:
        return {"success": False, "error": "User not found"}

    lesson = fetch_one(db.table("lessons").select("*").eq("id", lesson_id))
    if not lesson:
        return {"success": False, "error": "Lesson not found"}

    token = get_or_create_token(db, user_id, lesson_id, LESSON_EMAIL_TOKEN_DAYS)
    url = lesson_url(day_number, token)

    client = client or get_resend_client()
    if client is None:
        return {"success": False, "error": "Resend not configured"}

    email = build_lesson_email(lesson, user.get("language_preference") or "ru", url)
    success, metadata = client.send_email(
        to=user["email"], subject=email["subject"], html=email["html"], text=email["text"]
    )
    if not success:
        return {"success": False, "error": metadata.get("error") or "Failed to send email"}

    db.table("email_logs").insert(
        {
            "user_id": user_id,
            "lesson_id": lesson_id,
            "day_number": day_number,
            "email_type": "lesson",
            "status": "sent",
            "sent_at": now_iso(),
        }
    ).execute()
    logger.info(f"✓ Lesson {day_number} email sent to {user['email']}")
    return {"success": True, "emailId": metadata.get("id"), "lessonUrl": url}
