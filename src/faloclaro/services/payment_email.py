"""One-off payment reminder sent after the three free lessons."""

import logging
from typing import Optional

from faloclaro.constants import APP_URL
from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.utils.resend_client import ResendClient
from faloclaro.utils.supabase_client import Client, fetch_one, now_iso

logger = logging.getLogger(__name__)

PAYMENT_REMINDER_TYPE = "payment_reminder_lesson_3"

COPY = {
    "ru": {
        "subject": "Поздравляем! Вы завершили первые 3 урока",
        "heading": "Поздравляем! 🎉",
        "intro": "Мы видим, что вы завершили первые 3 урока курса FaloClaro. Надеемся, что вам понравилось!",
        "offer": "Если вы готовы продолжить обучение, то всего за €20 вы получите:",
        "benefits": [
            "Доступ ко всем 60 урокам курса",
            "Будущие обновления и новые материалы",
            "Пожизненный доступ",
        ],
        "cta": "Оплатить €20 и продолжить обучение",
        "cta_text": "Оплатить",
        "footer": "Если у вас есть вопросы, просто ответьте на это письмо.",
    },
    "en": {
        "subject": "Congratulations! You've completed the first 3 lessons",
        "heading": "Congratulations! 🎉",
        "intro": "We see that you've completed the first 3 lessons of the FaloClaro course. We hope you enjoyed them!",
        "offer": "If you're ready to continue learning, for just €20 you'll get:",
        "benefits": [
            "Access to all 60 course lessons",
            "Future updates and new materials",
            "Lifetime access",
        ],
        "cta": "Pay €20 and continue learning",
        "cta_text": "Pay now",
        "footer": "If you have any questions, just reply to this email.",
    },
    "pt": {
        "subject": "Parabéns! Você completou as primeiras 3 lições",
        "heading": "Parabéns! 🎉",
        "intro": "Vemos que você completou as primeiras 3 lições do curso FaloClaro. Esperamos que tenha gostado!",
        "offer": "Se você está pronto para continuar aprendendo, por apenas €20 você terá:",
        "benefits": [
            "Acesso a todas as 60 lições do curso",
            "Atualizações futuras e novos materiais",
            "Acesso vitalício",
        ],
        "cta": "Pagar €20 e continuar aprendendo",
        "cta_text": "Pagar",
        "footer": "Se você tiver alguma dúvida, basta responder a este e-mail.",
    },
}


def payment_url(token: Optional[str]) -> str:
    return f"{APP_URL}/pt/payment?day=4&token={token or ''}"


def build_payment_email(language: str, url: str) -> dict:
    copy = COPY.get(language, COPY["pt"])
    benefits_html = "".join(
        f'<li style="margin: 10px 0;">✓ {benefit}</li>' for benefit in copy["benefits"]
    )
    html = f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #f9fafb; padding: 30px; border-radius: 10px;">
      <h1 style="color: #059669; margin-bottom: 20px;">{copy["heading"]}</h1>
      <p>{copy["intro"]}</p>
      <p>{copy["offer"]}</p>
      <ul style="list-style: none; padding: 0;">{benefits_html}</ul>
      <div style="text-align: center; margin: 30px 0;">
        <a href="{url}" style="background-color: #059669; color: white; padding: 15px 30px; text-decoration: none; border-radius: 8px; font-weight: bold; display: inline-block;">{copy["cta"]}</a>
      </div>
      <p style="color: #6b7280; font-size: 14px; margin-top: 30px;">{copy["footer"]}</p>
    </div>
  </body>
</html>"""
    benefits_text = "\n".join(f"- {benefit}" for benefit in copy["benefits"])
    text = (
        f"{copy['heading'].rstrip(' 🎉')} {copy['intro']}\n\n"
        f"{copy['offer']}\n{benefits_text}\n\n"
        f"{copy['cta_text']}: {url}\n\n{copy['footer']}"
    )
    return {"subject": copy["subject"], "html": html, "text": text}


def send_payment_email(
    db: Client, client: ResendClient, user_id: str, token: Optional[str] = None
) -> dict:
    """Send the day-3 payment reminder once per learner.

    Returns:
        Response body; opted-out and repeat requests succeed without sending

    Raises:
        NotFoundError: Unknown learner
        ServiceError: Resend rejected the message (500)
    """
    user = fetch_one(db.table("subscription_users").select("*").eq("id", user_id))
    if not user:
        raise NotFoundError("User not found", success=False)

    if user.get("email_notifications_enabled") is False:
        return {"success": True, "skipped": True, "message": "Email notifications disabled"}

    already_sent = fetch_one(
        db.table("email_logs")
        .select("id")
        .eq("user_id", user_id)
        .eq("email_type", PAYMENT_REMINDER_TYPE)
    )
    if already_sent:
        return {"success": True, "message": "Email already sent"}

    email = build_payment_email(user.get("language_preference") or "ru", payment_url(token))
    success, metadata = client.send_email(
        to=user["email"], subject=email["subject"], html=email["html"], text=email["text"]
    )
    if not success:
        raise ServiceError(metadata.get("error") or "Failed to send email", 500, success=False)

    db.table("email_logs").insert(
        {
            "user_id": user_id,
            "email_type": PAYMENT_REMINDER_TYPE,
            "sent_at": now_iso(),
            "email_address": user["email"],
        }
    ).execute()
    logger.info(f"✓ Payment reminder sent to {user['email']}")
    return {"success": True, "messageId": metadata.get("id")}
