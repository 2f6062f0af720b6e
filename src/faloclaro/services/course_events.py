"""Emails and campaign changes triggered by learner activity."""

import logging

from faloclaro.constants import COURSE_LENGTH_DAYS
from faloclaro.services.access import (
    get_user_id_by_token,
    mark_learning_activity,
    user_has_paid_access,
)
from faloclaro.services.email_engine import (
    build_default_vars,
    compute_module_info,
    enroll_campaign,
    send_template_email,
    stop_campaign,
)
from faloclaro.services.errors import ServiceError
from faloclaro.utils.supabase_client import Client, fetch_all

logger = logging.getLogger(__name__)

INACTIVITY_CAMPAIGN = "campaign_neg_inactivity"
NO_PAYMENT_CAMPAIGN = "campaign_neg_no_payment_after_day3"
DAY3_TEMPLATE = "core_day3_congrats"
MODULE_COMPLETE_TEMPLATE = "core_module_complete"
COURSE_COMPLETE_TEMPLATE = "core_course_complete"
TRIAL_LAST_DAY = 3


def record_activity(db: Client, lesson_token: str) -> str:
    """Stamp learning activity and stop the inactivity reminders.

    Raises:
        ServiceError: If the token is unknown
    """
    user_id = mark_learning_activity(db, lesson_token)
    if not user_id:
        raise ServiceError("Invalid token")
    stop_campaign(db, user_id, INACTIVITY_CAMPAIGN)
    return user_id


def module_completed(db: Client, user_id: str, start_day: int, end_day: int) -> bool:
    rows = fetch_all(
        db.table("user_progress")
        .select("day_number")
        .eq("user_id", user_id)
        .eq("status", "completed")
        .gte("day_number", start_day)
        .lte("day_number", end_day)
    )
    done = {int(row["day_number"]) for row in rows if row.get("day_number") is not None}
    return all(day in done for day in range(start_day, end_day + 1))


def on_lesson_completed(db: Client, lesson_token: str, day_number: int) -> dict:
    """React to a finished lesson.

    Day 3 sends the congratulation email and starts payment reminders for
    unpaid learners. The last day of a module sends the module email when
    every day of the module is completed, and day 60 also sends the course
    email.

    Returns:
        Template keys that were attempted
    """
    user_id = get_user_id_by_token(db, lesson_token)
    if not user_id:
        raise ServiceError("Invalid token", success=False)

    stop_campaign(db, user_id, INACTIVITY_CAMPAIGN)
    variables = build_default_vars(db, user_id)
    sent: list[str] = []

    if day_number == TRIAL_LAST_DAY:
        if user_has_paid_access(db, user_id):
            stop_campaign(db, user_id, NO_PAYMENT_CAMPAIGN)
        else:
            send_template_email(db, user_id, DAY3_TEMPLATE, variables, day_number=TRIAL_LAST_DAY)
            sent.append(DAY3_TEMPLATE)
            enroll_campaign(db, user_id, NO_PAYMENT_CAMPAIGN, context={"day_number": TRIAL_LAST_DAY})

    module = compute_module_info(day_number)
    if module and day_number == module["end_day"]:
        if module_completed(db, user_id, module["start_day"], module["end_day"]):
            send_template_email(
                db,
                user_id,
                MODULE_COMPLETE_TEMPLATE,
                {
                    **variables,
                    "module_label_ru": module["module_label_ru"],
                    "module_label_en": module["module_label_en"],
                },
                day_number=day_number,
            )
            sent.append(MODULE_COMPLETE_TEMPLATE)
            if day_number == COURSE_LENGTH_DAYS:
                send_template_email(
                    db, user_id, COURSE_COMPLETE_TEMPLATE, variables, day_number=day_number
                )
                sent.append(COURSE_COMPLETE_TEMPLATE)

    logger.info(f"Lesson {day_number} completed by {user_id}; emails: {sent or 'none'}")
    return {"user_id": user_id, "emails": sent}
