"""Unit tests for lesson, payment and course-event emails."""

from unittest.mock import MagicMock

import pytest
from fakes import FakeSupabase

from faloclaro.services.course_events import on_lesson_completed, record_activity
from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.services.lesson_email import build_lesson_email, send_lesson_email
from faloclaro.services.payment_email import PAYMENT_REMINDER_TYPE, build_payment_email, send_payment_email
from faloclaro.utils.supabase_client import add_days


@pytest.fixture
def resend():
    client = MagicMock()
    client.send_email.return_value = (True, {"id": "msg-1"})
    return client


class TestLessonEmail:
    def test_content_overrides_and_title(self):
        lesson = {
            "day_number": 6,
            "yaml_content": {
                "day": {"title": {"ru": "Кафе", "en": "Cafe"}},
                "email": {"preview": "Custom preview"},
            },
        }

        email = build_lesson_email(lesson, "en", "https://app/pt/lesson/6/t")

        assert email["subject"] == "Day 6 of 60 — new lesson"
        assert "Today you have a new lesson: Cafe" in email["text"]
        assert "Custom preview" in email["html"]

    def test_unknown_language_uses_english(self):
        email = build_lesson_email({"day_number": 2, "yaml_content": {}}, "de", "u")
        assert email["subject"].startswith("Day 2")

    def test_send_issues_token_and_logs(self, resend):
        db = FakeSupabase(
            {
                "subscription_users": [{"id": "u1", "email": "a@x.pt", "language_preference": "ru"}],
                "lessons": [{"id": "l2", "day_number": 2, "yaml_content": {}}],
            }
        )

        result = send_lesson_email(db, "u1", "l2", 2, client=resend)

        token = db.rows("lesson_access_tokens")[0]["token"]
        assert result["success"] is True
        assert result["lessonUrl"].endswith(f"/pt/lesson/2/{token}")
        assert db.rows("email_logs")[0]["email_type"] == "lesson"

    def test_missing_lesson(self, resend):
        db = FakeSupabase({"subscription_users": [{"id": "u1", "email": "a@x.pt"}]})

        assert send_lesson_email(db, "u1", "nope", 2, client=resend) == {
            "success": False,
            "error": "Lesson not found",
        }


class TestPaymentEmail:
    def test_copy_falls_back_to_portuguese(self):
        email = build_payment_email("de", "https://pay")
        assert email["subject"].startswith("Parabéns")
        assert "Pagar: https://pay" in email["text"]

    def test_sent_once(self, resend):
        db = FakeSupabase({"subscription_users": [{"id": "u1", "email": "a@x.pt", "language_preference": "en"}]})

        first = send_payment_email(db, resend, "u1", "tok")
        second = send_payment_email(db, resend, "u1", "tok")

        assert first == {"success": True, "messageId": "msg-1"}
        assert second == {"success": True, "message": "Email already sent"}
        resend.send_email.assert_called_once()
        assert "day=4&token=tok" in resend.send_email.call_args.kwargs["text"]
        assert db.rows("email_logs")[0]["email_type"] == PAYMENT_REMINDER_TYPE

    def test_opted_out_and_unknown(self, resend):
        db = FakeSupabase({"subscription_users": [{"id": "u1", "email": "a@x.pt", "email_notifications_enabled": False}]})

        assert send_payment_email(db, resend, "u1")["skipped"] is True
        with pytest.raises(NotFoundError) as exc_info:
            send_payment_email(db, resend, "u2")
        assert exc_info.value.extra == {"success": False}
        resend.send_email.assert_not_called()

    def test_delivery_failure(self, resend):
        resend.send_email.return_value = (False, {"error": "bounced"})
        db = FakeSupabase({"subscription_users": [{"id": "u1", "email": "a@x.pt"}]})

        with pytest.raises(ServiceError, match="bounced") as exc_info:
            send_payment_email(db, resend, "u1")

        assert exc_info.value.status_code == 500
        assert db.rows("email_logs") == []


class TestCourseEvents:
    @pytest.fixture
    def db(self):
        return FakeSupabase(
            {
                "subscription_users": [{"id": "u1", "email": "a@x.pt"}],
                "subscriptions": [{"user_id": "u1", "status": "trial"}],
                "lesson_access_tokens": [{"user_id": "u1", "token": "t", "expires_at": add_days(5)}],
                "email_campaign_steps": [
                    {"campaign_key": "campaign_neg_no_payment_after_day3", "step_index": 1,
                     "template_key": "pay", "delay_hours": 24},
                ],
                "email_enrollments": [
                    {"user_id": "u1", "campaign_key": "campaign_neg_inactivity", "status": "active"},
                ],
            }
        )

    def test_record_activity_stops_inactivity_campaign(self, db):
        assert record_activity(db, "t") == "u1"
        assert db.rows("email_enrollments")[0]["status"] == "stopped"

    def test_record_activity_unknown_token(self, db):
        with pytest.raises(ServiceError, match="Invalid token"):
            record_activity(db, "nope")

    def test_day_three_unpaid(self, db):
        result = on_lesson_completed(db, "t", 3)

        assert result["emails"] == ["core_day3_congrats"]
        enrollments = {row["campaign_key"]: row for row in db.rows("email_enrollments")}
        assert enrollments["campaign_neg_inactivity"]["status"] == "stopped"
        assert enrollments["campaign_neg_no_payment_after_day3"]["status"] == "active"
        assert enrollments["campaign_neg_no_payment_after_day3"]["context"] == {"day_number": 3}

    def test_day_three_paid(self, db):
        db.tables["subscriptions"][0]["status"] = "paid"

        assert on_lesson_completed(db, "t", 3)["emails"] == []

    def test_module_complete_requires_every_day(self, db):
        db.tables["user_progress"] = [
            db.new_row("user_progress", {"user_id": "u1", "day_number": day, "status": "completed"})
            for day in range(1, 14)
        ]
        assert on_lesson_completed(db, "t", 14)["emails"] == []

        db.tables["user_progress"].append(
            db.new_row("user_progress", {"user_id": "u1", "day_number": 14, "status": "completed"})
        )
        assert on_lesson_completed(db, "t", 14)["emails"] == ["core_module_complete"]
