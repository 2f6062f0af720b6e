"""Unit tests for admin stats, payments and email template management."""

from unittest.mock import MagicMock

import pytest
from fakes import FakeSupabase

from faloclaro.services.admin_reports import (
    create_template,
    list_email_logs,
    list_payments,
    send_test_email,
    update_template,
    user_stats,
)
from faloclaro.services.errors import NotFoundError, ServiceError


class TestUserStats:
    def test_progress_per_lesson(self):
        db = FakeSupabase(
            {
                "lessons": [
                    {"id": "l1", "day_number": 1, "yaml_content": {"tasks": [{"task_id": 1}, {"task_id": 2}]}},
                    {"id": "l2", "day_number": 2, "yaml_content": None},
                ],
                "user_progress": [{"id": "p1", "user_id": "u1", "lesson_id": "l1", "status": "in_progress"}],
                "task_progress": [
                    {"user_progress_id": "p1", "task_id": 1, "status": "completed"},
                    {"user_progress_id": "p1", "task_id": 2, "status": "in_progress"},
                ],
            }
        )

        stats = user_stats(db, "u1")

        assert stats["totalLessons"] == 2
        assert stats["startedLessons"] == 1
        assert stats["completedLessons"] == 0
        first, second = stats["lessons"]
        assert (first["completed_tasks"], first["total_tasks"]) == (1, 2)
        assert second["status"] == "not_started"
        assert second["total_tasks"] == 5

    def test_requires_user(self):
        with pytest.raises(ServiceError, match="User ID is required"):
            user_stats(FakeSupabase(), None)


class TestPayments:
    def test_only_paid_with_email(self):
        db = FakeSupabase(
            {
                "subscription_users": [{"id": "u1", "email": "a@x.pt"}],
                "subscriptions": [
                    {"id": "s1", "user_id": "u1", "status": "paid", "amount": 20},
                    {"id": "s2", "user_id": "u1", "status": "trial"},
                ],
            }
        )

        payments = list_payments(db)

        assert [p["id"] for p in payments] == ["s1"]
        assert payments[0]["user_email"] == "a@x.pt"
        assert payments[0]["currency"] == "EUR"


class TestTemplates:
    def test_create_defaults(self):
        db = FakeSupabase()

        create_template(db, {"key": " welcome ", "name": "Welcome", "subject_ru": "Привет"})

        row = db.rows("email_templates")[0]
        assert row["key"] == "welcome"
        assert row["category"] == "core"
        assert row["is_active"] is True
        assert row["cta_enabled"] is False

    def test_create_requires_key_and_name(self):
        with pytest.raises(ServiceError) as exc_info:
            create_template(FakeSupabase(), {"key": "x"})
        assert exc_info.value.extra == {"success": False}

    def test_update_only_editable_fields(self):
        db = FakeSupabase({"email_templates": [{"key": "welcome", "name": "Old"}]})

        update_template(db, "welcome", {"name": "New", "key": "hijack", "unknown": 1})

        row = db.rows("email_templates")[0]
        assert row["name"] == "New"
        assert row["key"] == "welcome"
        assert "unknown" not in row


class TestEmailLogs:
    def test_filters_and_email_join(self):
        db = FakeSupabase(
            {
                "subscription_users": [{"id": "u1", "email": "Ana@x.pt"}, {"id": "u2", "email": "bo@y.pt"}],
                "email_logs": [
                    {"user_id": "u1", "template_key": "welcome", "sent_at": "2026-01-02"},
                    {"user_id": "u2", "template_key": "welcome", "sent_at": "2026-01-03"},
                    {"user_id": "u1", "template_key": "pay", "sent_at": "2026-01-01"},
                ],
            }
        )

        rows = list_email_logs(db, email="ana", template_key="welcome")

        assert len(rows) == 1
        assert rows[0]["email"] == "Ana@x.pt"
        assert [r["sent_at"] for r in list_email_logs(db, limit=2)] == ["2026-01-03", "2026-01-02"]


class TestSendTestEmail:
    @pytest.fixture
    def db(self):
        return FakeSupabase(
            {
                "email_templates": [
                    {"key": "welcome", "subject_en": "Hi {{total_words_learned}}", "body_en": "Body"},
                ]
            }
        )

    def test_sends_preview(self, db):
        client = MagicMock()
        client.send_email.return_value = (True, {"id": "m"})

        send_test_email(db, "me@x.pt", "welcome", lang="en", client=client)

        assert client.send_email.call_args.kwargs["subject"] == "[TEST] Hi 120"

    def test_unknown_template(self, db):
        with pytest.raises(NotFoundError):
            send_test_email(db, "me@x.pt", "nope", client=MagicMock())

    def test_bad_recipient(self, db):
        with pytest.raises(ServiceError, match="to and templateKey are required"):
            send_test_email(db, "not-an-email", "welcome", client=MagicMock())

    def test_delivery_failure(self, db):
        client = MagicMock()
        client.send_email.return_value = (False, {"error": "rejected"})

        with pytest.raises(ServiceError) as exc_info:
            send_test_email(db, "me@x.pt", "welcome", client=client)

        assert exc_info.value.status_code == 500
