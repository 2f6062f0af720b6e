"""Unit tests for levels, methodologies and learner administration."""

import json
from unittest.mock import patch

import pytest
from fakes import FakeSupabase

from faloclaro.models.lesson import LevelCreate, LevelUpdate
from faloclaro.services.admin_content import (
    create_level,
    delete_level,
    list_levels,
    update_level,
    update_methodology,
)
from faloclaro.services.errors import NotFoundError, ServiceError
from faloclaro.services.learners import delete_user, invite, revoke


class TestLevels:
    def test_create_defaults_order_to_number(self):
        db = FakeSupabase()

        level = create_level(db, LevelCreate(level_number=2, name_ru="Основы", name_en="Basics", description_ru=""))

        assert level["order_index"] == 2
        assert level["description_ru"] is None
        assert [row["level_number"] for row in list_levels(db)] == [2]

    def test_create_validation(self):
        db = FakeSupabase({"levels": [{"level_number": 1, "name_ru": "A", "name_en": "A"}]})

        with pytest.raises(ServiceError, match="are required"):
            create_level(db, LevelCreate(level_number=3, name_ru="X"))
        with pytest.raises(ServiceError, match="already exists"):
            create_level(db, LevelCreate(level_number=1, name_ru="X", name_en="X"))

    def test_update_keeps_number(self):
        db = FakeSupabase({"levels": [{"id": "v1", "level_number": 1, "name_en": "Old"}]})

        level = update_level(db, "v1", LevelUpdate(level_number=9, name_en="New"))

        assert level["level_number"] == 1
        assert level["name_en"] == "New"
        with pytest.raises(NotFoundError):
            update_level(db, "missing", LevelUpdate(name_en="x"))

    def test_delete_blocked_by_lessons(self):
        db = FakeSupabase(
            {"levels": [{"id": "v1"}, {"id": "v2"}], "lessons": [{"id": "l1", "level_id": "v1"}]}
        )

        with pytest.raises(ServiceError, match="contains lessons"):
            delete_level(db, "v1")
        delete_level(db, "v2")

        assert [row["id"] for row in db.rows("levels")] == ["v1"]


class TestMethodologies:
    def test_json_content_stored_as_text(self):
        db = FakeSupabase({"admin_methodologies": [{"type": "vocabulary", "content": "{}"}]})

        update_methodology(db, "vocabulary", {"used_words": ["olá"]})

        rows = db.rows("admin_methodologies")
        assert len(rows) == 1
        assert json.loads(rows[0]["content"]) == {"used_words": ["olá"]}

    def test_rejects_unknown_type(self):
        with pytest.raises(ServiceError, match="Unknown methodology type"):
            update_methodology(FakeSupabase(), "grammar", "text")
        with pytest.raises(ServiceError, match="type and content are required"):
            update_methodology(FakeSupabase(), "course", None)


class TestLearnerAdmin:
    @pytest.fixture
    def db(self):
        return FakeSupabase(
            {
                "subscription_users": [{"id": "u1", "email": "a@x.pt"}],
                "subscriptions": [{"user_id": "u1", "status": "paid", "paid_at": "2026-01-01"}],
                "lessons": [
                    {"id": "l1", "day_number": 1},
                    {"id": "l2", "day_number": 2},
                    {"id": "l5", "day_number": 5},
                ],
                "lesson_access_tokens": [
                    {"user_id": "u1", "lesson_id": "l1", "token": "a"},
                    {"user_id": "u1", "lesson_id": "l5", "token": "b"},
                ],
                "user_progress": [{"id": "p1", "user_id": "u1", "lesson_id": "l1"}],
                "task_progress": [{"user_progress_id": "p1", "task_id": 1}],
            }
        )

    @patch("faloclaro.services.learners.safe_send_template_email")
    def test_revoke_returns_to_trial(self, mock_send, db):
        revoke(db, "u1")

        subscription = db.rows("subscriptions")[0]
        assert subscription["status"] == "trial"
        assert subscription["paid_at"] is None
        assert [row["token"] for row in db.rows("lesson_access_tokens")] == ["a"]
        mock_send.assert_called_once()

    @patch("faloclaro.services.learners.safe_send_template_email", return_value={"ok": True})
    def test_invite_issues_free_tokens(self, mock_send, db):
        db.tables["lesson_access_tokens"] = []

        invite(db, "u1")

        assert {row["lesson_id"] for row in db.rows("lesson_access_tokens")} == {"l1", "l2"}
        assert mock_send.call_args.kwargs["day_number"] == 1

    @patch("faloclaro.services.learners.safe_send_template_email", return_value={"ok": False})
    def test_invite_failure(self, mock_send, db):
        with pytest.raises(ServiceError) as exc_info:
            invite(db, "u1")
        assert exc_info.value.status_code == 500

    def test_delete_user_cascades(self, db):
        delete_user(db, "u1")

        for table in ("task_progress", "user_progress", "lesson_access_tokens", "subscriptions"):
            assert db.rows(table) == []
