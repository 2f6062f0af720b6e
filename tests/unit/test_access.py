"""Unit tests for token-gated lesson access and progress."""

import pytest
from fakes import FakeSupabase

from faloclaro.services.access import (
    AccessError,
    check_lesson_access,
    check_token,
    complete_task,
    generate_token,
    get_or_create_token,
    grant_lesson_tokens,
    has_paid_access,
    is_lesson_unlocked,
    list_course,
    mark_learning_activity,
)
from faloclaro.services.errors import NotFoundError
from faloclaro.utils.supabase_client import add_days


def _lessons(count=5, tasks_per_lesson=5):
    return [
        {
            "id": f"lesson-{day}",
            "day_number": day,
            "title_ru": f"День {day}",
            "yaml_content": {
                "tasks": [{"task_id": i, "type": "vocabulary" if i == 1 else "rules"} for i in range(1, tasks_per_lesson + 1)]
            },
        }
        for day in range(1, count + 1)
    ]


class TestPaidAccess:
    def test_paid_at_or_status(self):
        assert has_paid_access({"status": "trial", "paid_at": "2026-01-01T00:00:00+00:00"})
        assert has_paid_access({"status": "active"})
        assert has_paid_access({"status": "paid"})
        assert not has_paid_access({"status": "trial"})
        assert not has_paid_access(None)

    def test_first_three_days_are_free(self):
        assert is_lesson_unlocked(3, None)
        assert not is_lesson_unlocked(4, {"status": "trial"})
        assert is_lesson_unlocked(4, {"status": "paid"})


class TestTokens:
    def test_generate_token_is_hex(self):
        token = generate_token()
        assert len(token) == 64
        int(token, 16)

    def test_unexpired_token_reused(self):
        db = FakeSupabase()

        first = get_or_create_token(db, "u1", "lesson-1", valid_days=30)
        second = get_or_create_token(db, "u1", "lesson-1", valid_days=30)

        assert first == second
        assert len(db.rows("lesson_access_tokens")) == 1

    def test_expired_token_replaced(self):
        db = FakeSupabase(
            {
                "lesson_access_tokens": [
                    {"user_id": "u1", "lesson_id": "lesson-1", "token": "old", "expires_at": add_days(-1)}
                ]
            }
        )

        token = get_or_create_token(db, "u1", "lesson-1", valid_days=30)

        assert token != "old"
        assert len(db.rows("lesson_access_tokens")) == 2

    def test_grant_lesson_tokens_keyed_by_day(self):
        db = FakeSupabase()

        tokens = grant_lesson_tokens(db, "u1", _lessons(3)[::-1], valid_days=365)

        assert list(tokens) == [1, 2, 3]
        assert len(set(tokens.values())) == 3

    def test_check_token(self):
        db = FakeSupabase(
            {
                "lessons": [{"id": "lesson-2", "day_number": 2}],
                "lesson_access_tokens": [
                    {"user_id": "u1", "lesson_id": "lesson-2", "token": "t1", "expires_at": add_days(-1)}
                ],
            }
        )

        assert check_token(db, "missing") == {"ok": True, "exists": False}
        assert check_token(db, "t1") == {"ok": True, "exists": True, "isExpired": True, "day": 2}


class TestLessonAccess:
    @pytest.fixture
    def db(self):
        return FakeSupabase(
            {
                "lessons": _lessons(5),
                "subscription_users": [{"id": "u1", "email": "a@b.pt"}],
                "subscriptions": [{"user_id": "u1", "status": "trial"}],
                "lesson_access_tokens": [
                    {"user_id": "u1", "lesson_id": "lesson-1", "token": "good", "expires_at": add_days(10)},
                    {"user_id": "u1", "lesson_id": "lesson-1", "token": "stale", "expires_at": add_days(-1)},
                ],
            }
        )

    def test_unknown_token(self, db):
        with pytest.raises(AccessError) as exc_info:
            check_lesson_access(db, "nope", 1)
        assert exc_info.value.reason == "not_found"
        assert exc_info.value.status_code == 404

    def test_expired_token(self, db):
        with pytest.raises(AccessError) as exc_info:
            check_lesson_access(db, "stale", 1)
        assert exc_info.value.status_code == 403

    def test_missing_lesson(self, db):
        with pytest.raises(AccessError) as exc_info:
            check_lesson_access(db, "good", 42)
        assert exc_info.value.reason == "lesson_not_found"

    def test_trial_learner_blocked_after_day_three(self, db):
        with pytest.raises(AccessError) as exc_info:
            check_lesson_access(db, "good", 4)
        assert exc_info.value.status_code == 402
        assert exc_info.value.extra == {"reason": "payment_required"}

    def test_token_opens_any_free_day(self, db):
        access = check_lesson_access(db, "good", 3)

        assert access.user_id == "u1"
        assert access.lesson["id"] == "lesson-3"
        assert access.progress["status"] == "not_started"
        assert access.progress["task_progress"] == []

    def test_paid_learner_opens_later_days(self, db):
        db.tables["subscriptions"][0]["paid_at"] = "2026-01-01T00:00:00+00:00"

        access = check_lesson_access(db, "good", 5)

        assert access.lesson["day_number"] == 5

    def test_progress_created_once(self, db):
        check_lesson_access(db, "good", 1)
        check_lesson_access(db, "good", 1)

        assert len(db.rows("user_progress")) == 1


class TestCompleteTask:
    @pytest.fixture
    def db(self):
        return FakeSupabase(
            {
                "lessons": _lessons(1, tasks_per_lesson=2),
                "lesson_access_tokens": [{"user_id": "u1", "lesson_id": "lesson-1", "token": "t", "expires_at": add_days(1)}],
            }
        )

    def test_progress_rolls_forward(self, db):
        access = check_lesson_access(db, "t", 1)

        progress = complete_task(db, access, 1, {"score": 3})

        assert progress["status"] == "in_progress"
        assert progress["tasks_completed"] == 1
        assert progress["completed_at"] is None
        assert db.rows("task_progress")[0]["task_type"] == "vocabulary"

        access = check_lesson_access(db, "t", 1)
        progress = complete_task(db, access, 2)

        assert progress["status"] == "completed"
        assert progress["tasks_completed"] == 2
        assert progress["completed_at"]
        assert db.rows("user_progress")[0]["status"] == "completed"

    def test_unknown_task_rejected(self, db):
        access = check_lesson_access(db, "t", 1)

        with pytest.raises(NotFoundError):
            complete_task(db, access, 9)

        assert db.rows("task_progress") == []
        assert db.rows("user_progress")[0]["status"] == "not_started"

    def test_stray_rows_do_not_complete_lesson(self, db):
        access = check_lesson_access(db, "t", 1)
        db.tables["task_progress"] = [
            db.new_row("task_progress", {"user_progress_id": access.progress["id"], "task_id": 7, "status": "completed"})
        ]

        access = check_lesson_access(db, "t", 1)
        progress = complete_task(db, access, 1)

        assert progress["tasks_completed"] == 1
        assert progress["status"] == "in_progress"

    def test_replay_does_not_double_count(self, db):
        access = check_lesson_access(db, "t", 1)
        complete_task(db, access, 1, {"attempt": 1})

        access = check_lesson_access(db, "t", 1)
        progress = complete_task(db, access, 1, {"attempt": 2})

        assert progress["tasks_completed"] == 1
        assert len(db.rows("task_progress")) == 1
        assert db.rows("task_progress")[0]["completion_data"] == {"attempt": 2}


class TestCourseOverview:
    def test_list_course_marks_locks_and_progress(self):
        db = FakeSupabase(
            {
                "lessons": _lessons(5),
                "subscriptions": [{"user_id": "u1", "status": "trial"}],
                "user_progress": [{"user_id": "u1", "lesson_id": "lesson-2", "status": "completed"}],
                "lesson_access_tokens": [{"user_id": "u1", "lesson_id": "lesson-1", "token": "t", "expires_at": add_days(1)}],
            }
        )

        course = list_course(db, "t")

        assert course["has_paid_access"] is False
        assert course["subscription_status"] == "trial"
        assert [lesson["is_unlocked"] for lesson in course["lessons"]] == [True, True, True, False, False]
        assert course["lessons"][1]["progress_status"] == "completed"
        assert course["lessons"][0]["progress_status"] == "not_started"

    def test_mark_learning_activity(self):
        db = FakeSupabase(
            {
                "subscription_users": [{"id": "u1"}],
                "lesson_access_tokens": [{"user_id": "u1", "token": "t"}],
            }
        )

        assert mark_learning_activity(db, "t") == "u1"
        assert db.rows("subscription_users")[0]["last_learning_activity_at"]
        assert mark_learning_activity(db, "unknown") is None
