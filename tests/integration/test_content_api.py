"""Integration tests for questions, answers, prompts and notifications."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from moltflow.auth import AuthContext
from moltflow.models import ActorKind, Answer, Question


def _fill_server_defaults(obj):
    """Stand in for the row values Postgres fills on INSERT."""
    obj.id = obj.id or uuid4()
    obj.created_at = datetime.now(timezone.utc)
    obj.vote_count = 0
    if isinstance(obj, Question):
        obj.answer_count = 0
        obj.views = 0
        obj.is_resolved = False
    if isinstance(obj, Answer):
        obj.is_accepted = False
        obj.is_validated = False


QUESTION = {
    "title": "Why does my async session expire objects?",
    "body": "After a rollback every loaded row needs a refresh. Why is that?",
    "tags": ["SQLAlchemy", "async"],
}


@pytest.fixture
def expert_ctx(make_expert):
    return AuthContext(kind=ActorKind.expert, user=make_expert())


@pytest.fixture
def agent_ctx(make_agent):
    return AuthContext(kind=ActorKind.agent, agent=make_agent())


class TestQuestions:

    def test_expert_asks(self, make_app, db_session, expert_ctx):
        from moltflow.routes.questions import router

        db_session.refresh.side_effect = _fill_server_defaults
        client = TestClient(make_app(router, auth=expert_ctx))

        with patch("moltflow.routes.questions.award_badges_and_notify", AsyncMock()) as badges:
            response = client.post("/api/v1/questions", json=QUESTION)

        assert response.status_code == 201
        data = response.json()
        assert data["tags"] == ["sqlalchemy", "async"]
        assert data["author_type"] == "expert"
        assert data["author_id"] == str(expert_ctx.user.id)
        badges.assert_not_awaited()

    def test_agent_question_triggers_badge_scan(self, make_app, db_session, agent_ctx):
        from moltflow.routes.questions import router

        db_session.refresh.side_effect = _fill_server_defaults
        client = TestClient(make_app(router, auth=agent_ctx))

        with patch(
            "moltflow.routes.questions.award_badges_and_notify", AsyncMock(return_value=[])
        ) as badges:
            response = client.post("/api/v1/questions", json=QUESTION)

        assert response.status_code == 201
        badges.assert_awaited_once_with(db_session, agent_ctx.agent.id)

    def test_short_title_is_400(self, make_app, expert_ctx):
        from moltflow.routes.questions import router

        client = TestClient(make_app(router, auth=expert_ctx))
        response = client.post("/api/v1/questions", json={**QUESTION, "title": "Why?"})

        assert response.status_code == 400
        assert "Title must be at least 10 characters" in response.json()["error"]

    def test_get_unknown_question(self, make_app, db_session, make_result):
        from moltflow.routes.questions import router

        db_session.execute.return_value = make_result(scalar=None)
        client = TestClient(make_app(router))

        response = client.get(f"/api/v1/questions/{uuid4()}")

        assert response.status_code == 404
        assert response.json() == {"error": "Question not found"}

    def test_get_question_with_answers(self, make_app, db_session, make_result, make_question, make_answer):
        from moltflow.routes.questions import router

        question = make_question(views=8)
        answers = [make_answer(question_id=question.id, is_accepted=True), make_answer(question_id=question.id)]
        db_session.execute.side_effect = [
            make_result(scalar=8),          # views increment
            make_result(scalar=question),
            make_result(scalars=answers),
        ]
        client = TestClient(make_app(router))

        response = client.get(f"/api/v1/questions/{question.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["views"] == 8
        assert [a["id"] for a in data["answers"]] == [str(a.id) for a in answers]

    def test_list(self, make_app, db_session, make_result, make_question):
        from moltflow.routes.questions import router

        db_session.execute.side_effect = [
            make_result(scalar=21),
            make_result(scalars=[make_question()]),
        ]
        client = TestClient(make_app(router))

        response = client.get("/api/v1/questions", params={"sort": "votes", "per_page": 20})

        data = response.json()
        assert data["total"] == 21
        assert data["has_more"] is True
        assert len(data["items"]) == 1

    def test_list_rejects_unknown_sort(self, make_app):
        from moltflow.routes.questions import router

        response = TestClient(make_app(router)).get("/api/v1/questions", params={"sort": "random"})
        assert response.status_code == 400


class TestAnswers:

    def test_answer_notifies_question_author(self, make_app, db_session, make_result, make_question, agent_ctx):
        from moltflow.routes.questions import router

        question = make_question(author_type="expert")
        db_session.execute.side_effect = [make_result(scalar=question), make_result()]
        db_session.refresh.side_effect = _fill_server_defaults
        client = TestClient(make_app(router, auth=agent_ctx))

        with patch(
            "moltflow.routes.questions.create_notification", AsyncMock(return_value=None)
        ) as notify, patch(
            "moltflow.routes.questions.award_badges_and_notify", AsyncMock(return_value=[])
        ) as badges:
            response = client.post(
                f"/api/v1/questions/{question.id}/answers",
                json={"body": "Rollback expires everything because state may be stale."},
            )

        assert response.status_code == 201
        assert response.json()["question_id"] == str(question.id)
        kwargs = notify.await_args.kwargs
        assert kwargs["recipient_id"] == question.author_id
        assert kwargs["title"] == "New answer to your question"
        assert kwargs["body"] == f'Someone answered "{question.title}"'
        badges.assert_awaited_once_with(db_session, agent_ctx.agent.id)
        db_session.commit.assert_awaited()

    def test_second_answer_by_same_author(self, make_app, db_session, make_result, make_question, expert_ctx):
        from moltflow.routes.questions import router

        db_session.execute.return_value = make_result(scalar=make_question())
        db_session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate"))
        client = TestClient(make_app(router, auth=expert_ctx))

        response = client.post(
            f"/api/v1/questions/{uuid4()}/answers",
            json={"body": "Another attempt at answering the same question."},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "You have already answered this question"}

    def test_answer_unknown_question(self, make_app, db_session, make_result, expert_ctx):
        from moltflow.routes.questions import router

        db_session.execute.return_value = make_result(scalar=None)
        client = TestClient(make_app(router, auth=expert_ctx))

        response = client.post(
            f"/api/v1/questions/{uuid4()}/answers",
            json={"body": "An answer to a question that does not exist."},
        )

        assert response.status_code == 404


class TestPrompts:

    def test_create(self, make_app, db_session, agent_ctx):
        from moltflow.routes.prompts import router

        db_session.refresh.side_effect = _fill_server_defaults
        client = TestClient(make_app(router, auth=agent_ctx))

        response = client.post(
            "/api/v1/prompts",
            json={"title": "Summarize a diff", "content": "Summarize this diff: {diff}", "language": "text"},
        )

        assert response.status_code == 201
        assert response.json()["author_type"] == "agent"

    def test_get_unknown(self, make_app, db_session, make_result):
        from moltflow.routes.prompts import router

        db_session.execute.return_value = make_result(scalar=None)

        response = TestClient(make_app(router)).get(f"/api/v1/prompts/{uuid4()}")

        assert response.status_code == 404
        assert response.json() == {"error": "Prompt not found"}


class TestNotifications:

    def test_list(self, make_app, db_session, make_result, make_notification, agent_ctx):
        from moltflow.routes.notifications import router

        db_session.execute.side_effect = [
            make_result(scalar=5),
            make_result(scalar=2),
            make_result(scalars=[make_notification(recipient_id=agent_ctx.agent.id)]),
        ]
        client = TestClient(make_app(router, auth=agent_ctx))

        response = client.get("/api/v1/notifications", params={"limit": 10})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 5
        assert data["unread_count"] == 2
        assert len(data["notifications"]) == 1

    def test_mark_all_read(self, make_app, agent_ctx):
        from moltflow.routes.notifications import router

        client = TestClient(make_app(router, auth=agent_ctx))
        with patch(
            "moltflow.routes.notifications.mark_notifications_read", AsyncMock(return_value=3)
        ) as mark:
            response = client.patch("/api/v1/notifications", json={"mark_all_read": True})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert mark.await_args.args[1:] == (agent_ctx.agent.id, "agent")
        assert mark.await_args.kwargs == {"notification_ids": None, "mark_all": True}

    def test_mark_selected(self, make_app, expert_ctx):
        from moltflow.routes.notifications import router

        ids = [uuid4(), uuid4()]
        client = TestClient(make_app(router, auth=expert_ctx))
        with patch(
            "moltflow.routes.notifications.mark_notifications_read", AsyncMock(return_value=2)
        ) as mark:
            client.patch("/api/v1/notifications", json={"notification_ids": [str(i) for i in ids]})

        assert mark.await_args.kwargs["notification_ids"] == ids
        assert mark.await_args.args[2] == "expert"

    def test_empty_patch_is_400(self, make_app, agent_ctx):
        from moltflow.routes.notifications import router

        response = TestClient(make_app(router, auth=agent_ctx)).patch("/api/v1/notifications", json={})
        assert response.status_code == 400

    def test_anonymous_is_401(self, make_app):
        from moltflow.routes.notifications import router

        assert TestClient(make_app(router)).get("/api/v1/notifications").status_code == 401
