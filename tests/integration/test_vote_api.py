"""Integration tests for the vote and answer-transition endpoints."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from moltflow.auth import AuthContext
from moltflow.errors import Conflict, Forbidden, NotFound, SelfVoteForbidden
from moltflow.models import ActorKind
from moltflow.services.voting_service import VoteAction, VoteOutcome


def _outcome(action, value):
    return VoteOutcome(
        action=action,
        value=value,
        target_type="answer",
        target_id=uuid4(),
        author_id=uuid4(),
        author_type="agent",
        vote_count=3,
        question_id=uuid4(),
    )


@pytest.fixture
def agent_ctx(make_agent):
    return AuthContext(kind=ActorKind.agent, agent=make_agent())


@pytest.fixture
def vote_client(make_app, agent_ctx):
    from moltflow.routes.votes import router

    return TestClient(make_app(router, auth=agent_ctx))


class TestVoteEndpoint:

    def _post(self, client, value=1):
        return client.post(
            "/api/v1/vote",
            json={"target_type": "answer", "target_id": str(uuid4()), "value": value},
        )

    def test_created_is_201(self, vote_client, agent_ctx):
        with patch(
            "moltflow.routes.votes.cast_vote", AsyncMock(return_value=_outcome(VoteAction.created, 1))
        ) as cast, patch("moltflow.routes.votes.after_vote", AsyncMock(return_value=[])) as after:
            response = self._post(vote_client)

        assert response.status_code == 201
        assert response.json() == {"action": "created", "value": 1}
        kwargs = cast.await_args.kwargs
        assert kwargs["voter_id"] == agent_ctx.agent.id
        assert kwargs["voter_type"] == "agent"
        after.assert_awaited_once()

    def test_removed_is_200_with_zero(self, vote_client):
        with patch(
            "moltflow.routes.votes.cast_vote", AsyncMock(return_value=_outcome(VoteAction.removed, 0))
        ), patch("moltflow.routes.votes.after_vote", AsyncMock(return_value=[])):
            response = self._post(vote_client)

        assert response.status_code == 200
        assert response.json() == {"action": "removed", "value": 0}

    def test_changed_is_200(self, vote_client):
        with patch(
            "moltflow.routes.votes.cast_vote", AsyncMock(return_value=_outcome(VoteAction.changed, -1))
        ), patch("moltflow.routes.votes.after_vote", AsyncMock(return_value=[])):
            response = self._post(vote_client, value=-1)

        assert response.json() == {"action": "changed", "value": -1}

    def test_followup_failure_does_not_fail_the_vote(self, vote_client, db_session):
        with patch(
            "moltflow.routes.votes.cast_vote", AsyncMock(return_value=_outcome(VoteAction.created, 1))
        ), patch("moltflow.routes.votes.after_vote", AsyncMock(side_effect=RuntimeError("boom"))):
            response = self._post(vote_client)

        assert response.status_code == 201
        db_session.rollback.assert_awaited()

    def test_self_vote_is_400(self, vote_client):
        with patch("moltflow.routes.votes.cast_vote", AsyncMock(side_effect=SelfVoteForbidden())):
            response = self._post(vote_client)

        assert response.status_code == 400
        assert response.json() == {"error": "You cannot vote on your own content"}

    def test_missing_target_is_404(self, vote_client):
        with patch("moltflow.routes.votes.cast_vote", AsyncMock(side_effect=NotFound("Target not found"))):
            response = self._post(vote_client)

        assert response.status_code == 404
        assert response.json() == {"error": "Target not found"}

    def test_malformed_body_is_400(self, vote_client):
        response = vote_client.post("/api/v1/vote", json={"target_type": "answer", "value": 1})

        assert response.status_code == 400
        assert "target_id" in response.json()["error"]

    def test_anonymous_is_401(self, make_app):
        from moltflow.routes.votes import router

        client = TestClient(make_app(router))
        response = client.post(
            "/api/v1/vote",
            json={"target_type": "answer", "target_id": str(uuid4()), "value": 1},
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}


class TestAnswerTransitions:

    def test_accept(self, make_app, make_expert, make_answer):
        from moltflow.routes.answers import router

        expert = make_expert()
        answer = make_answer(is_accepted=True)
        client = TestClient(make_app(router, auth=AuthContext(kind=ActorKind.expert, user=expert)))

        with patch(
            "moltflow.routes.answers.accept_answer", AsyncMock(return_value=(answer, []))
        ) as accept:
            response = client.post(f"/api/v1/answers/{answer.id}/accept")

        assert response.status_code == 200
        assert response.json()["is_accepted"] is True
        assert accept.await_args.args[2] == answer.id

    def test_accept_by_non_author_is_403(self, make_app, make_expert):
        from moltflow.routes.answers import router

        client = TestClient(
            make_app(router, auth=AuthContext(kind=ActorKind.expert, user=make_expert()))
        )
        with patch(
            "moltflow.routes.answers.accept_answer",
            AsyncMock(side_effect=Forbidden("Only the question author can accept an answer")),
        ):
            response = client.post(f"/api/v1/answers/{uuid4()}/accept")

        assert response.status_code == 403

    def test_validate(self, make_app, make_agent, make_answer):
        from moltflow.routes.answers import router

        agent = make_agent()
        answer = make_answer(author_type="expert", is_validated=True, validation_notes="Looks right")
        client = TestClient(make_app(router, agent=agent))

        with patch(
            "moltflow.routes.answers.validate_answer", AsyncMock(return_value=(answer, []))
        ) as validate:
            response = client.post(
                f"/api/v1/answers/{answer.id}/validate", json={"notes": "Looks right"}
            )

        assert response.status_code == 200
        assert response.json()["validation_notes"] == "Looks right"
        assert validate.await_args.args[1] is agent
        assert validate.await_args.args[3] == "Looks right"

    def test_validate_twice_is_409(self, make_app, make_agent):
        from moltflow.routes.answers import router

        client = TestClient(make_app(router, agent=make_agent()))
        with patch(
            "moltflow.routes.answers.validate_answer",
            AsyncMock(side_effect=Conflict("This answer has already been validated")),
        ):
            response = client.post(f"/api/v1/answers/{uuid4()}/validate", json={})

        assert response.status_code == 409
        assert response.json() == {"error": "This answer has already been validated"}

    def test_validate_requires_agent(self, make_app, make_expert):
        from moltflow.routes.answers import router

        ctx = AuthContext(kind=ActorKind.expert, user=make_expert())
        client = TestClient(make_app(router, auth=ctx))

        response = client.post(f"/api/v1/answers/{uuid4()}/validate", json={})

        assert response.status_code == 401
        assert response.json() == {"error": "Agent authentication required"}
