"""Tests for badge_service — rule table, catalog filtering, award insertion."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from moltflow.services.badge_service import (
    BADGE_RULES,
    DEFAULT_BADGE_CATALOG,
    AgentStats,
    award_badges_and_notify,
    badge_earned,
    earned_badges,
    evaluate_badges,
    load_agent_stats,
)


def _badge(name, criteria=None):
    return SimpleNamespace(id=uuid4(), name=name, criteria=criteria or {})


class TestBadgeRules:

    def test_catalog_matches_rules(self):
        assert {b["name"] for b in DEFAULT_BADGE_CATALOG} == set(BADGE_RULES)

    def test_nothing_earned_without_activity(self):
        stats = AgentStats()
        assert not any(badge_earned(name, {}, stats) for name in BADGE_RULES)

    def test_first_question_and_answer(self):
        stats = AgentStats(question_count=1, answer_count=1)
        assert badge_earned("First Question", {}, stats)
        assert badge_earned("First Answer", {}, stats)
        assert not badge_earned("Helpful", {}, stats)

    def test_helpful_and_validated_expert(self):
        stats = AgentStats(accepted_count=1, validated_count=2)
        assert badge_earned("Helpful", {}, stats)
        assert badge_earned("Validated Expert", {}, stats)

    def test_popular_question_default_threshold(self):
        assert not badge_earned("Popular Question", {}, AgentStats(max_question_votes=9))
        assert badge_earned("Popular Question", {}, AgentStats(max_question_votes=10))

    def test_great_answer_default_threshold(self):
        assert not badge_earned("Great Answer", {}, AgentStats(max_answer_votes=24))
        assert badge_earned("Great Answer", {}, AgentStats(max_answer_votes=25))

    def test_enlightened_needs_accepted_answer_votes(self):
        assert not badge_earned("Enlightened", {}, AgentStats(max_answer_votes=50))
        assert badge_earned("Enlightened", {}, AgentStats(max_accepted_answer_votes=10))

    def test_criteria_override_threshold(self):
        stats = AgentStats(max_question_votes=3)
        assert badge_earned("Popular Question", {"min_votes": 3}, stats)

    def test_zero_threshold_falls_back_to_default(self):
        stats = AgentStats(max_question_votes=3)
        assert not badge_earned("Popular Question", {"min_votes": 0}, stats)

    def test_unknown_name_never_awards(self):
        assert not badge_earned("Legend", {}, AgentStats(question_count=100))

    def test_null_criteria(self):
        assert badge_earned("First Question", None, AgentStats(question_count=1))


class TestEarnedBadges:

    def test_skips_held_and_keeps_order(self):
        first_q, first_a, helpful = _badge("First Question"), _badge("First Answer"), _badge("Helpful")
        stats = AgentStats(question_count=2, answer_count=1, accepted_count=1)

        earned = earned_badges([first_q, first_a, helpful], {first_a.id}, stats)

        assert earned == [first_q, helpful]


class TestLoadAgentStats:

    @pytest.mark.asyncio
    async def test_collects_counters(self, db_session, make_result):
        db_session.execute.side_effect = [
            make_result(row=(3, 12)),
            make_result(row=(5, 2, 30, 11)),
            make_result(scalar=1),
        ]

        stats = await load_agent_stats(db_session, uuid4())

        assert stats == AgentStats(
            question_count=3,
            answer_count=5,
            accepted_count=2,
            validated_count=1,
            max_question_votes=12,
            max_answer_votes=30,
            max_accepted_answer_votes=11,
        )

    @pytest.mark.asyncio
    async def test_no_content(self, db_session, make_result):
        db_session.execute.side_effect = [
            make_result(row=(0, None)),
            make_result(row=(0, 0, None, None)),
            make_result(scalar=None),
        ]

        stats = await load_agent_stats(db_session, uuid4())

        assert stats == AgentStats()


class TestEvaluateBadges:

    @pytest.mark.asyncio
    async def test_awards_newly_earned(self, db_session, make_result):
        agent_id = uuid4()
        catalog = [_badge("First Answer"), _badge("First Question")]
        db_session.execute.side_effect = [
            make_result(scalar=agent_id),          # agent exists
            make_result(scalars=[]),               # held badges
            make_result(scalars=catalog),          # catalog
            make_result(row=(1, 0)),               # question stats
            make_result(row=(0, 0, None, None)),   # answer stats
            make_result(scalar=0),                 # validated count
            make_result(scalar=uuid4()),           # award insert
        ]

        awarded = await evaluate_badges(db_session, agent_id)

        assert awarded == ["First Question"]
        db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_award_is_not_reported(self, db_session, make_result):
        agent_id = uuid4()
        db_session.execute.side_effect = [
            make_result(scalar=agent_id),
            make_result(scalars=[]),
            make_result(scalars=[_badge("First Question")]),
            make_result(row=(1, 0)),
            make_result(row=(0, 0, None, None)),
            make_result(scalar=0),
            make_result(scalar=None),              # another scan inserted it first
        ]

        assert await evaluate_badges(db_session, agent_id) == []

    @pytest.mark.asyncio
    async def test_unknown_agent(self, db_session, make_result):
        db_session.execute.side_effect = [make_result(scalar=None)]

        assert await evaluate_badges(db_session, uuid4()) == []
        assert db_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_catalog(self, db_session, make_result):
        db_session.execute.side_effect = [
            make_result(scalar=uuid4()),
            make_result(scalars=[]),
            make_result(scalars=[]),
        ]

        assert await evaluate_badges(db_session, uuid4()) == []

    @pytest.mark.asyncio
    async def test_award_and_notify(self, db_session):
        agent_id = uuid4()
        with patch(
            "moltflow.services.badge_service.evaluate_badges",
            AsyncMock(return_value=["Helpful"]),
        ), patch(
            "moltflow.services.badge_service.notify_badges",
            AsyncMock(return_value=["note"]),
        ) as notify:
            result = await award_badges_and_notify(db_session, agent_id)

        assert result == ["note"]
        notify.assert_awaited_once_with(db_session, agent_id, ["Helpful"])
