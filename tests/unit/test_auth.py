"""Tests for auth — API keys, JWTs and the auth context."""

from types import SimpleNamespace
from unittest.mock import patch
from uuid import uuid4

import pytest

from moltflow.auth import (
    API_KEY_LOOKUP_LENGTH,
    AuthContext,
    authenticate_agent,
    authenticate_expert,
    constant_time_compare,
    create_access_token,
    create_refresh_token,
    decode_jwt,
    extract_bearer_token,
    generate_api_key,
    generate_verification_code,
    hash_password,
    hash_token,
    key_lookup_prefix,
    verify_password,
)
from moltflow.errors import AuthenticationRequired
from moltflow.models import ActorKind

TEST_SETTINGS = SimpleNamespace(
    jwt_secret_key="test-secret-key-for-unit-tests-only",
    jwt_access_token_expire_minutes=5,
    jwt_refresh_token_expire_days=1,
)


@pytest.fixture
def jwt_settings():
    with patch("moltflow.auth.get_settings", return_value=TEST_SETTINGS):
        yield TEST_SETTINGS


class TestApiKeys:

    def test_key_format(self):
        key = generate_api_key()
        assert key.startswith("mf_")
        assert len(key) > 40

    def test_keys_are_unique(self):
        assert generate_api_key() != generate_api_key()

    def test_hash_is_stable_sha256(self):
        assert hash_token("mf_abc") == hash_token("mf_abc")
        assert len(hash_token("mf_abc")) == 64

    def test_lookup_prefix(self):
        key = generate_api_key()
        assert key_lookup_prefix(key) == key[:API_KEY_LOOKUP_LENGTH]

    def test_constant_time_compare(self):
        assert constant_time_compare("abc", "abc")
        assert not constant_time_compare("abc", "abd")

    def test_verification_code(self):
        code = generate_verification_code()
        assert len(code) == 8
        assert code == code.upper()


class TestExtractBearerToken:

    def test_valid(self):
        assert extract_bearer_token("Bearer mf_123") == "mf_123"

    def test_case_insensitive_scheme(self):
        assert extract_bearer_token("bearer tok") == "tok"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer", "Bearer a b"])
    def test_invalid(self, header):
        assert extract_bearer_token(header) is None


class TestPasswords:

    def test_round_trip(self):
        hashed = hash_password("correct horse")
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)


class TestJwt:

    def test_access_token(self, jwt_settings):
        user_id = str(uuid4())
        payload = decode_jwt(create_access_token(user_id))
        assert payload["sub"] == user_id
        assert payload["type"] == "access"

    def test_refresh_tokens_differ(self, jwt_settings):
        user_id = str(uuid4())
        first, second = create_refresh_token(user_id), create_refresh_token(user_id)
        assert first != second
        assert decode_jwt(first)["type"] == "refresh"

    def test_garbage_token(self, jwt_settings):
        with pytest.raises(AuthenticationRequired, match="Invalid token"):
            decode_jwt("not-a-jwt")

    def test_missing_secret(self):
        settings = SimpleNamespace(**{**vars(TEST_SETTINGS), "jwt_secret_key": ""})
        with patch("moltflow.auth.get_settings", return_value=settings):
            with pytest.raises(RuntimeError):
                create_access_token("someone")


class TestAuthContext:

    def test_anonymous(self):
        ctx = AuthContext()
        assert not ctx.is_authenticated
        assert ctx.actor_id is None
        assert ctx.actor_type is None

    def test_agent(self):
        agent = SimpleNamespace(id=uuid4())
        ctx = AuthContext(kind=ActorKind.agent, agent=agent)
        assert ctx.actor_id == agent.id
        assert ctx.actor_type == "agent"

    def test_expert(self):
        user = SimpleNamespace(id=uuid4())
        ctx = AuthContext(kind=ActorKind.expert, user=user)
        assert ctx.actor_id == user.id
        assert ctx.actor_type == "expert"


class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_agent_by_key(self, db_session, make_result, make_agent):
        key = generate_api_key()
        agent = make_agent(api_key_hash=hash_token(key), api_key_prefix=key_lookup_prefix(key))
        db_session.execute.return_value = make_result(scalars=[agent])

        assert await authenticate_agent(db_session, key) is agent

    @pytest.mark.asyncio
    async def test_agent_wrong_key_same_prefix(self, db_session, make_result, make_agent):
        key = generate_api_key()
        agent = make_agent(api_key_hash=hash_token(key))
        db_session.execute.return_value = make_result(scalars=[agent])

        assert await authenticate_agent(db_session, key + "x") is None

    @pytest.mark.asyncio
    async def test_non_agent_token_skips_lookup(self, db_session):
        assert await authenticate_agent(db_session, "eyJhbGciOi") is None
        db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expert_by_access_token(self, db_session, make_result, make_expert, jwt_settings):
        expert = make_expert()
        db_session.execute.return_value = make_result(scalar=expert)

        assert await authenticate_expert(db_session, create_access_token(str(expert.id))) is expert

    @pytest.mark.asyncio
    async def test_refresh_token_is_not_an_access_token(self, db_session, jwt_settings):
        token = create_refresh_token(str(uuid4()))
        assert await authenticate_expert(db_session, token) is None
        db_session.execute.assert_not_awaited()
