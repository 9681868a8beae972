"""Tests for session token issue and verification."""

import time

import jwt
import pytest

from medichat.auth.tokens import TokenService
from medichat.errors import InvalidTokenError

SECRET = "test-secret-for-medichat-session-tokens"


def test_issue_and_verify():
    tokens = TokenService(SECRET)
    token = tokens.issue("user-123")
    assert tokens.verify(token) == "user-123"


def test_token_carries_user_id_claims():
    token = TokenService(SECRET, ttl_minutes=30).issue("user-123")
    payload = jwt.decode(token, SECRET, algorithms=["HS256"])
    assert payload["sub"] == "user-123"
    assert payload["userId"] == "user-123"
    assert payload["exp"] - payload["iat"] == 30 * 60


def test_expired_token_rejected():
    token = TokenService(SECRET, ttl_minutes=-5).issue("user-123")
    with pytest.raises(InvalidTokenError) as exc_info:
        TokenService(SECRET).verify(token)
    assert exc_info.value.detail == "expired"
    assert exc_info.value.status_code == 403


def test_wrong_secret_rejected():
    token = TokenService("another-secret-for-medichat-session-tokens").issue("user-123")
    with pytest.raises(InvalidTokenError):
        TokenService(SECRET).verify(token)


@pytest.mark.parametrize("token", ["", None, "not-a-jwt", "a.b.c"])
def test_malformed_tokens_rejected(token):
    with pytest.raises(InvalidTokenError):
        TokenService(SECRET).verify(token)


def test_token_without_subject_rejected():
    now = int(time.time())
    token = jwt.encode({"iat": now, "exp": now + 60}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidTokenError):
        TokenService(SECRET).verify(token)


def test_no_secret_cannot_issue_or_verify():
    tokens = TokenService("")
    with pytest.raises(RuntimeError):
        tokens.issue("user-123")
    with pytest.raises(InvalidTokenError):
        tokens.verify(TokenService(SECRET).issue("user-123"))
