from datetime import datetime, timedelta, timezone

import jwt
import pytest

from quizgate.core.errors import DomainError, InvalidToken
from quizgate.core.identity import decode_token, resolve_identity
from quizgate.models.domain import AnonymousIdentity, AuthenticatedIdentity

SECRET = "test-secret"


def token(claims, secret=SECRET):
    return jwt.encode(claims, secret, algorithm="HS256")


def test_bearer_token_resolves_user():
    identity = resolve_identity(bearer_token=token({"sub": "user-7", "roles": ["student"]}), secret=SECRET)
    assert identity == AuthenticatedIdentity(user_id="user-7")
    assert not identity.is_anonymous
    assert identity.key == "user:user-7"


def test_token_wins_over_anonymous_session():
    identity = resolve_identity(bearer_token=token({"sub": "user-7"}), anonymous_session_id="s-1", secret=SECRET)
    assert isinstance(identity, AuthenticatedIdentity)


def test_decode_token_roles():
    data = decode_token(token({"sub": "author-1", "roles": ["author"]}), secret=SECRET)
    assert data.sub == "author-1"
    assert data.roles == ["author"]


@pytest.mark.parametrize("bad", [
    token({"sub": "user-7"}, secret="other-secret"),
    token({"sub": "user-7", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)}),
    token({"roles": ["student"]}),
    "not.a.token",
])
def test_invalid_tokens(bad):
    with pytest.raises(InvalidToken) as exc:
        resolve_identity(bearer_token=bad, secret=SECRET)
    assert isinstance(exc.value, DomainError)


def test_anonymous_session():
    identity = resolve_identity(anonymous_session_id=" sess-9 ", anonymous_name="Ann", anonymous_email="ann@example.com")
    assert identity == AnonymousIdentity(session_id="sess-9", name="Ann", email="ann@example.com")
    assert identity.is_anonymous
    assert identity.key == "anon:sess-9"


@pytest.mark.parametrize("session_id", [None, "", "   "])
def test_no_credentials(session_id):
    with pytest.raises(InvalidToken):
        resolve_identity(anonymous_session_id=session_id)
