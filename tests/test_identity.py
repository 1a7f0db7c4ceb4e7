import pytest

from app.core.identity import InvalidIdentityError, JWTIdentityProvider


@pytest.fixture
def provider():
    return JWTIdentityProvider("secret", audience="authenticated")


def test_no_token_is_a_guest(provider):
    assert provider.resolve(None) is None
    assert provider.resolve("") is None


def test_subject_is_the_identity(provider):
    assert provider.resolve(provider.issue_token("user-123")) == "user-123"


def test_wrong_secret_is_rejected(provider):
    token = JWTIdentityProvider("other", audience="authenticated").issue_token("user-123")
    with pytest.raises(InvalidIdentityError):
        provider.resolve(token)


def test_wrong_audience_is_rejected(provider):
    token = JWTIdentityProvider("secret", audience="service_role").issue_token("user-123")
    with pytest.raises(InvalidIdentityError):
        provider.resolve(token)


def test_expired_token_is_rejected(provider):
    with pytest.raises(InvalidIdentityError):
        provider.resolve(provider.issue_token("user-123", lifetime_seconds=-10))


def test_unconfigured_secret_rejects_tokens():
    unconfigured = JWTIdentityProvider(None)
    assert unconfigured.resolve(None) is None
    with pytest.raises(InvalidIdentityError):
        unconfigured.resolve("a.b.c")
