"""
Tests for password hashing and identity tokens.
"""
import pytest
from datetime import timedelta

from jose import jwt

from app.core.exceptions import InvalidTokenError
from app.core.security import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    TokenIssuer,
    get_password_hash,
    verify_password,
)

SECRET = "test-secret-key-for-unit-tests-only"


class TestPasswordHashing:
    """bcrypt hash/verify."""

    def test_hash_then_verify(self):
        hashed = get_password_hash("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)

    def test_wrong_password_fails(self):
        hashed = get_password_hash("s3cret-pass")
        assert not verify_password("other-pass", hashed)

    def test_hashes_are_salted(self):
        assert get_password_hash("same-pass") != get_password_hash("same-pass")

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("whatever", "not-a-bcrypt-hash") is False

    def test_empty_inputs_are_a_mismatch(self):
        assert verify_password("", get_password_hash("x12345")) is False
        assert verify_password("x12345", "") is False


class TestTokenIssuer:
    """Access/refresh tokens."""

    @pytest.fixture
    def issuer(self):
        return TokenIssuer(SECRET)

    def test_access_token_roundtrip(self, issuer):
        token = issuer.issue_token(42, "user", timedelta(minutes=5))
        claims = issuer.parse_token(token)

        assert claims.account_id == 42
        assert claims.role == "user"
        assert claims.token_type == TOKEN_TYPE_ACCESS
        assert claims.jti

    def test_subject_is_encoded_as_string(self, issuer):
        token = issuer.issue_token(7, "admin", timedelta(minutes=5))
        payload = jwt.get_unverified_claims(token)
        assert payload["sub"] == "7"
        assert payload["type"] == TOKEN_TYPE_ACCESS

    def test_pair_has_distinct_types(self, issuer):
        pair = issuer.issue_pair(3, "user", timedelta(minutes=5), timedelta(days=1))

        assert issuer.parse_token(pair.access_token).token_type == TOKEN_TYPE_ACCESS
        assert issuer.parse_token(pair.refresh_token).token_type == TOKEN_TYPE_REFRESH
        assert pair.access_token != pair.refresh_token

    def test_pair_expiry_tracks_access_ttl(self, issuer):
        pair = issuer.issue_pair(3, "user", timedelta(seconds=120), timedelta(days=1))
        access = issuer.parse_token(pair.access_token)
        assert abs(int(access.expires_at.timestamp()) - pair.expires_at) <= 1

    def test_jti_is_unique_per_token(self, issuer):
        first = issuer.parse_token(issuer.issue_token(1, "user", timedelta(minutes=5)))
        second = issuer.parse_token(issuer.issue_token(1, "user", timedelta(minutes=5)))
        assert first.jti != second.jti

    def test_expired_token_rejected(self, issuer):
        token = issuer.issue_token(1, "user", timedelta(seconds=-10))
        with pytest.raises(InvalidTokenError):
            issuer.parse_token(token)

    def test_wrong_secret_rejected(self, issuer):
        token = TokenIssuer("another-secret-key-entirely").issue_token(1, "user", timedelta(minutes=5))
        with pytest.raises(InvalidTokenError):
            issuer.parse_token(token)

    def test_garbage_rejected(self, issuer):
        with pytest.raises(InvalidTokenError):
            issuer.parse_token("not.a.token")

    def test_missing_subject_rejected(self, issuer):
        token = jwt.encode({"role": "user", "type": "access"}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            issuer.parse_token(token)
