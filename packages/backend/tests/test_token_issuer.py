"""First-party token issuance tests.

Tests cover:
1. Fixed lifetimes (10 min access, 7 day refresh)
2. Claims carried by each token
3. Pair invariants: refresh outlives access, every issuance is unique
4. Verification failures (wrong type, expiry, tampering, wrong key)
5. Signing failures surface as TokenSigningError
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from flowapi.auth.jwt import (
    ACCESS_TOKEN_TTL,
    ISSUER,
    REFRESH_TOKEN_TTL,
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    TokenError,
    TokenIssuer,
    TokenSigningError,
)

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        TokenIssuer(secret="")


def test_access_token_expires_in_ten_minutes(token_issuer):
    _, expires_at = token_issuer.issue_access_token("42", NOW)
    assert expires_at == NOW + timedelta(minutes=10)
    assert ACCESS_TOKEN_TTL == timedelta(minutes=10)


def test_refresh_token_expires_in_seven_days(token_issuer):
    _, expires_at = token_issuer.issue_refresh_token("42", NOW)
    assert expires_at == NOW + timedelta(days=7)
    assert REFRESH_TOKEN_TTL == timedelta(hours=7 * 24)


def test_access_token_claims(token_issuer):
    token, expires_at = token_issuer.issue_access_token("42", NOW)
    claims = jwt.decode(token, options={"verify_signature": False})
    assert claims["sub"] == "42"
    assert claims["iss"] == ISSUER == "Flow App"
    assert claims["iat"] == int(NOW.timestamp())
    assert claims["exp"] == int(expires_at.timestamp())
    assert claims["type"] == TOKEN_TYPE_ACCESS
    assert claims["jti"]


def test_pair_refresh_outlives_access(token_issuer):
    pair = token_issuer.issue_token_pair("7")
    assert pair.expires_at < pair.refresh_token_expires_at
    assert pair.refresh_token_expires_at - pair.expires_at == REFRESH_TOKEN_TTL - ACCESS_TOKEN_TTL


def test_pair_tokens_are_independent(token_issuer):
    pair = token_issuer.issue_token_pair("7")
    assert pair.access_token != pair.refresh_token
    assert token_issuer.verify_token(pair.access_token)["type"] == TOKEN_TYPE_ACCESS
    assert token_issuer.verify_token(pair.refresh_token)["type"] == TOKEN_TYPE_REFRESH


def test_reissue_for_same_user_gives_new_signatures(token_issuer):
    first = token_issuer.issue_token_pair("7")
    second = token_issuer.issue_token_pair("7")
    assert first.access_token.rsplit(".", 1)[1] != second.access_token.rsplit(".", 1)[1]
    assert first.refresh_token.rsplit(".", 1)[1] != second.refresh_token.rsplit(".", 1)[1]


def test_same_instant_still_unique(token_issuer):
    a, _ = token_issuer.issue_access_token("7", NOW)
    b, _ = token_issuer.issue_access_token("7", NOW)
    assert a != b


def test_verify_round_trip(token_issuer):
    token, _ = token_issuer.issue_access_token("99")
    claims = token_issuer.verify_token(token, expected_type=TOKEN_TYPE_ACCESS)
    assert claims["sub"] == "99"


def test_verify_rejects_wrong_type(token_issuer):
    token, _ = token_issuer.issue_access_token("99")
    with pytest.raises(TokenError, match="Not a refresh token"):
        token_issuer.verify_token(token, expected_type=TOKEN_TYPE_REFRESH)


def test_verify_rejects_expired(token_issuer):
    token, _ = token_issuer.issue_access_token("99", NOW - timedelta(hours=1))
    with pytest.raises(TokenError, match="expired"):
        token_issuer.verify_token(token)


def test_verify_rejects_other_key(token_issuer):
    token, _ = TokenIssuer(secret="someone-else").issue_access_token("99")
    with pytest.raises(TokenError, match="Invalid token"):
        token_issuer.verify_token(token)


def test_verify_rejects_tampered_payload(token_issuer):
    token, _ = token_issuer.issue_access_token("99")
    header, _, signature = token.split(".")
    forged, _ = TokenIssuer(secret="x").issue_access_token("1")
    with pytest.raises(TokenError):
        token_issuer.verify_token(f"{header}.{forged.split('.')[1]}.{signature}")


def test_signing_failure_raises():
    issuer = TokenIssuer(secret="k", algorithm="NOT-AN-ALGORITHM")
    with pytest.raises(TokenSigningError):
        issuer.issue_token_pair("1")
