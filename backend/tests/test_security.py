"""Tests for bearer token signing and password hashing."""

from __future__ import annotations

import pytest

from gis_viewer.core import errors, security

SECRET = "unit-secret"
CLAIMS = {"userId": "user-001", "email": "editor@example.com", "role": "editor"}


def test_token_round_trip_carries_claims_and_expiry() -> None:
    token = security.sign_token(CLAIMS, SECRET, ttl_seconds=60, now=1_000)
    assert token.count(".") == 2
    payload = security.verify_token(token, SECRET, now=1_030)
    assert payload == {**CLAIMS, "iat": 1_000, "exp": 1_060}


def test_default_lifetime_is_seven_days() -> None:
    token = security.sign_token(CLAIMS, SECRET, now=0)
    assert security.verify_token(token, SECRET, now=0)["exp"] == 7 * 24 * 60 * 60


def test_expired_token_is_rejected() -> None:
    token = security.sign_token(CLAIMS, SECRET, ttl_seconds=60, now=1_000)
    with pytest.raises(errors.InvalidTokenError, match="expired"):
        security.verify_token(token, SECRET, now=1_061)


def test_tampered_token_is_rejected() -> None:
    token = security.sign_token(CLAIMS, SECRET)
    with pytest.raises(errors.InvalidTokenError):
        security.verify_token(token, "another-secret")

    header, _, signature = token.split(".")
    forged = security.sign_token({**CLAIMS, "role": "admin"}, "attacker")
    forged_payload = forged.split(".")[1]
    with pytest.raises(errors.InvalidTokenError):
        security.verify_token(f"{header}.{forged_payload}.{signature}", SECRET)


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "ü.ö.ä"])
def test_malformed_token_is_rejected(token: str) -> None:
    with pytest.raises(errors.InvalidTokenError):
        security.verify_token(token, SECRET)


def test_password_hash_is_salted_and_verifiable() -> None:
    first = security.hash_password("admin123")
    second = security.hash_password("admin123")
    assert first != second
    assert first.startswith("pbkdf2_sha256$")
    assert security.verify_password("admin123", first)
    assert not security.verify_password("admin124", first)


def test_verify_password_rejects_foreign_hashes() -> None:
    assert not security.verify_password("x", "plain-sha256-hex")
    assert not security.verify_password("x", "md5$1$00$00")
    assert not security.verify_password("x", "pbkdf2_sha256$many$zz$00")
