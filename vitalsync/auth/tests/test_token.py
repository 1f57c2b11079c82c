"""Tests for identity token expiry decoding."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from vitalsync.auth.token import IdentityToken, decode_expiry, is_expiring_soon
from vitalsync.tests.fakes import JWT_SECRET, make_token

NOW = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)


class TestDecodeExpiry:
    def test_exp_claim_decoded(self) -> None:
        token = make_token(7200, now=NOW)
        assert decode_expiry(token) == NOW + timedelta(hours=2)

    def test_signature_not_required(self) -> None:
        token = jwt.encode({"exp": int(NOW.timestamp())}, "another-secret-entirely-0123456789ab", algorithm="HS256")
        assert decode_expiry(token) == NOW

    def test_garbage_is_none(self) -> None:
        assert decode_expiry("not-a-jwt") is None

    def test_missing_exp_is_none(self) -> None:
        token = jwt.encode({"sub": "someone"}, JWT_SECRET, algorithm="HS256")
        assert decode_expiry(token) is None

    def test_non_numeric_exp_is_none(self) -> None:
        token = jwt.encode({"exp": "tomorrow"}, JWT_SECRET, algorithm="HS256")
        assert decode_expiry(token) is None


class TestIsExpiringSoon:
    def test_thirty_minutes_left_is_expiring(self) -> None:
        assert is_expiring_soon(make_token(1800, now=NOW), now=NOW) is True

    def test_two_hours_left_is_fresh(self) -> None:
        assert is_expiring_soon(make_token(7200, now=NOW), now=NOW) is False

    def test_exactly_one_hour_left_is_fresh(self) -> None:
        assert is_expiring_soon(make_token(3600, now=NOW), now=NOW) is False

    def test_already_expired(self) -> None:
        assert is_expiring_soon(make_token(-60, now=NOW), now=NOW) is True

    def test_undecodable_token_is_expiring(self) -> None:
        assert is_expiring_soon("garbage", now=NOW) is True

    def test_custom_threshold(self) -> None:
        token = make_token(1800, now=NOW)
        assert is_expiring_soon(token, now=NOW, threshold_seconds=600) is False


class TestIdentityToken:
    def test_parse(self) -> None:
        token = IdentityToken.parse(make_token(7200, now=NOW))
        assert token.expires_at == NOW + timedelta(hours=2)
        assert token.seconds_remaining(NOW) == 7200
        assert not token.is_expiring_soon(NOW)

    def test_raw_not_in_repr(self) -> None:
        raw = make_token(7200, now=NOW)
        assert raw not in repr(IdentityToken.parse(raw))

    def test_unreadable_token(self) -> None:
        token = IdentityToken.parse("garbage")
        assert token.expires_at is None
        assert token.seconds_remaining(NOW) is None
        assert token.is_expiring_soon(NOW)
