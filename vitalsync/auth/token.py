"""Signed identity token handling.

The identity token is an opaque JWT issued by the sign-in provider.  We
never verify its signature here (the storage credential exchange does
that); we only read the ``exp`` claim from the payload segment to decide
whether the token is fresh enough to use.

An unreadable token is treated as already expired, so the caller
re-authenticates instead of trusting it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import jwt

logger = logging.getLogger("vitalsync.auth.token")

# Tokens with less validity left than this are refreshed before use
FRESHNESS_THRESHOLD_SECONDS = 3600


def decode_expiry(token: str) -> datetime | None:
    """Return the UTC expiry of ``token`` or None if it cannot be read."""
    try:
        claims = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.InvalidTokenError as exc:
        logger.warning("Could not decode identity token: %s", exc)
        return None

    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        logger.warning("Identity token has no numeric exp claim")
        return None
    try:
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.warning("Identity token exp claim out of range: %r", exp)
        return None


def is_expiring_soon(
    token: str,
    now: datetime | None = None,
    threshold_seconds: int = FRESHNESS_THRESHOLD_SECONDS,
) -> bool:
    """Return True if ``token`` expires within ``threshold_seconds`` or is unreadable.

    Args:
        token:             Encoded JWT.
        now:               Reference time (timezone-aware); defaults to UTC now.
        threshold_seconds: Freshness threshold.
    """
    expires_at = decode_expiry(token)
    if expires_at is None:
        return True
    reference = now or datetime.now(timezone.utc)
    return (expires_at - reference).total_seconds() < threshold_seconds


@dataclass(frozen=True)
class IdentityToken:
    """An encoded identity token plus its decoded expiry.

    Attributes:
        raw:        The encoded JWT as issued.
        expires_at: Decoded ``exp`` claim, None when undecodable.
    """

    raw: str = field(repr=False)
    expires_at: datetime | None = field(default=None, compare=False)

    @classmethod
    def parse(cls, raw: str) -> "IdentityToken":
        return cls(raw=raw, expires_at=decode_expiry(raw))

    def is_expiring_soon(
        self, now: datetime | None = None, threshold_seconds: int = FRESHNESS_THRESHOLD_SECONDS
    ) -> bool:
        if self.expires_at is None:
            return True
        reference = now or datetime.now(timezone.utc)
        return (self.expires_at - reference).total_seconds() < threshold_seconds

    def seconds_remaining(self, now: datetime | None = None) -> float | None:
        if self.expires_at is None:
            return None
        reference = now or datetime.now(timezone.utc)
        return (self.expires_at - reference).total_seconds()
