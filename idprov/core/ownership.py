"""Ownership guard: callers may only act on their own identity."""
from __future__ import annotations
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOW


def _normalize(identity: str) -> str:
    return (identity or "").strip().lower()


def authorize(claimed: str, requested: str) -> Decision:
    """Compare the token's identity with the identity named in the request.

    Comparison is case-insensitive. A mismatch is an expected outcome, so it
    is returned as ``Decision.DENY`` rather than raised.
    """
    claimed_norm = _normalize(claimed)
    if claimed_norm and claimed_norm == _normalize(requested):
        return Decision.ALLOW
    logger.warning("[ownership] Denied: token identity '%s' requested '%s'", claimed_norm, _normalize(requested))
    return Decision.DENY
