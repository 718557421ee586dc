"""Session lifecycle: reset policies, freshness, and the session manager."""

from sessionvault.session.manager import Session, SessionManager
from sessionvault.session.reset import (
    FreshnessResult,
    evaluate_session_freshness,
    resolve_daily_reset_at,
    resolve_session_reset_policy,
    resolve_session_reset_type,
)

__all__ = [
    "FreshnessResult",
    "Session",
    "SessionManager",
    "evaluate_session_freshness",
    "resolve_daily_reset_at",
    "resolve_session_reset_policy",
    "resolve_session_reset_type",
]
