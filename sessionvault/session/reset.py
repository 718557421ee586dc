"""Session reset policies: resolve the effective policy and evaluate freshness.

Both entry points are pure. ``now`` is always supplied by the caller so the
temporal logic never depends on the live clock.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone, tzinfo
from typing import Any, Callable, Literal

from sessionvault.config.schema import (
    DEFAULT_RESET_POLICY,
    IdleResetPolicy,
    NeverResetPolicy,
    SessionConfig,
    SessionResetPolicy,
    coerce_reset_policy,
)
from sessionvault.logging import get_logger
from sessionvault.utils.helpers import resolve_timezone

logger = get_logger(__name__)

SessionResetType = Literal["direct", "group", "thread"]

_THREAD_MARKERS = (":thread:", ":topic:")
_GROUP_MARKERS = (":group:", ":channel:")


@dataclass(frozen=True)
class FreshnessResult:
    fresh: bool
    daily_reset_at: datetime | None = None
    idle_expires_at: datetime | None = None


# ---------------------------------------------------------------------------
# Policy resolution
# ---------------------------------------------------------------------------


def _coerce_policy(value: Any) -> SessionResetPolicy | None:
    """Validate a raw policy entry; malformed entries count as absent."""
    policy = coerce_reset_policy(value)
    if policy is None and value is not None:
        logger.debug("Ignoring malformed reset policy", value_type=type(value).__name__)
    return policy


def _field(source: Any, *names: str) -> Any:
    """Read the first present attribute/key among *names* from a model or mapping."""
    if source is None:
        return None
    for name in names:
        if isinstance(source, Mapping):
            if name in source:
                return source[name]
        elif getattr(source, name, None) is not None:
            return getattr(source, name)
    return None


def resolve_session_reset_policy(
    session_cfg: SessionConfig | Mapping[str, Any] | None,
    reset_type: str,
    reset_override: SessionResetPolicy | Mapping[str, Any] | None = None,
) -> SessionResetPolicy:
    """Return the reset policy in effect for a session of kind *reset_type*.

    Precedence, first present wins: *reset_override*, the ``reset_by_type``
    entry for *reset_type*, the global ``reset`` policy, then daily at 04:00.
    """

    def by_type() -> Any:
        table = _field(session_cfg, "reset_by_type", "resetByType")
        if not isinstance(table, Mapping):
            return None
        return table.get(reset_type)

    lookups: tuple[Callable[[], Any], ...] = (
        lambda: reset_override,
        by_type,
        lambda: _field(session_cfg, "reset"),
    )
    for lookup in lookups:
        policy = _coerce_policy(lookup())
        if policy is not None:
            return policy
    return DEFAULT_RESET_POLICY


def resolve_session_reset_type(
    session_key: str | None = None,
    *,
    is_group: bool = False,
    is_thread: bool = False,
) -> SessionResetType:
    """Classify a session as ``thread``, ``group`` or ``direct``."""
    if is_thread:
        return "thread"
    if is_group:
        return "group"
    key = f":{(session_key or '').lower()}:"
    if any(marker in key for marker in _THREAD_MARKERS):
        return "thread"
    if any(marker in key for marker in _GROUP_MARKERS):
        return "group"
    return "direct"


# ---------------------------------------------------------------------------
# Freshness evaluation
# ---------------------------------------------------------------------------


def resolve_daily_reset_at(
    now: datetime,
    at_hour: int,
    timezone: str | tzinfo | None = None,
) -> datetime:
    """Most recent instant at ``at_hour:00:00`` in *timezone* that is <= *now*.

    ``timezone=None`` uses the system local zone. Precondition: 0 <= at_hour <= 23.
    """
    tz = resolve_timezone(timezone)
    if tz is None:
        # Naive local wall clock; astimezone() resolves the offset for that date.
        local_now = datetime.fromtimestamp(now.timestamp())
        boundary = local_now.replace(hour=at_hour, minute=0, second=0, microsecond=0)
        if boundary > local_now:
            boundary -= timedelta(days=1)
        return boundary.astimezone()

    local_now = now.astimezone(tz)
    boundary = local_now.replace(hour=at_hour, minute=0, second=0, microsecond=0)
    if boundary > local_now:
        boundary -= timedelta(days=1)
    return boundary


def evaluate_session_freshness(
    updated_at: datetime,
    now: datetime,
    policy: SessionResetPolicy | Mapping[str, Any],
    timezone: str | tzinfo | None = None,
) -> FreshnessResult:
    """Decide whether a session last updated at *updated_at* is still fresh at *now*.

    - ``never``: always fresh, no timestamps reported.
    - ``daily``: fresh iff *updated_at* is at or after the latest daily boundary.
    - ``idle``: fresh iff *now* is strictly before ``updated_at + idle_minutes``.

    *policy* may also be a raw mapping (``{"mode": "idle", "idleMinutes": 30}``);
    a malformed one falls back to daily at 04:00. Naive datetimes are
    interpreted as system local time. Reported instants are timezone-aware.
    """
    policy = _coerce_policy(policy) or DEFAULT_RESET_POLICY
    if isinstance(policy, NeverResetPolicy):
        return FreshnessResult(fresh=True)

    # Elapsed-time arithmetic runs in UTC so DST shifts don't stretch the gap.
    updated_at = updated_at.astimezone(dt_timezone.utc)
    now = now.astimezone(dt_timezone.utc)

    if isinstance(policy, IdleResetPolicy):
        idle_expires_at = updated_at + timedelta(minutes=policy.idle_minutes)
        return FreshnessResult(fresh=now < idle_expires_at, idle_expires_at=idle_expires_at)

    daily_reset_at = resolve_daily_reset_at(now, policy.at_hour, timezone)
    return FreshnessResult(fresh=updated_at >= daily_reset_at, daily_reset_at=daily_reset_at)
