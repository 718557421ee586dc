"""Session management: freshness-gated lookup and archival compaction."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Mapping

import structlog

from sessionvault.agent.compaction import (
    ARCHIVING_COMPACTION_MODES,
    CompactionSafeguardRuntime,
    DropCompactionResult,
    drop_compact_messages,
    get_compaction_safeguard_runtime,
    resolve_compaction_mode,
    set_compaction_safeguard_runtime,
)
from sessionvault.agent.compaction_coordinator import CompactionCoordinator
from sessionvault.config.schema import CompactionMode, Config, SessionResetPolicy
from sessionvault.logging import get_logger
from sessionvault.session.reset import (
    FreshnessResult,
    evaluate_session_freshness,
    resolve_session_reset_policy,
    resolve_session_reset_type,
)
from sessionvault.utils.helpers import ensure_aware, resolve_timezone

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class Session:
    """
    A conversation session.

    ``updated_at`` drives freshness; it moves forward whenever a message is
    added. Messages are plain dicts in the agent loop's wire shape.
    """

    key: str  # channel:chat_id
    messages: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    reset_type: str = "direct"

    def __post_init__(self) -> None:
        self.created_at = ensure_aware(self.created_at)
        self.updated_at = ensure_aware(self.updated_at)

    def add_message(self, role: str, content: Any, *, now: datetime | None = None, **kwargs: Any) -> None:
        """Add a message to the session."""
        stamp = ensure_aware(now) if now else _now()
        self.messages.append({"role": role, "content": content, "timestamp": stamp.isoformat(), **kwargs})
        self.updated_at = stamp

    def clear(self, *, now: datetime | None = None) -> None:
        """Clear all messages and reset session to initial state."""
        self.messages = []
        self.updated_at = ensure_aware(now) if now else _now()


class SessionManager:
    """
    Hands out sessions and retires stale ones according to the reset policy.

    Storage is not handled here: sessions live in an in-memory cache and the
    caller persists them however it likes.
    """

    def __init__(
        self,
        workspace: Path,
        config: Config | None = None,
        *,
        timezone: str | tzinfo | None = None,
        coordinator: CompactionCoordinator | None = None,
    ):
        self.workspace = Path(workspace)
        self.config = config or Config()
        self.timezone = resolve_timezone(timezone or self.config.memory.timezone)
        self.coordinator = coordinator or CompactionCoordinator()
        self._cache: dict[str, Session] = {}

        compaction = self.config.compaction
        set_compaction_safeguard_runtime(
            self,
            CompactionSafeguardRuntime(
                max_history_share=compaction.max_history_share,
                context_window_tokens=compaction.context_window_tokens,
                compaction_mode=resolve_compaction_mode(compaction),
            ),
        )

    @property
    def compaction_mode(self) -> CompactionMode:
        """Mode from the registered safeguard runtime, else from config."""
        runtime = get_compaction_safeguard_runtime(self)
        if runtime is not None and runtime.compaction_mode is not None:
            return runtime.compaction_mode
        return resolve_compaction_mode(self.config)

    def resolve_policy(
        self,
        reset_type: str,
        reset_override: SessionResetPolicy | Mapping[str, Any] | None = None,
    ) -> SessionResetPolicy:
        return resolve_session_reset_policy(self.config.session, reset_type, reset_override)

    def check_freshness(
        self,
        session: Session,
        *,
        now: datetime,
        reset_override: SessionResetPolicy | Mapping[str, Any] | None = None,
    ) -> FreshnessResult:
        policy = self.resolve_policy(session.reset_type, reset_override)
        return evaluate_session_freshness(session.updated_at, now, policy, self.timezone)

    def get_or_create(
        self,
        key: str,
        *,
        now: datetime | None = None,
        reset_type: str | None = None,
        reset_override: SessionResetPolicy | Mapping[str, Any] | None = None,
    ) -> Session:
        """
        Get the cached session for *key*, or a new one if none exists or it went stale.

        Args:
            key: Session key (usually channel:chat_id).
            now: Evaluation instant; defaults to the current time.
            reset_type: Session kind; derived from the key when omitted.
            reset_override: Policy that beats any configured one.
        """
        now = ensure_aware(now) if now else _now()
        kind = reset_type or resolve_session_reset_type(key)
        session = self._cache.get(key)

        if session is not None:
            session.reset_type = kind
            freshness = self.check_freshness(session, now=now, reset_override=reset_override)
            if freshness.fresh:
                return session
            logger.info(
                "session_reset",
                session_key=key,
                reset_type=kind,
                updated_at=session.updated_at.isoformat(),
                daily_reset_at=freshness.daily_reset_at.isoformat() if freshness.daily_reset_at else None,
                idle_expires_at=freshness.idle_expires_at.isoformat() if freshness.idle_expires_at else None,
            )

        session = Session(key=key, created_at=now, updated_at=now, reset_type=kind)
        self._cache[key] = session
        return session

    async def compact(
        self,
        session: Session,
        drop_count: int,
        *,
        now: datetime | None = None,
    ) -> DropCompactionResult:
        """Archive the oldest *drop_count* messages and splice in a placeholder.

        The session's history is replaced only after the archive write
        succeeded; on failure the error propagates and history is untouched.

        Raises:
            ValueError: The active compaction mode does not archive
                (``default`` summarizes instead, which is not handled here).
        """
        mode = self.compaction_mode
        if mode not in ARCHIVING_COMPACTION_MODES:
            raise ValueError(f"Compaction mode {mode!r} does not archive dropped messages")

        async def _work() -> DropCompactionResult:
            snapshot = list(session.messages)
            with structlog.contextvars.bound_contextvars(session_key=session.key, compaction_mode=mode):
                try:
                    result = await drop_compact_messages(
                        snapshot,
                        drop_count,
                        self.workspace,
                        session_key=session.key,
                        timestamp=now,
                        timezone=self.timezone,
                    )
                except OSError:
                    logger.exception("Compaction aborted: archive write failed")
                    raise
            # Keep anything appended while the archive write was in flight.
            session.messages = result.messages + session.messages[len(snapshot):]
            return result

        return await self.coordinator.run_exclusive(str(self.workspace), _work)

    def invalidate(self, key: str) -> None:
        """Remove a session from the in-memory cache."""
        self._cache.pop(key, None)

    def list_sessions(self) -> list[dict[str, Any]]:
        """List cached sessions, most recently updated first."""
        ordered = sorted(self._cache.values(), key=lambda s: s.updated_at, reverse=True)
        return [
            {
                "key": s.key,
                "reset_type": s.reset_type,
                "created_at": s.created_at.isoformat(),
                "updated_at": s.updated_at.isoformat(),
                "message_count": len(s.messages),
            }
            for s in ordered
        ]
