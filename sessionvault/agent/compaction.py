"""Context compaction: mode selection, safeguard runtime values, drop-only step."""

from __future__ import annotations

import weakref
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Sequence

from sessionvault.config.schema import CompactionConfig, CompactionMode, Config
from sessionvault.logging import get_logger
from sessionvault.memory.archive import ArchiveResult, archive_messages_to_memory, create_drop_placeholder
from sessionvault.utils.helpers import resolve_timezone

logger = get_logger(__name__)

DEFAULT_COMPACTION_MODE: CompactionMode = "safeguard"
# Modes that archive dropped messages instead of summarizing them.
ARCHIVING_COMPACTION_MODES: frozenset[CompactionMode] = frozenset({"safeguard", "drop-only"})


@dataclass(frozen=True)
class CompactionSafeguardRuntime:
    """Per-session-manager values the compaction safeguard reads at run time."""

    max_history_share: float | None = None
    context_window_tokens: int | None = None
    compaction_mode: CompactionMode | None = None


@dataclass
class DropCompactionResult:
    messages: list[dict[str, Any]]
    dropped_count: int
    archive: ArchiveResult | None = None
    placeholder: str | None = None


_runtime_registry: weakref.WeakKeyDictionary[object, CompactionSafeguardRuntime] = weakref.WeakKeyDictionary()


def set_compaction_safeguard_runtime(owner: object, value: CompactionSafeguardRuntime | None) -> None:
    """Attach runtime values to *owner*; ``None`` clears them."""
    if value is None:
        _runtime_registry.pop(owner, None)
        return
    _runtime_registry[owner] = value


def get_compaction_safeguard_runtime(owner: object) -> CompactionSafeguardRuntime | None:
    return _runtime_registry.get(owner)


def resolve_compaction_mode(config: Config | CompactionConfig | None) -> CompactionMode:
    """Configured compaction mode, or ``safeguard`` when unset."""
    if isinstance(config, Config):
        config = config.compaction
    if config is None or config.mode is None:
        return DEFAULT_COMPACTION_MODE
    return config.mode


def build_placeholder_message(text: str) -> dict[str, Any]:
    return {"role": "user", "content": [{"type": "text", "text": text}]}


async def drop_compact_messages(
    messages: Sequence[dict[str, Any]],
    drop_count: int,
    workspace_dir: Path | str,
    *,
    session_key: str | None = None,
    timestamp: datetime | None = None,
    timezone: str | tzinfo | None = None,
) -> DropCompactionResult:
    """Archive the oldest *drop_count* messages, then replace them with a placeholder.

    The archive is written before the history changes: if archival raises,
    the error propagates and *messages* is untouched. The returned list is new.
    """
    drop_count = min(max(drop_count, 0), len(messages))
    if drop_count == 0:
        return DropCompactionResult(messages=list(messages), dropped_count=0)

    tz = resolve_timezone(timezone)
    now = timestamp or datetime.now(tz)
    dropped = list(messages[:drop_count])

    archive = await archive_messages_to_memory(
        dropped,
        workspace_dir,
        session_key=session_key,
        timestamp=now,
        timezone=tz,
    )
    placeholder = create_drop_placeholder(
        archive.message_count,
        archive_path=archive.archive_path,
        timestamp=now,
        timezone=tz,
    )
    logger.info(
        "drop_compaction_applied",
        session_key=session_key,
        dropped=drop_count,
        kept=len(messages) - drop_count,
        archive_path=archive.archive_path,
    )
    return DropCompactionResult(
        messages=[build_placeholder_message(placeholder), *messages[drop_count:]],
        dropped_count=drop_count,
        archive=archive,
        placeholder=placeholder,
    )
