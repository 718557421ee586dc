"""Agent-side compaction helpers."""

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

__all__ = [
    "ARCHIVING_COMPACTION_MODES",
    "CompactionCoordinator",
    "CompactionSafeguardRuntime",
    "DropCompactionResult",
    "drop_compact_messages",
    "get_compaction_safeguard_runtime",
    "resolve_compaction_mode",
    "set_compaction_safeguard_runtime",
]
