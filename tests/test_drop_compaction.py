"""Tests for drop-only compaction and the safeguard runtime registry."""

import asyncio
import gc
from datetime import datetime, timezone
from pathlib import Path

import pytest

import sessionvault.agent.compaction as compaction_module
from sessionvault.agent.compaction import (
    CompactionSafeguardRuntime,
    drop_compact_messages,
    get_compaction_safeguard_runtime,
    resolve_compaction_mode,
    set_compaction_safeguard_runtime,
)
from sessionvault.agent.compaction_coordinator import CompactionCoordinator
from sessionvault.config.schema import CompactionConfig, Config

TS = datetime(2026, 2, 18, 14, 30, tzinfo=timezone.utc)


def _history(n: int) -> list[dict]:
    return [{"role": "user", "content": [{"type": "text", "text": f"msg{i}"}]} for i in range(n)]


class _Owner:
    pass


class TestCompactionMode:
    def test_defaults_to_safeguard(self) -> None:
        assert resolve_compaction_mode(None) == "safeguard"
        assert resolve_compaction_mode(Config()) == "safeguard"
        assert resolve_compaction_mode(CompactionConfig()) == "safeguard"

    def test_reads_configured_mode(self) -> None:
        cfg = Config.model_validate({"compaction": {"mode": "drop-only"}})
        assert resolve_compaction_mode(cfg) == "drop-only"
        assert resolve_compaction_mode(CompactionConfig(mode="default")) == "default"


class TestSafeguardRuntime:
    def test_set_get_and_clear(self) -> None:
        owner = _Owner()
        assert get_compaction_safeguard_runtime(owner) is None

        value = CompactionSafeguardRuntime(max_history_share=0.5, context_window_tokens=200_000, compaction_mode="drop-only")
        set_compaction_safeguard_runtime(owner, value)
        assert get_compaction_safeguard_runtime(owner) is value

        set_compaction_safeguard_runtime(owner, None)
        assert get_compaction_safeguard_runtime(owner) is None

    def test_all_fields_optional(self) -> None:
        runtime = CompactionSafeguardRuntime()
        assert runtime.compaction_mode is None
        assert runtime.max_history_share is None
        assert runtime.context_window_tokens is None

    def test_entries_do_not_outlive_owner(self) -> None:
        owner = _Owner()
        set_compaction_safeguard_runtime(owner, CompactionSafeguardRuntime(compaction_mode="drop-only"))
        assert any(isinstance(k, _Owner) for k in list(compaction_module._runtime_registry.keys()))
        del owner
        gc.collect()
        assert not any(isinstance(k, _Owner) for k in list(compaction_module._runtime_registry.keys()))


class TestDropCompactMessages:
    @pytest.mark.asyncio
    async def test_archives_prefix_and_splices_placeholder(self, tmp_path: Path) -> None:
        history = _history(5)

        result = await drop_compact_messages(
            history, 3, tmp_path, session_key="cli:test", timestamp=TS, timezone="UTC"
        )

        assert result.dropped_count == 3
        assert result.archive is not None
        assert result.archive.message_count == 3
        assert result.archive.archive_path == tmp_path / "memory" / "2026-02-18.md"
        assert len(result.messages) == 3
        assert result.messages[1:] == history[3:]

        placeholder_msg = result.messages[0]
        assert placeholder_msg["role"] == "user"
        assert placeholder_msg["content"] == [{"type": "text", "text": result.placeholder}]
        assert "3 messages" in result.placeholder
        assert str(result.archive.archive_path) in result.placeholder
        assert "memory_search" in result.placeholder

        content = result.archive.archive_path.read_text(encoding="utf-8")
        assert "msg0" in content and "msg2" in content
        assert "msg3" not in content

    @pytest.mark.asyncio
    async def test_does_not_mutate_input(self, tmp_path: Path) -> None:
        history = _history(4)
        snapshot = list(history)
        await drop_compact_messages(history, 2, tmp_path, timestamp=TS)
        assert history == snapshot

    @pytest.mark.asyncio
    async def test_zero_drop_is_noop(self, tmp_path: Path) -> None:
        history = _history(2)
        result = await drop_compact_messages(history, 0, tmp_path, timestamp=TS)

        assert result.messages == history
        assert result.archive is None
        assert not (tmp_path / "memory").exists()

    @pytest.mark.asyncio
    async def test_drop_count_is_clamped(self, tmp_path: Path) -> None:
        result = await drop_compact_messages(_history(2), 10, tmp_path, timestamp=TS)
        assert result.dropped_count == 2
        assert len(result.messages) == 1

    @pytest.mark.asyncio
    async def test_archive_failure_aborts_compaction(self, monkeypatch, tmp_path: Path) -> None:
        async def _failing_archive(*args, **kwargs):
            raise PermissionError("read-only workspace")

        monkeypatch.setattr(compaction_module, "archive_messages_to_memory", _failing_archive)
        history = _history(3)

        with pytest.raises(PermissionError):
            await drop_compact_messages(history, 2, tmp_path, timestamp=TS)
        assert history == _history(3)


class TestCompactionCoordinator:
    @pytest.mark.asyncio
    async def test_run_exclusive_serializes_same_key(self) -> None:
        coordinator = CompactionCoordinator()
        events: list[str] = []

        async def _work(name: str) -> str:
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")
            return name

        results = await asyncio.gather(
            coordinator.run_exclusive("ws", lambda: _work("a")),
            coordinator.run_exclusive("ws", lambda: _work("b")),
        )

        assert results == ["a", "b"]
        assert events == ["a:start", "a:end", "b:start", "b:end"]
        assert coordinator.locks == {}
        assert not coordinator.is_running("ws")

    @pytest.mark.asyncio
    async def test_lock_survives_while_waiters_remain(self) -> None:
        coordinator = CompactionCoordinator()
        release = asyncio.Event()
        seen: list[bool] = []

        async def _first() -> None:
            await release.wait()

        async def _second() -> None:
            seen.append(coordinator.is_running("ws"))

        first = asyncio.create_task(coordinator.run_exclusive("ws", _first))
        second = asyncio.create_task(coordinator.run_exclusive("ws", _second))
        await asyncio.sleep(0)
        lock = coordinator.locks["ws"]
        assert coordinator.in_progress == {"ws"}

        release.set()
        await first
        # A third caller arriving now must queue on the same lock as the waiter.
        assert coordinator.get_lock("ws") is lock
        await second
        assert seen == [True]
        assert coordinator.in_progress == set()

    @pytest.mark.asyncio
    async def test_releases_on_error(self) -> None:
        coordinator = CompactionCoordinator()

        async def _boom() -> None:
            raise OSError("disk full")

        with pytest.raises(OSError):
            await coordinator.run_exclusive("ws", _boom)
        assert coordinator.locks == {}
        assert not coordinator.is_running("ws")
