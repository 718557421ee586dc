"""Archive dropped conversation messages to daily memory files.

When compaction drops older messages from the live context, the dropped
batch is appended to ``<workspace>/memory/<YYYY-MM-DD>.md`` so it can be
recovered later through ``memory_search``, and a short placeholder takes the
batch's place in the conversation.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Sequence

from sessionvault.logging import get_logger
from sessionvault.memory.io import MemoryIO, split_markdown_h2_sections
from sessionvault.utils.helpers import format_date_stamp, format_time_stamp, resolve_timezone

logger = get_logger(__name__)

ARCHIVE_MARKER = "[ARCHIVED_CONVERSATION]"
RETRIEVAL_TOOL_NAME = "memory_search"

_THINKING_PREVIEW_CHARS = 200
_TOOL_RESULT_MAX_CHARS = 500

_ROLE_LABELS = {
    "user": "👤 User",
    "assistant": "🤖 Assistant",
}
_TOOL_ROLE_LABEL = "🔧 Tool"
_TOOL_RESULT_ROLES = frozenset({"toolResult", "tool"})

_HEADER_RE = re.compile(r"^\*\*(Archived at|Session|Messages):\*\*\s*(.*?)\s*$")


@dataclass(frozen=True)
class ArchiveResult:
    archive_path: Path
    message_count: int


@dataclass(frozen=True)
class ArchivedSection:
    """One archived batch as read back from a daily memory file."""

    archived_at: str | None
    session_key: str | None
    message_count: int | None
    body: str


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------


def _blocks(content: Any) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    if isinstance(content, list):
        return [b for b in content if isinstance(b, dict)]
    return []


def _text_parts(content: Any) -> list[str]:
    return [b["text"] for b in _blocks(content) if b.get("type") == "text" and isinstance(b.get("text"), str)]


def _truncate_tool_text(text: str) -> str:
    if len(text) <= _TOOL_RESULT_MAX_CHARS:
        return text
    return f"{text[:_TOOL_RESULT_MAX_CHARS]}... [truncated {len(text) - _TOOL_RESULT_MAX_CHARS} chars]"


def _tool_call_name(call: dict[str, Any]) -> str:
    fn = call.get("function")
    if isinstance(fn, dict) and fn.get("name"):
        return str(fn["name"])
    return str(call.get("toolName") or call.get("name") or "unknown")


def _assistant_text(message: dict[str, Any]) -> str:
    parts: list[str] = []
    for block in _blocks(message.get("content")):
        kind = block.get("type")
        if kind == "text" and isinstance(block.get("text"), str):
            parts.append(block["text"])
        elif kind == "thinking" and isinstance(block.get("thinking"), str):
            parts.append(f"[thinking: {block['thinking'][:_THINKING_PREVIEW_CHARS]}...]")
        elif kind == "toolCall":
            parts.append(f"[tool: {_tool_call_name(block)}]")
    # Chat-completions style calls ride next to the content instead of inside it.
    for call in message.get("tool_calls") or []:
        if isinstance(call, dict):
            parts.append(f"[tool: {_tool_call_name(call)}]")
    return "\n".join(parts)


def _tool_result_text(message: dict[str, Any]) -> str:
    parts = [_truncate_tool_text(t) for t in _text_parts(message.get("content"))]
    tool_name = message.get("toolName") or message.get("name") or "tool"
    return f"[{tool_name} result]: " + "\n".join(parts)


def extract_message_text(message: dict[str, Any]) -> str:
    """Render the archivable text of one message; unknown roles yield ``""``."""
    role = message.get("role")
    if role == "user":
        return "\n".join(_text_parts(message.get("content")))
    if role == "assistant":
        return _assistant_text(message)
    if role in _TOOL_RESULT_ROLES:
        return _tool_result_text(message)
    return ""


# ---------------------------------------------------------------------------
# Markdown rendering
# ---------------------------------------------------------------------------


def format_messages_as_markdown(
    messages: Sequence[dict[str, Any]],
    *,
    session_key: str | None = None,
    timestamp: datetime,
    timezone: str | tzinfo | None = None,
) -> str:
    """Render one archive block. Deterministic for identical inputs."""
    tz = resolve_timezone(timezone)
    lines = [
        "",
        f"## {ARCHIVE_MARKER}",
        f"**Archived at:** {format_date_stamp(timestamp, tz)} {format_time_stamp(timestamp, tz)}",
    ]
    if session_key:
        lines.append(f"**Session:** {session_key}")
    lines.extend([f"**Messages:** {len(messages)}", "", "---", ""])

    for message in messages:
        text = extract_message_text(message)
        if not text.strip():
            continue
        label = _ROLE_LABELS.get(message.get("role"), _TOOL_ROLE_LABEL)
        lines.extend([f"### {label}", "", text, ""])

    lines.extend(["---", ""])
    return "\n".join(lines)


def _write_archive(workspace_dir: Path, date_stamp: str, content: str) -> Path:
    memory_dir = MemoryIO.ensure_memory_dir(workspace_dir)
    archive_path = memory_dir / f"{date_stamp}.md"
    MemoryIO.append_text(archive_path, content)
    return archive_path


async def archive_messages_to_memory(
    messages: Sequence[dict[str, Any]],
    workspace_dir: Path | str,
    *,
    session_key: str | None = None,
    timestamp: datetime | None = None,
    timezone: str | tzinfo | None = None,
) -> ArchiveResult:
    """Append *messages* to the workspace's daily memory file.

    Creates ``<workspace>/memory`` when missing and appends to
    ``<YYYY-MM-DD>.md`` (date of *timestamp* in *timezone*). Repeated calls on
    the same day append further sections; nothing is ever overwritten.
    Filesystem errors propagate to the caller.
    """
    tz = resolve_timezone(timezone)
    now = timestamp or datetime.now(tz)
    content = format_messages_as_markdown(messages, session_key=session_key, timestamp=now, timezone=tz)

    archive_path = await asyncio.to_thread(
        _write_archive, Path(workspace_dir), format_date_stamp(now, tz), content
    )
    logger.info(
        "messages_archived",
        archive_path=archive_path,
        message_count=len(messages),
        session_key=session_key,
    )
    return ArchiveResult(archive_path=archive_path, message_count=len(messages))


# ---------------------------------------------------------------------------
# Placeholder
# ---------------------------------------------------------------------------


def create_drop_placeholder(
    message_count: int,
    *,
    archive_path: Path | str | None = None,
    timestamp: datetime | None = None,
    timezone: str | tzinfo | None = None,
) -> str:
    """Text that stands in for archived messages in the live context."""
    tz = resolve_timezone(timezone)
    now = timestamp or datetime.now(tz)
    lines = [
        f"[Earlier conversation archived at {format_date_stamp(now, tz)} {format_time_stamp(now, tz)}]",
        f"{message_count} messages moved to memory for RAG retrieval.",
    ]
    if archive_path:
        lines.append(f"Archive: {archive_path}")
    lines.append(f"Use {RETRIEVAL_TOOL_NAME} to retrieve past context if needed.")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Reading archives back
# ---------------------------------------------------------------------------


def _parse_section(body_lines: list[str]) -> ArchivedSection:
    header: dict[str, str] = {}
    idx = 0
    while idx < len(body_lines) and body_lines[idx].strip() != "---":
        m = _HEADER_RE.match(body_lines[idx])
        if m:
            header[m.group(1)] = m.group(2)
        idx += 1

    body = body_lines[idx + 1:]
    while body and not body[-1].strip():
        body.pop()
    if body and body[-1].strip() == "---":
        body.pop()

    count = header.get("Messages")
    return ArchivedSection(
        archived_at=header.get("Archived at"),
        session_key=header.get("Session"),
        message_count=int(count) if count and count.isdigit() else None,
        body="\n".join(body).strip("\n"),
    )


def read_archive_sections(path: Path) -> list[ArchivedSection]:
    """Parse a daily memory file into its archived batches, in append order."""
    _, sections = split_markdown_h2_sections(
        MemoryIO.read_text(path),
        headings={ARCHIVE_MARKER},
        next_line_prefix="**Archived at:**",
    )
    return [_parse_section(lines) for _, lines in sections]
