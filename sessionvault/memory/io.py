"""Memory file I/O helpers."""

from __future__ import annotations

import re
from collections.abc import Collection
from pathlib import Path

from sessionvault.utils.helpers import append_text, ensure_dir

_H2_HEADING_RE = re.compile(r"^##\s+(.+?)\s*$")


class MemoryIO:
    """Thin I/O adapter so the archive pipeline can be tested independently."""

    @staticmethod
    def ensure_memory_dir(workspace: Path) -> Path:
        return ensure_dir(workspace / "memory")

    @staticmethod
    def append_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
        append_text(path, content, encoding=encoding)

    @staticmethod
    def read_text(path: Path, *, encoding: str = "utf-8") -> str:
        if not path.exists():
            return ""
        return path.read_text(encoding=encoding)


def split_markdown_h2_sections(
    text: str,
    *,
    headings: Collection[str] | None = None,
    next_line_prefix: str | None = None,
) -> tuple[list[str], list[tuple[str, list[str]]]]:
    """Split markdown text into preamble lines and ordered (heading, body_lines) tuples.

    Every matching ``## `` heading starts a new section, so repeated headings
    stay separate and keep file order. When *headings* is given, only those
    headings split; any other H2 line is kept as body text. When
    *next_line_prefix* is given, a heading only splits if the line right after
    it starts with that prefix.
    """
    lines = text.splitlines()
    preamble: list[str] = []
    sections: list[tuple[str, list[str]]] = []
    for idx, raw_line in enumerate(lines):
        m = _H2_HEADING_RE.match(raw_line)
        if m and (headings is None or m.group(1).strip() in headings):
            following = lines[idx + 1] if idx + 1 < len(lines) else ""
            if next_line_prefix is None or following.startswith(next_line_prefix):
                sections.append((m.group(1).strip(), []))
                continue
        if not sections:
            preamble.append(raw_line)
        else:
            sections[-1][1].append(raw_line)
    return preamble, sections
