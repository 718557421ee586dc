"""Daily memory archive for compacted conversation history."""

from sessionvault.memory.archive import (
    ARCHIVE_MARKER,
    ArchivedSection,
    ArchiveResult,
    archive_messages_to_memory,
    create_drop_placeholder,
    extract_message_text,
    format_messages_as_markdown,
    read_archive_sections,
)

__all__ = [
    "ARCHIVE_MARKER",
    "ArchiveResult",
    "ArchivedSection",
    "archive_messages_to_memory",
    "create_drop_placeholder",
    "extract_message_text",
    "format_messages_as_markdown",
    "read_archive_sections",
]
