"""Structured logging for session lifecycle and archival events (structlog).

Events carry ``session_key`` and, for archive writes, ``archive_path``.
``session_key`` is bound through :func:`structlog.contextvars.bound_contextvars`
around compaction so nested archive events inherit it.
"""

import json
import logging
import re
import sys
from os import PathLike

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

# Credentials users paste into chats end up in session keys and archived text.
_SECRET_RE = re.compile(r"sk-[A-Za-z0-9_-]{10,}|Bearer\s+[A-Za-z0-9_\-.]{10,}")


def mask_secret(value: str) -> str:
    """Keep the first and last 4 characters of *value*.

    >>> mask_secret("sk-abc123456789xyz")
    'sk-a****9xyz'
    """
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


def redact(text: str) -> str:
    return _SECRET_RE.sub(lambda m: mask_secret(m.group(0)), text)


def stringify_paths(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Render path-like values (``archive_path``, workspace dirs) as plain strings."""
    for key, value in event_dict.items():
        if isinstance(value, PathLike):
            event_dict[key] = str(value)
    return event_dict


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = redact(value)
    return event_dict


def shared_processors() -> list[Processor]:
    """Processor chain applied to every sessionvault event before rendering."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        stringify_paths,
        redact_secrets,
    ]


def setup_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Route structlog through the stdlib ``sessionvault`` logger.

    Args:
        json_output: JSON lines when True, otherwise the dev console renderer.
        level: Log level for the ``sessionvault`` logger hierarchy.
    """
    if json_output:
        renderer: Processor = structlog.processors.JSONRenderer(
            serializer=lambda obj, **kw: json.dumps(obj, ensure_ascii=False, **kw)
        )
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger("sessionvault")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))


def get_logger(name: str = "sessionvault") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
