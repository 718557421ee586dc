"""Utility helpers."""

from sessionvault.utils.helpers import ensure_dir, resolve_timezone

__all__ = ["ensure_dir", "resolve_timezone"]
