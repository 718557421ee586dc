"""
sessionvault - session freshness policies and archival context compaction.
"""

__version__ = "0.1.0"
