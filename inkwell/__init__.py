"""
Inkwell — document persistence & version-history engine.

Block reconciliation, immutable version snapshots with undoable restore,
per-user retention, and archive/restore cascades over the document tree.
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "documents", "security", "process"]
