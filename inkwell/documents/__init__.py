"""
Inkwell Documents.

Block reconciliation, version history, retention, the document tree and
comments. Every service takes an optional session factory and clock so it
can run against any registered engine.
"""

from inkwell.documents.blocks import BlockService
from inkwell.documents.comments import CommentService
from inkwell.documents.preferences import PreferencesService
from inkwell.documents.retention import RetentionService
from inkwell.documents.service import DocumentService
from inkwell.documents.tree import DocumentTreeService
from inkwell.documents.versions import VersionService

__all__ = [
    "BlockService",
    "CommentService",
    "DocumentService",
    "DocumentTreeService",
    "PreferencesService",
    "RetentionService",
    "VersionService",
]
