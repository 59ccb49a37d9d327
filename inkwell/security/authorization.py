"""
Inkwell Authorization Guard — single-owner checks for every mutation.

Every document, and through it every block, version and comment, belongs
to exactly one user. The guard loads the target row inside the caller's
session and confirms ownership:

    missing row          → InkwellNotFoundError
    owned by someone else → InkwellSecurityError (denial is logged)

Read paths that serve published or shared documents do not go through the
guard; they return None instead of raising so existence is not leaked.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from inkwell.db.models import Block, Comment, Document, DocumentVersion
from inkwell.engine.context import get_execution_context
from inkwell.engine.errors import InkwellNotFoundError, InkwellSecurityError
from inkwell.engine.logging import log, log_security_event

logger = logging.getLogger("inkwell.security.authorization")


class AuthorizationGuard:
    """Resolves records and enforces that ``user_id`` owns their document."""

    def require_document_owner(
        self,
        session: Session,
        document_id: int,
        user_id: str,
        permission: str = "edit",
    ) -> Document:
        document = session.get(Document, document_id)
        if document is None:
            raise InkwellNotFoundError(
                "Document not found",
                record_type="document",
                record_id=document_id,
                object_ref=f"documents.{document_id}",
                user_id=user_id,
            )
        self._check_owner(document, user_id, permission, f"documents.{document_id}", "documents")
        return document

    def require_version_owner(
        self,
        session: Session,
        version_id: int,
        user_id: str,
        permission: str = "edit",
    ) -> Tuple[DocumentVersion, Document]:
        version = session.get(DocumentVersion, version_id)
        if version is None:
            raise InkwellNotFoundError(
                "Version not found",
                record_type="document_version",
                record_id=version_id,
                object_ref=f"versions.{version_id}",
                user_id=user_id,
            )
        document = session.get(Document, version.document_id)
        self._check_owner(document, user_id, permission, f"versions.{version_id}", "versions")
        return version, document

    def require_block_owner(
        self,
        session: Session,
        block_id: int,
        user_id: str,
        permission: str = "edit",
    ) -> Tuple[Block, Document]:
        block = session.get(Block, block_id)
        if block is None:
            raise InkwellNotFoundError(
                "Block not found",
                record_type="block",
                record_id=block_id,
                object_ref=f"blocks.{block_id}",
                user_id=user_id,
            )
        document = session.get(Document, block.document_id)
        self._check_owner(document, user_id, permission, f"blocks.{block_id}", "blocks")
        return block, document

    def require_comment(self, session: Session, comment_id: int) -> Comment:
        comment = session.get(Comment, comment_id)
        if comment is None:
            raise InkwellNotFoundError(
                "Comment not found",
                record_type="comment",
                record_id=comment_id,
                object_ref=f"comments.{comment_id}",
            )
        return comment

    def deny(self, message: str, user_id: str, object_ref: str, object_type: str, permission: str) -> None:
        """Log a denial and raise InkwellSecurityError."""
        ctx = get_execution_context()
        execution_id = ctx.execution_id if ctx else None
        logger.warning(f"Access denied: user={user_id} {permission} {object_ref}")
        log(log_security_event(
            event="access_denied",
            object_ref=object_ref,
            object_type=object_type,
            permission_needed=permission,
            user_id=user_id,
            execution_id=execution_id,
        ))
        raise InkwellSecurityError(
            message,
            user_id=user_id,
            object_ref=object_ref,
            object_type=object_type,
            required_permission=permission,
            execution_id=execution_id,
        )

    def _check_owner(
        self,
        document: Optional[Document],
        user_id: str,
        permission: str,
        object_ref: str,
        object_type: str,
    ) -> None:
        # A dangling row whose document vanished is treated like a foreign one.
        if document is None or document.user_id != user_id:
            self.deny("Unauthorized", user_id, object_ref, object_type, permission)


# Global singleton
authorization_guard = AuthorizationGuard()
