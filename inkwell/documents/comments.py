"""
Inkwell Comment Service — threaded comments anchored to text selections.

Anyone who can read a document (owner, published page, or an active share
link with "comment" or "edit" permission) may comment on it. Only the
author deletes a comment; deleting also removes its direct replies.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator
from sqlalchemy import delete, select

from inkwell.db.models import Comment, Document
from inkwell.documents.base import (
    DocumentServiceBase,
    is_publicly_visible,
    share_link_active,
    validate_input,
)
from inkwell.documents.schemas import CommentRead
from inkwell.engine.context import require_execution_context
from inkwell.engine.errors import InkwellNotFoundError
from inkwell.engine.logging import log, log_security_event

logger = logging.getLogger("inkwell.documents.comments")

_COMMENTING_PERMISSIONS = ("comment", "edit")


class CommentInput(BaseModel):
    content: str = Field(min_length=1)
    selection_start: int = Field(ge=0)
    selection_end: int = Field(ge=0)
    selected_text: str = ""
    parent_comment_id: Optional[int] = None

    @model_validator(mode="after")
    def check_selection(self) -> "CommentInput":
        if self.selection_end < self.selection_start:
            raise ValueError("selection_end must not precede selection_start")
        return self


class CommentService(DocumentServiceBase):

    def _can_comment(self, document: Document, user_id: str) -> bool:
        if document.user_id == user_id or is_publicly_visible(document):
            return True
        return (
            share_link_active(document, self.now())
            and document.share_permission in _COMMENTING_PERMISSIONS
        )

    def add_comment(
        self,
        document_id: int,
        content: str,
        selection_start: int,
        selection_end: int,
        selected_text: str = "",
        parent_comment_id: Optional[int] = None,
    ) -> int:
        """Add a comment (or a reply) authored by the caller. Returns its id."""
        ctx = require_execution_context()
        data = validate_input(
            CommentInput,
            {
                "content": content,
                "selection_start": selection_start,
                "selection_end": selection_end,
                "selected_text": selected_text,
                "parent_comment_id": parent_comment_id,
            },
            f"documents.{document_id}.comments",
        )

        with self._transaction("add_comment", record_type="comment", document_id=document_id) as session:
            document = session.get(Document, document_id)
            if document is None:
                raise InkwellNotFoundError(
                    "Document not found",
                    record_type="document",
                    record_id=document_id,
                    user_id=ctx.user_id,
                )
            if not self._can_comment(document, ctx.user_id):
                self._guard.deny(
                    "Unauthorized", ctx.user_id, f"documents.{document_id}", "comments", "comment"
                )
            if data.parent_comment_id is not None:
                parent = self._guard.require_comment(session, data.parent_comment_id)
                if parent.document_id != document_id:
                    raise InkwellNotFoundError(
                        "Comment not found",
                        record_type="comment",
                        record_id=data.parent_comment_id,
                    )

            comment = Comment(
                document_id=document_id,
                content=data.content,
                author_id=ctx.user_id,
                author_name=ctx.display_name or ctx.user_id,
                selection_start=data.selection_start,
                selection_end=data.selection_end,
                selected_text=data.selected_text,
                parent_comment_id=data.parent_comment_id,
                is_resolved=False,
                created_at=self.now(),
            )
            session.add(comment)
            session.flush()
            return comment.id

    def get_document_comments(self, document_id: int) -> List[CommentRead]:
        """Comments of a document in creation order; [] when the caller cannot see it."""
        ctx = require_execution_context()
        with self._transaction("get_document_comments", document_id=document_id) as session:
            document = session.get(Document, document_id)
            if document is None or not (
                document.user_id == ctx.user_id
                or is_publicly_visible(document)
                or share_link_active(document, self.now())
            ):
                return []
            stmt = (
                select(Comment)
                .where(Comment.document_id == document_id)
                .order_by(Comment.created_at, Comment.id)
            )
            return [CommentRead.model_validate(c) for c in session.execute(stmt).scalars()]

    def resolve_comment(self, comment_id: int) -> bool:
        """
        Toggle the resolved flag. Returns the new value.

        The author or the document owner may resolve.
        """
        ctx = require_execution_context()
        with self._transaction("resolve_comment", record_type="comment", record_id=comment_id) as session:
            comment = self._guard.require_comment(session, comment_id)
            document = session.get(Document, comment.document_id)
            owner_id = document.user_id if document is not None else None
            if ctx.user_id not in (comment.author_id, owner_id):
                self._guard.deny(
                    "Unauthorized", ctx.user_id, f"comments.{comment_id}", "comments", "resolve"
                )

            resolved = not comment.is_resolved
            comment.is_resolved = resolved
            comment.resolved_at = self.now() if resolved else None
            comment.resolved_by = ctx.user_id if resolved else None
            return resolved

    def delete_comment(self, comment_id: int) -> None:
        """Delete a comment and its direct replies. Author only."""
        ctx = require_execution_context()
        with self._transaction("delete_comment", record_type="comment", record_id=comment_id) as session:
            comment = self._guard.require_comment(session, comment_id)
            if comment.author_id != ctx.user_id:
                self._guard.deny(
                    "Unauthorized", ctx.user_id, f"comments.{comment_id}", "comments", "delete"
                )
            replies = session.execute(
                delete(Comment).where(Comment.parent_comment_id == comment_id)
            ).rowcount or 0
            session.execute(delete(Comment).where(Comment.id == comment_id))

        logger.info(f"Deleted comment {comment_id} ({replies} repl(ies))")
        log(log_security_event(
            event="comment_deleted",
            object_ref=f"comments.{comment_id}",
            object_type="comments",
            permission_needed="delete",
            user_id=ctx.user_id,
            execution_id=ctx.execution_id,
            level="INFO",
        ))
