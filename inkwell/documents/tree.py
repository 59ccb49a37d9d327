"""
Inkwell Document Tree Service — archive, restore and hard removal.

Documents form a forest through ``parent_id``. Archive and restore apply
to a whole subtree:

    1. update the root and commit            (never rolled back afterwards)
    2. walk descendants depth-first          (explicit stack, visited set)
       each node update and each child lookup commits on its own
       (failures collected, walk goes on)

Only descendants owned by the same user are visited. A restored document
whose parent is still archived is detached to the root so it is reachable
from the sidebar again.

Hard removal deletes blocks, comments, versions and then the document in
one transaction. Direct children are reparented to the root.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from inkwell.db.models import Block, Comment, Document, DocumentVersion
from inkwell.documents.base import DocumentServiceBase
from inkwell.documents.schemas import DocumentRead, TreeWalkResult
from inkwell.engine.context import require_execution_context
from inkwell.engine.logging import log, log_tree_event

logger = logging.getLogger("inkwell.documents.tree")


def child_ids(session: Session, user_id: str, parent_id: int) -> List[int]:
    stmt = (
        select(Document.id)
        .where(Document.user_id == user_id, Document.parent_id == parent_id)
        .order_by(Document.id)
    )
    return list(session.execute(stmt).scalars())


class DocumentTreeService(DocumentServiceBase):

    # -------------------------------------------------------------------
    # Archive / restore
    # -------------------------------------------------------------------

    def archive(self, document_id: int) -> DocumentRead:
        """Move a document and all its descendants to the trash."""
        ctx = require_execution_context()
        with self._transaction("archive", record_type="document", record_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            document.is_archived = True
            session.flush()
            root = DocumentRead.model_validate(document)

        walk = self._walk_descendants(document_id, ctx.user_id, archived=True)
        self._report("document_archived", walk, ctx)
        return root

    def restore(self, document_id: int) -> DocumentRead:
        """
        Bring a document and its descendants back from the trash.

        If the parent is still archived the document is detached to the root.
        """
        ctx = require_execution_context()
        with self._transaction("restore", record_type="document", record_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            document.is_archived = False
            if document.parent_id is not None:
                parent = session.get(Document, document.parent_id)
                if parent is not None and parent.is_archived:
                    logger.info(f"Doc {document_id} detached from archived parent {parent.id}")
                    document.parent_id = None
            session.flush()
            root = DocumentRead.model_validate(document)

        walk = self._walk_descendants(document_id, ctx.user_id, archived=False)
        self._report("document_restored", walk, ctx)
        return root

    def _walk_descendants(self, root_id: int, user_id: str, archived: bool) -> TreeWalkResult:
        result = TreeWalkResult(root_id=root_id)
        visited: Set[int] = {root_id}

        stack = list(reversed(self._children(root_id, user_id, result)))
        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)
            try:
                with self._transaction("tree_walk", record_type="document", record_id=node_id) as session:
                    session.execute(
                        update(Document)
                        .where(Document.id == node_id)
                        .values(is_archived=archived)
                    )
                result.updated.append(node_id)
            except Exception as e:
                logger.error(f"Cascade to doc {node_id} (root {root_id}) failed: {e}")
                result.record_failure(node_id, e)
            # Children are walked even when the node itself failed.
            stack.extend(reversed(self._children(node_id, user_id, result)))

        return result

    def _children(self, parent_id: int, user_id: str, result: TreeWalkResult) -> List[int]:
        try:
            with self._transaction("tree_walk_children", record_type="document", record_id=parent_id) as session:
                return child_ids(session, user_id, parent_id)
        except Exception as e:
            logger.error(f"Could not list children of doc {parent_id} (root {result.root_id}): {e}")
            result.record_failure(parent_id, e, stage="children")
            return []

    def _report(self, event: str, walk: TreeWalkResult, ctx) -> None:
        if walk.failures:
            logger.error(
                f"{event} for doc {walk.root_id}: {len(walk.failures)} descendant(s) failed"
            )
        log(log_tree_event(
            event, walk.root_id, ctx.user_id,
            affected=1 + len(walk.updated),
            failures=walk.failures,
            execution_id=ctx.execution_id,
        ))

    # -------------------------------------------------------------------
    # Hard removal
    # -------------------------------------------------------------------

    def remove(self, document_id: int) -> DocumentRead:
        """
        Permanently delete a document with its blocks, comments and versions.

        Returns the document as it was before deletion.
        """
        ctx = require_execution_context()
        with self._transaction("remove", record_type="document", record_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            removed = DocumentRead.model_validate(document)

            session.execute(delete(Block).where(Block.document_id == document_id))
            session.execute(delete(Comment).where(Comment.document_id == document_id))
            session.execute(delete(DocumentVersion).where(DocumentVersion.document_id == document_id))
            reparented = session.execute(
                update(Document)
                .where(Document.parent_id == document_id)
                .values(parent_id=None)
            ).rowcount or 0
            session.execute(delete(Document).where(Document.id == document_id))

        logger.info(f"Removed doc {document_id} ({reparented} child(ren) moved to root)")
        log(log_tree_event(
            "document_removed", document_id, ctx.user_id,
            affected=1,
            execution_id=ctx.execution_id,
        ))
        return removed

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    def get_trash(self, limit: Optional[int] = None) -> List[DocumentRead]:
        """The caller's archived documents, most recently updated first."""
        ctx = require_execution_context()
        with self._transaction("get_trash") as session:
            stmt = (
                select(Document)
                .where(Document.user_id == ctx.user_id, Document.is_archived.is_(True))
                .order_by(Document.updated_at.desc(), Document.id.desc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [DocumentRead.model_validate(d) for d in session.execute(stmt).scalars()]
