"""
Inkwell Document Service — create, update, read, share, export and import documents.

Reads that can be served to non-owners (published pages, share links)
return None for anything the caller may not see, so a missing document
and a private one look the same.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from inkwell.db.models import Block, Document
from inkwell.documents.base import (
    DocumentServiceBase,
    is_publicly_visible,
    share_link_active,
    validate_input,
)
from inkwell.documents.schemas import (
    BlockRead,
    DocumentExport,
    DocumentRead,
    ImportBatch,
    ImportDocument,
    ImportResult,
    SharePermission,
)
from inkwell.engine.context import get_execution_context, require_execution_context
from inkwell.engine.errors import InkwellRecordError
from inkwell.engine.logging import log, log_import_run

logger = logging.getLogger("inkwell.documents.service")


class DocumentPatch(BaseModel):
    """Fields the owner may change through ``update``."""

    title: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = None
    cover_image: Optional[str] = None
    is_published: Optional[bool] = None
    tags: Optional[List[str]] = None
    summary: Optional[str] = None


class SharingInput(BaseModel):
    share_enabled: bool
    share_permission: Optional[SharePermission] = None
    share_expires_at: Optional[datetime] = None


class DocumentService(DocumentServiceBase):

    def create(self, title: str, parent_id: Optional[int] = None) -> int:
        """Create an empty document, optionally under one of the caller's documents."""
        ctx = require_execution_context()
        with self._transaction("create_document", record_type="document") as session:
            if parent_id is not None:
                self._guard.require_document_owner(session, parent_id, ctx.user_id)
            document = Document(
                user_id=ctx.user_id,
                title=title,
                parent_id=parent_id,
                is_archived=False,
                is_published=False,
            )
            session.add(document)
            session.flush()
            document_id = document.id

        logger.info(f"Created doc {document_id} for {ctx.user_id}")
        return document_id

    def update(self, document_id: int, **fields) -> DocumentRead:
        """Patch metadata. Fields left out (or None) keep their value."""
        ctx = require_execution_context()
        patch = validate_input(DocumentPatch, fields, f"documents.{document_id}")
        changes = patch.model_dump(exclude_none=True)

        with self._transaction("update_document", record_type="document", record_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            for name, value in changes.items():
                setattr(document, name, value)
            session.flush()
            return DocumentRead.model_validate(document)

    def get_by_id(self, document_id: int) -> Optional[DocumentRead]:
        ctx = get_execution_context()
        with self._transaction("get_document", record_id=document_id) as session:
            document = session.get(Document, document_id)
            if document is None:
                return None
            if is_publicly_visible(document):
                return DocumentRead.model_validate(document)
            if ctx is None or document.user_id != ctx.user_id:
                return None
            return DocumentRead.model_validate(document)

    def get_sidebar(self, parent_id: Optional[int] = None) -> List[DocumentRead]:
        """The caller's non-archived documents directly under ``parent_id``."""
        ctx = require_execution_context()
        with self._transaction("get_sidebar") as session:
            parent_clause = (
                Document.parent_id.is_(None) if parent_id is None else Document.parent_id == parent_id
            )
            stmt = (
                select(Document)
                .where(
                    Document.user_id == ctx.user_id,
                    parent_clause,
                    Document.is_archived.is_(False),
                )
                .order_by(Document.created_at.desc(), Document.id.desc())
            )
            return [DocumentRead.model_validate(d) for d in session.execute(stmt).scalars()]

    # -------------------------------------------------------------------
    # Sharing
    # -------------------------------------------------------------------

    def update_sharing(
        self,
        document_id: int,
        share_enabled: bool,
        share_permission: Optional[SharePermission] = None,
        share_expires_at: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Enable or disable the share link. Returns the token (None once disabled).

        The token is generated when sharing is switched on and kept while it
        stays on; disabling clears token, permission and expiry.
        """
        ctx = require_execution_context()
        sharing = validate_input(
            SharingInput,
            {
                "share_enabled": share_enabled,
                "share_permission": share_permission,
                "share_expires_at": share_expires_at,
            },
            f"documents.{document_id}",
        )

        with self._transaction("update_sharing", record_type="document", record_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            token = document.share_token
            if share_enabled and not token:
                token = uuid.uuid4().hex[: self.config.sharing.token_length]

            document.share_enabled = share_enabled
            document.share_token = token if share_enabled else None
            document.share_permission = sharing.share_permission if share_enabled else None
            document.share_expires_at = sharing.share_expires_at if share_enabled else None

        logger.info(f"Sharing {'enabled' if share_enabled else 'disabled'} for doc {document_id}")
        return token if share_enabled else None

    def get_shared_document(self, share_token: str) -> Optional[DocumentRead]:
        """The document behind an active share link, or None."""
        with self._transaction("get_shared_document") as session:
            stmt = select(Document).where(Document.share_token == share_token)
            document = session.execute(stmt).scalars().first()
            if document is None or not share_link_active(document, self.now()):
                return None
            return DocumentRead.model_validate(document)

    # -------------------------------------------------------------------
    # Export / import
    # -------------------------------------------------------------------

    def export_documents(
        self,
        include_archived: bool = False,
        include_blocks: bool = False,
    ) -> List[DocumentExport]:
        """
        The caller's documents, newest first.

        Archived documents are left out unless ``include_archived``; with
        ``include_blocks`` each document carries its blocks in position order.
        """
        ctx = require_execution_context()
        with self._transaction("export_documents") as session:
            stmt = select(Document).where(Document.user_id == ctx.user_id)
            if not include_archived:
                stmt = stmt.where(Document.is_archived.is_(False))
            stmt = stmt.order_by(Document.created_at.desc(), Document.id.desc())
            documents = list(session.execute(stmt).scalars())

            blocks_by_doc = {}
            if include_blocks and documents:
                block_stmt = (
                    select(Block)
                    .where(Block.document_id.in_([d.id for d in documents]))
                    .order_by(Block.document_id, Block.position, Block.id)
                )
                for block in session.execute(block_stmt).scalars():
                    blocks_by_doc.setdefault(block.document_id, []).append(BlockRead.model_validate(block))

            # Built from DocumentRead so the ORM ``blocks`` relationship is never loaded.
            exported = [
                DocumentExport(
                    **DocumentRead.model_validate(document).model_dump(),
                    blocks=blocks_by_doc.get(document.id, []) if include_blocks else None,
                )
                for document in documents
            ]

        logger.info(f"Exported {len(exported)} doc(s) for {ctx.user_id}")
        return exported

    def import_documents(self, documents: List[Any]) -> ImportResult:
        """
        Create documents (and their blocks) from an exported batch.

        The whole batch is validated before anything is written. A document
        whose title the caller already uses is skipped, and its source id
        points at the existing document. Every other document is created
        unpublished in its own transaction, so one failure does not stop
        the rest. Parent links between documents of the batch are set once
        all of them exist; pre-existing documents are never re-parented.
        """
        ctx = require_execution_context()
        batch = validate_input(ImportBatch, {"documents": documents}, "documents.import")
        started = time.monotonic()
        result = ImportResult()
        created = []

        for item in batch.documents:
            try:
                with self._transaction("import_document", record_type="document") as session:
                    existing = self._find_by_title(session, ctx.user_id, item.title)
                    if existing is not None:
                        result.skipped += 1
                        if item.source_id is not None:
                            result.id_map[item.source_id] = existing
                        continue
                    document_id = self._insert_imported(session, item, ctx.user_id)
            except InkwellRecordError as e:
                logger.error(f"Import of '{item.title}' failed: {e}")
                result.failed += 1
                continue
            result.success += 1
            created.append((item, document_id))
            if item.source_id is not None:
                result.id_map[item.source_id] = document_id

        links = {
            document_id: result.id_map[item.parent_source_id]
            for item, document_id in created
            if item.parent_source_id is not None
            and item.parent_source_id in result.id_map
            and result.id_map[item.parent_source_id] != document_id
        }
        if links:
            with self._transaction("import_link_parents") as session:
                for document_id, parent_id in links.items():
                    session.get(Document, document_id).parent_id = parent_id

        duration_ms = round((time.monotonic() - started) * 1000, 2)
        logger.info(
            f"Imported for {ctx.user_id}: {result.success} created, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        log(log_import_run(
            ctx.user_id,
            success=result.success,
            failed=result.failed,
            skipped=result.skipped,
            duration_ms=duration_ms,
            execution_id=ctx.execution_id,
        ))
        return result

    @staticmethod
    def _find_by_title(session: Session, user_id: str, title: str) -> Optional[int]:
        stmt = select(Document.id).where(Document.user_id == user_id, Document.title == title)
        return session.execute(stmt).scalars().first()

    def _insert_imported(self, session: Session, item: ImportDocument, user_id: str) -> int:
        document = Document(
            user_id=user_id,
            title=item.title,
            icon=item.icon,
            cover_image=item.cover_image,
            tags=item.tags,
            is_archived=item.is_archived,
            is_published=False,
        )
        session.add(document)
        session.flush()

        # Source positions only decide order; stored positions are 0..n-1.
        ordered = sorted(
            enumerate(item.blocks),
            key=lambda pair: (pair[1].position if pair[1].position is not None else pair[0], pair[0]),
        )
        now = self.now()
        for position, (_, block) in enumerate(ordered):
            session.add(Block(
                document_id=document.id,
                type=block.type,
                content=block.content,
                props=block.props,
                position=position,
                version=1,
                last_modified_by=user_id,
                last_modified_at=now,
            ))
        session.flush()
        return document.id
