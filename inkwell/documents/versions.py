"""
Inkwell Version Service — immutable document snapshots, restore and delete.

A version stores the document's metadata (title, icon, cover image, tags)
and its full ordered block list (type, content, props, position). Versions
are append-only: nothing updates a row once inserted; they disappear only
through ``delete_version``, the retention sweep, or document deletion.

Restoring is itself undoable. ``restore_version`` first commits a
"Before restore checkpoint" snapshot of the current state in its own
transaction, then patches metadata and replaces every block in a second
one. A failure in the second step leaves the checkpoint in place.
Restore is last-writer-wins against a concurrent ``sync_blocks``.
"""

from __future__ import annotations

import copy
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from inkwell.db.base import as_utc
from inkwell.db.models import Block, Document, DocumentVersion
from inkwell.documents.base import DocumentServiceBase
from inkwell.documents.blocks import fetch_ordered_blocks
from inkwell.documents.preferences import PreferencesService
from inkwell.documents.schemas import (
    DEFAULT_CHANGE_DESCRIPTION,
    RESTORE_CHECKPOINT_DESCRIPTION,
    BlockSnapshot,
    DocumentSnapshot,
    VersionRead,
)
from inkwell.engine.context import require_execution_context
from inkwell.engine.logging import log, log_version_event

logger = logging.getLogger("inkwell.documents.versions")


def snapshot_document(document: Document) -> dict:
    return DocumentSnapshot(
        title=document.title,
        icon=document.icon,
        cover_image=document.cover_image,
        tags=list(document.tags) if document.tags is not None else None,
    ).model_dump()


def snapshot_blocks(blocks: List[Block]) -> list:
    # Deep copies: later edits to the live blocks must not reach the snapshot.
    return [
        BlockSnapshot(
            type=b.type,
            content=copy.deepcopy(b.content),
            props=copy.deepcopy(b.props),
            position=b.position,
        ).model_dump()
        for b in blocks
    ]


def versions_newest_first(session: Session, document_id: int) -> List[DocumentVersion]:
    stmt = (
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document_id)
        .order_by(DocumentVersion.created_at.desc(), DocumentVersion.id.desc())
    )
    return list(session.execute(stmt).scalars())


class VersionService(DocumentServiceBase):
    """Snapshot lifecycle of documents."""

    def __init__(self, *args, preferences: Optional[PreferencesService] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._preferences = preferences or PreferencesService(
            self._session_factory, self._guard, self._clock, self._config
        )

    # -------------------------------------------------------------------
    # Snapshot creation
    # -------------------------------------------------------------------

    def take_snapshot(
        self,
        session: Session,
        document: Document,
        user_id: str,
        change_description: Optional[str] = None,
    ) -> DocumentVersion:
        """Insert a version of ``document`` as it is in ``session`` right now."""
        version = DocumentVersion(
            document_id=document.id,
            user_id=user_id,
            document_snapshot=snapshot_document(document),
            blocks_snapshot=snapshot_blocks(fetch_ordered_blocks(session, document.id)),
            created_at=self.now(),
            change_description=change_description or DEFAULT_CHANGE_DESCRIPTION,
        )
        session.add(version)
        session.flush()
        return version

    def create_version(self, document_id: int, change_description: Optional[str] = None) -> int:
        """
        Snapshot the document and return the new version id.

        Retention caps are not checked here; see RetentionService.
        """
        ctx = require_execution_context()
        with self._transaction("create_version", record_type="document_version", document_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            version = self.take_snapshot(session, document, ctx.user_id, change_description)
            version_id = version.id
            description = version.change_description

        logger.info(f"Created version {version_id} for doc {document_id} ({description})")
        log(log_version_event(
            "version_created", document_id, ctx.user_id,
            version_id=version_id,
            change_description=description,
            execution_id=ctx.execution_id,
        ))
        return version_id

    def auto_snapshot(self, document_id: int) -> Optional[int]:
        """
        Post-edit hook: snapshot if the owner's debounce interval has passed.

        Skipped (returns None) when history is disabled for the owner or the
        last automatic snapshot is more recent than the debounce interval.
        After a snapshot both retention caps are enforced for the document.
        """
        from inkwell.documents.retention import RetentionService

        ctx = require_execution_context()
        with self._transaction("auto_snapshot", record_type="document_version", document_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            policy = self._preferences.resolve_policy(session, document.user_id)
            if not policy.history_enabled:
                return None

            now = self.now()
            last = as_utc(document.last_auto_version_at)
            if last is not None and now - last < timedelta(milliseconds=policy.history_debounce_ms):
                return None

            version = self.take_snapshot(session, document, ctx.user_id, DEFAULT_CHANGE_DESCRIPTION)
            document.last_auto_version_at = now
            version_id = version.id

        log(log_version_event(
            "version_auto_created", document_id, ctx.user_id,
            version_id=version_id,
            execution_id=ctx.execution_id,
        ))

        retention = RetentionService(
            self._session_factory, self._guard, self._clock, self._config,
            preferences=self._preferences,
        )
        retention.cleanup_old_versions(document_id)
        retention.enforce_max_versions(document_id)
        return version_id

    # -------------------------------------------------------------------
    # Restore
    # -------------------------------------------------------------------

    def restore_version(self, version_id: int) -> int:
        """
        Restore a document to ``version_id`` and return the document id.

        1. commit a "Before restore checkpoint" of the current state
        2. patch title / icon / cover image / tags from the snapshot
        3. delete all current blocks
        4. recreate blocks from the snapshot (version = 1, modifier = caller)
        """
        ctx = require_execution_context()

        with self._transaction("restore_checkpoint", record_type="document_version", record_id=version_id) as session:
            version, document = self._guard.require_version_owner(session, version_id, ctx.user_id)
            document_id = document.id
            checkpoint = self.take_snapshot(session, document, ctx.user_id, RESTORE_CHECKPOINT_DESCRIPTION)
            checkpoint_id = checkpoint.id

        log(log_version_event(
            "version_checkpoint_created", document_id, ctx.user_id,
            version_id=checkpoint_id,
            change_description=RESTORE_CHECKPOINT_DESCRIPTION,
            execution_id=ctx.execution_id,
        ))

        try:
            with self._transaction("restore_version", record_type="document_version", record_id=version_id) as session:
                version, document = self._guard.require_version_owner(session, version_id, ctx.user_id)
                meta = DocumentSnapshot.model_validate(version.document_snapshot)
                document.title = meta.title
                document.icon = meta.icon
                document.cover_image = meta.cover_image
                document.tags = list(meta.tags) if meta.tags is not None else None

                session.execute(delete(Block).where(Block.document_id == document_id))

                now = self.now()
                for data in version.blocks_snapshot:
                    snap = BlockSnapshot.model_validate(data)
                    session.add(Block(
                        document_id=document_id,
                        type=snap.type,
                        content=copy.deepcopy(snap.content),
                        props=copy.deepcopy(snap.props),
                        position=snap.position,
                        version=1,
                        last_modified_by=ctx.user_id,
                        last_modified_at=now,
                    ))
        except Exception as e:
            logger.error(
                f"Restore of version {version_id} failed; checkpoint {checkpoint_id} kept: {e}"
            )
            log(log_version_event(
                "version_restore_failed", document_id, ctx.user_id,
                version_id=version_id,
                execution_id=ctx.execution_id,
                error=str(e),
            ))
            raise

        logger.info(f"Restored doc {document_id} to version {version_id}")
        log(log_version_event(
            "version_restored", document_id, ctx.user_id,
            version_id=version_id,
            execution_id=ctx.execution_id,
        ))
        return document_id

    # -------------------------------------------------------------------
    # Delete / read
    # -------------------------------------------------------------------

    def delete_version(self, version_id: int) -> None:
        """Remove exactly one version. Blocks and other versions are untouched."""
        ctx = require_execution_context()
        with self._transaction("delete_version", record_type="document_version", record_id=version_id) as session:
            version, document = self._guard.require_version_owner(session, version_id, ctx.user_id)
            document_id = document.id
            session.delete(version)

        log(log_version_event(
            "version_deleted", document_id, ctx.user_id,
            version_id=version_id,
            execution_id=ctx.execution_id,
        ))

    def get_document_versions(self, document_id: int) -> List[VersionRead]:
        """All versions of a document, newest first."""
        ctx = require_execution_context()
        with self._transaction("get_document_versions", document_id=document_id) as session:
            self._guard.require_document_owner(session, document_id, ctx.user_id, permission="view")
            return [VersionRead.model_validate(v) for v in versions_newest_first(session, document_id)]

    def get_version_by_id(self, version_id: int) -> VersionRead:
        ctx = require_execution_context()
        with self._transaction("get_version_by_id", record_id=version_id) as session:
            version, _ = self._guard.require_version_owner(session, version_id, ctx.user_id, permission="view")
            return VersionRead.model_validate(version)
