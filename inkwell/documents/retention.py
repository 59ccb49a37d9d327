"""
Inkwell Retention Service — age and count caps on version history.

Two rules, both driven by the document owner's RetentionPolicy:

    by age:   delete versions with created_at < now - retention_days
    by count: keep the newest max_versions (created_at desc, id desc)

The same session-level helpers back the interactive calls (owner-checked,
one document) and the daily sweep (system-wide). The sweep walks documents
in id-ordered batches, runs each document in its own transaction and
records per-document failures in a SweepReport instead of aborting.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from inkwell.db.models import Document, DocumentVersion
from inkwell.documents.base import DocumentServiceBase
from inkwell.documents.preferences import PreferencesService
from inkwell.documents.schemas import RetentionPolicy, SweepReport
from inkwell.engine.context import require_execution_context
from inkwell.engine.logging import log, log_sweep_run

logger = logging.getLogger("inkwell.documents.retention")


def _delete_ids(session: Session, ids: List[int]) -> int:
    if not ids:
        return 0
    result = session.execute(delete(DocumentVersion).where(DocumentVersion.id.in_(ids)))
    return result.rowcount or 0


class RetentionService(DocumentServiceBase):

    def __init__(self, *args, preferences: Optional[PreferencesService] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._preferences = preferences or PreferencesService(
            self._session_factory, self._guard, self._clock, self._config
        )

    # -------------------------------------------------------------------
    # Session-level rules
    # -------------------------------------------------------------------

    def delete_expired(self, session: Session, document_id: int, retention_days: int) -> int:
        """Delete versions older than ``retention_days``. Returns the count."""
        cutoff = self.now() - timedelta(days=retention_days)
        stmt = select(DocumentVersion.id).where(
            DocumentVersion.document_id == document_id,
            DocumentVersion.created_at < cutoff,
        )
        return _delete_ids(session, list(session.execute(stmt).scalars()))

    def delete_excess(self, session: Session, document_id: int, max_versions: int) -> int:
        """Delete all but the newest ``max_versions``. Returns the count."""
        stmt = (
            select(DocumentVersion.id)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.created_at.desc(), DocumentVersion.id.desc())
            .offset(max_versions)
        )
        return _delete_ids(session, list(session.execute(stmt).scalars()))

    # -------------------------------------------------------------------
    # Interactive (owner-checked)
    # -------------------------------------------------------------------

    def cleanup_old_versions(self, document_id: int) -> int:
        """Apply the owner's age cap to one document."""
        ctx = require_execution_context()
        with self._transaction("cleanup_old_versions", record_type="document_version", document_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            policy = self._preferences.resolve_policy(session, document.user_id)
            deleted = self.delete_expired(session, document_id, policy.history_retention_days)

        if deleted:
            logger.info(
                f"Deleted {deleted} version(s) of doc {document_id} older than "
                f"{policy.history_retention_days}d"
            )
        return deleted

    def enforce_max_versions(self, document_id: int) -> int:
        """Apply the owner's count cap to one document."""
        ctx = require_execution_context()
        with self._transaction("enforce_max_versions", record_type="document_version", document_id=document_id) as session:
            document = self._guard.require_document_owner(session, document_id, ctx.user_id)
            policy = self._preferences.resolve_policy(session, document.user_id)
            deleted = self.delete_excess(session, document_id, policy.history_max_versions)

        if deleted:
            logger.info(
                f"Deleted {deleted} version(s) of doc {document_id} beyond "
                f"max {policy.history_max_versions}"
            )
        return deleted

    # -------------------------------------------------------------------
    # Daily sweep
    # -------------------------------------------------------------------

    def sweep_all(self, trigger: str = "schedule") -> SweepReport:
        """
        Apply both caps to every document.

        A failing document is logged and recorded in the report; the sweep
        moves on to the next one.
        """
        started = time.monotonic()
        report = SweepReport()
        policies: Dict[str, RetentionPolicy] = {}
        batch_size = self.config.retention.sweep_batch_size
        last_id = 0

        while True:
            batch = self._next_batch(last_id, batch_size)
            if not batch:
                break
            last_id = batch[-1][0]

            for document_id, owner_id in batch:
                report.documents_scanned += 1
                try:
                    by_age, by_count = self._sweep_document(document_id, owner_id, policies)
                except Exception as e:
                    logger.error(f"Retention sweep failed for doc {document_id}: {e}")
                    report.failures.append({"document_id": document_id, "error": str(e)})
                    continue
                report.deleted_by_age += by_age
                report.deleted_by_count += by_count

        report.duration_ms = round((time.monotonic() - started) * 1000, 2)
        logger.info(
            f"Retention sweep: {report.documents_scanned} docs, "
            f"{report.deleted_by_age} by age, {report.deleted_by_count} by count, "
            f"{len(report.failures)} failure(s)"
        )
        log(log_sweep_run(
            documents_scanned=report.documents_scanned,
            deleted_by_age=report.deleted_by_age,
            deleted_by_count=report.deleted_by_count,
            failures=len(report.failures),
            duration_ms=report.duration_ms,
            trigger=trigger,
        ))
        return report

    def _next_batch(self, after_id: int, batch_size: int) -> List[tuple]:
        with self._transaction("sweep_batch") as session:
            stmt = (
                select(Document.id, Document.user_id)
                .where(Document.id > after_id)
                .order_by(Document.id)
                .limit(batch_size)
            )
            return [tuple(row) for row in session.execute(stmt)]

    def _sweep_document(
        self,
        document_id: int,
        owner_id: str,
        policies: Dict[str, RetentionPolicy],
    ) -> tuple:
        with self._transaction("sweep_document", record_type="document", record_id=document_id) as session:
            policy = policies.get(owner_id)
            if policy is None:
                policy = self._preferences.resolve_policy(session, owner_id)
                policies[owner_id] = policy
            by_age = self.delete_expired(session, document_id, policy.history_retention_days)
            by_count = self.delete_excess(session, document_id, policy.history_max_versions)
        return by_age, by_count
