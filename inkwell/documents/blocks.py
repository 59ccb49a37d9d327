"""
Inkwell Block Service — reconciliation of editor block lists and single-block CRUD.

The editor sends the complete, ordered block list of a document on a
debounce. ``sync_blocks`` turns it into the minimal set of writes:

    incoming[i]  ↔  i-th stored block (ordered by position, then id)

    stored exists, differs   → update in place, version += 1, stamp modifier
    stored exists, identical → untouched
    no stored block at i     → insert at position i, version = 1
    stored blocks past end   → delete

Correspondence is positional on purpose: the editor's block ids are not
trusted, and a reorder shows up as updates at the affected indexes.
The per-block version counter is informational, not a concurrency guard;
concurrent syncs resolve by whichever transaction commits last.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterable, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from inkwell.db.models import Block, Document
from inkwell.documents.base import DocumentServiceBase, is_publicly_visible, validate_input
from inkwell.documents.schemas import BlockInput, BlockPosition, BlockRead, SyncResult
from inkwell.engine.context import get_execution_context, require_execution_context
from inkwell.engine.logging import log, log_block_sync

logger = logging.getLogger("inkwell.documents.blocks")


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def block_differs(stored: Block, incoming: BlockInput, position: int) -> bool:
    """True when any persisted field of ``stored`` would change."""
    return (
        stored.type != incoming.type
        or stored.position != position
        or _canonical(stored.content) != _canonical(incoming.content)
        or _canonical(stored.props) != _canonical(incoming.props)
    )


def fetch_ordered_blocks(session: Session, document_id: int) -> List[Block]:
    """All blocks of a document in their stable fetch order."""
    stmt = (
        select(Block)
        .where(Block.document_id == document_id)
        .order_by(Block.position, Block.id)
    )
    return list(session.execute(stmt).scalars())


class BlockService(DocumentServiceBase):
    """Block persistence for one storage backend."""

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------

    def sync_blocks(
        self,
        document_id: int,
        blocks: Sequence[Union[BlockInput, dict]],
    ) -> SyncResult:
        """
        Reconcile the editor's full block list into stored blocks.

        Returns the number of created, updated and deleted blocks. Calling
        it twice with the same list performs no writes the second time.
        """
        ctx = require_execution_context()
        incoming = [
            validate_input(BlockInput, b, f"documents.{document_id}.blocks[{i}]")
            for i, b in enumerate(blocks)
        ]

        started = time.monotonic()
        result = SyncResult()

        with self._transaction("sync_blocks", record_type="block", document_id=document_id) as session:
            self._guard.require_document_owner(session, document_id, ctx.user_id)
            existing = fetch_ordered_blocks(session, document_id)
            now = self.now()

            for position, new_block in enumerate(incoming):
                if position < len(existing):
                    stored = existing[position]
                    if block_differs(stored, new_block, position):
                        stored.type = new_block.type
                        stored.content = new_block.content
                        stored.props = new_block.props
                        stored.position = position
                        stored.version = (stored.version or 1) + 1
                        stored.last_modified_by = ctx.user_id
                        stored.last_modified_at = now
                        result.updated += 1
                else:
                    session.add(Block(
                        document_id=document_id,
                        type=new_block.type,
                        content=new_block.content,
                        props=new_block.props,
                        position=position,
                        version=1,
                        last_modified_by=ctx.user_id,
                        last_modified_at=now,
                    ))
                    result.created += 1

            for stale in existing[len(incoming):]:
                session.delete(stale)
                result.deleted += 1

        duration_ms = round((time.monotonic() - started) * 1000, 2)
        if result.total_writes:
            logger.info(
                f"Synced doc {document_id}: +{result.created} ~{result.updated} -{result.deleted}"
            )
        log(log_block_sync(
            document_id=document_id,
            user_id=ctx.user_id,
            created=result.created,
            updated=result.updated,
            deleted=result.deleted,
            duration_ms=duration_ms,
            execution_id=ctx.execution_id,
        ))
        return result

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    def get_document_blocks(self, document_id: int) -> List[BlockRead]:
        """
        Ordered blocks of a document.

        Visible to the owner, or to anyone when the document is published
        and not archived. Otherwise an empty list.
        """
        ctx = get_execution_context()
        with self._transaction("get_document_blocks", document_id=document_id) as session:
            document = session.get(Document, document_id)
            if document is None:
                return []
            is_owner = ctx is not None and document.user_id == ctx.user_id
            if not (is_owner or is_publicly_visible(document)):
                return []
            return [BlockRead.model_validate(b) for b in fetch_ordered_blocks(session, document_id)]

    # -------------------------------------------------------------------
    # Single-block mutations
    # -------------------------------------------------------------------

    def create_block(
        self,
        document_id: int,
        type: str,
        position: int,
        content: Any = None,
        props: Any = None,
    ) -> int:
        """Insert one block. Returns its id."""
        ctx = require_execution_context()
        data = validate_input(
            BlockInput, {"type": type, "content": content, "props": props}, f"documents.{document_id}"
        )
        with self._transaction("create_block", record_type="block", document_id=document_id) as session:
            self._guard.require_document_owner(session, document_id, ctx.user_id)
            block = Block(
                document_id=document_id,
                type=data.type,
                content=data.content,
                props=data.props,
                position=position,
                version=1,
                last_modified_by=ctx.user_id,
                last_modified_at=self.now(),
            )
            session.add(block)
            session.flush()
            return block.id

    def update_block(
        self,
        block_id: int,
        type: Optional[str] = None,
        content: Any = None,
        props: Any = None,
        position: Optional[int] = None,
    ) -> int:
        """
        Patch the given fields of one block (None means "leave as is").

        Always bumps the version counter and stamps the modifier.
        """
        ctx = require_execution_context()
        with self._transaction("update_block", record_type="block", record_id=block_id) as session:
            block, _ = self._guard.require_block_owner(session, block_id, ctx.user_id)
            if type is not None:
                block.type = type
            if content is not None:
                block.content = content
            if props is not None:
                block.props = props
            if position is not None:
                block.position = position
            block.version = (block.version or 1) + 1
            block.last_modified_by = ctx.user_id
            block.last_modified_at = self.now()
            return block.id

    def delete_block(self, block_id: int) -> None:
        ctx = require_execution_context()
        with self._transaction("delete_block", record_type="block", record_id=block_id) as session:
            block, _ = self._guard.require_block_owner(session, block_id, ctx.user_id)
            session.delete(block)

    def reorder_blocks(
        self,
        document_id: int,
        block_positions: Iterable[Union[BlockPosition, dict]],
    ) -> None:
        """
        Move blocks to new positions.

        Entries naming a missing block or a block of another document are
        skipped. Position moves do not bump the version counter.
        """
        ctx = require_execution_context()
        moves = [
            validate_input(BlockPosition, m, f"documents.{document_id}.reorder")
            for m in block_positions
        ]
        with self._transaction("reorder_blocks", record_type="block", document_id=document_id) as session:
            self._guard.require_document_owner(session, document_id, ctx.user_id)
            now = self.now()
            for move in moves:
                block = session.get(Block, move.block_id)
                if block is None or block.document_id != document_id:
                    logger.debug(f"Reorder skipped block {move.block_id} (not in doc {document_id})")
                    continue
                block.position = move.new_position
                block.last_modified_by = ctx.user_id
                block.last_modified_at = now
