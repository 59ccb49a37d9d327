"""
Inkwell Models — SQLAlchemy tables for the knowledge base.

Tables:
1. documents          — Owned knowledge-base nodes (tree via parent_id)
2. blocks             — Ordered content units of a document
3. document_versions  — Immutable snapshots (metadata + blocks)
4. comments           — Threaded comments anchored to a text selection
5. user_preferences   — Per-user history / retention settings

Blocks, versions and comments belong to exactly one document and are
removed with it.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from inkwell.db.base import Base, TimestampMixin, utcnow


# ---------------------------------------------------------------------------
# 1. Documents
# ---------------------------------------------------------------------------

class Document(Base, TimestampMixin):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    title = Column(String(500), nullable=False, default="Untitled")
    parent_id = Column(Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    is_archived = Column(Boolean, default=False, nullable=False)
    is_published = Column(Boolean, default=False, nullable=False)
    icon = Column(String(100), nullable=True)
    cover_image = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    summary = Column(Text, nullable=True)

    # Sharing
    share_enabled = Column(Boolean, default=False, nullable=False)
    share_token = Column(String(64), unique=True, nullable=True)
    share_permission = Column(String(20), nullable=True)
    share_expires_at = Column(DateTime(timezone=True), nullable=True)

    last_auto_version_at = Column(DateTime(timezone=True), nullable=True)

    blocks = relationship(
        "Block", back_populates="document", cascade="all, delete-orphan", passive_deletes=True,
    )
    versions = relationship(
        "DocumentVersion", back_populates="document", cascade="all, delete-orphan", passive_deletes=True,
    )
    comments = relationship(
        "Comment", back_populates="document", cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_documents_user_parent", "user_id", "parent_id"),
        CheckConstraint(
            "share_permission IS NULL OR share_permission IN ('view', 'comment', 'edit')",
            name="ck_documents_share_permission",
        ),
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, title='{self.title}', archived={self.is_archived})>"


# ---------------------------------------------------------------------------
# 2. Blocks
# ---------------------------------------------------------------------------

class Block(Base):
    __tablename__ = "blocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(50), nullable=False)
    content = Column(JSON, nullable=True)
    props = Column(JSON, nullable=True)
    position = Column(Integer, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    last_modified_by = Column(String(255), nullable=True)
    last_modified_at = Column(DateTime(timezone=True), default=utcnow, nullable=True)

    document = relationship("Document", back_populates="blocks")

    __table_args__ = (
        Index("idx_blocks_document_position", "document_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<Block(id={self.id}, doc={self.document_id}, pos={self.position}, type='{self.type}')>"


# ---------------------------------------------------------------------------
# 3. Document Versions
# ---------------------------------------------------------------------------

class DocumentVersion(Base):
    __tablename__ = "document_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(255), nullable=False)
    document_snapshot = Column(JSON, nullable=False, default=dict)
    blocks_snapshot = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    change_description = Column(String(500), nullable=True)

    document = relationship("Document", back_populates="versions")

    __table_args__ = (
        Index("idx_versions_document_created", "document_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<DocumentVersion(id={self.id}, doc={self.document_id}, '{self.change_description}')>"


# ---------------------------------------------------------------------------
# 4. Comments
# ---------------------------------------------------------------------------

class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    author_id = Column(String(255), nullable=False)
    author_name = Column(String(200), nullable=False, default="")
    selection_start = Column(Integer, nullable=False, default=0)
    selection_end = Column(Integer, nullable=False, default=0)
    selected_text = Column(Text, nullable=False, default="")
    parent_comment_id = Column(Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True)
    is_resolved = Column(Boolean, default=False, nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    document = relationship("Document", back_populates="comments")

    __table_args__ = (
        Index("idx_comments_document", "document_id"),
    )


# ---------------------------------------------------------------------------
# 5. User Preferences
# ---------------------------------------------------------------------------

class UserPreferences(Base, TimestampMixin):
    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), unique=True, nullable=False, index=True)
    history_enabled = Column(Boolean, nullable=False, default=True)
    history_debounce_ms = Column(Integer, nullable=False, default=30000)
    history_max_versions = Column(Integer, nullable=False, default=50)
    history_retention_days = Column(Integer, nullable=False, default=90)
    history_show_notifications = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<UserPreferences(user_id='{self.user_id}')>"
