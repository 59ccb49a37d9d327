"""
Inkwell Document Schemas — Pydantic models crossing the service boundary.

Inputs from the editor (BlockInput, BlockPosition), snapshot shapes stored
inside DocumentVersion rows, read models returned to callers, and the
RetentionPolicy derived from user preferences.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inkwell.engine.config import (
    ALLOWED_DEBOUNCE_MS,
    ALLOWED_MAX_VERSIONS,
    ALLOWED_RETENTION_DAYS,
    HistoryConfig,
)

DEFAULT_CHANGE_DESCRIPTION = "Auto-saved version"
RESTORE_CHECKPOINT_DESCRIPTION = "Before restore checkpoint"

SharePermission = Literal["view", "comment", "edit"]


# ---------------------------------------------------------------------------
# Editor input
# ---------------------------------------------------------------------------

class BlockInput(BaseModel):
    """
    One block as emitted by the editor.

    The editor's own ``id`` is accepted but never used for matching:
    reconciliation is positional.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[Any] = None
    type: str = Field(min_length=1, max_length=50)
    content: Any = None
    props: Any = None


class BlockPosition(BaseModel):
    block_id: int
    new_position: int = Field(ge=0)


@dataclass
class SyncResult:
    """Write counts of one reconciliation."""

    created: int = 0
    updated: int = 0
    deleted: int = 0

    @property
    def total_writes(self) -> int:
        return self.created + self.updated + self.deleted

    def to_dict(self) -> Dict[str, int]:
        return {"created": self.created, "updated": self.updated, "deleted": self.deleted}


# ---------------------------------------------------------------------------
# Snapshots (stored as JSON on DocumentVersion)
# ---------------------------------------------------------------------------

class DocumentSnapshot(BaseModel):
    title: str
    icon: Optional[str] = None
    cover_image: Optional[str] = None
    tags: Optional[List[str]] = None


class BlockSnapshot(BaseModel):
    type: str
    content: Any = None
    props: Any = None
    position: int


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    title: str
    parent_id: Optional[int] = None
    is_archived: bool = False
    is_published: bool = False
    icon: Optional[str] = None
    cover_image: Optional[str] = None
    tags: Optional[List[str]] = None
    summary: Optional[str] = None
    share_enabled: bool = False
    share_token: Optional[str] = None
    share_permission: Optional[str] = None
    share_expires_at: Optional[datetime] = None
    last_auto_version_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BlockRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    type: str
    content: Any = None
    props: Any = None
    position: int
    version: int
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[datetime] = None


class VersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    user_id: str
    document_snapshot: DocumentSnapshot
    blocks_snapshot: List[BlockSnapshot]
    created_at: datetime
    change_description: Optional[str] = None


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    content: str
    author_id: str
    author_name: str
    selection_start: int
    selection_end: int
    selected_text: str
    parent_comment_id: Optional[int] = None
    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: Optional[datetime] = None


class DocumentExport(DocumentRead):
    """An exported document; ``blocks`` is None when exported without them."""

    blocks: Optional[List[BlockRead]] = None


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

class ImportBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = Field(default="paragraph", min_length=1, max_length=50)
    content: Any = None
    props: Any = None
    position: Optional[int] = None


class ImportDocument(BaseModel):
    """
    One document of an import batch.

    ``source_id`` and ``parent_source_id`` are ids from the exporting
    system; they only link documents of the same batch to each other.
    """

    model_config = ConfigDict(extra="ignore")

    source_id: Optional[str] = None
    title: str = Field(min_length=1, max_length=500)
    icon: Optional[str] = None
    cover_image: Optional[str] = None
    parent_source_id: Optional[str] = None
    is_archived: bool = False
    tags: Optional[List[str]] = None
    blocks: List[ImportBlock] = Field(default_factory=list)

    @field_validator("source_id", "parent_source_id", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ImportBatch(BaseModel):
    documents: List[ImportDocument]


@dataclass
class ImportResult:
    """Outcome counts of an import, plus the source id → new id mapping."""

    success: int = 0
    failed: int = 0
    skipped: int = 0
    id_map: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, int]:
        return {"success": self.success, "failed": self.failed, "skipped": self.skipped}


# ---------------------------------------------------------------------------
# Retention policy
# ---------------------------------------------------------------------------

class RetentionPolicy(BaseModel):
    """
    A user's history settings. Read-only to the version manager and sweep.

    Only the enumerated values offered in settings are accepted.
    """

    model_config = ConfigDict(frozen=True)

    history_enabled: bool = True
    history_debounce_ms: int = 30000
    history_max_versions: int = 50
    history_retention_days: int = 90
    history_show_notifications: bool = False

    @field_validator("history_debounce_ms")
    @classmethod
    def validate_debounce(cls, v: int) -> int:
        if v not in ALLOWED_DEBOUNCE_MS:
            raise ValueError("Invalid debounce time. Must be one of: 30s, 1m, 2m, 5m, 10m")
        return v

    @field_validator("history_max_versions")
    @classmethod
    def validate_max_versions(cls, v: int) -> int:
        if v not in ALLOWED_MAX_VERSIONS:
            raise ValueError(
                f"Invalid max versions. Must be one of: {', '.join(map(str, ALLOWED_MAX_VERSIONS))}"
            )
        return v

    @field_validator("history_retention_days")
    @classmethod
    def validate_retention_days(cls, v: int) -> int:
        if v not in ALLOWED_RETENTION_DAYS:
            raise ValueError(
                f"Invalid retention days. Must be one of: {', '.join(map(str, ALLOWED_RETENTION_DAYS))}"
            )
        return v

    @classmethod
    def from_history_config(cls, history: HistoryConfig) -> "RetentionPolicy":
        """Platform defaults from inkwell.yaml."""
        return cls(
            history_enabled=history.enabled,
            history_debounce_ms=history.debounce_ms,
            history_max_versions=history.max_versions,
            history_retention_days=history.retention_days,
            history_show_notifications=history.show_notifications,
        )


# ---------------------------------------------------------------------------
# Cascade / sweep aggregators
# ---------------------------------------------------------------------------

@dataclass
class TreeWalkResult:
    """Outcome of an archive/restore cascade below the root document."""

    root_id: int
    updated: List[int] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record_failure(self, document_id: int, error: Exception, stage: str = "update") -> None:
        """``stage`` is "update" for the node itself, "children" for listing its children."""
        self.failures.append({"document_id": document_id, "stage": stage, "error": str(error)})


@dataclass
class SweepReport:
    """Outcome of one retention sweep across all documents."""

    documents_scanned: int = 0
    deleted_by_age: int = 0
    deleted_by_count: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def total_deleted(self) -> int:
        return self.deleted_by_age + self.deleted_by_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documents_scanned": self.documents_scanned,
            "deleted_by_age": self.deleted_by_age,
            "deleted_by_count": self.deleted_by_count,
            "failures": list(self.failures),
            "duration_ms": self.duration_ms,
        }
