"""
Inkwell Error Hierarchy — Structured exceptions for the persistence engine.

Every error carries the acting user, the object it concerns and arbitrary
context kwargs, all serializable to JSON for the structured log files.

Hierarchy:
    InkwellError
    ├── InkwellSessionError     — No caller identity (unauthenticated)
    ├── InkwellSecurityError    — Caller does not own the object
    ├── InkwellNotFoundError    — Document / block / version / comment absent
    ├── InkwellValidationError  — Input rejected before any write
    ├── InkwellRecordError      — Storage write failed, transaction rolled back
    └── InkwellConfigError      — Invalid inkwell.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class InkwellError(Exception):
    """
    Base error for all Inkwell engine failures.
    The message is the human-readable reason surfaced to the caller.
    """

    _reserved = ("execution_id", "object_ref", "object_type", "user_id")

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.execution_id: Optional[str] = context.get("execution_id")
        self.object_ref: Optional[str] = context.get("object_ref")
        self.object_type: Optional[str] = context.get("object_type")
        self.user_id: Optional[str] = context.get("user_id")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "execution_id": self.execution_id,
            "object_ref": self.object_ref,
            "object_type": self.object_type,
            "user_id": self.user_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in self._reserved
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.object_ref:
            parts.append(f"object_ref={self.object_ref}")
        if self.execution_id:
            parts.append(f"execution_id={self.execution_id}")
        return " | ".join(parts)


class InkwellSessionError(InkwellError):
    """No authenticated identity in the execution context."""
    pass


class InkwellSecurityError(InkwellError):
    """
    Access denied: the caller is not the owner.
    Includes the permission that was required.
    """

    def __init__(self, message: str, **context: Any):
        self.required_permission: Optional[str] = context.get("required_permission")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["required_permission"] = self.required_permission
        return d


class InkwellNotFoundError(InkwellError):
    """The referenced record does not exist."""

    def __init__(self, message: str, **context: Any):
        self.record_type: Optional[str] = context.get("record_type")
        self.record_id: Optional[Any] = context.get("record_id")
        super().__init__(message, **context)


class InkwellValidationError(InkwellError):
    """
    Input validation failed (Pydantic, enumerated settings, share permission).
    Includes field-level error details.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class InkwellRecordError(InkwellError):
    """A storage operation failed (create, update, delete, query)."""

    def __init__(self, message: str, **context: Any):
        self.record_type: Optional[str] = context.get("record_type")
        self.record_id: Optional[Any] = context.get("record_id")
        self.operation: Optional[str] = context.get("operation")
        super().__init__(message, **context)


class InkwellConfigError(InkwellError):
    """Configuration error — invalid inkwell.yaml."""
    pass
