"""
Inkwell Execution Context — per-request caller identity.

The identity provider authenticates the request and sets an
ExecutionContext; every service reads it back through
``require_execution_context()``. Scheduled jobs run without one.

Usage:
    from inkwell.engine.context import (
        ExecutionContext,
        set_execution_context,
        require_execution_context,
    )
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

from inkwell.engine.errors import InkwellSessionError

current_execution_context: ContextVar[Optional["ExecutionContext"]] = ContextVar(
    "execution_context", default=None
)


@dataclass
class ExecutionContext:
    """
    Identity of the caller for one request or task.

    ``user_id`` is the stable subject identifier handed over by the
    identity provider.
    """

    user_id: str
    display_name: str = ""
    execution_id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "execution_id": self.execution_id,
            "session_id": self.session_id,
        }


def set_execution_context(ctx: ExecutionContext) -> None:
    """Set the execution context for the current thread/task."""
    current_execution_context.set(ctx)


def get_execution_context() -> Optional[ExecutionContext]:
    """Get the current execution context. Returns None if not set."""
    return current_execution_context.get()


def require_execution_context() -> ExecutionContext:
    """Get execution context or raise if the caller is not authenticated."""
    ctx = get_execution_context()
    if ctx is None or not ctx.user_id:
        raise InkwellSessionError(
            "Not authenticated",
            error_type="missing_context",
        )
    return ctx


def clear_execution_context() -> None:
    """Clear the execution context (e.g., on request end)."""
    current_execution_context.set(None)


@contextmanager
def execution_context(user_id: str, **kwargs: Any) -> Generator[ExecutionContext, None, None]:
    """
    Run a block of code as ``user_id``, restoring the previous context after.

    Usage:
        with execution_context("user_123"):
            blocks.sync_blocks(doc_id, editor_blocks)
    """
    ctx = ExecutionContext(user_id=user_id, **kwargs)
    token = current_execution_context.set(ctx)
    try:
        yield ctx
    finally:
        current_execution_context.reset(token)
