"""
Shared plumbing for the document services.

Each public operation runs in exactly one transaction opened through
``DocumentServiceBase._transaction``; storage failures surface as
InkwellRecordError after the rollback, domain errors pass through unchanged.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Generator, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inkwell.db.base import as_utc, utcnow
from inkwell.db.models import Document
from inkwell.db.session import SessionFactory, session_scope
from inkwell.engine.config import PlatformConfig, get_platform_config
from inkwell.engine.errors import InkwellRecordError, InkwellValidationError
from inkwell.security.authorization import AuthorizationGuard, authorization_guard

logger = logging.getLogger("inkwell.documents")

Clock = Callable[[], datetime]


class DocumentServiceBase:
    """Holds the session factory, guard, clock and config every service needs."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        guard: Optional[AuthorizationGuard] = None,
        clock: Optional[Clock] = None,
        config: Optional[PlatformConfig] = None,
    ):
        self._session_factory = session_factory
        self._guard = guard or authorization_guard
        self._clock = clock or utcnow
        self._config = config

    @property
    def config(self) -> PlatformConfig:
        return self._config or get_platform_config()

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _transaction(self, operation: str, **context: Any) -> Generator[Session, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed: {e}")
            raise InkwellRecordError(
                f"Could not complete {operation}. Please retry.",
                operation=operation,
                **context,
            ) from e


def validate_input(model: Any, data: Any, object_ref: str) -> Any:
    """Parse ``data`` into the pydantic ``model`` or raise InkwellValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InkwellValidationError(
            f"Invalid {model.__name__}: {e.error_count()} error(s)",
            object_ref=object_ref,
            validation_errors=e.errors(include_url=False),
        ) from e


def is_publicly_visible(document: Document) -> bool:
    """Published, non-archived documents are readable by anyone."""
    return bool(document.is_published and not document.is_archived)


def share_link_active(document: Document, now: datetime) -> bool:
    """Sharing is enabled and the link has not expired."""
    if not document.share_enabled or not document.share_token:
        return False
    expires = as_utc(document.share_expires_at)
    return expires is None or now <= expires
