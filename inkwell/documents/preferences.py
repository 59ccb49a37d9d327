"""
Inkwell Preferences Service — per-user history settings and policy resolution.

The RetentionPolicy consulted by the version manager and the retention
sweep is derived from a user's ``user_preferences`` row, or from the
platform defaults (``history:`` in inkwell.yaml) when the user never saved
any. Policy reads never write.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from inkwell.db.models import UserPreferences
from inkwell.documents.base import DocumentServiceBase
from inkwell.documents.schemas import RetentionPolicy
from inkwell.engine.context import require_execution_context
from inkwell.engine.errors import InkwellValidationError

logger = logging.getLogger("inkwell.documents.preferences")

_POLICY_FIELDS = (
    "history_enabled",
    "history_debounce_ms",
    "history_max_versions",
    "history_retention_days",
    "history_show_notifications",
)


class PreferencesService(DocumentServiceBase):

    def default_policy(self) -> RetentionPolicy:
        return RetentionPolicy.from_history_config(self.config.history)

    def resolve_policy(self, session: Session, user_id: str) -> RetentionPolicy:
        """
        The user's stored policy, or the platform defaults.

        Stored values outside the offered choices are replaced by the
        platform default for that field only.
        """
        prefs = self._load(session, user_id)
        if prefs is None:
            return self.default_policy()

        stored = {name: getattr(prefs, name) for name in _POLICY_FIELDS}
        try:
            return RetentionPolicy.model_validate(stored)
        except ValidationError as e:
            invalid = {err["loc"][0] for err in e.errors() if err.get("loc")}
            logger.warning(f"Invalid stored history settings for {user_id}: {sorted(invalid)}; using defaults")
            defaults = self.default_policy()
            if not invalid:
                return defaults
            return RetentionPolicy.model_validate(
                {**stored, **{name: getattr(defaults, name) for name in invalid}}
            )

    def get_history_settings(self) -> RetentionPolicy:
        ctx = require_execution_context()
        with self._transaction("get_history_settings") as session:
            return self.resolve_policy(session, ctx.user_id)

    def update_history_settings(
        self,
        history_enabled: Optional[bool] = None,
        history_debounce_ms: Optional[int] = None,
        history_max_versions: Optional[int] = None,
        history_retention_days: Optional[int] = None,
        history_show_notifications: Optional[bool] = None,
    ) -> int:
        """
        Save the caller's history settings and return the preferences id.

        Omitted fields keep their stored (or default) value. Values outside
        the offered choices are rejected before anything is written.
        """
        ctx = require_execution_context()
        changes = {
            "history_enabled": history_enabled,
            "history_debounce_ms": history_debounce_ms,
            "history_max_versions": history_max_versions,
            "history_retention_days": history_retention_days,
            "history_show_notifications": history_show_notifications,
        }
        changes = {k: v for k, v in changes.items() if v is not None}

        with self._transaction("update_history_settings", user_id=ctx.user_id) as session:
            current = self.resolve_policy(session, ctx.user_id)
            try:
                merged = RetentionPolicy(**{**current.model_dump(), **changes})
            except ValidationError as e:
                first = e.errors()[0]
                reason = first.get("ctx", {}).get("error") or first.get("msg")
                raise InkwellValidationError(
                    str(reason),
                    object_ref=f"user_preferences.{ctx.user_id}",
                    user_id=ctx.user_id,
                    validation_errors=e.errors(include_url=False),
                ) from e

            prefs = self._load(session, ctx.user_id)
            if prefs is None:
                prefs = UserPreferences(user_id=ctx.user_id)
                session.add(prefs)
            for name in _POLICY_FIELDS:
                setattr(prefs, name, getattr(merged, name))
            session.flush()
            logger.info(f"History settings saved for {ctx.user_id}: {changes}")
            return prefs.id

    @staticmethod
    def _load(session: Session, user_id: str) -> Optional[UserPreferences]:
        stmt = select(UserPreferences).where(UserPreferences.user_id == user_id)
        return session.execute(stmt).scalars().first()
