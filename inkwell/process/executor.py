"""
Inkwell Process Executor — Celery app and maintenance tasks.

Celery Tasks:
    - daily_version_sweep_task: apply every owner's retention policy to all
      documents (scheduled by Celery Beat, see inkwell.process.scheduler)

The task opens the database from inkwell.yaml when the worker has not
initialised it yet, and reports per-document failures in its result
instead of raising.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from celery import Celery

from inkwell.engine.errors import InkwellConfigError

logger = logging.getLogger("inkwell.process.executor")

SWEEP_TASK_NAME = "inkwell.process.executor.daily_version_sweep_task"


# ---------------------------------------------------------------------------
# Celery app (configured at startup from platform config)
# ---------------------------------------------------------------------------

_celery_app: Optional[Celery] = None


def get_celery_app() -> Celery:
    """Get or create the Celery app singleton."""
    global _celery_app
    if _celery_app is None:
        _celery_app = _create_celery_app()
    return _celery_app


def _create_celery_app() -> Celery:
    """Create and configure the Celery application."""
    from inkwell.engine.config import PlatformConfig, get_platform_config
    from inkwell.process.scheduler import MaintenanceScheduler

    try:
        config = get_platform_config()
    except InkwellConfigError as e:
        logger.warning(f"Celery falling back to default platform config: {e}")
        config = PlatformConfig()

    app = Celery("inkwell", broker=config.celery.broker, backend=config.celery.result_backend)

    # Beat reads the schedule from the app it loads (celery -A inkwell.process.executor beat).
    scheduler = MaintenanceScheduler()
    scheduler.initialize(config)

    app.conf.update(
        beat_schedule=scheduler.configure_celery_beat(),
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone=config.retention.sweep_timezone,
        enable_utc=True,
        task_default_queue="celery",
        task_routes={
            SWEEP_TASK_NAME: {"queue": "maintenance"},
        },
        task_acks_late=True,
        worker_prefetch_multiplier=1,
    )

    return app


def init_celery(broker: Optional[str] = None, backend: Optional[str] = None) -> Celery:
    """
    Initialize the Celery app with custom config.

    Args:
        broker: Redis broker URL. Defaults to config.
        backend: Redis result backend URL. Defaults to config.
    """
    global _celery_app
    app = get_celery_app()
    if broker:
        app.conf.broker_url = broker
    if backend:
        app.conf.result_backend = backend
    _celery_app = app
    return app


def _ensure_database() -> None:
    from inkwell.db.session import get_session_factory, init_db
    from inkwell.engine.config import get_platform_config

    try:
        get_session_factory()
    except RuntimeError:
        db = get_platform_config().database
        init_db(
            db.url,
            create_tables=db.create_tables,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=db.pool_pre_ping,
        )
        logger.info("Worker database initialized from inkwell.yaml")


def run_version_sweep(trigger: str = "schedule") -> Dict[str, Any]:
    """Run the retention sweep once and return its report as a dict."""
    from inkwell.documents.retention import RetentionService

    _ensure_database()
    report = RetentionService().sweep_all(trigger=trigger)
    return report.to_dict()


# ---------------------------------------------------------------------------
# Celery tasks
# ---------------------------------------------------------------------------

celery_app = get_celery_app()


@celery_app.task(name=SWEEP_TASK_NAME)
def daily_version_sweep_task() -> Dict[str, Any]:
    """
    Celery Beat task: retention sweep over every document.

    Per-document failures are part of the returned report.
    """
    return run_version_sweep(trigger="schedule")
