"""Inkwell maintenance jobs — Celery app, retention sweep task, Beat schedule."""

from inkwell.process.executor import (  # noqa: F401
    SWEEP_TASK_NAME,
    daily_version_sweep_task,
    get_celery_app,
    init_celery,
    run_version_sweep,
)
from inkwell.process.scheduler import (  # noqa: F401
    MaintenanceScheduler,
    ScheduleRegistry,
    get_scheduler,
    init_scheduler,
)

__all__ = [
    "SWEEP_TASK_NAME",
    "daily_version_sweep_task",
    "get_celery_app",
    "init_celery",
    "run_version_sweep",
    "MaintenanceScheduler",
    "ScheduleRegistry",
    "get_scheduler",
    "init_scheduler",
]
