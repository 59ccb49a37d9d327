"""
Inkwell Maintenance Scheduler — cron schedules and Celery Beat integration.

Maintenance jobs are registered by task name with a five-field cron
expression and turned into a Celery Beat schedule at startup. The daily
version sweep is registered from ``retention.sweep_cron`` in inkwell.yaml
(02:00 UTC by default).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from celery.schedules import crontab

from inkwell.engine.logging import log, log_system_event

logger = logging.getLogger("inkwell.process.scheduler")

SWEEP_SCHEDULE_NAME = "daily-version-sweep"


# ---------------------------------------------------------------------------
# Schedule registry (Celery Beat)
# ---------------------------------------------------------------------------

class ScheduleRegistry:
    """
    Maps schedule names → (task, cron expression).

    Example:
        registry.register("daily-version-sweep",
                          "inkwell.process.executor.daily_version_sweep_task",
                          "0 2 * * *")
    """

    def __init__(self) -> None:
        self._schedules: Dict[str, Dict[str, Any]] = {}

    def register(
        self,
        name: str,
        task: str,
        cron_expression: str,
        timezone_str: str = "UTC",
        queue: str = "maintenance",
        enabled: bool = True,
    ) -> None:
        """Register (or replace) a cron-based maintenance job."""
        self._schedules[name] = {
            "name": name,
            "task": task,
            "cron": cron_expression,
            "timezone": timezone_str,
            "queue": queue,
            "enabled": enabled,
        }
        logger.debug(f"Registered schedule: {name} = {cron_expression} ({timezone_str}) → {task}")

    def unregister(self, name: str) -> None:
        self._schedules.pop(name, None)

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        return self._schedules.get(name)

    def get_schedules(self) -> List[Dict[str, Any]]:
        return list(self._schedules.values())

    def get_enabled_schedules(self) -> List[Dict[str, Any]]:
        return [s for s in self._schedules.values() if s.get("enabled", True)]

    def clear(self) -> None:
        self._schedules.clear()

    @property
    def count(self) -> int:
        return len(self._schedules)


# ---------------------------------------------------------------------------
# MaintenanceScheduler: registry + Celery Beat
# ---------------------------------------------------------------------------

class MaintenanceScheduler:
    """Registers the built-in maintenance jobs and configures Celery Beat."""

    def __init__(self, registry: Optional[ScheduleRegistry] = None) -> None:
        self.registry = registry or ScheduleRegistry()
        self._initialized = False

    def initialize(self, config=None) -> None:
        """Register the daily version sweep from the retention config."""
        if self._initialized:
            return

        from inkwell.engine.config import get_platform_config
        from inkwell.process.executor import SWEEP_TASK_NAME

        retention = (config or get_platform_config()).retention
        self.registry.register(
            name=SWEEP_SCHEDULE_NAME,
            task=SWEEP_TASK_NAME,
            cron_expression=retention.sweep_cron,
            timezone_str=retention.sweep_timezone,
        )
        self._initialized = True
        logger.info(f"MaintenanceScheduler initialized: {self.registry.count} schedule(s)")

    def configure_celery_beat(self) -> Dict[str, Any]:
        """
        Generate Celery Beat schedule config from registered schedules.

        Returns:
            Dict suitable for celery_app.conf.beat_schedule.
        """
        beat_schedule: Dict[str, Any] = {}

        for sched in self.registry.get_enabled_schedules():
            # "minute hour day_of_month month_of_year day_of_week"
            parts = sched["cron"].strip().split()
            if len(parts) != 5:
                logger.warning(f"Invalid cron expression for {sched['name']}: {sched['cron']}")
                continue

            beat_schedule[sched["name"]] = {
                "task": sched["task"],
                "schedule": crontab(
                    minute=parts[0],
                    hour=parts[1],
                    day_of_month=parts[2],
                    month_of_year=parts[3],
                    day_of_week=parts[4],
                ),
                "args": (),
                "options": {"queue": sched["queue"]},
            }
            logger.debug(f"Celery Beat schedule: {sched['name']} = {sched['cron']} ({sched['timezone']})")

        return beat_schedule

    def apply_celery_beat_config(self) -> int:
        """Install the schedules on the Celery app. Returns how many."""
        beat_schedule = self.configure_celery_beat()
        if not beat_schedule:
            return 0

        from inkwell.process.executor import get_celery_app
        celery_app = get_celery_app()
        celery_app.conf.beat_schedule = beat_schedule
        logger.info(f"Applied {len(beat_schedule)} Celery Beat schedule(s)")
        log(log_system_event(
            "beat_schedule_applied",
            details={name: entry["task"] for name, entry in beat_schedule.items()},
        ))
        return len(beat_schedule)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_scheduler: Optional[MaintenanceScheduler] = None


def get_scheduler() -> MaintenanceScheduler:
    """Get or create the global MaintenanceScheduler singleton."""
    global _scheduler
    if _scheduler is None:
        _scheduler = MaintenanceScheduler()
    return _scheduler


def init_scheduler(config=None) -> MaintenanceScheduler:
    """Register maintenance jobs and apply them to Celery Beat."""
    scheduler = get_scheduler()
    scheduler.initialize(config)
    scheduler.apply_celery_beat_config()
    return scheduler
