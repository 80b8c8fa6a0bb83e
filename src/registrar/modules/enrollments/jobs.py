"""
Enrollment Background Jobs

Scheduled and manually triggered tasks for the enrollment lifecycle:
1. Migrate approved requests into the enrolled-students ledger
2. Remove duplicate active ledger rows

Design Principles:
- Jobs are idempotent (safe to run multiple times)
- Jobs handle their own database sessions
- Jobs log all operations for auditing

Schedule:
- Migration runs every MIGRATION_INTERVAL_MINUTES when that setting is
  positive; otherwise it is manual-only (admin endpoint or debug trigger)
- Duplicate cleanup is always manual-only
"""

import logging
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from registrar.core.config import settings
from registrar.core.scheduler import register_job
from registrar.modules.enrollments.migration import cleanup_duplicates, migrate_approved
from registrar.modules.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

JOB_ID_MIGRATE_APPROVED = "enrollments_migrate_approved"
JOB_ID_CLEANUP_DUPLICATES = "enrollments_cleanup_duplicates"


def register_enrollment_jobs(dispatcher: NotificationDispatcher | None = None) -> None:
    """
    Register enrollment jobs with the scheduler.

    Call during application startup, before the scheduler is started.

    Args:
        dispatcher: Used for "enrolled" notifications sent by scheduled runs
    """
    logger.info("Registering enrollment background jobs...")

    async def run_migration() -> dict[str, Any]:
        result = await migrate_approved(dispatcher=dispatcher)
        return result.model_dump(mode="json")

    async def run_cleanup() -> dict[str, Any]:
        result = await cleanup_duplicates()
        return result.model_dump(mode="json")

    interval = settings.migration_interval_minutes
    trigger = IntervalTrigger(minutes=interval) if interval > 0 else None
    register_job(job_id=JOB_ID_MIGRATE_APPROVED, func=run_migration, trigger=trigger)
    if trigger:
        logger.info(f"Registered job: {JOB_ID_MIGRATE_APPROVED} (interval: {interval} minutes)")
    else:
        logger.info(f"Registered job: {JOB_ID_MIGRATE_APPROVED} (manual only)")

    register_job(job_id=JOB_ID_CLEANUP_DUPLICATES, func=run_cleanup)
    logger.info(f"Registered job: {JOB_ID_CLEANUP_DUPLICATES} (manual only)")
