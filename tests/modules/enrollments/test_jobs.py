"""
Tests for enrollment background job registration.
"""

from unittest.mock import AsyncMock, patch

import pytest

from registrar.core import scheduler
from registrar.modules.enrollments import jobs
from registrar.modules.enrollments.schemas import CleanupResult


@pytest.fixture(autouse=True)
def clean_registry():
    scheduler.clear_registry()
    yield
    scheduler.clear_registry()


class TestRegisterEnrollmentJobs:
    def test_manual_only_by_default(self):
        with patch.object(jobs.settings, "migration_interval_minutes", 0):
            jobs.register_enrollment_jobs()

        registered = {job["job_id"]: job for job in scheduler.list_registered_jobs()}
        assert registered[jobs.JOB_ID_MIGRATE_APPROVED]["scheduled"] is False
        assert registered[jobs.JOB_ID_CLEANUP_DUPLICATES]["scheduled"] is False

    def test_interval_schedules_migration(self):
        with patch.object(jobs.settings, "migration_interval_minutes", 30):
            jobs.register_enrollment_jobs()

        registered = {job["job_id"]: job for job in scheduler.list_registered_jobs()}
        assert registered[jobs.JOB_ID_MIGRATE_APPROVED]["scheduled"] is True
        assert registered[jobs.JOB_ID_CLEANUP_DUPLICATES]["scheduled"] is False

    @pytest.mark.asyncio
    async def test_manual_trigger_returns_json_result(self):
        jobs.register_enrollment_jobs()

        with patch.object(
            jobs, "cleanup_duplicates", AsyncMock(return_value=CleanupResult(removed_count=2))
        ):
            outcome = await scheduler.trigger_job_manually(jobs.JOB_ID_CLEANUP_DUPLICATES)

        assert outcome["status"] == "success"
        assert outcome["result"]["removed_count"] == 2
