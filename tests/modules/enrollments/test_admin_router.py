"""
Tests for admin endpoint error mapping, called directly without an HTTP client.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from registrar.core.auth import CurrentUser
from registrar.core.exceptions import FatalBatchError, ValidationError
from registrar.modules.enrollments import admin_router
from registrar.modules.enrollments.schemas import BulkActionRequest, CleanupResult

STAFF = CurrentUser(id=1, email="registrar@school.edu", role="registrar")


@pytest.fixture(autouse=True)
def no_rate_limit():
    with patch.object(admin_router, "enforce_rate_limit", AsyncMock()):
        yield


class TestHandleServiceError:
    def test_includes_missing_fields(self):
        error = ValidationError("Missing required fields: program", missing_fields=["program"])

        with pytest.raises(HTTPException) as exc_info:
            admin_router._handle_service_error(error)

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == {
            "error": "VALIDATION_ERROR",
            "message": "Missing required fields: program",
            "missing_fields": ["program"],
        }


class TestBatchEndpoints:
    @pytest.mark.asyncio
    async def test_fatal_migration_failure_is_500(self):
        with patch.object(
            admin_router.migration,
            "migrate_approved",
            AsyncMock(side_effect=FatalBatchError("Could not load migration candidates")),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await admin_router.migrate_approved(dispatcher=MagicMock(), staff=STAFF)

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail["error"] == "MIGRATION_FAILED"

    @pytest.mark.asyncio
    async def test_cleanup_returns_counts(self):
        with patch.object(
            admin_router.migration,
            "cleanup_duplicates",
            AsyncMock(return_value=CleanupResult(removed_count=3, duplicate_groups=1)),
        ):
            result = await admin_router.cleanup_duplicates(staff=STAFF)

        assert result.removed_count == 3

    @pytest.mark.asyncio
    async def test_unknown_bulk_action(self, mock_db):
        body = BulkActionRequest(action="archive", request_ids=[1])

        with pytest.raises(HTTPException) as exc_info:
            await admin_router.bulk_action(
                body=body, db=mock_db, dispatcher=MagicMock(), staff=STAFF
            )

        assert exc_info.value.status_code == 400
