"""
Notification Dispatcher

Turns enrollment lifecycle events into a persisted notification plus a
best-effort real-time push.

Stages:
- approved: the registrar approved the request (not yet enrolled)
- enrolled: the request was migrated into the enrolled-students ledger
- rejected: the request needs the student's attention

The notification row is committed before the push is attempted, and a push
that fails or finds nobody connected never raises.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.realtime import ConnectionRegistry

from . import repository
from .models import Notification

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE_ENROLLMENT = "enrollment"
DASHBOARD_URL = "/dashboard"
REALTIME_EVENT = "newNotification"


class EnrollmentStage(str, enum.Enum):
    APPROVED = "approved"
    ENROLLED = "enrolled"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StageCopy:
    title: str
    message: str
    data_stage: str


STAGE_COPY: dict[EnrollmentStage, StageCopy] = {
    EnrollmentStage.APPROVED: StageCopy(
        title="Enrollment Request Approved!",
        message=(
            "Your enrollment request for {program} ({semester}) has been approved by the "
            "registrar. Please wait for faculty processing to complete your enrollment."
        ),
        data_stage="registrar_approved",
    ),
    EnrollmentStage.ENROLLED: StageCopy(
        title="Successfully Enrolled!",
        message=(
            "Welcome to {program} ({semester})! Your enrollment is now complete and active. "
            "You can now view your class schedule and course materials."
        ),
        data_stage="faculty_enrolled",
    ),
    EnrollmentStage.REJECTED: StageCopy(
        title="Enrollment Update Required",
        message=(
            "Your enrollment for {program} ({semester}) requires attention. "
            "Please contact the registrar's office for more information."
        ),
        data_stage="registrar_rejected",
    ),
}


def render_stage(
    stage: EnrollmentStage | str, program: str, semester_label: str
) -> tuple[str, str, str]:
    """
    Title, message and data stage for a lifecycle stage.

    Raises:
        ValueError: For an unknown stage
    """
    copy = STAGE_COPY[EnrollmentStage(stage)]
    return (
        copy.title,
        copy.message.format(program=program, semester=semester_label),
        copy.data_stage,
    )


class NotificationDispatcher:
    """Persists enrollment notifications and pushes them to connected users."""

    def __init__(self, registry: ConnectionRegistry | None = None):
        self.registry = registry

    async def push(self, user_id: int, payload: dict[str, Any]) -> bool:
        """Real-time push; failures are logged and reported as False."""
        if self.registry is None:
            return False
        try:
            delivered = await self.registry.send(user_id, payload)
        except Exception as e:
            logger.error(f"Real-time push to user {user_id} failed: {e}", exc_info=True)
            return False

        if not delivered:
            logger.debug(f"User {user_id} not connected, notification stored only")
        return delivered

    async def notify_enrollment(
        self,
        db: AsyncSession,
        user_id: int,
        stage: EnrollmentStage | str,
        program: str,
        semester_label: str,
        request_id: int,
    ) -> Notification:
        """
        Record an enrollment lifecycle notification and push it.

        Args:
            db: Database session (the notification is committed on it)
            user_id: Recipient account id
            stage: approved, enrolled or rejected
            program: Program code shown in the message
            semester_label: e.g. "1st Term 2025-2026"
            request_id: Enrollment request the event is about

        Returns:
            The persisted Notification

        Raises:
            ValueError: For an unknown stage
        """
        stage = EnrollmentStage(stage)
        title, message, data_stage = render_stage(stage, program, semester_label)

        notification = await repository.create(
            db,
            user_id=user_id,
            type=NOTIFICATION_TYPE_ENROLLMENT,
            title=title,
            message=message,
            data={
                "stage": data_stage,
                "status": stage.value,
                "program": program,
                "semester": semester_label,
                "request_id": request_id,
            },
            action_url=DASHBOARD_URL,
        )
        logger.info(
            f"Created {stage.value} notification {notification.id} for user {user_id} "
            f"(request {request_id})"
        )

        await self.push(
            user_id,
            {
                "event": REALTIME_EVENT,
                "notification": {
                    "id": notification.id,
                    "type": notification.type,
                    "title": notification.title,
                    "message": notification.message,
                    "data": notification.data,
                    "action_url": notification.action_url,
                    "is_read": False,
                    "created_at": notification.created_at,
                },
            },
        )
        return notification
