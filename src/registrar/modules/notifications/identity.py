"""
Notifiable User Resolution

Enrollment records identify students by their school-issued student id,
while notifications are addressed to login accounts. This module bridges
the two:

1. A numeric student id may already be an account id; use it if that
   account exists.
2. Otherwise find the student profile (by student id, or by profile id for
   numeric input), take its email and look up the account with that email.

None means nobody can be notified; callers skip the notification.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from registrar.modules.students.repository import StudentProfileRepository
from registrar.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


async def resolve_notifiable_user_id(db: AsyncSession, student_id: str) -> int | None:
    identifier = (student_id or "").strip()
    if not identifier:
        return None

    if identifier.isdigit():
        user = await UserRepository.get_by_id(db, int(identifier))
        if user is not None:
            return user.id

    profile = await StudentProfileRepository.find_by_student_or_profile_id(db, identifier)
    if profile is None or not profile.email:
        logger.info(f"No student profile with an email for {identifier}")
        return None

    user = await UserRepository.get_by_email(db, profile.email)
    if user is None:
        logger.info(f"No user account for student {identifier} ({profile.email})")
        return None

    return user.id
