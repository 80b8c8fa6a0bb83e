"""
Student Profile Repository
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.modules.students.models import StudentProfile

logger = logging.getLogger(__name__)


class StudentProfileRepository:
    """Repository for student profile lookups."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        student_id: str,
        first_name: str,
        last_name: str,
        email: str | None = None,
        program: str | None = None,
        year_level: str | None = None,
    ) -> StudentProfile:
        """Create a profile record (flushes, caller commits)."""
        profile = StudentProfile(
            student_id=student_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            program=program,
            year_level=year_level,
        )
        db.add(profile)
        await db.flush()
        await db.refresh(profile)

        logger.info(f"Created student profile: {profile.id} - {profile.student_id}")
        return profile

    @staticmethod
    async def find_by_student_or_profile_id(
        db: AsyncSession, identifier: str
    ) -> StudentProfile | None:
        """
        Find a profile by student identifier, or by profile id when the
        identifier is numeric. A student_id match wins over an id match.
        """
        conditions = [StudentProfile.student_id == identifier]
        if identifier.isdigit():
            conditions.append(StudentProfile.id == int(identifier))

        result = await db.execute(select(StudentProfile).where(or_(*conditions)))
        profiles = list(result.scalars().all())
        for profile in profiles:
            if profile.student_id == identifier:
                return profile
        return profiles[0] if profiles else None
