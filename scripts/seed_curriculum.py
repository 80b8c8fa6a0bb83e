"""
Seed Programs and Curriculum

Loads the reference programs and first-year curriculum used by the
curriculum lookup, fee calculation and schedule enrichment.
Safe to run more than once: existing programs and subjects are left as is.

Usage:
    pip install -e .
    python scripts/seed_curriculum.py
"""

import asyncio

from sqlalchemy import select

from registrar.core.database import async_session_maker, engine, init_db
from registrar.modules.curriculum.models import CurriculumEntry, Program

PROGRAMS = [
    ("BSIT", "Bachelor of Science in Information Technology"),
    ("BSCS", "Bachelor of Science in Computer Science"),
    ("BSIS", "Bachelor of Science in Information Systems"),
    ("BSBA", "Bachelor of Science in Business Administration"),
]

# (program, year level, semester, code, name, units, instructor, room, schedule)
CURRICULUM = [
    ("BSIT", "1st Year", "1st Term", "IT101", "Introduction to Computing", 3,
     "Prof. Reyes", "Lab 1", "MWF 8:00-9:00"),
    ("BSIT", "1st Year", "1st Term", "IT102", "Computer Programming 1", 3,
     "Prof. Santos", "Lab 2", "TTh 9:00-10:30"),
    ("BSIT", "1st Year", "1st Term", "GE101", "Understanding the Self", 3,
     None, None, None),
    ("BSIT", "1st Year", "1st Term", "GE102", "Mathematics in the Modern World", 3,
     "Prof. Cruz", "Room 204", "MWF 10:00-11:00"),
    ("BSIT", "1st Year", "1st Term", "PE101", "Physical Education 1", 2,
     None, "Gym", None),
    ("BSIT", "1st Year", "1st Term", "NSTP1", "National Service Training Program 1", 3,
     None, None, "Sat 8:00-11:00"),
    ("BSIT", "1st Year", "2nd Term", "IT103", "Computer Programming 2", 3,
     "Prof. Santos", "Lab 2", "TTh 9:00-10:30"),
    ("BSIT", "1st Year", "2nd Term", "IT104", "Discrete Mathematics", 3,
     "Prof. Cruz", "Room 204", "MWF 10:00-11:00"),
    ("BSCS", "1st Year", "1st Term", "CS101", "Introduction to Computer Science", 3,
     "Prof. Garcia", "Lab 3", "MWF 8:00-9:00"),
    ("BSCS", "1st Year", "1st Term", "CS102", "Fundamentals of Programming", 3,
     "Prof. Lim", "Lab 3", "TTh 13:00-14:30"),
]


async def seed_curriculum() -> None:
    """Insert missing programs and curriculum rows."""
    await init_db()

    async with async_session_maker() as db:
        result = await db.execute(select(Program.code))
        existing_programs = set(result.scalars().all())

        created_programs = 0
        for code, name in PROGRAMS:
            if code in existing_programs:
                continue
            db.add(Program(code=code, name=name, is_active=True))
            created_programs += 1

        result = await db.execute(
            select(
                CurriculumEntry.program_code,
                CurriculumEntry.year_level,
                CurriculumEntry.semester,
                CurriculumEntry.subject_code,
            )
        )
        existing_subjects = {tuple(row) for row in result.all()}

        created_subjects = 0
        for program, year, semester, code, name, units, instructor, room, schedule in CURRICULUM:
            if (program, year, semester, code) in existing_subjects:
                continue
            db.add(
                CurriculumEntry(
                    program_code=program,
                    year_level=year,
                    semester=semester,
                    subject_code=code,
                    subject_name=name,
                    units=units,
                    instructor=instructor,
                    room=room,
                    schedule=schedule,
                )
            )
            created_subjects += 1

        await db.commit()

    print(f"Programs created: {created_programs} ({len(existing_programs)} already present)")
    print(f"Subjects created: {created_subjects} ({len(existing_subjects)} already present)")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_curriculum())
