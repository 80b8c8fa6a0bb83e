"""
Curriculum Resolver

Looks up the subjects a program offers for a year level and semester, and
fills instructor/room/schedule details into subject lists carried by
enrollment requests.

Year levels in the reference data were loaded in several spellings, so a
lookup tries every variant in order (see ``year_level_variants``) and stops
at the first one that returns rows. Which variant matched is reported back
so mismatches in the reference data can be diagnosed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.modules.curriculum.models import CurriculumEntry, Program
from registrar.modules.curriculum.normalization import normalize_program, year_level_variants

logger = logging.getLogger(__name__)

# Values that mean "nothing known" for instructor/room/schedule
PLACEHOLDER_VALUES = frozenset({"", "null", "tba", "none"})
ENRICHED_FIELDS = ("instructor", "room", "schedule")
TBA = "TBA"


@dataclass
class CurriculumResolution:
    """Result of a curriculum lookup."""

    program_code: str
    semester: str
    subjects: list[dict[str, Any]] = field(default_factory=list)
    total_units: int = 0
    matched_year_level: str | None = None
    tried_year_levels: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.subjects)


def is_placeholder(value: Any) -> bool:
    """True for empty values and the NULL/TBA sentinels."""
    if value is None:
        return True
    return str(value).strip().lower() in PLACEHOLDER_VALUES


def entry_to_subject(entry: CurriculumEntry) -> dict[str, Any]:
    return {
        "code": entry.subject_code,
        "name": entry.subject_name,
        "units": entry.units or 0,
        "instructor": entry.instructor,
        "room": entry.room,
        "schedule": entry.schedule,
        "prerequisite": entry.prerequisite,
        "section": entry.section,
    }


async def _fetch_entries(
    db: AsyncSession, program_code: str, year_level: str, semester: str
) -> list[CurriculumEntry]:
    result = await db.execute(
        select(CurriculumEntry)
        .where(
            CurriculumEntry.program_code == program_code,
            CurriculumEntry.year_level == year_level,
            CurriculumEntry.semester == semester,
        )
        .order_by(CurriculumEntry.subject_code, CurriculumEntry.id)
    )
    return list(result.scalars().all())


async def resolve_curriculum(
    db: AsyncSession,
    program: str,
    year_level: str,
    semester: str,
) -> CurriculumResolution:
    """
    Resolve the subjects for a program, year level and semester.

    Args:
        db: Database session
        program: Short code or long program name
        year_level: Any supported year-level spelling
        semester: Semester/term label as stored in the curriculum

    Returns:
        CurriculumResolution. An empty subject list (not an error) when no
        year-level variant matched.
    """
    program_code = normalize_program(program)
    semester = (semester or "").strip()
    resolution = CurriculumResolution(program_code=program_code, semester=semester)

    for variant in year_level_variants(year_level):
        resolution.tried_year_levels.append(variant)
        entries = await _fetch_entries(db, program_code, variant, semester)
        if entries:
            resolution.subjects = [entry_to_subject(entry) for entry in entries]
            resolution.total_units = sum(entry.units or 0 for entry in entries)
            resolution.matched_year_level = variant
            logger.debug(
                f"Curriculum for {program_code}/{year_level}/{semester} matched "
                f"year level '{variant}': {len(entries)} subjects"
            )
            return resolution

    logger.info(
        f"No curriculum found for {program_code}/{year_level}/{semester} "
        f"(tried {resolution.tried_year_levels})"
    )
    return resolution


def _subject_code(subject: dict[str, Any]) -> str | None:
    code = subject.get("code") or subject.get("subject_code")
    return str(code).strip() if code else None


def merge_reference_details(
    subject: dict[str, Any], reference: dict[str, Any] | None
) -> dict[str, Any]:
    """
    Copy instructor/room/schedule from a reference row onto a subject.

    A reference value replaces the subject's value only when it is a real
    value (not empty, NULL or TBA). Fields left empty end up as "TBA".
    """
    merged = dict(subject)
    for name in ENRICHED_FIELDS:
        resolved = reference.get(name) if reference else None
        if not is_placeholder(resolved):
            merged[name] = resolved
        elif merged.get(name) is None or str(merged.get(name)).strip() == "":
            merged[name] = TBA
    return merged


async def enrich_subjects(
    db: AsyncSession,
    subjects: list[dict[str, Any]],
    program: str,
    year_level: str,
    semester: str,
) -> list[dict[str, Any]]:
    """
    Enrich subject records with curriculum details, matched by subject code.

    Subjects without a code, or without a reference row, keep their own
    values (missing ones become "TBA").
    """
    if not subjects:
        return []

    resolution = await resolve_curriculum(db, program, year_level, semester)
    reference_by_code = {
        str(ref["code"]).casefold(): ref for ref in resolution.subjects if ref.get("code")
    }

    enriched = []
    for subject in subjects:
        code = _subject_code(subject)
        reference = reference_by_code.get(code.casefold()) if code else None
        enriched.append(merge_reference_details(subject, reference))

    return enriched


async def list_programs(db: AsyncSession, include_inactive: bool = False) -> list[Program]:
    stmt = select(Program).order_by(Program.code)
    if not include_inactive:
        stmt = stmt.where(Program.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())
