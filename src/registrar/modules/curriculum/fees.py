"""
Fee Calculator

Computes tuition and fixed fees for an enrollment.

Units are resolved in this order:
1. An explicit override (e.g. the sum of the subjects the student picked)
2. The curriculum for the program/year level/term
3. A static default per year level

Amounts are Decimal, rounded to cents with ROUND_HALF_UP.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.exceptions import ValidationError
from registrar.modules.curriculum.models import StudentType
from registrar.modules.curriculum.normalization import (
    YearLevel,
    canonical_year_level,
    normalize_program,
)
from registrar.modules.curriculum.resolver import resolve_curriculum
from registrar.modules.curriculum.schemas import FeeBreakdown, FeeLine

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class FeeSchedule:
    """Per-unit rate and fixed fees for one student type."""

    per_unit_rate: Decimal
    laboratory_fee: Decimal
    miscellaneous_fee: Decimal
    enrollment_fee: Decimal
    irregularity_fee: Decimal
    rate_label: str


FEE_SCHEDULES: dict[StudentType, FeeSchedule] = {
    StudentType.REGULAR: FeeSchedule(
        per_unit_rate=Decimal("328.21"),
        laboratory_fee=Decimal("500.00"),
        miscellaneous_fee=Decimal("300.00"),
        enrollment_fee=Decimal("200.00"),
        irregularity_fee=Decimal("0.00"),
        rate_label="Regular Rate",
    ),
    StudentType.IRREGULAR: FeeSchedule(
        per_unit_rate=Decimal("450.00"),
        laboratory_fee=Decimal("500.00"),
        miscellaneous_fee=Decimal("500.00"),
        enrollment_fee=Decimal("350.00"),
        irregularity_fee=Decimal("300.00"),
        rate_label="Irregular Rate",
    ),
}

# Year ordinal -> typical unit load when no curriculum is on file
DEFAULT_UNITS_BY_YEAR: dict[int, int] = {1: 18, 2: 18, 3: 15, 4: 12}
FALLBACK_UNITS = 15


def parse_student_type(value: StudentType | str | None) -> StudentType:
    """
    Raises:
        ValidationError: For values other than regular/irregular
    """
    if value is None or value == "":
        return StudentType.REGULAR
    if isinstance(value, StudentType):
        return value
    try:
        return StudentType(str(value).strip().lower())
    except ValueError as e:
        raise ValidationError(
            f"Invalid student type '{value}'. Allowed values: regular, irregular"
        ) from e


def default_units(year_level: str | None) -> int:
    year = YearLevel.parse(year_level)
    if year is None:
        return FALLBACK_UNITS
    return DEFAULT_UNITS_BY_YEAR.get(year.ordinal, FALLBACK_UNITS)


def compute_tuition(per_unit_rate: Decimal, units: int) -> Decimal:
    return (per_unit_rate * units).quantize(CENTS, rounding=ROUND_HALF_UP)


def build_breakdown(
    *,
    program: str,
    year_level: str,
    term: str,
    student_type: StudentType,
    units: int,
    units_source: str,
) -> FeeBreakdown:
    """Price a known unit load. No database access."""
    schedule = FEE_SCHEDULES[student_type]
    tuition = compute_tuition(schedule.per_unit_rate, units)

    lines = [
        FeeLine(
            item="Tuition Fee",
            amount=tuition,
            details=f"{units} units × ₱{schedule.per_unit_rate} ({schedule.rate_label})",
        ),
        FeeLine(
            item="Laboratory Fee",
            amount=schedule.laboratory_fee,
            details="Computer laboratory usage",
        ),
        FeeLine(
            item="Miscellaneous Fee",
            amount=schedule.miscellaneous_fee,
            details=(
                "Library, ID and other fees (irregular rate)"
                if student_type is StudentType.IRREGULAR
                else "Library, ID and other fees"
            ),
        ),
        FeeLine(
            item="Enrollment Fee",
            amount=schedule.enrollment_fee,
            details="Enrollment processing",
        ),
    ]
    if student_type is StudentType.IRREGULAR:
        lines.append(
            FeeLine(
                item="Irregularity Fee",
                amount=schedule.irregularity_fee,
                details="Additional processing for irregular enrollment",
            )
        )

    total = sum((line.amount for line in lines), Decimal("0.00")).quantize(CENTS)

    return FeeBreakdown(
        program=program,
        year_level=year_level,
        term=term,
        student_type=student_type,
        total_units=units,
        units_source=units_source,
        per_unit_rate=schedule.per_unit_rate,
        tuition_fee=tuition,
        laboratory_fee=schedule.laboratory_fee,
        miscellaneous_fee=schedule.miscellaneous_fee,
        enrollment_fee=schedule.enrollment_fee,
        irregularity_fee=schedule.irregularity_fee,
        total=total,
        breakdown=lines,
    )


async def calculate_fees(
    db: AsyncSession,
    program: str,
    year_level: str,
    term: str,
    student_type: StudentType | str | None = StudentType.REGULAR,
    units_override: int | None = None,
) -> FeeBreakdown:
    """
    Calculate the fee breakdown for an enrollment.

    Args:
        db: Database session (used for the curriculum lookup)
        program: Program code or name
        year_level: Any supported year-level spelling
        term: Semester/term label
        student_type: regular or irregular
        units_override: Units chosen by the caller; ignored unless positive

    Raises:
        ValidationError: For an unknown student type
    """
    student_type = parse_student_type(student_type)

    if units_override is not None and units_override > 0:
        units, source = units_override, "override"
    else:
        resolution = await resolve_curriculum(db, program, year_level, term)
        if resolution.total_units > 0:
            units, source = resolution.total_units, "curriculum"
        else:
            units, source = default_units(year_level), "default"

    logger.debug(
        f"Fees for {program}/{year_level}/{term} ({student_type.value}): "
        f"{units} units from {source}"
    )

    return build_breakdown(
        program=normalize_program(program),
        year_level=canonical_year_level(year_level),
        term=(term or "").strip(),
        student_type=student_type,
        units=units,
        units_source=source,
    )
