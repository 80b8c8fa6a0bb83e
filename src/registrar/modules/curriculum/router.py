"""
Curriculum Router

Public lookups used by the enrollment form.

Endpoints:
- GET /curriculum/programs - Active programs
- GET /curriculum - Subjects for a program, year level and semester
- GET /curriculum/fees - Fee preview for a student type and unit load
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.database import get_db
from registrar.core.exceptions import EnrollmentServiceError
from registrar.modules.curriculum import resolver
from registrar.modules.curriculum.fees import calculate_fees
from registrar.modules.curriculum.schemas import (
    CurriculumResponse,
    FeeBreakdown,
    ProgramResponse,
    SubjectInfo,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/programs", response_model=list[ProgramResponse], summary="List Programs")
async def list_programs(db: AsyncSession = Depends(get_db)) -> list[ProgramResponse]:
    programs = await resolver.list_programs(db)
    return [ProgramResponse.model_validate(program) for program in programs]


@router.get("", response_model=CurriculumResponse, summary="Get Curriculum")
async def get_curriculum(
    program: str = Query(..., min_length=1, description="Program code or name"),
    year_level: str = Query(..., min_length=1, description="Year level, e.g. '1st Year'"),
    semester: str = Query(..., min_length=1, description="Semester, e.g. '1st Term'"),
    db: AsyncSession = Depends(get_db),
) -> CurriculumResponse:
    """
    Subjects for a program/year level/semester.

    An empty subject list means no year-level spelling matched; the
    ``tried_year_levels`` field lists what was attempted.
    """
    resolution = await resolver.resolve_curriculum(db, program, year_level, semester)
    return CurriculumResponse(
        program=resolution.program_code,
        year_level=year_level,
        semester=resolution.semester,
        matched_year_level=resolution.matched_year_level,
        tried_year_levels=resolution.tried_year_levels,
        subjects=[SubjectInfo(**subject) for subject in resolution.subjects],
        total_units=resolution.total_units,
    )


@router.get("/fees", response_model=FeeBreakdown, summary="Calculate Fees")
async def get_fees(
    program: str = Query(..., min_length=1),
    year_level: str = Query(..., min_length=1),
    term: str = Query(..., min_length=1),
    student_type: str = Query("regular"),
    units: int | None = Query(None, ge=1, le=60, description="Units actually selected"),
    db: AsyncSession = Depends(get_db),
) -> FeeBreakdown:
    try:
        return await calculate_fees(db, program, year_level, term, student_type, units)
    except EnrollmentServiceError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"error": e.error_code, "message": e.message},
        ) from e
