"""
Curriculum Schemas

Pydantic schemas for curriculum lookups and fee breakdowns.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from registrar.modules.curriculum.models import StudentType


class ProgramResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    description: str | None = None


class SubjectInfo(BaseModel):
    """A subject as carried on enrollment requests and ledger rows."""

    code: str | None = None
    name: str | None = None
    units: int = 0
    instructor: str | None = None
    room: str | None = None
    schedule: str | None = None
    prerequisite: str | None = None
    section: str | None = None


class CurriculumResponse(BaseModel):
    program: str
    year_level: str
    semester: str
    matched_year_level: str | None
    tried_year_levels: list[str]
    subjects: list[SubjectInfo]
    total_units: int


class FeeLine(BaseModel):
    item: str
    amount: Decimal
    details: str


class FeeBreakdown(BaseModel):
    """Itemized fees for one student type and unit load."""

    program: str
    year_level: str
    term: str
    student_type: StudentType
    total_units: int
    units_source: str = Field(..., description="override, curriculum or default")
    per_unit_rate: Decimal
    tuition_fee: Decimal
    laboratory_fee: Decimal
    miscellaneous_fee: Decimal
    enrollment_fee: Decimal
    irregularity_fee: Decimal
    total: Decimal
    breakdown: list[FeeLine]
