"""
Curriculum Models

Reference data: academic programs and the subjects each program offers per
year level and semester. Read-only for enrollment processing.
"""

import enum

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from registrar.modules.shared import BaseModel


class StudentType(str, enum.Enum):
    """Enrollment classification; drives per-unit rate and fixed fees."""

    REGULAR = "regular"
    IRREGULAR = "irregular"


class Program(BaseModel):
    """Academic program, identified by its short code (e.g. BSIT)."""

    __tablename__ = "programs"

    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class CurriculumEntry(BaseModel):
    """
    One subject offered to a program in a given year level and semester.

    ``year_level`` is stored as whatever label the curriculum was loaded
    with ("1st Year", "1st", "1stYear", ...); lookups try every surface form.
    """

    __tablename__ = "curriculum"

    program_code: Mapped[str] = mapped_column(String(20), nullable=False)
    year_level: Mapped[str] = mapped_column(String(30), nullable=False)
    semester: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_code: Mapped[str] = mapped_column(String(30), nullable=False)
    subject_name: Mapped[str] = mapped_column(String(200), nullable=False)
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    instructor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    room: Mapped[str | None] = mapped_column(String(100), nullable=True)
    schedule: Mapped[str | None] = mapped_column(String(200), nullable=True)
    prerequisite: Mapped[str | None] = mapped_column(String(200), nullable=True)
    section: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_curriculum_lookup", "program_code", "year_level", "semester"),
        Index("ix_curriculum_subject_code", "subject_code"),
    )
