"""
Student Profile Models

Profile records keyed by the school-issued student identifier. Enrollment
requests refer to students by that identifier; the profile links it to the
account email.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from registrar.modules.shared import BaseModel


class StudentProfile(BaseModel):
    """Student information record."""

    __tablename__ = "student_profiles"

    student_id: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    program: Mapped[str | None] = mapped_column(String(50), nullable=True)
    year_level: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<StudentProfile(id={self.id}, student_id={self.student_id})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
