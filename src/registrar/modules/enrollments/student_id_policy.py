"""
Student ID Variant Policy

Student ids show up with and without a dash-delimited suffix across
subsystems ("2021-0001" vs "2021-0001-A"). Before migrating a request, the
engine asks a variant policy which other ids should count as the same
student.

The default policy is a heuristic: everything before the first dash is the
base id, and any active ledger row whose id equals the base or starts with
it is treated as the same student. Unrelated ids that share a prefix will
collide. It is kept as a named, swappable function until the identity
scheme is settled.
"""

from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class StudentIdVariantMatch:
    """Ledger rows with student_id == base or student_id starting with base match."""

    base: str
    reason: str = "Student ID variant already enrolled"


StudentIdVariantPolicy = Callable[[str], StudentIdVariantMatch | None]


def dash_prefix_variant(student_id: str) -> StudentIdVariantMatch | None:
    """Base id before the first dash, or None for ids without a dash."""
    if "-" not in student_id:
        return None

    base = student_id.split("-", 1)[0].strip()
    if not base:
        return None

    return StudentIdVariantMatch(base=base)


def no_variants(student_id: str) -> StudentIdVariantMatch | None:
    """Policy that disables variant matching (exact ids only)."""
    return None
