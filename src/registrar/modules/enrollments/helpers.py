"""
Enrollment Shared Helpers

Small functions used by the request service, the migration engine and the
ledger views.
"""

from datetime import datetime


def academic_year_for(now: datetime) -> str:
    """
    Academic year label for a point in time.

    The label always starts at the current calendar year, e.g. any date in
    2025 gives "2025-2026".
    """
    return f"{now.year}-{now.year + 1}"


def semester_label(semester: str, period: str | int) -> str:
    """Human label used in notifications, e.g. "1st Term 2025-2026"."""
    return f"{semester} {period}".strip()


def subject_units_total(subjects: list[dict]) -> int:
    """Sum of integer unit values on subject records; non-numeric units count as 0."""
    total = 0
    for subject in subjects:
        try:
            total += int(subject.get("units") or 0)
        except (TypeError, ValueError):
            continue
    return total
