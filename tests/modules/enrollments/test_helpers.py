"""
Unit tests for enrollment helpers and the student id variant policy.
"""

from datetime import UTC, datetime

import pytest

from registrar.modules.enrollments.helpers import (
    academic_year_for,
    semester_label,
    subject_units_total,
)
from registrar.modules.enrollments.student_id_policy import dash_prefix_variant, no_variants


class TestAcademicYearFor:
    @pytest.mark.parametrize(
        "when,expected",
        [
            (datetime(2025, 1, 15, tzinfo=UTC), "2025-2026"),
            (datetime(2025, 8, 1, tzinfo=UTC), "2025-2026"),
            (datetime(2025, 12, 31, 23, 59, tzinfo=UTC), "2025-2026"),
        ],
    )
    def test_starts_at_calendar_year(self, when, expected):
        assert academic_year_for(when) == expected


class TestSemesterLabel:
    def test_joins_term_and_year(self):
        assert semester_label("1st Term", "2025-2026") == "1st Term 2025-2026"

    def test_empty_period(self):
        assert semester_label("Summer", "") == "Summer"


class TestSubjectUnitsTotal:
    def test_sums_numeric_units(self):
        subjects = [{"units": 3}, {"units": "2"}, {"units": None}, {}]
        assert subject_units_total(subjects) == 5

    def test_non_numeric_units_count_as_zero(self):
        assert subject_units_total([{"units": "three"}, {"units": 3}]) == 3

    def test_empty(self):
        assert subject_units_total([]) == 0


class TestDashPrefixVariant:
    """Tests for the default student id variant policy."""

    def test_base_is_text_before_first_dash(self):
        match = dash_prefix_variant("2021-0001-A")

        assert match is not None
        assert match.base == "2021"
        assert match.reason == "Student ID variant already enrolled"

    def test_ids_without_dash_have_no_variants(self):
        assert dash_prefix_variant("2021001") is None

    def test_leading_dash_has_no_base(self):
        assert dash_prefix_variant("-0001") is None


class TestNoVariants:
    def test_never_matches(self):
        assert no_variants("2021-0001-A") is None
