"""Grade Bands — tests for percentage rounding and category boundaries."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from examops.core.domain_types import GradeCategory
from examops.core.grade_bands import grade_category, percentage
from examops.core.records import GradeRecord


@pytest.mark.parametrize("marks, expected", [
    (90, GradeCategory.EXCELLENT),
    (100, GradeCategory.EXCELLENT),
    (89, GradeCategory.VERY_GOOD),
    (75, GradeCategory.VERY_GOOD),
    (60, GradeCategory.GOOD),
    (45, GradeCategory.SATISFACTORY),
    (44, GradeCategory.NEEDS_IMPROVEMENT),
    (0, GradeCategory.NEEDS_IMPROVEMENT),
])
def test_band_lower_bounds_are_inclusive(marks, expected):
    assert grade_category(Decimal(marks), Decimal(100)) == expected


def test_percentage_rounds_half_up():
    assert percentage(Decimal(2), Decimal(3)) == Decimal("66.67")
    assert percentage(Decimal("0.125"), Decimal(1)) == Decimal("12.50")


def test_category_uses_unrounded_ratio():
    # 89.996% rounds to 90.00 for display but stays VeryGood
    marks, total = Decimal("89.996"), Decimal(100)
    assert percentage(marks, total) == Decimal("90.00")
    assert grade_category(marks, total) == GradeCategory.VERY_GOOD


def test_non_positive_total_rejected():
    with pytest.raises(ValueError):
        percentage(Decimal(10), Decimal(0))
    with pytest.raises(ValueError):
        grade_category(Decimal(10), Decimal(-5))


def test_result_payload_is_json_safe():
    record = GradeRecord(
        tenant_id="t1", exam_id="e1", student_id="stu-1", subject_id="math",
        marks_obtained=Decimal("45.50"), total_marks=Decimal(50), grade_letter="A",
        computed_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )

    payload = record.to_result_payload()

    assert payload["percentage"] == "91.00"
    assert payload["grade_category"] == "Excellent"
    assert payload["computed_at"].startswith("2026-03-01")
