"""Grade Bands — pure mapping from marks to percentage and GradeCategory.

Invariants:
    - Bands are inclusive lower bounds: >=90 Excellent, >=75 VeryGood, >=60 Good, >=45 Satisfactory
    - total_marks must be positive (ValueError otherwise)
"""

from decimal import Decimal, ROUND_HALF_UP

from examops.core.domain_types import GradeCategory


GRADE_BANDS: tuple[tuple[Decimal, GradeCategory], ...] = (
    (Decimal(90), GradeCategory.EXCELLENT),
    (Decimal(75), GradeCategory.VERY_GOOD),
    (Decimal(60), GradeCategory.GOOD),
    (Decimal(45), GradeCategory.SATISFACTORY),
)


def percentage(marks_obtained: Decimal, total_marks: Decimal) -> Decimal:
    """Percentage rounded half-up to 2 places."""
    total = Decimal(total_marks)
    if total <= 0:
        raise ValueError(f"total_marks must be positive, got {total_marks}")
    raw = Decimal(marks_obtained) * 100 / total
    return raw.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def grade_category(marks_obtained: Decimal, total_marks: Decimal) -> GradeCategory:
    # Band on the unrounded ratio so 89.996 never rounds up into Excellent
    total = Decimal(total_marks)
    if total <= 0:
        raise ValueError(f"total_marks must be positive, got {total_marks}")
    pct = Decimal(marks_obtained) * 100 / total
    for lower_bound, category in GRADE_BANDS:
        if pct >= lower_bound:
            return category
    return GradeCategory.NEEDS_IMPROVEMENT
