"""ORM Models — SQLAlchemy declarative tables for all persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Every table's primary key starts with tenant_id
    - ORM rows never leave repositories/; callers receive core records

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all / autogenerate
"""

from examops.models.exam import ExamRow  # noqa: F401
from examops.models.schedule_entry import ScheduleEntryRow, ScheduleInvigilatorRow  # noqa: F401
from examops.models.class_enrollment import ClassEnrollmentRow  # noqa: F401
from examops.models.grade_record import GradeRecordRow  # noqa: F401
from examops.models.publication_progress import PublicationProgressRow  # noqa: F401
from examops.models.fee import FeeRow  # noqa: F401
from examops.models.fee_payment import FeePaymentRow  # noqa: F401
