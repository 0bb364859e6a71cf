"""Schedule Schemas — request/response models for exam scheduling endpoints.

Invariants:
    - Times are HH:MM wall-clock times on `date`; the half-open slot is [start_time, end_time)
    - Structural checks (ordering, duration within slot) repeat in core validation,
      so non-HTTP callers get the same guarantees
"""

from datetime import date, time

from pydantic import BaseModel, Field, field_validator, model_validator

from examops.core.domain_types import (
    ClassId, ExamId, InvigilatorId, RoomId, ScheduleId, SubjectId, TenantId,
)
from examops.core.records import ScheduleEntry

_ID = dict(min_length=1, max_length=64)


class ScheduleEntryBase(BaseModel):
    exam_id: str = Field(**_ID)
    subject_id: str = Field(**_ID)
    class_id: str = Field(**_ID)
    date: date
    start_time: time
    end_time: time
    room_id: str = Field(**_ID)
    invigilator_ids: list[str] = Field(default_factory=list, max_length=20)
    max_marks: int = Field(100, gt=0)
    duration_minutes: int = Field(60, gt=0)

    @field_validator("invigilator_ids")
    @classmethod
    def strip_invigilators(cls, v: list[str]) -> list[str]:
        v = [i.strip() for i in v]
        if any(not i for i in v):
            raise ValueError("invigilator ids cannot be empty")
        return v

    @model_validator(mode="after")
    def check_slot(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    def to_entry(self, tenant_id: TenantId, schedule_id: str) -> ScheduleEntry:
        return ScheduleEntry(
            tenant_id=tenant_id,
            schedule_id=ScheduleId(schedule_id),
            exam_id=ExamId(self.exam_id),
            subject_id=SubjectId(self.subject_id),
            class_id=ClassId(self.class_id),
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            room_id=RoomId(self.room_id),
            invigilator_ids=tuple(InvigilatorId(i) for i in self.invigilator_ids),
            max_marks=self.max_marks,
            duration_minutes=self.duration_minutes,
        )


class ScheduleEntryCreate(ScheduleEntryBase):
    schedule_id: str = Field(**_ID)


class ScheduleEntryUpdate(ScheduleEntryBase):
    """Reschedule body. The schedule id comes from the path."""
