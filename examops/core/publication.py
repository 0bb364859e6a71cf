"""Publication Rules — pure decisions behind the batched result-publication pipeline.

Invariants:
    - Cache key format is result:<tenant>:<exam>:<student> (single source of truth: result_cache_key)
    - Event identity is deterministic per (tenant, exam, student) so consumers can deduplicate
      redelivered batches
    - Batch windows are contiguous, ordered by offset, and never overlap or skip a record
    - Exam status only moves forward one step at a time; publication only from ready_for_publication
    - A claim can be taken from any holder except a live (non-stalled) in_progress one

Design Decisions:
    - Offsets over keyset cursors: grade records are immutable once computed and read ordered by
      student_id, so offset N always designates the same record across resumed runs
    - Stall detection uses the checkpoint heartbeat (updated_at): no external distributed lock
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from examops.core.domain_types import (
    ExamId, ExamStatus, PublicationStatus, StudentId, TenantId,
)
from examops.core.errors import InvalidStateError, ErrorContext
from examops.core.records import Exam, GradeRecord, PublicationProgress


RESULT_KEY_PREFIX = "result"
PUBLICATION_EVENT_TYPE = "result.published"

_EXAM_STATUS_ORDER: tuple[ExamStatus, ...] = tuple(ExamStatus)


@dataclass(frozen=True)
class PublicationReport:
    """Outcome of one publish() run."""
    tenant_id: TenantId
    exam_id: ExamId
    status: PublicationStatus
    total_records: int
    processed_offset: int
    batches_processed: int
    resumed_from: int = 0

    def to_dict(self) -> dict:
        return {
            "exam_id": self.exam_id,
            "status": self.status.value,
            "total_records": self.total_records,
            "processed_offset": self.processed_offset,
            "batches_processed": self.batches_processed,
            "resumed_from": self.resumed_from,
        }


def result_cache_key(tenant_id: TenantId, exam_id: ExamId, student_id: StudentId) -> str:
    return f"{RESULT_KEY_PREFIX}:{tenant_id}:{exam_id}:{student_id}"


def result_event_key(tenant_id: TenantId, exam_id: ExamId, student_id: StudentId) -> str:
    return f"{tenant_id}:{exam_id}:{student_id}"


def build_publication_event(record: GradeRecord) -> dict:
    """Event payload for one published result. event_id is stable across redeliveries."""
    return {
        "event_id": f"{PUBLICATION_EVENT_TYPE}:"
                    f"{result_event_key(record.tenant_id, record.exam_id, record.student_id)}",
        "event_type": PUBLICATION_EVENT_TYPE,
        "result": record.to_result_payload(),
    }


def can_transition(current: ExamStatus, target: ExamStatus) -> bool:
    """Monotonic, single-step exam lifecycle."""
    cur = _EXAM_STATUS_ORDER.index(current)
    nxt = _EXAM_STATUS_ORDER.index(target)
    return nxt == cur + 1


def ensure_publishable(exam: Exam) -> None:
    """Raise InvalidStateError unless the exam is ready_for_publication."""
    if exam.status != ExamStatus.READY_FOR_PUBLICATION:
        raise InvalidStateError(
            f"Exam '{exam.exam_id}' is {exam.status.value}; "
            "publication requires ready_for_publication",
            current_state=exam.status.value,
            context=ErrorContext(tenant_id=exam.tenant_id, exam_id=exam.exam_id),
        )


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def is_stalled(progress: PublicationProgress, stale_before: datetime) -> bool:
    if progress.status != PublicationStatus.IN_PROGRESS:
        return False
    if progress.updated_at is None:
        return True
    return _as_utc(progress.updated_at) < _as_utc(stale_before)


def is_claimable(progress: PublicationProgress | None, stale_before: datetime) -> bool:
    """Whether a new task may take the publication claim for this exam.

    Anything but a live in_progress claim is claimable, including completed: callers only
    claim after checking the exam is still ready_for_publication, so a completed checkpoint
    there means the final exam transition never landed.
    """
    if progress is None:
        return True
    if progress.status != PublicationStatus.IN_PROGRESS:
        return True
    return is_stalled(progress, stale_before)


def next_batch(processed_offset: int, total_records: int, batch_size: int) -> tuple[int, int] | None:
    """(offset, limit) of the next batch, or None when everything is processed."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if processed_offset >= total_records:
        return None
    return processed_offset, min(batch_size, total_records - processed_offset)


def plan_batches(processed_offset: int, total_records: int, batch_size: int) -> list[tuple[int, int]]:
    """All remaining batch windows, in key order."""
    windows = []
    offset = processed_offset
    while (window := next_batch(offset, total_records, batch_size)) is not None:
        windows.append(window)
        offset += window[1]
    return windows
