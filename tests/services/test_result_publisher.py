"""Result Publisher — batching, checkpointing, retries, cancellation and claims.

Invariants:
    - Every record is cached and announced exactly once per successful run
    - A failed run leaves a checkpoint a later run resumes from
    - The exam is published only after the last batch
"""

import asyncio
import dataclasses
from datetime import timedelta

import pytest

from examops.core.domain_types import ExamStatus, PublicationStatus
from examops.core.errors import (
    ConcurrencyError, InvalidStateError, PublicationFailedError, PublicationInProgressError,
    ResourceNotFoundError,
)
from examops.core.records import Exam, PublicationProgress
from examops.services.result_publisher import ResultPublisher
from tests.services.fakes import (
    NOW, FakeCache, FakeExamStore, FakeGradeStore, FakeNotifier, FakeProgressStore,
    make_grade,
)


def ready_exam(status=ExamStatus.READY_FOR_PUBLICATION):
    return Exam(tenant_id="t1", exam_id="e1", status=status)


def build(records=3, *, exam=None, notifier=None, progress=None, **kwargs):
    exams = FakeExamStore(exam or ready_exam())
    grades = FakeGradeStore(make_grade(f"stu-{i}") for i in range(1, records + 1))
    progress = progress or FakeProgressStore()
    cache = FakeCache()
    notifier = notifier or FakeNotifier()
    options = dict(
        batch_size=2, max_attempts=3, base_delay_ms=0, max_delay_ms=0,
        cache_ttl_seconds=86_400, clock=lambda: NOW,
    )
    options.update(kwargs)
    publisher = ResultPublisher(exams, grades, progress, cache, notifier, **options)
    return publisher, exams, grades, progress, cache, notifier


async def test_three_records_two_per_batch():
    publisher, exams, _, progress, cache, notifier = build(3)

    report = await publisher.publish("t1", "e1")

    assert report.status == PublicationStatus.COMPLETED
    assert report.batches_processed == 2
    assert report.processed_offset == 3
    assert set(cache.values) == {
        "result:t1:e1:stu-1", "result:t1:e1:stu-2", "result:t1:e1:stu-3",
    }
    assert all(ttl == 86_400 for ttl in cache.ttls.values())
    assert [key for _, key, _ in notifier.events] == ["t1:e1:stu-1", "t1:e1:stu-2", "t1:e1:stu-3"]
    assert exams.exams[("t1", "e1")].status == ExamStatus.PUBLISHED
    assert exams.exams[("t1", "e1")].published_at == NOW
    assert (await progress.get("t1", "e1")).status == PublicationStatus.COMPLETED


async def test_checkpoint_advances_after_each_batch():
    publisher, _, _, progress, _, _ = build(5)

    await publisher.publish("t1", "e1")

    assert progress.advances == [2, 4, 5]


async def test_events_go_to_configured_topic():
    publisher, _, _, _, _, notifier = build(1, event_topic="custom.topic")

    await publisher.publish("t1", "e1")

    topic, _, payload = notifier.events[0]
    assert topic == "custom.topic"
    assert payload["event_id"] == "result.published:t1:e1:stu-1"


async def test_exam_with_no_records_is_published():
    publisher, exams, _, _, _, notifier = build(0)

    report = await publisher.publish("t1", "e1")

    assert report.batches_processed == 0
    assert notifier.events == []
    assert exams.exams[("t1", "e1")].status == ExamStatus.PUBLISHED


async def test_transient_failure_is_retried():
    publisher, exams, _, _, _, notifier = build(3, notifier=FakeNotifier(fail_times=2))

    report = await publisher.publish("t1", "e1")

    assert report.status == PublicationStatus.COMPLETED
    assert len(notifier.events) == 3
    assert exams.exams[("t1", "e1")].status == ExamStatus.PUBLISHED


async def test_exhausted_retries_fail_with_partial_progress():
    publisher, exams, _, progress, _, _ = build(3, notifier=FakeNotifier(fail_after=2))

    with pytest.raises(PublicationFailedError) as exc:
        await publisher.publish("t1", "e1")

    assert exc.value.processed == 2
    assert exc.value.total == 3
    assert "2 of 3 results available" in exc.value.to_response()["error"]["message"]
    assert exams.exams[("t1", "e1")].status == ExamStatus.READY_FOR_PUBLICATION
    stored = await progress.get("t1", "e1")
    assert stored.status == PublicationStatus.FAILED
    assert stored.processed_offset == 2


async def test_failed_run_resumes_from_checkpoint():
    notifier = FakeNotifier(fail_after=2)
    publisher, exams, grades, _, _, _ = build(3, notifier=notifier)
    with pytest.raises(PublicationFailedError):
        await publisher.publish("t1", "e1")

    notifier.fail_after = None
    grades.fetches.clear()
    report = await publisher.publish("t1", "e1")

    assert report.resumed_from == 2
    assert report.batches_processed == 1
    assert grades.fetches == [(2, 1)]
    assert [key for _, key, _ in notifier.events] == ["t1:e1:stu-1", "t1:e1:stu-2", "t1:e1:stu-3"]
    assert exams.exams[("t1", "e1")].status == ExamStatus.PUBLISHED


async def test_cancellation_honored_between_batches():
    publisher, exams, _, progress, cache, notifier = build(5)
    cancel = asyncio.Event()
    notifier.on_publish = lambda key: cancel.set() if key.endswith("stu-1") else None

    report = await publisher.publish("t1", "e1", cancel)

    # The batch in flight when cancel arrived still completes
    assert report.status == PublicationStatus.CANCELLED
    assert report.processed_offset == 2
    assert len(cache.values) == 2
    assert exams.exams[("t1", "e1")].status == ExamStatus.READY_FOR_PUBLICATION
    assert (await progress.get("t1", "e1")).status == PublicationStatus.CANCELLED


async def test_cancelled_run_can_be_resumed():
    publisher, exams, _, _, _, notifier = build(5)
    cancel = asyncio.Event()
    cancel.set()
    first = await publisher.publish("t1", "e1", cancel)

    second = await publisher.publish("t1", "e1")

    assert first.processed_offset == 0
    assert second.status == PublicationStatus.COMPLETED
    assert len(notifier.events) == 5


@pytest.mark.parametrize("status", [
    ExamStatus.DRAFT, ExamStatus.GRADING_IN_PROGRESS, ExamStatus.PUBLISHED,
])
async def test_only_ready_exam_is_published(status):
    publisher, _, _, progress, cache, _ = build(3, exam=ready_exam(status))

    with pytest.raises(InvalidStateError):
        await publisher.publish("t1", "e1")

    assert cache.values == {}
    assert progress.rows == {}


async def test_unknown_exam_not_found():
    publisher, *_ = build(3)

    with pytest.raises(ResourceNotFoundError):
        await publisher.publish("t1", "missing")


async def test_live_claim_blocks_second_task():
    progress = FakeProgressStore()
    progress.seed(PublicationProgress(
        "t1", "e1", 3, 0, PublicationStatus.IN_PROGRESS, "other-task", NOW,
    ))
    publisher, _, _, _, cache, _ = build(3, progress=progress)

    with pytest.raises(PublicationInProgressError):
        await publisher.publish("t1", "e1")
    assert cache.values == {}


async def test_stalled_claim_is_taken_over_and_resumed():
    progress = FakeProgressStore()
    progress.seed(PublicationProgress(
        "t1", "e1", 3, 2, PublicationStatus.IN_PROGRESS, "crashed-task",
        NOW - timedelta(hours=1),
    ))
    publisher, exams, _, _, _, notifier = build(3, progress=progress)

    report = await publisher.publish("t1", "e1")

    assert report.resumed_from == 2
    assert [key for _, key, _ in notifier.events] == ["t1:e1:stu-3"]
    assert exams.exams[("t1", "e1")].status == ExamStatus.PUBLISHED


async def test_completed_checkpoint_on_ready_exam_finishes_transition():
    progress = FakeProgressStore()
    progress.seed(PublicationProgress(
        "t1", "e1", 3, 3, PublicationStatus.COMPLETED, "old-task", NOW,
    ))
    publisher, exams, _, _, _, notifier = build(3, progress=progress)

    report = await publisher.publish("t1", "e1")

    assert report.batches_processed == 0
    assert notifier.events == []
    assert exams.exams[("t1", "e1")].status == ExamStatus.PUBLISHED


async def test_slow_batch_times_out_as_failed_attempt():
    publisher, _, _, progress, _, _ = build(
        2, notifier=FakeNotifier(delay=0.2), stall_timeout_seconds=0.01, max_attempts=2,
    )

    with pytest.raises(PublicationFailedError) as exc:
        await publisher.publish("t1", "e1")

    assert exc.value.processed == 0
    assert (await progress.get("t1", "e1")).status == PublicationStatus.FAILED


def test_invalid_batch_size_rejected():
    with pytest.raises(ValueError):
        build(1, batch_size=0)


async def test_precheck_passes_ready_exam_without_writes():
    publisher, _, _, progress, cache, _ = build(3)

    await publisher.precheck("t1", "e1")

    assert progress.rows == {}
    assert cache.values == {}


@pytest.mark.parametrize("exam_id, error", [
    ("missing", ResourceNotFoundError), ("e1", InvalidStateError),
])
async def test_precheck_rejects_unknown_or_published_exam(exam_id, error):
    publisher, *_ = build(3, exam=ready_exam(ExamStatus.PUBLISHED))

    with pytest.raises(error):
        await publisher.precheck("t1", exam_id)


async def test_heartbeat_refreshed_before_each_retry():
    publisher, _, _, progress, _, _ = build(3, notifier=FakeNotifier(fail_times=2))

    await publisher.publish("t1", "e1")

    # Two re-stamps at offset 0, then the regular checkpoints
    assert progress.advances == [0, 0, 2, 3]


class ClaimStealingNotifier(FakeNotifier):
    """Fails once, after a peer has taken the claim over."""

    def __init__(self, progress: FakeProgressStore):
        super().__init__(fail_times=1)
        self.progress = progress

    async def publish(self, topic, key, payload):
        row = self.progress.rows[("t1", "e1")]
        self.progress.rows[("t1", "e1")] = dataclasses.replace(row, owner="peer-task")
        await super().publish(topic, key, payload)


async def test_retry_stops_when_claim_was_taken_over():
    progress = FakeProgressStore()
    publisher, exams, _, _, _, _ = build(
        3, progress=progress, notifier=ClaimStealingNotifier(progress),
    )

    with pytest.raises(ConcurrencyError):
        await publisher.publish("t1", "e1")

    assert progress.advances == []
    assert exams.exams[("t1", "e1")].status == ExamStatus.READY_FOR_PUBLICATION


def test_attempt_timeout_is_inside_stall_window():
    publisher, *_ = build(1, stall_timeout_seconds=300)

    assert publisher.attempt_timeout_seconds < publisher.stall_timeout_seconds
