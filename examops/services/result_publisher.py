"""Result Publisher — batched, resumable, claim-guarded publication of an exam's results.

Invariants:
    - Only a ready_for_publication exam is published; anything else fails before any write
    - One live task per exam: the PublicationProgress claim is taken atomically, and every
      checkpoint write is conditional on still owning it
    - Per record: cache write (with TTL) then one event; processed_offset advances only after
      the whole batch is written and is persisted before the next batch starts
    - Transient IO failures retry the whole batch (cache writes overwrite, event ids repeat,
      so a retried batch is idempotent for consumers); exhaustion marks progress failed
    - Cancellation is honored only between batches, never mid-batch
    - The exam becomes published only after the last batch is checkpointed

Design Decisions:
    - Each batch attempt runs under half the stall window and the heartbeat is refreshed
      before every retry, so a live task never looks stalled to its peers
    - Exam transition before progress completion: a crash between the two leaves a completed
      checkpoint on a still-ready exam, which a re-run claims and finishes with zero batches
    - Aggregate counters travel as log extras (observability without a metrics stack)
"""

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from examops.core.domain_types import (
    ExamId, ExamStatus, PublicationStatus, TenantId,
)
from examops.core.errors import (
    ConcurrencyError, PublicationFailedError, PublicationInProgressError,
    ResourceNotFoundError, TransientIOError, ErrorContext,
)
from examops.core.publication import (
    PublicationReport, build_publication_event, ensure_publishable, next_batch,
    result_cache_key, result_event_key,
)
from examops.core.records import GradeRecord
from examops.core.repository_protocols import (
    EventNotifier, ExamStore, GradeRecordStore, PublicationProgressStore, ResultCache,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _RunCounters:
    attempted: int = 0
    succeeded: int = 0


class ResultPublisher:
    """Publishes one exam's grade records to the result cache and event bus."""

    def __init__(
        self,
        exams: ExamStore,
        grades: GradeRecordStore,
        progress: PublicationProgressStore,
        cache: ResultCache,
        notifier: EventNotifier,
        *,
        batch_size: int = 500,
        cache_ttl_seconds: int = 86_400,
        event_topic: str = "results.published",
        max_attempts: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
        stall_timeout_seconds: float = 300,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")
        self.exams = exams
        self.grades = grades
        self.progress = progress
        self.cache = cache
        self.notifier = notifier
        self.batch_size = batch_size
        self.cache_ttl_seconds = cache_ttl_seconds
        self.event_topic = event_topic
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.stall_timeout_seconds = stall_timeout_seconds
        self.attempt_timeout_seconds = stall_timeout_seconds / 2
        self.clock = clock

    async def precheck(self, tenant_id: TenantId, exam_id: ExamId) -> None:
        """Fail fast when the exam is unknown or not ready_for_publication. No writes."""
        exam = await self.exams.get(tenant_id, exam_id)
        if exam is None:
            raise ResourceNotFoundError(
                "Exam", exam_id, ErrorContext(tenant_id=tenant_id, exam_id=exam_id),
            )
        ensure_publishable(exam)

    async def publish(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        cancel_event: asyncio.Event | None = None,
    ) -> PublicationReport:
        """Run (or resume) publication for one exam. Returns a completed or cancelled report."""
        ctx = ErrorContext(tenant_id=tenant_id, exam_id=exam_id)
        # Re-checked here: the exam may have moved since the trigger was accepted
        await self.precheck(tenant_id, exam_id)

        total = await self.grades.count_for_exam(tenant_id, exam_id)
        owner = uuid.uuid4().hex
        now = self.clock()
        claim = await self.progress.claim(
            tenant_id, exam_id, total, owner, now,
            now - timedelta(seconds=self.stall_timeout_seconds),
        )
        if claim is None:
            raise PublicationInProgressError(exam_id, ctx)

        resumed_from = min(claim.processed_offset, total)
        offset = resumed_from
        batches = 0
        counters = _RunCounters()
        started = time.monotonic()
        log_extra = {"tenant_id": tenant_id, "exam_id": exam_id, "total_records": total}
        logger.info(
            "Publication started",
            extra={**log_extra, "processed_offset": offset},
        )

        while (window := next_batch(offset, total, self.batch_size)) is not None:
            if cancel_event is not None and cancel_event.is_set():
                await self.progress.finish(
                    tenant_id, exam_id, owner, PublicationStatus.CANCELLED, self.clock(),
                )
                logger.info(
                    "Publication cancelled between batches",
                    extra={**log_extra, "processed_offset": offset},
                )
                return PublicationReport(
                    tenant_id, exam_id, PublicationStatus.CANCELLED,
                    total, offset, batches, resumed_from,
                )

            batch_offset, limit = window
            try:
                written = await self._with_retry(
                    lambda: self._publish_batch(
                        tenant_id, exam_id, owner, batch_offset, limit, counters,
                    ),
                    log_extra={**log_extra, "batch_index": batches},
                    before_retry=lambda: self._heartbeat(tenant_id, exam_id, owner, batch_offset),
                )
            except TransientIOError as e:
                await self._fail(tenant_id, exam_id, owner, offset, total, counters, started)
                raise PublicationFailedError(
                    exam_id, offset, total, counters.attempted, counters.succeeded, ctx,
                ) from e

            if written == 0:
                logger.warning(
                    "Grade records ended before the counted total",
                    extra={**log_extra, "processed_offset": offset},
                )
                break
            offset = batch_offset + written
            batches += 1
            logger.info(
                "Publication batch checkpointed",
                extra={
                    **log_extra,
                    "batch_index": batches - 1,
                    "processed_offset": offset,
                    "records_attempted": counters.attempted,
                    "records_succeeded": counters.succeeded,
                },
            )

        try:
            await self._with_retry(
                lambda: self._complete(tenant_id, exam_id, owner),
                log_extra=log_extra,
                before_retry=lambda: self._heartbeat(tenant_id, exam_id, owner, offset),
            )
        except TransientIOError as e:
            await self._fail(tenant_id, exam_id, owner, offset, total, counters, started)
            raise PublicationFailedError(
                exam_id, offset, total, counters.attempted, counters.succeeded, ctx,
            ) from e

        logger.info(
            "Publication completed",
            extra={
                **log_extra,
                "processed_offset": offset,
                "records_attempted": counters.attempted,
                "records_succeeded": counters.succeeded,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return PublicationReport(
            tenant_id, exam_id, PublicationStatus.COMPLETED,
            total, offset, batches, resumed_from,
        )

    # --- batch ---------------------------------------------------------------

    async def _publish_batch(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        owner: str,
        offset: int,
        limit: int,
        counters: _RunCounters,
    ) -> int:
        records = await self.grades.fetch_batch(tenant_id, exam_id, offset, limit)
        for record in records:
            counters.attempted += 1
            await self._publish_record(record)
            counters.succeeded += 1
        if records:
            owned = await self.progress.advance(
                tenant_id, exam_id, owner, offset + len(records), self.clock(),
            )
            if not owned:
                raise ConcurrencyError(
                    f"Lost publication claim for exam '{exam_id}'",
                    ErrorContext(tenant_id=tenant_id, exam_id=exam_id),
                )
        return len(records)

    async def _publish_record(self, record: GradeRecord) -> None:
        await self.cache.set(
            result_cache_key(record.tenant_id, record.exam_id, record.student_id),
            record.to_result_payload(),
            self.cache_ttl_seconds,
        )
        await self.notifier.publish(
            self.event_topic,
            result_event_key(record.tenant_id, record.exam_id, record.student_id),
            build_publication_event(record),
        )

    async def _heartbeat(
        self, tenant_id: TenantId, exam_id: ExamId, owner: str, offset: int,
    ) -> None:
        """Re-stamp updated_at at the current checkpoint. Raises if the claim was taken over."""
        try:
            owned = await self.progress.advance(tenant_id, exam_id, owner, offset, self.clock())
        except TransientIOError as e:
            logger.warning(
                f"Heartbeat not recorded: {e}",
                extra={"tenant_id": tenant_id, "exam_id": exam_id, "processed_offset": offset},
            )
            return
        if not owned:
            raise ConcurrencyError(
                f"Lost publication claim for exam '{exam_id}'",
                ErrorContext(tenant_id=tenant_id, exam_id=exam_id),
            )

    async def _complete(self, tenant_id: TenantId, exam_id: ExamId, owner: str) -> None:
        now = self.clock()
        moved = await self.exams.transition_status(
            tenant_id, exam_id,
            ExamStatus.READY_FOR_PUBLICATION, ExamStatus.PUBLISHED, now,
        )
        if not moved:
            await self.progress.finish(
                tenant_id, exam_id, owner, PublicationStatus.FAILED, now,
            )
            raise ConcurrencyError(
                f"Exam '{exam_id}' left ready_for_publication during publication",
                ErrorContext(tenant_id=tenant_id, exam_id=exam_id),
            )
        finished = await self.progress.finish(
            tenant_id, exam_id, owner, PublicationStatus.COMPLETED, now,
        )
        if not finished:
            logger.warning(
                "Publication claim lost after exam was published",
                extra={"tenant_id": tenant_id, "exam_id": exam_id},
            )

    async def _fail(
        self,
        tenant_id: TenantId,
        exam_id: ExamId,
        owner: str,
        offset: int,
        total: int,
        counters: _RunCounters,
        started: float,
    ) -> None:
        extra = {
            "tenant_id": tenant_id,
            "exam_id": exam_id,
            "processed_offset": offset,
            "total_records": total,
            "records_attempted": counters.attempted,
            "records_succeeded": counters.succeeded,
            "duration_ms": int((time.monotonic() - started) * 1000),
            "error_code": "PUBLICATION_FAILED",
        }
        try:
            await self.progress.finish(
                tenant_id, exam_id, owner, PublicationStatus.FAILED, self.clock(),
            )
        except TransientIOError as e:
            # Claim stays in_progress; the stall window releases it
            logger.error(f"Could not mark publication failed: {e}", extra=extra)
        logger.error("Publication failed after retries", extra=extra)

    # --- retry ---------------------------------------------------------------

    async def _with_retry(
        self,
        operation: Callable[[], Awaitable[int | None]],
        log_extra: dict,
        before_retry: Callable[[], Awaitable[None]] | None = None,
    ):
        """Run operation with bounded attempts. Timeouts count as transient failures."""
        for attempt in range(self.max_attempts):
            if attempt > 0 and before_retry is not None:
                await before_retry()
            try:
                return await asyncio.wait_for(operation(), timeout=self.attempt_timeout_seconds)
            except (TransientIOError, asyncio.TimeoutError) as e:
                if attempt + 1 >= self.max_attempts:
                    if isinstance(e, TransientIOError):
                        raise
                    raise TransientIOError(
                        f"Batch attempt exceeded {self.attempt_timeout_seconds}s",
                        "PUBLICATION_TIMEOUT",
                    ) from e
                delay = self._backoff(attempt)
                logger.warning(
                    f"Transient publication error, retry after {delay}ms: {e}",
                    extra={**log_extra, "attempt": attempt + 1},
                )
                await asyncio.sleep(delay / 1000)
        raise AssertionError("unreachable")

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311
