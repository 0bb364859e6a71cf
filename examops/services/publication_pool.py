"""Publication Worker Pool — bounded concurrency with explicit backpressure.

Invariants:
    - At most max_concurrency publications run at once (one worker task each)
    - Jobs in flight (running + queued) never exceed max_concurrency + backlog; beyond that,
      submit() answers REJECTED instead of queueing or dropping silently
    - One live job per (tenant, exam): a second submit answers DUPLICATE with the existing job
    - A job failure never kills its worker; the outcome (report or error) stays on the job

Design Decisions:
    - Capacity is counted from the live-job registry, not the queue, so the answer does not
      depend on whether a worker has already picked the job up
    - Cancellation is cooperative: the job's asyncio.Event is read by the publisher between
      batches, and a job cancelled while still queued is skipped by its worker
"""

import asyncio
import logging
from dataclasses import dataclass, field

from examops.core.domain_types import ExamId, TenantId, TicketStatus
from examops.core.errors import ExamOpsError
from examops.core.publication import PublicationReport
from examops.services.result_publisher import ResultPublisher

logger = logging.getLogger(__name__)


@dataclass
class PublicationJob:
    tenant_id: TenantId
    exam_id: ExamId
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    report: PublicationReport | None = None
    error: BaseException | None = None
    skipped: bool = False

    @property
    def key(self) -> tuple[TenantId, ExamId]:
        return (self.tenant_id, self.exam_id)

    async def wait(self) -> None:
        await self.done.wait()


@dataclass(frozen=True)
class PublicationTicket:
    status: TicketStatus
    tenant_id: TenantId
    exam_id: ExamId
    job: PublicationJob | None = None

    @property
    def accepted(self) -> bool:
        return self.status != TicketStatus.REJECTED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "exam_id": self.exam_id,
        }


class PublicationWorkerPool:
    """Fixed pool of worker tasks draining a queue of publication jobs."""

    def __init__(
        self, publisher: ResultPublisher, max_concurrency: int = 10, backlog: int = 50,
    ):
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        if backlog < 0:
            raise ValueError(f"backlog must be non-negative, got {backlog}")
        self.publisher = publisher
        self.max_concurrency = max_concurrency
        self.backlog = backlog
        self._queue: asyncio.Queue[PublicationJob] = asyncio.Queue()
        self._jobs: dict[tuple[TenantId, ExamId], PublicationJob] = {}
        self._workers: list[asyncio.Task] = []
        self._running = 0

    @property
    def capacity(self) -> int:
        return self.max_concurrency + self.backlog

    @property
    def in_flight(self) -> int:
        return len(self._jobs)

    @property
    def running(self) -> int:
        return self._running

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"publication-worker-{n}")
            for n in range(self.max_concurrency)
        ]
        logger.info(f"Publication pool started with {self.max_concurrency} workers")

    def submit(self, tenant_id: TenantId, exam_id: ExamId) -> PublicationTicket:
        """Enqueue publication of one exam. Never blocks."""
        existing = self._jobs.get((tenant_id, exam_id))
        if existing is not None:
            return self._ticket(TicketStatus.DUPLICATE, existing)

        in_flight = len(self._jobs)
        if in_flight >= self.capacity:
            logger.warning(
                "Publication rejected: pool and backlog full",
                extra={
                    "tenant_id": tenant_id,
                    "exam_id": exam_id,
                    "ticket_status": TicketStatus.REJECTED.value,
                },
            )
            return PublicationTicket(TicketStatus.REJECTED, tenant_id, exam_id)

        job = PublicationJob(tenant_id, exam_id)
        self._jobs[job.key] = job
        self._queue.put_nowait(job)
        status = (
            TicketStatus.STARTED if in_flight < self.max_concurrency
            else TicketStatus.QUEUED
        )
        return self._ticket(status, job)

    def cancel(self, tenant_id: TenantId, exam_id: ExamId) -> bool:
        """Signal cancellation. False when no live job exists for the exam."""
        job = self._jobs.get((tenant_id, exam_id))
        if job is None:
            return False
        job.cancel_event.set()
        logger.info(
            "Publication cancellation requested",
            extra={"tenant_id": tenant_id, "exam_id": exam_id},
        )
        return True

    def get_job(self, tenant_id: TenantId, exam_id: ExamId) -> PublicationJob | None:
        return self._jobs.get((tenant_id, exam_id))

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        await self._queue.join()

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Publication pool stopped")

    # --- workers -------------------------------------------------------------

    def _ticket(self, status: TicketStatus, job: PublicationJob) -> PublicationTicket:
        logger.info(
            "Publication submitted",
            extra={
                "tenant_id": job.tenant_id,
                "exam_id": job.exam_id,
                "ticket_status": status.value,
            },
        )
        return PublicationTicket(status, job.tenant_id, job.exam_id, job)

    async def _worker(self, n: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job)
            finally:
                self._jobs.pop(job.key, None)
                job.done.set()
                self._queue.task_done()

    async def _run(self, job: PublicationJob) -> None:
        extra = {"tenant_id": job.tenant_id, "exam_id": job.exam_id}
        if job.cancel_event.is_set():
            job.skipped = True
            logger.info("Skipping publication cancelled while queued", extra=extra)
            return

        self._running += 1
        try:
            job.report = await self.publisher.publish(
                job.tenant_id, job.exam_id, job.cancel_event,
            )
        except ExamOpsError as e:
            job.error = e
            logger.warning(
                f"Publication job ended with error: {e.message}",
                extra={**extra, "error_code": e.code},
            )
        except Exception as e:
            job.error = e
            logger.error(f"Unexpected publication job error: {e}", extra=extra, exc_info=True)
        finally:
            self._running -= 1
