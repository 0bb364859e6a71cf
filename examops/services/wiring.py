"""Service Wiring — builds the service graph from settings and shared clients.

Invariants:
    - One instance of each service per process; the API reads them from app.state
    - The scheduler and payment processor share nothing mutable except their own locks
"""

from dataclasses import dataclass

import redis.asyncio as redis

from examops.config import Settings
from examops.infrastructure.database import DatabaseSessionManager
from examops.infrastructure.payment_gateway import HttpPaymentGateway
from examops.infrastructure.redis_cache import RedisResultCache
from examops.infrastructure.redis_events import RedisStreamNotifier
from examops.repositories.exam_repository import SqlExamStore, SqlPublicationProgressStore
from examops.repositories.grade_repository import SqlGradeRecordStore
from examops.repositories.payment_repository import SqlFeeStore, SqlPaymentStore
from examops.repositories.schedule_repository import SqlEnrollmentDirectory, SqlScheduleStore
from examops.services.exam_scheduler import ExamScheduler
from examops.services.payment_processor import PaymentProcessor
from examops.services.publication_pool import PublicationWorkerPool
from examops.services.result_publisher import ResultPublisher
from examops.services.result_reader import ResultReader


@dataclass
class Services:
    scheduler: ExamScheduler
    publisher: ResultPublisher
    pool: PublicationWorkerPool
    reader: ResultReader
    payments: PaymentProcessor
    progress: SqlPublicationProgressStore
    cache: RedisResultCache
    gateway: HttpPaymentGateway


def build_services(
    settings: Settings, db: DatabaseSessionManager, redis_client: redis.Redis,
) -> Services:
    exams = SqlExamStore(db)
    grades = SqlGradeRecordStore(db)
    progress = SqlPublicationProgressStore(db)
    cache = RedisResultCache(redis_client)
    notifier = RedisStreamNotifier(redis_client)
    gateway = HttpPaymentGateway(
        base_url=settings.payment_gateway_url,
        api_key=settings.payment_gateway_api_key,
        timeout_seconds=settings.payment_gateway_timeout_seconds,
        max_retries=settings.payment_gateway_max_retries,
        base_delay_ms=settings.payment_gateway_base_delay_ms,
        max_delay_ms=settings.payment_gateway_max_delay_ms,
    )

    publisher = ResultPublisher(
        exams, grades, progress, cache, notifier,
        batch_size=settings.publication_batch_size,
        cache_ttl_seconds=settings.result_cache_ttl_seconds,
        event_topic=settings.publication_event_topic,
        max_attempts=settings.publication_max_attempts,
        base_delay_ms=settings.publication_base_delay_ms,
        max_delay_ms=settings.publication_max_delay_ms,
        stall_timeout_seconds=settings.publication_stall_timeout_seconds,
    )
    return Services(
        scheduler=ExamScheduler(SqlScheduleStore(db), SqlEnrollmentDirectory(db)),
        publisher=publisher,
        pool=PublicationWorkerPool(
            publisher,
            max_concurrency=settings.publication_max_concurrency,
            backlog=settings.publication_backlog,
        ),
        reader=ResultReader(exams, grades, cache, settings.result_cache_ttl_seconds),
        payments=PaymentProcessor(
            SqlFeeStore(db), SqlPaymentStore(db), gateway,
            currency=settings.payment_currency,
        ),
        progress=progress,
        cache=cache,
        gateway=gateway,
    )
