"""API test fixtures — the real app and routes over in-memory fakes.

Invariants:
    - The lifespan is disabled; app.state.services is assembled from fakes per test
    - Requests go through httpx.ASGITransport, so error handlers run as in production
"""

from dataclasses import dataclass
from decimal import Decimal

import httpx
import pytest

from examops.core.domain_types import ExamStatus
from examops.core.records import Exam, Fee
from examops.main import create_app
from examops.services.exam_scheduler import ExamScheduler
from examops.services.payment_processor import PaymentProcessor
from examops.services.publication_pool import PublicationWorkerPool
from examops.services.result_publisher import ResultPublisher
from examops.services.result_reader import ResultReader
from examops.services.wiring import Services
from tests.services.fakes import (
    FakeCache, FakeEnrollment, FakeExamStore, FakeFeeStore, FakeGateway, FakeGradeStore,
    FakeNotifier, FakePaymentStore, FakeProgressStore, FakeScheduleStore, make_grade,
)


@dataclass
class Backends:
    schedules: FakeScheduleStore
    enrollment: FakeEnrollment
    exams: FakeExamStore
    grades: FakeGradeStore
    progress: FakeProgressStore
    cache: FakeCache
    fees: FakeFeeStore
    payments: FakePaymentStore
    gateway: FakeGateway

@pytest.fixture
def backends() -> Backends:
    enrollment = FakeEnrollment()
    enrollment.enroll("t1", "C1", "stu-1", "stu-2")
    fees = FakeFeeStore(Fee("t1", "fee-1", "stu-1", Decimal("150.00")))
    return Backends(
        schedules=FakeScheduleStore(enrollment),
        enrollment=enrollment,
        exams=FakeExamStore(
            Exam("t1", "e1", ExamStatus.READY_FOR_PUBLICATION),
            Exam("t1", "e2", ExamStatus.READY_FOR_PUBLICATION),
            Exam("t1", "done", ExamStatus.PUBLISHED),
            Exam("t1", "draft", ExamStatus.DRAFT),
        ),
        grades=FakeGradeStore([make_grade("stu-1", exam="done")]),
        progress=FakeProgressStore(),
        cache=FakeCache(),
        fees=fees,
        payments=FakePaymentStore(fees),
        gateway=FakeGateway(),
    )

@pytest.fixture
def app(backends):
    publisher = ResultPublisher(
        backends.exams, backends.grades, backends.progress, backends.cache, FakeNotifier(),
        base_delay_ms=0, max_delay_ms=0,
    )
    application = create_app(use_lifespan=False)
    # Pool is never started: accepted jobs stay live, which pins capacity for 429 checks
    application.state.services = Services(
        scheduler=ExamScheduler(backends.schedules, backends.enrollment),
        publisher=publisher,
        pool=PublicationWorkerPool(publisher, max_concurrency=1, backlog=0),
        reader=ResultReader(backends.exams, backends.grades, backends.cache, 3600),
        payments=PaymentProcessor(backends.fees, backends.payments, backends.gateway),
        progress=backends.progress,
        cache=backends.cache,
        gateway=backends.gateway,
    )
    return application

@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
