"""Result Reader — cache-aside lookup of one student's published result.

Invariants:
    - Results of an exam that is not published are never served from primary storage
    - A cache outage degrades the read to primary storage; it never fails the read
    - A store hit re-populates the cache with the configured TTL
"""

import logging
from dataclasses import dataclass

from examops.core.domain_types import ExamId, ExamStatus, StudentId, TenantId
from examops.core.errors import (
    CacheUnavailableError, ResourceNotFoundError, ErrorContext,
)
from examops.core.publication import result_cache_key
from examops.core.repository_protocols import ExamStore, GradeRecordStore, ResultCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultLookup:
    result: dict
    source: str  # "cache" | "store"


class ResultReader:
    def __init__(
        self,
        exams: ExamStore,
        grades: GradeRecordStore,
        cache: ResultCache,
        cache_ttl_seconds: int = 86_400,
    ):
        self.exams = exams
        self.grades = grades
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds

    async def get_student_result(
        self, tenant_id: TenantId, exam_id: ExamId, student_id: StudentId,
    ) -> dict | None:
        """Cache-only read. None means not populated or expired."""
        return await self.cache.get(result_cache_key(tenant_id, exam_id, student_id))

    async def read_student_result(
        self, tenant_id: TenantId, exam_id: ExamId, student_id: StudentId,
    ) -> ResultLookup:
        key = result_cache_key(tenant_id, exam_id, student_id)
        extra = {"tenant_id": tenant_id, "exam_id": exam_id}
        cache_up = True
        try:
            cached = await self.cache.get(key)
        except CacheUnavailableError:
            logger.warning("Result cache unavailable, reading primary storage", extra=extra)
            cached = None
            cache_up = False
        if cached is not None:
            return ResultLookup(cached, "cache")

        not_found = ResourceNotFoundError(
            "Result", f"{exam_id}/{student_id}",
            ErrorContext(tenant_id=tenant_id, exam_id=exam_id),
        )
        exam = await self.exams.get(tenant_id, exam_id)
        if exam is None or exam.status != ExamStatus.PUBLISHED:
            raise not_found
        record = await self.grades.get(tenant_id, exam_id, student_id)
        if record is None:
            raise not_found

        payload = record.to_result_payload()
        if cache_up:
            try:
                await self.cache.set(key, payload, self.cache_ttl_seconds)
            except CacheUnavailableError:
                logger.warning("Could not re-populate result cache", extra=extra)
        return ResultLookup(payload, "store")
