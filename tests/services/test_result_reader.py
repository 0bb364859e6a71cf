"""Result Reader — cache-aside reads that never serve unpublished results."""

import pytest

from examops.core.domain_types import ExamStatus
from examops.core.errors import ResourceNotFoundError
from examops.core.records import Exam
from examops.services.result_reader import ResultReader
from tests.services.fakes import FakeCache, FakeExamStore, FakeGradeStore, make_grade


def build(status=ExamStatus.PUBLISHED):
    cache = FakeCache()
    reader = ResultReader(
        FakeExamStore(Exam("t1", "e1", status)),
        FakeGradeStore([make_grade("stu-1")]),
        cache,
        cache_ttl_seconds=600,
    )
    return reader, cache


async def test_cache_hit_served_from_cache():
    reader, cache = build()
    cache.values["result:t1:e1:stu-1"] = {"student_id": "stu-1", "cached": True}

    lookup = await reader.read_student_result("t1", "e1", "stu-1")

    assert lookup.source == "cache"
    assert lookup.result["cached"] is True


async def test_miss_on_published_exam_repopulates_cache():
    reader, cache = build()

    lookup = await reader.read_student_result("t1", "e1", "stu-1")

    assert lookup.source == "store"
    assert lookup.result["grade_category"] == "VeryGood"
    assert cache.values["result:t1:e1:stu-1"] == lookup.result
    assert cache.ttls["result:t1:e1:stu-1"] == 600


async def test_unpublished_exam_never_served():
    reader, cache = build(ExamStatus.READY_FOR_PUBLICATION)

    with pytest.raises(ResourceNotFoundError):
        await reader.read_student_result("t1", "e1", "stu-1")
    assert cache.values == {}


async def test_unknown_student_not_found():
    reader, _ = build()

    with pytest.raises(ResourceNotFoundError):
        await reader.read_student_result("t1", "e1", "stu-404")


async def test_cache_outage_degrades_to_store():
    reader, cache = build()
    cache.fail_gets = True

    lookup = await reader.read_student_result("t1", "e1", "stu-1")

    assert lookup.source == "store"
    assert cache.sets == 0


async def test_cache_only_read_returns_none_on_miss():
    reader, _ = build()

    assert await reader.get_student_result("t1", "e1", "stu-1") is None
