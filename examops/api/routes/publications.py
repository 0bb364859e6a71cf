"""Publication Routes — trigger, cancel and inspect result publication; read results.

Invariants:
    - Trigger never blocks on publication: 202 with the ticket status, 429 when rejected
    - Unknown (404) and not-ready (409) exams are rejected before a pool slot is taken
    - Result reads are cache-aside and only ever serve published exams
"""

from fastapi import APIRouter, Depends, status

from examops.api.dependencies import get_services, get_tenant_id
from examops.core.domain_types import ExamId, StudentId, TenantId
from examops.core.errors import BackpressureError, ResourceNotFoundError, ErrorContext
from examops.schemas.publication import (
    PublicationProgressResponse, PublicationTicketResponse, StudentResultResponse,
)
from examops.services.wiring import Services

router = APIRouter(prefix="/api/v1/exams", tags=["publication"])


@router.post(
    "/{exam_id}/publication",
    response_model=PublicationTicketResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_publication(
    exam_id: str,
    tenant_id: TenantId = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    await services.publisher.precheck(tenant_id, ExamId(exam_id))
    ticket = services.pool.submit(tenant_id, ExamId(exam_id))
    if not ticket.accepted:
        raise BackpressureError(
            services.pool.capacity, ErrorContext(tenant_id=tenant_id, exam_id=exam_id),
        )
    return PublicationTicketResponse(**ticket.to_dict())


@router.delete("/{exam_id}/publication", status_code=status.HTTP_202_ACCEPTED)
async def cancel_publication(
    exam_id: str,
    tenant_id: TenantId = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    if not services.pool.cancel(tenant_id, ExamId(exam_id)):
        raise ResourceNotFoundError(
            "PublicationJob", exam_id, ErrorContext(tenant_id=tenant_id, exam_id=exam_id),
        )
    return {"exam_id": exam_id, "status": "cancellation_requested"}


@router.get("/{exam_id}/publication", response_model=PublicationProgressResponse)
async def get_publication_progress(
    exam_id: str,
    tenant_id: TenantId = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    progress = await services.progress.get(tenant_id, ExamId(exam_id))
    if progress is None:
        raise ResourceNotFoundError(
            "PublicationProgress", exam_id,
            ErrorContext(tenant_id=tenant_id, exam_id=exam_id),
        )
    return PublicationProgressResponse(
        **progress.to_dict(),
        job_active=services.pool.get_job(tenant_id, ExamId(exam_id)) is not None,
    )


@router.get(
    "/{exam_id}/results/{student_id}", response_model=StudentResultResponse,
)
async def get_student_result(
    exam_id: str,
    student_id: str,
    tenant_id: TenantId = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    lookup = await services.reader.read_student_result(
        tenant_id, ExamId(exam_id), StudentId(student_id),
    )
    return StudentResultResponse(source=lookup.source, result=lookup.result)
