"""Schedule Routes — submit, reschedule and cancel exam sittings.

Invariants:
    - 201 on commit; 409 with per-dimension conflicts on rejection
    - Malformed candidates fail with 400 before any conflict query
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from examops.api.dependencies import get_services, get_tenant_id
from examops.core.domain_types import ScheduleId, TenantId
from examops.schemas.schedule import ScheduleEntryCreate, ScheduleEntryUpdate
from examops.services.exam_scheduler import SchedulingResult
from examops.services.wiring import Services

router = APIRouter(prefix="/api/v1/schedules", tags=["schedules"])


def _scheduling_response(result: SchedulingResult, committed_status: int) -> JSONResponse:
    return JSONResponse(
        status_code=committed_status if result.committed else status.HTTP_409_CONFLICT,
        content=result.to_dict(),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_schedule(
    body: ScheduleEntryCreate,
    tenant_id: TenantId = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    entry = body.to_entry(tenant_id, body.schedule_id)
    result = await services.scheduler.submit(tenant_id, entry)
    return _scheduling_response(result, status.HTTP_201_CREATED)


@router.put("/{schedule_id}")
async def reschedule(
    schedule_id: str,
    body: ScheduleEntryUpdate,
    tenant_id: TenantId = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    entry = body.to_entry(tenant_id, schedule_id)
    result = await services.scheduler.reschedule(tenant_id, ScheduleId(schedule_id), entry)
    return _scheduling_response(result, status.HTTP_200_OK)


@router.post("/{schedule_id}/cancel")
async def cancel_schedule(
    schedule_id: str,
    tenant_id: TenantId = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    cancelled = await services.scheduler.cancel(tenant_id, ScheduleId(schedule_id))
    return cancelled.to_dict()
