"""Request Dependencies — tenant header and service lookup from app.state.

Invariants:
    - Every tenant-scoped route receives the tenant explicitly from X-Tenant-ID
    - The header is stripped before checking; a blank tenant is rejected like a missing one
    - Services are built once in the lifespan; routes never construct them
"""

from fastapi import Header, Request
from fastapi.exceptions import RequestValidationError

from examops.core.domain_types import TenantId
from examops.services.wiring import Services

TENANT_HEADER = "x-tenant-id"


async def get_tenant_id(
    x_tenant_id: str = Header(..., max_length=64),
) -> TenantId:
    tenant_id = x_tenant_id.strip()
    if not tenant_id:
        # Same shape as FastAPI's own header errors so one handler reports both
        raise RequestValidationError([{
            "loc": ("header", TENANT_HEADER),
            "msg": "X-Tenant-ID must not be blank",
            "type": "string_too_short",
        }])
    return TenantId(tenant_id)


def get_services(request: Request) -> Services:
    return request.app.state.services
