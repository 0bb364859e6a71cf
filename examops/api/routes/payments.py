"""Payment Routes — idempotent initiation and the gateway webhook.

Invariants:
    - POST /payments requires an Idempotency-Key header; 201 when created, 200 on replay
    - The webhook resolves the tenant from gateway-echoed metadata, never from a header
    - Duplicate or contradicting webhooks answer 200 (acknowledged, not applied)
"""

import logging

from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import JSONResponse

from examops.api.dependencies import get_services, get_tenant_id
from examops.core.domain_types import (
    FeeId, GatewayCallbackStatus, GatewayRef, IdempotencyKey, TenantId,
)
from examops.core.errors import InvalidPaymentRequestError
from examops.core.records import PaymentRequest
from examops.schemas.payment import (
    PaymentCreate, PaymentResponse, PaymentWebhook, WebhookAck,
)
from examops.services.payment_processor import GatewayCallback
from examops.services.wiring import Services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def initiate_payment(
    body: PaymentCreate,
    idempotency_key: str = Header(..., alias="Idempotency-Key", min_length=1, max_length=128),
    tenant_id: TenantId = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    result = await services.payments.initiate(
        tenant_id,
        PaymentRequest(
            fee_id=FeeId(body.fee_id),
            amount=body.amount,
            idempotency_key=IdempotencyKey(idempotency_key),
            metadata=body.metadata,
        ),
    )
    response = PaymentResponse(**result.payment.to_public_dict(), duplicate=result.duplicate)
    if result.duplicate:
        return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump())
    return response


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    body: PaymentWebhook,
    services: Services = Depends(get_services),
):
    tenant_id = body.metadata.get("tenant_id")
    if not tenant_id:
        raise InvalidPaymentRequestError(
            "webhook metadata is missing tenant_id", "metadata.tenant_id",
        )
    outcome = await services.payments.handle_callback(
        TenantId(tenant_id),
        GatewayCallback(
            gateway_ref=GatewayRef(body.gateway_ref),
            status=GatewayCallbackStatus(body.status),
            reason=body.reason,
        ),
    )
    return WebhookAck(
        payment_id=outcome.payment.payment_id,
        status=outcome.payment.status.value,
        applied=outcome.applied,
    )
