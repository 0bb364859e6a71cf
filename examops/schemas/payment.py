"""Payment Schemas — initiation request and gateway webhook body.

Invariants:
    - amount is a positive Decimal with at most 2 decimal places
    - Webhook status is exactly one of the gateway's two outcomes
    - The idempotency key travels in a header, never in a body or response
"""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class PaymentCreate(BaseModel):
    fee_id: str = Field(min_length=1, max_length=64)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    metadata: dict[str, str] = Field(default_factory=dict)


class PaymentResponse(BaseModel):
    payment_id: str
    fee_id: str
    gateway_ref: str
    amount: str
    status: str
    failure_reason: str | None = None
    duplicate: bool = False


class PaymentWebhook(BaseModel):
    """Gateway callback. tenant_id is echoed from the metadata sent at initiation."""
    gateway_ref: str = Field(min_length=1, max_length=128)
    status: Literal["succeeded", "failed"]
    reason: str | None = Field(None, max_length=500)
    metadata: dict[str, str] = Field(default_factory=dict)


class WebhookAck(BaseModel):
    payment_id: str
    status: str
    applied: bool
