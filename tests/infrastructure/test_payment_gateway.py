"""Payment gateway client — retry policy, error mapping, and idempotency header."""

from decimal import Decimal

import httpx
import pytest

from examops.core.errors import PaymentGatewayError
from examops.infrastructure.payment_gateway import HttpPaymentGateway

METADATA = {"tenant_id": "t1", "fee_id": "fee-1", "payment_id": "pay-1"}


def gateway_for(*responses):
    """Gateway whose transport replays `responses` in order and records requests."""
    queue = list(responses)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    gateway = HttpPaymentGateway(
        "https://gateway.test/api", "secret", max_retries=2,
        base_delay_ms=0, max_delay_ms=0, transport=httpx.MockTransport(handler),
    )
    return gateway, seen


async def initiate(gateway):
    return await gateway.initiate(Decimal("150.00"), "USD", "stu-1", METADATA)


async def test_success_returns_reference_and_sends_payment_id():
    gateway, seen = gateway_for(httpx.Response(201, json={"reference": "gw-77"}))

    ref = await initiate(gateway)

    assert ref == "gw-77"
    request = seen[0]
    assert request.url.path == "/api/payments"
    assert request.headers["Idempotency-Key"] == "pay-1"
    assert request.headers["Authorization"] == "Bearer secret"
    assert b'"amount":"150.00"' in request.content.replace(b" ", b"")


async def test_server_error_retried_with_same_key():
    gateway, seen = gateway_for(
        httpx.Response(503),
        httpx.ConnectError("reset"),
        httpx.Response(200, json={"reference": "gw-1"}),
    )

    assert await initiate(gateway) == "gw-1"
    assert len(seen) == 3
    assert {r.headers["Idempotency-Key"] for r in seen} == {"pay-1"}


async def test_rate_limit_exhausts_to_gateway_error():
    gateway, _ = gateway_for(*[httpx.Response(429, headers={"Retry-After": "0"})] * 3)

    with pytest.raises(PaymentGatewayError) as exc:
        await initiate(gateway)
    assert exc.value.error_type == "rate_limit"


async def test_client_error_not_retried_and_carries_reason():
    gateway, seen = gateway_for(httpx.Response(402, json={"reason": "card declined"}))

    with pytest.raises(PaymentGatewayError) as exc:
        await initiate(gateway)

    assert len(seen) == 1
    assert exc.value.reason == "card declined"
    assert exc.value.error_type == "client_error"
    assert exc.value.http_status == 502


async def test_transient_failures_exhaust_to_connection_error():
    gateway, seen = gateway_for(*[httpx.Response(500)] * 3)

    with pytest.raises(PaymentGatewayError) as exc:
        await initiate(gateway)

    assert exc.value.error_type == "connection_error"
    assert len(seen) == 3


async def test_missing_reference_is_protocol_error():
    gateway, _ = gateway_for(httpx.Response(200, json={"status": "ok"}))

    with pytest.raises(PaymentGatewayError) as exc:
        await initiate(gateway)
    assert exc.value.error_type == "protocol_error"
