"""Resilient Payment Gateway Client — wraps httpx.AsyncClient with retry, backoff, and error mapping.

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, timeouts, connection): max retries with exponential backoff
    - Client errors (4xx except 429): immediate failure, no retry
    - All failures mapped to PaymentGatewayError carrying the gateway-supplied reason
    - Every attempt for one payment sends the same Idempotency-Key (our payment_id),
      so a retried request never creates a second gateway charge

Design Decisions:
    - Wrapper over raw client: isolates retry logic from the payment processor
    - ±25% jitter on backoff: prevents thundering herd when the gateway sheds load
    - The caller's idempotency key never leaves this service; the gateway sees payment_id
"""

import asyncio
import logging
import random
from decimal import Decimal

import httpx

from examops.core.domain_types import GatewayRef
from examops.core.errors import PaymentGatewayError, ErrorContext

logger = logging.getLogger(__name__)


class HttpPaymentGateway:
    """PaymentGateway over the gateway's REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: int = 30,
        max_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def initiate(
        self,
        amount: Decimal,
        currency: str,
        customer_ref: str,
        metadata: dict,
        context: ErrorContext | None = None,
    ) -> GatewayRef:
        """Create a gateway payment with automatic retry on transient failures."""
        body = {
            "amount": str(amount),
            "currency": currency,
            "customer_ref": customer_ref,
            "metadata": metadata,
        }
        headers = {}
        if metadata.get("payment_id"):
            headers["Idempotency-Key"] = str(metadata["payment_id"])

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.post("/payments", json=body, headers=headers)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                await self._handle_transient_error(e, attempt, context)
                continue

            if response.status_code == 429:
                await self._handle_rate_limit(response, attempt, context)
                continue
            if response.status_code >= 500:
                await self._handle_transient_error(
                    f"HTTP {response.status_code}", attempt, context,
                )
                continue
            if response.status_code >= 400:
                raise PaymentGatewayError(
                    self._extract_reason(response), "client_error", context=context,
                )

            gateway_ref = self._extract_ref(response, context)
            logger.info(
                "Payment gateway initiate success",
                extra={"attempt": attempt + 1, "payment_id": metadata.get("payment_id")},
            )
            return gateway_ref

        # Unreachable: the handlers raise on the final attempt
        raise PaymentGatewayError("retries exhausted", "connection_error", context=context)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _handle_rate_limit(
        self, response: httpx.Response, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle rate limit response with retry or raise."""
        retry_after_ms = self._extract_retry_after(response)
        if attempt >= self.max_retries:
            raise PaymentGatewayError(
                "Rate limit exceeded after retries",
                "rate_limit",
                retry_after_ms=retry_after_ms,
                context=context,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Gateway rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: object, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise PaymentGatewayError(
                f"Transient failure after {self.max_retries} retries: {e}",
                "connection_error",
                context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(f"Gateway transient error, retry after {delay}ms: {e}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    @staticmethod
    def _extract_retry_after(response: httpx.Response) -> int | None:
        """Extract Retry-After header (returns milliseconds)."""
        val = response.headers.get("retry-after")
        if val and val.isdigit():
            return int(val) * 1000
        return None

    @staticmethod
    def _extract_reason(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200] or f"HTTP {response.status_code}"
        if isinstance(data, dict):
            reason = data.get("reason") or data.get("message") or data.get("error")
            if isinstance(reason, str):
                return reason
        return f"HTTP {response.status_code}"

    @staticmethod
    def _extract_ref(response: httpx.Response, context: ErrorContext | None) -> GatewayRef:
        try:
            data = response.json()
        except ValueError:
            raise PaymentGatewayError("malformed gateway response", "protocol_error", context=context)
        ref = data.get("reference") if isinstance(data, dict) else None
        if not ref:
            raise PaymentGatewayError("gateway response missing reference", "protocol_error", context=context)
        return GatewayRef(str(ref))
