from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from campusmarket.core.config import settings
from campusmarket.core.errors import PaymentError
from campusmarket.core.ids import gen_id
from campusmarket.services.http_client import MarketHttpClient

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    reference: str
    amount: Decimal


class PaymentGateway(Protocol):
    async def charge(
        self, *, payer_id: str, amount: Decimal, idempotency_key: str, description: str
    ) -> ChargeResult: ...


class SimulatedPaymentGateway:
    """
    Stand-in for a real provider: every charge succeeds.
    Charges are keyed by idempotency key so a replay returns the original reference.
    """

    def __init__(self) -> None:
        self._charges: dict[str, ChargeResult] = {}

    @property
    def charges(self) -> dict[str, ChargeResult]:
        return dict(self._charges)

    async def charge(
        self, *, payer_id: str, amount: Decimal, idempotency_key: str, description: str
    ) -> ChargeResult:
        existing = self._charges.get(idempotency_key)
        if existing:
            return existing
        res = ChargeResult(reference=gen_id("sim"), amount=amount)
        self._charges[idempotency_key] = res
        log.info("simulated charge %s: payer=%s amount=%s", res.reference, payer_id, amount)
        return res


class HttpPaymentGateway:
    """
    Calls a provider's charge endpoint with a bounded timeout.
    Timeouts, transport errors and non-2xx answers all surface as PaymentError.
    """

    def __init__(self, *, url: str, timeout_seconds: float, client: MarketHttpClient | None = None):
        self._url = url
        self._client = client or MarketHttpClient(timeout_seconds=timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def charge(
        self, *, payer_id: str, amount: Decimal, idempotency_key: str, description: str
    ) -> ChargeResult:
        res = await self._client.post_json(
            url=self._url,
            headers={"Idempotency-Key": idempotency_key},
            json_body={"payer_id": payer_id, "amount": str(amount), "description": description},
            request_id=idempotency_key,
        )
        if not res.ok:
            log.warning(
                "charge failed: key=%s code=%s msg=%s", idempotency_key, res.error_code, res.error_message
            )
            raise PaymentError(
                "Payment could not be completed",
                detail={"error_code": res.error_code, "retryable": res.retryable},
            )

        reference = res.detail.get("reference") or res.detail.get("id")
        if not reference:
            raise PaymentError("Payment provider returned no reference", detail={"error_code": "NO_REFERENCE"})
        return ChargeResult(reference=str(reference), amount=amount)


_gateway: PaymentGateway | None = None


def get_payment_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        if settings.payment_provider == "http":
            _gateway = HttpPaymentGateway(
                url=settings.payment_provider_url,
                timeout_seconds=settings.payment_timeout_seconds,
            )
        else:
            _gateway = SimulatedPaymentGateway()
    return _gateway
