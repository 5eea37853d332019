"""Payment gateway collaborator.

The orchestrator only needs to open a payment session for an amount and to
ask whether a session has settled. ``PaymentGateway`` captures that
contract; ``HttpPaymentGateway`` talks to an external payment service over
HTTP.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

import httpx

from launchpad_federation.core.errors import PaymentError
from launchpad_federation.core.settings import settings
from launchpad_federation.db.time import parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    """Handle for a checkout the user completes out-of-band."""

    session_id: str
    checkout_url: str | None
    expires_at: datetime | None = None


class PaymentGateway(Protocol):
    """Contract consumed from the payment provider integration."""

    async def create_session(
        self, amount: Decimal, currency: str, metadata: Mapping[str, Any]
    ) -> PaymentSession: ...

    async def is_settled(self, session_id: str) -> bool: ...


class HttpPaymentGateway:
    """PaymentGateway backed by a payment service's REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, headers=self._headers(), **kwargs)
            except httpx.HTTPError as exc:
                raise PaymentError(f"Payment gateway request failed: {exc}") from exc

        if not response.is_success:
            raise PaymentError(f"Payment gateway responded with {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise PaymentError("Payment gateway returned a malformed body") from exc
        if not isinstance(body, dict):
            raise PaymentError("Payment gateway returned an unexpected body")
        return body

    async def create_session(
        self, amount: Decimal, currency: str, metadata: Mapping[str, Any]
    ) -> PaymentSession:
        body = await self._request(
            "POST",
            "/sessions",
            json={
                "amount": str(amount),
                "currency": currency,
                "metadata": dict(metadata),
            },
        )
        session_id = body.get("session_id") or body.get("id")
        if not session_id:
            raise PaymentError("Payment gateway did not return a session id")

        expires_at = parse_timestamp(body.get("expires_at"))
        if body.get("expires_at") and expires_at is None:
            logger.warning("Ignoring unparsable expires_at %r", body["expires_at"])
        return PaymentSession(
            session_id=str(session_id),
            checkout_url=body.get("checkout_url") or body.get("url"),
            expires_at=expires_at,
        )

    async def is_settled(self, session_id: str) -> bool:
        body = await self._request("GET", f"/sessions/{session_id}")
        if "settled" in body:
            return bool(body["settled"])
        return body.get("status") in ("paid", "complete", "settled")


class UnconfiguredPaymentGateway:
    """Gateway used when no payment service is configured; paid flows fail."""

    async def create_session(
        self, amount: Decimal, currency: str, metadata: Mapping[str, Any]
    ) -> PaymentSession:
        raise PaymentError("Payment gateway is not configured")

    async def is_settled(self, session_id: str) -> bool:
        raise PaymentError("Payment gateway is not configured")


def get_payment_gateway() -> PaymentGateway:
    """Return the configured payment gateway."""
    if settings.payment_gateway_url:
        return HttpPaymentGateway(
            settings.payment_gateway_url,
            api_key=settings.payment_gateway_api_key,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
        )
    return UnconfiguredPaymentGateway()
