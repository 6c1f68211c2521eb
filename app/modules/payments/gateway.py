"""Razorpay REST client for order creation."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.shared.exceptions import PaymentGatewayException

logger = logging.getLogger(__name__)


class RazorpayClient:
    """Minimal async client over the gateway's orders API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str,
        *,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> RazorpayClient:
        return cls(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            base_url=settings.razorpay_api_base_url,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> dict[str, Any]:
        """Create an order; ``amount`` is in minor units (paise)."""
        if not self.configured:
            raise PaymentGatewayException("Payment gateway is not configured")

        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post("/orders", json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Order creation request failed: %s", exc)
            raise PaymentGatewayException("Failed to reach payment gateway") from exc

        if response.status_code >= 400:
            logger.warning(
                "Order creation rejected by gateway: status=%s body=%s",
                response.status_code,
                response.text,
            )
            raise PaymentGatewayException("Failed to create payment order")

        try:
            order = response.json()
        except ValueError as exc:
            raise PaymentGatewayException("Payment gateway returned an invalid order") from exc
        if not isinstance(order, dict) or not order.get("id"):
            raise PaymentGatewayException("Payment gateway returned an invalid order")
        return order


def get_razorpay_client() -> RazorpayClient:
    """Dependency provider for the gateway client."""
    return RazorpayClient.from_settings(get_settings())
