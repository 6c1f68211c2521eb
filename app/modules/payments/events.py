"""Typed payment gateway webhook events.

Deliveries arrive as ``{"event": "<name>", "payload": {...}}``. Each known
event name maps to one model; anything that does not validate is returned as
an ``UnrecognizedEvent`` instead of raising.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class GatewayEntity(BaseModel):
    """Base for gateway entities; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    id: str
    notes: dict[str, str] = Field(default_factory=dict)

    @field_validator("notes", mode="before")
    @classmethod
    def normalize_notes(cls, value: Any) -> Any:
        # The gateway sends an empty list when no notes were set.
        if value is None or value == []:
            return {}
        if isinstance(value, dict):
            return {str(key): "" if item is None else str(item) for key, item in value.items()}
        return value

    def note(self, key: str) -> str | None:
        value = self.notes.get(key, "").strip()
        return value or None


class PaymentEntity(GatewayEntity):
    order_id: str | None = None
    amount: int
    currency: str
    status: str | None = None
    method: str | None = None
    error_code: str | None = None
    error_description: str | None = None


class OrderEntity(GatewayEntity):
    amount: int
    currency: str
    status: str | None = None


class RefundEntity(GatewayEntity):
    payment_id: str
    amount: int
    currency: str | None = None


class SubscriptionEntity(GatewayEntity):
    plan_id: str | None = None
    status: str | None = None
    current_start: int | None = None
    current_end: int | None = None


class PaymentContainer(BaseModel):
    entity: PaymentEntity


class OrderContainer(BaseModel):
    entity: OrderEntity


class RefundContainer(BaseModel):
    entity: RefundEntity


class SubscriptionContainer(BaseModel):
    entity: SubscriptionEntity


class PaymentPayload(BaseModel):
    payment: PaymentContainer


class OrderPaidPayload(BaseModel):
    order: OrderContainer
    payment: PaymentContainer


class RefundPayload(BaseModel):
    refund: RefundContainer


class SubscriptionPayload(BaseModel):
    subscription: SubscriptionContainer


class PaymentCapturedEvent(BaseModel):
    event: Literal["payment.captured"]
    payload: PaymentPayload

    @property
    def payment(self) -> PaymentEntity:
        return self.payload.payment.entity

    @property
    def transaction_id(self) -> str | None:
        return self.payment.note("transactionId")


class PaymentFailedEvent(BaseModel):
    event: Literal["payment.failed"]
    payload: PaymentPayload

    @property
    def payment(self) -> PaymentEntity:
        return self.payload.payment.entity

    @property
    def transaction_id(self) -> str | None:
        return self.payment.note("transactionId")


class OrderPaidEvent(BaseModel):
    event: Literal["order.paid"]
    payload: OrderPaidPayload

    @property
    def order(self) -> OrderEntity:
        return self.payload.order.entity

    @property
    def payment(self) -> PaymentEntity:
        return self.payload.payment.entity

    @property
    def transaction_id(self) -> str | None:
        return self.order.note("transactionId") or self.payment.note("transactionId")


class RefundCreatedEvent(BaseModel):
    event: Literal["refund.created"]
    payload: RefundPayload

    @property
    def refund(self) -> RefundEntity:
        return self.payload.refund.entity


class RefundProcessedEvent(BaseModel):
    event: Literal["refund.processed"]
    payload: RefundPayload

    @property
    def refund(self) -> RefundEntity:
        return self.payload.refund.entity


class SubscriptionActivatedEvent(BaseModel):
    event: Literal["subscription.activated"]
    payload: SubscriptionPayload

    @property
    def subscription(self) -> SubscriptionEntity:
        return self.payload.subscription.entity


class SubscriptionCancelledEvent(BaseModel):
    event: Literal["subscription.cancelled"]
    payload: SubscriptionPayload

    @property
    def subscription(self) -> SubscriptionEntity:
        return self.payload.subscription.entity


WebhookEvent = Annotated[
    Union[
        PaymentCapturedEvent,
        PaymentFailedEvent,
        OrderPaidEvent,
        RefundCreatedEvent,
        RefundProcessedEvent,
        SubscriptionActivatedEvent,
        SubscriptionCancelledEvent,
    ],
    Field(discriminator="event"),
]

KNOWN_EVENTS = frozenset(
    {
        "payment.captured",
        "payment.failed",
        "order.paid",
        "refund.created",
        "refund.processed",
        "subscription.activated",
        "subscription.cancelled",
    },
)

_webhook_event_adapter: TypeAdapter[WebhookEvent] = TypeAdapter(WebhookEvent)


@dataclass(slots=True, frozen=True)
class UnrecognizedEvent:
    """Delivery that is not a known event or does not match its shape."""

    event: str
    reason: str


def parse_webhook_event(body: bytes | str) -> WebhookEvent | UnrecognizedEvent:
    """Validate a raw webhook body into a typed event, failing closed."""
    try:
        document = json.loads(body)
    except (TypeError, ValueError):
        return UnrecognizedEvent(event="unknown", reason="body is not valid JSON")

    if not isinstance(document, dict):
        return UnrecognizedEvent(event="unknown", reason="body is not a JSON object")

    name = document.get("event")
    if not isinstance(name, str) or not name:
        return UnrecognizedEvent(event="unknown", reason="event name is missing")
    if name not in KNOWN_EVENTS:
        return UnrecognizedEvent(event=name, reason="event is not handled")

    try:
        return _webhook_event_adapter.validate_python(document)
    except ValidationError as exc:
        return UnrecognizedEvent(event=name, reason=f"payload shape mismatch: {exc.error_count()} error(s)")
