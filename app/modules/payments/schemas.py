"""Payments schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.enums import TransactionStatusEnum, TransactionTypeEnum


class OrderCreate(BaseModel):
    """Create gateway order request: exactly one of course or appointment."""

    course_id: UUID | None = None
    appointment_id: UUID | None = None
    amount: Decimal = Field(gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)

    @model_validator(mode="after")
    def validate_target(self) -> OrderCreate:
        if (self.course_id is None) == (self.appointment_id is None):
            raise ValueError("Provide exactly one of course_id or appointment_id")
        return self


class OrderRead(BaseModel):
    """Gateway order handed to the client-side checkout."""

    order_id: str
    amount: int
    currency: str
    transaction_id: UUID
    key_id: str


class CheckoutVerify(BaseModel):
    """Client-side checkout confirmation request."""

    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)
    transaction_id: UUID


class TransactionRead(BaseModel):
    """Transaction response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    type: TransactionTypeEnum
    status: TransactionStatusEnum
    amount: Decimal
    currency: str
    description: str | None
    reference_id: str | None
    gateway_payment_id: str | None
    failure_reason: str | None
    refund_amount: Decimal | None
    refund_reason: str | None
    course_id: UUID | None
    appointment_id: UUID | None
    completed_at: datetime | None
    refunded_at: datetime | None
    created_at: datetime
    updated_at: datetime


class WebhookAck(BaseModel):
    """Webhook acknowledgement body."""

    status: str = "ok"
