"""Payments API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request, status

from app.core.enums import RoleEnum, TransactionStatusEnum
from app.modules.identity.service import get_current_user, require_roles
from app.modules.payments.schemas import CheckoutVerify, OrderCreate, OrderRead, TransactionRead, WebhookAck
from app.modules.payments.service import PaymentsService, get_payments_service
from app.modules.payments.webhooks import WebhookService, get_webhook_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhooks/razorpay", response_model=WebhookAck)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(default=None),
    service: WebhookService = Depends(get_webhook_service),
) -> WebhookAck:
    """Receive a signed gateway event; answered 200 once dispatched."""
    body = await request.body()
    await service.process(body, x_razorpay_signature)
    return WebhookAck()


@router.post("/orders", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(get_current_user),
) -> OrderRead:
    """Create a gateway order for a course or an appointment."""
    return await service.create_order(payload, current_user)


@router.post("/verify", response_model=TransactionRead)
async def verify_checkout(
    payload: CheckoutVerify,
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(get_current_user),
) -> TransactionRead:
    """Confirm a completed client-side checkout."""
    transaction = await service.verify_checkout(payload, current_user)
    return TransactionRead.model_validate(transaction)


@router.get("/transactions/my", response_model=Page[TransactionRead])
async def list_my_transactions(
    pagination=Depends(get_pagination_params),
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(get_current_user),
) -> Page[TransactionRead]:
    """List transactions of the current user."""
    items, total = await service.list_my_transactions(current_user, pagination.limit, pagination.offset)
    serialized = [TransactionRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/transactions", response_model=Page[TransactionRead])
async def list_transactions(
    status_filter: TransactionStatusEnum | None = None,
    pagination=Depends(get_pagination_params),
    service: PaymentsService = Depends(get_payments_service),
    current_user=Depends(require_roles(RoleEnum.ADMIN)),
) -> Page[TransactionRead]:
    """List all transactions (admin)."""
    items, total = await service.list_transactions(
        current_user,
        pagination.limit,
        pagination.offset,
        status=status_filter,
    )
    serialized = [TransactionRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
