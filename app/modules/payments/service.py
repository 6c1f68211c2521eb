"""Payments business logic layer: order creation and checkout confirmation."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import (
    AppointmentStatusEnum,
    EnrollmentStatusEnum,
    RoleEnum,
    TransactionStatusEnum,
    TransactionTypeEnum,
)
from app.modules.appointments.repository import AppointmentsRepository
from app.modules.courses.repository import CoursesRepository
from app.modules.identity.models import User
from app.modules.payments.fulfillment import PurchaseFulfillment
from app.modules.payments.gateway import RazorpayClient, get_razorpay_client
from app.modules.payments.models import Transaction
from app.modules.payments.notifier import PaymentNotifier
from app.modules.payments.repository import PaymentsRepository
from app.modules.payments.schemas import CheckoutVerify, OrderCreate, OrderRead
from app.modules.payments.signatures import verify_checkout_signature
from app.modules.payments.webhooks import build_payment_components
from app.shared.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    SignatureVerificationException,
    UnauthorizedException,
)
from app.shared.utils import to_minor_units

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")


def build_receipt() -> str:
    return f"order_{uuid.uuid4().hex[:8]}"


class PaymentsService:
    """Payments domain service."""

    def __init__(
        self,
        repository: PaymentsRepository,
        courses_repository: CoursesRepository,
        appointments_repository: AppointmentsRepository,
        fulfillment: PurchaseFulfillment,
        notifier: PaymentNotifier,
        gateway: RazorpayClient,
        *,
        default_currency: str = "INR",
    ) -> None:
        self.repository = repository
        self.courses_repository = courses_repository
        self.appointments_repository = appointments_repository
        self.fulfillment = fulfillment
        self.notifier = notifier
        self.gateway = gateway
        self.default_currency = default_currency

    async def create_order(self, payload: OrderCreate, actor: User) -> OrderRead:
        """Open a pending transaction and the matching gateway order."""
        currency = (payload.currency or self.default_currency).upper()

        if payload.course_id is not None:
            transaction = await self._open_course_purchase(payload.course_id, payload.amount, currency, actor)
        else:
            transaction = await self._open_appointment_booking(payload.appointment_id, payload.amount, currency, actor)

        amount_minor = to_minor_units(transaction.amount)
        notes = {"transactionId": str(transaction.id), "userId": str(actor.id)}
        if transaction.course_id is not None:
            notes["courseId"] = str(transaction.course_id)
        if transaction.appointment_id is not None:
            notes["appointmentId"] = str(transaction.appointment_id)

        order = await self.gateway.create_order(
            amount=amount_minor,
            currency=transaction.currency,
            receipt=build_receipt(),
            notes=notes,
        )
        await self.repository.set_reference_id(transaction, order["id"])
        logger.info("Gateway order %s created for transaction %s", order["id"], transaction.id)

        return OrderRead(
            order_id=order["id"],
            amount=amount_minor,
            currency=transaction.currency,
            transaction_id=transaction.id,
            key_id=self.gateway.key_id,
        )

    async def verify_checkout(self, payload: CheckoutVerify, actor: User) -> Transaction:
        """Confirm a client-side checkout and fulfil it if no webhook did yet."""
        transaction = await self.repository.get_transaction_by_id(payload.transaction_id)
        if transaction is None:
            raise NotFoundException("Transaction not found")
        if transaction.user_id != actor.id:
            raise UnauthorizedException("Transaction does not belong to current user")
        if transaction.reference_id is not None and transaction.reference_id != payload.razorpay_order_id:
            raise BusinessRuleException("Order does not match transaction")

        if not verify_checkout_signature(
            payload.razorpay_order_id,
            payload.razorpay_payment_id,
            payload.razorpay_signature,
            self.gateway.key_secret,
        ):
            raise SignatureVerificationException("Invalid payment signature")

        if transaction.status == TransactionStatusEnum.COMPLETED:
            return transaction
        if transaction.status == TransactionStatusEnum.REFUNDED:
            raise ConflictException("Transaction was refunded")

        completed = await self.fulfillment.complete_purchase(
            transaction.id,
            payload.razorpay_payment_id,
            {
                "payment_id": payload.razorpay_payment_id,
                "order_id": payload.razorpay_order_id,
                "source": "checkout",
            },
        )
        if completed is not None:
            await self.notifier.notify_purchase(completed)
        return transaction

    async def list_my_transactions(
        self,
        actor: User,
        limit: int,
        offset: int,
    ) -> tuple[list[Transaction], int]:
        return await self.repository.list_transactions(limit, offset, user_id=actor.id)

    async def list_transactions(
        self,
        actor: User,
        limit: int,
        offset: int,
        status: TransactionStatusEnum | None = None,
    ) -> tuple[list[Transaction], int]:
        """List all transactions (admin only)."""
        if actor.role != RoleEnum.ADMIN:
            raise UnauthorizedException("Only admin can list all transactions")
        return await self.repository.list_transactions(limit, offset, status=status)

    async def _open_course_purchase(
        self,
        course_id: UUID,
        amount: Decimal,
        currency: str,
        actor: User,
    ) -> Transaction:
        course = await self.courses_repository.get_course_by_id(course_id)
        if course is None or not course.is_published:
            raise NotFoundException("Course not found")

        enrollment = await self.courses_repository.get_enrollment(actor.id, course.id)
        if enrollment is not None and enrollment.status != EnrollmentStatusEnum.REFUNDED:
            raise ConflictException("Already enrolled in this course")

        if abs(course.price - amount) > AMOUNT_TOLERANCE:
            raise BusinessRuleException("Amount does not match course price")

        return await self.repository.create_transaction(
            user_id=actor.id,
            transaction_type=TransactionTypeEnum.COURSE_PURCHASE,
            amount=course.price,
            currency=currency,
            description=f"Course: {course.title}",
            course_id=course.id,
        )

    async def _open_appointment_booking(
        self,
        appointment_id: UUID,
        amount: Decimal,
        currency: str,
        actor: User,
    ) -> Transaction:
        appointment = await self.appointments_repository.get_appointment_by_id(appointment_id)
        if appointment is None or appointment.user_id != actor.id:
            raise NotFoundException("Appointment not found")
        if appointment.status != AppointmentStatusEnum.SCHEDULED:
            raise BusinessRuleException("Appointment is not awaiting payment")
        if abs(appointment.appointment_type.price - amount) > AMOUNT_TOLERANCE:
            raise BusinessRuleException("Amount does not match appointment price")

        return await self.repository.create_transaction(
            user_id=actor.id,
            transaction_type=TransactionTypeEnum.APPOINTMENT_BOOKING,
            amount=appointment.appointment_type.price,
            currency=currency,
            description=f"Appointment with {appointment.consultant.name}",
            appointment_id=appointment.id,
        )


async def get_payments_service(
    session: AsyncSession = Depends(get_db_session),
    gateway: RazorpayClient = Depends(get_razorpay_client),
) -> PaymentsService:
    """Dependency provider for payments service."""
    payments_repository, fulfillment, _, notifier = build_payment_components(session)
    return PaymentsService(
        payments_repository,
        CoursesRepository(session),
        AppointmentsRepository(session),
        fulfillment,
        notifier,
        gateway,
        default_currency=get_settings().default_currency,
    )
