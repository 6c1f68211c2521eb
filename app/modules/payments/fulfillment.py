"""Purchase fulfillment: complete a paid transaction and grant its entitlement."""

from __future__ import annotations

import logging
from uuid import UUID

from app.core.enums import EnrollmentStatusEnum, TransactionStatusEnum, TransactionTypeEnum
from app.modules.appointments.repository import AppointmentsRepository
from app.modules.audit.repository import AuditRepository
from app.modules.courses.repository import CoursesRepository
from app.modules.payments.models import Transaction
from app.modules.payments.repository import PaymentsRepository
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)


def parse_transaction_id(raw_value: str | UUID) -> UUID | None:
    if isinstance(raw_value, UUID):
        return raw_value
    try:
        return UUID(str(raw_value))
    except ValueError:
        return None


class PurchaseFulfillment:
    """Move transactions to their final payment state and apply the purchase."""

    def __init__(
        self,
        payments_repository: PaymentsRepository,
        courses_repository: CoursesRepository,
        appointments_repository: AppointmentsRepository,
        audit_repository: AuditRepository,
        *,
        now_provider=utc_now,
    ) -> None:
        self.payments_repository = payments_repository
        self.courses_repository = courses_repository
        self.appointments_repository = appointments_repository
        self.audit_repository = audit_repository
        self.now_provider = now_provider

    async def complete_purchase(
        self,
        transaction_id: str | UUID,
        gateway_payment_id: str | None,
        gateway_response: dict,
    ) -> Transaction | None:
        """Complete the transaction once and grant what it paid for.

        Returns the transaction when this call performed the completion, or
        None when there was nothing to do (unknown id, duplicate delivery,
        lost race against a concurrent delivery).
        """
        transaction = await self._load(transaction_id)
        if transaction is None:
            return None

        if transaction.status == TransactionStatusEnum.COMPLETED:
            logger.info("Transaction already completed: %s", transaction.id)
            return None
        if transaction.status == TransactionStatusEnum.REFUNDED:
            logger.info("Ignoring payment for refunded transaction: %s", transaction.id)
            return None

        claimed = await self.payments_repository.mark_transaction_completed(
            transaction.id,
            gateway_payment_id,
            gateway_response,
            self.now_provider(),
        )
        if not claimed:
            logger.info("Transaction %s was completed by a concurrent delivery", transaction.id)
            return None

        await self._grant_entitlement(transaction)
        await self.audit_repository.create_audit_log(
            actor_id=None,
            action="payments.transaction.complete",
            entity_type="transaction",
            entity_id=str(transaction.id),
            payload={
                "type": str(transaction.type),
                "gateway_payment_id": gateway_payment_id,
                "amount": str(transaction.amount),
                "currency": transaction.currency,
            },
        )
        logger.info("Payment completed for transaction: %s", transaction.id)
        return transaction

    async def record_failure(
        self,
        transaction_id: str | UUID,
        failure_reason: str,
        gateway_response: dict,
    ) -> Transaction | None:
        """Mark a pending transaction failed; later states are left untouched."""
        transaction = await self._load(transaction_id)
        if transaction is None:
            return None

        failed = await self.payments_repository.mark_transaction_failed(
            transaction.id,
            failure_reason,
            gateway_response,
        )
        if not failed:
            logger.info(
                "Ignoring payment failure for transaction %s in status %s",
                transaction.id,
                transaction.status,
            )
            return None

        await self.audit_repository.create_audit_log(
            actor_id=None,
            action="payments.transaction.fail",
            entity_type="transaction",
            entity_id=str(transaction.id),
            payload={"failure_reason": failure_reason},
        )
        logger.info("Payment failed for transaction: %s", transaction.id)
        return transaction

    async def _load(self, transaction_id: str | UUID) -> Transaction | None:
        parsed_id = parse_transaction_id(transaction_id)
        if parsed_id is None:
            logger.warning("Malformed transaction id in gateway notes: %s", transaction_id)
            return None

        transaction = await self.payments_repository.get_transaction_by_id(parsed_id)
        if transaction is None:
            logger.warning("Transaction not found: %s", parsed_id)
        return transaction

    async def _grant_entitlement(self, transaction: Transaction) -> None:
        if transaction.type == TransactionTypeEnum.COURSE_PURCHASE:
            if transaction.course_id is None:
                logger.warning("Course purchase %s has no course reference", transaction.id)
                return
            await self._enroll(transaction.user_id, transaction.course_id)
            return

        if transaction.type == TransactionTypeEnum.APPOINTMENT_BOOKING:
            if transaction.appointment_id is None:
                logger.warning("Appointment booking %s has no appointment reference", transaction.id)
                return
            confirmed = await self.appointments_repository.confirm_appointment(transaction.appointment_id)
            if not confirmed:
                logger.info("Appointment %s was not in scheduled state", transaction.appointment_id)
            return

        # Subscriptions are granted by the subscription.* events.
        logger.debug("No entitlement to grant for %s transaction %s", transaction.type, transaction.id)

    async def _enroll(self, user_id: UUID, course_id: UUID) -> None:
        enrollment = await self.courses_repository.get_enrollment(user_id, course_id)
        if enrollment is None:
            created = await self.courses_repository.create_enrollment(user_id, course_id)
            if created is None:
                logger.info("Enrollment for user %s in course %s already exists", user_id, course_id)
                return
            await self.courses_repository.increment_total_students(course_id)
            return

        if enrollment.status == EnrollmentStatusEnum.REFUNDED:
            if await self.courses_repository.reactivate_enrollment(enrollment.id):
                await self.courses_repository.increment_total_students(course_id)
            return

        logger.info("User %s is already enrolled in course %s", user_id, course_id)
