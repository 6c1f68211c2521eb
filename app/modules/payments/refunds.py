"""Refund reconciliation: mirror gateway refunds and revoke entitlements."""

from __future__ import annotations

import logging

from app.core.enums import TransactionStatusEnum, TransactionTypeEnum
from app.modules.appointments.repository import AppointmentsRepository
from app.modules.audit.repository import AuditRepository
from app.modules.courses.repository import CoursesRepository
from app.modules.payments.events import RefundEntity
from app.modules.payments.models import Transaction
from app.modules.payments.repository import PaymentsRepository
from app.shared.utils import from_minor_units, utc_now

logger = logging.getLogger(__name__)

DEFAULT_REFUND_REASON = "Refund requested"


class RefundReconciliation:
    """Apply refund events to the transaction they belong to."""

    def __init__(
        self,
        payments_repository: PaymentsRepository,
        courses_repository: CoursesRepository,
        appointments_repository: AppointmentsRepository,
        audit_repository: AuditRepository,
        *,
        cancel_reason: str,
        now_provider=utc_now,
    ) -> None:
        self.payments_repository = payments_repository
        self.courses_repository = courses_repository
        self.appointments_repository = appointments_repository
        self.audit_repository = audit_repository
        self.cancel_reason = cancel_reason
        self.now_provider = now_provider

    async def record_refund(self, refund: RefundEntity) -> Transaction | None:
        """Handle refund creation: store amount and reason, status REFUNDED."""
        transaction = await self._find_transaction(refund)
        if transaction is None:
            return None
        if not await self._mark_refunded(transaction, refund):
            logger.info(
                "Refund %s ignored for transaction %s in status %s",
                refund.id,
                transaction.id,
                transaction.status,
            )
            return None
        return transaction

    async def revoke_entitlement(self, refund: RefundEntity) -> Transaction | None:
        """Handle a processed refund: take back what the transaction granted.

        Returns the transaction when something was revoked by this call.
        """
        transaction = await self._find_transaction(refund)
        if transaction is None:
            return None

        # refund.processed may overtake refund.created.
        if transaction.status == TransactionStatusEnum.COMPLETED:
            await self._mark_refunded(transaction, refund)

        if transaction.status != TransactionStatusEnum.REFUNDED:
            logger.warning(
                "Refund %s processed for transaction %s in status %s, nothing revoked",
                refund.id,
                transaction.id,
                transaction.status,
            )
            return None

        revoked = await self._revoke(transaction)
        if not revoked:
            logger.info("Entitlement for transaction %s already revoked", transaction.id)
            return None

        await self.audit_repository.create_audit_log(
            actor_id=None,
            action="payments.entitlement.revoke",
            entity_type="transaction",
            entity_id=str(transaction.id),
            payload={"type": str(transaction.type), "refund_id": refund.id},
        )
        logger.info("Entitlement revoked for refunded transaction: %s", transaction.id)
        return transaction

    async def _find_transaction(self, refund: RefundEntity) -> Transaction | None:
        transaction = await self.payments_repository.get_transaction_by_gateway_payment_id(refund.payment_id)
        if transaction is None:
            logger.warning("No transaction found for refunded payment %s (refund %s)", refund.payment_id, refund.id)
        return transaction

    async def _mark_refunded(self, transaction: Transaction, refund: RefundEntity) -> bool:
        refund_amount = from_minor_units(refund.amount)
        refund_reason = refund.note("reason") or DEFAULT_REFUND_REASON
        applied = await self.payments_repository.mark_transaction_refunded(
            transaction.id,
            refund_amount,
            refund_reason,
            self.now_provider(),
        )
        if applied:
            await self.audit_repository.create_audit_log(
                actor_id=None,
                action="payments.transaction.refund",
                entity_type="transaction",
                entity_id=str(transaction.id),
                payload={
                    "refund_id": refund.id,
                    "refund_amount": str(refund_amount),
                    "refund_reason": refund_reason,
                },
            )
            logger.info("Refund %s recorded for transaction %s", refund.id, transaction.id)
        return applied

    async def _revoke(self, transaction: Transaction) -> bool:
        if transaction.type == TransactionTypeEnum.COURSE_PURCHASE:
            if transaction.course_id is None:
                return False
            revoked = await self.courses_repository.revoke_enrollment(transaction.user_id, transaction.course_id)
            if revoked:
                await self.courses_repository.decrement_total_students(transaction.course_id)
            return revoked

        if transaction.type == TransactionTypeEnum.APPOINTMENT_BOOKING:
            if transaction.appointment_id is None:
                return False
            return await self.appointments_repository.cancel_appointment(
                transaction.appointment_id,
                self.cancel_reason,
            )

        logger.warning("Unhandled refund type: %s", transaction.type)
        return False
