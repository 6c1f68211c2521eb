"""Payments repository layer.

Status changes are conditional UPDATEs on the source status. The boolean
result tells the caller whether it performed the transition, so two
concurrent deliveries of the same event cannot both act on it.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import TransactionStatusEnum, TransactionTypeEnum
from app.modules.payments.models import Transaction

COMPLETABLE_STATUSES = (TransactionStatusEnum.PENDING, TransactionStatusEnum.FAILED)


class PaymentsRepository:
    """DB access methods for payment transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self) -> AbstractAsyncContextManager:
        """Scope writes so a failing handler rolls back only its own changes."""
        return self.session.begin_nested()

    async def create_transaction(
        self,
        user_id: UUID,
        transaction_type: TransactionTypeEnum,
        amount: Decimal,
        currency: str,
        description: str | None,
        course_id: UUID | None = None,
        appointment_id: UUID | None = None,
    ) -> Transaction:
        transaction = Transaction(
            user_id=user_id,
            type=transaction_type,
            status=TransactionStatusEnum.PENDING,
            amount=amount,
            currency=currency.upper(),
            description=description,
            course_id=course_id,
            appointment_id=appointment_id,
        )
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def set_reference_id(self, transaction: Transaction, reference_id: str) -> Transaction:
        transaction.reference_id = reference_id
        await self.session.flush()
        return transaction

    async def get_transaction_by_id(self, transaction_id: UUID) -> Transaction | None:
        stmt = select(Transaction).where(Transaction.id == transaction_id)
        return await self.session.scalar(stmt)

    async def get_transaction_by_gateway_payment_id(self, payment_id: str) -> Transaction | None:
        stmt = (
            select(Transaction)
            .where(Transaction.gateway_payment_id == payment_id)
            .order_by(Transaction.created_at.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)

    async def mark_transaction_completed(
        self,
        transaction_id: UUID,
        gateway_payment_id: str | None,
        gateway_response: dict,
        completed_at: datetime,
    ) -> bool:
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status.in_(COMPLETABLE_STATUSES),
            )
            .values(
                status=TransactionStatusEnum.COMPLETED,
                gateway_payment_id=gateway_payment_id,
                gateway_response=gateway_response,
                failure_reason=None,
                completed_at=completed_at,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_transaction_failed(
        self,
        transaction_id: UUID,
        failure_reason: str,
        gateway_response: dict,
    ) -> bool:
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatusEnum.PENDING,
            )
            .values(
                status=TransactionStatusEnum.FAILED,
                failure_reason=failure_reason,
                gateway_response=gateway_response,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_transaction_refunded(
        self,
        transaction_id: UUID,
        refund_amount: Decimal,
        refund_reason: str,
        refunded_at: datetime,
    ) -> bool:
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatusEnum.COMPLETED,
            )
            .values(
                status=TransactionStatusEnum.REFUNDED,
                refund_amount=refund_amount,
                refund_reason=refund_reason,
                refunded_at=refunded_at,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_transactions(
        self,
        limit: int,
        offset: int,
        user_id: UUID | None = None,
        status: TransactionStatusEnum | None = None,
    ) -> tuple[list[Transaction], int]:
        base_stmt: Select[tuple[Transaction]] = select(Transaction)
        if user_id is not None:
            base_stmt = base_stmt.where(Transaction.user_id == user_id)
        if status is not None:
            base_stmt = base_stmt.where(Transaction.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Transaction.created_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return list(items), total
