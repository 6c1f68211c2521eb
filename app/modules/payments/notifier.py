"""Payment outcome e-mails.

Every method swallows and logs its own failures: e-mail delivery never
undoes or blocks the payment state change that triggered it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, nullcontext
from typing import Any

from app.core.enums import EmailTypeEnum, TransactionTypeEnum
from app.modules.appointments.repository import AppointmentsRepository
from app.modules.courses.repository import CoursesRepository
from app.modules.identity.models import User
from app.modules.identity.repository import IdentityRepository
from app.modules.notifications.dispatcher import EmailDispatcher
from app.modules.payments.models import Transaction

logger = logging.getLogger(__name__)


class PaymentNotifier:
    """Assemble template payloads and hand them to the e-mail dispatcher."""

    def __init__(
        self,
        identity_repository: IdentityRepository,
        courses_repository: CoursesRepository,
        appointments_repository: AppointmentsRepository,
        email_dispatcher: EmailDispatcher,
        *,
        app_url: str,
        savepoint: Callable[[], AbstractAsyncContextManager] = nullcontext,
    ) -> None:
        self.identity_repository = identity_repository
        self.courses_repository = courses_repository
        self.appointments_repository = appointments_repository
        self.email_dispatcher = email_dispatcher
        self.app_url = app_url.rstrip("/")
        self.savepoint = savepoint

    async def notify_purchase(self, transaction: Transaction) -> None:
        """Send the enrollment, appointment or generic receipt e-mail."""
        try:
            async with self.savepoint():
                user = await self._recipient(transaction)
                if user is None:
                    return
                email_type, data = await self._purchase_email(user, transaction)
                await self.email_dispatcher.send_email(
                    to=user.email,
                    email_type=email_type,
                    data=data,
                    user_id=user.id,
                )
        except Exception:
            logger.exception("Failed to send confirmation email for transaction %s", transaction.id)

    async def notify_failure(self, transaction: Transaction) -> None:
        try:
            async with self.savepoint():
                user = await self._recipient(transaction)
                if user is None:
                    return
                data = self._base_data(user, transaction)
                data["failure_reason"] = transaction.failure_reason
                await self.email_dispatcher.send_email(
                    to=user.email,
                    email_type=EmailTypeEnum.PAYMENT_FAILED,
                    data=data,
                    user_id=user.id,
                )
        except Exception:
            logger.exception("Failed to send payment failure email for transaction %s", transaction.id)

    async def notify_refund(self, transaction: Transaction) -> None:
        try:
            async with self.savepoint():
                user = await self._recipient(transaction)
                if user is None:
                    return
                data = self._base_data(user, transaction)
                data["refund_amount"] = str(transaction.refund_amount or transaction.amount)
                data["refund_reason"] = transaction.refund_reason
                await self.email_dispatcher.send_email(
                    to=user.email,
                    email_type=EmailTypeEnum.PAYMENT_REFUNDED,
                    data=data,
                    user_id=user.id,
                )
        except Exception:
            logger.exception("Failed to send refund email for transaction %s", transaction.id)

    async def _recipient(self, transaction: Transaction) -> User | None:
        user = await self.identity_repository.get_user_by_id(transaction.user_id)
        if user is None:
            logger.warning("User %s not found for transaction %s", transaction.user_id, transaction.id)
        return user

    def _base_data(self, user: User, transaction: Transaction) -> dict[str, Any]:
        return {
            "first_name": user.display_name,
            "amount": str(transaction.amount),
            "currency": transaction.currency,
            "transaction_id": str(transaction.id),
            "item_name": transaction.description or "Purchase",
        }

    async def _purchase_email(
        self,
        user: User,
        transaction: Transaction,
    ) -> tuple[EmailTypeEnum, dict[str, Any]]:
        data = self._base_data(user, transaction)

        if transaction.type == TransactionTypeEnum.COURSE_PURCHASE and transaction.course_id is not None:
            course = await self.courses_repository.get_course_by_id(transaction.course_id)
            course_name = course.title if course is not None else data["item_name"]
            data.update(
                {
                    "course_name": course_name,
                    "instructor_name": course.instructor_name if course is not None else None,
                    "duration": course.duration if course is not None else None,
                    "course_url": f"{self.app_url}/courses/{transaction.course_id}",
                    "item_name": course_name,
                },
            )
            return EmailTypeEnum.COURSE_ENROLLMENT, data

        if transaction.type == TransactionTypeEnum.APPOINTMENT_BOOKING and transaction.appointment_id is not None:
            appointment = await self.appointments_repository.get_appointment_by_id(transaction.appointment_id)
            if appointment is not None:
                consultant_name = appointment.consultant.name
                data.update(
                    {
                        "consultant_name": consultant_name,
                        "appointment_type": appointment.appointment_type.name,
                        "appointment_date": appointment.scheduled_at.strftime("%d %b %Y"),
                        "appointment_time": appointment.scheduled_at.strftime("%H:%M %Z").strip(),
                        "duration": appointment.appointment_type.duration_minutes,
                        "item_name": f"Appointment with {consultant_name}",
                    },
                )
                return EmailTypeEnum.APPOINTMENT_CONFIRMATION, data

        return EmailTypeEnum.PAYMENT_SUCCESS, data
