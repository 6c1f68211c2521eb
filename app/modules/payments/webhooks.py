"""Payment gateway webhook processing.

``WebhookService.process`` is the single entry point: verify the signature,
parse the delivery into a typed event, run exactly one handler. Handler
failures are logged and counted, never raised, so the gateway always gets a
success answer for a correctly signed delivery.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.metrics import record_webhook_event
from app.modules.appointments.repository import AppointmentsRepository
from app.modules.audit.repository import AuditRepository
from app.modules.courses.repository import CoursesRepository
from app.modules.identity.repository import IdentityRepository
from app.modules.notifications.dispatcher import EmailDispatcher
from app.modules.notifications.repository import NotificationsRepository
from app.modules.payments.events import (
    OrderPaidEvent,
    PaymentCapturedEvent,
    PaymentFailedEvent,
    RefundCreatedEvent,
    RefundProcessedEvent,
    SubscriptionActivatedEvent,
    SubscriptionCancelledEvent,
    UnrecognizedEvent,
    WebhookEvent,
    parse_webhook_event,
)
from app.modules.payments.fulfillment import PurchaseFulfillment
from app.modules.payments.notifier import PaymentNotifier
from app.modules.payments.refunds import RefundReconciliation
from app.modules.payments.repository import PaymentsRepository
from app.modules.payments.signatures import verify_webhook_signature
from app.modules.subscriptions.repository import SubscriptionsRepository
from app.modules.subscriptions.service import SubscriptionsService
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

OUTCOME_HANDLED = "handled"
OUTCOME_IGNORED = "ignored"
OUTCOME_FAILED = "failed"
UNRECOGNIZED_EVENT_LABEL = "unrecognized"


class WebhookService:
    """Verify, route and apply payment gateway webhook deliveries."""

    def __init__(
        self,
        payments_repository: PaymentsRepository,
        fulfillment: PurchaseFulfillment,
        refunds: RefundReconciliation,
        subscriptions: SubscriptionsService,
        notifier: PaymentNotifier,
        *,
        webhook_secret: str,
        now_provider=utc_now,
    ) -> None:
        self.payments_repository = payments_repository
        self.fulfillment = fulfillment
        self.refunds = refunds
        self.subscriptions = subscriptions
        self.notifier = notifier
        self.webhook_secret = webhook_secret
        self.now_provider = now_provider
        self._handlers: dict[str, Callable[[Any], Awaitable[bool]]] = {
            "payment.captured": self._on_payment_captured,
            "payment.failed": self._on_payment_failed,
            "order.paid": self._on_order_paid,
            "refund.created": self._on_refund_created,
            "refund.processed": self._on_refund_processed,
            "subscription.activated": self._on_subscription_activated,
            "subscription.cancelled": self._on_subscription_cancelled,
        }

    async def process(self, body: bytes, signature: str | None) -> str:
        """Verify and dispatch one raw delivery; returns the dispatch outcome."""
        verify_webhook_signature(body, signature, self.webhook_secret)
        return await self.dispatch(parse_webhook_event(body))

    async def dispatch(self, event: WebhookEvent | UnrecognizedEvent) -> str:
        """Run the handler for ``event``; never raises."""
        if isinstance(event, UnrecognizedEvent):
            logger.info("Unhandled webhook event %s: %s", event.event, event.reason)
            record_webhook_event(UNRECOGNIZED_EVENT_LABEL, OUTCOME_IGNORED)
            return OUTCOME_IGNORED

        logger.info("Received payment webhook: %s", event.event)
        handler = self._handlers[event.event]
        try:
            applied = await handler(event)
        except Exception:
            logger.exception("Error processing webhook event %s", event.event)
            outcome = OUTCOME_FAILED
        else:
            outcome = OUTCOME_HANDLED if applied else OUTCOME_IGNORED
        record_webhook_event(event.event, outcome)
        return outcome

    async def _on_payment_captured(self, event: PaymentCapturedEvent) -> bool:
        transaction_id = event.transaction_id
        if transaction_id is None:
            logger.error("No transaction ID in payment notes (payment %s)", event.payment.id)
            return False

        payment = event.payment
        snapshot = {
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "status": payment.status,
            "method": payment.method,
            "captured_at": self.now_provider().isoformat(),
        }
        return await self._complete(transaction_id, payment.id, snapshot)

    async def _on_order_paid(self, event: OrderPaidEvent) -> bool:
        transaction_id = event.transaction_id
        if transaction_id is None:
            logger.error("No transaction ID in order notes (order %s)", event.order.id)
            return False

        order = event.order
        snapshot = {
            "payment_id": event.payment.id,
            "order_id": order.id,
            "amount": order.amount,
            "currency": order.currency,
            "status": order.status,
            "method": event.payment.method,
            "paid_at": self.now_provider().isoformat(),
        }
        return await self._complete(transaction_id, event.payment.id, snapshot)

    async def _complete(self, transaction_id: str, payment_id: str, snapshot: dict) -> bool:
        async with self.payments_repository.savepoint():
            transaction = await self.fulfillment.complete_purchase(transaction_id, payment_id, snapshot)
        if transaction is None:
            return False
        await self.notifier.notify_purchase(transaction)
        return True

    async def _on_payment_failed(self, event: PaymentFailedEvent) -> bool:
        transaction_id = event.transaction_id
        if transaction_id is None:
            logger.error("No transaction ID in payment notes (payment %s)", event.payment.id)
            return False

        payment = event.payment
        snapshot = {
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "error_code": payment.error_code,
            "error_description": payment.error_description,
            "failed_at": self.now_provider().isoformat(),
        }
        async with self.payments_repository.savepoint():
            transaction = await self.fulfillment.record_failure(
                transaction_id,
                payment.error_description or "Payment failed",
                snapshot,
            )
        if transaction is None:
            return False
        await self.notifier.notify_failure(transaction)
        return True

    async def _on_refund_created(self, event: RefundCreatedEvent) -> bool:
        logger.info("Refund created: %s for payment: %s", event.refund.id, event.refund.payment_id)
        async with self.payments_repository.savepoint():
            transaction = await self.refunds.record_refund(event.refund)
        return transaction is not None

    async def _on_refund_processed(self, event: RefundProcessedEvent) -> bool:
        logger.info("Refund processed: %s", event.refund.id)
        async with self.payments_repository.savepoint():
            transaction = await self.refunds.revoke_entitlement(event.refund)
        if transaction is None:
            return False
        await self.notifier.notify_refund(transaction)
        return True

    async def _on_subscription_activated(self, event: SubscriptionActivatedEvent) -> bool:
        async with self.payments_repository.savepoint():
            subscription = await self.subscriptions.activate(event.subscription)
        return subscription is not None

    async def _on_subscription_cancelled(self, event: SubscriptionCancelledEvent) -> bool:
        async with self.payments_repository.savepoint():
            updated = await self.subscriptions.cancel(event.subscription)
        return updated > 0


def build_payment_components(
    session: AsyncSession,
) -> tuple[PaymentsRepository, PurchaseFulfillment, RefundReconciliation, PaymentNotifier]:
    """Wire the repositories shared by webhook and checkout flows onto one session."""
    settings = get_settings()
    payments_repository = PaymentsRepository(session)
    courses_repository = CoursesRepository(session)
    appointments_repository = AppointmentsRepository(session)
    audit_repository = AuditRepository(session)

    fulfillment = PurchaseFulfillment(
        payments_repository,
        courses_repository,
        appointments_repository,
        audit_repository,
    )
    refunds = RefundReconciliation(
        payments_repository,
        courses_repository,
        appointments_repository,
        audit_repository,
        cancel_reason=settings.refund_cancel_reason,
    )
    notifier = PaymentNotifier(
        IdentityRepository(session),
        courses_repository,
        appointments_repository,
        EmailDispatcher(NotificationsRepository(session), settings),
        app_url=settings.app_url,
        savepoint=payments_repository.savepoint,
    )
    return payments_repository, fulfillment, refunds, notifier


async def get_webhook_service(session: AsyncSession = Depends(get_db_session)) -> WebhookService:
    """Dependency provider for webhook service."""
    payments_repository, fulfillment, refunds, notifier = build_payment_components(session)
    return WebhookService(
        payments_repository,
        fulfillment,
        refunds,
        SubscriptionsService(SubscriptionsRepository(session)),
        notifier,
        webhook_secret=get_settings().razorpay_webhook_secret,
    )
