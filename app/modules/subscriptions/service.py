"""Subscription handlers driven by gateway subscription events."""

from __future__ import annotations

import logging
from uuid import UUID

from app.modules.payments.events import SubscriptionEntity
from app.modules.subscriptions.models import Subscription
from app.modules.subscriptions.repository import SubscriptionsRepository
from app.shared.utils import from_unix_seconds, utc_now

logger = logging.getLogger(__name__)

DEFAULT_PLAN_TYPE = "basic"


class SubscriptionsService:
    """Mirror gateway subscriptions locally."""

    def __init__(self, repository: SubscriptionsRepository) -> None:
        self.repository = repository

    async def activate(self, entity: SubscriptionEntity) -> Subscription | None:
        """Record an activated gateway subscription; None when skipped or already recorded."""
        raw_user_id = entity.note("userId")
        if raw_user_id is None:
            logger.warning("Subscription %s activated without userId note", entity.id)
            return None
        try:
            user_id = UUID(raw_user_id)
        except ValueError:
            logger.warning("Subscription %s has malformed userId note: %s", entity.id, raw_user_id)
            return None

        existing = await self.repository.get_by_gateway_id(entity.id)
        if existing is not None:
            logger.info("Subscription %s already recorded", entity.id)
            return None

        subscription = await self.repository.create_subscription(
            user_id=user_id,
            plan_type=entity.note("planType") or DEFAULT_PLAN_TYPE,
            gateway_subscription_id=entity.id,
            current_period_start=from_unix_seconds(entity.current_start),
            current_period_end=from_unix_seconds(entity.current_end),
        )
        logger.info("Subscription %s activated for user %s", entity.id, user_id)
        return subscription

    async def cancel(self, entity: SubscriptionEntity) -> int:
        """Mark matching subscriptions cancelled; returns how many changed."""
        updated = await self.repository.cancel_by_gateway_id(entity.id, utc_now())
        if updated == 0:
            logger.warning("No active subscription found for gateway id %s", entity.id)
        else:
            logger.info("Subscription %s cancelled", entity.id)
        return updated
