"""Subscriptions repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import SubscriptionStatusEnum
from app.modules.subscriptions.models import Subscription


class SubscriptionsRepository:
    """DB operations for subscriptions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_gateway_id(self, gateway_subscription_id: str) -> Subscription | None:
        stmt = select(Subscription).where(
            Subscription.gateway_subscription_id == gateway_subscription_id,
        )
        return await self.session.scalar(stmt)

    async def create_subscription(
        self,
        user_id: UUID,
        plan_type: str,
        gateway_subscription_id: str,
        current_period_start: datetime | None,
        current_period_end: datetime | None,
    ) -> Subscription:
        subscription = Subscription(
            user_id=user_id,
            plan_type=plan_type,
            gateway_subscription_id=gateway_subscription_id,
            status=SubscriptionStatusEnum.ACTIVE,
            current_period_start=current_period_start,
            current_period_end=current_period_end,
        )
        self.session.add(subscription)
        await self.session.flush()
        return subscription

    async def cancel_by_gateway_id(self, gateway_subscription_id: str, canceled_at: datetime) -> int:
        stmt = (
            update(Subscription)
            .where(
                Subscription.gateway_subscription_id == gateway_subscription_id,
                Subscription.status != SubscriptionStatusEnum.CANCELLED,
            )
            .values(status=SubscriptionStatusEnum.CANCELLED, canceled_at=canceled_at)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
