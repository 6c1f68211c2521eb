"""Appointments repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import AppointmentStatusEnum
from app.modules.appointments.models import Appointment

CANCELLABLE_APPOINTMENT_STATUSES = (AppointmentStatusEnum.SCHEDULED, AppointmentStatusEnum.CONFIRMED)


class AppointmentsRepository:
    """DB operations for appointments."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_appointment_by_id(self, appointment_id: UUID) -> Appointment | None:
        stmt = (
            select(Appointment)
            .options(
                selectinload(Appointment.consultant),
                selectinload(Appointment.appointment_type),
            )
            .where(Appointment.id == appointment_id)
        )
        return await self.session.scalar(stmt)

    async def confirm_appointment(self, appointment_id: UUID) -> bool:
        stmt = (
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status == AppointmentStatusEnum.SCHEDULED,
            )
            .values(status=AppointmentStatusEnum.CONFIRMED)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def cancel_appointment(self, appointment_id: UUID, reason: str) -> bool:
        stmt = (
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status.in_(CANCELLABLE_APPOINTMENT_STATUSES),
            )
            .values(status=AppointmentStatusEnum.CANCELLED, cancel_reason=reason)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
