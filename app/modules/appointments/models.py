"""Appointments ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import AppointmentStatusEnum


class Consultant(BaseModelMixin, Base):
    """Education consultant available for bookings."""

    __tablename__ = "consultants"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)


class AppointmentType(BaseModelMixin, Base):
    """Bookable consultation kind with its duration and price."""

    __tablename__ = "appointment_types"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)


class Appointment(BaseModelMixin, Base):
    """Scheduled consultation."""

    __tablename__ = "appointments"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    consultant_id: Mapped[UUID] = mapped_column(
        ForeignKey("consultants.id", ondelete="RESTRICT"),
        nullable=False,
    )
    type_id: Mapped[UUID] = mapped_column(
        ForeignKey("appointment_types.id", ondelete="RESTRICT"),
        nullable=False,
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[AppointmentStatusEnum] = mapped_column(
        SAEnum(AppointmentStatusEnum, name="appointment_status_enum", native_enum=False),
        default=AppointmentStatusEnum.SCHEDULED,
        nullable=False,
        index=True,
    )
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    consultant: Mapped[Consultant] = relationship()
    appointment_type: Mapped[AppointmentType] = relationship()
