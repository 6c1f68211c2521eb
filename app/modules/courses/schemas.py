"""Courses schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.core.enums import EnrollmentStatusEnum


class CourseSummaryRead(BaseModel):
    """Course fields embedded in enrollment responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    slug: str
    instructor_name: str | None
    duration: str | None
    price: Decimal
    currency: str


class EnrollmentRead(BaseModel):
    """Enrollment response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: UUID
    status: EnrollmentStatusEnum
    enrolled_at: datetime
    course: CourseSummaryRead
