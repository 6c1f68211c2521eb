"""Courses repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import EnrollmentStatusEnum
from app.modules.courses.models import Course, Enrollment

REVOCABLE_ENROLLMENT_STATUSES = (EnrollmentStatusEnum.ACTIVE, EnrollmentStatusEnum.COMPLETED)


class CoursesRepository:
    """DB access methods for courses and enrollments."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_course_by_id(self, course_id: UUID) -> Course | None:
        stmt = select(Course).where(Course.id == course_id)
        return await self.session.scalar(stmt)

    async def get_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        stmt = select(Enrollment).where(
            Enrollment.user_id == user_id,
            Enrollment.course_id == course_id,
        )
        return await self.session.scalar(stmt)

    async def create_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        """Insert an active enrollment; None when a concurrent insert won the unique key."""
        enrollment = Enrollment(
            user_id=user_id,
            course_id=course_id,
            status=EnrollmentStatusEnum.ACTIVE,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(enrollment)
                await self.session.flush()
        except IntegrityError:
            return None
        return enrollment

    async def reactivate_enrollment(self, enrollment_id: UUID) -> bool:
        stmt = (
            update(Enrollment)
            .where(
                Enrollment.id == enrollment_id,
                Enrollment.status == EnrollmentStatusEnum.REFUNDED,
            )
            .values(status=EnrollmentStatusEnum.ACTIVE)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def revoke_enrollment(self, user_id: UUID, course_id: UUID) -> bool:
        """Move a live enrollment to REFUNDED; False when nothing was revoked."""
        stmt = (
            update(Enrollment)
            .where(
                Enrollment.user_id == user_id,
                Enrollment.course_id == course_id,
                Enrollment.status.in_(REVOCABLE_ENROLLMENT_STATUSES),
            )
            .values(status=EnrollmentStatusEnum.REFUNDED)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def increment_total_students(self, course_id: UUID) -> None:
        stmt = (
            update(Course)
            .where(Course.id == course_id)
            .values(total_students=Course.total_students + 1)
        )
        await self.session.execute(stmt)

    async def decrement_total_students(self, course_id: UUID) -> None:
        stmt = (
            update(Course)
            .where(Course.id == course_id, Course.total_students > 0)
            .values(total_students=Course.total_students - 1)
        )
        await self.session.execute(stmt)

    async def list_enrollments_for_user(
        self,
        user_id: UUID,
        limit: int,
        offset: int,
    ) -> tuple[list[Enrollment], int]:
        base_stmt: Select[tuple[Enrollment]] = select(Enrollment).where(Enrollment.user_id == user_id)
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            base_stmt.options(selectinload(Enrollment.course))
            .order_by(Enrollment.enrolled_at.desc())
            .limit(limit)
            .offset(offset)
        )
        items = (await self.session.scalars(stmt)).all()
        return list(items), total
