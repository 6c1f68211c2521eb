"""Courses business logic layer."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.modules.courses.models import Enrollment
from app.modules.courses.repository import CoursesRepository
from app.modules.identity.models import User


class CoursesService:
    """Student-facing course queries."""

    def __init__(self, repository: CoursesRepository) -> None:
        self.repository = repository

    async def list_my_enrollments(
        self,
        actor: User,
        limit: int,
        offset: int,
    ) -> tuple[list[Enrollment], int]:
        return await self.repository.list_enrollments_for_user(actor.id, limit, offset)


async def get_courses_service(session: AsyncSession = Depends(get_db_session)) -> CoursesService:
    """Dependency provider for courses service."""
    return CoursesService(CoursesRepository(session))
