"""Courses API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.modules.courses.schemas import EnrollmentRead
from app.modules.courses.service import CoursesService, get_courses_service
from app.modules.identity.service import get_current_user
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/courses", tags=["courses"])


@router.get("/enrollments/my", response_model=Page[EnrollmentRead])
async def list_my_enrollments(
    pagination=Depends(get_pagination_params),
    service: CoursesService = Depends(get_courses_service),
    current_user=Depends(get_current_user),
) -> Page[EnrollmentRead]:
    """List course enrollments of the current student."""
    items, total = await service.list_my_enrollments(current_user, pagination.limit, pagination.offset)
    serialized = [EnrollmentRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
