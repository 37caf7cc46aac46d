"""Course access checks and the caller's purchased courses."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.api import deps
from coursepay.api.errors import to_http_exception
from coursepay.schemas.enrollment import CourseAccessRead, EnrollmentRead
from coursepay.services import access_service, ledger_service
from coursepay.services.errors import SettlementError

router = APIRouter(prefix="/courses", tags=["courses"])


@router.get("/mine", response_model=list[EnrollmentRead])
async def list_my_courses(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    user_id: Annotated[uuid.UUID, Depends(deps.get_current_user_id)],
) -> list[EnrollmentRead]:
    enrollments = await ledger_service.list_enrollments(session, user_id)
    return [
        EnrollmentRead(
            course_id=enrollment.course.slug,
            title=enrollment.course.title,
            amount_paid=enrollment.amount_paid,
            purchased_at=enrollment.purchased_at,
        )
        for enrollment in enrollments
    ]


@router.get("/{course_id}/access", response_model=CourseAccessRead)
async def check_course_access(
    course_id: str,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    user_id: Annotated[uuid.UUID, Depends(deps.get_current_user_id)],
) -> CourseAccessRead:
    try:
        decision = await access_service.has_access(
            session, user_id=user_id, course_ref=course_id
        )
    except SettlementError as exc:
        raise to_http_exception(exc) from exc
    return CourseAccessRead(granted=decision.granted, reason=decision.reason)
