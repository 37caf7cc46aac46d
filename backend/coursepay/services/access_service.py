"""Course access decisions for the catalog and lesson surfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.services import catalog_service, ledger_service

AccessReason = Literal["free", "purchased", "none"]


@dataclass(slots=True, frozen=True)
class AccessDecision:
    granted: bool
    reason: AccessReason


async def has_access(
    session: AsyncSession, *, user_id: UUID, course_ref: str
) -> AccessDecision:
    """Answer whether a user may open a course. Read-only."""
    course = await catalog_service.get_course(session, course_ref)
    if course.is_free:
        return AccessDecision(granted=True, reason="free")
    enrollment = await ledger_service.get_enrollment(
        session, user_id=user_id, course_id=course.id
    )
    if enrollment is not None:
        return AccessDecision(granted=True, reason="purchased")
    return AccessDecision(granted=False, reason="none")
