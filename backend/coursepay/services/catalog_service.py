"""Read-only lookups against the course catalog."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.models import Course
from coursepay.services.errors import SettlementError, SettlementErrorKind


async def get_course(session: AsyncSession, course_ref: str) -> Course:
    """Return an active course by its display id.

    Missing and inactive courses are indistinguishable to callers.
    """
    stmt = select(Course).where(Course.slug == course_ref, Course.is_active.is_(True))
    course = (await session.execute(stmt)).scalars().first()
    if course is None:
        raise SettlementError(SettlementErrorKind.NOT_FOUND, "Course not found")
    return course


def authoritative_price(course: Course) -> Decimal:
    """Price the settlement path charges; free courses always cost zero."""
    if course.is_free:
        return Decimal("0.00")
    return Decimal(course.price or 0).quantize(Decimal("0.01"))
