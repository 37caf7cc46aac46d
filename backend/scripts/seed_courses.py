"""Seed a small demo catalog for local purchase testing."""

from __future__ import annotations

import asyncio
from decimal import Decimal

from sqlalchemy import select

from coursepay.db.session import session_scope
from coursepay.models import Course

DEMO_COURSES = (
    ("intro-to-python", "Introduction to Python", Decimal("0"), True),
    ("async-web-services", "Async Web Services", Decimal("500000"), False),
    ("data-pipelines", "Building Data Pipelines", Decimal("750000"), False),
)


async def seed_courses() -> None:
    async with session_scope() as session:
        existing = set(
            (await session.execute(select(Course.slug))).scalars().all()
        )
        created = 0
        for slug, title, price, is_free in DEMO_COURSES:
            if slug in existing:
                continue
            session.add(Course(slug=slug, title=title, price=price, is_free=is_free))
            created += 1
        await session.commit()
    print(f"Seeded {created} course(s); {len(existing)} already present.")


if __name__ == "__main__":
    asyncio.run(seed_courses())
