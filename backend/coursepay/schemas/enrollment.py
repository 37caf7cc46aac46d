"""Schemas for course access and enrollment listings."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel


class CourseAccessRead(BaseModel):
    granted: bool
    reason: Literal["free", "purchased", "none"]


class EnrollmentRead(BaseModel):
    """A course the caller owns."""

    course_id: str
    title: str
    amount_paid: Decimal
    purchased_at: datetime
