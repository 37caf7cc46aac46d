"""ORM models package export."""

from coursepay.models.course import Course
from coursepay.models.enrollment import Enrollment
from coursepay.models.payment import (
    PaymentEvent,
    PaymentIntentRecord,
    PaymentIntentStatus,
)

__all__ = [
    "Course",
    "Enrollment",
    "PaymentEvent",
    "PaymentIntentRecord",
    "PaymentIntentStatus",
]
