"""Versioned API router."""

from fastapi import APIRouter

from . import courses, health, payments, payments_webhook

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(payments.router, tags=["payments"])
router.include_router(payments_webhook.router, tags=["payments-webhook"])
router.include_router(courses.router, tags=["courses"])
