"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from campwaitlist.api.routes import admin, cron, payments, waitlist

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(waitlist.router)
api_router.include_router(admin.router)
api_router.include_router(payments.router)
api_router.include_router(cron.router)
