"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from tour_api.api.routes import admin, auth, bookings, notifications, payments, places

api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(places.router)
api_router.include_router(bookings.router)
api_router.include_router(admin.router)
api_router.include_router(payments.router)
api_router.include_router(notifications.router)
