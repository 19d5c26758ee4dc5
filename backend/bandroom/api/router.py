"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from bandroom.api.routes import auth, calendar, instruments, meetings, reservations

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(instruments.router)
api_router.include_router(reservations.router)
api_router.include_router(meetings.router)
api_router.include_router(calendar.router)
