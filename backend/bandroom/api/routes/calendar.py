"""
Calendar feed endpoint.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.security import Actor, get_current_actor
from bandroom.db.session import get_db
from bandroom.schemas.calendar import CalendarEventResponse
from bandroom.services.calendar_service import build_feed

router = APIRouter(prefix="/calendar", tags=["Calendar"])


@router.get("/", response_model=list[CalendarEventResponse])
async def calendar_feed(
    start: Optional[date] = Query(None, description="First day of the window (inclusive)"),
    end: Optional[date] = Query(None, description="Last day of the window (inclusive)"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Reservations and meetings visible to the caller, in start order."""
    feed = await build_feed(db, actor, start, end)
    return [CalendarEventResponse.model_validate(event) for event in feed]
