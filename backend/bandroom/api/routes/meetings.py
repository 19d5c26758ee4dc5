"""
Meeting endpoints: booking rehearsal rooms and managing participants.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.security import Actor, get_current_actor
from bandroom.db.session import get_db
from bandroom.schemas.common import MessageResponse
from bandroom.schemas.meeting import MeetingCreate, MeetingResponse, MeetingStatusUpdate
from bandroom.services import meeting_service

router = APIRouter(prefix="/meetings", tags=["Meetings"])


@router.post("/", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting_endpoint(
    data: MeetingCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Book a room slot, anchored to one of the caller's ACTIVE reservations.
    Returns 409 with the conflicting slot if the room is taken.
    """
    return await meeting_service.create_meeting(
        db, actor, data.reservation_id, data.room, data.day, data.start_time, data.end_time
    )


@router.get("/", response_model=list[MeetingResponse])
async def all_meetings(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    """Every meeting. Admin only."""
    return await meeting_service.list_all_meetings(db, actor)


@router.get("/my", response_model=list[MeetingResponse])
async def my_meetings(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    return await meeting_service.list_my_meetings(db, actor)


@router.get("/available", response_model=list[MeetingResponse])
async def available_meetings(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    """ACTIVE meetings with a free place that the caller has not joined."""
    return await meeting_service.list_available_meetings(db, actor)


@router.post("/{meeting_id}/join", response_model=MeetingResponse)
async def join_meeting_endpoint(
    meeting_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await meeting_service.join_meeting(db, actor, meeting_id)


@router.post("/{meeting_id}/quit", response_model=MeetingResponse)
async def quit_meeting_endpoint(
    meeting_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await meeting_service.quit_meeting(db, actor, meeting_id)


@router.patch("/{meeting_id}/status", response_model=MeetingResponse)
async def update_meeting_status_endpoint(
    meeting_id: int,
    data: MeetingStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Admin only."""
    return await meeting_service.update_meeting_status(db, actor, meeting_id, data.status)


@router.delete("/{meeting_id}", response_model=MessageResponse)
async def delete_meeting_endpoint(
    meeting_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Admin only. Removes every participant along with the meeting."""
    await meeting_service.delete_meeting(db, actor, meeting_id)
    return MessageResponse(message="Meeting deleted")
