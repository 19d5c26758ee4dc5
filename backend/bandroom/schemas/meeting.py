"""
Pydantic schemas for rehearsal-room meetings.
Times are time-of-day ("HH:MM"); the end time is exclusive.
"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel

from bandroom.models.enums import MeetingRoom, MeetingStatus
from bandroom.schemas.reservation import ReservationResponse
from bandroom.schemas.user import UserPublic


class MeetingCreate(BaseModel):
    reservation_id: int
    room: MeetingRoom
    day: date
    start_time: time
    end_time: time


class MeetingStatusUpdate(BaseModel):
    status: MeetingStatus


class MeetingResponse(BaseModel):
    id: int
    reservation_id: Optional[int]
    created_by: Optional[int]
    room: MeetingRoom
    day: date
    start_time: time
    end_time: time
    status: MeetingStatus
    users_count: int
    users: list[UserPublic]
    reservation: Optional[ReservationResponse] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
