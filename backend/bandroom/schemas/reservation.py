"""
Pydantic schemas for instrument reservations.
Dates are plain calendar dates ("YYYY-MM-DD"); both ends are inclusive.
"""

from datetime import date, datetime

from pydantic import BaseModel

from bandroom.models.enums import ReservationStatus
from bandroom.schemas.instrument import InstrumentResponse


class ReservationCreate(BaseModel):
    start_date: date
    end_date: date


class ReservationResponse(BaseModel):
    id: int
    user_id: int
    instrument_id: int
    start_date: date
    end_date: date
    status: ReservationStatus
    instrument: InstrumentResponse
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BusyRange(BaseModel):
    reservation_id: int
    start_date: date
    end_date: date
