"""
Instrument catalog endpoints (cached listing, admin CRUD) plus the
reservation entry point and the per-instrument busy calendar.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.logging import get_logger
from bandroom.core.security import Actor, get_current_actor
from bandroom.db.session import get_db
from bandroom.models.enums import InstrumentStatus, InstrumentType
from bandroom.schemas.common import MessageResponse
from bandroom.schemas.instrument import InstrumentCreate, InstrumentResponse, InstrumentUpdate
from bandroom.schemas.reservation import BusyRange, ReservationCreate, ReservationResponse
from bandroom.services import instrument_service, reservation_service
from bandroom.services.cache_service import (
    get_cached_instruments,
    invalidate_instrument_cache,
    set_cached_instruments,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/instruments", tags=["Instruments"])


@router.get("/", response_model=list[InstrumentResponse])
async def list_instruments_endpoint(
    instrument_type: Optional[InstrumentType] = Query(None, alias="type"),
    instrument_status: Optional[InstrumentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """
    Browse the catalog, optionally filtered by type and status.
    Results are cached in Redis and invalidated on any catalog change.
    """
    type_key = instrument_type.value if instrument_type else None
    status_key = instrument_status.value if instrument_status else None

    cached = await get_cached_instruments(type_key, status_key)
    if cached is not None:
        return cached

    instruments = await instrument_service.list_instruments(db, instrument_type, instrument_status)
    payload = [InstrumentResponse.model_validate(i).model_dump(mode="json") for i in instruments]
    await set_cached_instruments(type_key, status_key, payload)
    return payload


@router.get("/{instrument_id}", response_model=InstrumentResponse)
async def get_instrument_endpoint(instrument_id: int, db: AsyncSession = Depends(get_db)):
    return await instrument_service.get_instrument(db, instrument_id)


@router.post("/", response_model=InstrumentResponse, status_code=status.HTTP_201_CREATED)
async def create_instrument_endpoint(
    data: InstrumentCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    instrument = await instrument_service.create_instrument(db, actor, data)
    await invalidate_instrument_cache()
    return instrument


@router.put("/{instrument_id}", response_model=InstrumentResponse)
async def update_instrument_endpoint(
    instrument_id: int,
    data: InstrumentUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    instrument = await instrument_service.update_instrument(db, actor, instrument_id, data)
    await invalidate_instrument_cache()
    return instrument


@router.delete("/{instrument_id}", response_model=MessageResponse)
async def delete_instrument_endpoint(
    instrument_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await instrument_service.delete_instrument(db, actor, instrument_id)
    await invalidate_instrument_cache()
    return MessageResponse(message="Instrument deleted")


@router.get("/{instrument_id}/availability", response_model=list[BusyRange])
async def instrument_availability(
    instrument_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Date ranges already taken by ACTIVE reservations (both ends inclusive)."""
    reservations = await reservation_service.list_busy_ranges(db, instrument_id)
    return [
        BusyRange(reservation_id=r.id, start_date=r.start_date, end_date=r.end_date)
        for r in reservations
    ]


@router.post(
    "/{instrument_id}/reserve",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reserve_instrument_endpoint(
    instrument_id: int,
    data: ReservationCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve the instrument for an inclusive date range.
    Returns 409 with the conflicting range if the days are already taken.
    """
    return await reservation_service.reserve_instrument(
        db, actor, instrument_id, data.start_date, data.end_date
    )
