"""
Reservation endpoints: list, return and delete.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.security import Actor, get_current_actor
from bandroom.db.session import get_db
from bandroom.schemas.common import MessageResponse
from bandroom.schemas.reservation import ReservationResponse
from bandroom.services import reservation_service

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.get("/my", response_model=list[ReservationResponse])
async def my_reservations(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    return await reservation_service.list_my_reservations(db, actor)


@router.get("/", response_model=list[ReservationResponse])
async def all_reservations(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    """Every reservation in the system. Admin only."""
    return await reservation_service.list_all_reservations(db, actor)


@router.post("/{reservation_id}/return", response_model=ReservationResponse)
async def return_reservation_endpoint(
    reservation_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Finish an ACTIVE reservation. Owner or admin."""
    return await reservation_service.return_reservation(db, actor, reservation_id)


@router.delete("/{reservation_id}", response_model=MessageResponse)
async def delete_reservation_endpoint(
    reservation_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Remove a FINISHED reservation from history. Admin only."""
    await reservation_service.delete_reservation(db, actor, reservation_id)
    return MessageResponse(message="Reservation deleted")
