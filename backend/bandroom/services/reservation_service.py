"""
Reservation manager: instrument reservations over inclusive date ranges.

CONCURRENCY STRATEGY: Scoped Pessimistic Locking
================================================

Problem:
  Two members reserve the same instrument for overlapping days at the same
  moment. Both look for overlapping ACTIVE reservations, both find none, both
  insert. Result: a double-booked instrument.

Solution:
  The overlap check and the insert run as one critical section under an
  exclusive lock keyed by instrument id (see services/interfaces/locks.py):

  1. Validate input and permissions outside the lock (no shared state read)
  2. Acquire `instrument:<id>`
  3. Re-read the instrument (SELECT ... FOR UPDATE on PostgreSQL)
  4. Look for an ACTIVE reservation whose range overlaps the request
  5. Insert and COMMIT before the lock is released

  Return and delete take the same lock, so a reservation cannot be finished
  or removed halfway through someone else's overlap check.

  Only ACTIVE reservations block; FINISHED ones are history.

Errors never partially apply: every failed precondition rolls the session
back before the lock is released.
"""

from datetime import date
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.clock import date_ranges_overlap, is_valid_range
from bandroom.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from bandroom.core.logging import get_logger
from bandroom.core.metrics import record_reservation
from bandroom.core.security import Actor
from bandroom.models.enums import InstrumentStatus, ReservationStatus
from bandroom.models.instrument import Instrument
from bandroom.models.meeting import Meeting
from bandroom.models.reservation import Reservation
from bandroom.services import authorization
from bandroom.services.interfaces.locks import instrument_key
from bandroom.services.lock_factory import get_resource_locks

logger = get_logger(__name__)


async def _get_instrument(db: AsyncSession, instrument_id: int, for_update: bool = False) -> Instrument:
    query = select(Instrument).where(Instrument.id == instrument_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    instrument = result.scalar_one_or_none()
    if not instrument:
        raise NotFoundError(f"Instrument {instrument_id} not found", instrument_id=instrument_id)
    return instrument


async def _get_reservation(db: AsyncSession, reservation_id: int) -> Reservation:
    result = await db.execute(select(Reservation).where(Reservation.id == reservation_id))
    reservation = result.scalar_one_or_none()
    if not reservation:
        raise NotFoundError(f"Reservation {reservation_id} not found", reservation_id=reservation_id)
    return reservation


async def find_overlapping_reservation(
    db: AsyncSession,
    instrument_id: int,
    start_date: date,
    end_date: date,
) -> Optional[Reservation]:
    """First ACTIVE reservation on the instrument sharing at least one day with the range."""
    result = await db.execute(
        select(Reservation)
        .where(
            Reservation.instrument_id == instrument_id,
            Reservation.status == ReservationStatus.ACTIVE.value,
            Reservation.end_date >= start_date,
        )
        .order_by(Reservation.start_date.asc(), Reservation.id.asc())
    )
    for candidate in result.scalars():
        if date_ranges_overlap(candidate.start_date, candidate.end_date, start_date, end_date):
            return candidate
    return None


async def reserve_instrument(
    db: AsyncSession,
    actor: Actor,
    instrument_id: int,
    start_date: date,
    end_date: date,
) -> Reservation:
    """
    Reserve an instrument for [start_date, end_date], both days included.
    A single-day reservation has start_date == end_date.
    """
    if not is_valid_range(start_date, end_date, strict=False):
        record_reservation("reserve", "rejected")
        raise ValidationError(
            "Reservation end date must be on or after its start date",
            start_date=str(start_date),
            end_date=str(end_date),
        )

    async with get_resource_locks().hold(instrument_key(instrument_id)):
        try:
            instrument = await _get_instrument(db, instrument_id, for_update=True)

            if instrument.status != InstrumentStatus.AVAILABLE.value:
                record_reservation("reserve", "rejected")
                raise ConflictError(
                    f"Instrument {instrument_id} is not orderable (status {instrument.status})",
                    instrument_id=instrument_id,
                    instrument_status=instrument.status,
                )

            existing = await find_overlapping_reservation(db, instrument_id, start_date, end_date)
            if existing:
                logger.warning(
                    "reservation_conflict",
                    instrument_id=instrument_id,
                    requested=f"{start_date}..{end_date}",
                    conflicting_reservation_id=existing.id,
                )
                record_reservation("reserve", "conflict")
                raise ConflictError(
                    f"Instrument {instrument_id} is already reserved from "
                    f"{existing.start_date} to {existing.end_date}",
                    instrument_id=instrument_id,
                    conflicting_reservation_id=existing.id,
                    conflicting_start_date=str(existing.start_date),
                    conflicting_end_date=str(existing.end_date),
                )

            reservation = Reservation(
                user_id=actor.id,
                instrument_id=instrument_id,
                start_date=start_date,
                end_date=end_date,
                status=ReservationStatus.ACTIVE.value,
            )
            reservation.instrument = instrument
            db.add(reservation)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_reservation("reserve", "success")
    logger.info(
        "reservation_created",
        reservation_id=reservation.id,
        user_id=actor.id,
        instrument_id=instrument_id,
        start_date=str(start_date),
        end_date=str(end_date),
    )
    return reservation


async def return_reservation(db: AsyncSession, actor: Actor, reservation_id: int) -> Reservation:
    """
    Finish an ACTIVE reservation, freeing its date range.
    Owners return their own reservations; admins may force-return anyone's.
    Returning twice fails: FINISHED is terminal.
    """
    reservation = await _get_reservation(db, reservation_id)
    authorization.ensure(
        authorization.can_return_reservation(actor, reservation),
        "Only the reservation owner or an admin can return it",
        reservation_id=reservation_id,
    )

    # instrument_id never changes, so it is safe to pick the lock from the first read
    async with get_resource_locks().hold(instrument_key(reservation.instrument_id)):
        try:
            await db.refresh(reservation, with_for_update=True)
            if not reservation.is_active:
                record_reservation("return", "rejected")
                raise InvalidStateError(
                    f"Reservation {reservation_id} is already {reservation.status}",
                    reservation_id=reservation_id,
                    status=reservation.status,
                )

            reservation.status = ReservationStatus.FINISHED.value
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_reservation("return", "success")
    logger.info(
        "reservation_returned",
        reservation_id=reservation_id,
        actor_id=actor.id,
        forced=actor.id != reservation.user_id,
    )
    return reservation


async def delete_reservation(db: AsyncSession, actor: Actor, reservation_id: int) -> None:
    """
    Permanently remove a FINISHED reservation (admin only).
    ACTIVE reservations must be returned first; deletion never skips that step.
    Meetings anchored to the reservation survive with a NULL anchor.
    """
    authorization.ensure(
        authorization.can_delete_reservation(actor),
        "Only an admin can delete reservations",
        reservation_id=reservation_id,
    )
    reservation = await _get_reservation(db, reservation_id)

    async with get_resource_locks().hold(instrument_key(reservation.instrument_id)):
        try:
            await db.refresh(reservation, with_for_update=True)
            if reservation.is_active:
                record_reservation("delete", "rejected")
                raise InvalidStateError(
                    f"Reservation {reservation_id} is still ACTIVE; return it before deleting",
                    reservation_id=reservation_id,
                    status=reservation.status,
                )

            await db.execute(
                update(Meeting)
                .where(Meeting.reservation_id == reservation_id)
                .values(reservation_id=None)
            )
            await db.execute(delete(Reservation).where(Reservation.id == reservation_id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_reservation("delete", "success")
    logger.warning("reservation_deleted", reservation_id=reservation_id, actor_id=actor.id)


async def list_my_reservations(db: AsyncSession, actor: Actor) -> list[Reservation]:
    result = await db.execute(
        select(Reservation)
        .where(Reservation.user_id == actor.id)
        .order_by(Reservation.start_date.desc(), Reservation.id.desc())
    )
    return list(result.scalars().all())


async def list_all_reservations(db: AsyncSession, actor: Actor) -> list[Reservation]:
    authorization.ensure(authorization.can_list_all(actor), "Only an admin can list every reservation")
    result = await db.execute(
        select(Reservation).order_by(Reservation.start_date.desc(), Reservation.id.desc())
    )
    return list(result.scalars().all())


async def list_busy_ranges(db: AsyncSession, instrument_id: int) -> list[Reservation]:
    """ACTIVE reservations of an instrument: the days it cannot be reserved."""
    await _get_instrument(db, instrument_id)
    result = await db.execute(
        select(Reservation)
        .where(
            Reservation.instrument_id == instrument_id,
            Reservation.status == ReservationStatus.ACTIVE.value,
        )
        .order_by(Reservation.start_date.asc(), Reservation.id.asc())
    )
    return list(result.scalars().all())
