"""
Instrument catalog: public listing, admin-only create/update/delete.
"""

from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.exceptions import ConflictError, NotFoundError
from bandroom.core.logging import get_logger
from bandroom.core.security import Actor
from bandroom.models.enums import InstrumentStatus, InstrumentType, ReservationStatus
from bandroom.models.instrument import Instrument
from bandroom.models.meeting import Meeting
from bandroom.models.reservation import Reservation
from bandroom.schemas.instrument import InstrumentCreate, InstrumentUpdate
from bandroom.services import authorization
from bandroom.services.interfaces.locks import instrument_key
from bandroom.services.lock_factory import get_resource_locks

logger = get_logger(__name__)

# NOT NULL columns an update may not clear
REQUIRED_FIELDS = ("name", "description", "type", "status")


async def create_instrument(db: AsyncSession, actor: Actor, data: InstrumentCreate) -> Instrument:
    authorization.ensure(authorization.can_manage_catalog(actor), "Only an admin can manage the catalog")

    instrument = Instrument(
        name=data.name,
        description=data.description,
        type=data.type.value,
        status=data.status.value,
        image_url=data.image_url,
    )
    db.add(instrument)
    await db.commit()

    logger.info("instrument_created", instrument_id=instrument.id, name=instrument.name, type=instrument.type)
    return instrument


async def get_instrument(db: AsyncSession, instrument_id: int) -> Instrument:
    result = await db.execute(select(Instrument).where(Instrument.id == instrument_id))
    instrument = result.scalar_one_or_none()
    if not instrument:
        raise NotFoundError(f"Instrument {instrument_id} not found", instrument_id=instrument_id)
    return instrument


async def list_instruments(
    db: AsyncSession,
    instrument_type: Optional[InstrumentType] = None,
    status: Optional[InstrumentStatus] = None,
) -> list[Instrument]:
    query = select(Instrument)
    if instrument_type is not None:
        query = query.where(Instrument.type == instrument_type.value)
    if status is not None:
        query = query.where(Instrument.status == status.value)
    result = await db.execute(query.order_by(Instrument.name.asc(), Instrument.id.asc()))
    return list(result.scalars().all())


async def update_instrument(
    db: AsyncSession,
    actor: Actor,
    instrument_id: int,
    data: InstrumentUpdate,
) -> Instrument:
    """
    Partial update; only fields present in the payload change. A null sent
    for a required field leaves it as is, a null image_url clears the image.
    """
    authorization.ensure(authorization.can_manage_catalog(actor), "Only an admin can manage the catalog")

    # Serialized with reserve and return of the same instrument
    async with get_resource_locks().hold(instrument_key(instrument_id)):
        try:
            instrument = await get_instrument(db, instrument_id)

            changes = {
                field: value
                for field, value in data.model_dump(exclude_unset=True).items()
                if value is not None or field not in REQUIRED_FIELDS
            }
            for field, value in changes.items():
                if field in ("type", "status"):
                    value = value.value
                setattr(instrument, field, value)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    logger.info("instrument_updated", instrument_id=instrument_id, fields=sorted(changes))
    return instrument


async def delete_instrument(db: AsyncSession, actor: Actor, instrument_id: int) -> None:
    """
    Remove an instrument and its reservation history.
    Refused while any ACTIVE reservation still holds it.
    """
    authorization.ensure(authorization.can_manage_catalog(actor), "Only an admin can manage the catalog")

    async with get_resource_locks().hold(instrument_key(instrument_id)):
        try:
            instrument = await get_instrument(db, instrument_id)

            active = await db.execute(
                select(Reservation.id).where(
                    Reservation.instrument_id == instrument_id,
                    Reservation.status == ReservationStatus.ACTIVE.value,
                )
            )
            active_ids = list(active.scalars().all())
            if active_ids:
                raise ConflictError(
                    f"Instrument {instrument_id} has ACTIVE reservations; return them first",
                    instrument_id=instrument_id,
                    active_reservation_ids=active_ids,
                )

            history = select(Reservation.id).where(Reservation.instrument_id == instrument_id)
            await db.execute(
                update(Meeting).where(Meeting.reservation_id.in_(history)).values(reservation_id=None)
            )
            await db.execute(delete(Reservation).where(Reservation.instrument_id == instrument_id))
            await db.delete(instrument)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    logger.warning("instrument_deleted", instrument_id=instrument_id, actor_id=actor.id)
