"""
Meeting scheduler: rehearsal-room meetings and their participants.

Two invariants, two lock scopes:

  room:<ROOM>:<day>   no two ACTIVE meetings in one room on one day overlap
                      (half-open [start, end), so 18:00-19:00 and 19:00-20:00
                      may both exist)
  meeting:<id>        the participant set never exceeds MEETING_CAPACITY and
                      never holds the same user twice

Create takes the room lock together with the anchor reservation's
`instrument:<id>` lock, so the anchor cannot be returned while the meeting is
being booked. Join, quit, status change and delete take the
meeting lock; a status change back to ACTIVE also takes the room lock because
it re-enters the overlap check. Multi-key holds are acquired in sorted order
by the lock backend.

CANCELLED and FINISHED meetings never block a room. A meeting whose last
participant quits stays ACTIVE until an admin changes or deletes it.
"""

from datetime import date, time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.clock import is_valid_range, time_ranges_overlap
from bandroom.core.config import get_settings
from bandroom.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bandroom.core.logging import get_logger
from bandroom.core.metrics import record_meeting
from bandroom.core.security import Actor
from bandroom.models.enums import MeetingRoom, MeetingStatus
from bandroom.models.meeting import Meeting, MeetingMembership
from bandroom.models.reservation import Reservation
from bandroom.models.user import User
from bandroom.services import authorization
from bandroom.services.interfaces.locks import instrument_key, meeting_key, room_key
from bandroom.services.lock_factory import get_resource_locks

logger = get_logger(__name__)
settings = get_settings()


def _parse_room(room) -> MeetingRoom:
    try:
        return MeetingRoom(room)
    except ValueError:
        raise ValidationError(
            f"Unknown room {room!r}",
            allowed_rooms=[r.value for r in MeetingRoom],
        )


def _parse_status(status) -> MeetingStatus:
    try:
        return MeetingStatus(status)
    except ValueError:
        raise ValidationError(
            f"Unknown meeting status {status!r}",
            allowed_statuses=[s.value for s in MeetingStatus],
        )


async def _get_meeting(db: AsyncSession, meeting_id: int, for_update: bool = False) -> Meeting:
    query = select(Meeting).where(Meeting.id == meeting_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    meeting = result.scalar_one_or_none()
    if not meeting:
        raise NotFoundError(f"Meeting {meeting_id} not found", meeting_id=meeting_id)
    return meeting


async def find_overlapping_meeting(
    db: AsyncSession,
    room: MeetingRoom,
    day: date,
    start_time: time,
    end_time: time,
    exclude_id: Optional[int] = None,
) -> Optional[Meeting]:
    """First ACTIVE meeting in the room on that day whose slot overlaps [start, end)."""
    query = select(Meeting).where(
        Meeting.room == room.value,
        Meeting.day == day,
        Meeting.status == MeetingStatus.ACTIVE.value,
    )
    if exclude_id is not None:
        query = query.where(Meeting.id != exclude_id)
    result = await db.execute(query.order_by(Meeting.start_time.asc(), Meeting.id.asc()))
    for candidate in result.scalars():
        if time_ranges_overlap(candidate.start_time, candidate.end_time, start_time, end_time):
            return candidate
    return None


async def _get_anchor(
    db: AsyncSession, actor: Actor, reservation_id: int, for_update: bool = False
) -> Reservation:
    """The caller's own ACTIVE reservation that a new meeting is anchored to."""
    query = select(Reservation).where(Reservation.id == reservation_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    reservation = result.scalar_one_or_none()
    if not reservation:
        raise NotFoundError(f"Reservation {reservation_id} not found", reservation_id=reservation_id)
    if reservation.user_id != actor.id:
        record_meeting("create", "rejected")
        raise ForbiddenError(
            "Meetings must be anchored to one of your own reservations",
            reservation_id=reservation_id,
        )
    if not reservation.is_active:
        record_meeting("create", "rejected")
        raise ForbiddenError(
            f"Reservation {reservation_id} is {reservation.status}; an ACTIVE reservation is required",
            reservation_id=reservation_id,
        )
    return reservation


def _room_conflict(room: MeetingRoom, day: date, existing: Meeting) -> ConflictError:
    return ConflictError(
        f"Room {room.value} is already booked on {day} from "
        f"{existing.start_time:%H:%M} to {existing.end_time:%H:%M}",
        room=room.value,
        day=str(day),
        conflicting_meeting_id=existing.id,
        conflicting_start_time=existing.start_time.isoformat(),
        conflicting_end_time=existing.end_time.isoformat(),
    )


async def create_meeting(
    db: AsyncSession,
    actor: Actor,
    reservation_id: int,
    room,
    day: date,
    start_time: time,
    end_time: time,
) -> Meeting:
    """
    Book a room slot. The caller must hold an ACTIVE reservation (of any
    instrument): it proves eligibility, it does not pick the room. The
    creator becomes the first participant.
    """
    room = _parse_room(room)
    if not is_valid_range(start_time, end_time, strict=True):
        record_meeting("create", "rejected")
        raise ValidationError(
            "Meeting end time must be after its start time",
            start_time=str(start_time),
            end_time=str(end_time),
        )

    reservation = await _get_anchor(db, actor, reservation_id)

    # The anchor's instrument lock keeps a concurrent return from finishing it
    # between the check below and the insert
    keys = (room_key(room.value, day), instrument_key(reservation.instrument_id))
    async with get_resource_locks().hold(*keys):
        try:
            reservation = await _get_anchor(db, actor, reservation_id, for_update=True)
            existing = await find_overlapping_meeting(db, room, day, start_time, end_time)
            if existing:
                logger.warning(
                    "meeting_conflict",
                    room=room.value,
                    day=str(day),
                    requested=f"{start_time}-{end_time}",
                    conflicting_meeting_id=existing.id,
                )
                record_meeting("create", "conflict")
                raise _room_conflict(room, day, existing)

            user = await db.get(User, actor.id)
            meeting = Meeting(
                reservation_id=reservation_id,
                created_by=actor.id,
                room=room.value,
                day=day,
                start_time=start_time,
                end_time=end_time,
                status=MeetingStatus.ACTIVE.value,
            )
            meeting.reservation = reservation
            meeting.memberships.append(MeetingMembership(user=user))
            db.add(meeting)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_meeting("create", "success")
    logger.info(
        "meeting_created",
        meeting_id=meeting.id,
        reservation_id=reservation_id,
        user_id=actor.id,
        room=room.value,
        day=str(day),
        start_time=str(start_time),
        end_time=str(end_time),
    )
    return meeting


async def join_meeting(db: AsyncSession, actor: Actor, meeting_id: int) -> Meeting:
    authorization.ensure(authorization.can_join_or_quit(actor), "Sign in to join meetings")
    capacity = settings.MEETING_CAPACITY

    async with get_resource_locks().hold(meeting_key(meeting_id)):
        try:
            meeting = await _get_meeting(db, meeting_id, for_update=True)

            if not meeting.is_active:
                record_meeting("join", "rejected")
                raise InvalidStateError(
                    f"Meeting {meeting_id} is {meeting.status}; only ACTIVE meetings can be joined",
                    meeting_id=meeting_id,
                    status=meeting.status,
                )
            if meeting.has_participant(actor.id):
                record_meeting("join", "conflict")
                raise ConflictError(
                    f"You are already a participant of meeting {meeting_id}",
                    meeting_id=meeting_id,
                )
            if meeting.users_count >= capacity:
                record_meeting("join", "conflict")
                raise ConflictError(
                    f"Meeting {meeting_id} is full ({capacity} participants)",
                    meeting_id=meeting_id,
                    capacity=capacity,
                )

            user = await db.get(User, actor.id)
            meeting.memberships.append(MeetingMembership(user=user))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_meeting("join", "success")
    logger.info("meeting_joined", meeting_id=meeting_id, user_id=actor.id, participants=meeting.users_count)
    return meeting


async def quit_meeting(db: AsyncSession, actor: Actor, meeting_id: int) -> Meeting:
    authorization.ensure(authorization.can_join_or_quit(actor), "Sign in to leave meetings")

    async with get_resource_locks().hold(meeting_key(meeting_id)):
        try:
            meeting = await _get_meeting(db, meeting_id, for_update=True)

            membership = next((m for m in meeting.memberships if m.user_id == actor.id), None)
            if membership is None:
                record_meeting("quit", "rejected")
                raise NotFoundError(
                    f"You are not a participant of meeting {meeting_id}",
                    meeting_id=meeting_id,
                )

            meeting.memberships.remove(membership)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_meeting("quit", "success")
    logger.info("meeting_quit", meeting_id=meeting_id, user_id=actor.id, participants=meeting.users_count)
    return meeting


async def update_meeting_status(db: AsyncSession, actor: Actor, meeting_id: int, new_status) -> Meeting:
    """
    Admin-only move between ACTIVE, FINISHED and CANCELLED.

    Leaving ACTIVE frees the room slot immediately. Coming back to ACTIVE is
    gated by MEETING_REACTIVATION_ENABLED and must pass the same room overlap
    check as a new meeting, since the slot may have been re-booked meanwhile.
    """
    authorization.ensure(
        authorization.can_mutate_meeting_status(actor),
        "Only an admin can change a meeting's status",
        meeting_id=meeting_id,
    )
    new_status = _parse_status(new_status)

    keys = [meeting_key(meeting_id)]
    if new_status == MeetingStatus.ACTIVE:
        # room/day never change, so reading them before locking is safe
        meeting = await _get_meeting(db, meeting_id)
        keys.append(room_key(meeting.room, meeting.day))

    async with get_resource_locks().hold(*keys):
        try:
            meeting = await _get_meeting(db, meeting_id, for_update=True)
            old_status = meeting.status

            if old_status == new_status.value:
                record_meeting("status", "rejected")
                raise InvalidStateError(
                    f"Meeting {meeting_id} is already {old_status}",
                    meeting_id=meeting_id,
                    status=old_status,
                )

            if new_status == MeetingStatus.ACTIVE:
                if not settings.MEETING_REACTIVATION_ENABLED:
                    record_meeting("status", "rejected")
                    raise InvalidStateError(
                        f"Meeting {meeting_id} is {old_status} and cannot be reactivated",
                        meeting_id=meeting_id,
                        status=old_status,
                    )
                room = MeetingRoom(meeting.room)
                existing = await find_overlapping_meeting(
                    db, room, meeting.day, meeting.start_time, meeting.end_time, exclude_id=meeting.id
                )
                if existing:
                    record_meeting("status", "conflict")
                    raise _room_conflict(room, meeting.day, existing)

            meeting.status = new_status.value
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_meeting("status", "success")
    logger.info(
        "meeting_status_changed",
        meeting_id=meeting_id,
        actor_id=actor.id,
        old_status=old_status,
        new_status=new_status.value,
    )
    return meeting


async def delete_meeting(db: AsyncSession, actor: Actor, meeting_id: int) -> None:
    """Admin-only hard delete; every membership goes with it."""
    authorization.ensure(
        authorization.can_delete_meeting(actor),
        "Only an admin can delete meetings",
        meeting_id=meeting_id,
    )

    async with get_resource_locks().hold(meeting_key(meeting_id)):
        try:
            meeting = await _get_meeting(db, meeting_id, for_update=True)
            participant_ids = [m.user_id for m in meeting.memberships]
            status = meeting.status
            await db.delete(meeting)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_meeting("delete", "success")
    # Destructive: participants lose the meeting without having quit
    logger.warning(
        "meeting_deleted",
        meeting_id=meeting_id,
        actor_id=actor.id,
        status=status,
        removed_participants=participant_ids,
    )


def _ordered(query):
    return query.order_by(Meeting.day.asc(), Meeting.start_time.asc(), Meeting.id.asc())


async def list_my_meetings(db: AsyncSession, actor: Actor) -> list[Meeting]:
    member_of = select(MeetingMembership.meeting_id).where(MeetingMembership.user_id == actor.id)
    result = await db.execute(_ordered(select(Meeting).where(Meeting.id.in_(member_of))))
    return list(result.scalars().all())


async def list_all_meetings(db: AsyncSession, actor: Actor) -> list[Meeting]:
    authorization.ensure(authorization.can_list_all(actor), "Only an admin can list every meeting")
    result = await db.execute(_ordered(select(Meeting)))
    return list(result.scalars().all())


async def list_available_meetings(db: AsyncSession, actor: Actor) -> list[Meeting]:
    """ACTIVE meetings with a free place that the actor has not joined yet."""
    result = await db.execute(
        _ordered(select(Meeting).where(Meeting.status == MeetingStatus.ACTIVE.value))
    )
    return [
        meeting
        for meeting in result.scalars().all()
        if meeting.users_count < settings.MEETING_CAPACITY and not meeting.has_participant(actor.id)
    ]
