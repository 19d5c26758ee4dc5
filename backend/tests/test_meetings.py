"""
Tests for the meeting scheduler: room overlap, capacity and lifecycle.
"""

import asyncio
from datetime import date, time

import pytest
from sqlalchemy import func, select, update

from bandroom.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bandroom.core.security import Actor
from bandroom.models.enums import MeetingRoom, MeetingStatus, ReservationStatus
from bandroom.models.meeting import Meeting, MeetingMembership
from bandroom.models.reservation import Reservation
from bandroom.services import meeting_service
from bandroom.services.interfaces.locks import instrument_key, room_key
from bandroom.services.lock_factory import get_resource_locks
from bandroom.services.meeting_service import (
    create_meeting,
    delete_meeting,
    join_meeting,
    list_all_meetings,
    list_available_meetings,
    list_my_meetings,
    quit_meeting,
    update_meeting_status,
)
from bandroom.services.reservation_service import reserve_instrument, return_reservation

DAY = date(2024, 6, 2)


async def _book(call, actor, reservation, start, end, room=MeetingRoom.DYLAN, day=DAY):
    return await call(create_meeting, actor, reservation.id, room, day, start, end)


@pytest.mark.asyncio
async def test_create_meeting(call, member_actor, member_reservation):
    """The creator is the first participant of an ACTIVE meeting."""
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))

    assert meeting.status == MeetingStatus.ACTIVE.value
    assert meeting.room == "DYLAN"
    assert meeting.reservation_id == member_reservation.id
    assert meeting.reservation.id == member_reservation.id
    assert meeting.created_by == member_actor.id
    assert meeting.users_count == 1
    assert [u.id for u in meeting.users] == [member_actor.id]


@pytest.mark.asyncio
async def test_back_to_back_slots_are_allowed(call, member_actor, member_reservation):
    """18:00-19:00 and 19:00-20:00 only touch; both can be booked."""
    await _book(call, member_actor, member_reservation, time(18), time(19))
    second = await _book(call, member_actor, member_reservation, time(19), time(20))
    assert second.status == MeetingStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_overlapping_slot_conflicts(call, member_actor, member_reservation):
    first = await _book(call, member_actor, member_reservation, time(18), time(19))

    with pytest.raises(ConflictError) as exc_info:
        await _book(call, member_actor, member_reservation, time(18, 30), time(19, 30))

    context = exc_info.value.context
    assert context["conflicting_meeting_id"] == first.id
    assert context["conflicting_start_time"] == "18:00:00"
    assert context["conflicting_end_time"] == "19:00:00"


@pytest.mark.asyncio
async def test_same_slot_in_other_room_or_day_is_free(call, member_actor, member_reservation):
    await _book(call, member_actor, member_reservation, time(18), time(19))
    await _book(call, member_actor, member_reservation, time(18), time(19), room=MeetingRoom.MARTIN)
    await _book(call, member_actor, member_reservation, time(18), time(19), day=date(2024, 6, 3))


@pytest.mark.asyncio
async def test_cancelled_meeting_frees_its_slot(call, member_actor, admin_actor, member_reservation):
    first = await _book(call, member_actor, member_reservation, time(18), time(19))
    await call(update_meeting_status, admin_actor, first.id, MeetingStatus.CANCELLED)

    second = await _book(call, member_actor, member_reservation, time(18), time(19))
    assert second.id != first.id


@pytest.mark.asyncio
async def test_empty_slot_is_rejected(call, member_actor, member_reservation):
    with pytest.raises(ValidationError):
        await _book(call, member_actor, member_reservation, time(19), time(19))


@pytest.mark.asyncio
async def test_unknown_room_is_rejected(call, member_actor, member_reservation):
    with pytest.raises(ValidationError) as exc_info:
        await call(create_meeting, member_actor, member_reservation.id, "GARAGE", DAY, time(18), time(19))
    assert "DYLAN" in exc_info.value.context["allowed_rooms"]


@pytest.mark.asyncio
async def test_meeting_needs_own_reservation(call, other_actor, member_reservation):
    with pytest.raises(ForbiddenError):
        await _book(call, other_actor, member_reservation, time(18), time(19))


@pytest.mark.asyncio
async def test_meeting_needs_active_reservation(call, member_actor, member_reservation):
    await call(return_reservation, member_actor, member_reservation.id)

    with pytest.raises(ForbiddenError):
        await _book(call, member_actor, member_reservation, time(18), time(19))


@pytest.mark.asyncio
async def test_meeting_with_unknown_reservation(call, member_actor):
    with pytest.raises(NotFoundError):
        await call(create_meeting, member_actor, 999, MeetingRoom.DYLAN, DAY, time(18), time(19))


@pytest.mark.asyncio
async def test_join_and_quit(call, member_actor, other_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))

    joined = await call(join_meeting, other_actor, meeting.id)
    assert joined.users_count == 2
    assert {u.id for u in joined.users} == {member_actor.id, other_actor.id}

    left = await call(quit_meeting, other_actor, meeting.id)
    assert left.users_count == 1


@pytest.mark.asyncio
async def test_join_twice_conflicts(call, member_actor, other_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))
    await call(join_meeting, other_actor, meeting.id)

    with pytest.raises(ConflictError):
        await call(join_meeting, other_actor, meeting.id)


@pytest.mark.asyncio
async def test_quit_without_membership(call, member_actor, other_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))

    with pytest.raises(NotFoundError):
        await call(quit_meeting, other_actor, meeting.id)


@pytest.mark.asyncio
async def test_meeting_stays_active_after_last_participant_quits(call, member_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))

    left = await call(quit_meeting, member_actor, meeting.id)
    assert left.users_count == 0
    assert left.status == MeetingStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_full_meeting_rejects_join(call, make_member, member_actor, member_reservation):
    """Capacity is four: the creator plus three more."""
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))
    for _ in range(3):
        await call(join_meeting, Actor.from_user(await make_member()), meeting.id)

    with pytest.raises(ConflictError) as exc_info:
        await call(join_meeting, Actor.from_user(await make_member()), meeting.id)
    assert exc_info.value.context["capacity"] == 4


@pytest.mark.asyncio
async def test_capacity_is_configurable(monkeypatch, call, member_actor, other_actor, member_reservation):
    monkeypatch.setattr(meeting_service.settings, "MEETING_CAPACITY", 1)
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))

    with pytest.raises(ConflictError):
        await call(join_meeting, other_actor, meeting.id)


@pytest.mark.asyncio
async def test_cannot_join_cancelled_meeting(call, member_actor, other_actor, admin_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))
    await call(update_meeting_status, admin_actor, meeting.id, MeetingStatus.CANCELLED)

    with pytest.raises(InvalidStateError):
        await call(join_meeting, other_actor, meeting.id)


@pytest.mark.asyncio
async def test_join_unknown_meeting(call, other_actor):
    with pytest.raises(NotFoundError):
        await call(join_meeting, other_actor, 404)


@pytest.mark.asyncio
async def test_status_change_is_admin_only(call, member_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))

    with pytest.raises(ForbiddenError):
        await call(update_meeting_status, member_actor, meeting.id, MeetingStatus.FINISHED)


@pytest.mark.asyncio
async def test_status_change_to_same_status(call, member_actor, admin_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))

    with pytest.raises(InvalidStateError):
        await call(update_meeting_status, admin_actor, meeting.id, MeetingStatus.ACTIVE)


@pytest.mark.asyncio
async def test_unknown_status_is_rejected(call, member_actor, admin_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))

    with pytest.raises(ValidationError):
        await call(update_meeting_status, admin_actor, meeting.id, "POSTPONED")


@pytest.mark.asyncio
async def test_reactivation_rechecks_room(call, member_actor, admin_actor, member_reservation):
    """A cancelled meeting cannot come back over a slot booked meanwhile."""
    first = await _book(call, member_actor, member_reservation, time(18), time(19))
    await call(update_meeting_status, admin_actor, first.id, MeetingStatus.CANCELLED)
    second = await _book(call, member_actor, member_reservation, time(18, 30), time(19, 30))

    with pytest.raises(ConflictError) as exc_info:
        await call(update_meeting_status, admin_actor, first.id, MeetingStatus.ACTIVE)
    assert exc_info.value.context["conflicting_meeting_id"] == second.id


@pytest.mark.asyncio
async def test_reactivation_when_slot_is_free(call, member_actor, admin_actor, member_reservation):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))
    await call(update_meeting_status, admin_actor, meeting.id, MeetingStatus.FINISHED)

    reactivated = await call(update_meeting_status, admin_actor, meeting.id, MeetingStatus.ACTIVE)
    assert reactivated.status == MeetingStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_reactivation_can_be_disabled(monkeypatch, call, member_actor, admin_actor, member_reservation):
    monkeypatch.setattr(meeting_service.settings, "MEETING_REACTIVATION_ENABLED", False)
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))
    await call(update_meeting_status, admin_actor, meeting.id, MeetingStatus.CANCELLED)

    with pytest.raises(InvalidStateError):
        await call(update_meeting_status, admin_actor, meeting.id, MeetingStatus.ACTIVE)


@pytest.mark.asyncio
async def test_delete_meeting_removes_memberships(
    call, db_session, member_actor, other_actor, admin_actor, member_reservation
):
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))
    await call(join_meeting, other_actor, meeting.id)

    with pytest.raises(ForbiddenError):
        await call(delete_meeting, member_actor, meeting.id)

    await call(delete_meeting, admin_actor, meeting.id)

    assert await db_session.get(Meeting, meeting.id) is None
    remaining = await db_session.scalar(
        select(func.count()).select_from(MeetingMembership).where(MeetingMembership.meeting_id == meeting.id)
    )
    assert remaining == 0


@pytest.mark.asyncio
async def test_listings(call, member_actor, other_actor, admin_actor, member_reservation, make_member):
    late = await _book(call, member_actor, member_reservation, time(20), time(21))
    early = await _book(call, member_actor, member_reservation, time(10), time(11))
    full = await _book(call, member_actor, member_reservation, time(12), time(13))
    for _ in range(3):
        await call(join_meeting, Actor.from_user(await make_member()), full.id)
    cancelled = await _book(call, member_actor, member_reservation, time(14), time(15))
    await call(update_meeting_status, admin_actor, cancelled.id, MeetingStatus.CANCELLED)
    await call(join_meeting, other_actor, late.id)

    assert [m.id for m in await call(list_my_meetings, other_actor)] == [late.id]
    assert [m.id for m in await call(list_my_meetings, member_actor)] == [early.id, full.id, cancelled.id, late.id]
    assert [m.id for m in await call(list_available_meetings, other_actor)] == [early.id]
    assert len(await call(list_all_meetings, admin_actor)) == 4

    with pytest.raises(ForbiddenError):
        await call(list_all_meetings, member_actor)


@pytest.mark.asyncio
async def test_concurrent_joins_respect_capacity(call, make_member, member_actor, member_reservation):
    """
    CONCURRENCY TEST: eight members race for three free places.
    The participant count never goes above capacity.
    """
    meeting = await _book(call, member_actor, member_reservation, time(18), time(19))
    actors = [Actor.from_user(await make_member()) for _ in range(8)]

    results = await asyncio.gather(
        *(call(join_meeting, actor, meeting.id) for actor in actors),
        return_exceptions=True,
    )

    joined = [r for r in results if isinstance(r, Meeting)]
    rejected = [r for r in results if isinstance(r, ConflictError)]
    assert len(joined) == 3
    assert len(rejected) == 5
    assert max(m.users_count for m in joined) == 4


@pytest.mark.asyncio
async def test_concurrent_bookings_of_one_slot(call, make_member, guitar):
    """Only one of several simultaneous bookings for the same slot succeeds."""
    actors = [Actor.from_user(await make_member()) for _ in range(5)]
    reservations = [
        await call(reserve_instrument, actor, guitar.id, date(2024, 6, 1 + i), date(2024, 6, 1 + i))
        for i, actor in enumerate(actors)
    ]

    results = await asyncio.gather(
        *(
            _book(call, actor, reservation, time(18), time(19), room=MeetingRoom.SPRINGSTEEN)
            for actor, reservation in zip(actors, reservations)
        ),
        return_exceptions=True,
    )

    assert len([r for r in results if isinstance(r, Meeting)]) == 1
    assert len([r for r in results if isinstance(r, ConflictError)]) == 4


async def _until(predicate):
    async with asyncio.timeout(2):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_return_waits_for_booking_on_its_reservation(call, member_actor, member_reservation):
    """
    CONCURRENCY TEST: a return of the anchor reservation queues behind a
    booking that already holds it, so the meeting is created while it is ACTIVE.
    """
    locks = get_resource_locks()
    room = room_key(MeetingRoom.DYLAN.value, DAY)

    async with locks.hold(room):
        booking = asyncio.create_task(_book(call, member_actor, member_reservation, time(18), time(19)))
        await _until(lambda: locks._refs[room] == 2)

        returning = asyncio.create_task(call(return_reservation, member_actor, member_reservation.id))
        await asyncio.sleep(0.05)
        assert not returning.done()

    meeting = await booking
    finished = await returning
    assert meeting.reservation.status == ReservationStatus.ACTIVE.value
    assert finished.status == ReservationStatus.FINISHED.value


@pytest.mark.asyncio
async def test_reservation_finished_while_booking_waits(
    call, session_factory, db_session, member_actor, member_reservation
):
    """The anchor is re-checked under the lock; a reservation finished meanwhile is refused."""
    locks = get_resource_locks()
    anchor = instrument_key(member_reservation.instrument_id)

    async with locks.hold(anchor):
        booking = asyncio.create_task(_book(call, member_actor, member_reservation, time(18), time(19)))
        await _until(lambda: locks._refs[anchor] == 2)

        async with session_factory() as session:
            await session.execute(
                update(Reservation)
                .where(Reservation.id == member_reservation.id)
                .values(status=ReservationStatus.FINISHED.value)
            )
            await session.commit()

    with pytest.raises(ForbiddenError):
        await booking
    assert await db_session.scalar(select(func.count()).select_from(Meeting)) == 0
