"""
Calendar aggregator: one ordered event feed built from reservations and meetings.

The feed is read-only. It is built from the managers' list operations, then
exposed as a CalendarFeed: a finite iterable that yields events lazily in
ascending start order and can be iterated again from the beginning.

Reservation events are all-day and expose an exclusive end (end_date + 1),
matching how half-open calendar widgets expect all-day events. Meeting events
carry day+time instants. Ties on the start instant are broken by kind, then id.
"""

import heapq
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Iterator, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.clock import as_instant, at_time, date_ranges_overlap, is_valid_range, next_day
from bandroom.core.exceptions import ValidationError
from bandroom.core.logging import get_logger
from bandroom.core.security import Actor
from bandroom.models.meeting import Meeting
from bandroom.models.reservation import Reservation
from bandroom.services import meeting_service, reservation_service

logger = get_logger(__name__)

RESERVATION = "reservation"
MEETING = "meeting"


@dataclass(frozen=True)
class CalendarEvent:
    kind: str
    id: int
    title: str
    start: Union[date, datetime]
    end: Union[date, datetime]
    all_day: bool

    @property
    def sort_key(self) -> tuple:
        return (as_instant(self.start), self.kind, self.id)


def reservation_event(reservation: Reservation) -> CalendarEvent:
    instrument = reservation.instrument
    title = f"{instrument.name} reservation" if instrument is not None else "Reservation"
    return CalendarEvent(
        kind=RESERVATION,
        id=reservation.id,
        title=title,
        start=reservation.start_date,
        end=next_day(reservation.end_date),
        all_day=True,
    )


def meeting_event(meeting: Meeting) -> CalendarEvent:
    return CalendarEvent(
        kind=MEETING,
        id=meeting.id,
        title=f"Rehearsal in {meeting.room}",
        start=at_time(meeting.day, meeting.start_time),
        end=at_time(meeting.day, meeting.end_time),
        all_day=False,
    )


class CalendarFeed:
    """Restartable, lazily merged view over reservation and meeting snapshots."""

    def __init__(self, reservations: Iterable[Reservation], meetings: Iterable[Meeting]):
        self._reservations = sorted(reservations, key=lambda r: (r.start_date, r.id))
        self._meetings = sorted(meetings, key=lambda m: (m.day, m.start_time, m.id))

    def __iter__(self) -> Iterator[CalendarEvent]:
        return heapq.merge(
            map(reservation_event, self._reservations),
            map(meeting_event, self._meetings),
            key=lambda event: event.sort_key,
        )

    def __len__(self) -> int:
        return len(self._reservations) + len(self._meetings)


async def build_feed(
    db: AsyncSession,
    actor: Actor,
    window_start: Optional[date] = None,
    window_end: Optional[date] = None,
) -> CalendarFeed:
    """
    Members see their own reservations and the meetings they take part in.
    Admins see every reservation and every meeting.

    With a window, only events whose days overlap [window_start, window_end]
    (inclusive) are kept. Either bound may be omitted.
    """
    if window_start and window_end and not is_valid_range(window_start, window_end, strict=False):
        raise ValidationError(
            "Calendar window end must be on or after its start",
            start=str(window_start),
            end=str(window_end),
        )

    if actor.is_admin:
        reservations = await reservation_service.list_all_reservations(db, actor)
        meetings = await meeting_service.list_all_meetings(db, actor)
    else:
        reservations = await reservation_service.list_my_reservations(db, actor)
        meetings = await meeting_service.list_my_meetings(db, actor)

    if window_start or window_end:
        low = window_start or date.min
        high = window_end or date.max
        reservations = [r for r in reservations if date_ranges_overlap(r.start_date, r.end_date, low, high)]
        meetings = [m for m in meetings if date_ranges_overlap(m.day, m.day, low, high)]

    logger.debug(
        "calendar_feed_built",
        viewer_id=actor.id,
        reservations=len(reservations),
        meetings=len(meetings),
    )
    return CalendarFeed(reservations, meetings)
