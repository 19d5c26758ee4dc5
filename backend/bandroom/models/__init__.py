from bandroom.models.user import User
from bandroom.models.instrument import Instrument
from bandroom.models.reservation import Reservation
from bandroom.models.meeting import Meeting, MeetingMembership

__all__ = ["User", "Instrument", "Reservation", "Meeting", "MeetingMembership"]
