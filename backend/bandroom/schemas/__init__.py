from bandroom.schemas.user import UserCreate, UserLogin, UserPublic, UserResponse, AuthResponse
from bandroom.schemas.instrument import InstrumentCreate, InstrumentUpdate, InstrumentResponse
from bandroom.schemas.reservation import ReservationCreate, ReservationResponse, BusyRange
from bandroom.schemas.meeting import MeetingCreate, MeetingStatusUpdate, MeetingResponse
from bandroom.schemas.calendar import CalendarEventResponse
from bandroom.schemas.common import MessageResponse

__all__ = [
    "UserCreate", "UserLogin", "UserPublic", "UserResponse", "AuthResponse",
    "InstrumentCreate", "InstrumentUpdate", "InstrumentResponse",
    "ReservationCreate", "ReservationResponse", "BusyRange",
    "MeetingCreate", "MeetingStatusUpdate", "MeetingResponse",
    "CalendarEventResponse",
    "MessageResponse",
]
