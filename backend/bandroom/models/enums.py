"""
Closed vocabularies shared by models, schemas and services.
Stored as plain strings guarded by CHECK constraints.
"""

from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class InstrumentType(str, Enum):
    STRING = "STRING"
    WIND = "WIND"
    PERCUSSION = "PERCUSSION"
    KEYBOARD = "KEYBOARD"


class InstrumentStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    MAINTENANCE = "MAINTENANCE"


class ReservationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"


class MeetingRoom(str, Enum):
    SPRINGSTEEN = "SPRINGSTEEN"
    DYLAN = "DYLAN"
    ARMSTRONG = "ARMSTRONG"
    MARTIN = "MARTIN"


class MeetingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


def check_in(column: str, enum_cls) -> str:
    """CHECK constraint body restricting a column to an enum's values."""
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"
