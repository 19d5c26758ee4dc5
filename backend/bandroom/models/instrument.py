"""
Instrument catalog entry.

`status` is catalog state set by an admin (is the item orderable at all).
Whether an instrument is free on a given day is derived from its ACTIVE
reservations, never stored here.
"""

from sqlalchemy import CheckConstraint, Column, Index, Integer, String

from bandroom.db.base import Base, TimestampMixin
from bandroom.models.enums import InstrumentStatus, InstrumentType, check_in


class Instrument(Base, TimestampMixin):
    __tablename__ = "instruments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=False, default="")
    type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=InstrumentStatus.AVAILABLE.value)
    # Opaque reference into the file store, never interpreted here
    image_url = Column(String(1024), nullable=True)

    __table_args__ = (
        CheckConstraint(check_in("type", InstrumentType), name="check_instrument_type"),
        CheckConstraint(check_in("status", InstrumentStatus), name="check_instrument_status"),
        Index("ix_instruments_type_status", "type", "status"),
    )

    def __repr__(self) -> str:
        return f"<Instrument(id={self.id}, name={self.name}, status={self.status})>"
