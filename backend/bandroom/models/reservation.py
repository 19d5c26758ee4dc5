"""
Reservation of one instrument by one user over an inclusive date range.

Key design decisions:
- Only `status` is ever updated; instrument, user and dates are fixed at creation
- Non-overlap of ACTIVE ranges is enforced by the reservation service under an
  instrument-scoped lock; the composite index serves that overlap lookup
- FINISHED rows are kept as history until an admin deletes them
"""

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from bandroom.db.base import Base, TimestampMixin
from bandroom.models.enums import ReservationStatus, check_in


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    instrument_id = Column(
        Integer, ForeignKey("instruments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.ACTIVE.value)

    instrument = relationship("Instrument", lazy="selectin")

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="check_reservation_range"),
        CheckConstraint(check_in("status", ReservationStatus), name="check_reservation_status"),
        Index("ix_reservations_instrument_status_dates", "instrument_id", "status", "start_date", "end_date"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE.value

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, instrument={self.instrument_id}, user={self.user_id}, "
            f"{self.start_date}..{self.end_date}, status={self.status})>"
        )
