"""
Rehearsal-room meeting and its participant memberships.

Key design decisions:
- [start_time, end_time) is half-open so back-to-back meetings can touch
- Room/day non-overlap and the participant cap are enforced by the meeting
  service under room- and meeting-scoped locks
- Memberships are an association object (not a bare secondary table) so a
  quit is a row delete and deleting a meeting cascades to every membership
- The anchor reservation is a read-only reference; it is nulled, not
  cascaded, if an admin later deletes the FINISHED reservation
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from bandroom.db.base import Base, TimestampMixin, utcnow
from bandroom.models.enums import MeetingRoom, MeetingStatus, check_in


class Meeting(Base, TimestampMixin):
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    room = Column(String(20), nullable=False)
    day = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default=MeetingStatus.ACTIVE.value)

    reservation = relationship("Reservation", lazy="selectin")
    memberships = relationship(
        "MeetingMembership",
        back_populates="meeting",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MeetingMembership.joined_at",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_meeting_time_range"),
        CheckConstraint(check_in("room", MeetingRoom), name="check_meeting_room"),
        CheckConstraint(check_in("status", MeetingStatus), name="check_meeting_status"),
        # Overlap lookup: ACTIVE meetings in one room on one day
        Index("ix_meetings_room_day_status", "room", "day", "status"),
    )

    @property
    def users(self) -> list:
        return [membership.user for membership in self.memberships]

    @property
    def users_count(self) -> int:
        return len(self.memberships)

    @property
    def is_active(self) -> bool:
        return self.status == MeetingStatus.ACTIVE.value

    def has_participant(self, user_id: int) -> bool:
        return any(m.user_id == user_id for m in self.memberships)

    def __repr__(self) -> str:
        return (
            f"<Meeting(id={self.id}, room={self.room}, day={self.day}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )


class MeetingMembership(Base):
    __tablename__ = "meeting_users"

    id = Column(Integer, primary_key=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    meeting = relationship("Meeting", back_populates="memberships")
    user = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("meeting_id", "user_id", name="uq_meeting_user"),
    )

    def __repr__(self) -> str:
        return f"<MeetingMembership(meeting={self.meeting_id}, user={self.user_id})>"
