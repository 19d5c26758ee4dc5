"""
User model. Role decides what the authorization overlay lets an actor do.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String

from bandroom.db.base import Base, TimestampMixin
from bandroom.models.enums import UserRole, check_in


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.MEMBER.value)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(check_in("role", UserRole), name="check_user_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
