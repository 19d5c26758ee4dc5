"""
Authentication service handling user registration and login.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from bandroom.models.enums import UserRole
from bandroom.models.user import User
from bandroom.schemas.user import UserCreate, UserLogin
from bandroom.core.security import hash_password, verify_password, create_access_token
from bandroom.core.logging import get_logger

logger = get_logger(__name__)


def issue_token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "role": user.role})


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Register a new member account with a hashed password.
    Raises 409 if the email is already registered. Admins are never
    created here; they are promoted in the database.
    """
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        name=user_data.name,
        email=email,
        hashed_password=hash_password(user_data.password),
        role=UserRole.MEMBER.value,
    )
    db.add(user)
    await db.commit()

    logger.info("user_registered", user_id=user.id, email=user.email)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> User:
    """
    Check credentials and return the user.
    Raises 401 if they are invalid, 403 if the account is deactivated.
    """
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    logger.info("user_logged_in", user_id=user.id)
    return user
