"""
Authentication endpoints: register, login and the current user.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bandroom.core.security import get_current_user
from bandroom.db.session import get_db
from bandroom.models.user import User
from bandroom.schemas.user import AuthResponse, UserCreate, UserLogin, UserResponse
from bandroom.services.auth_service import authenticate_user, issue_token, register_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Create a member account; the response already carries a token."""
    user = await register_user(db, user_data)
    return AuthResponse(token=issue_token(user), user=UserResponse.model_validate(user))


@router.post("/login", response_model=AuthResponse)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, login_data)
    return AuthResponse(token=issue_token(user), user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return user
