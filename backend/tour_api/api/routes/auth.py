"""
Authentication endpoints: register, login, current user.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tour_api.db.session import get_db
from tour_api.models.user import User
from tour_api.schemas.common import ApiResponse
from tour_api.schemas.user import UserCreate, UserResponse, UserLogin, Token
from tour_api.services.auth_service import register_user, authenticate_user, issue_token
from tour_api.core.messages import get_language, translate
from tour_api.core.security import get_current_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=ApiResponse[Token], status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    """Register a new user account and return a token for it."""
    user = await register_user(db, user_data)
    return ApiResponse(
        message=translate("user_registered", lang),
        data=Token(access_token=issue_token(user), user=UserResponse.model_validate(user)),
    )


@router.post("/login", response_model=ApiResponse[Token])
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    """Authenticate and receive a JWT access token."""
    user, token = await authenticate_user(db, login_data)
    return ApiResponse(
        message=translate("login_success", lang),
        data=Token(access_token=token, user=UserResponse.model_validate(user)),
    )


@router.get("/me", response_model=ApiResponse[UserResponse])
async def me(user: User = Depends(get_current_user)):
    return ApiResponse(data=UserResponse.model_validate(user))
