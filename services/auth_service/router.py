from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import get_db
from shared.security import get_current_user, limiter

from .oauth import GoogleOAuthClient, get_google_client
from .schemas import (
    GoogleLoginResponse,
    GoogleRedirectResponse,
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)
from .service import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user account",
)
async def register(payload: UserCreate, db: AsyncSession = Depends(get_db)):
    return await AuthService.register(db, payload)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and receive a JWT access token",
)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(request: Request, payload: UserLogin, db: AsyncSession = Depends(get_db)):
    return await AuthService.login(db, payload)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get the current authenticated user's profile",
)
async def get_me(
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AuthService.get_user_by_id(db, user_id)


@router.get(
    "/google/redirect",
    response_model=GoogleRedirectResponse,
    summary="Get the Google consent screen URL",
)
async def google_redirect(google: GoogleOAuthClient = Depends(get_google_client)):
    return GoogleRedirectResponse(redirect_url=google.authorization_url())


@router.get(
    "/google/callback",
    response_model=GoogleLoginResponse,
    summary="Finish Google sign-in and receive a JWT access token",
)
async def google_callback(
    code: str = "",
    db: AsyncSession = Depends(get_db),
    google: GoogleOAuthClient = Depends(get_google_client),
):
    return await AuthService.login_with_google(db, google, code)
