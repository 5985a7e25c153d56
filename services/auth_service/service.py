import secrets

from fastapi import HTTPException, status
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import ConflictError, NotFound
from shared.security import create_access_token

from .models import User
from .oauth import GoogleOAuthClient
from .repository import UserRepository
from .schemas import GoogleLoginResponse, TokenResponse, UserCreate, UserLogin, UserResponse

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:

    @staticmethod
    def _hash_password(password: str) -> str:
        return _pwd_context.hash(password)

    @staticmethod
    def _verify_password(plain: str, hashed: str) -> bool:
        return _pwd_context.verify(plain, hashed)

    @staticmethod
    async def register(db: AsyncSession, data: UserCreate) -> User:
        existing = await UserRepository.get_by_email(db, data.email)
        if existing:
            raise ConflictError("Email already registered", field="email")
        user = User(
            name=data.name,
            email=data.email,
            hashed_password=AuthService._hash_password(data.password),
        )
        return await UserRepository.create(db, user)

    @staticmethod
    async def login(db: AsyncSession, data: UserLogin) -> TokenResponse:
        user = await UserRepository.get_by_email(db, data.email)
        if not user or not AuthService._verify_password(data.password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is disabled",
            )
        token = create_access_token(data={"sub": str(user.id)})
        return TokenResponse(access_token=token)

    @staticmethod
    async def login_with_google(db: AsyncSession, google: GoogleOAuthClient, code: str) -> GoogleLoginResponse:
        profile = await google.fetch_profile(code)

        user = await UserRepository.get_by_email(db, profile.email)
        if user is None:
            # Social accounts get an unusable random password
            user = User(
                email=profile.email,
                name=profile.name or profile.email,
                hashed_password=AuthService._hash_password(secrets.token_urlsafe(24)),
            )
        user.google_id = profile.id
        if profile.name:
            user.name = profile.name
        user = await UserRepository.save(db, user)

        token = create_access_token(data={"sub": str(user.id)})
        return GoogleLoginResponse(access_token=token, user=UserResponse.model_validate(user))

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: int) -> User:
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFound("User not found", user_id=user_id)
        return user
