from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    is_active: bool

    class Config:
        from_attributes = True


class GoogleRedirectResponse(BaseModel):
    redirect_url: str


class GoogleLoginResponse(TokenResponse):
    user: UserResponse


class GoogleProfile(BaseModel):
    id: str
    email: EmailStr
    name: str = ""
