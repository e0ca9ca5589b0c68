"""
Auth request/response schemas
"""
from typing import Annotated, Optional
from pydantic import AfterValidator, AliasChoices, BaseModel, EmailStr, Field, field_validator


def _normalize_email(value: str) -> str:
    return value.strip().lower()


def _check_password_bytes(value: str) -> str:
    # bcrypt only looks at the first 72 bytes
    if len(value.encode("utf-8")) > 72:
        raise ValueError("Password must be at most 72 bytes")
    return value


NormalizedEmail = Annotated[EmailStr, AfterValidator(_normalize_email)]
NewPassword = Annotated[str, Field(min_length=6, max_length=72), AfterValidator(_check_password_bytes)]


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: NewPassword
    email: NormalizedEmail
    code: str = Field(..., min_length=1, max_length=16)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()


class SendCodeRequest(BaseModel):
    email: NormalizedEmail
    lang: Optional[str] = Field(None, max_length=20)


class LoginRequest(BaseModel):
    username: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("username", "userName", "email"),
    )
    password: str = Field(..., min_length=1, max_length=128)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("refresh_token", "refreshToken"),
    )


class ResetPasswordRequest(BaseModel):
    email: NormalizedEmail
    code: str = Field(..., min_length=1, max_length=16, validation_alias=AliasChoices("code", "token"))
    new_password: NewPassword = Field(
        ...,
        validation_alias=AliasChoices("new_password", "newPassword", "password"),
    )


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: NewPassword


class MessageResponse(BaseModel):
    message: str


class UserSummary(BaseModel):
    id: int
    username: str
    email: str
    role: str

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: int
    user: UserSummary


class CleanupStatusResponse(BaseModel):
    running: bool
    interval_minutes: int
    last_cleanup_time: Optional[str] = None
    next_cleanup_time: Optional[str] = None
