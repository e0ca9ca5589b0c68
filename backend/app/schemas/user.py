"""
Admin user management schemas
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from app.schemas.auth import NewPassword, NormalizedEmail

RoleLiteral = Literal["user", "admin"]
StatusLiteral = Literal["active", "disabled"]


class AdminUserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: NormalizedEmail
    password: NewPassword
    nickname: Optional[str] = Field(None, max_length=100)
    role: RoleLiteral = "user"
    status: StatusLiteral = "active"


class AdminUserUpdate(BaseModel):
    email: Optional[NormalizedEmail] = None
    nickname: Optional[str] = Field(None, max_length=100)
    role: Optional[RoleLiteral] = None
    status: Optional[StatusLiteral] = None


class UserStatusUpdate(BaseModel):
    status: StatusLiteral


class AdminPasswordReset(BaseModel):
    new_password: NewPassword


class UserDetail(BaseModel):
    id: int
    username: str
    nickname: Optional[str] = None
    email: str
    role: str
    status: str
    failed_login_attempts: int = 0
    locked_until: Optional[datetime] = None
    is_locked: bool = False
    last_login_at: Optional[datetime] = None
    last_login_ip: Optional[str] = None
    join_ip: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserListResponse(BaseModel):
    users: List[UserDetail]
    total: int
    page: int
    page_size: int
