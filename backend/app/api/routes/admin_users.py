"""
Admin User Management Routes

Admin-only CRUD over the user directory, plus status toggle,
password reset and manual unlock.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_admin
from app.core.account_lockout import AccountLockoutPolicy
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.request_utils import extract_client_ip
from app.core.security import get_password_hash
from app.models.user import User, UserStatus
from app.schemas.auth import MessageResponse
from app.schemas.user import (
    AdminPasswordReset,
    AdminUserCreate,
    AdminUserUpdate,
    UserDetail,
    UserListResponse,
    UserStatusUpdate,
)
from app.services.user_service import UserService, validate_username

router = APIRouter()


@router.get("", response_model=UserListResponse)
async def list_users(
    keyword: Optional[str] = Query(None, description="Search username, nickname or email"),
    user_status: Optional[str] = Query(None, alias="status", pattern="^(active|disabled)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """List users with filtering and pagination."""
    user_service = UserService(db)

    users, total = await user_service.list_users(
        keyword=keyword,
        status=user_status,
        limit=page_size,
        offset=(page - 1) * page_size,
    )

    return UserListResponse(
        users=[user_service.format_user_for_display(u) for u in users],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    user_service = UserService(db)
    user = await user_service.get_or_404(user_id)
    return user_service.format_user_for_display(user)


@router.post("", response_model=UserDetail, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: AdminUserCreate,
    request: Request,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a user directly (no verification code)."""
    user_service = UserService(db)

    validate_username(body.username)
    if await user_service.username_taken(body.username):
        raise ValidationError("Username already exists", code="duplicate_username")
    if await user_service.email_taken(body.email):
        raise ValidationError("Email already exists", code="duplicate_email")

    user = await user_service.create_user(
        username=body.username,
        email=body.email,
        hashed_password=get_password_hash(body.password),
        role=body.role,
        status=body.status,
        nickname=body.nickname,
        join_ip=extract_client_ip(request),
    )
    return user_service.format_user_for_display(user)


@router.put("/{user_id}", response_model=UserDetail)
async def update_user(
    user_id: int,
    body: AdminUserUpdate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    user_service = UserService(db)
    user = await user_service.get_or_404(user_id)

    if user.id == current_user.id and body.status == UserStatus.DISABLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot disable your own account"
        )

    user = await user_service.update_user(user, body.model_dump(exclude_unset=True))
    return user_service.format_user_for_display(user)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete a user."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account"
        )

    user_service = UserService(db)
    user = await user_service.get_or_404(user_id)
    await user_service.soft_delete_user(user)
    return MessageResponse(message="User deleted")


@router.put("/{user_id}/status", response_model=UserDetail)
async def update_user_status(
    user_id: int,
    body: UserStatusUpdate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    if user_id == current_user.id and body.status == UserStatus.DISABLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot disable your own account"
        )

    user_service = UserService(db)
    user = await user_service.get_or_404(user_id)
    user = await user_service.set_status(user, body.status)
    return user_service.format_user_for_display(user)


@router.put("/{user_id}/password", response_model=MessageResponse)
async def reset_user_password(
    user_id: int,
    body: AdminPasswordReset,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    user_service = UserService(db)
    user = await user_service.get_or_404(user_id)
    await user_service.set_password(user, body.new_password)
    return MessageResponse(message="Password reset successfully")


@router.post("/{user_id}/unlock", response_model=UserDetail)
async def unlock_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Clear lock and failure counter."""
    user_service = UserService(db)
    user = await user_service.get_or_404(user_id)
    await AccountLockoutPolicy.from_settings(request.app.state.settings).unlock_account(db, user)
    return user_service.format_user_for_display(user)
