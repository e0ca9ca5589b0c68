"""
System status routes
"""
from fastapi import APIRouter, Depends

from app.api.deps import get_cleanup_status, get_current_user
from app.models.user import User
from app.schemas.auth import CleanupStatusResponse
from app.services.code_cleanup import CleanupStatus

router = APIRouter()


@router.get("/cleanup-status", response_model=CleanupStatusResponse)
async def cleanup_status(
    current_user: User = Depends(get_current_user),
    status: CleanupStatus = Depends(get_cleanup_status),
):
    """In-memory view of the verification code sweeper."""
    return status.snapshot()
