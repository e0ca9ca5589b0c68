"""
Admin Operation Log Routes
"""
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_admin
from app.core.database import get_db
from app.models.user import User
from app.schemas.operation_log import (
    LogCleanRequest,
    LogCleanResponse,
    OperationLogListResponse,
    OperationLogOut,
    OperationLogStats,
)
from app.services.operation_log_service import OperationLogService

router = APIRouter()


@router.get("", response_model=OperationLogListResponse)
async def list_logs(
    user_id: Optional[int] = Query(None),
    username: Optional[str] = Query(None),
    module: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    path: Optional[str] = Query(None),
    ip: Optional[str] = Query(None),
    start_time: Optional[datetime] = Query(None),
    end_time: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Filtered operation log, newest first."""
    logs, total = await OperationLogService(db).list_logs(
        user_id=user_id,
        username=username,
        module=module,
        action=action,
        method=method,
        path=path,
        ip=ip,
        start_time=start_time,
        end_time=end_time,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return OperationLogListResponse(
        logs=[OperationLogOut.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/stats", response_model=OperationLogStats)
async def log_stats(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await OperationLogService(db).get_stats()


@router.post("/clean", response_model=LogCleanResponse)
async def clean_logs(
    body: LogCleanRequest,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete entries created before before_time."""
    affected = await OperationLogService(db).purge_before(body.before_time)
    return LogCleanResponse(affected=affected)
