"""
Operation log schemas
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel


class OperationLogOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    module: str
    action: str
    method: str
    path: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    status_code: int
    duration_ms: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OperationLogListResponse(BaseModel):
    logs: List[OperationLogOut]
    total: int
    page: int
    page_size: int


class ModuleCount(BaseModel):
    module: str
    count: int


class OperationLogStats(BaseModel):
    total: int
    today: int
    modules: List[ModuleCount]
    methods: Dict[str, int]


class LogCleanRequest(BaseModel):
    before_time: datetime


class LogCleanResponse(BaseModel):
    affected: int
