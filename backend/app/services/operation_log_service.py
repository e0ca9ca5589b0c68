"""
Operation Log Service

Writes and queries the admin operation log.
"""
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, delete, and_, func, true
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.utils import utcnow
from app.models.operation_log import OperationLog

logger = logging.getLogger(__name__)


class OperationLogService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, **fields) -> OperationLog:
        entry = OperationLog(**fields)
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_logs(
        self,
        user_id: Optional[int] = None,
        username: Optional[str] = None,
        module: Optional[str] = None,
        action: Optional[str] = None,
        method: Optional[str] = None,
        path: Optional[str] = None,
        ip: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[OperationLog], int]:
        """
        Filtered, paginated log listing, newest first.

        Returns:
            Tuple of (logs, total_count)
        """
        conditions = []
        if user_id is not None:
            conditions.append(OperationLog.user_id == user_id)
        if username:
            conditions.append(OperationLog.username.like(f"%{username}%"))
        if module:
            conditions.append(OperationLog.module == module)
        if action:
            conditions.append(OperationLog.action == action)
        if method:
            conditions.append(OperationLog.method == method.upper())
        if path:
            conditions.append(OperationLog.path.like(f"%{path}%"))
        if ip:
            conditions.append(OperationLog.ip == ip)
        if start_time:
            conditions.append(OperationLog.created_at >= start_time)
        if end_time:
            conditions.append(OperationLog.created_at <= end_time)

        where = and_(true(), *conditions)

        count_result = await self.db.execute(select(func.count(OperationLog.id)).where(where))
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(OperationLog)
            .where(where)
            .order_by(OperationLog.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_stats(self) -> Dict[str, Any]:
        now = utcnow()
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        total = (await self.db.execute(select(func.count(OperationLog.id)))).scalar() or 0
        today = (await self.db.execute(
            select(func.count(OperationLog.id)).where(OperationLog.created_at >= today_start)
        )).scalar() or 0

        module_count = func.count(OperationLog.id).label("count")
        module_rows = await self.db.execute(
            select(OperationLog.module, module_count)
            .group_by(OperationLog.module)
            .order_by(module_count.desc())
            .limit(10)
        )
        method_rows = await self.db.execute(
            select(OperationLog.method, func.count(OperationLog.id))
            .group_by(OperationLog.method)
        )

        return {
            "total": total,
            "today": today,
            "modules": [{"module": m, "count": c} for m, c in module_rows.all()],
            "methods": {m: c for m, c in method_rows.all()},
        }

    async def purge_before(self, before: datetime) -> int:
        result = await self.db.execute(
            delete(OperationLog)
            .where(OperationLog.created_at < before)
            .execution_options(synchronize_session=False)
        )
        affected = result.rowcount or 0
        logger.info(f"Purged {affected} operation log entries before {before.isoformat()}")
        return affected
