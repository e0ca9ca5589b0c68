"""
Operation Log Middleware

Records method, path, caller, status and duration for every request under
the admin prefix. The write happens in a background task with its own
session; a failed write is logged and otherwise ignored.
"""
import logging
import time
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from app.core.request_utils import extract_client_ip, extract_user_agent
from app.models.operation_log import OperationAction
from app.services.operation_log_service import OperationLogService

logger = logging.getLogger(__name__)

# Path segment after the admin prefix -> module name
MODULE_NAMES = {
    "users": "user_management",
    "logs": "operation_logs",
}


def resolve_module(path: str, prefix: str) -> str:
    remainder = path[len(prefix):].strip("/")
    segment = remainder.split("/", 1)[0] if remainder else ""
    return MODULE_NAMES.get(segment, segment or "admin")


class OperationLogMiddleware(BaseHTTPMiddleware):
    """Audit trail for the admin surface."""

    def __init__(self, app: ASGIApp, path_prefix: str):
        super().__init__(app)
        self.path_prefix = path_prefix.rstrip("/")

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if not path.startswith(self.path_prefix) or request.method == "OPTIONS":
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - started) * 1000)

        entry = {
            "user_id": getattr(request.state, "user_id", None),
            "username": getattr(request.state, "username", None),
            "module": resolve_module(path, self.path_prefix),
            "action": OperationAction.BY_METHOD.get(request.method, OperationAction.OTHER),
            "method": request.method,
            "path": path[:500],
            "ip": extract_client_ip(request),
            "user_agent": (extract_user_agent(request) or "")[:500] or None,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
        request.app.state.tasks.spawn(
            write_operation_log(request.app.state.database, entry),
            name="operation-log",
        )
        return response


async def write_operation_log(database, entry: dict) -> Optional[int]:
    try:
        async with database.session() as db:
            record = await OperationLogService(db).record(**entry)
            return record.id
    except Exception as e:
        logger.error(f"Could not write operation log for {entry['method']} {entry['path']}: {type(e).__name__}: {e}")
        return None
