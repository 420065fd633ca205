# backend/leadflow/services/console_logger.py
"""
Console Logger - human-readable progress messages per console session.

Messages are stored in console_logs and pushed to the session's Socket.IO
room. Without a session id they only go to the application log. Failures
never propagate to the caller.
"""

import logging
from typing import Optional, Dict, Any, List

from pydantic_core import to_jsonable_python
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from leadflow.models import ConsoleLog
from leadflow import websocket

logger = logging.getLogger(__name__)

LEVELS = ("info", "warn", "error", "success")

_PYTHON_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class ConsoleLogger:

    def __init__(self, session_factory: async_sessionmaker, broadcast: bool = True):
        self.session_factory = session_factory
        self.broadcast = broadcast

    async def add_log(
        self,
        level: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None
    ) -> None:
        if level not in LEVELS:
            level = "info"

        if not session_id:
            logger.log(_PYTHON_LEVELS[level], f"[console] {message}")
            return

        try:
            async with self.session_factory() as db:
                entry = ConsoleLog(
                    session_id=session_id,
                    level=level,
                    message=message,
                    data=to_jsonable_python(data) if data is not None else None,
                )
                db.add(entry)
                await db.commit()
                payload = entry.to_dict()

            if self.broadcast:
                await websocket.notify_console_log(session_id, payload)
        except Exception as e:
            logger.warning(f"Console log for session {session_id} not stored ({e}): [{level}] {message}")

    async def info(self, message: str, data: Optional[Dict[str, Any]] = None, session_id: Optional[str] = None):
        await self.add_log("info", message, data, session_id)

    async def warn(self, message: str, data: Optional[Dict[str, Any]] = None, session_id: Optional[str] = None):
        await self.add_log("warn", message, data, session_id)

    async def error(self, message: str, data: Optional[Dict[str, Any]] = None, session_id: Optional[str] = None):
        await self.add_log("error", message, data, session_id)

    async def success(self, message: str, data: Optional[Dict[str, Any]] = None, session_id: Optional[str] = None):
        await self.add_log("success", message, data, session_id)

    async def get_logs(self, session_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ConsoleLog)
                .where(ConsoleLog.session_id == session_id)
                .order_by(ConsoleLog.timestamp.asc())
                .limit(limit)
            )
            return [log.to_dict() for log in result.scalars().all()]

    async def clear(self, session_id: str) -> int:
        async with self.session_factory() as db:
            result = await db.execute(delete(ConsoleLog).where(ConsoleLog.session_id == session_id))
            await db.commit()
            return result.rowcount or 0
