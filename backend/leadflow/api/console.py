"""Console log endpoints for the live progress viewer."""

from fastapi import APIRouter, Depends, Query

from leadflow.api.deps import get_console_logger
from leadflow.schemas import ConsoleLogList
from leadflow.services.console_logger import ConsoleLogger

router = APIRouter()


@router.get("/{session_id}", response_model=ConsoleLogList)
async def get_console_logs(
    session_id: str,
    limit: int = Query(100, ge=1, le=1000),
    console: ConsoleLogger = Depends(get_console_logger)
):
    logs = await console.get_logs(session_id, limit=limit)
    return {"session_id": session_id, "logs": logs}


@router.delete("/{session_id}")
async def clear_console_logs(session_id: str, console: ConsoleLogger = Depends(get_console_logger)):
    deleted = await console.clear(session_id)
    return {"session_id": session_id, "deleted": deleted}
