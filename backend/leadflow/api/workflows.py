"""Event and workflow-run endpoints (manual triggers, replays, inspection)."""

from fastapi import APIRouter, Depends, HTTPException
import logging

from leadflow.api.deps import get_engine, get_event_bus
from leadflow.schemas import EventRequest, EventResponse
from leadflow.workflow import WorkflowEngine
from leadflow.workflow.events import EventBus

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/events", response_model=EventResponse, status_code=202)
async def send_event(request: EventRequest, event_bus: EventBus = Depends(get_event_bus)):
    """Queue an event, e.g. to replay `lead/submitted` for a submission."""
    event_id = await event_bus.send(request.name, request.data, idempotency_key=request.idempotency_key)
    return EventResponse(event_id=event_id, name=request.name)


@router.post("/workflows/process")
async def process_events(engine: WorkflowEngine = Depends(get_engine)):
    """Run one worker batch now instead of waiting for the scheduler."""
    return await engine.process_pending()


@router.get("/workflows/runs/{run_id}")
async def get_run(run_id: str, engine: WorkflowEngine = Depends(get_engine)):
    run = await engine.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Workflow run not found")
    return run


@router.get("/workflows/{function_id}/{run_key}")
async def find_run(function_id: str, run_key: str, engine: WorkflowEngine = Depends(get_engine)):
    """Look a run up by function and key, e.g. /workflows/enrich-lead/<submission id>."""
    run = await engine.find_run(function_id, run_key)
    if run is None:
        raise HTTPException(status_code=404, detail="Workflow run not found")
    return run
