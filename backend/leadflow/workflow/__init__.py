"""Durable event-driven workflow engine and the lead pipeline functions."""

from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from leadflow.config import settings
from leadflow.services.console_logger import ConsoleLogger
from leadflow.services.enrichment_engine import LeadEnrichmentEngine, create_enrichment_engine
from leadflow.services.enrichment_logger import EnrichmentLogStore
from leadflow.workflow.engine import WorkflowEngine, WorkflowFunction, WorkflowContext, StepTools
from leadflow.workflow.events import EventBus
from leadflow.workflow.functions import EnrichLeadWorkflow, RouteLeadWorkflow

_engine: Optional[WorkflowEngine] = None


def build_workflow_engine(
    session_factory: async_sessionmaker,
    enrichment_engine: Optional[LeadEnrichmentEngine] = None,
    broadcast: bool = True,
    retries: Optional[int] = None,
    retry_backoff_seconds: Optional[float] = None
) -> WorkflowEngine:
    """Engine with enrich-lead and route-lead registered."""
    log_store = EnrichmentLogStore(session_factory)
    console = ConsoleLogger(session_factory, broadcast=broadcast)

    engine = WorkflowEngine(
        session_factory,
        EventBus(session_factory),
        concurrency=settings.WORKER_CONCURRENCY,
        batch_size=settings.WORKER_BATCH_SIZE,
        lease_seconds=settings.WORKFLOW_LEASE_SECONDS,
        retry_backoff_seconds=(
            settings.WORKFLOW_RETRY_BACKOFF_SECONDS if retry_backoff_seconds is None else retry_backoff_seconds
        ),
    )

    enrich = EnrichLeadWorkflow(
        session_factory,
        enrichment_engine or create_enrichment_engine(log_store),
        log_store,
        console,
        mock_behavioral=settings.MOCK_BEHAVIORAL_DATA,
    )
    engine.register(enrich.as_function(retries))
    engine.register(RouteLeadWorkflow(session_factory, console).as_function(retries))
    return engine


def get_workflow_engine() -> WorkflowEngine:
    """Process-wide engine bound to the application database."""
    global _engine
    if _engine is None:
        from leadflow.database import AsyncSessionLocal
        _engine = build_workflow_engine(AsyncSessionLocal)
    return _engine


__all__ = [
    "WorkflowEngine",
    "WorkflowFunction",
    "WorkflowContext",
    "StepTools",
    "EventBus",
    "EnrichLeadWorkflow",
    "RouteLeadWorkflow",
    "build_workflow_engine",
    "get_workflow_engine",
]
