"""Shared FastAPI dependencies."""

from leadflow.database import AsyncSessionLocal
from leadflow.services.console_logger import ConsoleLogger
from leadflow.services.enrichment_logger import EnrichmentLogStore
from leadflow.workflow import WorkflowEngine, get_workflow_engine
from leadflow.workflow.events import EventBus


def get_event_bus() -> EventBus:
    return EventBus(AsyncSessionLocal)


def get_log_store() -> EnrichmentLogStore:
    return EnrichmentLogStore(AsyncSessionLocal)


def get_console_logger() -> ConsoleLogger:
    return ConsoleLogger(AsyncSessionLocal)


def get_engine() -> WorkflowEngine:
    return get_workflow_engine()
