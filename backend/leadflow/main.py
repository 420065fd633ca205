"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from leadflow.config import settings
from leadflow.database import Base, create_tables

# Import models to register them with SQLAlchemy
import leadflow.models  # noqa: F401

from leadflow.api import submissions, leads, console, workflows
from leadflow.websocket import get_socket_app
from leadflow.scheduler import start_scheduler, stop_scheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Lead Enrichment API",
    description="Lead intake, enrichment, scoring and routing",
    version="1.0.0",
    redirect_slashes=False
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# ROUTER REGISTRATION
# ============================================

app.include_router(submissions.router, prefix="/api/v1/submissions", tags=["Intake"])
app.include_router(leads.router, prefix="/api/v1/leads", tags=["Leads"])
app.include_router(console.router, prefix="/api/v1/console", tags=["Console"])
app.include_router(workflows.router, prefix="/api/v1", tags=["Workflows"])

# Mount WebSocket
app.mount("/socket.io", get_socket_app())

# ============================================
# HEALTH & ROOT ENDPOINTS
# ============================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "registered_tables": len(Base.metadata.tables),
        "worker_enabled": settings.ENABLE_WORKER,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Lead Enrichment API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


# ============================================
# STARTUP & SHUTDOWN
# ============================================

@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info("Starting Lead Enrichment API...")

    if settings.ENVIRONMENT == "development":
        await create_tables()
        logger.info(f"Ensured {len(Base.metadata.tables)} tables exist")

    start_scheduler()
    logger.info("Application started successfully!")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("Shutting down Lead Enrichment API...")
    stop_scheduler()
