"""Enriched lead read endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from leadflow.api.deps import get_log_store
from leadflow.database import get_db
from leadflow.models import EnrichmentLog
from leadflow.schemas import LeadCostReport
from leadflow.services.activity_logger import ActivityLogger
from leadflow.services.enrichment_logger import EnrichmentLogStore
from leadflow.services.lead_store import LeadStore

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_lead_or_404(db: AsyncSession, lead_id: str):
    lead = await LeadStore(db).get_lead(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead


@router.get("/{lead_id}")
async def get_lead(lead_id: str, db: AsyncSession = Depends(get_db)):
    """Lead with scores, classification, routing and activity history."""
    lead = await _get_lead_or_404(db, lead_id)
    data = lead.to_dict()
    data["activities"] = await ActivityLogger(db).get_lead_history(lead_id)
    return data


@router.get("/{lead_id}/costs", response_model=LeadCostReport)
async def get_lead_costs(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    log_store: EnrichmentLogStore = Depends(get_log_store)
):
    """Provider spend for a lead."""
    await _get_lead_or_404(db, lead_id)
    return {
        "summary": await log_store.cost_summary(lead_id),
        "realtime": await log_store.realtime_costs(lead_id=lead_id),
    }


@router.get("/{lead_id}/enrichment-logs")
async def get_enrichment_logs(
    lead_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    lead = await _get_lead_or_404(db, lead_id)
    result = await db.execute(
        select(EnrichmentLog)
        .where(EnrichmentLog.lead_id == lead.id)
        .order_by(EnrichmentLog.started_at.asc())
        .limit(limit)
    )
    return {"lead_id": lead_id, "logs": [log.to_dict() for log in result.scalars().all()]}
