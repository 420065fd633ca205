# backend/leadflow/services/lead_store.py
"""
Persistence for enrichment results: company upsert, lead insert, routing updates.

Company rows are written with a single INSERT ... ON CONFLICT (domain) DO
UPDATE so concurrent enrichments of the same domain never duplicate or lose
a write. Lead rows are keyed by submission, so replaying the store step
returns the existing lead.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.config import settings
from leadflow.database import dialect_insert
from leadflow.exceptions import PersistenceFailure
from leadflow.models import Company, Lead
from leadflow.schemas import EnrichmentInput, EnrichmentResult
from leadflow.services.routing import RoutingDecision

logger = logging.getLogger(__name__)


def _to_uuid(value):
    """Safely convert to UUID"""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _score(value: float) -> int:
    return int(round(value))


class LeadStore:

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================
    # COMPANIES
    # ============================================

    async def upsert_company(self, result: EnrichmentResult, enrichment_cost: float = 0.0) -> uuid.UUID:
        overview = result.company_overview
        now = datetime.utcnow()
        table = Company.__table__

        enriched_data = result.enriched_data.model_dump()
        enriched_data["recent_signals"] = overview.recent_signals
        enriched_data["business_model"] = overview.business_model
        enriched_data["target_market"] = overview.target_market

        values = {
            "domain": overview.domain,
            "name": overview.name,
            "industry": overview.industry,
            "employee_count": overview.employee_count,
            "revenue": overview.revenue,
            "location": overview.location,
            "enrichment_status": "completed",
            "last_enriched_at": now,
            "enriched_data": enriched_data,
            "data_cached_until": now + timedelta(days=settings.COMPANY_CACHE_DAYS),
            "enrichment_cost": enrichment_cost,
            "updated_at": now,
        }

        stmt = dialect_insert(self.db, table).values(enrichment_version=1, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.domain],
            set_={**values, "enrichment_version": table.c.enrichment_version + 1},
        ).returning(table.c.id)

        company_id = (await self.db.execute(stmt)).scalar_one()
        logger.info(f"🏢 Upserted company {overview.domain} ({company_id})")
        return company_id

    async def get_company_by_domain(self, domain: str) -> Optional[Company]:
        result = await self.db.execute(select(Company).where(Company.domain == domain))
        return result.scalar_one_or_none()

    # ============================================
    # LEADS
    # ============================================

    async def insert_lead(
        self,
        enrichment_input: EnrichmentInput,
        result: EnrichmentResult,
        company_id: Optional[uuid.UUID]
    ) -> uuid.UUID:
        table = Lead.__table__
        now = datetime.utcnow()
        scores = result.scores

        stmt = dialect_insert(self.db, table).values(
            id=uuid.uuid4(),
            submission_id=_to_uuid(enrichment_input.submission_id),
            company_id=company_id,
            contact_name=enrichment_input.contact_name,
            email=enrichment_input.email,
            phone=enrichment_input.phone,
            country=enrichment_input.country,
            company_size=enrichment_input.company_size,
            product_interest=enrichment_input.product_interest,
            message=enrichment_input.message,
            behavioral_data=(
                enrichment_input.behavioral_data.model_dump() if enrichment_input.behavioral_data else None
            ),
            firmographic_score=_score(scores.firmographic),
            behavioral_score=_score(scores.behavioral),
            intent_score=_score(scores.intent),
            technographic_score=_score(scores.technographic),
            lead_score=_score(scores.overall),
            lead_score_exact=scores.overall,
            classification=result.classification.result,
            classification_confidence=round(result.classification.confidence, 2),
            intent_analysis=result.intent_analysis.model_dump() if result.intent_analysis else None,
            enrichment_data={
                "recommended_actions": result.recommended_actions.model_dump(),
                "reasoning": result.classification.reasoning.model_dump(),
                "signal_status": result.signal_status,
                "processing_time_ms": result.processing_time_ms,
            },
            enrichment_status="completed",
            routing_status="pending",
            ip_address=enrichment_input.ip_address,
            user_agent=enrichment_input.user_agent,
            enriched_at=now,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_nothing(index_elements=[table.c.submission_id])

        await self.db.execute(stmt)

        lead_id = (await self.db.execute(
            select(Lead.id).where(Lead.submission_id == _to_uuid(enrichment_input.submission_id))
        )).scalar_one()
        logger.info(f"👤 Stored lead {lead_id} ({result.classification.result}, {scores.overall:.1f})")
        return lead_id

    async def save_enrichment(
        self,
        enrichment_input: EnrichmentInput,
        result: EnrichmentResult,
        enrichment_cost: float = 0.0
    ) -> dict:
        """Company upsert and lead insert in one transaction."""
        try:
            company_id = await self.upsert_company(result, enrichment_cost)
            lead_id = await self.insert_lead(enrichment_input, result, company_id)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"❌ Failed to persist enrichment for {enrichment_input.submission_id}: {e}")
            raise PersistenceFailure(
                f"Failed to persist enrichment: {e}",
                {"submission_id": enrichment_input.submission_id}
            ) from e

        return {"lead_id": str(lead_id), "company_id": str(company_id)}

    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        try:
            key = _to_uuid(lead_id)
        except ValueError:
            return None
        return await self.db.get(Lead, key)

    # ============================================
    # ROUTING
    # ============================================

    async def apply_routing(self, lead: Lead, decision: RoutingDecision) -> Lead:
        """Record the decision. Re-applying the same decision is a no-op."""
        if lead.routing_status in ("routed", "notified") and lead.routing_action == decision.action:
            return lead

        lead.routing_status = "routed"
        lead.routing_action = decision.action
        lead.routing_priority = decision.priority
        lead.routing_message = decision.message
        lead.routed_at = datetime.utcnow()
        await self.db.flush()
        return lead

    async def mark_notified(self, lead: Lead) -> Lead:
        if lead.routing_status != "notified":
            lead.routing_status = "notified"
            lead.notified_at = datetime.utcnow()
            await self.db.flush()
        return lead
