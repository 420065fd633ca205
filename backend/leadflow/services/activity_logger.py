# backend/leadflow/services/activity_logger.py
"""
Activity Logger - lead history after enrichment (routing, notifications)
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from leadflow.models import LeadActivity


class ActivityLogger:
    """Logs what happened to a lead"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_uuid(value):
        """Safely convert to UUID"""
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))

    async def log_activity(
        self,
        lead_id: str,
        activity_type: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LeadActivity:
        activity = LeadActivity(
            lead_id=self._to_uuid(lead_id),
            activity_type=activity_type,
            description=description,
            activity_metadata=metadata or {},
            created_at=datetime.utcnow()
        )
        self.db.add(activity)
        await self.db.flush()
        return activity

    async def log_enrichment(self, lead_id: str, classification: str, score: float,
                             processing_time_ms: Optional[int] = None):
        details = {"classification": classification, "score": score}
        if processing_time_ms:
            details["processing_time_ms"] = processing_time_ms
        return await self.log_activity(
            lead_id, "enrichment",
            f"Lead enriched and classified as {classification} (score {score:.1f})",
            details
        )

    async def log_routing(self, lead_id: str, action: str, priority: str, message: str):
        return await self.log_activity(
            lead_id, "routing", message,
            {"action": action, "priority": priority}
        )

    async def log_notification(self, lead_id: str, action: str, channels: List[str]):
        return await self.log_activity(
            lead_id, "notification",
            f"Notification actions recorded for {action}: {', '.join(channels) or 'none'}",
            {"action": action, "channels": channels, "delivered": False}
        )

    async def get_lead_history(self, lead_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(LeadActivity)
            .where(LeadActivity.lead_id == self._to_uuid(lead_id))
            .order_by(LeadActivity.created_at.asc())
            .limit(limit)
        )
        return [a.to_dict() for a in result.scalars().all()]
