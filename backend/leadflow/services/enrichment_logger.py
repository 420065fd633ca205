# backend/leadflow/services/enrichment_logger.py
"""
Enrichment Log Store - cost and performance telemetry for provider calls.

Every external call gets one enrichment_logs row that starts as 'pending' and
ends in exactly one of 'success', 'failed' or 'timeout'. Telemetry must never
break enrichment: storage errors are logged and swallowed, and start_log hands
back a sentinel id that turns later calls into no-ops.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Optional, Dict, Any, Callable, Awaitable

import httpx
from pydantic_core import to_jsonable_python
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import async_sessionmaker

from leadflow.exceptions import ProviderTimeout
from leadflow.models import EnrichmentLog
from leadflow.schemas import EnrichmentContext, ProviderResponse
from leadflow.services.costs import estimate_cost, DEFAULT_OPERATION_ESTIMATE

logger = logging.getLogger(__name__)

UNLOGGED_PREFIX = "error-"


def is_unlogged(log_id: Optional[str]) -> bool:
    return not log_id or log_id.startswith(UNLOGGED_PREFIX)


def _to_uuid(value):
    """Safely convert to UUID"""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _elapsed_ms(started_at: Optional[datetime]) -> Optional[int]:
    if not started_at:
        return None
    return int((datetime.utcnow() - started_at.replace(tzinfo=None)).total_seconds() * 1000)


class EnrichmentLogStore:
    """Writes and aggregates enrichment_logs rows."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # ============================================
    # LIFECYCLE
    # ============================================

    async def start_log(
        self,
        context: Optional[EnrichmentContext],
        provider: str,
        operation: str,
        request_data: Optional[Dict[str, Any]] = None
    ) -> str:
        """Insert a pending row. Returns its id, or a sentinel when storage fails."""
        try:
            async with self.session_factory() as db:
                log = EnrichmentLog(
                    correlation_id=context.correlation_id if context else None,
                    lead_id=_to_uuid(context.lead_id) if context else None,
                    company_id=_to_uuid(context.company_id) if context else None,
                    provider=provider,
                    operation=operation,
                    request_data=to_jsonable_python(request_data or {}),
                    started_at=datetime.utcnow(),
                    status="pending",
                    currency="USD",
                )
                db.add(log)
                await db.commit()
                return str(log.id)
        except Exception as e:
            logger.error(f"❌ Failed to start enrichment log {provider}.{operation}: {e}")
            return f"{UNLOGGED_PREFIX}{int(time.time() * 1000)}"

    async def complete_log(
        self,
        log_id: str,
        response_data: Any = None,
        tokens_used: Optional[int] = None,
        cost: Optional[float] = None,
        units: Optional[int] = None,
        model: Optional[str] = None
    ) -> bool:
        """Mark a pending row as 'success'. Cost comes from the ledger when not given."""
        if is_unlogged(log_id):
            return False
        try:
            async with self.session_factory() as db:
                log = await db.get(EnrichmentLog, _to_uuid(log_id))
                if log is None or log.status != "pending":
                    logger.warning(f"Enrichment log {log_id} is missing or already terminal")
                    return False

                if cost is None:
                    cost = estimate_cost(log.provider, log.operation, tokens_used, model, units)

                log.status = "success"
                log.completed_at = datetime.utcnow()
                log.duration_ms = _elapsed_ms(log.started_at)
                log.response_data = to_jsonable_python(response_data) if response_data is not None else None
                log.tokens_used = tokens_used
                log.cost = round(cost, 6)
                await db.commit()
                return True
        except Exception as e:
            logger.error(f"❌ Failed to complete enrichment log {log_id}: {e}")
            return False

    async def fail_log(
        self,
        log_id: str,
        error_message: str,
        retry_count: int = 0,
        status: str = "failed"
    ) -> bool:
        """Mark a pending row as 'failed' (or 'timeout')."""
        if is_unlogged(log_id):
            return False
        if status not in ("failed", "timeout"):
            raise ValueError(f"Invalid terminal status for a failed call: {status}")
        try:
            async with self.session_factory() as db:
                log = await db.get(EnrichmentLog, _to_uuid(log_id))
                if log is None or log.status != "pending":
                    logger.warning(f"Enrichment log {log_id} is missing or already terminal")
                    return False

                log.status = status
                log.completed_at = datetime.utcnow()
                log.duration_ms = _elapsed_ms(log.started_at)
                log.error_message = error_message
                log.retry_count = retry_count
                await db.commit()
                return True
        except Exception as e:
            logger.error(f"❌ Failed to record failure on enrichment log {log_id}: {e}")
            return False

    async def backfill_ids(self, correlation_id: str, lead_id: str, company_id: Optional[str] = None) -> int:
        """Attach lead/company ids to every log written under this correlation id."""
        if not correlation_id:
            return 0
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    update(EnrichmentLog)
                    .where(EnrichmentLog.correlation_id == correlation_id)
                    .values(lead_id=_to_uuid(lead_id), company_id=_to_uuid(company_id))
                )
                await db.commit()
                logger.info(f"🔗 Linked {result.rowcount} enrichment logs to lead {lead_id}")
                return result.rowcount or 0
        except Exception as e:
            logger.error(f"❌ Failed to backfill enrichment logs for {correlation_id}: {e}")
            return 0

    async def instrumented_call(
        self,
        context: Optional[EnrichmentContext],
        provider: str,
        operation: str,
        request_data: Dict[str, Any],
        call: Callable[[], Awaitable[ProviderResponse]]
    ) -> ProviderResponse:
        """Run a provider call between start_log and complete_log/fail_log. Re-raises failures."""
        log_id = await self.start_log(context, provider, operation, request_data)
        try:
            response = await call()
        except (ProviderTimeout, asyncio.TimeoutError, httpx.TimeoutException) as e:
            await self.fail_log(log_id, f"Timed out: {e}", status="timeout")
            raise
        except Exception as e:
            await self.fail_log(log_id, str(e))
            raise

        await self.complete_log(
            log_id,
            response_data=response.data,
            tokens_used=response.tokens_used,
            units=response.units,
            model=response.model,
        )
        return response

    # ============================================
    # REPORTING
    # ============================================

    async def cost_summary(self, lead_id: str) -> Dict[str, Any]:
        """Total spend for a lead, split by provider, with the most expensive call."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(EnrichmentLog).where(
                    EnrichmentLog.lead_id == _to_uuid(lead_id),
                    EnrichmentLog.status == "success"
                )
            )
            logs = result.scalars().all()

        cost_by_provider: Dict[str, float] = {}
        top = None
        for log in logs:
            cost = log.cost or 0.0
            cost_by_provider[log.provider] = cost_by_provider.get(log.provider, 0.0) + cost
            if top is None or cost > (top.cost or 0.0):
                top = log

        return {
            "lead_id": str(lead_id),
            "total_cost": round(sum(cost_by_provider.values()), 4),
            "operations_count": len(logs),
            "cost_by_provider": {k: round(v, 6) for k, v in cost_by_provider.items()},
            "top_operation": {
                "provider": top.provider,
                "operation": top.operation,
                "cost": top.cost,
            } if top else None,
        }

    async def realtime_costs(self, lead_id: Optional[str] = None, correlation_id: Optional[str] = None) -> Dict[str, Any]:
        """Spend so far plus a flat estimate for calls still in flight."""
        if lead_id:
            condition = EnrichmentLog.lead_id == _to_uuid(lead_id)
        elif correlation_id:
            condition = EnrichmentLog.correlation_id == correlation_id
        else:
            raise ValueError("lead_id or correlation_id is required")

        async with self.session_factory() as db:
            result = await db.execute(
                select(
                    EnrichmentLog.status,
                    func.count(EnrichmentLog.id),
                    func.coalesce(func.sum(EnrichmentLog.cost), 0)
                ).where(condition).group_by(EnrichmentLog.status)
            )
            rows = result.all()

        by_status = {status: (count, float(total or 0)) for status, count, total in rows}
        completed_count, completed_cost = by_status.get("success", (0, 0.0))
        pending_count, _ = by_status.get("pending", (0, 0.0))
        failed_count = by_status.get("failed", (0, 0.0))[0] + by_status.get("timeout", (0, 0.0))[0]

        return {
            "completed_operations": completed_count,
            "pending_operations": pending_count,
            "failed_operations": failed_count,
            "actual_cost": round(completed_cost, 4),
            "estimated_total": round(completed_cost + pending_count * DEFAULT_OPERATION_ESTIMATE, 4),
        }
