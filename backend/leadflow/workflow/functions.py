# backend/leadflow/workflow/functions.py
"""
Workflow functions for the lead pipeline.

enrich-lead (lead/submitted, one run per submission):
    fetch-submission -> prepare-enrichment-input -> run-enrichment
    -> store-enrichment-results -> update-enrichment-logs -> emit-lead-enriched

route-lead (lead/enriched, one run per lead):
    determine-routing -> apply-routing -> send-notifications

Every step returns JSON so it can be memoized; later steps rebuild typed
objects from the stored output.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from leadflow.config import settings
from leadflow.exceptions import LeadNotEnriched, LeadNotFound, SubmissionNotFound
from leadflow.schemas import (
    LEAD_ENRICHED,
    LEAD_SUBMITTED,
    EnrichmentContext,
    EnrichmentInput,
    EnrichmentResult,
    GatheredSignals,
    LeadEnriched,
    LeadSubmitted,
)
from leadflow.services.activity_logger import ActivityLogger
from leadflow.services.console_logger import ConsoleLogger
from leadflow.services.enrichment_engine import LeadEnrichmentEngine
from leadflow.services.enrichment_logger import EnrichmentLogStore
from leadflow.services.lead_input import build_enrichment_input
from leadflow.services.lead_store import LeadStore
from leadflow.services.routing import (
    RoutingDecision,
    determine_routing,
    get_routing_action_description,
    notification_actions,
)
from leadflow.services.submission_store import SubmissionStore
from leadflow.workflow.engine import StepTools, WorkflowContext, WorkflowFunction

logger = logging.getLogger(__name__)


class EnrichmentState(str, Enum):
    FETCHED = "FETCHED"
    INPUT_PREPARED = "INPUT_PREPARED"
    GATHERED = "GATHERED"
    SCORED = "SCORED"
    PERSISTED = "PERSISTED"
    LOGS_LINKED = "LOGS_LINKED"
    ROUTED_EVENT_SENT = "ROUTED_EVENT_SENT"


TOOL_LABELS = {
    "company_intelligence": "Company intelligence",
    "website_analysis": "Website analysis",
    "competitive_intelligence": "Competitive analysis",
    "intent_analysis": "Intent analysis",
}


class RoutingState(str, Enum):
    ROUTING_DETERMINED = "ROUTING_DETERMINED"
    ROUTING_APPLIED = "ROUTING_APPLIED"
    NOTIFIED = "NOTIFIED"


# ============================================
# ENRICH LEAD
# ============================================

class EnrichLeadWorkflow:
    function_id = "enrich-lead"

    def __init__(
        self,
        session_factory: async_sessionmaker,
        enrichment_engine: LeadEnrichmentEngine,
        log_store: EnrichmentLogStore,
        console: ConsoleLogger,
        mock_behavioral: bool = True
    ):
        self.session_factory = session_factory
        self.enrichment_engine = enrichment_engine
        self.log_store = log_store
        self.console = console
        self.mock_behavioral = mock_behavioral

    def as_function(self, retries: Optional[int] = None) -> WorkflowFunction:
        return WorkflowFunction(
            id=self.function_id,
            trigger=LEAD_SUBMITTED,
            handler=self.handle,
            payload_model=LeadSubmitted,
            run_key=lambda payload: payload.submission_id,
            retries=settings.WORKFLOW_MAX_RETRIES if retries is None else retries,
            on_failure=self.on_failure,
        )

    @staticmethod
    def _session_id(payload: LeadSubmitted) -> str:
        return payload.session_id or payload.submission_id

    async def handle(self, ctx: WorkflowContext) -> Dict[str, Any]:
        payload: LeadSubmitted = ctx.payload
        session_id = self._session_id(payload)
        step = ctx.step

        await self.console.info(
            f"🚀 Enrichment started for submission {payload.submission_id}",
            {"attempt": ctx.attempt}, session_id
        )

        # Step 1: load the submission
        submission = await step.run(
            "fetch-submission",
            lambda: self._fetch_submission(payload.submission_id),
            state=EnrichmentState.FETCHED.value,
        )

        # Step 2: normalized input (mock behavioural data is generated once and memoized)
        enrichment_input = EnrichmentInput.model_validate(await step.run(
            "prepare-enrichment-input",
            lambda: self._prepare_input(submission),
            state=EnrichmentState.INPUT_PREPARED.value,
        ))
        context = EnrichmentContext(
            correlation_id=enrichment_input.correlation_id or payload.submission_id,
            session_id=session_id,
        )

        # Step 3: gather + synthesize
        result = EnrichmentResult.model_validate(await step.run(
            "run-enrichment",
            lambda: self._run_enrichment(enrichment_input, context, step),
            state=EnrichmentState.SCORED.value,
        ))

        # Step 4: company upsert + lead insert
        stored = await step.run(
            "store-enrichment-results",
            lambda: self._store_results(enrichment_input, result, context),
            state=EnrichmentState.PERSISTED.value,
        )

        # Step 5: link telemetry to the new ids
        await step.run(
            "update-enrichment-logs",
            lambda: self._link_logs(context, stored),
            state=EnrichmentState.LOGS_LINKED.value,
        )

        # Step 6: hand over to routing
        await step.send_event(
            "emit-lead-enriched",
            LEAD_ENRICHED,
            {
                "leadId": stored["lead_id"],
                "classification": result.classification.result,
                "score": result.scores.overall,
                "contactName": enrichment_input.contact_name,
                "sessionId": session_id,
            },
            state=EnrichmentState.ROUTED_EVENT_SENT.value,
        )

        await self.console.success(
            f"✅ {enrichment_input.contact_name} classified as {result.classification.result} "
            f"(score {result.scores.overall:.1f})",
            {"lead_id": stored["lead_id"], "signals": result.signal_status},
            session_id,
        )

        return {
            "submission_id": payload.submission_id,
            "lead_id": stored["lead_id"],
            "company_id": stored["company_id"],
            "classification": result.classification.result,
            "score": result.scores.overall,
        }

    async def on_failure(self, ctx: WorkflowContext, error: Exception):
        payload: LeadSubmitted = ctx.payload
        await self.console.error(
            f"❌ Enrichment failed for submission {payload.submission_id}: {error}",
            {"run_id": ctx.run_id, "attempt": ctx.attempt},
            self._session_id(payload),
        )

    # Step bodies

    async def _fetch_submission(self, submission_id: str) -> Dict[str, Any]:
        async with self.session_factory() as db:
            submission = await SubmissionStore(db).get_by_id(submission_id)
            if submission is None:
                raise SubmissionNotFound(submission_id)
            return submission.to_dict()

    async def _prepare_input(self, submission: Dict[str, Any]) -> Dict[str, Any]:
        enrichment_input = build_enrichment_input(submission, mock_behavioral=self.mock_behavioral)
        return enrichment_input.model_dump(mode="json")

    async def _run_enrichment(
        self,
        enrichment_input: EnrichmentInput,
        context: EnrichmentContext,
        step: StepTools
    ) -> Dict[str, Any]:
        await self.console.info(
            f"📡 Gathering signals for {enrichment_input.company_name} ({enrichment_input.domain})",
            None, context.session_id
        )

        async def on_gathered(signals: GatheredSignals):
            await step.set_state(EnrichmentState.GATHERED.value)
            await self._report_signals(signals, context.session_id)

        result = await self.enrichment_engine.enrich(enrichment_input, context, on_gathered=on_gathered)

        degraded = [name for name, status in result.signal_status.items() if status != "success"]
        if degraded:
            await self.console.warn(
                f"⚠️ Continuing without: {', '.join(degraded)}",
                {"signals": result.signal_status}, context.session_id
            )
        return result.model_dump(mode="json")

    async def _report_signals(self, signals: GatheredSignals, session_id: Optional[str]):
        """One console line per tool, then a marker for the synthesis call."""
        for name, result in signals.items():
            label = TOOL_LABELS[name]
            if result.status == "success":
                await self.console.info(f"✅ {label} complete", {"tool": name}, session_id)
            else:
                await self.console.warn(
                    f"⚠️ {label} unavailable: {result.error}",
                    {"tool": name, "details": result.details},
                    session_id,
                )

        await self.console.info("🧠 Running final analysis", {"signals": signals.statuses()}, session_id)

    async def _store_results(
        self,
        enrichment_input: EnrichmentInput,
        result: EnrichmentResult,
        context: EnrichmentContext
    ) -> Dict[str, str]:
        costs = await self.log_store.realtime_costs(correlation_id=context.correlation_id)

        async with self.session_factory() as db:
            stored = await LeadStore(db).save_enrichment(enrichment_input, result, costs["actual_cost"])

        async with self.session_factory() as db:
            await ActivityLogger(db).log_enrichment(
                stored["lead_id"],
                result.classification.result,
                result.scores.overall,
                result.processing_time_ms,
            )
            await db.commit()

        return stored

    async def _link_logs(self, context: EnrichmentContext, stored: Dict[str, str]) -> Dict[str, int]:
        updated = await self.log_store.backfill_ids(
            context.correlation_id, stored["lead_id"], stored["company_id"]
        )
        return {"updated": updated}


# ============================================
# ROUTE LEAD
# ============================================

class RouteLeadWorkflow:
    function_id = "route-lead"

    def __init__(self, session_factory: async_sessionmaker, console: ConsoleLogger):
        self.session_factory = session_factory
        self.console = console

    def as_function(self, retries: Optional[int] = None) -> WorkflowFunction:
        return WorkflowFunction(
            id=self.function_id,
            trigger=LEAD_ENRICHED,
            handler=self.handle,
            payload_model=LeadEnriched,
            run_key=lambda payload: payload.lead_id,
            retries=settings.WORKFLOW_MAX_RETRIES if retries is None else retries,
        )

    async def handle(self, ctx: WorkflowContext) -> Dict[str, Any]:
        payload: LeadEnriched = ctx.payload
        step = ctx.step

        decision = RoutingDecision.model_validate(await step.run(
            "determine-routing",
            lambda: self._determine(payload),
            state=RoutingState.ROUTING_DETERMINED.value,
        ))

        await step.run(
            "apply-routing",
            lambda: self._apply(payload, decision),
            state=RoutingState.ROUTING_APPLIED.value,
        )

        notified = await step.run(
            "send-notifications",
            lambda: self._notify(payload, decision),
            state=RoutingState.NOTIFIED.value,
        )

        await self.console.success(decision.message, {"action": decision.action}, payload.session_id)

        return {
            "lead_id": payload.lead_id,
            "action": decision.action,
            "priority": decision.priority,
            "channels": notified["channels"],
        }

    async def _determine(self, payload: LeadEnriched) -> Dict[str, Any]:
        decision = determine_routing(payload.classification, payload.score, payload.contact_name)
        return decision.model_dump()

    async def _apply(self, payload: LeadEnriched, decision: RoutingDecision) -> Dict[str, Any]:
        async with self.session_factory() as db:
            store = LeadStore(db)
            lead = await store.get_lead(payload.lead_id)
            if lead is None:
                raise LeadNotFound(payload.lead_id)
            if not lead.is_enriched:
                raise LeadNotEnriched(
                    f"Lead {payload.lead_id} has enrichment_status={lead.enrichment_status}",
                    {"lead_id": payload.lead_id}
                )

            await store.apply_routing(lead, decision)
            await ActivityLogger(db).log_routing(
                payload.lead_id, decision.action, decision.priority, decision.message
            )
            await db.commit()

        logger.info(f"🧭 Lead {payload.lead_id} routed: {decision.action} ({decision.priority})")
        return {
            "routing_status": "routed",
            "action": decision.action,
            "description": get_routing_action_description(decision.action),
        }

    async def _notify(self, payload: LeadEnriched, decision: RoutingDecision) -> Dict[str, Any]:
        channels = notification_actions(decision)

        async with self.session_factory() as db:
            store = LeadStore(db)
            lead = await store.get_lead(payload.lead_id)
            if lead is None:
                raise LeadNotFound(payload.lead_id)
            await ActivityLogger(db).log_notification(payload.lead_id, decision.action, channels)
            await store.mark_notified(lead)
            await db.commit()

        return {"channels": channels}
