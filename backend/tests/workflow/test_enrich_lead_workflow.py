# tests/workflow/test_enrich_lead_workflow.py

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from leadflow.exceptions import ProviderError
from leadflow.models import (
    Company,
    ConsoleLog,
    EnrichmentLog,
    Lead,
    LeadActivity,
    WorkflowEvent,
    WorkflowRun,
)
from leadflow.schemas import LEAD_ENRICHED, LEAD_SUBMITTED
from leadflow.services.enrichment_logger import EnrichmentLogStore


async def _all(session_factory, model):
    async with session_factory() as db:
        return (await db.execute(select(model))).scalars().all()


async def _submit(workflow_engine, submission_id, **extra):
    data = {"submissionId": submission_id, "sessionId": "session-1"}
    data.update(extra)
    return await workflow_engine.event_bus.send(LEAD_SUBMITTED, data)


# ============================================================================
# HAPPY PATH
# ============================================================================

@pytest.mark.asyncio
async def test_submission_is_enriched_and_routed(workflow_engine, session_factory, submission_id):
    await _submit(workflow_engine, submission_id)

    totals = await workflow_engine.drain()

    assert totals["failed"] == 0
    assert totals["completed"] == 2

    leads = await _all(session_factory, Lead)
    assert len(leads) == 1
    lead = leads[0]
    assert str(lead.submission_id) == submission_id
    assert lead.classification == "SQL"
    assert lead.lead_score == 73
    assert lead.routing_status == "notified"
    assert lead.routing_action == "sales_notification"
    assert lead.routing_priority == "immediate"
    assert lead.behavioral_data is not None

    companies = await _all(session_factory, Company)
    assert [c.domain for c in companies] == ["acme.io"]
    assert companies[0].enrichment_cost > 0

    activities = {a.activity_type for a in await _all(session_factory, LeadActivity)}
    assert {"enrichment", "routing", "notification"} <= activities

    enrich_run = await workflow_engine.find_run("enrich-lead", submission_id)
    assert enrich_run["current_state"] == "DONE"
    assert [s["step_name"] for s in enrich_run["steps"]] == [
        "fetch-submission",
        "prepare-enrichment-input",
        "run-enrichment",
        "store-enrichment-results",
        "update-enrichment-logs",
        "emit-lead-enriched",
    ]

    route_run = await workflow_engine.find_run("route-lead", str(lead.id))
    assert route_run["output"]["action"] == "sales_notification"
    assert "slack:#sales-alerts" in route_run["output"]["channels"]


@pytest.mark.asyncio
async def test_enrichment_logs_are_linked_to_lead(workflow_engine, session_factory, submission_id):
    await _submit(workflow_engine, submission_id)
    await workflow_engine.drain()

    lead = (await _all(session_factory, Lead))[0]
    logs = await _all(session_factory, EnrichmentLog)

    # four tools plus synthesis
    assert len(logs) == 5
    assert all(log.lead_id == lead.id for log in logs)
    assert all(log.company_id == lead.company_id for log in logs)
    assert {log.status for log in logs} == {"success"}
    assert {(log.provider, log.operation) for log in logs} == {
        ("openai", "intent-analysis"),
        ("exa", "searchWithContent"),
        ("firecrawl", "crawl"),
        ("perplexity", "competitive-analysis"),
        ("openai", "synthesis"),
    }


@pytest.mark.asyncio
async def test_console_reports_progress(workflow_engine, session_factory, submission_id):
    await _submit(workflow_engine, submission_id)
    await workflow_engine.drain()

    logs = await _all(session_factory, ConsoleLog)
    assert {log.session_id for log in logs} == {"session-1"}
    assert any(log.level == "success" and "classified as SQL" in log.message for log in logs)

    messages = [log.message for log in logs]
    for label in ("Company intelligence", "Website analysis", "Competitive analysis", "Intent analysis"):
        assert f"✅ {label} complete" in messages
    assert "🧠 Running final analysis" in messages


@pytest.mark.asyncio
async def test_score_just_below_threshold(workflow_engine, providers, synthesis_factory, session_factory, submission_id):
    providers.synthesis = synthesis_factory(firmographic=70, behavioral=70, intent=70, technographic=68)

    await _submit(workflow_engine, submission_id)
    await workflow_engine.drain()

    lead = (await _all(session_factory, Lead))[0]
    # 69.7 displays as 70 but stays an MQL
    assert lead.lead_score == 70
    assert lead.lead_score_exact == pytest.approx(69.7)
    assert lead.classification == "MQL"
    assert lead.routing_action == "marketing_nurture"


@pytest.mark.asyncio
async def test_legacy_snake_case_payload(workflow_engine, session_factory, submission_id):
    await workflow_engine.event_bus.send(LEAD_SUBMITTED, {"submission_id": submission_id})
    await workflow_engine.drain()

    assert len(await _all(session_factory, Lead)) == 1
    # without a session id, progress is reported under the submission id
    sessions = {log.session_id for log in await _all(session_factory, ConsoleLog)}
    assert submission_id in sessions


# ============================================================================
# DEGRADED AND FAILED RUNS
# ============================================================================

@pytest.mark.asyncio
async def test_failed_tool_still_produces_lead(workflow_engine, providers, session_factory, submission_id):
    providers.firecrawl.crawl.side_effect = RuntimeError("crawler exploded")

    await _submit(workflow_engine, submission_id)
    totals = await workflow_engine.drain()

    assert totals["failed"] == 0
    lead = (await _all(session_factory, Lead))[0]
    assert lead.enrichment_data["signal_status"]["website_analysis"] == "error"

    console = await _all(session_factory, ConsoleLog)
    assert any(log.level == "warn" and "website_analysis" in log.message for log in console)
    assert any(
        log.level == "warn" and log.message.startswith("⚠️ Website analysis unavailable") for log in console
    )
    assert not any("Website analysis complete" in log.message for log in console)


@pytest.mark.asyncio
async def test_missing_submission_fails_without_retry(workflow_engine, providers, session_factory, monkeypatch):
    backfill = AsyncMock(return_value=0)
    monkeypatch.setattr(EnrichmentLogStore, "backfill_ids", backfill)
    missing = str(uuid.uuid4())
    await _submit(workflow_engine, missing)

    totals = await workflow_engine.drain()

    assert totals == {"claimed": 1, "completed": 0, "retrying": 0, "failed": 1}
    providers.openai.generate_object.assert_not_awaited()
    run = await workflow_engine.find_run("enrich-lead", missing)
    assert run["status"] == "failed"
    assert "Submission not found" in run["error"]
    assert run["steps"] == []

    # nothing persisted and no log linking
    assert await _all(session_factory, Company) == []
    assert await _all(session_factory, Lead) == []
    logs = await _all(session_factory, EnrichmentLog)
    assert all(log.lead_id is None and log.company_id is None for log in logs)
    backfill.assert_not_awaited()

    console = await _all(session_factory, ConsoleLog)
    assert any(log.level == "error" for log in console)


@pytest.mark.asyncio
async def test_malformed_payload_is_rejected(workflow_engine, session_factory):
    await workflow_engine.event_bus.send(LEAD_SUBMITTED, {"sessionId": "session-1"})

    totals = await workflow_engine.drain()

    assert totals["failed"] == 1
    runs = await _all(session_factory, WorkflowRun)
    assert runs[0].status == "skipped"
    assert await _all(session_factory, Lead) == []


@pytest.mark.asyncio
async def test_synthesis_failure_exhausts_retries(workflow_engine, providers, session_factory, submission_id):
    providers.synthesis = {"scores": None}

    await _submit(workflow_engine, submission_id)
    totals = await workflow_engine.drain()

    # retries=2 in the fixture: three attempts, then failed
    assert totals["retrying"] == 2
    assert totals["failed"] == 1
    assert await _all(session_factory, Lead) == []
    run = await workflow_engine.find_run("enrich-lead", submission_id)
    assert run["status"] == "failed"
    assert "Synthesis failed" in run["error"]


@pytest.mark.asyncio
async def test_retry_after_scoring_does_not_call_providers_again(
    workflow_engine, providers, session_factory, submission_id, monkeypatch
):
    from leadflow.services.lead_store import LeadStore

    original = LeadStore.save_enrichment
    calls = {"count": 0}

    async def flaky_save(self, *args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            raise ProviderError("database", "connection reset")
        return await original(self, *args, **kwargs)

    monkeypatch.setattr(LeadStore, "save_enrichment", flaky_save)

    await _submit(workflow_engine, submission_id)
    totals = await workflow_engine.drain()

    assert totals["retrying"] == 1
    assert len(await _all(session_factory, Lead)) == 1
    # one intent call and one synthesis call, from the first attempt only
    assert providers.openai.generate_object.await_count == 2
    assert providers.exa.search_and_contents.await_count == 1

    run = await workflow_engine.find_run("enrich-lead", submission_id)
    assert run["attempts"] == 2


@pytest.mark.asyncio
async def test_duplicate_submission_events_make_one_lead(workflow_engine, providers, session_factory, submission_id):
    await _submit(workflow_engine, submission_id)
    await _submit(workflow_engine, submission_id)

    await workflow_engine.drain()

    assert len(await _all(session_factory, Lead)) == 1
    assert providers.exa.search_and_contents.await_count == 1
    enriched_events = [
        e for e in await _all(session_factory, WorkflowEvent) if e.name == LEAD_ENRICHED
    ]
    assert len(enriched_events) == 1


# ============================================================================
# ROUTING
# ============================================================================

@pytest.mark.asyncio
async def test_routing_refuses_unenriched_lead(workflow_engine, session_factory, submission_id):
    async with session_factory() as db:
        lead = Lead(
            submission_id=uuid.UUID(submission_id),
            contact_name="Jane Doe",
            email="jane@acme.io",
            enrichment_status="pending",
        )
        db.add(lead)
        await db.commit()
        lead_id = str(lead.id)

    await workflow_engine.event_bus.send(LEAD_ENRICHED, {
        "leadId": lead_id, "classification": "SQL", "score": 80, "contactName": "Jane Doe",
    })
    totals = await workflow_engine.drain()

    assert totals["failed"] == 1
    assert totals["retrying"] == 0
    async with session_factory() as db:
        lead = await db.get(Lead, uuid.UUID(lead_id))
        assert lead.routing_status == "pending"


@pytest.mark.asyncio
async def test_routing_unknown_lead(workflow_engine):
    lead_id = str(uuid.uuid4())
    await workflow_engine.event_bus.send(LEAD_ENRICHED, {
        "leadId": lead_id, "classification": "MQL", "score": 50, "contactName": "Jane Doe",
    })

    totals = await workflow_engine.drain()

    assert totals["failed"] == 1
    run = await workflow_engine.find_run("route-lead", lead_id)
    assert "Lead not found" in run["error"]


@pytest.mark.asyncio
async def test_failed_synthesis_leaves_run_at_gathered(workflow_engine, providers, session_factory, submission_id):
    providers.synthesis = {"scores": None}

    await _submit(workflow_engine, submission_id)
    stats = await workflow_engine.process_pending()

    assert stats["retrying"] == 1
    run = await workflow_engine.find_run("enrich-lead", submission_id)
    assert run["status"] == "running"
    assert run["current_state"] == "GATHERED"
    assert [s["step_name"] for s in run["steps"]] == ["fetch-submission", "prepare-enrichment-input"]
