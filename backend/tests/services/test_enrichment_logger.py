# tests/services/test_enrichment_logger.py

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import select

from leadflow.exceptions import ProviderError, ProviderTimeout
from leadflow.models import EnrichmentLog
from leadflow.schemas import EnrichmentContext, ProviderResponse
from leadflow.services.enrichment_logger import EnrichmentLogStore, is_unlogged


async def _all_logs(session_factory):
    async with session_factory() as db:
        result = await db.execute(select(EnrichmentLog))
        return result.scalars().all()


@pytest.fixture
def context():
    return EnrichmentContext(correlation_id="corr-1")


# ============================================================================
# LIFECYCLE
# ============================================================================

@pytest.mark.asyncio
async def test_start_then_complete(log_store, session_factory, context):
    log_id = await log_store.start_log(context, "exa", "searchWithContent", {"query": "acme"})
    assert not is_unlogged(log_id)

    completed = await log_store.complete_log(log_id, response_data={"results": []}, units=1)
    assert completed is True

    logs = await _all_logs(session_factory)
    assert len(logs) == 1
    log = logs[0]
    assert log.status == "success"
    assert log.cost == pytest.approx(0.002)
    assert log.completed_at is not None
    assert log.duration_ms is not None and log.duration_ms >= 0
    assert log.currency == "USD"


@pytest.mark.asyncio
async def test_explicit_cost_wins_over_ledger(log_store, session_factory, context):
    log_id = await log_store.start_log(context, "openai", "synthesis")
    await log_store.complete_log(log_id, tokens_used=1000, cost=0.5)

    logs = await _all_logs(session_factory)
    assert logs[0].cost == pytest.approx(0.5)
    assert logs[0].tokens_used == 1000


@pytest.mark.asyncio
async def test_terminal_status_is_set_once(log_store, session_factory, context):
    log_id = await log_store.start_log(context, "openai", "synthesis")

    assert await log_store.fail_log(log_id, "boom") is True
    assert await log_store.complete_log(log_id, tokens_used=10) is False
    assert await log_store.fail_log(log_id, "again", status="timeout") is False

    logs = await _all_logs(session_factory)
    assert logs[0].status == "failed"
    assert logs[0].error_message == "boom"


@pytest.mark.asyncio
async def test_fail_log_rejects_non_terminal_status(log_store, context):
    log_id = await log_store.start_log(context, "exa", "searchWithContent")
    with pytest.raises(ValueError):
        await log_store.fail_log(log_id, "nope", status="success")


@pytest.mark.asyncio
async def test_storage_failure_returns_sentinel():
    def broken_factory():
        raise RuntimeError("database unavailable")

    store = EnrichmentLogStore(broken_factory)
    log_id = await store.start_log(None, "exa", "searchWithContent")

    assert log_id.startswith("error-")
    assert await store.complete_log(log_id, units=1) is False
    assert await store.fail_log(log_id, "boom") is False


@pytest.mark.asyncio
async def test_backfill_only_touches_matching_correlation(log_store, session_factory):
    await log_store.start_log(EnrichmentContext(correlation_id="corr-a"), "exa", "searchWithContent")
    await log_store.start_log(EnrichmentContext(correlation_id="corr-a"), "firecrawl", "crawl")
    await log_store.start_log(EnrichmentContext(correlation_id="corr-b"), "exa", "searchWithContent")

    lead_id, company_id = str(uuid4()), str(uuid4())
    updated = await log_store.backfill_ids("corr-a", lead_id, company_id)
    assert updated == 2

    logs = await _all_logs(session_factory)
    linked = [log for log in logs if log.lead_id is not None]
    assert {log.correlation_id for log in linked} == {"corr-a"}
    assert all(str(log.company_id) == company_id for log in linked)


# ============================================================================
# INSTRUMENTED CALLS
# ============================================================================

@pytest.mark.asyncio
async def test_instrumented_call_success(log_store, session_factory, context):
    async def call():
        return ProviderResponse(data={"text": "ok"}, model="sonar-pro", tokens_used=600)

    response = await log_store.instrumented_call(context, "perplexity", "competitive-analysis", {"q": "x"}, call)
    assert response.data == {"text": "ok"}

    logs = await _all_logs(session_factory)
    assert logs[0].status == "success"
    assert logs[0].cost == pytest.approx(0.0006)


@pytest.mark.asyncio
async def test_instrumented_call_failure_is_reraised(log_store, session_factory, context):
    async def call():
        raise ProviderError("exa", "HTTP 500")

    with pytest.raises(ProviderError):
        await log_store.instrumented_call(context, "exa", "searchWithContent", {}, call)

    logs = await _all_logs(session_factory)
    assert logs[0].status == "failed"
    assert "HTTP 500" in logs[0].error_message


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ProviderTimeout("firecrawl", "slow"), asyncio.TimeoutError()])
async def test_instrumented_call_timeout(log_store, session_factory, context, error):
    async def call():
        raise error

    with pytest.raises(type(error)):
        await log_store.instrumented_call(context, "firecrawl", "crawl", {}, call)

    logs = await _all_logs(session_factory)
    assert logs[0].status == "timeout"


# ============================================================================
# REPORTING
# ============================================================================

@pytest.mark.asyncio
async def test_cost_summary_and_realtime(log_store):
    lead_id = str(uuid4())
    context = EnrichmentContext(correlation_id="corr-1", lead_id=lead_id)

    search = await log_store.start_log(context, "exa", "searchWithContent")
    await log_store.complete_log(search, units=1)
    synthesis = await log_store.start_log(context, "openai", "synthesis")
    await log_store.complete_log(synthesis, tokens_used=2500, model="gpt-4o")
    failed = await log_store.start_log(context, "firecrawl", "crawl")
    await log_store.fail_log(failed, "boom")
    await log_store.start_log(context, "perplexity", "competitive-analysis")

    summary = await log_store.cost_summary(lead_id)
    assert summary["operations_count"] == 2
    assert summary["total_cost"] == pytest.approx(0.027)
    assert summary["cost_by_provider"]["openai"] == pytest.approx(0.025)
    assert summary["top_operation"]["operation"] == "synthesis"

    realtime = await log_store.realtime_costs(lead_id=lead_id)
    assert realtime["completed_operations"] == 2
    assert realtime["pending_operations"] == 1
    assert realtime["failed_operations"] == 1
    assert realtime["actual_cost"] == pytest.approx(0.027)
    assert realtime["estimated_total"] == pytest.approx(0.127)


@pytest.mark.asyncio
async def test_cost_summary_for_unknown_lead(log_store):
    summary = await log_store.cost_summary(str(uuid4()))
    assert summary["total_cost"] == 0
    assert summary["top_operation"] is None


@pytest.mark.asyncio
async def test_realtime_costs_requires_a_key(log_store):
    with pytest.raises(ValueError):
        await log_store.realtime_costs()
