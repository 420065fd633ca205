# tests/conftest.py

import os

# Settings are read at import time; point them at SQLite before importing leadflow
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest_leadflow.db")
os.environ["ENABLE_WORKER"] = "false"
os.environ.setdefault("ENVIRONMENT", "test")

import random
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

import leadflow.models  # noqa: F401
from leadflow.database import Base, build_engine, build_session_factory
from leadflow.exceptions import ProviderError
from leadflow.models import Submission
from leadflow.schemas import IntentAnalysis, ProviderResponse, SynthesisOutput
from leadflow.services.console_logger import ConsoleLogger
from leadflow.services.enrichment_engine import LeadEnrichmentEngine
from leadflow.services.enrichment_logger import EnrichmentLogStore
from leadflow.tools import (
    CompanyIntelligenceTool,
    CompetitiveIntelligenceTool,
    IntentAnalysisTool,
    WebsiteAnalysisTool,
)
from leadflow.workflow import build_workflow_engine


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database file per test"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'leadflow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def log_store(session_factory):
    return EnrichmentLogStore(session_factory)


@pytest.fixture
def console(session_factory):
    return ConsoleLogger(session_factory, broadcast=False)


async def create_submission(session_factory, **overrides) -> str:
    fields = dict(
        contact_name="Jane Doe",
        company_email="jane@acme.io",
        contact_phone="+1 555 0100",
        company_website="https://www.acme.io",
        country="United States",
        company_size="51-200",
        product_interest="Analytics Platform",
        how_can_we_help="We need a replacement for our reporting stack this quarter, it is urgent.",
        privacy_policy=True,
        mock_behavioral_data=True,
    )
    fields.update(overrides)
    async with session_factory() as db:
        submission = Submission(**fields)
        db.add(submission)
        await db.commit()
        return str(submission.id)


@pytest_asyncio.fixture
async def submission_id(session_factory):
    return await create_submission(session_factory)


# ============================================================================
# FAKE PROVIDERS
# ============================================================================

INTENT_RESPONSE = {
    "urgency": "high",
    "budget_mentioned": True,
    "buying_stage": "decision",
    "pain_points": ["legacy reporting"],
    "timeline": "this quarter",
    "decision_makers": True,
    "keywords": ["replacement", "urgent"],
    "sentiment": "positive",
    "intent_score": 85,
    "reasoning": "Explicit deadline and replacement project",
    "is_fallback": False,
}


def make_synthesis_output(
    firmographic=80.0,
    behavioral=70.0,
    intent=75.0,
    technographic=60.0,
    confidence=82.5,
    domain="acme.io"
) -> dict:
    return {
        "company_overview": {
            "name": "Acme",
            "domain": domain,
            "industry": "Software",
            "size": "51-200",
            "employee_count": 120,
            "revenue": "$10M-$50M",
            "location": "Austin, TX",
            "business_model": "B2B SaaS",
            "target_market": "Mid-market retailers",
            "recent_signals": ["Raised Series B"],
        },
        "enriched_data": {
            "funding": "Series B",
            "tech_stack": ["Snowflake", "dbt"],
            "competitors": ["Globex"],
            "news_signals": ["Opened EU office"],
            "website_findings": ["Pricing page lists enterprise tier"],
            "social_presence": "Active on LinkedIn",
        },
        "scores": {
            "firmographic": firmographic,
            "behavioral": behavioral,
            "intent": intent,
            "technographic": technographic,
        },
        "confidence": confidence,
        "reasoning": {
            "firmographic": "Good size and industry fit",
            "behavioral": "Several product page visits",
            "intent": "Urgent timeline",
            "technographic": "Modern data stack",
        },
        "recommended_actions": {
            "next_steps": ["Book a demo"],
            "personalization_points": ["Mention Series B"],
            "potential_objections": ["Migration effort"],
            "follow_up_timeline": "Within 24 hours",
        },
    }


EXA_RESULTS = {
    "results": [
        {
            "title": f"Acme news {i}",
            "url": f"https://news.example.com/acme-{i}",
            "publishedDate": "2026-09-01",
            "text": "x" * 1200,
            "score": 0.9,
        }
        for i in range(7)
    ]
}

CRAWL_PAGES = {
    "pages": [
        {"url": "https://acme.io/about", "title": "About Acme", "markdown": "# About\nWe build analytics."},
        {"url": "https://acme.io/pricing", "title": "Pricing", "markdown": "# Pricing\nEnterprise tier."},
    ],
    "credits_used": 2,
}


@pytest.fixture
def providers():
    """
    Mock provider clients.

    `providers.synthesis` is the dict the fake language model returns for
    SynthesisOutput; tests can replace it before running the engine.
    """
    state = SimpleNamespace(synthesis=make_synthesis_output(), intent=dict(INTENT_RESPONSE))

    async def generate_object(schema, prompt, system=None, model=None, temperature=0.2):
        if schema is IntentAnalysis:
            return ProviderResponse(data=state.intent, model="gpt-4o", tokens_used=400)
        if schema is SynthesisOutput:
            return ProviderResponse(data=state.synthesis, model="gpt-4o", tokens_used=2500)
        raise ProviderError("openai", f"unexpected schema {schema.__name__}")

    openai_service = Mock()
    openai_service.model = "gpt-4o"
    openai_service.generate_object = AsyncMock(side_effect=generate_object)

    perplexity_service = Mock()
    perplexity_service.model = "sonar-pro"
    perplexity_service.generate_text = AsyncMock(return_value=ProviderResponse(
        data={"text": "Main competitors are Globex and Initech."}, model="sonar-pro", tokens_used=600
    ))

    exa_service = Mock()
    exa_service.search_and_contents = AsyncMock(return_value=ProviderResponse(data=EXA_RESULTS, units=1))

    firecrawl_service = Mock()
    firecrawl_service.crawl = AsyncMock(return_value=ProviderResponse(data=CRAWL_PAGES, units=2))

    state.openai = openai_service
    state.perplexity = perplexity_service
    state.exa = exa_service
    state.firecrawl = firecrawl_service
    return state


@pytest.fixture
def tools(log_store, providers):
    return {
        "intent_analysis": IntentAnalysisTool(log_store, providers.openai),
        "company_intelligence": CompanyIntelligenceTool(log_store, providers.exa),
        "website_analysis": WebsiteAnalysisTool(log_store, providers.firecrawl),
        "competitive_intelligence": CompetitiveIntelligenceTool(log_store, providers.perplexity),
    }


@pytest.fixture
def enrichment_engine(tools, providers, log_store):
    return LeadEnrichmentEngine(tools=tools, llm=providers.openai, log_store=log_store, max_rounds=1)


@pytest.fixture
def workflow_engine(session_factory, enrichment_engine):
    return build_workflow_engine(
        session_factory,
        enrichment_engine=enrichment_engine,
        broadcast=False,
        retries=2,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def seeded_rng():
    return random.Random(42)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests")
    config.addinivalue_line("markers", "integration: integration tests")


@pytest.fixture
def synthesis_factory():
    """Build a synthesis reply with chosen category scores"""
    return make_synthesis_output


@pytest.fixture
def crawl_pages():
    return CRAWL_PAGES


@pytest.fixture
def submission_factory(session_factory):
    """Insert a submission and return its id"""
    async def factory(**overrides):
        return await create_submission(session_factory, **overrides)
    return factory
