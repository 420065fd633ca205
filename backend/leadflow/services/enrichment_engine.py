# backend/leadflow/services/enrichment_engine.py
"""
Lead Enrichment Engine - gathering and synthesis.

1. Gathering: the four capability tools run concurrently and every outcome is
   kept, success or failure. Failed tools get another attempt in the next
   round, up to a fixed number of rounds.
2. Synthesis: one structured-generation call turns the signals into category
   scores, reasoning and recommended actions. The overall score and the
   classification are then computed here from fixed weights and thresholds;
   the model's own arithmetic is never trusted.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from leadflow.config import settings
from leadflow.exceptions import SynthesisFailure
from leadflow.schemas import (
    CategoryScores,
    Classification,
    EnrichmentContext,
    EnrichmentInput,
    EnrichmentResult,
    GatheredSignals,
    LeadScores,
    SynthesisOutput,
    ToolError,
)
from leadflow.services.enrichment_logger import EnrichmentLogStore
from leadflow.services.llm_service import LLMService
from leadflow.services.prompts import SYNTHESIS_SYSTEM_PROMPT, build_analysis_prompt
from leadflow.tools.base import CapabilityTool

logger = logging.getLogger(__name__)

SCORE_WEIGHTS = {
    "firmographic": 0.35,
    "behavioral": 0.25,
    "intent": 0.25,
    "technographic": 0.15,
}

SYNTHESIS_TEMPERATURE = 0.2

DEFAULT_INDUSTRY = "B2B software"

# Intent first: its result is the cheapest and shapes how the rest is read
TOOL_ORDER = ["intent_analysis", "company_intelligence", "website_analysis", "competitive_intelligence"]


def calculate_overall_score(scores: Union[CategoryScores, Dict[str, float]]) -> float:
    """Weighted sum of the four category scores, clamped to 0-100."""
    values = scores.model_dump() if isinstance(scores, CategoryScores) else scores
    total = sum(values[category] * weight for category, weight in SCORE_WEIGHTS.items())
    # strip float noise such as 100.00000000000001
    total = round(total, 6)
    return min(100.0, max(0.0, total))


def industry_context(enrichment_input: EnrichmentInput) -> str:
    """Industry phrase for competitive research; the form never asks for an industry."""
    interest = (enrichment_input.product_interest or "").strip()
    if interest:
        return f"{interest} software"
    return DEFAULT_INDUSTRY


def classify_score(
    overall: float,
    sql_threshold: Optional[float] = None,
    mql_threshold: Optional[float] = None
) -> str:
    sql_threshold = settings.SQL_THRESHOLD if sql_threshold is None else sql_threshold
    mql_threshold = settings.MQL_THRESHOLD if mql_threshold is None else mql_threshold
    if overall >= sql_threshold:
        return "SQL"
    if overall >= mql_threshold:
        return "MQL"
    return "UNQUALIFIED"


class LeadEnrichmentEngine:
    """Runs gathering then synthesis for one EnrichmentInput."""

    def __init__(
        self,
        tools: Dict[str, CapabilityTool],
        llm: LLMService,
        log_store: EnrichmentLogStore,
        max_rounds: Optional[int] = None,
        sql_threshold: Optional[float] = None,
        mql_threshold: Optional[float] = None
    ):
        missing = [name for name in TOOL_ORDER if name not in tools]
        if missing:
            raise ValueError(f"Missing capability tools: {missing}")
        self.tools = tools
        self.llm = llm
        self.log_store = log_store
        self.max_rounds = max(1, max_rounds if max_rounds is not None else settings.GATHERING_MAX_ROUNDS)
        self.sql_threshold = sql_threshold
        self.mql_threshold = mql_threshold

    # ============================================
    # GATHERING
    # ============================================

    def _tool_calls(self, enrichment_input: EnrichmentInput) -> List[Tuple[str, Dict[str, Any]]]:
        context_line = f"{enrichment_input.company_name} ({enrichment_input.domain})"
        if enrichment_input.product_interest:
            context_line += f", interested in {enrichment_input.product_interest}"

        calls = {
            "intent_analysis": {
                "text": enrichment_input.message,
                "company_context": context_line,
            },
            "company_intelligence": {
                "company": enrichment_input.company_name,
                "focus": "general",
            },
            "website_analysis": {
                "website_url": enrichment_input.website or enrichment_input.domain,
                "max_pages": 5,
            },
            "competitive_intelligence": {
                "company": enrichment_input.company_name,
                "industry": industry_context(enrichment_input),
                "focus": "competitors",
            },
        }
        return [(name, calls[name]) for name in TOOL_ORDER]

    async def gather(self, enrichment_input: EnrichmentInput, context: EnrichmentContext) -> GatheredSignals:
        pending = self._tool_calls(enrichment_input)
        results = {}

        for round_number in range(1, self.max_rounds + 1):
            outcomes = await asyncio.gather(
                *[self.tools[name].run(context, **kwargs) for name, kwargs in pending],
                return_exceptions=True
            )

            retry = []
            for (name, kwargs), outcome in zip(pending, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.error(f"❌ {name} raised instead of returning a result: {outcome!r}")
                    outcome = ToolError(tool=name, error=f"{name} raised an exception", details=str(outcome))
                results[name] = outcome
                if outcome.status == "error":
                    retry.append((name, kwargs))

            succeeded = len(pending) - len(retry)
            logger.info(f"📡 Gathering round {round_number}: {succeeded}/{len(pending)} tools succeeded")

            if not retry:
                break
            pending = retry

        return GatheredSignals(**results)

    # ============================================
    # SYNTHESIS
    # ============================================

    async def synthesize(
        self,
        enrichment_input: EnrichmentInput,
        signals: GatheredSignals,
        context: EnrichmentContext
    ) -> EnrichmentResult:
        prompt = build_analysis_prompt(enrichment_input, signals)

        try:
            response = await self.log_store.instrumented_call(
                context,
                "openai",
                "synthesis",
                {"model": settings.SYNTHESIS_MODEL, "signals": signals.statuses()},
                lambda: self.llm.generate_object(
                    SynthesisOutput,
                    prompt,
                    system=SYNTHESIS_SYSTEM_PROMPT,
                    model=settings.SYNTHESIS_MODEL,
                    temperature=SYNTHESIS_TEMPERATURE,
                )
            )
            output = SynthesisOutput.model_validate(response.data)
        except Exception as e:
            raise SynthesisFailure(f"Synthesis failed: {e}", {"signals": signals.statuses()}) from e

        overall = calculate_overall_score(output.scores)
        result = classify_score(overall, self.sql_threshold, self.mql_threshold)

        overview = output.company_overview.model_copy(update={
            "domain": enrichment_input.domain,
            "name": output.company_overview.name or enrichment_input.company_name,
        })

        return EnrichmentResult(
            company_overview=overview,
            enriched_data=output.enriched_data,
            scores=LeadScores(**output.scores.model_dump(), overall=overall),
            classification=Classification(
                result=result,
                confidence=output.confidence,
                reasoning=output.reasoning,
            ),
            intent_analysis=signals.intent(),
            recommended_actions=output.recommended_actions,
            signal_status=signals.statuses(),
        )

    async def enrich(
        self,
        enrichment_input: EnrichmentInput,
        context: EnrichmentContext,
        on_gathered: Optional[Callable[[GatheredSignals], Awaitable[None]]] = None
    ) -> EnrichmentResult:
        start_time = time.time()
        logger.info(f"🚀 Enriching {enrichment_input.email} ({enrichment_input.domain})")

        signals = await self.gather(enrichment_input, context)
        if on_gathered is not None:
            await on_gathered(signals)
        result = await self.synthesize(enrichment_input, signals, context)

        processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"✅ Enriched {enrichment_input.email}: {result.classification.result} "
            f"({result.scores.overall:.1f}) in {processing_time_ms}ms"
        )
        return result.model_copy(update={"processing_time_ms": processing_time_ms})


def create_enrichment_engine(log_store: EnrichmentLogStore) -> LeadEnrichmentEngine:
    """Wire the engine with provider clients built from settings."""
    from leadflow.services.exa_service import create_exa_service
    from leadflow.services.firecrawl_service import create_firecrawl_service
    from leadflow.services.llm_service import create_openai_service, create_perplexity_service
    from leadflow.tools import (
        CompanyIntelligenceTool,
        CompetitiveIntelligenceTool,
        IntentAnalysisTool,
        WebsiteAnalysisTool,
    )

    openai_service = create_openai_service()
    tools = {
        "intent_analysis": IntentAnalysisTool(log_store, openai_service),
        "company_intelligence": CompanyIntelligenceTool(log_store, create_exa_service()),
        "website_analysis": WebsiteAnalysisTool(log_store, create_firecrawl_service()),
        "competitive_intelligence": CompetitiveIntelligenceTool(log_store, create_perplexity_service()),
    }
    return LeadEnrichmentEngine(tools=tools, llm=openai_service, log_store=log_store)
