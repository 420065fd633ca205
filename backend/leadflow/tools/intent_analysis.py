# backend/leadflow/tools/intent_analysis.py
"""
Buying-intent analysis of the prospect's own words.

Unlike the other tools, a failure here still yields a usable (neutral)
analysis attached to the ToolError, so synthesis always has an intent shape.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from leadflow.schemas import EnrichmentContext, IntentAnalysis, ToolError
from leadflow.services.llm_service import LLMService
from leadflow.tools.base import CapabilityTool

logger = logging.getLogger(__name__)

TEMPERATURE = 0.2

HIGH_URGENCY_PHRASES = [
    "asap", "as soon as possible", "urgent", "urgently", "immediately",
    "right away", "this quarter", "this month", "by end of quarter",
]
BUDGET_PHRASES = ["budget", "funding approved", "budget approved", "allocated", "$"]

SYSTEM_PROMPT = """You are an expert B2B sales analyst. Analyze the prospect's message for buying intent.

HIGH URGENCY signals: "ASAP", "urgent", "immediately", "this quarter", hard deadlines, active evaluation.
MEDIUM URGENCY signals: "this year", "planning", "exploring options", comparing vendors.
LOW URGENCY signals: "just researching", "future", "curious", no timeline.

BUDGET signals: explicit budget, pricing questions, approved spend, procurement process.
BUYING STAGE:
- awareness: learning about the problem space
- consideration: comparing solutions
- decision: ready to buy, asking about contracts, onboarding or pricing details
DECISION MAKER signals: C-level or VP titles, "we decided", "my team", ownership of budget.

intent_score is 0-100: 80+ clear near-term purchase, 50-79 active interest, below 50 early or vague.
Always set is_fallback to false."""


class IntentAnalysisInput(BaseModel):
    text: str = Field(..., min_length=1)
    company_context: Optional[str] = None


def _matched_phrases(text: str, phrases: List[str]) -> List[str]:
    lowered = (text or "").lower()
    found = []
    for phrase in phrases:
        if phrase == "$":
            if re.search(r"\$\s?\d", lowered):
                found.append(phrase)
        elif re.search(rf"\b{re.escape(phrase)}\b", lowered):
            found.append(phrase)
    return found


def apply_explicit_signals(analysis: IntentAnalysis, text: str) -> IntentAnalysis:
    """Explicit urgency or budget wording in the text always wins over the model's reading."""
    urgent = _matched_phrases(text, HIGH_URGENCY_PHRASES)
    budget = _matched_phrases(text, BUDGET_PHRASES)
    updates: Dict[str, Any] = {}
    if urgent and analysis.urgency != "high":
        updates["urgency"] = "high"
    if budget and not analysis.budget_mentioned:
        updates["budget_mentioned"] = True
    if urgent or budget:
        keywords = list(analysis.keywords)
        for phrase in urgent + budget:
            if phrase not in keywords:
                keywords.append(phrase)
        updates["keywords"] = keywords
    return analysis.model_copy(update=updates) if updates else analysis


def fallback_intent_analysis(text: str) -> IntentAnalysis:
    """Neutral analysis used when the language model is unavailable."""
    neutral = IntentAnalysis(
        urgency="medium",
        budget_mentioned=False,
        buying_stage="consideration",
        pain_points=[],
        timeline="unknown",
        decision_makers=False,
        keywords=[],
        sentiment="neutral",
        intent_score=50,
        reasoning="Analysis failed, using fallback values",
        is_fallback=True,
    )
    return apply_explicit_signals(neutral, text)


class IntentAnalysisTool(CapabilityTool):
    name = "intent_analysis"
    provider = "openai"
    operation = "intent-analysis"
    input_model = IntentAnalysisInput

    def __init__(self, log_store, llm: LLMService):
        super().__init__(log_store)
        self.llm = llm

    async def execute(self, params: IntentAnalysisInput, context: Optional[EnrichmentContext]) -> Dict[str, Any]:
        prompt = f"Prospect message:\n{params.text}"
        if params.company_context:
            prompt += f"\n\nCompany context:\n{params.company_context}"

        response = await self.call_provider(
            context,
            {"model": self.llm.model, "text_length": len(params.text)},
            lambda: self.llm.generate_object(
                IntentAnalysis, prompt, system=SYSTEM_PROMPT, temperature=TEMPERATURE
            )
        )

        analysis = IntentAnalysis.model_validate(response.data).model_copy(update={"is_fallback": False})
        analysis = apply_explicit_signals(analysis, params.text)
        logger.info(f"🎯 Intent: urgency={analysis.urgency}, score={analysis.intent_score}")
        return analysis.model_dump()

    def on_error(self, params, error, raw_input) -> ToolError:
        text = params.text if params is not None else str(raw_input.get("text") or "")
        return ToolError(
            tool=self.name,
            error="Intent analysis failed",
            details=str(error),
            fallback=fallback_intent_analysis(text).model_dump(),
        )
