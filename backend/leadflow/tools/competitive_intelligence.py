# backend/leadflow/tools/competitive_intelligence.py
"""Competitive landscape research through the market-research model."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from leadflow.schemas import EnrichmentContext
from leadflow.services.llm_service import LLMService
from leadflow.tools.base import CapabilityTool

TEMPERATURE = 0.3

FOCUS_PROMPTS = {
    "competitors": (
        "Who are the main competitors of {company} in the {industry} industry? "
        "List the top competitors and briefly explain how each one compares."
    ),
    "market-position": (
        "What is {company}'s current market position in the {industry} industry? "
        "Cover market share, growth trajectory and recent strategic moves."
    ),
    "differentiation": (
        "How does {company} differentiate itself from competitors in the {industry} industry? "
        "Focus on unique value propositions, pricing and product strengths."
    ),
}


class CompetitiveIntelligenceInput(BaseModel):
    company: str = Field(..., min_length=1)
    industry: str = Field(..., min_length=1)
    focus: Literal["competitors", "market-position", "differentiation"] = "competitors"


class CompetitiveIntelligenceTool(CapabilityTool):
    name = "competitive_intelligence"
    provider = "perplexity"
    operation = "competitive-analysis"
    input_model = CompetitiveIntelligenceInput

    def __init__(self, log_store, research: LLMService):
        super().__init__(log_store)
        self.research = research

    async def execute(self, params: CompetitiveIntelligenceInput, context: Optional[EnrichmentContext]) -> Dict[str, Any]:
        query = FOCUS_PROMPTS[params.focus].format(company=params.company, industry=params.industry)

        response = await self.call_provider(
            context,
            {"query": query, "model": self.research.model, "focus": params.focus},
            lambda: self.research.generate_text(query, temperature=TEMPERATURE)
        )

        return {
            "company": params.company,
            "industry": params.industry,
            "focus": params.focus,
            "analysis": response.data.get("text", ""),
            "search_query": query,
            "last_updated": datetime.utcnow().isoformat(),
        }
