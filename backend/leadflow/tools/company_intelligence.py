# backend/leadflow/tools/company_intelligence.py
"""Recent news and signals about a company from neural web search."""

from datetime import datetime, timedelta
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from leadflow.schemas import EnrichmentContext
from leadflow.services.exa_service import ExaService
from leadflow.tools.base import CapabilityTool

LOOKBACK_DAYS = 90
MAX_RESULTS = 5
MAX_TEXT_CHARACTERS = 1000
EXCERPT_LENGTH = 800

FOCUS_QUERIES = {
    "funding": "{company} funding round investment raised venture capital",
    "growth": "{company} revenue growth hiring expansion customers",
    "leadership": "{company} CEO founder leadership team hiring executive",
    "general": "{company} company news recent developments business",
}


class CompanyIntelligenceInput(BaseModel):
    company: str = Field(..., min_length=1)
    focus: Literal["funding", "growth", "leadership", "general"] = "general"


class CompanyIntelligenceTool(CapabilityTool):
    name = "company_intelligence"
    provider = "exa"
    operation = "searchWithContent"
    input_model = CompanyIntelligenceInput

    def __init__(self, log_store, exa: ExaService):
        super().__init__(log_store)
        self.exa = exa

    async def execute(self, params: CompanyIntelligenceInput, context: Optional[EnrichmentContext]) -> Dict[str, Any]:
        query = FOCUS_QUERIES[params.focus].format(company=params.company)
        since = (datetime.utcnow() - timedelta(days=LOOKBACK_DAYS)).strftime("%Y-%m-%dT00:00:00.000Z")

        response = await self.call_provider(
            context,
            {"query": query, "numResults": MAX_RESULTS, "startPublishedDate": since, "focus": params.focus},
            lambda: self.exa.search_and_contents(
                query,
                num_results=MAX_RESULTS,
                start_published_date=since,
                max_characters=MAX_TEXT_CHARACTERS,
            )
        )

        results = []
        for item in response.data.get("results", [])[:MAX_RESULTS]:
            results.append({
                "title": item.get("title"),
                "url": item.get("url"),
                "published_date": item.get("publishedDate"),
                "excerpt": (item.get("text") or "")[:EXCERPT_LENGTH],
                "score": item.get("score"),
            })

        return {
            "company": params.company,
            "focus": params.focus,
            "query": query,
            "results": results,
            "total_results": len(results),
        }
