# backend/leadflow/tools/website_analysis.py
"""Crawl the commercially relevant pages of a company website."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from leadflow.schemas import EnrichmentContext
from leadflow.services.firecrawl_service import FirecrawlService
from leadflow.tools.base import CapabilityTool

INCLUDE_PATHS = ["about", "pricing", "customers", "case-studies", "solutions"]
EXCLUDE_PATHS = ["blog", "news", "careers"]
PAGE_EXCERPT_LENGTH = 1500


class WebsiteAnalysisInput(BaseModel):
    website_url: str = Field(..., min_length=3)
    max_pages: int = Field(5, ge=1, le=10)

    @field_validator("website_url")
    @classmethod
    def add_scheme(cls, v):
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v


class WebsiteAnalysisTool(CapabilityTool):
    name = "website_analysis"
    provider = "firecrawl"
    operation = "crawl"
    input_model = WebsiteAnalysisInput

    def __init__(self, log_store, firecrawl: FirecrawlService):
        super().__init__(log_store)
        self.firecrawl = firecrawl

    async def execute(self, params: WebsiteAnalysisInput, context: Optional[EnrichmentContext]) -> Dict[str, Any]:
        response = await self.call_provider(
            context,
            {"url": params.website_url, "limit": params.max_pages,
             "includePaths": INCLUDE_PATHS, "excludePaths": EXCLUDE_PATHS},
            lambda: self.firecrawl.crawl(
                params.website_url,
                include_paths=INCLUDE_PATHS,
                exclude_paths=EXCLUDE_PATHS,
                limit=params.max_pages,
                only_main_content=True,
            )
        )

        pages = [
            {
                "url": page.get("url"),
                "title": page.get("title"),
                "excerpt": (page.get("markdown") or "")[:PAGE_EXCERPT_LENGTH],
            }
            for page in response.data.get("pages", [])[:params.max_pages]
        ]

        return {
            "url": params.website_url,
            "pages_crawled": len(pages),
            "pages": pages,
        }
