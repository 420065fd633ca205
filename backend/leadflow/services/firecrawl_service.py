# backend/leadflow/services/firecrawl_service.py
"""
Firecrawl Service - crawl a company website and return page markdown.
Used by the website-analysis tool.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from leadflow.config import settings
from leadflow.exceptions import ProviderError, ProviderTimeout
from leadflow.schemas import ProviderResponse

logger = logging.getLogger(__name__)


class FirecrawlService:
    """Firecrawl v1 crawl API client"""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        max_polls: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        reraise=True
    )
    async def _request(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await client.request(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs)
        response.raise_for_status()
        return response.json()

    async def crawl(
        self,
        url: str,
        include_paths: Optional[List[str]] = None,
        exclude_paths: Optional[List[str]] = None,
        limit: int = 5,
        only_main_content: bool = True
    ) -> ProviderResponse:
        """
        Start a crawl job and poll until it finishes.

        Returns ProviderResponse with data:
        {"pages": [{"url": "...", "title": "...", "markdown": "..."}], "credits_used": 5}
        """
        if not self.api_key:
            raise ProviderError("firecrawl", "FIRECRAWL_API_KEY not configured")

        payload = {
            "url": url,
            "limit": limit,
            "includePaths": include_paths or [],
            "excludePaths": exclude_paths or [],
            "scrapeOptions": {"formats": ["markdown"], "onlyMainContent": only_main_content},
        }

        logger.info(f"🕷️ Firecrawl crawl: {url} (limit={limit})")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                started = await self._request(client, "POST", "/v1/crawl", json=payload)
                if not started.get("success") or not started.get("id"):
                    raise ProviderError("firecrawl", "crawl job was not accepted", {"response": started})

                job_id = started["id"]
                for _ in range(self.max_polls):
                    status = await self._request(client, "GET", f"/v1/crawl/{job_id}")
                    state = status.get("status")
                    if state == "completed":
                        return self._to_response(status)
                    if state in ("failed", "cancelled"):
                        raise ProviderError("firecrawl", f"crawl job {job_id} {state}")
                    await asyncio.sleep(self.poll_interval)

                raise ProviderTimeout("firecrawl", f"crawl job {job_id} did not finish after {self.max_polls} polls")

        except httpx.TimeoutException as e:
            raise ProviderTimeout("firecrawl", f"request timed out: {e}")
        except httpx.HTTPStatusError as e:
            raise ProviderError("firecrawl", f"HTTP {e.response.status_code}", {"body": e.response.text[:500]})
        except httpx.HTTPError as e:
            raise ProviderError("firecrawl", str(e))

    @staticmethod
    def _to_response(status: Dict[str, Any]) -> ProviderResponse:
        pages = []
        for item in status.get("data", []):
            metadata = item.get("metadata") or {}
            pages.append({
                "url": metadata.get("sourceURL") or metadata.get("url"),
                "title": metadata.get("title"),
                "markdown": item.get("markdown") or "",
            })

        logger.info(f"✅ Firecrawl finished: {len(pages)} pages")
        return ProviderResponse(
            data={"pages": pages, "credits_used": status.get("creditsUsed")},
            units=len(pages)
        )


def create_firecrawl_service(api_key: Optional[str] = None) -> FirecrawlService:
    return FirecrawlService(
        api_key=api_key or settings.FIRECRAWL_API_KEY,
        base_url=settings.FIRECRAWL_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        poll_interval=settings.FIRECRAWL_POLL_INTERVAL_SECONDS,
        max_polls=settings.FIRECRAWL_MAX_POLLS,
    )
