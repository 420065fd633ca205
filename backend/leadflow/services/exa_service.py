# backend/leadflow/services/exa_service.py
"""
Exa Service - neural web search with page contents.
Used by the company-intelligence tool.
"""

import logging
from typing import Dict, List, Optional, Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from leadflow.config import settings
from leadflow.exceptions import ProviderError, ProviderTimeout
from leadflow.schemas import ProviderResponse

logger = logging.getLogger(__name__)


class ExaService:
    """Exa search API client"""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.exa.ai",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        reraise=True
    )
    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={"x-api-key": self.api_key, "Content-Type": "application/json"}
            )
            response.raise_for_status()
            return response.json()

    async def search_and_contents(
        self,
        query: str,
        num_results: int = 5,
        start_published_date: Optional[str] = None,
        max_characters: int = 1000
    ) -> ProviderResponse:
        """
        Neural search returning page text.

        Returns ProviderResponse with data:
        {
            "results": [
                {"title": "...", "url": "...", "publishedDate": "...", "text": "...", "score": 0.42}
            ]
        }
        """
        if not self.api_key:
            raise ProviderError("exa", "EXA_API_KEY not configured")

        payload = {
            "query": query,
            "type": "neural",
            "numResults": num_results,
            "contents": {"text": {"maxCharacters": max_characters, "includeHtmlTags": False}},
        }
        if start_published_date:
            payload["startPublishedDate"] = start_published_date

        logger.info(f"🔍 Exa search: {query!r} (n={num_results})")

        try:
            data = await self._post("/search", payload)
        except httpx.TimeoutException as e:
            raise ProviderTimeout("exa", f"search timed out: {e}")
        except httpx.HTTPStatusError as e:
            raise ProviderError("exa", f"HTTP {e.response.status_code}", {"body": e.response.text[:500]})
        except httpx.HTTPError as e:
            raise ProviderError("exa", str(e))

        results: List[Dict[str, Any]] = data.get("results", [])
        logger.info(f"✅ Exa returned {len(results)} results")

        return ProviderResponse(data={"results": results}, units=1)


def create_exa_service(api_key: Optional[str] = None) -> ExaService:
    return ExaService(
        api_key=api_key or settings.EXA_API_KEY,
        base_url=settings.EXA_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )
