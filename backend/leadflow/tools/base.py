# backend/leadflow/tools/base.py
"""Base class for capability tools."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from leadflow.schemas import EnrichmentContext, ProviderResponse, ToolError, ToolSuccess
from leadflow.services.enrichment_logger import EnrichmentLogStore

logger = logging.getLogger(__name__)


class CapabilityTool(ABC):
    """
    One best-effort data-gathering operation.

    run() never raises: invalid input and provider failures come back as a
    ToolError so the caller can keep going with the remaining signals. Every
    provider call goes through the enrichment log store.
    """

    name: str = "tool"
    provider: str = "unknown"
    operation: str = "call"
    input_model: Type[BaseModel]

    def __init__(self, log_store: EnrichmentLogStore):
        self.log_store = log_store

    async def run(self, context: Optional[EnrichmentContext] = None, **kwargs):
        start_time = time.time()

        try:
            params = self.input_model(**kwargs)
        except ValidationError as e:
            logger.warning(f"⚠️ {self.name}: invalid input ({e.error_count()} errors)")
            return self.on_error(None, e, kwargs)

        try:
            data = await self.execute(params, context)
        except Exception as e:
            logger.warning(f"⚠️ {self.name} failed after {_elapsed_ms(start_time)}ms: {e}")
            return self.on_error(params, e, kwargs)

        logger.info(f"✅ {self.name} completed in {_elapsed_ms(start_time)}ms")
        return ToolSuccess(tool=self.name, data=data)

    @abstractmethod
    async def execute(self, params: BaseModel, context: Optional[EnrichmentContext]) -> Dict[str, Any]:
        """Gather the signal. May raise; run() converts failures."""
        raise NotImplementedError

    def on_error(self, params: Optional[BaseModel], error: Exception, raw_input: Dict[str, Any]) -> ToolError:
        return ToolError(
            tool=self.name,
            error=f"{self.name} failed",
            details=str(error),
        )

    async def call_provider(
        self,
        context: Optional[EnrichmentContext],
        request_data: Dict[str, Any],
        call: Callable[[], Awaitable[ProviderResponse]]
    ) -> ProviderResponse:
        return await self.log_store.instrumented_call(
            context, self.provider, self.operation, request_data, call
        )


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)
