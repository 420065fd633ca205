# backend/leadflow/services/costs.py
"""
Cost Ledger - static price tables for every external provider.

Rates are USD. Language-model rates are blended per-token averages of the
published input/output prices; search and crawl rates are per operation or
per page. Pure functions only.
"""

from typing import Optional, Dict


COST_METADATA = {
    "currency": "USD",
    "last_updated": "2025-08-11",
    "note": "Language-model rates are blended input/output averages per token",
}

OPENAI_COSTS: Dict[str, Dict[str, float]] = {
    "gpt-4o": {
        "input": 0.000005,
        "output": 0.000015,
        "average": 0.000010,
    },
    "gpt-4o-mini": {
        "input": 0.00000015,
        "output": 0.0000006,
        "average": 0.000000375,
    },
    "default": {
        "average": 0.000010,
    },
}

PERPLEXITY_COSTS: Dict[str, float] = {
    "sonar-pro": 0.000001,
    "sonar": 0.0000005,
    "default": 0.000001,
}

EXA_COSTS: Dict[str, float] = {
    "search": 0.001,
    "searchWithContent": 0.002,
    "default": 0.001,
}

FIRECRAWL_COSTS: Dict[str, float] = {
    "perPage": 0.02,
    "perCredit": 0.01,
    "default": 0.02,
}

PROVIDER_MODELS = {
    "openai": ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"],
    "perplexity": ["sonar-pro", "sonar", "sonar-reasoning"],
}

# Estimate recorded when neither tokens nor units are known
DEFAULT_OPERATION_ESTIMATE = 0.1


def extract_model_name(model: str) -> str:
    """'openai/gpt-4o' -> 'gpt-4o'"""
    if not model:
        return ""
    return model.split("/")[-1]


def provider_from_model(model: str) -> str:
    if not model:
        return "unknown"
    if model.startswith("openai/"):
        return "openai"
    if model.startswith("perplexity/"):
        return "perplexity"
    name = extract_model_name(model)
    for provider, models in PROVIDER_MODELS.items():
        if name in models:
            return provider
    return "unknown"


def openai_cost(tokens: int, model: str = "gpt-4o") -> float:
    rates = OPENAI_COSTS.get(extract_model_name(model), OPENAI_COSTS["default"])
    return (tokens or 0) * rates["average"]


def perplexity_cost(tokens: int, model: str = "sonar-pro") -> float:
    rate = PERPLEXITY_COSTS.get(extract_model_name(model), PERPLEXITY_COSTS["default"])
    return (tokens or 0) * rate


def exa_cost(operation: str = "search", calls: int = 1) -> float:
    return EXA_COSTS.get(operation, EXA_COSTS["default"]) * calls


def firecrawl_cost(pages: int = 1) -> float:
    return FIRECRAWL_COSTS["perPage"] * (pages or 0)


def estimate_cost(
    provider: str,
    operation: Optional[str] = None,
    tokens: Optional[int] = None,
    model: Optional[str] = None,
    units: Optional[int] = None
) -> float:
    """
    Cost of one provider call.

    Token-priced providers use `tokens`; unit-priced providers use `units`
    (pages for crawl, calls for search). Falls back to the fixed per-operation
    estimate when the driving quantity is unknown.
    """
    if provider == "openai":
        if tokens is None:
            return DEFAULT_OPERATION_ESTIMATE
        return openai_cost(tokens, model or "gpt-4o")

    if provider == "perplexity":
        if tokens is None:
            return DEFAULT_OPERATION_ESTIMATE
        return perplexity_cost(tokens, model or "sonar-pro")

    if provider == "exa":
        return exa_cost(operation or "search", units if units is not None else 1)

    if provider == "firecrawl":
        if units is None:
            return FIRECRAWL_COSTS["default"]
        return firecrawl_cost(units)

    return DEFAULT_OPERATION_ESTIMATE
