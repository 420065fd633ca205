# tests/services/test_costs.py

import pytest

from leadflow.services.costs import (
    DEFAULT_OPERATION_ESTIMATE,
    estimate_cost,
    extract_model_name,
    provider_from_model,
)


@pytest.mark.unit
class TestCostLedger:
    """Static price table lookups"""

    def test_openai_tokens_use_blended_average(self):
        assert estimate_cost("openai", "synthesis", tokens=1000, model="gpt-4o") == pytest.approx(0.01)

    def test_openai_mini_is_cheaper(self):
        mini = estimate_cost("openai", "synthesis", tokens=1000, model="gpt-4o-mini")
        assert mini == pytest.approx(0.000375)

    def test_prefixed_model_names_are_resolved(self):
        assert extract_model_name("openai/gpt-4o") == "gpt-4o"
        assert estimate_cost("openai", tokens=1000, model="openai/gpt-4o") == pytest.approx(0.01)

    def test_perplexity_tokens(self):
        assert estimate_cost("perplexity", "competitive-analysis", tokens=600, model="sonar-pro") == pytest.approx(0.0006)

    def test_exa_search_with_content(self):
        assert estimate_cost("exa", "searchWithContent", units=1) == pytest.approx(0.002)
        assert estimate_cost("exa", "searchWithContent") == pytest.approx(0.002)
        assert estimate_cost("exa", "unknown-op") == pytest.approx(0.001)

    def test_firecrawl_is_per_page(self):
        assert estimate_cost("firecrawl", "crawl", units=5) == pytest.approx(0.1)
        assert estimate_cost("firecrawl", "crawl") == pytest.approx(0.02)

    def test_unknown_quantities_fall_back_to_estimate(self):
        assert estimate_cost("openai", "synthesis") == DEFAULT_OPERATION_ESTIMATE
        assert estimate_cost("perplexity") == DEFAULT_OPERATION_ESTIMATE
        assert estimate_cost("someone-else", "thing", tokens=10) == DEFAULT_OPERATION_ESTIMATE

    def test_provider_from_model(self):
        assert provider_from_model("gpt-4o") == "openai"
        assert provider_from_model("perplexity/sonar") == "perplexity"
        assert provider_from_model("sonar-pro") == "perplexity"
        assert provider_from_model("claude-x") == "unknown"
        assert provider_from_model("") == "unknown"
