# backend/leadflow/services/prompts.py
"""Prompt text for the synthesis phase."""

import json
from typing import Any, Dict

from leadflow.schemas import EnrichmentInput, GatheredSignals, ToolSuccess

DEFAULT_PAGE_VIEWS = 5
DEFAULT_TIME_ON_SITE = 180
SIGNAL_CHAR_LIMIT = 4000

SYNTHESIS_SYSTEM_PROMPT = """You are a senior B2B lead-qualification analyst.
Combine the gathered signals into a qualification assessment.

SCORING FRAMEWORK (each category 0-100):
- firmographic (35%): company size, industry fit, funding, growth, geography
- behavioral (25%): page views, time on site, downloads, email engagement, return visits
- intent (25%): urgency, budget, timeline, buying stage, decision-maker involvement (BANT)
- technographic (15%): technology stack, integration fit, technical maturity

CLASSIFICATION:
- SQL: overall 70+ (sales-ready, immediate follow-up)
- MQL: overall 40-69 (nurture with targeted content)
- UNQUALIFIED: overall below 40

Signals marked UNAVAILABLE could not be gathered. Do not invent data for them;
score the affected category conservatively and lower your confidence.
confidence is 0-100 and reflects how complete and consistent the evidence is.
Give one short reasoning sentence per category and concrete, personalized next steps."""


def _signal_block(label: str, result) -> str:
    if isinstance(result, ToolSuccess):
        body = json.dumps(result.data, default=str)
        if len(body) > SIGNAL_CHAR_LIMIT:
            body = body[:SIGNAL_CHAR_LIMIT] + "...(truncated)"
        return f"## {label}\n{body}"
    note = f"UNAVAILABLE ({result.error}: {result.details})"
    if result.fallback:
        note += f"\nNeutral fallback values: {json.dumps(result.fallback)}"
    return f"## {label}\n{note}"


def build_analysis_prompt(enrichment_input: EnrichmentInput, signals: GatheredSignals) -> str:
    behavioral: Dict[str, Any] = {
        "page_views": DEFAULT_PAGE_VIEWS,
        "time_on_site_seconds": DEFAULT_TIME_ON_SITE,
    }
    if enrichment_input.behavioral_data:
        data = enrichment_input.behavioral_data
        behavioral = {
            "page_views": data.page_views,
            "time_on_site_seconds": data.time_on_site,
            "downloaded_resources": data.downloaded_resources,
            "emails_opened": data.email_engagement.opened,
            "emails_clicked": data.email_engagement.clicked,
            "previous_visits": data.previous_visits,
        }

    lead = (
        f"# Lead\n"
        f"Contact: {enrichment_input.contact_name} <{enrichment_input.email}>\n"
        f"Company: {enrichment_input.company_name} ({enrichment_input.domain})\n"
        f"Website: {enrichment_input.website or 'n/a'}\n"
        f"Country: {enrichment_input.country or 'n/a'}\n"
        f"Company size: {enrichment_input.company_size or 'n/a'}\n"
        f"Product interest: {enrichment_input.product_interest or 'n/a'}\n"
        f"Message: {enrichment_input.message}\n\n"
        f"# Behavioral data\n{json.dumps(behavioral)}"
    )

    blocks = [
        _signal_block("Intent analysis", signals.intent_analysis),
        _signal_block("Company intelligence", signals.company_intelligence),
        _signal_block("Website analysis", signals.website_analysis),
        _signal_block("Competitive intelligence", signals.competitive_intelligence),
    ]
    return lead + "\n\n# Gathered signals\n" + "\n\n".join(blocks)
