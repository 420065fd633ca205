# backend/leadflow/services/lead_input.py
"""
Builds the EnrichmentInput for a submission: domain and company name
derivation plus mock behavioural data.
"""

import random
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from leadflow.schemas import BehavioralData, EmailEngagement, EnrichmentInput

DOWNLOADABLE_RESOURCES = [
    "Product Overview PDF",
    "Pricing Guide",
    "Integration Documentation",
]


def extract_domain(value: Optional[str]) -> str:
    """
    Domain from an email address or URL, lowercased, without 'www.'.

    'Jane@Acme.io' -> 'acme.io', 'https://www.acme.io/about' -> 'acme.io'
    """
    if not value:
        return ""
    value = value.strip().lower()

    if "@" in value and "://" not in value:
        domain = value.rsplit("@", 1)[1]
    else:
        if "://" not in value:
            value = f"https://{value}"
        domain = urlparse(value).hostname or ""

    if domain.startswith("www."):
        domain = domain[4:]
    return domain.strip(".")


def extract_company_name(domain: str) -> str:
    """'acme-labs.io' -> 'Acme-labs'"""
    if not domain:
        return "Unknown"
    label = domain.split(".")[0]
    return label[:1].upper() + label[1:]


def generate_mock_behavioral_data(rng: Optional[random.Random] = None) -> BehavioralData:
    """Plausible website/email engagement until real tracking exists."""
    rng = rng or random.Random()
    resources = rng.sample(DOWNLOADABLE_RESOURCES, rng.randint(1, len(DOWNLOADABLE_RESOURCES)))
    return BehavioralData(
        page_views=rng.randint(3, 18),
        time_on_site=rng.randint(120, 419),
        downloaded_resources=resources,
        email_engagement=EmailEngagement(opened=rng.randint(1, 5), clicked=rng.randint(0, 2)),
        previous_visits=rng.randint(1, 5),
    )


def build_enrichment_input(
    submission: Dict[str, Any],
    mock_behavioral: bool = True,
    rng: Optional[random.Random] = None
) -> EnrichmentInput:
    """Build from a stored submission (as returned by Submission.to_dict())."""
    domain = extract_domain(submission.get("company_website")) or extract_domain(submission["company_email"])
    behavioral = None
    if mock_behavioral and submission.get("mock_behavioral_data", True):
        behavioral = generate_mock_behavioral_data(rng)

    return EnrichmentInput(
        submission_id=str(submission["id"]),
        contact_name=submission["contact_name"],
        email=submission["company_email"],
        phone=submission.get("contact_phone"),
        website=submission.get("company_website"),
        country=submission.get("country"),
        company_size=submission.get("company_size"),
        product_interest=submission.get("product_interest"),
        message=submission.get("how_can_we_help") or "",
        domain=domain,
        company_name=extract_company_name(domain),
        behavioral_data=behavioral,
        correlation_id=str(submission["id"]),
        ip_address=submission.get("ip_address"),
        user_agent=submission.get("user_agent"),
    )
