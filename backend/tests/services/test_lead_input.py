# tests/services/test_lead_input.py

import pytest

from leadflow.services.lead_input import (
    DOWNLOADABLE_RESOURCES,
    build_enrichment_input,
    extract_company_name,
    extract_domain,
    generate_mock_behavioral_data,
)


def _submission(**overrides):
    submission = {
        "id": "3f1c2a9e-0000-4000-8000-000000000001",
        "contact_name": "Jane Doe",
        "company_email": "jane@acme.io",
        "company_website": "https://www.acme.io/about",
        "how_can_we_help": "Looking for a better analytics platform for our team.",
        "product_interest": "Analytics Platform",
        "mock_behavioral_data": True,
    }
    submission.update(overrides)
    return submission


@pytest.mark.unit
class TestDomainExtraction:

    @pytest.mark.parametrize("value,expected", [
        ("Jane@Acme.io", "acme.io"),
        ("https://www.acme.io/about", "acme.io"),
        ("acme.io", "acme.io"),
        ("http://sub.acme.co.uk", "sub.acme.co.uk"),
        ("", ""),
        (None, ""),
    ])
    def test_extract_domain(self, value, expected):
        assert extract_domain(value) == expected

    def test_company_name(self):
        assert extract_company_name("acme-labs.io") == "Acme-labs"
        assert extract_company_name("") == "Unknown"


@pytest.mark.unit
class TestBuildInput:

    def test_website_wins_over_email(self):
        enrichment_input = build_enrichment_input(_submission(company_email="jane@gmail.com"), mock_behavioral=False)
        assert enrichment_input.domain == "acme.io"
        assert enrichment_input.company_name == "Acme"

    def test_email_domain_when_no_website(self):
        enrichment_input = build_enrichment_input(_submission(company_website=None), mock_behavioral=False)
        assert enrichment_input.domain == "acme.io"

    def test_correlation_id_is_submission_id(self):
        enrichment_input = build_enrichment_input(_submission(), mock_behavioral=False)
        assert enrichment_input.correlation_id == enrichment_input.submission_id
        assert enrichment_input.behavioral_data is None

    def test_mock_behavioral_data_ranges(self, seeded_rng):
        for _ in range(20):
            data = generate_mock_behavioral_data(seeded_rng)
            assert 3 <= data.page_views <= 18
            assert 120 <= data.time_on_site <= 419
            assert 1 <= len(data.downloaded_resources) <= len(DOWNLOADABLE_RESOURCES)
            assert 1 <= data.email_engagement.opened <= 5
            assert 0 <= data.email_engagement.clicked <= 2

    def test_submission_can_opt_out_of_mock_data(self, seeded_rng):
        enrichment_input = build_enrichment_input(_submission(mock_behavioral_data=False), rng=seeded_rng)
        assert enrichment_input.behavioral_data is None
