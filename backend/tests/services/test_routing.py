# tests/services/test_routing.py

import pytest

from leadflow.services.routing import (
    determine_routing,
    get_routing_action_description,
    notification_actions,
)


@pytest.mark.unit
class TestRouting:

    def test_sql_goes_to_sales(self):
        decision = determine_routing("SQL", 82.4, "Jane Doe")
        assert decision.action == "sales_notification"
        assert decision.priority == "immediate"
        assert decision.message == (
            "High-priority lead Jane Doe routed to sales team - immediate follow-up recommended (Score: 82)"
        )

    def test_mql_goes_to_nurture(self):
        decision = determine_routing("MQL", 55.6, "Jane Doe")
        assert decision.action == "marketing_nurture"
        assert decision.priority == "standard"
        assert decision.message == "Marketing qualified lead Jane Doe added to nurture sequence (Score: 56)"

    def test_unqualified_goes_to_newsletter(self):
        decision = determine_routing("UNQUALIFIED", 12, "Jane Doe")
        assert decision.action == "newsletter_signup"
        assert decision.priority == "low"
        assert decision.message.endswith("(Score: 12)")

    def test_unknown_classification_gets_low_priority(self):
        assert determine_routing("SOMETHING", 99, "Jane").action == "newsletter_signup"

    def test_deterministic(self):
        assert determine_routing("SQL", 75, "Jane") == determine_routing("SQL", 75, "Jane")

    def test_descriptions(self):
        assert "sales" in get_routing_action_description("sales_notification")
        assert get_routing_action_description("carrier_pigeon") == "Unknown routing action"

    def test_notification_channels(self):
        decision = determine_routing("SQL", 90, "Jane")
        assert "slack:#sales-alerts" in notification_actions(decision)
        assert notification_actions(determine_routing("UNQUALIFIED", 10, "Jane")) == ["email:newsletter-list"]
