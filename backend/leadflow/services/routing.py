# backend/leadflow/services/routing.py
"""Routing decisions: which follow-up a lead gets based on its classification."""

from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict


class RoutingDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["sales_notification", "marketing_nurture", "newsletter_signup"]
    priority: Literal["immediate", "standard", "low"]
    message: str


ROUTING_ACTION_DESCRIPTIONS: Dict[str, str] = {
    "sales_notification": "Notify the sales team for immediate personal follow-up",
    "marketing_nurture": "Enroll in a targeted marketing nurture sequence",
    "newsletter_signup": "Add to the newsletter and long-term education flow",
}

NOTIFICATION_ACTIONS: Dict[str, List[str]] = {
    "sales_notification": ["slack:#sales-alerts", "email:sales-team", "crm:create-opportunity"],
    "marketing_nurture": ["email:nurture-sequence", "crm:update-lifecycle-stage"],
    "newsletter_signup": ["email:newsletter-list"],
}


def determine_routing(classification: str, score: float, contact_name: str) -> RoutingDecision:
    """Pure: same inputs, same decision. Unknown classifications get the low-priority path."""
    display_score = round(score)

    if classification == "SQL":
        return RoutingDecision(
            action="sales_notification",
            priority="immediate",
            message=(
                f"High-priority lead {contact_name} routed to sales team - "
                f"immediate follow-up recommended (Score: {display_score})"
            ),
        )

    if classification == "MQL":
        return RoutingDecision(
            action="marketing_nurture",
            priority="standard",
            message=f"Marketing qualified lead {contact_name} added to nurture sequence (Score: {display_score})",
        )

    return RoutingDecision(
        action="newsletter_signup",
        priority="low",
        message=f"Lead {contact_name} added to newsletter and long-term education flow (Score: {display_score})",
    )


def get_routing_action_description(action: str) -> str:
    return ROUTING_ACTION_DESCRIPTIONS.get(action, "Unknown routing action")


def notification_actions(decision: RoutingDecision) -> List[str]:
    """Channels that would be notified for this decision. Recorded, not delivered."""
    return list(NOTIFICATION_ACTIONS.get(decision.action, []))
