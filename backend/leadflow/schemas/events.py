"""Event payloads exchanged through the workflow event bus."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal

LEAD_SUBMITTED = "lead/submitted"
LEAD_ENRICHED = "lead/enriched"


class LeadSubmitted(BaseModel):
    """
    Payload of `lead/submitted`.

    Accepts the camelCase wire names as well as legacy snake_case keys.
    """
    model_config = ConfigDict(populate_by_name=True)

    submission_id: str = Field(alias="submissionId", min_length=1)
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class LeadEnriched(BaseModel):
    """Payload of `lead/enriched`."""
    model_config = ConfigDict(populate_by_name=True)

    lead_id: str = Field(alias="leadId", min_length=1)
    classification: Literal["SQL", "MQL", "UNQUALIFIED"]
    score: float = Field(ge=0, le=100)
    contact_name: str = Field(alias="contactName")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
