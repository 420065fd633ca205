"""Schemas for the contact-form intake API."""

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from typing import Optional, List, Dict, Any


class SubmissionCreate(BaseModel):
    """Contact form payload."""
    model_config = ConfigDict(populate_by_name=True)

    contact_name: str = Field(..., alias="contactName", min_length=2, max_length=255)
    company_email: EmailStr = Field(..., alias="companyEmail")
    contact_phone: Optional[str] = Field(None, alias="contactPhone", max_length=50)
    company_website: Optional[str] = Field(None, alias="companyWebsite", max_length=500)
    country: Optional[str] = Field(None, max_length=100)
    company_size: Optional[str] = Field(None, alias="companySize", max_length=50)
    product_interest: Optional[str] = Field(None, alias="productInterest", max_length=255)
    how_can_we_help: str = Field(..., alias="howCanWeHelp", min_length=20)
    privacy_policy: bool = Field(..., alias="privacyPolicy")
    mock_behavioral_data: bool = Field(True, alias="mockBehavioralData")
    session_id: Optional[str] = Field(None, alias="sessionId")

    @field_validator("privacy_policy")
    @classmethod
    def consent_required(cls, v):
        if not v:
            raise ValueError("privacy policy consent is required")
        return v

    @field_validator("company_website")
    @classmethod
    def normalize_website(cls, v):
        if not v:
            return None
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v


class SubmissionAck(BaseModel):
    success: bool = True
    message: str
    submission_id: str
    event_id: Optional[str] = None
    session_id: Optional[str] = None


class EventRequest(BaseModel):
    """Manual event send (replays, backfills)."""
    name: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None


class EventResponse(BaseModel):
    event_id: str
    name: str


class CostSummary(BaseModel):
    lead_id: str
    total_cost: float
    operations_count: int
    cost_by_provider: Dict[str, float]
    top_operation: Optional[Dict[str, Any]] = None


class RealtimeCosts(BaseModel):
    completed_operations: int
    pending_operations: int
    failed_operations: int
    actual_cost: float
    estimated_total: float


class LeadCostReport(BaseModel):
    summary: CostSummary
    realtime: RealtimeCosts


class ConsoleLogEntry(BaseModel):
    id: str
    session_id: str
    level: str
    message: str
    data: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None


class ConsoleLogList(BaseModel):
    session_id: str
    logs: List[ConsoleLogEntry]
