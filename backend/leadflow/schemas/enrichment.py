"""Schemas shared by the capability tools, the scoring engine and the workflow."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Literal, Union, Annotated


# ============================================
# ENRICHMENT INPUT
# ============================================

class EmailEngagement(BaseModel):
    model_config = ConfigDict(frozen=True)

    opened: int = 0
    clicked: int = 0


class BehavioralData(BaseModel):
    """Website and email behaviour for a prospect (mocked until tracking exists)."""
    model_config = ConfigDict(frozen=True)

    page_views: int = Field(default=5, ge=0)
    time_on_site: int = Field(default=180, ge=0, description="Seconds")
    downloaded_resources: List[str] = Field(default_factory=list)
    email_engagement: EmailEngagement = Field(default_factory=EmailEngagement)
    previous_visits: int = Field(default=1, ge=0)


class EnrichmentInput(BaseModel):
    """Normalized, immutable view of a submission used for one enrichment run."""
    model_config = ConfigDict(frozen=True)

    submission_id: str
    contact_name: str
    email: str
    phone: Optional[str] = None
    website: Optional[str] = None
    country: Optional[str] = None
    company_size: Optional[str] = None
    product_interest: Optional[str] = None
    message: str = ""
    domain: str
    company_name: str
    behavioral_data: Optional[BehavioralData] = None
    correlation_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class EnrichmentContext(BaseModel):
    """Explicit correlation handle passed to every instrumented provider call."""
    model_config = ConfigDict(frozen=True)

    correlation_id: str
    session_id: Optional[str] = None
    lead_id: Optional[str] = None
    company_id: Optional[str] = None


# ============================================
# CAPABILITY TOOL RESULTS
# ============================================

class ToolSuccess(BaseModel):
    status: Literal["success"] = "success"
    tool: str
    data: Dict[str, Any]


class ToolError(BaseModel):
    """A degraded tool result. Synthesis treats it as an absent signal."""
    status: Literal["error"] = "error"
    tool: str
    error: str
    details: Optional[str] = None
    fallback: Optional[Dict[str, Any]] = None


ToolResult = Annotated[Union[ToolSuccess, ToolError], Field(discriminator="status")]


class IntentAnalysis(BaseModel):
    urgency: Literal["high", "medium", "low"]
    budget_mentioned: bool
    buying_stage: Literal["awareness", "consideration", "decision"]
    pain_points: List[str] = Field(default_factory=list)
    timeline: str = "unknown"
    decision_makers: bool = False
    keywords: List[str] = Field(default_factory=list)
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    intent_score: int = Field(ge=0, le=100)
    reasoning: str = ""
    is_fallback: bool = False


class GatheredSignals(BaseModel):
    """Exactly one result per capability tool, in a fixed shape."""

    company_intelligence: ToolResult
    website_analysis: ToolResult
    competitive_intelligence: ToolResult
    intent_analysis: ToolResult

    def items(self):
        return [
            ("company_intelligence", self.company_intelligence),
            ("website_analysis", self.website_analysis),
            ("competitive_intelligence", self.competitive_intelligence),
            ("intent_analysis", self.intent_analysis),
        ]

    def statuses(self) -> Dict[str, str]:
        return {name: result.status for name, result in self.items()}

    def intent(self) -> Optional[IntentAnalysis]:
        """Live intent analysis, else the neutral fallback, else None."""
        result = self.intent_analysis
        if isinstance(result, ToolSuccess):
            return IntentAnalysis.model_validate(result.data)
        if result.fallback:
            return IntentAnalysis.model_validate(result.fallback)
        return None


# ============================================
# SYNTHESIS
# ============================================

class CompanyOverview(BaseModel):
    name: str
    domain: str
    industry: Optional[str] = None
    size: Optional[str] = None
    employee_count: Optional[int] = None
    revenue: Optional[str] = None
    location: Optional[str] = None
    business_model: Optional[str] = None
    target_market: Optional[str] = None
    recent_signals: List[str] = Field(default_factory=list)


class CompanyEnrichedData(BaseModel):
    funding: Optional[str] = None
    tech_stack: List[str] = Field(default_factory=list)
    competitors: List[str] = Field(default_factory=list)
    news_signals: List[str] = Field(default_factory=list)
    website_findings: List[str] = Field(default_factory=list)
    social_presence: Optional[str] = None


class CategoryScores(BaseModel):
    firmographic: float = Field(ge=0, le=100)
    behavioral: float = Field(ge=0, le=100)
    intent: float = Field(ge=0, le=100)
    technographic: float = Field(ge=0, le=100)


class ScoreReasoning(BaseModel):
    firmographic: str = ""
    behavioral: str = ""
    intent: str = ""
    technographic: str = ""


class RecommendedActions(BaseModel):
    next_steps: List[str] = Field(default_factory=list)
    personalization_points: List[str] = Field(default_factory=list)
    potential_objections: List[str] = Field(default_factory=list)
    follow_up_timeline: str = ""


class SynthesisOutput(BaseModel):
    """Shape requested from the language model."""

    company_overview: CompanyOverview
    enriched_data: CompanyEnrichedData = Field(default_factory=CompanyEnrichedData)
    scores: CategoryScores
    confidence: float = Field(ge=0, le=100)
    reasoning: ScoreReasoning = Field(default_factory=ScoreReasoning)
    recommended_actions: RecommendedActions = Field(default_factory=RecommendedActions)


class LeadScores(CategoryScores):
    overall: float = Field(ge=0, le=100)


class Classification(BaseModel):
    result: Literal["SQL", "MQL", "UNQUALIFIED"]
    confidence: float = Field(ge=0, le=100)
    reasoning: ScoreReasoning = Field(default_factory=ScoreReasoning)


class EnrichmentResult(BaseModel):
    company_overview: CompanyOverview
    enriched_data: CompanyEnrichedData
    scores: LeadScores
    classification: Classification
    intent_analysis: Optional[IntentAnalysis] = None
    recommended_actions: RecommendedActions
    signal_status: Dict[str, str] = Field(default_factory=dict)
    processing_time_ms: int = 0


# ============================================
# PROVIDER RESPONSES
# ============================================

class ProviderResponse(BaseModel):
    """Normalized provider reply with the usage figures the cost ledger needs."""

    data: Any
    model: Optional[str] = None
    tokens_used: Optional[int] = None
    units: Optional[int] = None
