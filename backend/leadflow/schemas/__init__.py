"""Pydantic schemas for request/response validation and workflow payloads."""

from leadflow.schemas.enrichment import (
    BehavioralData,
    EmailEngagement,
    EnrichmentInput,
    EnrichmentContext,
    ToolSuccess,
    ToolError,
    ToolResult,
    IntentAnalysis,
    GatheredSignals,
    CompanyOverview,
    CompanyEnrichedData,
    CategoryScores,
    ScoreReasoning,
    RecommendedActions,
    SynthesisOutput,
    LeadScores,
    Classification,
    EnrichmentResult,
    ProviderResponse,
)
from leadflow.schemas.events import LEAD_SUBMITTED, LEAD_ENRICHED, LeadSubmitted, LeadEnriched
from leadflow.schemas.submission import (
    SubmissionCreate,
    SubmissionAck,
    EventRequest,
    EventResponse,
    CostSummary,
    RealtimeCosts,
    LeadCostReport,
    ConsoleLogEntry,
    ConsoleLogList,
)
