"""Capability tools used during the gathering phase."""

from leadflow.tools.base import CapabilityTool
from leadflow.tools.company_intelligence import CompanyIntelligenceTool
from leadflow.tools.website_analysis import WebsiteAnalysisTool
from leadflow.tools.competitive_intelligence import CompetitiveIntelligenceTool
from leadflow.tools.intent_analysis import (
    IntentAnalysisTool,
    fallback_intent_analysis,
    apply_explicit_signals,
)

__all__ = [
    "CapabilityTool",
    "CompanyIntelligenceTool",
    "WebsiteAnalysisTool",
    "CompetitiveIntelligenceTool",
    "IntentAnalysisTool",
    "fallback_intent_analysis",
    "apply_explicit_signals",
]
