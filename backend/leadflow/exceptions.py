"""Exception hierarchy for the enrichment pipeline."""

from typing import Optional, Dict, Any


class LeadflowError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.__class__.__name__, "message": self.message, "details": self.details}


class NonRetriableError(LeadflowError):
    """Fails a workflow run immediately, without consuming retries."""


class SubmissionNotFound(NonRetriableError):
    def __init__(self, submission_id: str):
        super().__init__(f"Submission not found: {submission_id}", {"submission_id": submission_id})
        self.submission_id = submission_id


class LeadNotFound(NonRetriableError):
    def __init__(self, lead_id: str):
        super().__init__(f"Lead not found: {lead_id}", {"lead_id": lead_id})
        self.lead_id = lead_id


class LeadNotEnriched(NonRetriableError):
    """Routing was requested for a lead whose enrichment has not completed."""


class MalformedEvent(NonRetriableError):
    """Event payload is missing required fields or cannot be normalized."""


class ProviderError(LeadflowError):
    """An external provider call failed (transport, HTTP status, bad payload)."""

    def __init__(self, provider: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{provider}: {message}", details)
        self.provider = provider


class SynthesisFailure(LeadflowError):
    """The structured-generation call did not produce a valid enrichment result."""


class PersistenceFailure(LeadflowError):
    """Writing companies or leads failed; the transaction was rolled back."""


class ProviderTimeout(ProviderError):
    """The provider did not answer within the configured timeout."""
