# backend/leadflow/models.py
"""
SQLAlchemy ORM models.

Submissions are the immutable intake records; companies and leads are written
by the enrichment workflow; enrichment_logs, lead_activities and console_logs
are append-mostly telemetry. The workflow_* tables back the durable event
queue and step memoization.
"""

from sqlalchemy import (
    Column, String, Boolean, Integer, Numeric, Text, DateTime, Float, Index,
    ForeignKey, UniqueConstraint, Uuid
)
from leadflow.database import Base, JSONType
from datetime import datetime
import uuid


# ============================================================================
# STATUS VALUES
# ============================================================================

ENRICHMENT_STATUSES = ("pending", "enriching", "completed", "failed")
ROUTING_STATUSES = ("pending", "routed", "notified")
LOG_STATUSES = ("pending", "success", "failed", "timeout")
EVENT_STATUSES = ("pending", "processing", "completed", "failed")
RUN_STATUSES = ("running", "completed", "failed", "skipped")


# ============================================================================
# INTAKE
# ============================================================================

class Submission(Base):
    """Raw contact-form submission. Never modified after creation."""
    __tablename__ = "submissions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    contact_name = Column(String(255), nullable=False)
    company_email = Column(String(255), nullable=False)
    contact_phone = Column(String(50))
    company_website = Column(String(500))
    country = Column(String(100))
    company_size = Column(String(50))
    product_interest = Column(String(255))
    how_can_we_help = Column(Text, nullable=False)
    privacy_policy = Column(Boolean, nullable=False, default=False)
    mock_behavioral_data = Column(Boolean, nullable=False, default=True)
    ip_address = Column(String(64))
    user_agent = Column(Text)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    def __repr__(self):
        return f"<Submission {self.id} {self.company_email}>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "contact_name": self.contact_name,
            "company_email": self.company_email,
            "contact_phone": self.contact_phone,
            "company_website": self.company_website,
            "country": self.country,
            "company_size": self.company_size,
            "product_interest": self.product_interest,
            "how_can_we_help": self.how_can_we_help,
            "privacy_policy": self.privacy_policy,
            "mock_behavioral_data": self.mock_behavioral_data,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ============================================================================
# COMPANIES & LEADS
# ============================================================================

class Company(Base):
    """Company identified by domain. Upserted on every enrichment."""
    __tablename__ = "companies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    domain = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    industry = Column(String(255))
    employee_count = Column(Integer)
    revenue = Column(String(100))
    location = Column(String(255))

    enrichment_status = Column(String(20), nullable=False, default="pending")
    last_enriched_at = Column(DateTime(timezone=True))
    enrichment_version = Column(Integer, nullable=False, default=1)
    enriched_data = Column(JSONType, default=dict)
    data_cached_until = Column(DateTime(timezone=True))
    enrichment_cost = Column(Numeric(10, 6, asdecimal=False), default=0)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Company {self.domain} v{self.enrichment_version}>"

    @property
    def cache_valid(self) -> bool:
        if not self.data_cached_until:
            return False
        return self.data_cached_until.replace(tzinfo=None) > datetime.utcnow()

    def to_dict(self):
        return {
            "id": str(self.id),
            "domain": self.domain,
            "name": self.name,
            "industry": self.industry,
            "employee_count": self.employee_count,
            "revenue": self.revenue,
            "location": self.location,
            "enrichment_status": self.enrichment_status,
            "last_enriched_at": self.last_enriched_at.isoformat() if self.last_enriched_at else None,
            "enrichment_version": self.enrichment_version,
            "enriched_data": self.enriched_data or {},
            "data_cached_until": self.data_cached_until.isoformat() if self.data_cached_until else None,
        }


class Lead(Base):
    """Enriched, scored and routed prospect. One per submission."""
    __tablename__ = "leads"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(Uuid(as_uuid=True), ForeignKey("submissions.id"), nullable=False, unique=True)
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id", ondelete="SET NULL"))

    # Contact
    contact_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50))
    country = Column(String(100))
    company_size = Column(String(50))
    product_interest = Column(String(255))
    message = Column(Text)
    behavioral_data = Column(JSONType)

    # Scores: integers for display, unrounded overall for classification
    firmographic_score = Column(Integer)
    behavioral_score = Column(Integer)
    intent_score = Column(Integer)
    technographic_score = Column(Integer)
    lead_score = Column(Integer)
    lead_score_exact = Column(Float)

    classification = Column(String(20))
    classification_confidence = Column(Numeric(5, 2, asdecimal=False))
    intent_analysis = Column(JSONType)
    enrichment_data = Column(JSONType)

    enrichment_status = Column(String(20), nullable=False, default="pending")
    routing_status = Column(String(20), nullable=False, default="pending")
    routing_action = Column(String(50))
    routing_priority = Column(String(20))
    routing_message = Column(Text)

    ip_address = Column(String(64))
    user_agent = Column(Text)

    enriched_at = Column(DateTime(timezone=True))
    routed_at = Column(DateTime(timezone=True))
    notified_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_leads_classification", "classification"),
        Index("idx_leads_routing_status", "routing_status"),
    )

    def __repr__(self):
        return f"<Lead {self.email} {self.classification} ({self.lead_score})>"

    @property
    def is_enriched(self) -> bool:
        return self.enrichment_status == "completed"

    def to_dict(self):
        return {
            "id": str(self.id),
            "submission_id": str(self.submission_id),
            "company_id": str(self.company_id) if self.company_id else None,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "country": self.country,
            "company_size": self.company_size,
            "product_interest": self.product_interest,
            "message": self.message,
            "behavioral_data": self.behavioral_data,
            "scores": {
                "firmographic": self.firmographic_score,
                "behavioral": self.behavioral_score,
                "intent": self.intent_score,
                "technographic": self.technographic_score,
                "overall": self.lead_score,
                "overall_exact": self.lead_score_exact,
            },
            "classification": self.classification,
            "classification_confidence": self.classification_confidence,
            "intent_analysis": self.intent_analysis,
            "enrichment_data": self.enrichment_data,
            "enrichment_status": self.enrichment_status,
            "routing": {
                "status": self.routing_status,
                "action": self.routing_action,
                "priority": self.routing_priority,
                "message": self.routing_message,
                "routed_at": self.routed_at.isoformat() if self.routed_at else None,
                "notified_at": self.notified_at.isoformat() if self.notified_at else None,
            },
            "enriched_at": self.enriched_at.isoformat() if self.enriched_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ============================================================================
# TELEMETRY
# ============================================================================

class EnrichmentLog(Base):
    """One row per external provider call."""
    __tablename__ = "enrichment_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    correlation_id = Column(String(100), index=True)
    lead_id = Column(Uuid(as_uuid=True), ForeignKey("leads.id", ondelete="SET NULL"))
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id", ondelete="SET NULL"))

    provider = Column(String(50), nullable=False)
    operation = Column(String(100), nullable=False)
    request_data = Column(JSONType)
    response_data = Column(JSONType)

    started_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime(timezone=True))
    duration_ms = Column(Integer)

    tokens_used = Column(Integer)
    cost = Column(Numeric(10, 6, asdecimal=False))
    currency = Column(String(3), nullable=False, default="USD")

    status = Column(String(20), nullable=False, default="pending")
    error_message = Column(Text)
    retry_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_enrichment_logs_lead", "lead_id"),
        Index("idx_enrichment_logs_provider", "provider", "operation"),
    )

    def __repr__(self):
        return f"<EnrichmentLog {self.provider}.{self.operation} {self.status}>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "correlation_id": self.correlation_id,
            "lead_id": str(self.lead_id) if self.lead_id else None,
            "company_id": str(self.company_id) if self.company_id else None,
            "provider": self.provider,
            "operation": self.operation,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "tokens_used": self.tokens_used,
            "cost": self.cost,
            "currency": self.currency,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class LeadActivity(Base):
    """Audit trail of what happened to a lead after enrichment."""
    __tablename__ = "lead_activities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id = Column(Uuid(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    activity_type = Column(String(50), nullable=False)
    description = Column(Text)
    activity_metadata = Column(JSONType)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        Index("idx_lead_activities_lead", "lead_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": str(self.id),
            "lead_id": str(self.lead_id),
            "activity_type": self.activity_type,
            "description": self.description,
            "metadata": self.activity_metadata or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ConsoleLog(Base):
    """Progress messages shown in the live console, grouped by session."""
    __tablename__ = "console_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(String(100), nullable=False, index=True)
    level = Column(String(10), nullable=False, default="info")
    message = Column(Text, nullable=False)
    data = Column(JSONType)
    timestamp = Column(DateTime(timezone=True), default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "session_id": self.session_id,
            "level": self.level,
            "message": self.message,
            "data": self.data,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


# ============================================================================
# WORKFLOW ENGINE
# ============================================================================

class WorkflowEvent(Base):
    """Durable event queue entry."""
    __tablename__ = "workflow_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    data = Column(JSONType, nullable=False, default=dict)
    idempotency_key = Column(String(255), unique=True)

    status = Column(String(20), nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    available_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    locked_at = Column(DateTime(timezone=True))
    last_error = Column(Text)

    received_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_workflow_events_queue", "status", "available_at"),
    )

    def __repr__(self):
        return f"<WorkflowEvent {self.name} {self.status} attempts={self.attempts}>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "data": self.data,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "received_at": self.received_at.isoformat() if self.received_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class WorkflowRun(Base):
    """One execution of a workflow function, identified by (function, run key)."""
    __tablename__ = "workflow_runs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    function_id = Column(String(100), nullable=False)
    run_key = Column(String(255), nullable=False)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("workflow_events.id", ondelete="SET NULL"))

    status = Column(String(20), nullable=False, default="running")
    current_state = Column(String(50), nullable=False, default="RECEIVED")
    attempts = Column(Integer, nullable=False, default=0)
    lease_until = Column(DateTime(timezone=True))
    output = Column(JSONType)
    error = Column(Text)

    started_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("function_id", "run_key", name="uq_workflow_runs_function_key"),
    )

    def __repr__(self):
        return f"<WorkflowRun {self.function_id}:{self.run_key} {self.status}/{self.current_state}>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "function_id": self.function_id,
            "run_key": self.run_key,
            "event_id": str(self.event_id) if self.event_id else None,
            "status": self.status,
            "current_state": self.current_state,
            "attempts": self.attempts,
            "output": self.output,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class WorkflowStep(Base):
    """Memoized output of a completed step."""
    __tablename__ = "workflow_steps"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid(as_uuid=True), ForeignKey("workflow_runs.id", ondelete="CASCADE"), nullable=False)
    step_name = Column(String(100), nullable=False)
    output = Column(JSONType)
    completed_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("run_id", "step_name", name="uq_workflow_steps_run_step"),
    )

    def to_dict(self):
        return {
            "step_name": self.step_name,
            "output": self.output,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
