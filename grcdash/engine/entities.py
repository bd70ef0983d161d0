"""Entity records consumed by the dashboard engine.

These mirror the shapes the entity stores hand over for one render pass.
Cross-references are plain ids and are never checked for integrity here;
aggregators skip links whose target is missing.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

# Action statuses
ACTION_OPEN = "OPEN"
ACTION_IN_PROGRESS = "IN_PROGRESS"
ACTION_COMPLETED = "COMPLETED"
ACTION_OVERDUE = "OVERDUE"
ACTION_PROPOSED_CLOSED = "PROPOSED_CLOSED"

# Approval / change statuses
APPROVAL_APPROVED = "APPROVED"
APPROVAL_PENDING = "PENDING_APPROVAL"
APPROVAL_REJECTED = "REJECTED"

CHANGE_PENDING = "PENDING"
CHANGE_APPROVED = "APPROVED"
CHANGE_REJECTED = "REJECTED"

# Control types and test results
CONTROL_TYPES = ["PREVENTATIVE", "DETECTIVE", "DIRECTIVE", "CORRECTIVE"]
TEST_PASS = "PASS"
TEST_FAIL = "FAIL"
TEST_PARTIALLY = "PARTIALLY"
TEST_NOT_TESTED = "NOT_TESTED"
TEST_NOT_DUE = "NOT_DUE"

# Risk acceptance statuses
RA_PROPOSED = "PROPOSED"
RA_CCRO_REVIEW = "CCRO_REVIEW"
RA_AWAITING_APPROVAL = "AWAITING_APPROVAL"
RA_APPROVED = "APPROVED"
RA_REJECTED = "REJECTED"
RA_RETURNED = "RETURNED"
RA_EXPIRED = "EXPIRED"

# Compliance
COMPLIANT = "COMPLIANT"
PARTIALLY_COMPLIANT = "PARTIALLY_COMPLIANT"
NON_COMPLIANT = "NON_COMPLIANT"
NOT_ASSESSED = "NOT_ASSESSED"
GAP_IDENTIFIED = "GAP_IDENTIFIED"
COMPLIANCE_STATUSES = [COMPLIANT, PARTIALLY_COMPLIANT, NON_COMPLIANT, NOT_ASSESSED, GAP_IDENTIFIED]

CERT_DUE = "DUE"
CERT_OVERDUE = "OVERDUE"

POLICY_OVERDUE = "OVERDUE"
POLICY_ARCHIVED = "ARCHIVED"

RAG_GOOD = "GOOD"
RAG_WARNING = "WARNING"
RAG_HARM = "HARM"


class EntityChange(BaseModel):
    """A proposed field-level edit embedded in a risk, action or control."""
    id: str
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    proposed_by: Optional[str] = None
    proposed_at: datetime
    status: str = CHANGE_PENDING
    is_update: bool = False


class RiskControlLink(BaseModel):
    control_id: str


class Risk(BaseModel):
    id: str
    reference: str
    name: str
    owner_id: Optional[str] = None
    residual_likelihood: int = 1
    residual_impact: int = 1
    review_frequency_days: Optional[int] = None
    review_requested: bool = False
    last_reviewed: Optional[datetime] = None
    in_focus: bool = False
    approval_status: str = APPROVAL_APPROVED
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    control_links: list[RiskControlLink] = Field(default_factory=list)
    changes: list[EntityChange] = Field(default_factory=list)


class Action(BaseModel):
    id: str
    reference: str
    title: str
    status: str = ACTION_OPEN
    priority: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[datetime] = None
    approval_status: str = APPROVAL_APPROVED
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    changes: list[EntityChange] = Field(default_factory=list)


class ControlTestResult(BaseModel):
    id: str
    result: str
    tested_date: datetime


class Control(BaseModel):
    id: str
    control_ref: str
    control_name: str
    control_type: Optional[str] = None
    is_active: bool = True
    approval_status: str = APPROVAL_APPROVED
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    test_results: list[ControlTestResult] = Field(default_factory=list)
    changes: list[EntityChange] = Field(default_factory=list)


class PolicyControlLink(BaseModel):
    control_id: str


class PolicyObligationSection(BaseModel):
    name: str
    regulation_refs: list[str] = Field(default_factory=list)
    control_refs: list[str] = Field(default_factory=list)


class PolicyObligation(BaseModel):
    id: str
    reference: str
    description: str = ""
    regulation_refs: list[str] = Field(default_factory=list)
    control_refs: list[str] = Field(default_factory=list)
    sections: list[PolicyObligationSection] = Field(default_factory=list)


class Policy(BaseModel):
    id: str
    reference: str
    name: str
    status: str = "CURRENT"
    next_review_date: Optional[datetime] = None
    control_links: list[PolicyControlLink] = Field(default_factory=list)
    obligations: list[PolicyObligation] = Field(default_factory=list)


class Regulation(BaseModel):
    id: str
    reference: str
    name: str
    is_applicable: bool = True
    compliance_status: str = NOT_ASSESSED
    next_review_date: Optional[datetime] = None


class CertifiedPerson(BaseModel):
    id: str
    user_id: str
    status: str = "CURRENT"
    expiry_date: Optional[datetime] = None


class RiskAcceptance(BaseModel):
    id: str
    reference: str
    title: str
    status: str = RA_PROPOSED
    risk_id: Optional[str] = None
    review_date: Optional[datetime] = None


class ConsumerDutyMeasure(BaseModel):
    id: str
    measure_id: str
    name: str
    rag_status: str = RAG_GOOD
    last_updated_at: Optional[datetime] = None


class ConsumerDutyOutcome(BaseModel):
    id: str
    name: str
    rag_status: str = RAG_GOOD
    measures: list[ConsumerDutyMeasure] = Field(default_factory=list)


class Report(BaseModel):
    id: str
    title: str
    period: str = ""
    status: str = "DRAFT"
    updated_at: Optional[datetime] = None


class DashboardNotification(BaseModel):
    id: str
    message: str
    type: str = "info"
    active: bool = True
    target_roles: list[str] = Field(default_factory=list)
    expires_at: Optional[datetime] = None


class AuditLogEntry(BaseModel):
    id: str
    user_id: str
    action: str
    timestamp: datetime


class HorizonItem(BaseModel):
    id: str
    title: str
    urgency: str = "LOW"
    status: str = "MONITORING"
    in_focus: bool = False
    deadline: Optional[datetime] = None


class EntitySnapshot(BaseModel):
    """All collections for one render pass, fetched together."""
    risks: list[Risk] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    controls: list[Control] = Field(default_factory=list)
    policies: list[Policy] = Field(default_factory=list)
    regulations: list[Regulation] = Field(default_factory=list)
    certified_persons: list[CertifiedPerson] = Field(default_factory=list)
    risk_acceptances: list[RiskAcceptance] = Field(default_factory=list)
    outcomes: list[ConsumerDutyOutcome] = Field(default_factory=list)
    reports: list[Report] = Field(default_factory=list)
    notifications: list[DashboardNotification] = Field(default_factory=list)
    audit_logs: list[AuditLogEntry] = Field(default_factory=list)
    horizon_items: list[HorizonItem] = Field(default_factory=list)
    assigned_measure_ids: list[str] = Field(default_factory=list)
