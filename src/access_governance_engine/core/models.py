"""Domain models for the access governance engine.

Persisted entities (owned by the storage collaborator, shaped here):
- AccessGrant          — per-user, per-application access record (external, read-mostly)
- SaasApp              — application catalog entry with category and risk score
- DirectoryUser        — directory entry with department and manager back-reference
- RoleTemplate         — named expected-access profile
- RoleAssignment       — user → role template link (at most one active per user)
- Campaign             — access certification campaign
- ReviewItem           — one access grant awaiting a reviewer decision
- AccessReviewDecision — IMMUTABLE audit record of a decision
- DriftAlert           — privilege drift finding
- OverprivilegedAlert  — overprivileged account finding

External risk signals consumed by the department aggregator:
- SodViolation, OAuthGrant, SecurityAnomaly

Outbound:
- EmailMessage
"""

import uuid
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

AccessType = Literal["viewer", "member", "admin", "owner"]
RiskLevel = Literal["low", "medium", "high", "critical"]
CampaignType = Literal["quarterly", "department", "high_risk", "admin", "new_hire", "departure"]
CampaignFrequency = Literal["quarterly", "semi_annual", "annual", "one_time"]
ScopeType = Literal["all", "department", "apps", "users"]
CampaignStatus = Literal["draft", "active", "completed"]
ReviewDecision = Literal["pending", "approved", "revoked", "deferred"]
ExecutionStatus = Literal["pending", "completed", "failed"]
AlertStatus = Literal[
    "open",
    "investigating",
    "in_remediation",
    "accepted_risk",
    "resolved",
    "false_positive",
]
RoleLevel = Literal["individual_contributor", "manager", "director", "executive"]

ADMIN_ACCESS_TYPES: frozenset[str] = frozenset({"admin", "owner"})

ACCESS_RANK: dict[str, int] = {"viewer": 0, "member": 1, "admin": 2, "owner": 3}


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# External records
# ---------------------------------------------------------------------------


class AccessGrant(BaseModel):
    """A user's access to one application.

    Attributes:
        user_id: Directory user identifier.
        app_id: Application identifier.
        app_name: Denormalized application name, when the access source knows it.
        access_type: viewer | member | admin | owner.
        granted_date: When the access was granted.
        last_access_date: Last observed use. None when never used.
        business_justification: Free-text justification recorded at grant time.
    """

    user_id: str
    app_id: str
    app_name: str | None = None
    access_type: AccessType = "member"
    granted_date: datetime | None = None
    last_access_date: datetime | None = None
    business_justification: str | None = None


def grants_by_app(grants: list[AccessGrant]) -> dict[str, AccessGrant]:
    """Collapse grants to one per app, keeping the most privileged."""
    by_app: dict[str, AccessGrant] = {}
    for grant in grants:
        current = by_app.get(grant.app_id)
        if current is None or ACCESS_RANK[grant.access_type] > ACCESS_RANK[current.access_type]:
            by_app[grant.app_id] = grant
    return by_app


class SaasApp(BaseModel):
    """Application catalog entry."""

    id: str
    name: str
    category: str | None = None
    risk_score: int = Field(default=0, ge=0, le=100)


class DirectoryUser(BaseModel):
    """Directory entry for a person.

    `manager_id` is a back-reference, not an ownership edge. It may hold the
    manager's user id or username and is resolved lazily through the directory.
    """

    id: str
    username: str
    name: str
    email: str | None = None
    department: str | None = None
    job_title: str | None = None
    manager_id: str | None = None
    is_active: bool = True


class SodViolation(BaseModel):
    """Segregation-of-duties violation reported by an upstream analyzer."""

    user_id: str
    severity: Literal["low", "medium", "high", "critical"] = "medium"
    status: str = "open"


class OAuthGrant(BaseModel):
    """Third-party OAuth grant held by a user."""

    user_id: str
    app_name: str
    risk_level: RiskLevel = "low"


class SecurityAnomaly(BaseModel):
    """Behavioural anomaly attributed to a user."""

    user_id: str
    detected_at: datetime
    status: str = "open"


# ---------------------------------------------------------------------------
# Role templates
# ---------------------------------------------------------------------------


class ExpectedApp(BaseModel):
    """An application a role is expected to hold."""

    app_id: str
    app_name: str
    access_type: AccessType = "member"
    required: bool = False


class RoleTemplateDefinition(BaseModel):
    """Caller-supplied content of a role template."""

    name: str
    description: str | None = None
    department: str | None = None
    level: RoleLevel | None = None
    expected_apps: list[ExpectedApp] = Field(default_factory=list)


class RoleTemplate(BaseModel):
    """Named expected-access profile for a department/level."""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    name: str
    description: str | None = None
    department: str | None = None
    level: RoleLevel | None = None
    expected_apps: list[ExpectedApp] = Field(default_factory=list)
    user_count: int = 0
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class RoleAssignment(BaseModel):
    """Assignment of a role template to a user."""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    user_id: str
    role_template_id: str
    assigned_by: str
    assignment_reason: str | None = None
    is_active: bool = True
    assigned_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------


class ScopeConfig(BaseModel):
    """Targets for a non-`all` campaign scope."""

    departments: list[str] = Field(default_factory=list)
    app_ids: list[str] = Field(default_factory=list)
    user_ids: list[str] = Field(default_factory=list)


class CampaignConfig(BaseModel):
    """Caller-supplied configuration for a new campaign."""

    name: str
    description: str | None = None
    campaign_type: CampaignType
    frequency: CampaignFrequency | None = None
    scope_type: ScopeType
    scope_config: ScopeConfig = Field(default_factory=ScopeConfig)
    start_date: datetime
    due_date: datetime
    auto_approve_on_timeout: bool = False


class Campaign(BaseModel):
    """Access certification campaign.

    Lifecycle: draft → active → completed (one way).
    Invariant: reviewed_items == approved_items + revoked_items + deferred_items <= total_items.
    """

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    name: str
    description: str | None = None
    campaign_type: CampaignType
    frequency: CampaignFrequency | None = None
    scope_type: ScopeType
    scope_config: ScopeConfig = Field(default_factory=ScopeConfig)
    start_date: datetime
    due_date: datetime
    auto_approve_on_timeout: bool = False
    status: CampaignStatus = "draft"
    total_items: int = 0
    reviewed_items: int = 0
    approved_items: int = 0
    revoked_items: int = 0
    deferred_items: int = 0
    created_by: str
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    completion_report_url: str | None = None


class ReviewItem(BaseModel):
    """One (campaign, user, app) access grant awaiting a reviewer decision."""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    campaign_id: str
    user_id: str
    user_name: str
    user_email: str | None = None
    user_department: str | None = None
    user_manager: str | None = None
    app_id: str
    app_name: str
    access_type: AccessType = "member"
    granted_date: datetime | None = None
    last_used_date: datetime | None = None
    days_since_last_use: int | None = None
    business_justification: str | None = None
    risk_level: RiskLevel = "low"
    reviewer_id: str | None = None
    reviewer_name: str | None = None
    decision: ReviewDecision = "pending"
    decision_notes: str | None = None
    execution_status: ExecutionStatus = "pending"
    execution_error: str | None = None
    reviewed_at: datetime | None = None
    executed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class AccessReviewDecision(BaseModel):
    """Immutable audit record of a review decision. Never updated or deleted."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    campaign_id: str
    review_item_id: str
    decision: ReviewDecision
    rationale: str | None = None
    reviewer_id: str
    reviewer_name: str
    reviewer_email: str | None = None
    execution_status: ExecutionStatus = "pending"
    timestamp: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class AppRef(BaseModel):
    """Application reference used in alert evidence lists."""

    app_id: str
    app_name: str


class ExecutionFailure(BaseModel):
    """A single failed revoke/downgrade call recorded on an alert."""

    app_id: str
    app_name: str
    error: str


class DriftAlert(BaseModel):
    """Persisted privilege drift finding for a user."""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    user_id: str
    user_name: str
    user_email: str | None = None
    user_department: str | None = None
    role_template_id: str
    role_name: str
    expected_apps: list[AppRef] = Field(default_factory=list)
    actual_apps: list[AppRef] = Field(default_factory=list)
    excess_apps: list[AppRef] = Field(default_factory=list)
    missing_apps: list[AppRef] = Field(default_factory=list)
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    risk_factors: list[str] = Field(default_factory=list)
    recommended_action: str
    recommended_apps_to_revoke: list[AppRef] = Field(default_factory=list)
    status: AlertStatus = "open"
    resolution: str | None = None
    resolution_notes: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    revocation_failures: list[ExecutionFailure] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


class AdminAppAccess(BaseModel):
    """One admin-level grant with the derived staleness figures."""

    app_id: str
    app_name: str
    access_type: AccessType
    app_category: str | None = None
    granted_at: datetime | None = None
    last_used_at: datetime | None = None
    days_since_last_use: int


class DowngradeRecommendation(BaseModel):
    """Recommended access-type downgrade for a stale admin grant."""

    app_id: str
    app_name: str
    current_access: AccessType
    recommended_access: AccessType = "member"


class OverprivilegedAlert(BaseModel):
    """Persisted overprivileged account finding for a user."""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    user_id: str
    user_name: str
    user_email: str | None = None
    user_department: str | None = None
    user_title: str | None = None
    admin_app_count: int
    admin_apps: list[AdminAppAccess] = Field(default_factory=list)
    stale_admin_count: int = 0
    stale_admin_apps: list[AdminAppAccess] = Field(default_factory=list)
    cross_dept_admin_count: int = 0
    cross_dept_admin_apps: list[AdminAppAccess] = Field(default_factory=list)
    long_running_admin_count: int = 0
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    risk_factors: list[str] = Field(default_factory=list)
    recommended_action: str
    recommended_apps_to_downgrade: list[DowngradeRecommendation] = Field(default_factory=list)
    least_privilege_alternative: str | None = None
    status: AlertStatus = "open"
    remediation_action: str | None = None
    remediation_plan: str | None = None
    remediation_deadline: datetime | None = None
    has_justification: bool = False
    justification_text: str | None = None
    justification_approved_by: str | None = None
    justification_expires_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    downgrade_failures: list[ExecutionFailure] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class EmailMessage(BaseModel):
    """Outbound email handed to the notification sender."""

    to: str
    from_address: str
    subject: str
    text: str
    html: str
