"""Pydantic request and response schemas for the access governance API.

Persisted entities (Campaign, ReviewItem, DriftAlert, OverprivilegedAlert,
RoleTemplate, RoleAssignment) are returned as their domain models. The schemas
here cover request bodies and the service-layer result objects, which are
plain dataclasses and are read through from_attributes.

Resources:
- Campaign — campaign lifecycle, decisions, notifications, reports
- PrivilegeDrift — drift scans and alert resolution
- Overprivileged — overprivileged scans, remediation and statistics
- RoleTemplate — template definitions and user assignment
- DepartmentRisk — department and tenant risk posture
- Jobs — single-pass scheduled jobs triggered by an external cron
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from access_governance_engine.core.models import (
    AppRef,
    CampaignConfig,
    CampaignFrequency,
    CampaignStatus,
    CampaignType,
    ExpectedApp,
    RiskLevel,
    RoleLevel,
    RoleTemplateDefinition,
    ScopeConfig,
    ScopeType,
)


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Campaign schemas
# ---------------------------------------------------------------------------


class CampaignCreateRequest(BaseModel):
    """Request body for creating a draft campaign."""

    name: str = Field(description="Campaign name", min_length=1, max_length=255)
    description: str | None = Field(default=None, description="What the campaign certifies")
    campaign_type: CampaignType = Field(
        description="quarterly | department | high_risk | admin | new_hire | departure"
    )
    frequency: CampaignFrequency | None = Field(
        default=None,
        description="quarterly | semi_annual | annual | one_time",
    )
    scope_type: ScopeType = Field(description="all | department | apps | users")
    scope_config: ScopeConfig = Field(
        default_factory=ScopeConfig,
        description="Departments, app ids or user ids for a non-`all` scope",
    )
    start_date: datetime = Field(description="Campaign start (UTC)")
    due_date: datetime = Field(description="Review deadline (UTC)")
    auto_approve_on_timeout: bool = Field(
        default=False,
        description="Approve items still pending once the campaign is sufficiently overdue",
    )

    def to_config(self) -> CampaignConfig:
        return CampaignConfig(**self.model_dump())


class CampaignCreatedResponse(BaseModel):
    """Response for a newly created campaign."""

    campaign_id: str = Field(description="New campaign id")


class ReviewItemsGeneratedResponse(BaseModel):
    """Response for review item generation."""

    campaign_id: str = Field(description="Populated campaign id")
    items_created: int = Field(description="Items created by this call")


class CampaignProgressResponse(_FromAttributes):
    """Read-only progress snapshot of a campaign."""

    campaign_id: str
    status: CampaignStatus
    total_items: int
    reviewed_items: int
    approved_items: int
    revoked_items: int
    deferred_items: int
    percent_complete: int = Field(description="Reviewed share of items, 0–100")
    days_remaining: int = Field(description="Days until due; negative once overdue")
    is_overdue: bool


class DecisionRequest(BaseModel):
    """Request body for deciding one review item. The reviewer is the calling user."""

    decision: Literal["approved", "revoked", "deferred"] = Field(
        description="approved | revoked | deferred"
    )
    notes: str | None = Field(default=None, description="Reviewer rationale")
    reviewer_name: str = Field(description="Display name of the reviewer", min_length=1)


class BulkDecisionRequest(BaseModel):
    """Request body for applying one decision to many review items."""

    item_ids: list[str] = Field(description="Review items to decide", min_length=1)
    decision: Literal["approved", "revoked", "deferred"] = Field(
        description="approved | revoked | deferred"
    )
    notes: str | None = Field(default=None, description="Reviewer rationale applied to each item")
    reviewer_name: str = Field(description="Display name of the reviewer", min_length=1)


class BulkDecisionResponse(_FromAttributes):
    """Per-item outcome of a bulk decision."""

    succeeded: list[str] = Field(description="Item ids decided successfully")
    failed: dict[str, str] = Field(description="Item id → error message")


class EscalationRequest(BaseModel):
    """Request body for escalating overdue reviews to reviewers' managers."""

    days_overdue: int = Field(description="Days the campaign is past due", ge=1)


class NotificationSummaryResponse(_FromAttributes):
    """Outcome of a reminder or escalation run."""

    sent: int
    failed: int
    skipped: int


class AutoApproveResponse(BaseModel):
    """Response for an auto-approve run."""

    campaign_id: str
    approved: int = Field(description="Pending items approved by the system")


class CompletionReportResponse(BaseModel):
    """Reference to a stored completion report."""

    campaign_id: str
    report_url: str


class AdHocCampaignRequest(BaseModel):
    """Request body for launching a one-time campaign over specific users."""

    name: str = Field(description="Campaign name", min_length=1, max_length=255)
    user_ids: list[str] = Field(description="Users whose access is reviewed", min_length=1)
    due_in_days: int = Field(default=14, description="Days until the campaign is due", ge=1)
    campaign_type: CampaignType = Field(default="high_risk", description="Campaign type label")


class AdHocCampaignResponse(BaseModel):
    """Response for an ad hoc campaign launch."""

    campaign_id: str
    items_created: int


# ---------------------------------------------------------------------------
# Privilege drift schemas
# ---------------------------------------------------------------------------


class DriftResultResponse(_FromAttributes):
    """Point-in-time drift finding for one user."""

    user_id: str
    user_name: str
    role_id: str
    role_name: str
    excess_apps: list[AppRef]
    missing_apps: list[AppRef]
    risk_score: int
    risk_level: RiskLevel
    risk_factors: list[str]
    recommended_action: str


class DriftScanResponse(BaseModel):
    """Response for a tenant-wide drift scan."""

    detected: int = Field(description="Users with drift")
    alert_ids: list[str] = Field(description="Alerts opened by this scan")
    results: list[DriftResultResponse] = Field(description="Findings, highest risk first")


class DriftResolveRequest(BaseModel):
    """Request body for closing a drift alert."""

    resolution: Literal["revoked", "role_updated", "false_positive"] = Field(
        description="revoked revokes every excess app; role_updated and false_positive change no access"
    )
    notes: str | None = Field(default=None, description="Resolution notes")


class AcceptRiskRequest(BaseModel):
    """Request body for accepting a drift risk."""

    notes: str = Field(description="Why the excess access is acceptable", min_length=1)


# ---------------------------------------------------------------------------
# Overprivileged account schemas
# ---------------------------------------------------------------------------


class OverprivilegedScanResponse(BaseModel):
    """Response for a tenant-wide overprivileged scan."""

    detected: int = Field(description="Overprivileged users found")
    alert_ids: list[str] = Field(description="Alerts opened by this scan")


class RemediateRequest(BaseModel):
    """Request body for remediating an overprivileged account."""

    action: Literal["downgrade", "implement_jit", "require_mfa", "accept_risk"] = Field(
        description="downgrade | implement_jit | require_mfa | accept_risk"
    )
    plan: str | None = Field(
        default=None,
        description="Remediation plan. Required as the business justification for accept_risk.",
    )

    @model_validator(mode="after")
    def _require_plan_for_accept_risk(self) -> "RemediateRequest":
        if self.action == "accept_risk" and not (self.plan and self.plan.strip()):
            raise ValueError("accept_risk requires a plan describing the business justification")
        return self


class JustificationRequest(BaseModel):
    """Request body for recording an approved business justification."""

    justification: str = Field(description="Business justification text", min_length=1)
    expires_at: datetime | None = Field(
        default=None,
        description="When the justification lapses and the account must be reviewed again",
    )


class DowngradeStepResponse(_FromAttributes):
    app_id: str
    app_name: str
    current_access: str
    recommended_access: str
    reason: str


class RemediationRecommendationResponse(_FromAttributes):
    """Suggested remediation for an overprivileged alert."""

    alert_id: str
    apps_to_downgrade: list[DowngradeStepResponse]
    least_privilege_alternative: str
    estimated_risk_reduction: int = Field(description="Score points removed by the downgrades")


class OverprivilegedStatisticsResponse(_FromAttributes):
    """Tenant-wide overprivileged alert statistics."""

    total_overprivileged: int
    by_risk_level: dict[str, int]
    average_admin_apps: float
    total_stale_admin: int
    remediation_progress: int = Field(description="Resolved share of alerts, 0–100")


# ---------------------------------------------------------------------------
# Role template schemas
# ---------------------------------------------------------------------------


class RoleTemplateRequest(BaseModel):
    """Request body for creating or replacing a role template."""

    name: str = Field(description="Role name", min_length=1, max_length=255)
    description: str | None = Field(default=None, description="What the role does")
    department: str | None = Field(default=None, description="Department the role belongs to")
    level: RoleLevel | None = Field(
        default=None,
        description="individual_contributor | manager | director | executive",
    )
    expected_apps: list[ExpectedApp] = Field(
        default_factory=list,
        description="Applications the role is expected to hold",
    )

    def to_definition(self) -> RoleTemplateDefinition:
        return RoleTemplateDefinition(**self.model_dump())


class RoleAssignmentRequest(BaseModel):
    """Request body for assigning a role template to a user."""

    user_id: str = Field(description="User receiving the role", min_length=1)
    reason: str | None = Field(default=None, description="Why the role is assigned")


# ---------------------------------------------------------------------------
# Department risk schemas
# ---------------------------------------------------------------------------


class DepartmentRiskFactorsResponse(_FromAttributes):
    access_review_compliance: float
    overprivileged_accounts: float
    sod_violations: float
    dormant_access: float
    oauth_risk: float
    anomaly_score: float


class DepartmentRiskDetailsResponse(_FromAttributes):
    total_users: int
    active_users: int
    overprivileged_count: int
    sod_violation_count: int
    dormant_access_count: int
    high_risk_oauth_apps: int
    recent_anomalies: int
    pending_access_reviews: int
    completed_access_reviews: int


class DepartmentRiskScoreResponse(_FromAttributes):
    """Risk posture of one department."""

    department: str
    overall_risk_score: int = Field(description="Weighted 0–100 score")
    risk_level: RiskLevel
    user_count: int
    factors: DepartmentRiskFactorsResponse
    details: DepartmentRiskDetailsResponse
    recommendations: list[str]
    last_calculated: datetime
    trend: str


class DepartmentRiskSummaryResponse(_FromAttributes):
    """Risk posture of every department of the tenant."""

    calculated_at: datetime
    tenant_id: str
    overall_tenant_risk: int
    department_count: int
    departments: list[DepartmentRiskScoreResponse]
    top_risk_departments: list[dict[str, Any]]
    risk_distribution: dict[str, int]
    recommendations: list[str]


class DepartmentComparisonRequest(BaseModel):
    """Request body for comparing departments."""

    departments: list[str] = Field(description="Departments to compare", min_length=1)


class DepartmentComparisonResponse(_FromAttributes):
    """Ranked comparison of departments."""

    comparison: list[dict[str, Any]] = Field(description="Departments by ascending risk, rank 1 first")
    best_practices: list[dict[str, Any]] = Field(description="Best department per factor")
    improvements: list[dict[str, Any]] = Field(description="Largest gaps from the best department")


# ---------------------------------------------------------------------------
# Scheduled job schemas
# ---------------------------------------------------------------------------


class ScanRunResponse(_FromAttributes):
    """Outcome of one detection job."""

    detected: int
    alerts_created: int
    alert_failures: int
    ad_hoc_campaign_id: str | None


class QuarterlyCampaignResponse(BaseModel):
    """Outcome of the quarterly campaign job."""

    campaign_id: str | None = Field(
        description="New campaign id, or null when an active quarterly campaign exists"
    )


class DeadlineRunResponse(_FromAttributes):
    """Outcome of one deadline-processing job."""

    campaigns_checked: int
    reminders_sent: list[str]
    escalations_sent: list[str]
    auto_approved: dict[str, int]
    overdue: list[str]
    failures: dict[str, str]
