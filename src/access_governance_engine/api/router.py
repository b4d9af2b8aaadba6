"""API router for access-governance-engine.

All endpoints are registered here and included in main.py under the /api/v1
prefix. Routes are thin: business logic lives in the core services, which are
built per request for the tenant named by the X-Tenant-ID header. The acting
user is taken from the X-User-ID header.

Endpoints:
- POST/GET    /access-reviews/campaigns                        — create / list campaigns
- POST        /access-reviews/campaigns/ad-hoc                 — launch a one-time user campaign
- GET         /access-reviews/campaigns/{id}                   — get campaign
- POST        /access-reviews/campaigns/{id}/generate          — generate review items
- GET         /access-reviews/campaigns/{id}/items             — list review items
- GET         /access-reviews/campaigns/{id}/progress          — progress snapshot
- POST        /access-reviews/campaigns/{id}/complete          — complete campaign
- POST        /access-reviews/campaigns/{id}/report            — regenerate completion report
- POST        /access-reviews/campaigns/{id}/reminders         — remind pending reviewers
- POST        /access-reviews/campaigns/{id}/escalations       — escalate to reviewers' managers
- POST        /access-reviews/campaigns/{id}/auto-approve      — auto-approve pending items
- GET         /access-reviews/campaigns/{id}/export            — auditor CSV export
- POST        /access-reviews/items/{id}/decision              — decide one item
- POST        /access-reviews/items/bulk-decision              — decide many items
- POST        /privilege-drift/scan                            — scan tenant, open alerts
- GET         /privilege-drift/alerts[/{id}]                   — list / get drift alerts
- POST        /privilege-drift/alerts/{id}/resolve             — resolve drift alert
- POST        /privilege-drift/alerts/{id}/remediation         — start remediation
- POST        /privilege-drift/alerts/{id}/accept-risk         — accept drift risk
- POST        /overprivileged/scan                             — scan tenant, open alerts
- GET         /overprivileged/alerts[/{id}]                    — list / get alerts
- POST        /overprivileged/alerts/{id}/remediate            — remediate account
- POST        /overprivileged/alerts/{id}/justification        — record justification
- GET         /overprivileged/alerts/{id}/recommendation       — remediation recommendation
- GET         /overprivileged/statistics                       — tenant statistics
- GET         /role-templates/prebuilt                         — starter templates
- POST/GET    /role-templates                                  — create / list templates
- GET/PUT/DELETE /role-templates/{id}                          — read / replace / delete template
- POST        /role-templates/{id}/assignments                 — assign template to a user
- GET         /department-risk                                 — tenant risk summary
- GET         /department-risk/{department}                    — one department
- POST        /department-risk/compare                         — compare departments
- POST        /jobs/privilege-drift                            — daily drift job
- POST        /jobs/overprivileged                             — weekly overprivileged job
- POST        /jobs/quarterly-campaign                         — quarterly campaign job
- POST        /jobs/campaign-deadlines                         — daily deadline job
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from access_governance_engine.adapters.memory import InMemoryGovernanceStore
from access_governance_engine.api.schemas import (
    AcceptRiskRequest,
    AdHocCampaignRequest,
    AdHocCampaignResponse,
    AutoApproveResponse,
    BulkDecisionRequest,
    BulkDecisionResponse,
    CampaignCreatedResponse,
    CampaignCreateRequest,
    CampaignProgressResponse,
    CompletionReportResponse,
    DeadlineRunResponse,
    DecisionRequest,
    DepartmentComparisonRequest,
    DepartmentComparisonResponse,
    DepartmentRiskScoreResponse,
    DepartmentRiskSummaryResponse,
    DriftResolveRequest,
    DriftResultResponse,
    DriftScanResponse,
    EscalationRequest,
    JustificationRequest,
    NotificationSummaryResponse,
    OverprivilegedScanResponse,
    OverprivilegedStatisticsResponse,
    QuarterlyCampaignResponse,
    RemediateRequest,
    RemediationRecommendationResponse,
    ReviewItemsGeneratedResponse,
    RoleAssignmentRequest,
    RoleTemplateRequest,
    ScanRunResponse,
)
from access_governance_engine.core.campaigns import AccessReviewCampaignEngine, BulkDecision
from access_governance_engine.core.department_risk import DepartmentRiskAggregator
from access_governance_engine.core.drift import PrivilegeDriftDetector
from access_governance_engine.core.errors import NotFoundError
from access_governance_engine.core.interfaces import IEventSink, INotificationSender
from access_governance_engine.core.models import (
    Campaign,
    DriftAlert,
    OverprivilegedAlert,
    ReviewItem,
    RoleAssignment,
    RoleTemplate,
    RoleTemplateDefinition,
)
from access_governance_engine.core.overprivileged import OverprivilegedAccountDetector
from access_governance_engine.core.role_templates import RoleTemplateService
from access_governance_engine.core.scheduler import AccessReviewScheduler
from access_governance_engine.observability import get_logger
from access_governance_engine.settings import Settings

logger = get_logger(__name__)

router = APIRouter(tags=["access-governance"])

Clock = Callable[[], datetime]


# ---------------------------------------------------------------------------
# Dependency factories: wire stores, sinks and services together
# ---------------------------------------------------------------------------


def get_tenant_id(x_tenant_id: Annotated[str, Header(min_length=1)]) -> str:
    """Tenant the request acts on, from the X-Tenant-ID header."""
    return x_tenant_id


def get_actor_id(x_user_id: Annotated[str, Header(min_length=1)]) -> str:
    """Acting user, from the X-User-ID header."""
    return x_user_id


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> InMemoryGovernanceStore:
    return request.app.state.store


def get_event_sink(request: Request) -> IEventSink:
    return request.app.state.event_sink


def get_notifier(request: Request) -> INotificationSender:
    return request.app.state.notifier


def get_clock() -> Clock:
    """Current-time source for services. Overridden in tests."""
    return lambda: datetime.now(UTC)


TenantId = Annotated[str, Depends(get_tenant_id)]
ActorId = Annotated[str, Depends(get_actor_id)]


def get_campaign_engine(
    tenant_id: TenantId,
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[InMemoryGovernanceStore, Depends(get_store)],
    event_sink: Annotated[IEventSink, Depends(get_event_sink)],
    notifier: Annotated[INotificationSender, Depends(get_notifier)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> AccessReviewCampaignEngine:
    """Construct the tenant's AccessReviewCampaignEngine.

    Returns:
        Fully wired AccessReviewCampaignEngine instance.
    """
    return AccessReviewCampaignEngine(
        tenant_id=tenant_id,
        campaign_repo=store,
        access_store=store,
        directory=store,
        app_catalog=store,
        report_store=store,
        notifier=notifier,
        event_sink=event_sink,
        from_email=settings.from_email,
        app_url=settings.app_url,
        org_name=settings.org_name,
        clock=clock,
    )


def get_drift_detector(
    tenant_id: TenantId,
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[InMemoryGovernanceStore, Depends(get_store)],
    event_sink: Annotated[IEventSink, Depends(get_event_sink)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> PrivilegeDriftDetector:
    """Construct the tenant's PrivilegeDriftDetector."""
    return PrivilegeDriftDetector(
        tenant_id=tenant_id,
        access_store=store,
        directory=store,
        app_catalog=store,
        role_store=store,
        alert_repo=store,
        event_sink=event_sink,
        scan_concurrency=settings.scan_concurrency,
        clock=clock,
    )


def get_overprivileged_detector(
    tenant_id: TenantId,
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[InMemoryGovernanceStore, Depends(get_store)],
    event_sink: Annotated[IEventSink, Depends(get_event_sink)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> OverprivilegedAccountDetector:
    """Construct the tenant's OverprivilegedAccountDetector."""
    return OverprivilegedAccountDetector(
        tenant_id=tenant_id,
        access_store=store,
        directory=store,
        app_catalog=store,
        alert_repo=store,
        event_sink=event_sink,
        scan_concurrency=settings.scan_concurrency,
        clock=clock,
    )


def get_role_template_service(
    tenant_id: TenantId,
    store: Annotated[InMemoryGovernanceStore, Depends(get_store)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> RoleTemplateService:
    return RoleTemplateService(tenant_id=tenant_id, role_store=store, directory=store, clock=clock)


def get_department_risk_aggregator(
    tenant_id: TenantId,
    store: Annotated[InMemoryGovernanceStore, Depends(get_store)],
    event_sink: Annotated[IEventSink, Depends(get_event_sink)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> DepartmentRiskAggregator:
    """Construct the tenant's DepartmentRiskAggregator."""
    return DepartmentRiskAggregator(
        tenant_id=tenant_id,
        directory=store,
        campaign_repo=store,
        overprivileged_repo=store,
        access_store=store,
        risk_signals=store,
        event_sink=event_sink,
        clock=clock,
    )


def get_scheduler(
    tenant_id: TenantId,
    settings: Annotated[Settings, Depends(get_settings)],
    event_sink: Annotated[IEventSink, Depends(get_event_sink)],
    campaign_engine: Annotated[AccessReviewCampaignEngine, Depends(get_campaign_engine)],
    drift_detector: Annotated[PrivilegeDriftDetector, Depends(get_drift_detector)],
    overprivileged_detector: Annotated[
        OverprivilegedAccountDetector, Depends(get_overprivileged_detector)
    ],
) -> AccessReviewScheduler:
    """Construct the tenant's AccessReviewScheduler from the other services."""
    return AccessReviewScheduler(
        tenant_id=tenant_id,
        campaign_engine=campaign_engine,
        drift_detector=drift_detector,
        overprivileged_detector=overprivileged_detector,
        event_sink=event_sink,
        reminder_days_before_due=settings.reminder_days_before_due,
        escalation_days_overdue=settings.escalation_days_overdue,
        auto_approve_after_days_overdue=settings.auto_approve_after_days_overdue,
        quarterly_due_days=settings.quarterly_due_days,
        ad_hoc_due_days=settings.ad_hoc_due_days,
    )


CampaignEngine = Annotated[AccessReviewCampaignEngine, Depends(get_campaign_engine)]
DriftDetector = Annotated[PrivilegeDriftDetector, Depends(get_drift_detector)]
OverprivilegedDetector = Annotated[OverprivilegedAccountDetector, Depends(get_overprivileged_detector)]
RoleTemplates = Annotated[RoleTemplateService, Depends(get_role_template_service)]
RiskAggregator = Annotated[DepartmentRiskAggregator, Depends(get_department_risk_aggregator)]
Scheduler = Annotated[AccessReviewScheduler, Depends(get_scheduler)]


# ---------------------------------------------------------------------------
# Campaign endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/access-reviews/campaigns",
    response_model=CampaignCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft access review campaign",
)
async def create_campaign(
    request: CampaignCreateRequest,
    actor_id: ActorId,
    engine: CampaignEngine,
) -> CampaignCreatedResponse:
    """Create a draft campaign. Items are generated by a separate call."""
    logger.info("POST /access-reviews/campaigns", name=request.name, actor_id=actor_id)
    campaign_id = await engine.create_campaign(request.to_config(), created_by=actor_id)
    return CampaignCreatedResponse(campaign_id=campaign_id)


@router.get(
    "/access-reviews/campaigns",
    response_model=list[Campaign],
    summary="List campaigns",
)
async def list_campaigns(
    engine: CampaignEngine,
    campaign_status: Annotated[
        str | None, Query(alias="status", description="draft | active | completed")
    ] = None,
) -> list[Campaign]:
    return await engine.list_campaigns(status=campaign_status)


@router.post(
    "/access-reviews/campaigns/ad-hoc",
    response_model=AdHocCampaignResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Launch a one-time campaign over specific users",
)
async def launch_ad_hoc_campaign(
    request: AdHocCampaignRequest,
    actor_id: ActorId,
    engine: CampaignEngine,
) -> AdHocCampaignResponse:
    logger.info("POST /access-reviews/campaigns/ad-hoc", users=len(request.user_ids))
    campaign_id, created = await engine.launch_ad_hoc_campaign(
        name=request.name,
        user_ids=request.user_ids,
        due_in_days=request.due_in_days,
        created_by=actor_id,
        campaign_type=request.campaign_type,
    )
    return AdHocCampaignResponse(campaign_id=campaign_id, items_created=created)


@router.get(
    "/access-reviews/campaigns/{campaign_id}",
    response_model=Campaign,
    summary="Get a campaign",
)
async def get_campaign(campaign_id: str, engine: CampaignEngine) -> Campaign:
    return await engine.get_campaign(campaign_id)


@router.post(
    "/access-reviews/campaigns/{campaign_id}/generate",
    response_model=ReviewItemsGeneratedResponse,
    summary="Generate review items and activate the campaign",
)
async def generate_review_items(
    campaign_id: str,
    engine: CampaignEngine,
) -> ReviewItemsGeneratedResponse:
    logger.info("POST /access-reviews/campaigns/{id}/generate", campaign_id=campaign_id)
    created = await engine.generate_review_items(campaign_id)
    return ReviewItemsGeneratedResponse(campaign_id=campaign_id, items_created=created)


@router.get(
    "/access-reviews/campaigns/{campaign_id}/items",
    response_model=list[ReviewItem],
    summary="List a campaign's review items",
)
async def list_review_items(
    campaign_id: str,
    engine: CampaignEngine,
    reviewer_id: Annotated[str | None, Query(description="Only items routed to this reviewer")] = None,
) -> list[ReviewItem]:
    return await engine.list_review_items(campaign_id, reviewer_id=reviewer_id)


@router.get(
    "/access-reviews/campaigns/{campaign_id}/progress",
    response_model=CampaignProgressResponse,
    summary="Campaign progress snapshot",
)
async def get_campaign_progress(campaign_id: str, engine: CampaignEngine) -> CampaignProgressResponse:
    progress = await engine.get_campaign_progress(campaign_id)
    return CampaignProgressResponse.model_validate(progress)


@router.post(
    "/access-reviews/campaigns/{campaign_id}/complete",
    response_model=Campaign,
    summary="Complete a campaign and store its report",
)
async def complete_campaign(campaign_id: str, actor_id: ActorId, engine: CampaignEngine) -> Campaign:
    logger.info("POST /access-reviews/campaigns/{id}/complete", campaign_id=campaign_id, actor_id=actor_id)
    return await engine.complete_campaign(campaign_id)


@router.post(
    "/access-reviews/campaigns/{campaign_id}/report",
    response_model=CompletionReportResponse,
    summary="Regenerate the completion report of a completed campaign",
)
async def regenerate_completion_report(
    campaign_id: str,
    engine: CampaignEngine,
) -> CompletionReportResponse:
    report_url = await engine.regenerate_completion_report(campaign_id)
    return CompletionReportResponse(campaign_id=campaign_id, report_url=report_url)


@router.post(
    "/access-reviews/campaigns/{campaign_id}/reminders",
    response_model=NotificationSummaryResponse,
    summary="Remind reviewers with pending items",
)
async def send_reminders(campaign_id: str, engine: CampaignEngine) -> NotificationSummaryResponse:
    summary = await engine.send_reminders(campaign_id)
    return NotificationSummaryResponse.model_validate(summary)


@router.post(
    "/access-reviews/campaigns/{campaign_id}/escalations",
    response_model=NotificationSummaryResponse,
    summary="Escalate overdue reviews to reviewers' managers",
)
async def escalate_overdue_reviews(
    campaign_id: str,
    request: EscalationRequest,
    engine: CampaignEngine,
) -> NotificationSummaryResponse:
    summary = await engine.escalate_overdue_reviews(campaign_id, request.days_overdue)
    return NotificationSummaryResponse.model_validate(summary)


@router.post(
    "/access-reviews/campaigns/{campaign_id}/auto-approve",
    response_model=AutoApproveResponse,
    summary="Approve every pending item on behalf of the system",
)
async def auto_approve_pending_items(campaign_id: str, engine: CampaignEngine) -> AutoApproveResponse:
    logger.info("POST /access-reviews/campaigns/{id}/auto-approve", campaign_id=campaign_id)
    approved = await engine.auto_approve_pending_items(campaign_id)
    return AutoApproveResponse(campaign_id=campaign_id, approved=approved)


@router.get(
    "/access-reviews/campaigns/{campaign_id}/export",
    summary="Export the campaign's items and decisions as CSV",
    response_class=Response,
)
async def export_campaign_csv(campaign_id: str, engine: CampaignEngine) -> Response:
    content = await engine.export_campaign_csv(campaign_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="campaign-{campaign_id}.csv"'},
    )


@router.post(
    "/access-reviews/items/bulk-decision",
    response_model=BulkDecisionResponse,
    summary="Apply one decision to many review items",
)
async def submit_bulk_decision(
    request: BulkDecisionRequest,
    actor_id: ActorId,
    engine: CampaignEngine,
) -> BulkDecisionResponse:
    logger.info(
        "POST /access-reviews/items/bulk-decision",
        decision=request.decision,
        items=len(request.item_ids),
        reviewer_id=actor_id,
    )
    result = await engine.submit_bulk_decision(
        BulkDecision(
            item_ids=request.item_ids,
            decision=request.decision,
            reviewer_id=actor_id,
            reviewer_name=request.reviewer_name,
            notes=request.notes,
        )
    )
    return BulkDecisionResponse.model_validate(result)


@router.post(
    "/access-reviews/items/{item_id}/decision",
    response_model=ReviewItem,
    summary="Decide one review item",
)
async def submit_decision(
    item_id: str,
    request: DecisionRequest,
    actor_id: ActorId,
    engine: CampaignEngine,
) -> ReviewItem:
    logger.info(
        "POST /access-reviews/items/{id}/decision",
        item_id=item_id,
        decision=request.decision,
        reviewer_id=actor_id,
    )
    return await engine.submit_decision(
        item_id,
        request.decision,
        request.notes,
        reviewer_id=actor_id,
        reviewer_name=request.reviewer_name,
    )


# ---------------------------------------------------------------------------
# Privilege drift endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/privilege-drift/scan",
    response_model=DriftScanResponse,
    summary="Scan every assigned user for drift and open an alert per finding",
)
async def scan_privilege_drift(detector: DriftDetector) -> DriftScanResponse:
    logger.info("POST /privilege-drift/scan")
    results = await detector.scan_all()
    alert_ids = [await detector.create_drift_alert(result) for result in results]
    return DriftScanResponse(
        detected=len(results),
        alert_ids=alert_ids,
        results=[DriftResultResponse.model_validate(result) for result in results],
    )


@router.get(
    "/privilege-drift/alerts",
    response_model=list[DriftAlert],
    summary="List drift alerts, highest risk first",
)
async def list_drift_alerts(
    detector: DriftDetector,
    alert_status: Annotated[str | None, Query(alias="status", description="Alert status filter")] = None,
) -> list[DriftAlert]:
    return await detector.list_alerts(status=alert_status)


@router.get(
    "/privilege-drift/alerts/{alert_id}",
    response_model=DriftAlert,
    summary="Get a drift alert",
)
async def get_drift_alert(alert_id: str, detector: DriftDetector) -> DriftAlert:
    return await detector.get_alert(alert_id)


@router.post(
    "/privilege-drift/alerts/{alert_id}/resolve",
    response_model=DriftAlert,
    summary="Resolve a drift alert",
)
async def resolve_drift_alert(
    alert_id: str,
    request: DriftResolveRequest,
    actor_id: ActorId,
    detector: DriftDetector,
) -> DriftAlert:
    logger.info(
        "POST /privilege-drift/alerts/{id}/resolve",
        alert_id=alert_id,
        resolution=request.resolution,
        actor_id=actor_id,
    )
    return await detector.resolve_drift_alert(alert_id, request.resolution, request.notes, actor_id)


@router.post(
    "/privilege-drift/alerts/{alert_id}/remediation",
    response_model=DriftAlert,
    summary="Move a drift alert into remediation",
)
async def start_drift_remediation(alert_id: str, actor_id: ActorId, detector: DriftDetector) -> DriftAlert:
    return await detector.start_remediation(alert_id, actor_id)


@router.post(
    "/privilege-drift/alerts/{alert_id}/accept-risk",
    response_model=DriftAlert,
    summary="Accept the risk of a drift alert",
)
async def accept_drift_risk(
    alert_id: str,
    request: AcceptRiskRequest,
    actor_id: ActorId,
    detector: DriftDetector,
) -> DriftAlert:
    return await detector.accept_risk(alert_id, request.notes, actor_id)


# ---------------------------------------------------------------------------
# Overprivileged account endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/overprivileged/scan",
    response_model=OverprivilegedScanResponse,
    summary="Scan every active user and open an alert per overprivileged account",
)
async def scan_overprivileged(detector: OverprivilegedDetector) -> OverprivilegedScanResponse:
    logger.info("POST /overprivileged/scan")
    results = await detector.scan_all()
    alert_ids = [await detector.create_overprivileged_alert(result) for result in results]
    return OverprivilegedScanResponse(detected=len(results), alert_ids=alert_ids)


@router.get(
    "/overprivileged/alerts",
    response_model=list[OverprivilegedAlert],
    summary="List overprivileged alerts, highest risk first",
)
async def list_overprivileged_alerts(
    detector: OverprivilegedDetector,
    alert_status: Annotated[str | None, Query(alias="status", description="Alert status filter")] = None,
) -> list[OverprivilegedAlert]:
    return await detector.list_alerts(status=alert_status)


@router.get(
    "/overprivileged/statistics",
    response_model=OverprivilegedStatisticsResponse,
    summary="Tenant-wide overprivileged statistics",
)
async def get_overprivileged_statistics(
    detector: OverprivilegedDetector,
) -> OverprivilegedStatisticsResponse:
    return OverprivilegedStatisticsResponse.model_validate(await detector.get_statistics())


@router.get(
    "/overprivileged/alerts/{alert_id}",
    response_model=OverprivilegedAlert,
    summary="Get an overprivileged alert",
)
async def get_overprivileged_alert(alert_id: str, detector: OverprivilegedDetector) -> OverprivilegedAlert:
    return await detector.get_alert(alert_id)


@router.post(
    "/overprivileged/alerts/{alert_id}/remediate",
    response_model=OverprivilegedAlert,
    summary="Remediate an overprivileged account",
)
async def remediate_account(
    alert_id: str,
    request: RemediateRequest,
    actor_id: ActorId,
    detector: OverprivilegedDetector,
) -> OverprivilegedAlert:
    logger.info(
        "POST /overprivileged/alerts/{id}/remediate",
        alert_id=alert_id,
        action=request.action,
        actor_id=actor_id,
    )
    return await detector.remediate_account(alert_id, request.action, request.plan, actor_id)


@router.post(
    "/overprivileged/alerts/{alert_id}/justification",
    response_model=OverprivilegedAlert,
    summary="Record an approved business justification",
)
async def add_justification(
    alert_id: str,
    request: JustificationRequest,
    actor_id: ActorId,
    detector: OverprivilegedDetector,
) -> OverprivilegedAlert:
    return await detector.add_justification(
        alert_id, request.justification, approved_by=actor_id, expires_at=request.expires_at
    )


@router.get(
    "/overprivileged/alerts/{alert_id}/recommendation",
    response_model=RemediationRecommendationResponse,
    summary="Suggested remediation for an overprivileged alert",
)
async def get_remediation_recommendation(
    alert_id: str,
    detector: OverprivilegedDetector,
) -> RemediationRecommendationResponse:
    recommendation = await detector.get_remediation_recommendation(alert_id)
    return RemediationRecommendationResponse.model_validate(recommendation)


# ---------------------------------------------------------------------------
# Role template endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/role-templates/prebuilt",
    response_model=list[RoleTemplateDefinition],
    summary="Starter templates for common roles",
)
async def list_prebuilt_templates() -> list[RoleTemplateDefinition]:
    return RoleTemplateService.get_prebuilt_templates()


@router.post(
    "/role-templates",
    response_model=RoleTemplate,
    status_code=status.HTTP_201_CREATED,
    summary="Create a role template",
)
async def create_role_template(
    request: RoleTemplateRequest,
    actor_id: ActorId,
    service: RoleTemplates,
) -> RoleTemplate:
    logger.info("POST /role-templates", name=request.name, actor_id=actor_id)
    return await service.create_role_template(request.to_definition(), created_by=actor_id)


@router.get(
    "/role-templates",
    response_model=list[RoleTemplate],
    summary="List role templates",
)
async def list_role_templates(
    service: RoleTemplates,
    department: Annotated[str | None, Query(description="Only templates of this department")] = None,
) -> list[RoleTemplate]:
    return await service.list_role_templates(department=department)


@router.get(
    "/role-templates/{template_id}",
    response_model=RoleTemplate,
    summary="Get a role template",
)
async def get_role_template(template_id: str, service: RoleTemplates) -> RoleTemplate:
    return await service.get_role_template(template_id)


@router.put(
    "/role-templates/{template_id}",
    response_model=RoleTemplate,
    summary="Replace a role template's content",
)
async def update_role_template(
    template_id: str,
    request: RoleTemplateRequest,
    service: RoleTemplates,
) -> RoleTemplate:
    return await service.update_role_template(template_id, request.to_definition())


@router.delete(
    "/role-templates/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a role template",
)
async def delete_role_template(template_id: str, service: RoleTemplates) -> Response:
    await service.delete_role_template(template_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/role-templates/{template_id}/assignments",
    response_model=RoleAssignment,
    status_code=status.HTTP_201_CREATED,
    summary="Assign a role template to a user",
)
async def assign_role_to_user(
    template_id: str,
    request: RoleAssignmentRequest,
    actor_id: ActorId,
    service: RoleTemplates,
) -> RoleAssignment:
    logger.info(
        "POST /role-templates/{id}/assignments",
        template_id=template_id,
        user_id=request.user_id,
        actor_id=actor_id,
    )
    return await service.assign_role_to_user(
        request.user_id, template_id, assigned_by=actor_id, reason=request.reason
    )


# ---------------------------------------------------------------------------
# Department risk endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/department-risk",
    response_model=DepartmentRiskSummaryResponse,
    summary="Risk posture of every department",
)
async def get_department_risk_summary(aggregator: RiskAggregator) -> DepartmentRiskSummaryResponse:
    summary = await aggregator.calculate_all_department_risks()
    return DepartmentRiskSummaryResponse.model_validate(summary)


@router.post(
    "/department-risk/compare",
    response_model=DepartmentComparisonResponse,
    summary="Compare departments",
)
async def compare_departments(
    request: DepartmentComparisonRequest,
    aggregator: RiskAggregator,
) -> DepartmentComparisonResponse:
    comparison = await aggregator.compare_departments(request.departments)
    return DepartmentComparisonResponse.model_validate(comparison)


@router.get(
    "/department-risk/{department}",
    response_model=DepartmentRiskScoreResponse,
    summary="Risk posture of one department",
)
async def get_department_risk(department: str, aggregator: RiskAggregator) -> DepartmentRiskScoreResponse:
    score = await aggregator.get_department_risk(department)
    if score is None:
        raise NotFoundError(resource="Department", resource_id=department)
    return DepartmentRiskScoreResponse.model_validate(score)


# ---------------------------------------------------------------------------
# Scheduled job endpoints (triggered by an external cron)
# ---------------------------------------------------------------------------


@router.post(
    "/jobs/privilege-drift",
    response_model=ScanRunResponse,
    summary="Run the privilege drift detection job",
)
async def run_privilege_drift_job(scheduler: Scheduler) -> ScanRunResponse:
    return ScanRunResponse.model_validate(await scheduler.run_privilege_drift_detection())


@router.post(
    "/jobs/overprivileged",
    response_model=ScanRunResponse,
    summary="Run the overprivileged detection job",
)
async def run_overprivileged_job(scheduler: Scheduler) -> ScanRunResponse:
    return ScanRunResponse.model_validate(await scheduler.run_overprivileged_detection())


@router.post(
    "/jobs/quarterly-campaign",
    response_model=QuarterlyCampaignResponse,
    summary="Create the quarterly campaign unless one is active",
)
async def run_quarterly_campaign_job(
    scheduler: Scheduler,
    clock: Annotated[Clock, Depends(get_clock)],
) -> QuarterlyCampaignResponse:
    campaign_id = await scheduler.create_quarterly_campaign(clock())
    return QuarterlyCampaignResponse(campaign_id=campaign_id)


@router.post(
    "/jobs/campaign-deadlines",
    response_model=DeadlineRunResponse,
    summary="Send reminders, escalate, auto-approve and flag overdue campaigns",
)
async def run_campaign_deadlines_job(
    scheduler: Scheduler,
    clock: Annotated[Clock, Depends(get_clock)],
) -> DeadlineRunResponse:
    return DeadlineRunResponse.model_validate(await scheduler.process_campaign_deadlines(clock()))
