"""In-memory adapters for the access governance engine.

InMemoryGovernanceStore implements every storage protocol of
core/interfaces.py over plain dictionaries, which keeps tests hermetic and
lets the service run locally without any database. Records are deep-copied
on the way in and out so callers can never mutate stored state in place.

Also provided:
- RecordingEventSink — IEventSink that keeps every emitted event
- InMemoryOutbox     — INotificationSender that keeps every email
"""

from typing import Any, TypeVar

from pydantic import BaseModel

from access_governance_engine.core.errors import NotFoundError
from access_governance_engine.core.models import (
    AccessGrant,
    AccessReviewDecision,
    Campaign,
    DirectoryUser,
    DriftAlert,
    EmailMessage,
    OAuthGrant,
    OverprivilegedAlert,
    ReviewItem,
    RoleAssignment,
    RoleTemplate,
    SaasApp,
    SecurityAnomaly,
    SodViolation,
)

M = TypeVar("M", bound=BaseModel)

_DEFAULT_REPORT_BASE_PATH = "/api/v1/access-reviews/campaigns"


def _copy(model: M) -> M:
    return model.model_copy(deep=True)


def _apply(model: M, changes: dict[str, Any]) -> M:
    return model.model_copy(update=changes, deep=True)


class InMemoryGovernanceStore:
    """Dictionary-backed implementation of every store protocol.

    Args:
        report_base_path: Prefix of the references returned by save_report.
    """

    def __init__(self, report_base_path: str = _DEFAULT_REPORT_BASE_PATH) -> None:
        self._report_base_path = report_base_path.rstrip("/")
        self._users: dict[str, tuple[str, DirectoryUser]] = {}
        self._apps: dict[tuple[str, str], SaasApp] = {}
        self._grants: dict[str, list[AccessGrant]] = {}
        self._templates: dict[str, RoleTemplate] = {}
        self._assignments: dict[str, RoleAssignment] = {}
        self._campaigns: dict[str, Campaign] = {}
        self._items: dict[str, ReviewItem] = {}
        self._decisions: list[AccessReviewDecision] = []
        self._drift_alerts: dict[str, DriftAlert] = {}
        self._overprivileged_alerts: dict[str, OverprivilegedAlert] = {}
        self._reports: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self._sod_violations: dict[str, list[SodViolation]] = {}
        self._oauth_grants: dict[str, list[OAuthGrant]] = {}
        self._anomalies: dict[str, list[SecurityAnomaly]] = {}

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_user(self, tenant_id: str, user: DirectoryUser) -> DirectoryUser:
        self._users[user.id] = (tenant_id, _copy(user))
        return user

    def add_app(self, tenant_id: str, app: SaasApp) -> SaasApp:
        self._apps[(tenant_id, app.id)] = _copy(app)
        return app

    def add_grant(self, tenant_id: str, grant: AccessGrant) -> AccessGrant:
        self._grants.setdefault(tenant_id, []).append(_copy(grant))
        return grant

    def add_sod_violation(self, tenant_id: str, violation: SodViolation) -> None:
        self._sod_violations.setdefault(tenant_id, []).append(_copy(violation))

    def add_oauth_grant(self, tenant_id: str, grant: OAuthGrant) -> None:
        self._oauth_grants.setdefault(tenant_id, []).append(_copy(grant))

    def add_anomaly(self, tenant_id: str, anomaly: SecurityAnomaly) -> None:
        self._anomalies.setdefault(tenant_id, []).append(_copy(anomaly))

    def get_reports(self, tenant_id: str, campaign_id: str) -> list[dict[str, Any]]:
        """Every report stored for a campaign, oldest first."""
        return list(self._reports.get((tenant_id, campaign_id), []))

    # ------------------------------------------------------------------
    # IAccessStore
    # ------------------------------------------------------------------

    async def get_all_user_app_access(self, tenant_id: str) -> list[AccessGrant]:
        return [_copy(g) for g in self._grants.get(tenant_id, [])]

    async def get_user_app_access_list(self, user_id: str, tenant_id: str) -> list[AccessGrant]:
        return [_copy(g) for g in self._grants.get(tenant_id, []) if g.user_id == user_id]

    async def revoke_user_app_access(self, user_id: str, app_id: str, tenant_id: str) -> None:
        grants = self._grants.get(tenant_id, [])
        remaining = [g for g in grants if not (g.user_id == user_id and g.app_id == app_id)]
        if len(remaining) == len(grants):
            raise NotFoundError(resource="AccessGrant", resource_id=f"{user_id}/{app_id}")
        self._grants[tenant_id] = remaining

    async def update_user_app_access_type(
        self,
        user_id: str,
        app_id: str,
        tenant_id: str,
        new_type: str,
    ) -> None:
        grants = self._grants.get(tenant_id, [])
        matched = False
        for index, grant in enumerate(grants):
            if grant.user_id == user_id and grant.app_id == app_id:
                grants[index] = _apply(grant, {"access_type": new_type})
                matched = True
        if not matched:
            raise NotFoundError(resource="AccessGrant", resource_id=f"{user_id}/{app_id}")

    # ------------------------------------------------------------------
    # IDirectoryStore
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> DirectoryUser | None:
        entry = self._users.get(user_id)
        return _copy(entry[1]) if entry else None

    async def get_users(self, tenant_id: str) -> list[DirectoryUser]:
        return [_copy(user) for tenant, user in self._users.values() if tenant == tenant_id]

    async def get_user_by_username(self, username: str) -> DirectoryUser | None:
        for _, user in self._users.values():
            if user.username == username:
                return _copy(user)
        return None

    # ------------------------------------------------------------------
    # IAppCatalog
    # ------------------------------------------------------------------

    async def get_saas_app(self, app_id: str, tenant_id: str) -> SaasApp | None:
        app = self._apps.get((tenant_id, app_id))
        return _copy(app) if app else None

    # ------------------------------------------------------------------
    # IRoleTemplateStore
    # ------------------------------------------------------------------

    async def create_role_template(self, template: RoleTemplate) -> RoleTemplate:
        self._templates[template.id] = _copy(template)
        return _copy(template)

    async def get_role_template(self, template_id: str, tenant_id: str) -> RoleTemplate | None:
        template = self._templates.get(template_id)
        if template is None or template.tenant_id != tenant_id:
            return None
        return _copy(template)

    async def list_role_templates(
        self,
        tenant_id: str,
        department: str | None = None,
    ) -> list[RoleTemplate]:
        return [
            _copy(t)
            for t in self._templates.values()
            if t.tenant_id == tenant_id and (department is None or t.department == department)
        ]

    async def update_role_template(
        self,
        template_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> RoleTemplate | None:
        template = await self.get_role_template(template_id, tenant_id)
        if template is None:
            return None
        self._templates[template_id] = _apply(template, changes)
        return _copy(self._templates[template_id])

    async def delete_role_template(self, template_id: str, tenant_id: str) -> bool:
        if await self.get_role_template(template_id, tenant_id) is None:
            return False
        del self._templates[template_id]
        return True

    async def increment_popularity(self, template_id: str, tenant_id: str, amount: int = 1) -> None:
        template = await self.get_role_template(template_id, tenant_id)
        if template is None:
            return
        self._templates[template_id] = _apply(
            template, {"user_count": max(0, template.user_count + amount)}
        )

    async def list_role_assignments(
        self,
        tenant_id: str,
        user_id: str | None = None,
        is_active: bool | None = None,
    ) -> list[RoleAssignment]:
        return [
            _copy(a)
            for a in self._assignments.values()
            if a.tenant_id == tenant_id
            and (user_id is None or a.user_id == user_id)
            and (is_active is None or a.is_active == is_active)
        ]

    async def create_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        self._assignments[assignment.id] = _copy(assignment)
        return _copy(assignment)

    async def update_role_assignment(
        self,
        assignment_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> RoleAssignment | None:
        assignment = self._assignments.get(assignment_id)
        if assignment is None or assignment.tenant_id != tenant_id:
            return None
        self._assignments[assignment_id] = _apply(assignment, changes)
        return _copy(self._assignments[assignment_id])

    # ------------------------------------------------------------------
    # ICampaignRepository
    # ------------------------------------------------------------------

    async def create_campaign(self, campaign: Campaign) -> Campaign:
        self._campaigns[campaign.id] = _copy(campaign)
        return _copy(campaign)

    async def get_campaign(self, campaign_id: str, tenant_id: str) -> Campaign | None:
        campaign = self._campaigns.get(campaign_id)
        if campaign is None or campaign.tenant_id != tenant_id:
            return None
        return _copy(campaign)

    async def list_campaigns(self, tenant_id: str, status: str | None = None) -> list[Campaign]:
        return [
            _copy(c)
            for c in self._campaigns.values()
            if c.tenant_id == tenant_id and (status is None or c.status == status)
        ]

    async def update_campaign(
        self,
        campaign_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> Campaign:
        campaign = await self.get_campaign(campaign_id, tenant_id)
        if campaign is None:
            raise NotFoundError(resource="Campaign", resource_id=campaign_id)
        self._campaigns[campaign_id] = _apply(campaign, changes)
        return _copy(self._campaigns[campaign_id])

    async def create_review_item(self, item: ReviewItem) -> ReviewItem:
        self._items[item.id] = _copy(item)
        return _copy(item)

    async def get_review_item(self, item_id: str) -> ReviewItem | None:
        item = self._items.get(item_id)
        return _copy(item) if item else None

    async def list_review_items(self, campaign_id: str) -> list[ReviewItem]:
        return [_copy(i) for i in self._items.values() if i.campaign_id == campaign_id]

    async def list_pending_review_items(self, campaign_id: str) -> list[ReviewItem]:
        return [
            _copy(i)
            for i in self._items.values()
            if i.campaign_id == campaign_id and i.decision == "pending"
        ]

    async def update_review_item(self, item_id: str, changes: dict[str, Any]) -> ReviewItem:
        item = self._items.get(item_id)
        if item is None:
            raise NotFoundError(resource="ReviewItem", resource_id=item_id)
        self._items[item_id] = _apply(item, changes)
        return _copy(self._items[item_id])

    async def append_decision(self, decision: AccessReviewDecision) -> AccessReviewDecision:
        self._decisions.append(decision)
        return decision

    async def list_decisions(self, campaign_id: str) -> list[AccessReviewDecision]:
        return [d for d in self._decisions if d.campaign_id == campaign_id]

    # ------------------------------------------------------------------
    # IDriftAlertRepository
    # ------------------------------------------------------------------

    async def create_drift_alert(self, alert: DriftAlert) -> DriftAlert:
        self._drift_alerts[alert.id] = _copy(alert)
        return _copy(alert)

    async def get_drift_alert(self, alert_id: str, tenant_id: str) -> DriftAlert | None:
        alert = self._drift_alerts.get(alert_id)
        if alert is None or alert.tenant_id != tenant_id:
            return None
        return _copy(alert)

    async def list_drift_alerts(self, tenant_id: str, status: str | None = None) -> list[DriftAlert]:
        return [
            _copy(a)
            for a in self._drift_alerts.values()
            if a.tenant_id == tenant_id and (status is None or a.status == status)
        ]

    async def update_drift_alert(
        self,
        alert_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> DriftAlert:
        alert = await self.get_drift_alert(alert_id, tenant_id)
        if alert is None:
            raise NotFoundError(resource="DriftAlert", resource_id=alert_id)
        self._drift_alerts[alert_id] = _apply(alert, changes)
        return _copy(self._drift_alerts[alert_id])

    # ------------------------------------------------------------------
    # IOverprivilegedAlertRepository
    # ------------------------------------------------------------------

    async def create_overprivileged_alert(self, alert: OverprivilegedAlert) -> OverprivilegedAlert:
        self._overprivileged_alerts[alert.id] = _copy(alert)
        return _copy(alert)

    async def get_overprivileged_alert(
        self,
        alert_id: str,
        tenant_id: str,
    ) -> OverprivilegedAlert | None:
        alert = self._overprivileged_alerts.get(alert_id)
        if alert is None or alert.tenant_id != tenant_id:
            return None
        return _copy(alert)

    async def list_overprivileged_alerts(
        self,
        tenant_id: str,
        status: str | None = None,
    ) -> list[OverprivilegedAlert]:
        return [
            _copy(a)
            for a in self._overprivileged_alerts.values()
            if a.tenant_id == tenant_id and (status is None or a.status == status)
        ]

    async def update_overprivileged_alert(
        self,
        alert_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> OverprivilegedAlert:
        alert = await self.get_overprivileged_alert(alert_id, tenant_id)
        if alert is None:
            raise NotFoundError(resource="OverprivilegedAlert", resource_id=alert_id)
        self._overprivileged_alerts[alert_id] = _apply(alert, changes)
        return _copy(self._overprivileged_alerts[alert_id])

    # ------------------------------------------------------------------
    # IReportStore
    # ------------------------------------------------------------------

    async def save_report(self, tenant_id: str, campaign_id: str, report: dict[str, Any]) -> str:
        history = self._reports.setdefault((tenant_id, campaign_id), [])
        history.append(report)
        return f"{self._report_base_path}/{campaign_id}/report?version={len(history)}"

    # ------------------------------------------------------------------
    # IRiskSignalSource
    # ------------------------------------------------------------------

    async def get_sod_violations(self, tenant_id: str, status: str | None = None) -> list[SodViolation]:
        return [
            _copy(v)
            for v in self._sod_violations.get(tenant_id, [])
            if status is None or v.status == status
        ]

    async def get_oauth_grants(self, tenant_id: str) -> list[OAuthGrant]:
        return [_copy(g) for g in self._oauth_grants.get(tenant_id, [])]

    async def get_anomalies(self, tenant_id: str, status: str | None = None) -> list[SecurityAnomaly]:
        return [
            _copy(a)
            for a in self._anomalies.get(tenant_id, [])
            if status is None or a.status == status
        ]


class RecordingEventSink:
    """IEventSink that records every event in emission order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, dict(payload)))

    def named(self, event_name: str) -> list[dict[str, Any]]:
        """Payloads of every recorded event with the given name."""
        return [payload for name, payload in self.events if name == event_name]


class InMemoryOutbox:
    """INotificationSender that keeps every message instead of delivering it.

    Args:
        rejected_recipients: Addresses for which send_email reports failure.
    """

    def __init__(self, rejected_recipients: set[str] | None = None) -> None:
        self.sent: list[EmailMessage] = []
        self._rejected = rejected_recipients or set()

    async def send_email(self, message: EmailMessage) -> bool:
        if message.to in self._rejected:
            return False
        self.sent.append(message)
        return True
