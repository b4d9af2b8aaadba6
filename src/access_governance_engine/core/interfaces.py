"""Abstract interfaces (Protocol classes) for the access governance engine.

Defines the contracts between the engine components and their external
collaborators using typing.Protocol. Components depend on these protocols —
never on concrete adapters — so tests can substitute the in-memory adapter
or AsyncMock doubles.

Protocols defined:
- IAccessStore                   — user ↔ app access records (read + revoke/downgrade)
- IDirectoryStore                — users, departments, manager lookup
- IAppCatalog                    — application catalog (risk score, category)
- IRoleTemplateStore             — role template CRUD and role assignments
- ICampaignRepository            — campaigns, review items, append-only decisions
- IDriftAlertRepository          — privilege drift alerts
- IOverprivilegedAlertRepository — overprivileged account alerts
- IReportStore                   — completion report storage
- IRiskSignalSource              — SoD, OAuth and anomaly signals
- INotificationSender            — outbound email (non-throwing)
- IEventSink                     — fire-and-forget domain events
"""

from typing import Any, Protocol

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


class IAccessStore(Protocol):
    """Access record source. The engine's only writes are revoke and downgrade."""

    async def get_all_user_app_access(self, tenant_id: str) -> list[AccessGrant]:
        """Return every access grant in the tenant."""
        ...

    async def get_user_app_access_list(self, user_id: str, tenant_id: str) -> list[AccessGrant]:
        """Return the access grants held by one user."""
        ...

    async def revoke_user_app_access(self, user_id: str, app_id: str, tenant_id: str) -> None:
        """Remove a user's access to an application.

        Raises:
            Exception: Any failure of the underlying provisioning call. Callers
                record the failure against the item or alert being executed.
        """
        ...

    async def update_user_app_access_type(
        self,
        user_id: str,
        app_id: str,
        tenant_id: str,
        new_type: str,
    ) -> None:
        """Change the access type of an existing grant (e.g. admin → member)."""
        ...


class IDirectoryStore(Protocol):
    """Directory of people."""

    async def get_user(self, user_id: str) -> DirectoryUser | None:
        """Return a user by id, or None."""
        ...

    async def get_users(self, tenant_id: str) -> list[DirectoryUser]:
        """Return all users of a tenant."""
        ...

    async def get_user_by_username(self, username: str) -> DirectoryUser | None:
        """Return a user by username, or None. Used for manager lookup."""
        ...


class IAppCatalog(Protocol):
    """Application catalog."""

    async def get_saas_app(self, app_id: str, tenant_id: str) -> SaasApp | None:
        """Return an application by id, or None."""
        ...


class IRoleTemplateStore(Protocol):
    """Role template catalog and user role assignments."""

    async def create_role_template(self, template: RoleTemplate) -> RoleTemplate:
        """Persist a new role template."""
        ...

    async def get_role_template(self, template_id: str, tenant_id: str) -> RoleTemplate | None:
        """Return a role template, or None."""
        ...

    async def list_role_templates(
        self,
        tenant_id: str,
        department: str | None = None,
    ) -> list[RoleTemplate]:
        """List role templates, optionally filtered by department."""
        ...

    async def update_role_template(
        self,
        template_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> RoleTemplate | None:
        """Apply field changes to a role template. Returns None when absent."""
        ...

    async def delete_role_template(self, template_id: str, tenant_id: str) -> bool:
        """Delete a role template. Returns False when absent."""
        ...

    async def increment_popularity(self, template_id: str, tenant_id: str, amount: int = 1) -> None:
        """Adjust a template's user_count by `amount` (may be negative, floors at 0)."""
        ...

    async def list_role_assignments(
        self,
        tenant_id: str,
        user_id: str | None = None,
        is_active: bool | None = None,
    ) -> list[RoleAssignment]:
        """List role assignments, optionally filtered by user and active flag."""
        ...

    async def create_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        """Persist a new role assignment."""
        ...

    async def update_role_assignment(
        self,
        assignment_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> RoleAssignment | None:
        """Apply field changes to a role assignment. Returns None when absent."""
        ...


class ICampaignRepository(Protocol):
    """Persistence for campaigns, review items and the decision audit trail."""

    async def create_campaign(self, campaign: Campaign) -> Campaign:
        """Persist a new campaign."""
        ...

    async def get_campaign(self, campaign_id: str, tenant_id: str) -> Campaign | None:
        """Return a campaign, or None."""
        ...

    async def list_campaigns(self, tenant_id: str, status: str | None = None) -> list[Campaign]:
        """List campaigns, optionally filtered by status."""
        ...

    async def update_campaign(
        self,
        campaign_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> Campaign:
        """Apply field changes to a campaign and return the updated record."""
        ...

    async def create_review_item(self, item: ReviewItem) -> ReviewItem:
        """Persist a new review item."""
        ...

    async def get_review_item(self, item_id: str) -> ReviewItem | None:
        """Return a review item, or None."""
        ...

    async def list_review_items(self, campaign_id: str) -> list[ReviewItem]:
        """Return all items of a campaign in creation order."""
        ...

    async def list_pending_review_items(self, campaign_id: str) -> list[ReviewItem]:
        """Return the items of a campaign whose decision is still pending."""
        ...

    async def update_review_item(self, item_id: str, changes: dict[str, Any]) -> ReviewItem:
        """Apply field changes to a review item and return the updated record."""
        ...

    async def append_decision(self, decision: AccessReviewDecision) -> AccessReviewDecision:
        """Append an immutable decision record. There is no update or delete."""
        ...

    async def list_decisions(self, campaign_id: str) -> list[AccessReviewDecision]:
        """Return the decision audit trail of a campaign in append order."""
        ...


class IDriftAlertRepository(Protocol):
    """Persistence for privilege drift alerts."""

    async def create_drift_alert(self, alert: DriftAlert) -> DriftAlert:
        """Persist a new drift alert."""
        ...

    async def get_drift_alert(self, alert_id: str, tenant_id: str) -> DriftAlert | None:
        """Return a drift alert, or None."""
        ...

    async def list_drift_alerts(self, tenant_id: str, status: str | None = None) -> list[DriftAlert]:
        """List drift alerts, optionally filtered by status."""
        ...

    async def update_drift_alert(
        self,
        alert_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> DriftAlert:
        """Apply field changes to a drift alert and return the updated record."""
        ...


class IOverprivilegedAlertRepository(Protocol):
    """Persistence for overprivileged account alerts."""

    async def create_overprivileged_alert(self, alert: OverprivilegedAlert) -> OverprivilegedAlert:
        """Persist a new overprivileged account alert."""
        ...

    async def get_overprivileged_alert(
        self,
        alert_id: str,
        tenant_id: str,
    ) -> OverprivilegedAlert | None:
        """Return an overprivileged account alert, or None."""
        ...

    async def list_overprivileged_alerts(
        self,
        tenant_id: str,
        status: str | None = None,
    ) -> list[OverprivilegedAlert]:
        """List overprivileged account alerts, optionally filtered by status."""
        ...

    async def update_overprivileged_alert(
        self,
        alert_id: str,
        tenant_id: str,
        changes: dict[str, Any],
    ) -> OverprivilegedAlert:
        """Apply field changes to an overprivileged alert and return the updated record."""
        ...


class IReportStore(Protocol):
    """Storage for generated campaign completion reports."""

    async def save_report(self, tenant_id: str, campaign_id: str, report: dict[str, Any]) -> str:
        """Store a report and return a reference (URL or path) to it."""
        ...


class IRiskSignalSource(Protocol):
    """Upstream risk signals. Any call may fail; the aggregator tolerates that."""

    async def get_sod_violations(self, tenant_id: str, status: str | None = None) -> list[SodViolation]:
        """Return segregation-of-duties violations."""
        ...

    async def get_oauth_grants(self, tenant_id: str) -> list[OAuthGrant]:
        """Return third-party OAuth grants."""
        ...

    async def get_anomalies(self, tenant_id: str, status: str | None = None) -> list[SecurityAnomaly]:
        """Return behavioural anomalies."""
        ...


class INotificationSender(Protocol):
    """Outbound email delivery."""

    async def send_email(self, message: EmailMessage) -> bool:
        """Send an email. Never raises; returns True on success."""
        ...


class IEventSink(Protocol):
    """Fire-and-forget domain event sink, injected into each component."""

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Publish a named domain event."""
        ...
