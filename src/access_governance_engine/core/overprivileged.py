"""Overprivileged account detection and remediation.

A user is overprivileged when they hold admin or owner access to at least
MIN_ADMIN_APPS applications. Each admin grant is classified as:

- stale:           unused for STALE_ADMIN_DAYS or more (never used = 999 days)
- cross-department: the app's category is not relevant to the user's department
- long-running:    granted more than LONG_RUNNING_ADMIN_DAYS ago

Risk score (clamped to 0–100):
- +40 / +30 / +20 for >= 10 / >= 7 / >= 5 admin apps
- +10 per stale admin grant
- +15 per cross-department admin grant
- +12 per long-running admin grant
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from access_governance_engine.core.alerts import ensure_alert_transition
from access_governance_engine.core.errors import NotFoundError, ValidationError
from access_governance_engine.core.events import OVERPRIVILEGED_ACCOUNT_DETECTED, emit_event
from access_governance_engine.core.interfaces import (
    IAccessStore,
    IAppCatalog,
    IDirectoryStore,
    IEventSink,
    IOverprivilegedAlertRepository,
)
from access_governance_engine.core.models import (
    ADMIN_ACCESS_TYPES,
    AdminAppAccess,
    DirectoryUser,
    DowngradeRecommendation,
    ExecutionFailure,
    OverprivilegedAlert,
    RiskLevel,
    grants_by_app,
)
from access_governance_engine.core.scanning import scan_isolated
from access_governance_engine.core.scoring import (
    clamp_score,
    classify_risk,
    days_between,
    recommended_action_for,
    round_half_up,
)
from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

MIN_ADMIN_APPS = 5
STALE_ADMIN_DAYS = 90
LONG_RUNNING_ADMIN_DAYS = 365
NEVER_USED_DAYS = 999
REMEDIATION_DEADLINE_DAYS = 30

REMEDIATION_ACTIONS: frozenset[str] = frozenset(
    {"downgrade", "implement_jit", "require_mfa", "accept_risk"}
)

# Department → app categories considered relevant to its work.
DEPARTMENT_APP_RELEVANCE: dict[str, frozenset[str]] = {
    "Engineering": frozenset({"development", "infrastructure", "devops", "version-control"}),
    "Sales": frozenset({"crm", "sales", "marketing"}),
    "Marketing": frozenset({"marketing", "design", "social-media"}),
    "Finance": frozenset({"finance", "accounting", "erp"}),
    "Human Resources": frozenset({"hr", "recruiting", "payroll"}),
    "IT": frozenset({"it", "security", "infrastructure"}),
}

_RECOMMENDED_ACTIONS: dict[RiskLevel, str] = {
    "critical": "Critical: Immediately revoke stale admin access and review all admin permissions",
    "high": "High priority: Downgrade to standard user for unused apps, implement JIT access",
    "medium": "Review admin access justification and downgrade where appropriate",
    "low": "Monitor during next access review cycle",
}

_DEFAULT_ALTERNATIVE = "Standard user access with approval workflow"


@dataclass
class OverprivilegedResult:
    """Point-in-time overprivileged finding for one user."""

    user_id: str
    user_name: str
    user_email: str | None
    user_department: str | None
    user_title: str | None
    admin_apps: list[AdminAppAccess]
    stale_admin_apps: list[AdminAppAccess]
    cross_dept_admin_apps: list[AdminAppAccess]
    long_running_admin_count: int
    risk_score: int
    risk_level: RiskLevel
    risk_factors: list[str] = field(default_factory=list)
    recommended_action: str = ""

    @property
    def admin_app_count(self) -> int:
        return len(self.admin_apps)


@dataclass
class DowngradeStep:
    """One app in a remediation recommendation."""

    app_id: str
    app_name: str
    current_access: str
    recommended_access: str
    reason: str = "Unused for 90+ days - downgrade to reduce risk"


@dataclass
class RemediationRecommendation:
    """Suggested remediation for an overprivileged alert."""

    alert_id: str
    apps_to_downgrade: list[DowngradeStep]
    least_privilege_alternative: str
    estimated_risk_reduction: int


@dataclass
class OverprivilegedStatistics:
    """Tenant-wide overprivileged alert statistics."""

    total_overprivileged: int
    by_risk_level: dict[str, int]
    average_admin_apps: float
    total_stale_admin: int
    remediation_progress: int


def is_cross_department(app_category: str | None, department: str | None) -> bool:
    """Whether an app category falls outside a department's relevant categories.

    An app without a category, or a user without a department, is never
    cross-department. A department missing from the relevance map has no
    relevant categories, so every categorised app is cross-department.
    """
    if not app_category or not department:
        return False
    relevant = DEPARTMENT_APP_RELEVANCE.get(department, frozenset())
    return app_category.lower() not in relevant


def least_privilege_alternative(admin_app_count: int) -> str:
    """Least-privilege access model to propose for an admin footprint size."""
    if admin_app_count >= 10:
        return (
            "Implement Just-In-Time (JIT) access with 8-hour admin sessions "
            "instead of permanent admin rights"
        )
    if admin_app_count >= 7:
        return "Use approval workflows for admin actions instead of permanent admin access"
    return "Downgrade to standard user and elevate on-demand with MFA verification"


def _plural(count: int, singular: str, plural: str | None = None) -> str:
    return singular if count == 1 else (plural or f"{singular}s")


def score_overprivileged(
    admin_app_count: int,
    stale_admin_count: int,
    cross_dept_admin_count: int,
    long_running_admin_count: int,
) -> tuple[int, list[str]]:
    """Score an admin footprint.

    Returns:
        Tuple of (clamped score, human-readable risk factors).
    """
    score = 0
    factors: list[str] = []

    if admin_app_count >= 10:
        score += 40
        factors.append(f"Admin access to {admin_app_count} apps (excessive)")
    elif admin_app_count >= 7:
        score += 30
        factors.append(f"Admin access to {admin_app_count} apps (high)")
    elif admin_app_count >= MIN_ADMIN_APPS:
        score += 20
        factors.append(f"Admin access to {admin_app_count} apps")

    if stale_admin_count:
        score += stale_admin_count * 10
        factors.append(
            f"{stale_admin_count} stale admin {_plural(stale_admin_count, 'account')} "
            f"({STALE_ADMIN_DAYS}+ days unused)"
        )

    if cross_dept_admin_count:
        score += cross_dept_admin_count * 15
        factors.append(
            f"{cross_dept_admin_count} cross-department admin "
            f"{_plural(cross_dept_admin_count, 'access', 'accesses')}"
        )

    if long_running_admin_count:
        score += long_running_admin_count * 12
        factors.append(
            f"{long_running_admin_count} long-running admin "
            f"{_plural(long_running_admin_count, 'privilege')} (> 1 year)"
        )

    return int(clamp_score(score)), factors


class OverprivilegedAccountDetector:
    """Detects accounts with excessive admin access and drives remediation.

    Args:
        tenant_id: Tenant whose users are scanned.
        access_store: Source of access grants; target of downgrades.
        directory: User directory.
        app_catalog: Application catalog for app names and categories.
        alert_repo: Overprivileged alert persistence.
        event_sink: Receives overprivileged_account.detected events.
        scan_concurrency: Worker pool size for scan_all.
        clock: Returns the current UTC time. Defaults to datetime.now(UTC).
    """

    def __init__(
        self,
        tenant_id: str,
        access_store: IAccessStore,
        directory: IDirectoryStore,
        app_catalog: IAppCatalog,
        alert_repo: IOverprivilegedAlertRepository,
        event_sink: IEventSink,
        scan_concurrency: int = 4,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tenant_id = tenant_id
        self._access_store = access_store
        self._directory = directory
        self._app_catalog = app_catalog
        self._alert_repo = alert_repo
        self._event_sink = event_sink
        self._scan_concurrency = scan_concurrency
        self._clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def scan_all(self) -> list[OverprivilegedResult]:
        """Scan every active user of the tenant.

        Returns:
            Overprivileged results sorted by risk score, highest first.
        """
        logger.info("Scanning all users for overprivileged accounts", tenant_id=self._tenant_id)
        users = [u for u in await self._directory.get_users(self._tenant_id) if u.is_active]

        async def _scan(user: DirectoryUser) -> OverprivilegedResult | None:
            return await self.scan_user(user.id)

        outcome = await scan_isolated(
            users,
            _scan,
            key=lambda u: u.id,
            concurrency=self._scan_concurrency,
            operation="overprivileged.scan_user",
        )
        results = sorted(outcome.results, key=lambda r: r.risk_score, reverse=True)
        logger.info(
            "Overprivileged scan finished",
            tenant_id=self._tenant_id,
            users_scanned=outcome.scanned,
            overprivileged_detected=len(results),
            scan_failures=len(outcome.failures),
        )
        return results

    async def scan_user(self, user_id: str) -> OverprivilegedResult | None:
        """Analyse one user's admin footprint.

        Args:
            user_id: User to scan.

        Returns:
            An OverprivilegedResult, or None when the user is unknown or holds
            admin access to fewer than MIN_ADMIN_APPS distinct apps.
        """
        user = await self._directory.get_user(user_id)
        if user is None:
            return None

        grants = await self._access_store.get_user_app_access_list(user_id, self._tenant_id)
        admin_grants = [
            g for g in grants_by_app(grants).values() if g.access_type in ADMIN_ACCESS_TYPES
        ]
        if len(admin_grants) < MIN_ADMIN_APPS:
            return None

        now = self._clock()
        admin_apps: list[AdminAppAccess] = []
        stale: list[AdminAppAccess] = []
        cross_dept: list[AdminAppAccess] = []
        long_running = 0

        for grant in admin_grants:
            app = await self._app_catalog.get_saas_app(grant.app_id, self._tenant_id)
            category = app.category if app else None
            days_unused = (
                days_between(grant.last_access_date, now)
                if grant.last_access_date is not None
                else NEVER_USED_DAYS
            )
            access = AdminAppAccess(
                app_id=grant.app_id,
                app_name=(app.name if app else None) or grant.app_name or grant.app_id,
                access_type=grant.access_type,
                app_category=category,
                granted_at=grant.granted_date,
                last_used_at=grant.last_access_date,
                days_since_last_use=days_unused,
            )
            admin_apps.append(access)

            if days_unused >= STALE_ADMIN_DAYS:
                stale.append(access)
            if is_cross_department(category, user.department):
                cross_dept.append(access)
            if (
                grant.granted_date is not None
                and days_between(grant.granted_date, now) > LONG_RUNNING_ADMIN_DAYS
            ):
                long_running += 1

        score, factors = score_overprivileged(
            len(admin_apps), len(stale), len(cross_dept), long_running
        )
        return OverprivilegedResult(
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            user_department=user.department,
            user_title=user.job_title,
            admin_apps=admin_apps,
            stale_admin_apps=stale,
            cross_dept_admin_apps=cross_dept,
            long_running_admin_count=long_running,
            risk_score=score,
            risk_level=classify_risk(score),
            risk_factors=factors,
            recommended_action=recommended_action_for(score, _RECOMMENDED_ACTIONS),
        )

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def create_overprivileged_alert(self, result: OverprivilegedResult) -> str:
        """Persist an open alert with downgrade recommendations.

        Every stale admin app is recommended for downgrade to member access.
        Emits overprivileged_account.detected for high and critical results.

        Args:
            result: Output of scan_user.

        Returns:
            The new alert id.
        """
        downgrades = [
            DowngradeRecommendation(
                app_id=app.app_id,
                app_name=app.app_name,
                current_access=app.access_type,
                recommended_access="member",
            )
            for app in result.stale_admin_apps
        ]

        alert = await self._alert_repo.create_overprivileged_alert(
            OverprivilegedAlert(
                tenant_id=self._tenant_id,
                user_id=result.user_id,
                user_name=result.user_name,
                user_email=result.user_email,
                user_department=result.user_department,
                user_title=result.user_title,
                admin_app_count=result.admin_app_count,
                admin_apps=result.admin_apps,
                stale_admin_count=len(result.stale_admin_apps),
                stale_admin_apps=result.stale_admin_apps,
                cross_dept_admin_count=len(result.cross_dept_admin_apps),
                cross_dept_admin_apps=result.cross_dept_admin_apps,
                long_running_admin_count=result.long_running_admin_count,
                risk_score=result.risk_score,
                risk_level=result.risk_level,
                risk_factors=result.risk_factors,
                recommended_action=result.recommended_action,
                recommended_apps_to_downgrade=downgrades,
                least_privilege_alternative=least_privilege_alternative(result.admin_app_count),
                status="open",
                created_at=self._clock(),
            )
        )

        if result.risk_level in ("high", "critical"):
            await emit_event(
                self._event_sink,
                OVERPRIVILEGED_ACCOUNT_DETECTED,
                {
                    "tenant_id": self._tenant_id,
                    "alert_id": alert.id,
                    "user_id": result.user_id,
                    "user_name": result.user_name,
                    "risk_level": result.risk_level,
                    "risk_score": result.risk_score,
                    "admin_app_count": result.admin_app_count,
                },
            )

        logger.info(
            "Overprivileged alert created",
            alert_id=alert.id,
            user_id=result.user_id,
            risk_level=result.risk_level,
        )
        return alert.id

    async def get_alert(self, alert_id: str) -> OverprivilegedAlert:
        """Return an overprivileged alert.

        Raises:
            NotFoundError: If the alert does not exist.
        """
        alert = await self._alert_repo.get_overprivileged_alert(alert_id, self._tenant_id)
        if alert is None:
            raise NotFoundError(resource="OverprivilegedAlert", resource_id=alert_id)
        return alert

    async def list_alerts(self, status: str | None = None) -> list[OverprivilegedAlert]:
        """List overprivileged alerts, highest risk first."""
        alerts = await self._alert_repo.list_overprivileged_alerts(self._tenant_id, status=status)
        return sorted(alerts, key=lambda a: a.risk_score, reverse=True)

    async def remediate_account(
        self,
        alert_id: str,
        action: str,
        plan: str | None,
        remediated_by: str,
    ) -> OverprivilegedAlert:
        """Start remediation of an overprivileged account.

        `accept_risk` moves the alert to accepted_risk. Every other action moves
        it to in_remediation with a 30-day deadline. `downgrade` then sets each
        recommended app to its recommended access type, records failures on the
        alert, and marks the alert resolved once every downgrade was attempted.

        Args:
            alert_id: Alert to remediate.
            action: downgrade | implement_jit | require_mfa | accept_risk.
            plan: Free-text remediation plan (the justification for accept_risk).
            remediated_by: Acting user id.

        Returns:
            The updated alert.

        Raises:
            ValidationError: If the action is unknown.
            NotFoundError: If the alert does not exist.
            ConflictError: If the alert's status does not allow the action.
        """
        if action not in REMEDIATION_ACTIONS:
            raise ValidationError(message=f"Unknown remediation action '{action}'", field="action")

        alert = await self.get_alert(alert_id)
        now = self._clock()

        if action == "accept_risk":
            ensure_alert_transition(alert_id, alert.status, "accepted_risk")
            logger.info("Overprivileged risk accepted", alert_id=alert_id, accepted_by=remediated_by)
            return await self._alert_repo.update_overprivileged_alert(
                alert_id,
                self._tenant_id,
                {
                    "status": "accepted_risk",
                    "remediation_action": action,
                    "remediation_plan": plan,
                },
            )

        ensure_alert_transition(alert_id, alert.status, "in_remediation")
        updated = await self._alert_repo.update_overprivileged_alert(
            alert_id,
            self._tenant_id,
            {
                "status": "in_remediation",
                "remediation_action": action,
                "remediation_plan": plan,
                "remediation_deadline": now + timedelta(days=REMEDIATION_DEADLINE_DAYS),
            },
        )
        logger.info(
            "Overprivileged remediation started",
            alert_id=alert_id,
            action=action,
            remediated_by=remediated_by,
        )

        if action != "downgrade":
            return updated

        failures: list[ExecutionFailure] = []
        for app in alert.recommended_apps_to_downgrade:
            try:
                await self._access_store.update_user_app_access_type(
                    alert.user_id, app.app_id, self._tenant_id, app.recommended_access
                )
                logger.info(
                    "Downgraded admin access",
                    alert_id=alert_id,
                    app_id=app.app_id,
                    new_access=app.recommended_access,
                )
            except Exception as exc:
                logger.error(
                    "Failed to downgrade admin access",
                    alert_id=alert_id,
                    app_id=app.app_id,
                    error=str(exc),
                )
                failures.append(
                    ExecutionFailure(app_id=app.app_id, app_name=app.app_name, error=str(exc))
                )

        attempted = len(alert.recommended_apps_to_downgrade)
        changes: dict[str, Any] = {
            "status": "resolved",
            "resolved_by": remediated_by,
            "resolved_at": self._clock(),
            "resolution_notes": (
                f"Downgraded {attempted - len(failures)} of {attempted} apps "
                "to standard user access"
            ),
            "downgrade_failures": failures,
        }
        return await self._alert_repo.update_overprivileged_alert(alert_id, self._tenant_id, changes)

    async def add_justification(
        self,
        alert_id: str,
        justification: str,
        approved_by: str,
        expires_at: datetime | None,
    ) -> OverprivilegedAlert:
        """Record an approved business justification and accept the risk.

        Raises:
            ValidationError: If the justification is blank.
            NotFoundError: If the alert does not exist.
            ConflictError: If the alert is closed or already in remediation.
        """
        if not justification or not justification.strip():
            raise ValidationError(message="Justification text is required", field="justification")

        alert = await self.get_alert(alert_id)
        if alert.status != "accepted_risk":
            ensure_alert_transition(alert_id, alert.status, "accepted_risk")

        logger.info("Justification added", alert_id=alert_id, approved_by=approved_by)
        return await self._alert_repo.update_overprivileged_alert(
            alert_id,
            self._tenant_id,
            {
                "status": "accepted_risk",
                "has_justification": True,
                "justification_text": justification,
                "justification_approved_by": approved_by,
                "justification_expires_at": expires_at,
            },
        )

    async def get_remediation_recommendation(self, alert_id: str) -> RemediationRecommendation:
        """Describe the suggested remediation for an alert.

        The estimated risk reduction is 10 points per app to downgrade, capped
        at the alert's current score.
        """
        alert = await self.get_alert(alert_id)
        steps = [
            DowngradeStep(
                app_id=app.app_id,
                app_name=app.app_name,
                current_access=app.current_access,
                recommended_access=app.recommended_access,
            )
            for app in alert.recommended_apps_to_downgrade
        ]
        return RemediationRecommendation(
            alert_id=alert.id,
            apps_to_downgrade=steps,
            least_privilege_alternative=alert.least_privilege_alternative or _DEFAULT_ALTERNATIVE,
            estimated_risk_reduction=min(len(steps) * 10, alert.risk_score),
        )

    async def get_statistics(self) -> OverprivilegedStatistics:
        """Summarise every overprivileged alert of the tenant."""
        alerts = await self._alert_repo.list_overprivileged_alerts(self._tenant_id)
        by_risk_level = {level: 0 for level in ("critical", "high", "medium", "low")}
        for alert in alerts:
            by_risk_level[alert.risk_level] += 1

        total = len(alerts)
        average_admin_apps = (
            round_half_up(sum(a.admin_app_count for a in alerts) / total * 10) / 10 if total else 0.0
        )
        resolved = sum(1 for a in alerts if a.status == "resolved")
        return OverprivilegedStatistics(
            total_overprivileged=total,
            by_risk_level=by_risk_level,
            average_admin_apps=average_admin_apps,
            total_stale_admin=sum(a.stale_admin_count for a in alerts),
            remediation_progress=round_half_up(resolved / total * 100) if total else 0,
        )
