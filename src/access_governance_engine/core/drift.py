"""Privilege drift detection.

Diffs a user's actual application access against the role template assigned
to them:

    excess_apps  = actual − expected                 (by app_id)
    missing_apps = {expected | required} − actual

A user has drift only when excess_apps is non-empty. Missing-but-required
access is carried on the result and the alert as evidence but never raises an
alert by itself.

Drift risk score (clamped to 0–100):
- 5 points per excess app
- +20 / +10 per excess app whose catalog risk score is >= 75 / >= 50
- +15 per excess app held with admin or owner access
- +10 per excess app unused for 90+ days (never used counts as unused)
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from access_governance_engine.core.alerts import ensure_alert_transition
from access_governance_engine.core.errors import NotFoundError, ValidationError
from access_governance_engine.core.events import PRIVILEGE_DRIFT_DETECTED, emit_event
from access_governance_engine.core.interfaces import (
    IAccessStore,
    IAppCatalog,
    IDirectoryStore,
    IDriftAlertRepository,
    IEventSink,
    IRoleTemplateStore,
)
from access_governance_engine.core.models import (
    ADMIN_ACCESS_TYPES,
    AccessGrant,
    AppRef,
    DriftAlert,
    ExecutionFailure,
    RiskLevel,
    RoleAssignment,
    grants_by_app,
)
from access_governance_engine.core.scanning import scan_isolated
from access_governance_engine.core.scoring import (
    clamp_score,
    classify_risk,
    days_between,
    recommended_action_for,
)
from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

UNUSED_ACCESS_DAYS = 90

DRIFT_RESOLUTIONS: frozenset[str] = frozenset({"revoked", "role_updated", "false_positive"})

_RECOMMENDED_ACTIONS: dict[RiskLevel, str] = {
    "critical": "Immediate action required: Revoke all excess apps and review role assignment",
    "high": "High priority: Create access review campaign for this user",
    "medium": "Review and update role template if access is legitimate, otherwise revoke",
    "low": "Low priority: Monitor and review during next quarterly certification",
}


@dataclass
class DriftResult:
    """Point-in-time drift finding for one user.

    Attributes:
        user_id: Scanned user.
        user_name: Display name of the user.
        role_id: Assigned role template id.
        role_name: Assigned role template name.
        excess_apps: Apps held but not expected by the role.
        missing_apps: Required apps the user does not hold.
        risk_score: Clamped 0–100 drift score.
        risk_level: Tier derived from risk_score.
        risk_factors: Human-readable contributors to the score.
        recommended_action: Suggested next step for the tier.
    """

    user_id: str
    user_name: str
    role_id: str
    role_name: str
    excess_apps: list[AppRef]
    missing_apps: list[AppRef]
    risk_score: int
    risk_level: RiskLevel
    risk_factors: list[str] = field(default_factory=list)
    recommended_action: str = ""


def _plural(count: int, singular: str, plural: str | None = None) -> str:
    return singular if count == 1 else (plural or f"{singular}s")


class PrivilegeDriftDetector:
    """Detects, alerts on, and resolves privilege drift for one tenant.

    Args:
        tenant_id: Tenant whose users are scanned.
        access_store: Source of access grants; target of revocations.
        directory: User directory.
        app_catalog: Application catalog for app risk scores.
        role_store: Role templates and assignments.
        alert_repo: Drift alert persistence.
        event_sink: Receives privilege_drift.detected events.
        scan_concurrency: Worker pool size for scan_all.
        clock: Returns the current UTC time. Defaults to datetime.now(UTC).
    """

    def __init__(
        self,
        tenant_id: str,
        access_store: IAccessStore,
        directory: IDirectoryStore,
        app_catalog: IAppCatalog,
        role_store: IRoleTemplateStore,
        alert_repo: IDriftAlertRepository,
        event_sink: IEventSink,
        scan_concurrency: int = 4,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tenant_id = tenant_id
        self._access_store = access_store
        self._directory = directory
        self._app_catalog = app_catalog
        self._role_store = role_store
        self._alert_repo = alert_repo
        self._event_sink = event_sink
        self._scan_concurrency = scan_concurrency
        self._clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def scan_all(self) -> list[DriftResult]:
        """Scan every user with an active role assignment.

        Per-user failures are logged and skipped.

        Returns:
            Drift results sorted by risk score, highest first.
        """
        logger.info("Scanning all users for privilege drift", tenant_id=self._tenant_id)
        assignments = await self._role_store.list_role_assignments(self._tenant_id, is_active=True)
        active = [a for a in assignments if a.is_active]

        async def _scan(assignment: RoleAssignment) -> DriftResult | None:
            return await self.scan_user(assignment.user_id, assignment.role_template_id)

        outcome = await scan_isolated(
            active,
            _scan,
            key=lambda a: a.user_id,
            concurrency=self._scan_concurrency,
            operation="privilege_drift.scan_user",
        )
        results = sorted(outcome.results, key=lambda r: r.risk_score, reverse=True)
        logger.info(
            "Privilege drift scan finished",
            tenant_id=self._tenant_id,
            users_scanned=outcome.scanned,
            drift_detected=len(results),
            scan_failures=len(outcome.failures),
        )
        return results

    async def scan_user(self, user_id: str, role_template_id: str) -> DriftResult | None:
        """Compare a user's actual access with their role template.

        Args:
            user_id: User to scan.
            role_template_id: Template assigned to the user.

        Returns:
            A DriftResult, or None when the user or template is unknown or the
            user holds no access beyond the template.
        """
        user = await self._directory.get_user(user_id)
        if user is None:
            return None
        template = await self._role_store.get_role_template(role_template_id, self._tenant_id)
        if template is None:
            return None

        grants = await self._access_store.get_user_app_access_list(user_id, self._tenant_id)
        by_app = grants_by_app(grants)
        expected_ids = {expected.app_id for expected in template.expected_apps}

        excess_apps = [
            AppRef(app_id=app_id, app_name=grant.app_name or app_id)
            for app_id, grant in by_app.items()
            if app_id not in expected_ids
        ]
        missing_apps = [
            AppRef(app_id=expected.app_id, app_name=expected.app_name)
            for expected in template.expected_apps
            if expected.required and expected.app_id not in by_app
        ]

        if not excess_apps:
            return None

        score, factors = await self._calculate_drift_risk(excess_apps, by_app)
        return DriftResult(
            user_id=user.id,
            user_name=user.name,
            role_id=template.id,
            role_name=template.name,
            excess_apps=excess_apps,
            missing_apps=missing_apps,
            risk_score=score,
            risk_level=classify_risk(score),
            risk_factors=factors,
            recommended_action=recommended_action_for(score, _RECOMMENDED_ACTIONS),
        )

    async def _calculate_drift_risk(
        self,
        excess_apps: list[AppRef],
        by_app: dict[str, AccessGrant],
    ) -> tuple[int, list[str]]:
        now = self._clock()
        score = 0
        factors: list[str] = []

        score += len(excess_apps) * 5
        factors.append(f"{len(excess_apps)} excess {_plural(len(excess_apps), 'app')}")

        for excess in excess_apps:
            app = await self._app_catalog.get_saas_app(excess.app_id, self._tenant_id)
            if app is None:
                continue
            if app.risk_score >= 75:
                score += 20
                factors.append(f"High-risk app: {app.name}")
            elif app.risk_score >= 50:
                score += 10
                factors.append(f"Medium-risk app: {app.name}")

        excess_grants = [by_app[excess.app_id] for excess in excess_apps]

        admin_count = sum(1 for g in excess_grants if g.access_type in ADMIN_ACCESS_TYPES)
        if admin_count:
            score += admin_count * 15
            factors.append(f"{admin_count} admin {_plural(admin_count, 'access', 'accesses')} not in role")

        unused_count = sum(
            1
            for g in excess_grants
            if g.last_access_date is None
            or days_between(g.last_access_date, now) >= UNUSED_ACCESS_DAYS
        )
        if unused_count:
            score += unused_count * 10
            factors.append(
                f"{unused_count} unused excess {_plural(unused_count, 'access', 'accesses')} "
                f"({UNUSED_ACCESS_DAYS}+ days)"
            )

        return int(clamp_score(score)), factors

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def create_drift_alert(self, result: DriftResult) -> str:
        """Persist an open drift alert for a scan result.

        Emits privilege_drift.detected for high and critical results. Emission
        failures are logged and never fail the call.

        Args:
            result: Output of scan_user.

        Returns:
            The new alert id.

        Raises:
            NotFoundError: If the user or role template no longer exists.
        """
        user = await self._directory.get_user(result.user_id)
        if user is None:
            raise NotFoundError(resource="User", resource_id=result.user_id)
        template = await self._role_store.get_role_template(result.role_id, self._tenant_id)
        if template is None:
            raise NotFoundError(resource="RoleTemplate", resource_id=result.role_id)

        grants = await self._access_store.get_user_app_access_list(user.id, self._tenant_id)
        actual_apps = [
            AppRef(app_id=app_id, app_name=grant.app_name or app_id)
            for app_id, grant in grants_by_app(grants).items()
        ]
        expected_apps = [
            AppRef(app_id=expected.app_id, app_name=expected.app_name)
            for expected in template.expected_apps
        ]

        alert = await self._alert_repo.create_drift_alert(
            DriftAlert(
                tenant_id=self._tenant_id,
                user_id=user.id,
                user_name=user.name,
                user_email=user.email,
                user_department=user.department,
                role_template_id=template.id,
                role_name=template.name,
                expected_apps=expected_apps,
                actual_apps=actual_apps,
                excess_apps=result.excess_apps,
                missing_apps=result.missing_apps,
                risk_score=result.risk_score,
                risk_level=result.risk_level,
                risk_factors=result.risk_factors,
                recommended_action=result.recommended_action,
                recommended_apps_to_revoke=result.excess_apps,
                status="open",
                created_at=self._clock(),
            )
        )

        if result.risk_level in ("high", "critical"):
            await emit_event(
                self._event_sink,
                PRIVILEGE_DRIFT_DETECTED,
                {
                    "tenant_id": self._tenant_id,
                    "alert_id": alert.id,
                    "user_id": user.id,
                    "user_name": user.name,
                    "risk_level": result.risk_level,
                    "risk_score": result.risk_score,
                    "excess_app_count": len(result.excess_apps),
                },
            )

        logger.info(
            "Drift alert created",
            alert_id=alert.id,
            user_id=user.id,
            risk_level=result.risk_level,
        )
        return alert.id

    async def get_alert(self, alert_id: str) -> DriftAlert:
        """Return a drift alert.

        Raises:
            NotFoundError: If the alert does not exist.
        """
        alert = await self._alert_repo.get_drift_alert(alert_id, self._tenant_id)
        if alert is None:
            raise NotFoundError(resource="DriftAlert", resource_id=alert_id)
        return alert

    async def list_alerts(self, status: str | None = None) -> list[DriftAlert]:
        """List drift alerts, highest risk first."""
        alerts = await self._alert_repo.list_drift_alerts(self._tenant_id, status=status)
        return sorted(alerts, key=lambda a: a.risk_score, reverse=True)

    async def resolve_drift_alert(
        self,
        alert_id: str,
        resolution: str,
        notes: str | None,
        resolved_by: str,
    ) -> DriftAlert:
        """Close a drift alert.

        `false_positive` moves the alert to false_positive; `revoked` and
        `role_updated` move it to resolved. For `revoked`, each excess app is
        revoked once; a failed revocation is logged and recorded on the alert
        without aborting the remaining revocations.

        Args:
            alert_id: Alert to resolve.
            resolution: revoked | role_updated | false_positive.
            notes: Free-text resolution notes.
            resolved_by: Acting user id.

        Returns:
            The updated alert.

        Raises:
            ValidationError: If the resolution value is unknown.
            NotFoundError: If the alert does not exist.
            ConflictError: If the alert is already closed.
        """
        if resolution not in DRIFT_RESOLUTIONS:
            raise ValidationError(
                message=f"Unknown drift resolution '{resolution}'",
                field="resolution",
            )

        alert = await self.get_alert(alert_id)
        target_status = "false_positive" if resolution == "false_positive" else "resolved"
        ensure_alert_transition(alert_id, alert.status, target_status)

        failures: list[ExecutionFailure] = []
        if resolution == "revoked":
            for app in alert.excess_apps:
                try:
                    await self._access_store.revoke_user_app_access(
                        alert.user_id, app.app_id, self._tenant_id
                    )
                    logger.info(
                        "Revoked excess access",
                        alert_id=alert_id,
                        user_id=alert.user_id,
                        app_id=app.app_id,
                    )
                except Exception as exc:
                    logger.error(
                        "Failed to revoke excess access",
                        alert_id=alert_id,
                        user_id=alert.user_id,
                        app_id=app.app_id,
                        error=str(exc),
                    )
                    failures.append(
                        ExecutionFailure(app_id=app.app_id, app_name=app.app_name, error=str(exc))
                    )

        changes: dict[str, Any] = {
            "status": target_status,
            "resolution": resolution,
            "resolution_notes": notes,
            "resolved_by": resolved_by,
            "resolved_at": self._clock(),
            "revocation_failures": failures,
        }
        updated = await self._alert_repo.update_drift_alert(alert_id, self._tenant_id, changes)
        logger.info(
            "Drift alert resolved",
            alert_id=alert_id,
            resolution=resolution,
            revocation_failures=len(failures),
        )
        return updated

    async def start_remediation(self, alert_id: str, started_by: str) -> DriftAlert:
        """Move an alert to in_remediation.

        Raises:
            NotFoundError: If the alert does not exist.
            ConflictError: If the alert cannot move to in_remediation.
        """
        alert = await self.get_alert(alert_id)
        ensure_alert_transition(alert_id, alert.status, "in_remediation")
        logger.info("Drift remediation started", alert_id=alert_id, started_by=started_by)
        return await self._alert_repo.update_drift_alert(
            alert_id, self._tenant_id, {"status": "in_remediation"}
        )

    async def accept_risk(self, alert_id: str, notes: str, accepted_by: str) -> DriftAlert:
        """Record an accepted risk for a drift alert.

        Raises:
            ValidationError: If no notes are given.
            NotFoundError: If the alert does not exist.
            ConflictError: If the alert cannot move to accepted_risk.
        """
        if not notes or not notes.strip():
            raise ValidationError(message="Accepting a drift risk requires notes", field="notes")
        alert = await self.get_alert(alert_id)
        ensure_alert_transition(alert_id, alert.status, "accepted_risk")
        logger.info("Drift risk accepted", alert_id=alert_id, accepted_by=accepted_by)
        return await self._alert_repo.update_drift_alert(
            alert_id,
            self._tenant_id,
            {"status": "accepted_risk", "resolution_notes": notes},
        )
