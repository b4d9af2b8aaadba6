"""Tests for PrivilegeDriftDetector — scanning, scoring, alerts and resolution."""

from unittest.mock import AsyncMock

import pytest

from access_governance_engine.adapters.memory import InMemoryGovernanceStore, RecordingEventSink
from access_governance_engine.core.drift import DriftResult, PrivilegeDriftDetector
from access_governance_engine.core.errors import ConflictError, NotFoundError, ValidationError
from access_governance_engine.core.events import PRIVILEGE_DRIFT_DETECTED
from access_governance_engine.core.models import AppRef, ExpectedApp, RoleTemplateDefinition
from access_governance_engine.core.role_templates import RoleTemplateService
from tests.conftest import TENANT_ID, make_app, make_grant, make_user


async def _seed_engineer(
    store: InMemoryGovernanceStore,
    role_template_service: RoleTemplateService,
) -> str:
    """Seed one engineer with two excess apps and one missing required app.

    Returns:
        The role template id.
    """
    for app in (
        make_app("github"),
        make_app("jira"),
        make_app("slack"),
        make_app("salesforce", risk_score=80),
        make_app("aws", risk_score=55),
    ):
        store.add_app(TENANT_ID, app)
    store.add_user(TENANT_ID, make_user("alice"))

    template = await role_template_service.create_role_template(
        RoleTemplateDefinition(
            name="Engineer",
            department="Engineering",
            expected_apps=[
                ExpectedApp(app_id="github", app_name="GitHub", required=True),
                ExpectedApp(app_id="jira", app_name="Jira", required=True),
                ExpectedApp(app_id="slack", app_name="Slack", required=False),
            ],
        ),
        created_by="admin",
    )
    await role_template_service.assign_role_to_user("alice", template.id, assigned_by="admin")

    store.add_grant(TENANT_ID, make_grant("alice", "github"))
    store.add_grant(TENANT_ID, make_grant("alice", "slack"))
    store.add_grant(TENANT_ID, make_grant("alice", "salesforce"))
    store.add_grant(TENANT_ID, make_grant("alice", "aws", access_type="admin", last_used_days_ago=None))
    return template.id


# ---------------------------------------------------------------------------
# Scanning and scoring
# ---------------------------------------------------------------------------


class TestScanUser:
    """Tests for the per-user access diff and drift score."""

    @pytest.mark.asyncio()
    async def test_excess_and_missing_apps(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        template_id = await _seed_engineer(store, role_template_service)

        result = await drift_detector.scan_user("alice", template_id)

        assert result is not None
        assert [a.app_id for a in result.excess_apps] == ["salesforce", "aws"]
        assert [a.app_id for a in result.missing_apps] == ["jira"]
        assert result.role_name == "Engineer"

    @pytest.mark.asyncio()
    async def test_score_combines_count_app_risk_admin_and_unused(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        template_id = await _seed_engineer(store, role_template_service)

        result = await drift_detector.scan_user("alice", template_id)

        # 2 excess * 5 + high-risk 20 + medium-risk 10 + 1 admin 15 + 1 never used 10
        assert result is not None
        assert result.risk_score == 65
        assert result.risk_level == "high"
        assert result.risk_factors == [
            "2 excess apps",
            "High-risk app: Salesforce",
            "Medium-risk app: Aws",
            "1 admin access not in role",
            "1 unused excess access (90+ days)",
        ]
        assert result.recommended_action.startswith("High priority")

    @pytest.mark.asyncio()
    async def test_no_excess_means_no_drift_even_with_missing_required(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        store.add_user(TENANT_ID, make_user("bob"))
        template = await role_template_service.create_role_template(
            RoleTemplateDefinition(
                name="Engineer",
                expected_apps=[
                    ExpectedApp(app_id="github", app_name="GitHub", required=True),
                    ExpectedApp(app_id="jira", app_name="Jira", required=True),
                ],
            ),
            created_by="admin",
        )
        store.add_grant(TENANT_ID, make_grant("bob", "github"))

        assert await drift_detector.scan_user("bob", template.id) is None

    @pytest.mark.asyncio()
    async def test_unknown_user_or_template_returns_none(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        template_id = await _seed_engineer(store, role_template_service)

        assert await drift_detector.scan_user("ghost", template_id) is None
        assert await drift_detector.scan_user("alice", "missing-template") is None

    @pytest.mark.asyncio()
    async def test_duplicate_grants_collapse_to_most_privileged(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        store.add_user(TENANT_ID, make_user("carol"))
        template = await role_template_service.create_role_template(
            RoleTemplateDefinition(name="Empty"), created_by="admin"
        )
        store.add_grant(TENANT_ID, make_grant("carol", "crm"))
        store.add_grant(TENANT_ID, make_grant("carol", "crm", access_type="owner"))

        result = await drift_detector.scan_user("carol", template.id)

        # 1 excess * 5 + 1 admin 15; the app is not in the catalog
        assert result is not None
        assert len(result.excess_apps) == 1
        assert result.risk_score == 20
        assert result.risk_level == "low"

    @pytest.mark.asyncio()
    async def test_score_is_clamped_to_100(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        store.add_user(TENANT_ID, make_user("dave"))
        template = await role_template_service.create_role_template(
            RoleTemplateDefinition(name="Empty"), created_by="admin"
        )
        for index in range(6):
            app_id = f"critical-app-{index}"
            store.add_app(TENANT_ID, make_app(app_id, risk_score=90))
            store.add_grant(
                TENANT_ID, make_grant("dave", app_id, access_type="admin", last_used_days_ago=200)
            )

        result = await drift_detector.scan_user("dave", template.id)

        assert result is not None
        assert result.risk_score == 100
        assert result.risk_level == "critical"


class TestScanAll:
    """Tests for the tenant-wide drift sweep."""

    @pytest.mark.asyncio()
    async def test_results_sorted_by_score_descending(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        template_id = await _seed_engineer(store, role_template_service)
        store.add_user(TENANT_ID, make_user("erin"))
        await role_template_service.assign_role_to_user("erin", template_id, assigned_by="admin")
        store.add_grant(TENANT_ID, make_grant("erin", "github"))
        store.add_grant(TENANT_ID, make_grant("erin", "notion"))

        results = await drift_detector.scan_all()

        assert [r.user_id for r in results] == ["alice", "erin"]
        assert results[1].risk_score == 5

    @pytest.mark.asyncio()
    async def test_one_failing_user_does_not_abort_the_sweep(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        template_id = await _seed_engineer(store, role_template_service)
        store.add_user(TENANT_ID, make_user("erin"))
        await role_template_service.assign_role_to_user("erin", template_id, assigned_by="admin")

        original = drift_detector.scan_user

        async def flaky_scan(user_id: str, role_template_id: str) -> DriftResult | None:
            if user_id == "erin":
                raise RuntimeError("access source timeout")
            return await original(user_id, role_template_id)

        drift_detector.scan_user = AsyncMock(side_effect=flaky_scan)  # type: ignore[method-assign]

        results = await drift_detector.scan_all()

        assert [r.user_id for r in results] == ["alice"]

    @pytest.mark.asyncio()
    async def test_inactive_assignments_are_not_scanned(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        await _seed_engineer(store, role_template_service)
        broad = await role_template_service.create_role_template(
            RoleTemplateDefinition(
                name="Broad",
                expected_apps=[
                    ExpectedApp(app_id=app_id, app_name=app_id)
                    for app_id in ("github", "slack", "salesforce", "aws")
                ],
            ),
            created_by="admin",
        )
        # Reassignment deactivates the original Engineer assignment.
        await role_template_service.assign_role_to_user("alice", broad.id, assigned_by="admin")

        assert await drift_detector.scan_all() == []


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class TestDriftAlerts:
    """Tests for alert creation, events and the alert lifecycle."""

    async def _open_alert(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> str:
        template_id = await _seed_engineer(store, role_template_service)
        result = await drift_detector.scan_user("alice", template_id)
        assert result is not None
        return await drift_detector.create_drift_alert(result)

    @pytest.mark.asyncio()
    async def test_create_alert_persists_evidence(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)

        alert = await drift_detector.get_alert(alert_id)
        assert alert.status == "open"
        assert alert.user_email == "alice@example.com"
        assert [a.app_id for a in alert.expected_apps] == ["github", "jira", "slack"]
        assert [a.app_id for a in alert.actual_apps] == ["github", "slack", "salesforce", "aws"]
        assert alert.recommended_apps_to_revoke == alert.excess_apps
        assert [a.app_id for a in alert.missing_apps] == ["jira"]

    @pytest.mark.asyncio()
    async def test_high_risk_alert_emits_event(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
        event_sink: RecordingEventSink,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)

        events = event_sink.named(PRIVILEGE_DRIFT_DETECTED)
        assert len(events) == 1
        assert events[0]["alert_id"] == alert_id
        assert events[0]["tenant_id"] == TENANT_ID
        assert events[0]["risk_level"] == "high"

    @pytest.mark.asyncio()
    async def test_low_risk_alert_emits_nothing(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
        event_sink: RecordingEventSink,
    ) -> None:
        store.add_user(TENANT_ID, make_user("erin"))
        template = await role_template_service.create_role_template(
            RoleTemplateDefinition(name="Empty"), created_by="admin"
        )
        store.add_grant(TENANT_ID, make_grant("erin", "notion"))
        result = await drift_detector.scan_user("erin", template.id)
        assert result is not None

        await drift_detector.create_drift_alert(result)

        assert event_sink.events == []

    @pytest.mark.asyncio()
    async def test_event_sink_failure_does_not_fail_alert_creation(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        failing_sink = AsyncMock()
        failing_sink.emit.side_effect = RuntimeError("broker down")
        drift_detector._event_sink = failing_sink

        alert_id = await self._open_alert(store, role_template_service, drift_detector)

        assert (await drift_detector.get_alert(alert_id)).status == "open"
        failing_sink.emit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_create_alert_for_unknown_user_raises_not_found(
        self,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        result = DriftResult(
            user_id="ghost",
            user_name="Ghost",
            role_id="role",
            role_name="Role",
            excess_apps=[AppRef(app_id="x", app_name="X")],
            missing_apps=[],
            risk_score=5,
            risk_level="low",
        )

        with pytest.raises(NotFoundError):
            await drift_detector.create_drift_alert(result)

    @pytest.mark.asyncio()
    async def test_resolve_revoked_revokes_every_excess_app(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)

        alert = await drift_detector.resolve_drift_alert(alert_id, "revoked", "Cleaned up", "security-lead")

        assert alert.status == "resolved"
        assert alert.resolution == "revoked"
        assert alert.resolved_by == "security-lead"
        assert alert.revocation_failures == []
        remaining = await store.get_user_app_access_list("alice", TENANT_ID)
        assert sorted(g.app_id for g in remaining) == ["github", "slack"]

    @pytest.mark.asyncio()
    async def test_failed_revocation_is_recorded_and_others_continue(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)
        await store.revoke_user_app_access("alice", "salesforce", TENANT_ID)

        alert = await drift_detector.resolve_drift_alert(alert_id, "revoked", None, "security-lead")

        assert alert.status == "resolved"
        assert [f.app_id for f in alert.revocation_failures] == ["salesforce"]
        remaining = await store.get_user_app_access_list("alice", TENANT_ID)
        assert "aws" not in {g.app_id for g in remaining}

    @pytest.mark.asyncio()
    async def test_false_positive_changes_no_access(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)

        alert = await drift_detector.resolve_drift_alert(alert_id, "false_positive", None, "lead")

        assert alert.status == "false_positive"
        assert len(await store.get_user_app_access_list("alice", TENANT_ID)) == 4

    @pytest.mark.asyncio()
    async def test_unknown_resolution_raises_validation_error(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)

        with pytest.raises(ValidationError):
            await drift_detector.resolve_drift_alert(alert_id, "ignored", None, "lead")

    @pytest.mark.asyncio()
    async def test_resolving_a_closed_alert_raises_conflict(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)
        await drift_detector.resolve_drift_alert(alert_id, "role_updated", None, "lead")

        with pytest.raises(ConflictError):
            await drift_detector.resolve_drift_alert(alert_id, "revoked", None, "lead")

    @pytest.mark.asyncio()
    async def test_accept_risk_requires_notes(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)

        with pytest.raises(ValidationError):
            await drift_detector.accept_risk(alert_id, "  ", "lead")

        alert = await drift_detector.accept_risk(alert_id, "Contractor needs CRM until June", "lead")
        assert alert.status == "accepted_risk"
        assert alert.resolution_notes == "Contractor needs CRM until June"

    @pytest.mark.asyncio()
    async def test_remediation_cannot_move_back_to_accepted_risk(
        self,
        store: InMemoryGovernanceStore,
        role_template_service: RoleTemplateService,
        drift_detector: PrivilegeDriftDetector,
    ) -> None:
        alert_id = await self._open_alert(store, role_template_service, drift_detector)
        alert = await drift_detector.start_remediation(alert_id, "lead")
        assert alert.status == "in_remediation"

        with pytest.raises(ConflictError):
            await drift_detector.accept_risk(alert_id, "Too late", "lead")

    @pytest.mark.asyncio()
    async def test_get_unknown_alert_raises_not_found(self, drift_detector: PrivilegeDriftDetector) -> None:
        with pytest.raises(NotFoundError):
            await drift_detector.get_alert("missing")
