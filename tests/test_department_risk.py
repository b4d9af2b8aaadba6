"""Tests for DepartmentRiskAggregator — weighted department and tenant risk."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from access_governance_engine.adapters.memory import InMemoryGovernanceStore, RecordingEventSink
from access_governance_engine.core.department_risk import (
    DepartmentRiskAggregator,
    DepartmentRiskDetails,
    DepartmentRiskFactors,
    department_recommendations,
)
from access_governance_engine.core.events import DEPARTMENT_HIGH_RISK
from access_governance_engine.core.models import (
    Campaign,
    OAuthGrant,
    OverprivilegedAlert,
    SecurityAnomaly,
    SodViolation,
)
from tests.conftest import NOW, TENANT_ID, days_ago, make_grant, make_user


def _overprivileged_alert(user_id: str, status: str = "open") -> OverprivilegedAlert:
    return OverprivilegedAlert(
        tenant_id=TENANT_ID,
        user_id=user_id,
        user_name=user_id.title(),
        admin_app_count=5,
        risk_score=60,
        risk_level="high",
        recommended_action="Review admin access",
        status=status,
    )


async def _seed_recent_campaign(store: InMemoryGovernanceStore, total: int = 10, reviewed: int = 6) -> None:
    await store.create_campaign(
        Campaign(
            tenant_id=TENANT_ID,
            name="Q1 Review",
            campaign_type="quarterly",
            scope_type="all",
            start_date=days_ago(10),
            due_date=NOW + timedelta(days=4),
            status="active",
            total_items=total,
            reviewed_items=reviewed,
            approved_items=reviewed,
            created_by="admin",
            created_at=days_ago(10),
        )
    )


async def _seed_tenant(store: InMemoryGovernanceStore) -> None:
    """Quiet Engineering, noisy Sales.

    Sales sub-factors: overprivileged 60, SoD 70, dormant 100, OAuth 25,
    anomalies 20. Both departments share the tenant-wide 60% review
    compliance.
    """
    store.add_user(TENANT_ID, make_user("alice"))
    store.add_user(TENANT_ID, make_user("carl", department="Sales"))
    store.add_user(TENANT_ID, make_user("dana", department="Sales"))

    store.add_grant(TENANT_ID, make_grant("alice", "github"))
    store.add_grant(TENANT_ID, make_grant("carl", "github", last_used_days_ago=100))
    store.add_grant(TENANT_ID, make_grant("dana", "github", last_used_days_ago=None))
    store.add_grant(TENANT_ID, make_grant("dana", "slack"))

    await _seed_recent_campaign(store)
    # An old campaign outside the 90 day window is ignored.
    await store.create_campaign(
        Campaign(
            tenant_id=TENANT_ID,
            name="Old Review",
            campaign_type="quarterly",
            scope_type="all",
            start_date=days_ago(200),
            due_date=days_ago(180),
            status="completed",
            total_items=50,
            reviewed_items=0,
            created_by="admin",
            created_at=days_ago(200),
        )
    )

    await store.create_overprivileged_alert(_overprivileged_alert("carl"))
    await store.create_overprivileged_alert(_overprivileged_alert("carl", status="investigating"))
    await store.create_overprivileged_alert(_overprivileged_alert("dana"))
    await store.create_overprivileged_alert(_overprivileged_alert("carl", status="resolved"))

    store.add_sod_violation(TENANT_ID, SodViolation(user_id="carl", severity="critical"))
    store.add_sod_violation(TENANT_ID, SodViolation(user_id="carl"))
    store.add_sod_violation(TENANT_ID, SodViolation(user_id="dana"))
    store.add_sod_violation(TENANT_ID, SodViolation(user_id="dana", status="resolved"))

    store.add_oauth_grant(TENANT_ID, OAuthGrant(user_id="carl", app_name="Drive Sync", risk_level="high"))
    store.add_oauth_grant(TENANT_ID, OAuthGrant(user_id="dana", app_name="Calendar", risk_level="low"))

    store.add_anomaly(TENANT_ID, SecurityAnomaly(user_id="carl", detected_at=days_ago(5)))
    store.add_anomaly(TENANT_ID, SecurityAnomaly(user_id="carl", detected_at=days_ago(40)))
    store.add_anomaly(TENANT_ID, SecurityAnomaly(user_id="dana", detected_at=days_ago(2), status="closed"))


# ---------------------------------------------------------------------------
# Factor arithmetic
# ---------------------------------------------------------------------------


class TestDepartmentRiskFactors:
    """Tests for the weighted score and recommendation helpers."""

    def test_default_factors_score_zero(self) -> None:
        assert DepartmentRiskFactors().weighted_score() == 0

    def test_compliance_enters_inverted(self) -> None:
        assert DepartmentRiskFactors(access_review_compliance=0.0).weighted_score() == 20

    def test_all_risk_factors_maxed(self) -> None:
        factors = DepartmentRiskFactors(
            access_review_compliance=0.0,
            overprivileged_accounts=100.0,
            sod_violations=100.0,
            dormant_access=100.0,
            oauth_risk=100.0,
            anomaly_score=100.0,
        )
        assert factors.weighted_score() == 100

    def test_clean_department_keeps_posture(self) -> None:
        recommendations = department_recommendations(DepartmentRiskFactors(), DepartmentRiskDetails())
        assert recommendations == ["Maintain current security posture", "Continue regular access reviews"]


# ---------------------------------------------------------------------------
# Single department
# ---------------------------------------------------------------------------


class TestCalculateDepartmentRisk:
    """Tests for get_department_risk and calculate_department_risk."""

    @pytest.mark.asyncio()
    async def test_quiet_department_only_carries_compliance_gap(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        await _seed_tenant(store)

        score = await risk_aggregator.get_department_risk("Engineering")

        assert score is not None
        assert score.factors.access_review_compliance == 60.0
        assert score.overall_risk_score == 8
        assert score.risk_level == "low"
        assert score.user_count == 1
        assert score.details.pending_access_reviews == 4
        assert score.details.completed_access_reviews == 6
        assert score.recommendations == ["Complete 4 pending access reviews"]
        assert score.last_calculated == NOW

    @pytest.mark.asyncio()
    async def test_two_overprivileged_accounts_alone_score_low(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        store.add_user(TENANT_ID, make_user("erin", department="Finance"))
        store.add_user(TENANT_ID, make_user("fred", department="Finance"))
        store.add_grant(TENANT_ID, make_grant("erin", "netsuite"))
        store.add_grant(TENANT_ID, make_grant("fred", "netsuite"))
        await _seed_recent_campaign(store, total=10, reviewed=10)
        await store.create_overprivileged_alert(_overprivileged_alert("erin"))
        await store.create_overprivileged_alert(_overprivileged_alert("fred"))

        score = await risk_aggregator.get_department_risk("Finance")

        assert score is not None
        assert score.factors.access_review_compliance == 100.0
        assert score.factors.overprivileged_accounts == 40.0
        assert (
            score.factors.sod_violations,
            score.factors.dormant_access,
            score.factors.oauth_risk,
            score.factors.anomaly_score,
        ) == (0.0, 0.0, 0.0, 0.0)
        assert score.overall_risk_score == 8
        assert score.risk_level == "low"

    @pytest.mark.asyncio()
    async def test_noisy_department_factors(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        await _seed_tenant(store)

        score = await risk_aggregator.get_department_risk("Sales")

        assert score is not None
        assert score.factors.overprivileged_accounts == 60.0
        assert score.factors.sod_violations == 70.0
        assert score.factors.dormant_access == 100.0
        assert score.factors.oauth_risk == 25.0
        assert score.factors.anomaly_score == 20.0
        assert score.details.overprivileged_count == 3
        assert score.details.sod_violation_count == 3
        assert score.details.dormant_access_count == 2
        assert score.details.high_risk_oauth_apps == 1
        assert score.details.recent_anomalies == 1
        # 8 + 12 + 17.5 + 10 + 3.75 + 2
        assert score.overall_risk_score == 53
        assert score.risk_level == "high"
        assert "Resolve 3 segregation of duties violations" in score.recommendations

    @pytest.mark.asyncio()
    async def test_no_recent_campaigns_scores_half_compliance(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        store.add_user(TENANT_ID, make_user("alice"))

        score = await risk_aggregator.get_department_risk("Engineering")

        assert score is not None
        assert score.factors.access_review_compliance == 50.0
        assert score.overall_risk_score == 10

    @pytest.mark.asyncio()
    async def test_empty_campaigns_count_as_fully_compliant(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        store.add_user(TENANT_ID, make_user("alice"))
        await _seed_recent_campaign(store, total=0, reviewed=0)

        score = await risk_aggregator.get_department_risk("Engineering")

        assert score is not None
        assert score.factors.access_review_compliance == 100.0
        assert score.overall_risk_score == 0

    @pytest.mark.asyncio()
    async def test_failing_signal_source_is_treated_as_no_evidence(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        await _seed_tenant(store)
        store.get_sod_violations = AsyncMock(side_effect=RuntimeError("analyzer down"))  # type: ignore[method-assign]
        store.list_campaigns = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]

        score = await risk_aggregator.get_department_risk("Sales")

        assert score is not None
        assert score.factors.sod_violations == 0.0
        assert score.factors.access_review_compliance == 100.0
        assert score.factors.overprivileged_accounts == 60.0
        # 12 + 10 + 3.75 + 2
        assert score.overall_risk_score == 28

    @pytest.mark.asyncio()
    async def test_unknown_department_returns_none(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        await _seed_tenant(store)

        assert await risk_aggregator.get_department_risk("Legal") is None

    @pytest.mark.asyncio()
    async def test_users_without_department_are_unassigned(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        store.add_user(TENANT_ID, make_user("zed", department=None))

        score = await risk_aggregator.get_department_risk("Unassigned")

        assert score is not None
        assert score.user_count == 1


# ---------------------------------------------------------------------------
# Tenant summary and comparison
# ---------------------------------------------------------------------------


class TestTenantRisk:
    """Tests for calculate_all_department_risks and compare_departments."""

    @pytest.mark.asyncio()
    async def test_summary_sorts_and_aggregates(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        await _seed_tenant(store)

        summary = await risk_aggregator.calculate_all_department_risks()

        assert [d.department for d in summary.departments] == ["Sales", "Engineering"]
        assert summary.department_count == 2
        assert summary.overall_tenant_risk == 31
        assert summary.risk_distribution == {"low": 1, "medium": 0, "high": 1, "critical": 0}
        assert summary.top_risk_departments[0] == {"department": "Sales", "score": 53, "level": "high"}
        assert summary.recommendations == [
            "Schedule access reviews for high-risk departments: Sales",
            "Strengthen segregation of duties policies across the organization",
        ]
        assert summary.calculated_at == NOW

    @pytest.mark.asyncio()
    async def test_high_risk_departments_emit_events(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
        event_sink: RecordingEventSink,
    ) -> None:
        await _seed_tenant(store)

        await risk_aggregator.calculate_all_department_risks()

        events = event_sink.named(DEPARTMENT_HIGH_RISK)
        assert [(e["department"], e["risk_level"]) for e in events] == [("Sales", "high")]

    @pytest.mark.asyncio()
    async def test_empty_tenant(
        self,
        risk_aggregator: DepartmentRiskAggregator,
        event_sink: RecordingEventSink,
    ) -> None:
        summary = await risk_aggregator.calculate_all_department_risks()

        assert summary.departments == []
        assert summary.overall_tenant_risk == 0
        assert summary.recommendations == []
        assert event_sink.events == []

    @pytest.mark.asyncio()
    async def test_compare_ranks_lowest_risk_first(
        self,
        store: InMemoryGovernanceStore,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        await _seed_tenant(store)

        result = await risk_aggregator.compare_departments(["Sales", "Engineering", "Legal"])

        assert [(c["department"], c["rank"]) for c in result.comparison] == [
            ("Engineering", 1),
            ("Sales", 2),
        ]
        assert all(bp["department"] == "Engineering" for bp in result.best_practices)
        assert [(i["factor"], i["gap"]) for i in result.improvements] == [
            ("dormant_access", 100.0),
            ("sod_violations", 70.0),
            ("overprivileged_accounts", 60.0),
            ("oauth_risk", 25.0),
        ]

    @pytest.mark.asyncio()
    async def test_compare_unknown_departments_is_empty(
        self,
        risk_aggregator: DepartmentRiskAggregator,
    ) -> None:
        result = await risk_aggregator.compare_departments(["Legal"])

        assert result.comparison == []
        assert result.best_practices == []
        assert result.improvements == []
