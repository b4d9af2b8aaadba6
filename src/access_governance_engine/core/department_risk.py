"""Department risk aggregation.

Rolls six risk sub-factors up into one 0–100 score per department:

    factor                     weight   direction
    access review compliance   0.20     higher is better (enters as 100 − x)
    overprivileged accounts    0.20     lower is better
    SoD violations             0.25     lower is better
    dormant access             0.10     lower is better
    OAuth risk                 0.15     lower is better
    anomalies                  0.10     lower is better

Every sub-factor is computed inside its own failure guard. A failing upstream
source is logged and treated as zero evidence: a risk factor stays 0 and the
compliance factor stays 100.
"""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from access_governance_engine.core.alerts import TERMINAL_STATUSES
from access_governance_engine.core.events import DEPARTMENT_HIGH_RISK, emit_event
from access_governance_engine.core.interfaces import (
    IAccessStore,
    ICampaignRepository,
    IDirectoryStore,
    IEventSink,
    IOverprivilegedAlertRepository,
    IRiskSignalSource,
)
from access_governance_engine.core.models import DirectoryUser, RiskLevel
from access_governance_engine.core.scoring import classify_risk, days_between, round_half_up
from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

UNASSIGNED_DEPARTMENT = "Unassigned"
RECENT_CAMPAIGN_DAYS = 90
RECENT_ANOMALY_DAYS = 30
DORMANT_ACCESS_DAYS = 60
NO_RECENT_REVIEWS_COMPLIANCE = 50.0
IMPROVEMENT_GAP_THRESHOLD = 20
MAX_IMPROVEMENTS = 10
TOP_RISK_DEPARTMENTS = 5
MAX_TENANT_RECOMMENDATIONS = 5

FACTOR_WEIGHTS: dict[str, float] = {
    "access_review_compliance": 0.20,
    "overprivileged_accounts": 0.20,
    "sod_violations": 0.25,
    "dormant_access": 0.10,
    "oauth_risk": 0.15,
    "anomaly_score": 0.10,
}

# Factors where a higher value means lower risk.
_HIGHER_IS_BETTER = frozenset({"access_review_compliance"})


@dataclass
class DepartmentRiskFactors:
    """Sub-factor scores, each 0–100."""

    access_review_compliance: float = 100.0
    overprivileged_accounts: float = 0.0
    sod_violations: float = 0.0
    dormant_access: float = 0.0
    oauth_risk: float = 0.0
    anomaly_score: float = 0.0

    def weighted_score(self) -> int:
        """Overall score: weighted sum with compliance inverted, rounded half up."""
        total = 0.0
        for name, weight in FACTOR_WEIGHTS.items():
            value = getattr(self, name)
            total += weight * ((100 - value) if name in _HIGHER_IS_BETTER else value)
        return round_half_up(total)


@dataclass
class DepartmentRiskDetails:
    """Raw counts behind the sub-factor scores."""

    total_users: int = 0
    active_users: int = 0
    overprivileged_count: int = 0
    sod_violation_count: int = 0
    dormant_access_count: int = 0
    high_risk_oauth_apps: int = 0
    recent_anomalies: int = 0
    pending_access_reviews: int = 0
    completed_access_reviews: int = 0


@dataclass
class DepartmentRiskScore:
    department: str
    overall_risk_score: int
    risk_level: RiskLevel
    user_count: int
    factors: DepartmentRiskFactors
    details: DepartmentRiskDetails
    recommendations: list[str]
    last_calculated: datetime
    trend: str = "stable"


@dataclass
class DepartmentRiskSummary:
    calculated_at: datetime
    tenant_id: str
    overall_tenant_risk: int
    department_count: int
    departments: list[DepartmentRiskScore]
    top_risk_departments: list[dict[str, object]]
    risk_distribution: dict[str, int]
    recommendations: list[str] = field(default_factory=list)


@dataclass
class DepartmentComparison:
    """Ranked comparison of departments.

    Attributes:
        comparison: Departments ranked by ascending risk (rank 1 = lowest risk).
        best_practices: Best department per factor.
        improvements: Largest gaps (> 20 points) from the best department, top 10.
    """

    comparison: list[dict[str, object]]
    best_practices: list[dict[str, object]]
    improvements: list[dict[str, object]]


def department_recommendations(factors: DepartmentRiskFactors, details: DepartmentRiskDetails) -> list[str]:
    """Actionable recommendations for one department."""
    recommendations: list[str] = []
    if factors.access_review_compliance < 80:
        recommendations.append(f"Complete {details.pending_access_reviews} pending access reviews")
    if details.overprivileged_count:
        recommendations.append(f"Review {details.overprivileged_count} overprivileged accounts")
    if details.sod_violation_count:
        recommendations.append(
            f"Resolve {details.sod_violation_count} segregation of duties violations"
        )
    if details.dormant_access_count:
        recommendations.append(f"Review {details.dormant_access_count} dormant access grants")
    if details.high_risk_oauth_apps:
        recommendations.append(f"Audit {details.high_risk_oauth_apps} high-risk OAuth applications")
    if details.recent_anomalies:
        recommendations.append(f"Investigate {details.recent_anomalies} recent security anomalies")
    if not recommendations:
        recommendations = ["Maintain current security posture", "Continue regular access reviews"]
    return recommendations


def tenant_recommendations(departments: list[DepartmentRiskScore]) -> list[str]:
    """Tenant-wide recommendations, at most five."""
    if not departments:
        return []
    recommendations: list[str] = []
    critical = [d.department for d in departments if d.risk_level == "critical"]
    high = [d.department for d in departments if d.risk_level == "high"]
    if critical:
        recommendations.append(f"Prioritize {', '.join(critical)} for immediate security review")
    if high:
        recommendations.append(
            f"Schedule access reviews for high-risk departments: {', '.join(high)}"
        )

    count = len(departments)
    if sum(d.factors.overprivileged_accounts for d in departments) / count > 40:
        recommendations.append("Implement organization-wide privileged access management")
    if sum(d.factors.sod_violations for d in departments) / count > 30:
        recommendations.append("Strengthen segregation of duties policies across the organization")
    return recommendations[:MAX_TENANT_RECOMMENDATIONS]


class DepartmentRiskAggregator:
    """Computes department and tenant risk posture from governance signals.

    Args:
        tenant_id: Tenant to aggregate.
        directory: User directory, the source of department membership.
        campaign_repo: Campaign history for the compliance factor.
        overprivileged_repo: Overprivileged alerts for the overprivileged factor.
        access_store: Access grants for the dormant access factor.
        risk_signals: SoD, OAuth and anomaly signals.
        event_sink: Receives department.high_risk events.
        clock: Returns the current UTC time. Defaults to datetime.now(UTC).
    """

    def __init__(
        self,
        tenant_id: str,
        directory: IDirectoryStore,
        campaign_repo: ICampaignRepository,
        overprivileged_repo: IOverprivilegedAlertRepository,
        access_store: IAccessStore,
        risk_signals: IRiskSignalSource,
        event_sink: IEventSink,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tenant_id = tenant_id
        self._directory = directory
        self._campaign_repo = campaign_repo
        self._overprivileged_repo = overprivileged_repo
        self._access_store = access_store
        self._risk_signals = risk_signals
        self._event_sink = event_sink
        self._clock = clock or (lambda: datetime.now(UTC))

    async def calculate_all_department_risks(self) -> DepartmentRiskSummary:
        """Score every department of the tenant.

        Users without a department are grouped under "Unassigned". Emits
        department.high_risk for each high or critical department.

        Returns:
            Summary with departments sorted by score, highest first.
        """
        logger.info("Calculating department risks", tenant_id=self._tenant_id)
        grouped: dict[str, list[DirectoryUser]] = defaultdict(list)
        for user in await self._directory.get_users(self._tenant_id):
            grouped[user.department or UNASSIGNED_DEPARTMENT].append(user)

        scores = [
            await self.calculate_department_risk(department, users)
            for department, users in grouped.items()
        ]
        scores.sort(key=lambda s: s.overall_risk_score, reverse=True)

        distribution = {level: 0 for level in ("low", "medium", "high", "critical")}
        for score in scores:
            distribution[score.risk_level] += 1

        overall = (
            round_half_up(sum(s.overall_risk_score for s in scores) / len(scores)) if scores else 0
        )
        summary = DepartmentRiskSummary(
            calculated_at=self._clock(),
            tenant_id=self._tenant_id,
            overall_tenant_risk=overall,
            department_count=len(scores),
            departments=scores,
            top_risk_departments=[
                {"department": s.department, "score": s.overall_risk_score, "level": s.risk_level}
                for s in scores[:TOP_RISK_DEPARTMENTS]
            ],
            risk_distribution=distribution,
            recommendations=tenant_recommendations(scores),
        )

        for score in scores:
            if score.risk_level in ("high", "critical"):
                await emit_event(
                    self._event_sink,
                    DEPARTMENT_HIGH_RISK,
                    {
                        "tenant_id": self._tenant_id,
                        "department": score.department,
                        "risk_score": score.overall_risk_score,
                        "risk_level": score.risk_level,
                    },
                )

        logger.info(
            "Department risks calculated",
            tenant_id=self._tenant_id,
            department_count=len(scores),
            overall_tenant_risk=overall,
        )
        return summary

    async def get_department_risk(self, department: str) -> DepartmentRiskScore | None:
        """Score one department, or return None when it has no users."""
        users = [
            u
            for u in await self._directory.get_users(self._tenant_id)
            if (u.department or UNASSIGNED_DEPARTMENT) == department
        ]
        if not users:
            return None
        return await self.calculate_department_risk(department, users)

    async def calculate_department_risk(
        self,
        department: str,
        users: list[DirectoryUser],
    ) -> DepartmentRiskScore:
        """Score a department from its members' signals.

        Args:
            department: Department name.
            users: Members of the department.

        Returns:
            The department's risk score with factors, details and recommendations.
        """
        now = self._clock()
        user_ids = {u.id for u in users}
        factors = DepartmentRiskFactors()
        details = DepartmentRiskDetails(
            total_users=len(users),
            active_users=sum(1 for u in users if u.is_active),
        )

        try:
            cutoff = now - timedelta(days=RECENT_CAMPAIGN_DAYS)
            recent = [
                c for c in await self._campaign_repo.list_campaigns(self._tenant_id) if c.created_at >= cutoff
            ]
            if not recent:
                factors.access_review_compliance = NO_RECENT_REVIEWS_COMPLIANCE
            else:
                total = sum(c.total_items for c in recent)
                reviewed = sum(c.reviewed_items for c in recent)
                factors.access_review_compliance = (
                    float(round_half_up(reviewed / total * 100)) if total else 100.0
                )
                details.pending_access_reviews = total - reviewed
                details.completed_access_reviews = reviewed
        except Exception:
            logger.warning(
                "Access review compliance unavailable",
                department=department,
                exc_info=True,
            )

        try:
            alerts = await self._overprivileged_repo.list_overprivileged_alerts(self._tenant_id)
            details.overprivileged_count = sum(
                1 for a in alerts if a.user_id in user_ids and a.status not in TERMINAL_STATUSES
            )
            factors.overprivileged_accounts = float(min(100, details.overprivileged_count * 20))
        except Exception:
            logger.warning("Overprivileged signal unavailable", department=department, exc_info=True)

        try:
            violations = [
                v
                for v in await self._risk_signals.get_sod_violations(self._tenant_id, status="open")
                if v.user_id in user_ids
            ]
            details.sod_violation_count = len(violations)
            critical = sum(1 for v in violations if v.severity == "critical")
            factors.sod_violations = float(min(100, len(violations) * 15 + critical * 25))
        except Exception:
            logger.warning("SoD signal unavailable", department=department, exc_info=True)

        try:
            grants = await self._access_store.get_all_user_app_access(self._tenant_id)
            details.dormant_access_count = sum(
                1
                for g in grants
                if g.user_id in user_ids
                and (
                    g.last_access_date is None
                    or days_between(g.last_access_date, now) > DORMANT_ACCESS_DAYS
                )
            )
            factors.dormant_access = min(
                100.0, details.dormant_access_count / max(details.active_users, 1) * 100
            )
        except Exception:
            logger.warning("Dormant access signal unavailable", department=department, exc_info=True)

        try:
            details.high_risk_oauth_apps = sum(
                1
                for grant in await self._risk_signals.get_oauth_grants(self._tenant_id)
                if grant.user_id in user_ids and grant.risk_level in ("high", "critical")
            )
            factors.oauth_risk = float(min(100, details.high_risk_oauth_apps * 25))
        except Exception:
            logger.warning("OAuth signal unavailable", department=department, exc_info=True)

        try:
            anomaly_cutoff = now - timedelta(days=RECENT_ANOMALY_DAYS)
            details.recent_anomalies = sum(
                1
                for anomaly in await self._risk_signals.get_anomalies(self._tenant_id, status="open")
                if anomaly.user_id in user_ids and anomaly.detected_at >= anomaly_cutoff
            )
            factors.anomaly_score = float(min(100, details.recent_anomalies * 20))
        except Exception:
            logger.warning("Anomaly signal unavailable", department=department, exc_info=True)

        overall = factors.weighted_score()
        return DepartmentRiskScore(
            department=department,
            overall_risk_score=overall,
            risk_level=classify_risk(overall),
            user_count=len(users),
            factors=factors,
            details=details,
            recommendations=department_recommendations(factors, details),
            last_calculated=now,
        )

    async def compare_departments(self, departments: list[str]) -> DepartmentComparison:
        """Rank departments and surface per-factor best practices and gaps.

        Departments without users are left out.
        """
        scores: list[DepartmentRiskScore] = []
        for department in departments:
            score = await self.get_department_risk(department)
            if score is not None:
                scores.append(score)
        scores.sort(key=lambda s: s.overall_risk_score)

        comparison = [
            {
                "department": s.department,
                "score": s.overall_risk_score,
                "level": s.risk_level,
                "rank": index + 1,
            }
            for index, s in enumerate(scores)
        ]
        if not scores:
            return DepartmentComparison(comparison=[], best_practices=[], improvements=[])

        best_practices: list[dict[str, object]] = []
        best_by_factor: dict[str, DepartmentRiskScore] = {}
        for factor in FACTOR_WEIGHTS:
            best = scores[0]
            for score in scores[1:]:
                value = getattr(score.factors, factor)
                best_value = getattr(best.factors, factor)
                if (factor in _HIGHER_IS_BETTER and value > best_value) or (
                    factor not in _HIGHER_IS_BETTER and value < best_value
                ):
                    best = score
            best_by_factor[factor] = best
            best_practices.append(
                {"department": best.department, "factor": factor, "value": getattr(best.factors, factor)}
            )

        improvements: list[dict[str, object]] = []
        for score in scores:
            for factor, best in best_by_factor.items():
                if score.department == best.department:
                    continue
                current = getattr(score.factors, factor)
                best_value = getattr(best.factors, factor)
                gap = best_value - current if factor in _HIGHER_IS_BETTER else current - best_value
                if gap > IMPROVEMENT_GAP_THRESHOLD:
                    improvements.append({"department": score.department, "factor": factor, "gap": gap})
        improvements.sort(key=lambda i: i["gap"], reverse=True)  # type: ignore[arg-type,return-value]

        return DepartmentComparison(
            comparison=comparison,
            best_practices=best_practices,
            improvements=improvements[:MAX_IMPROVEMENTS],
        )
