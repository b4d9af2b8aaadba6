"""Single-pass scheduled jobs for an external cron.

The engine runs no clock of its own. Each method here performs one pass of a
recurring job and returns a summary; the caller decides when to invoke it:

- run_privilege_drift_detection   daily
- run_overprivileged_detection    weekly
- create_quarterly_campaign       first day of each quarter
- process_campaign_deadlines      daily
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from access_governance_engine.core.campaigns import AccessReviewCampaignEngine
from access_governance_engine.core.drift import PrivilegeDriftDetector
from access_governance_engine.core.events import ACCESS_REVIEW_OVERDUE, emit_event
from access_governance_engine.core.interfaces import IEventSink
from access_governance_engine.core.models import CampaignConfig
from access_governance_engine.core.overprivileged import OverprivilegedAccountDetector
from access_governance_engine.core.scoring import days_until
from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class ScanRunSummary:
    """Outcome of one detection pass.

    Attributes:
        detected: Findings returned by the scan.
        alerts_created: Alerts successfully persisted.
        alert_failures: Findings whose alert could not be persisted.
        ad_hoc_campaign_id: Campaign launched for critical findings, if any.
    """

    detected: int = 0
    alerts_created: int = 0
    alert_failures: int = 0
    ad_hoc_campaign_id: str | None = None


@dataclass
class DeadlineRunSummary:
    """Outcome of one deadline-processing pass."""

    campaigns_checked: int = 0
    reminders_sent: list[str] = field(default_factory=list)
    escalations_sent: list[str] = field(default_factory=list)
    auto_approved: dict[str, int] = field(default_factory=dict)
    overdue: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class AccessReviewScheduler:
    """Drives the recurring access governance jobs of one tenant.

    Args:
        tenant_id: Tenant the jobs run for.
        campaign_engine: Campaign engine of the tenant.
        drift_detector: Privilege drift detector of the tenant.
        overprivileged_detector: Overprivileged account detector of the tenant.
        event_sink: Receives access_review.overdue events.
        reminder_days_before_due: Days-remaining milestones that trigger reminders.
        escalation_days_overdue: Days-overdue milestones that trigger escalations.
        auto_approve_after_days_overdue: Overdue days after which pending items
            are auto-approved (for campaigns that enable it).
        quarterly_due_days: Duration of a quarterly campaign.
        ad_hoc_due_days: Duration of an ad hoc campaign for critical drift.
        launch_ad_hoc_for_critical_drift: Whether drift detection launches an
            ad hoc campaign for users with critical drift.
    """

    def __init__(
        self,
        tenant_id: str,
        campaign_engine: AccessReviewCampaignEngine,
        drift_detector: PrivilegeDriftDetector,
        overprivileged_detector: OverprivilegedAccountDetector,
        event_sink: IEventSink,
        reminder_days_before_due: list[int] | None = None,
        escalation_days_overdue: list[int] | None = None,
        auto_approve_after_days_overdue: int = 7,
        quarterly_due_days: int = 30,
        ad_hoc_due_days: int = 14,
        launch_ad_hoc_for_critical_drift: bool = False,
    ) -> None:
        self._tenant_id = tenant_id
        self._campaigns = campaign_engine
        self._drift = drift_detector
        self._overprivileged = overprivileged_detector
        self._event_sink = event_sink
        self._reminder_days = frozenset(reminder_days_before_due or [7, 3, 1])
        self._escalation_days = frozenset(escalation_days_overdue or [3, 7, 14])
        self._auto_approve_after = auto_approve_after_days_overdue
        self._quarterly_due_days = quarterly_due_days
        self._ad_hoc_due_days = ad_hoc_due_days
        self._launch_ad_hoc = launch_ad_hoc_for_critical_drift

    async def run_privilege_drift_detection(self) -> ScanRunSummary:
        """Scan for drift and open an alert per finding.

        A failure to persist one alert is logged and counted; the remaining
        findings are still processed.
        """
        results = await self._drift.scan_all()
        summary = ScanRunSummary(detected=len(results))
        for result in results:
            try:
                await self._drift.create_drift_alert(result)
            except Exception as exc:
                logger.error("Drift alert creation failed", user_id=result.user_id, error=str(exc))
                summary.alert_failures += 1
            else:
                summary.alerts_created += 1

        critical_users = [r.user_id for r in results if r.risk_level == "critical"]
        if self._launch_ad_hoc and critical_users:
            summary.ad_hoc_campaign_id, _ = await self._campaigns.launch_ad_hoc_campaign(
                name="Critical Privilege Drift Review",
                user_ids=critical_users,
                due_in_days=self._ad_hoc_due_days,
                created_by=SYSTEM_ACTOR,
            )

        logger.info(
            "Privilege drift detection run finished",
            tenant_id=self._tenant_id,
            detected=summary.detected,
            alerts_created=summary.alerts_created,
            alert_failures=summary.alert_failures,
        )
        return summary

    async def run_overprivileged_detection(self) -> ScanRunSummary:
        """Scan for overprivileged accounts and open an alert per finding."""
        results = await self._overprivileged.scan_all()
        summary = ScanRunSummary(detected=len(results))
        for result in results:
            try:
                await self._overprivileged.create_overprivileged_alert(result)
            except Exception as exc:
                logger.error(
                    "Overprivileged alert creation failed",
                    user_id=result.user_id,
                    error=str(exc),
                )
                summary.alert_failures += 1
            else:
                summary.alerts_created += 1

        logger.info(
            "Overprivileged detection run finished",
            tenant_id=self._tenant_id,
            detected=summary.detected,
            alerts_created=summary.alerts_created,
            alert_failures=summary.alert_failures,
        )
        return summary

    async def create_quarterly_campaign(self, now: datetime) -> str | None:
        """Create and populate the quarterly campaign for the quarter containing `now`.

        Returns:
            The new campaign id, or None when an active quarterly campaign exists.
        """
        active = await self._campaigns.list_campaigns(status="active")
        if any(c.campaign_type == "quarterly" for c in active):
            logger.info("Active quarterly campaign exists, skipping", tenant_id=self._tenant_id)
            return None

        quarter = (now.month - 1) // 3 + 1
        config = CampaignConfig(
            name=f"Q{quarter} {now.year} Access Review",
            description=f"Quarterly access certification for Q{quarter} {now.year}",
            campaign_type="quarterly",
            frequency="quarterly",
            scope_type="all",
            start_date=now,
            due_date=now + timedelta(days=self._quarterly_due_days),
            auto_approve_on_timeout=False,
        )
        campaign_id = await self._campaigns.create_campaign(config, SYSTEM_ACTOR)
        items = await self._campaigns.generate_review_items(campaign_id)
        logger.info(
            "Quarterly campaign created",
            tenant_id=self._tenant_id,
            campaign_id=campaign_id,
            items_created=items,
        )
        return campaign_id

    async def process_campaign_deadlines(self, now: datetime) -> DeadlineRunSummary:
        """Send reminders, escalate, auto-approve and flag overdue active campaigns.

        Each campaign is processed independently; one campaign's failure is
        recorded and does not stop the others.
        """
        summary = DeadlineRunSummary()
        for campaign in await self._campaigns.list_campaigns(status="active"):
            summary.campaigns_checked += 1
            try:
                days_remaining = days_until(campaign.due_date, now)

                if days_remaining in self._reminder_days:
                    await self._campaigns.send_reminders(campaign.id)
                    summary.reminders_sent.append(campaign.id)

                if days_remaining >= 0:
                    continue

                days_overdue = -days_remaining
                summary.overdue.append(campaign.id)

                if days_overdue in self._escalation_days:
                    await self._campaigns.escalate_overdue_reviews(campaign.id, days_overdue)
                    summary.escalations_sent.append(campaign.id)

                auto_approved = (
                    campaign.auto_approve_on_timeout and days_overdue >= self._auto_approve_after
                )
                if auto_approved:
                    summary.auto_approved[campaign.id] = (
                        await self._campaigns.auto_approve_pending_items(campaign.id)
                    )

                await emit_event(
                    self._event_sink,
                    ACCESS_REVIEW_OVERDUE,
                    {
                        "tenant_id": self._tenant_id,
                        "campaign_id": campaign.id,
                        "campaign_name": campaign.name,
                        "days_overdue": days_overdue,
                        "auto_approved": auto_approved,
                    },
                )
            except Exception as exc:
                logger.error(
                    "Campaign deadline processing failed",
                    campaign_id=campaign.id,
                    error=str(exc),
                )
                summary.failures[campaign.id] = str(exc) or type(exc).__name__

        logger.info(
            "Campaign deadlines processed",
            tenant_id=self._tenant_id,
            campaigns_checked=summary.campaigns_checked,
            overdue=len(summary.overdue),
            failures=len(summary.failures),
        )
        return summary
