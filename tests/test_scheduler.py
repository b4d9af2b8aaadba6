"""Tests for AccessReviewScheduler — the single-pass recurring jobs."""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from access_governance_engine.adapters.memory import InMemoryGovernanceStore, InMemoryOutbox, RecordingEventSink
from access_governance_engine.core.campaigns import AccessReviewCampaignEngine
from access_governance_engine.core.drift import PrivilegeDriftDetector
from access_governance_engine.core.events import ACCESS_REVIEW_OVERDUE
from access_governance_engine.core.models import CampaignConfig
from access_governance_engine.core.overprivileged import OverprivilegedAccountDetector
from access_governance_engine.core.scheduler import AccessReviewScheduler
from tests.conftest import NOW, TENANT_ID, make_app, make_grant, make_user


@pytest.fixture()
def scheduler(
    campaign_engine: AccessReviewCampaignEngine,
    drift_detector: PrivilegeDriftDetector,
    overprivileged_detector: OverprivilegedAccountDetector,
    event_sink: RecordingEventSink,
) -> AccessReviewScheduler:
    return AccessReviewScheduler(
        tenant_id=TENANT_ID,
        campaign_engine=campaign_engine,
        drift_detector=drift_detector,
        overprivileged_detector=overprivileged_detector,
        event_sink=event_sink,
    )


def _seed_team(store: InMemoryGovernanceStore) -> None:
    store.add_user(TENANT_ID, make_user("mona", manager_id="vp"))
    store.add_user(TENANT_ID, make_user("vp"))
    store.add_user(TENANT_ID, make_user("alice", manager_id="mona"))
    store.add_app(TENANT_ID, make_app("github"))
    store.add_grant(TENANT_ID, make_grant("alice", "github"))


async def _active_campaign(
    engine: AccessReviewCampaignEngine,
    name: str,
    due_in_days: int,
    auto_approve: bool = False,
) -> str:
    campaign_id = await engine.create_campaign(
        CampaignConfig(
            name=name,
            campaign_type="department",
            scope_type="all",
            start_date=NOW - timedelta(days=30),
            due_date=NOW + timedelta(days=due_in_days),
            auto_approve_on_timeout=auto_approve,
        ),
        created_by="admin",
    )
    await engine.generate_review_items(campaign_id)
    return campaign_id


def _finding(user_id: str, risk_level: str) -> SimpleNamespace:
    return SimpleNamespace(user_id=user_id, risk_level=risk_level)


class TestDetectionJobs:
    """Tests for run_privilege_drift_detection and run_overprivileged_detection."""

    @pytest.mark.asyncio()
    async def test_drift_run_isolates_alert_failures(self, event_sink: RecordingEventSink) -> None:
        drift = AsyncMock()
        drift.scan_all.return_value = [_finding("u1", "critical"), _finding("u2", "high")]
        drift.create_drift_alert.side_effect = ["alert-1", RuntimeError("db unavailable")]
        campaigns = AsyncMock()
        scheduler = AccessReviewScheduler(
            tenant_id=TENANT_ID,
            campaign_engine=campaigns,
            drift_detector=drift,
            overprivileged_detector=AsyncMock(),
            event_sink=event_sink,
        )

        summary = await scheduler.run_privilege_drift_detection()

        assert (summary.detected, summary.alerts_created, summary.alert_failures) == (2, 1, 1)
        assert summary.ad_hoc_campaign_id is None
        campaigns.launch_ad_hoc_campaign.assert_not_called()

    @pytest.mark.asyncio()
    async def test_critical_drift_launches_ad_hoc_campaign(self, event_sink: RecordingEventSink) -> None:
        drift = AsyncMock()
        drift.scan_all.return_value = [_finding("u1", "critical"), _finding("u2", "medium")]
        campaigns = AsyncMock()
        campaigns.launch_ad_hoc_campaign.return_value = ("campaign-9", 3)
        scheduler = AccessReviewScheduler(
            tenant_id=TENANT_ID,
            campaign_engine=campaigns,
            drift_detector=drift,
            overprivileged_detector=AsyncMock(),
            event_sink=event_sink,
            ad_hoc_due_days=5,
            launch_ad_hoc_for_critical_drift=True,
        )

        summary = await scheduler.run_privilege_drift_detection()

        assert summary.ad_hoc_campaign_id == "campaign-9"
        campaigns.launch_ad_hoc_campaign.assert_awaited_once_with(
            name="Critical Privilege Drift Review",
            user_ids=["u1"],
            due_in_days=5,
            created_by="system",
        )

    @pytest.mark.asyncio()
    async def test_overprivileged_run_creates_alerts(
        self,
        store: InMemoryGovernanceStore,
        scheduler: AccessReviewScheduler,
        overprivileged_detector: OverprivilegedAccountDetector,
    ) -> None:
        store.add_user(TENANT_ID, make_user("frank"))
        for app_id in ("aws", "gcp", "okta", "github", "jira"):
            store.add_app(TENANT_ID, make_app(app_id, category="development"))
            store.add_grant(TENANT_ID, make_grant("frank", app_id, access_type="admin"))

        summary = await scheduler.run_overprivileged_detection()

        assert (summary.detected, summary.alerts_created, summary.alert_failures) == (1, 1, 0)
        [alert] = await overprivileged_detector.list_alerts()
        assert alert.user_id == "frank"


class TestCampaignJobs:
    """Tests for create_quarterly_campaign and process_campaign_deadlines."""

    @pytest.mark.asyncio()
    async def test_quarterly_campaign_is_created_once(
        self,
        store: InMemoryGovernanceStore,
        scheduler: AccessReviewScheduler,
        campaign_engine: AccessReviewCampaignEngine,
    ) -> None:
        _seed_team(store)

        campaign_id = await scheduler.create_quarterly_campaign(NOW)

        assert campaign_id is not None
        campaign = await campaign_engine.get_campaign(campaign_id)
        assert campaign.name == "Q1 2026 Access Review"
        assert campaign.status == "active"
        assert campaign.total_items == 1
        assert campaign.due_date == NOW + timedelta(days=30)
        assert campaign.created_by == "system"
        assert await scheduler.create_quarterly_campaign(NOW) is None

    @pytest.mark.asyncio()
    async def test_deadlines_remind_escalate_and_auto_approve(
        self,
        store: InMemoryGovernanceStore,
        scheduler: AccessReviewScheduler,
        campaign_engine: AccessReviewCampaignEngine,
        event_sink: RecordingEventSink,
        outbox: InMemoryOutbox,
    ) -> None:
        _seed_team(store)
        upcoming = await _active_campaign(campaign_engine, "Upcoming", due_in_days=7)
        late = await _active_campaign(campaign_engine, "Late", due_in_days=-3)
        abandoned = await _active_campaign(campaign_engine, "Abandoned", due_in_days=-10, auto_approve=True)
        quiet = await _active_campaign(campaign_engine, "Quiet", due_in_days=20)

        summary = await scheduler.process_campaign_deadlines(NOW)

        assert summary.campaigns_checked == 4
        assert summary.reminders_sent == [upcoming]
        assert summary.overdue == [late, abandoned]
        assert summary.escalations_sent == [late]
        assert summary.auto_approved == {abandoned: 1}
        assert summary.failures == {}
        assert quiet not in summary.overdue

        assert sorted(m.to for m in outbox.sent) == ["mona@example.com", "vp@example.com"]
        overdue_events = event_sink.named(ACCESS_REVIEW_OVERDUE)
        assert [(e["campaign_id"], e["days_overdue"], e["auto_approved"]) for e in overdue_events] == [
            (late, 3, False),
            (abandoned, 10, True),
        ]
        assert (await campaign_engine.get_campaign(abandoned)).reviewed_items == 1

    @pytest.mark.asyncio()
    async def test_one_failing_campaign_does_not_stop_the_rest(
        self,
        store: InMemoryGovernanceStore,
        scheduler: AccessReviewScheduler,
        campaign_engine: AccessReviewCampaignEngine,
    ) -> None:
        _seed_team(store)
        upcoming = await _active_campaign(campaign_engine, "Upcoming", due_in_days=7)
        late = await _active_campaign(campaign_engine, "Late", due_in_days=-3)
        campaign_engine.send_reminders = AsyncMock(side_effect=RuntimeError("smtp down"))  # type: ignore[method-assign]

        summary = await scheduler.process_campaign_deadlines(NOW)

        assert summary.failures == {upcoming: "smtp down"}
        assert summary.escalations_sent == [late]
