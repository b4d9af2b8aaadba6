"""Test fixtures for access-governance-engine.

Provides:
- tenant_id / now / clock: deterministic tenant and time
- store: an InMemoryGovernanceStore shared by every service under test
- event_sink / outbox: recording doubles for events and email
- campaign_engine, drift_detector, overprivileged_detector,
  role_template_service, risk_aggregator: services wired to the store

and module-level builders (make_user, make_app, make_grant) for seeding.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from access_governance_engine.adapters.memory import (
    InMemoryGovernanceStore,
    InMemoryOutbox,
    RecordingEventSink,
)
from access_governance_engine.core.campaigns import AccessReviewCampaignEngine
from access_governance_engine.core.department_risk import DepartmentRiskAggregator
from access_governance_engine.core.drift import PrivilegeDriftDetector
from access_governance_engine.core.models import AccessGrant, DirectoryUser, SaasApp
from access_governance_engine.core.overprivileged import OverprivilegedAccountDetector
from access_governance_engine.core.role_templates import RoleTemplateService

TENANT_ID = "tenant-1"
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


def days_ago(days: int) -> datetime:
    """A timestamp `days` whole days before NOW."""
    return NOW - timedelta(days=days)


def make_user(
    user_id: str,
    name: str | None = None,
    department: str | None = "Engineering",
    manager_id: str | None = None,
    email: str | None = "",
    is_active: bool = True,
) -> DirectoryUser:
    """Build a DirectoryUser. An empty email defaults to <user_id>@example.com."""
    return DirectoryUser(
        id=user_id,
        username=f"{user_id}.login",
        name=name or user_id.title(),
        email=f"{user_id}@example.com" if email == "" else email,
        department=department,
        job_title="Engineer",
        manager_id=manager_id,
        is_active=is_active,
    )


def make_app(
    app_id: str,
    risk_score: int = 10,
    category: str | None = None,
    name: str | None = None,
) -> SaasApp:
    return SaasApp(id=app_id, name=name or app_id.title(), category=category, risk_score=risk_score)


def make_grant(
    user_id: str,
    app_id: str,
    access_type: str = "member",
    last_used_days_ago: int | None = 1,
    granted_days_ago: int = 30,
    justification: str | None = "Needed for daily work",
    app_name: str | None = None,
) -> AccessGrant:
    """Build an AccessGrant. last_used_days_ago=None means never used."""
    return AccessGrant(
        user_id=user_id,
        app_id=app_id,
        app_name=app_name or app_id.title(),
        access_type=access_type,
        granted_date=days_ago(granted_days_ago),
        last_access_date=days_ago(last_used_days_ago) if last_used_days_ago is not None else None,
        business_justification=justification,
    )


@pytest.fixture()
def tenant_id() -> str:
    """Return a fixed tenant id for consistent test assertions."""
    return TENANT_ID


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def clock() -> Callable[[], datetime]:
    """A clock frozen at NOW."""
    return lambda: NOW


@pytest.fixture()
def store() -> InMemoryGovernanceStore:
    return InMemoryGovernanceStore()


@pytest.fixture()
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture()
def outbox() -> InMemoryOutbox:
    return InMemoryOutbox()


@pytest.fixture()
def campaign_engine(
    store: InMemoryGovernanceStore,
    event_sink: RecordingEventSink,
    outbox: InMemoryOutbox,
    clock: Callable[[], datetime],
) -> AccessReviewCampaignEngine:
    """Campaign engine wired to the in-memory store, sink and outbox."""
    return AccessReviewCampaignEngine(
        tenant_id=TENANT_ID,
        campaign_repo=store,
        access_store=store,
        directory=store,
        app_catalog=store,
        report_store=store,
        notifier=outbox,
        event_sink=event_sink,
        from_email="governance@example.com",
        app_url="https://governance.example.com",
        org_name="Example Corp",
        clock=clock,
    )


@pytest.fixture()
def drift_detector(
    store: InMemoryGovernanceStore,
    event_sink: RecordingEventSink,
    clock: Callable[[], datetime],
) -> PrivilegeDriftDetector:
    return PrivilegeDriftDetector(
        tenant_id=TENANT_ID,
        access_store=store,
        directory=store,
        app_catalog=store,
        role_store=store,
        alert_repo=store,
        event_sink=event_sink,
        scan_concurrency=2,
        clock=clock,
    )


@pytest.fixture()
def overprivileged_detector(
    store: InMemoryGovernanceStore,
    event_sink: RecordingEventSink,
    clock: Callable[[], datetime],
) -> OverprivilegedAccountDetector:
    return OverprivilegedAccountDetector(
        tenant_id=TENANT_ID,
        access_store=store,
        directory=store,
        app_catalog=store,
        alert_repo=store,
        event_sink=event_sink,
        scan_concurrency=2,
        clock=clock,
    )


@pytest.fixture()
def role_template_service(
    store: InMemoryGovernanceStore,
    clock: Callable[[], datetime],
) -> RoleTemplateService:
    return RoleTemplateService(tenant_id=TENANT_ID, role_store=store, directory=store, clock=clock)


@pytest.fixture()
def risk_aggregator(
    store: InMemoryGovernanceStore,
    event_sink: RecordingEventSink,
    clock: Callable[[], datetime],
) -> DepartmentRiskAggregator:
    return DepartmentRiskAggregator(
        tenant_id=TENANT_ID,
        directory=store,
        campaign_repo=store,
        overprivileged_repo=store,
        access_store=store,
        risk_signals=store,
        event_sink=event_sink,
        clock=clock,
    )
