"""Access review campaign engine.

Manages periodic access certification campaigns:
- create and scope campaigns
- generate risk-scored review items from access grants
- route items to reviewers (the user's manager)
- record reviewer decisions in an append-only audit trail and execute revocations
- track progress, send reminders and escalations, auto-approve on timeout
- produce the completion report and the auditor CSV

Campaign lifecycle is one way: draft → active → completed. Campaign counters
are always recomputed from the stored items, never incremented.
"""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from access_governance_engine.core.email_templates import render_escalation, render_reminder
from access_governance_engine.core.errors import ConflictError, NotFoundError, ValidationError
from access_governance_engine.core.events import ACCESS_REVIEW_COMPLETED, emit_event
from access_governance_engine.core.interfaces import (
    IAccessStore,
    IAppCatalog,
    ICampaignRepository,
    IDirectoryStore,
    IEventSink,
    INotificationSender,
    IReportStore,
)
from access_governance_engine.core.models import (
    ADMIN_ACCESS_TYPES,
    AccessGrant,
    AccessReviewDecision,
    Campaign,
    CampaignConfig,
    CampaignStatus,
    DirectoryUser,
    EmailMessage,
    ReviewItem,
    RiskLevel,
    ScopeConfig,
)
from access_governance_engine.core.reports import build_completion_report, render_campaign_csv
from access_governance_engine.core.scoring import classify_risk, days_between, days_until, round_half_up
from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

REVIEWER_DECISIONS: frozenset[str] = frozenset({"approved", "revoked", "deferred"})

SYSTEM_REVIEWER_ID = "system"
SYSTEM_REVIEWER_NAME = "System (Auto-Approved)"
AUTO_APPROVE_NOTE = "Auto-approved due to campaign timeout"


@dataclass
class CampaignProgress:
    """Read-only progress snapshot of a campaign."""

    campaign_id: str
    status: CampaignStatus
    total_items: int
    reviewed_items: int
    approved_items: int
    revoked_items: int
    deferred_items: int
    percent_complete: int
    days_remaining: int
    is_overdue: bool


@dataclass
class BulkDecision:
    """One decision applied to many review items."""

    item_ids: list[str]
    decision: str
    reviewer_id: str
    reviewer_name: str
    notes: str | None = None


@dataclass
class BulkDecisionResult:
    """Per-item outcome of a bulk decision."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


@dataclass
class NotificationSummary:
    """Outcome of a reminder or escalation run.

    Attributes:
        sent: Emails the sender accepted.
        failed: Emails the sender rejected or that raised while preparing.
        skipped: Reviewers with no reachable recipient (unknown user, no
            manager, or no email address).
    """

    sent: int = 0
    failed: int = 0
    skipped: int = 0


def score_review_item(
    access_type: str,
    app_risk_score: int,
    days_since_last_use: int | None,
    has_justification: bool,
) -> RiskLevel:
    """Risk tier of a single access grant under review.

    Points: admin/owner +25; app risk >= 75/50/25 → +30/+20/+10; unused for
    more than 180/90/30 days → +30/+20/+10 (never used scores nothing); no
    business justification +10. Tiers are the shared 75/50/25 thresholds.
    """
    score = 0
    if access_type in ADMIN_ACCESS_TYPES:
        score += 25

    if app_risk_score >= 75:
        score += 30
    elif app_risk_score >= 50:
        score += 20
    elif app_risk_score >= 25:
        score += 10

    if days_since_last_use is not None:
        if days_since_last_use > 180:
            score += 30
        elif days_since_last_use > 90:
            score += 20
        elif days_since_last_use > 30:
            score += 10

    if not has_justification:
        score += 10

    return classify_risk(score)


def _validate_campaign_config(config: CampaignConfig) -> None:
    if not config.name or not config.name.strip():
        raise ValidationError(message="Campaign name is required", field="name")
    if config.due_date < config.start_date:
        raise ValidationError(message="Due date must not precede start date", field="due_date")
    scope = config.scope_config
    if config.scope_type == "department" and not scope.departments:
        raise ValidationError(
            message="Department scope requires at least one department",
            field="scope_config.departments",
        )
    if config.scope_type == "apps" and not scope.app_ids:
        raise ValidationError(
            message="Apps scope requires at least one app id",
            field="scope_config.app_ids",
        )
    if config.scope_type == "users" and not scope.user_ids:
        raise ValidationError(
            message="Users scope requires at least one user id",
            field="scope_config.user_ids",
        )


class AccessReviewCampaignEngine:
    """Runs access certification campaigns for one tenant.

    Args:
        tenant_id: Owning tenant.
        campaign_repo: Campaign, review item and decision persistence.
        access_store: Source of access grants; target of revocations.
        directory: User directory for user snapshots and reviewer routing.
        app_catalog: Application catalog for app names and risk scores.
        report_store: Storage for completion reports.
        notifier: Outbound email sender.
        event_sink: Receives access_review.completed events.
        from_email: Sender address for reminder and escalation emails.
        app_url: Base URL linked from emails.
        org_name: Organisation name shown in email footers.
        clock: Returns the current UTC time. Defaults to datetime.now(UTC).
    """

    def __init__(
        self,
        tenant_id: str,
        campaign_repo: ICampaignRepository,
        access_store: IAccessStore,
        directory: IDirectoryStore,
        app_catalog: IAppCatalog,
        report_store: IReportStore,
        notifier: INotificationSender,
        event_sink: IEventSink,
        from_email: str = "noreply@example.com",
        app_url: str = "http://localhost:8000",
        org_name: str = "Access Governance",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tenant_id = tenant_id
        self._campaign_repo = campaign_repo
        self._access_store = access_store
        self._directory = directory
        self._app_catalog = app_catalog
        self._report_store = report_store
        self._notifier = notifier
        self._event_sink = event_sink
        self._from_email = from_email
        self._app_url = app_url
        self._org_name = org_name
        self._clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Campaign lifecycle
    # ------------------------------------------------------------------

    async def create_campaign(self, config: CampaignConfig, created_by: str) -> str:
        """Create a draft campaign.

        Args:
            config: Campaign configuration.
            created_by: Acting user id.

        Returns:
            The new campaign id.

        Raises:
            ValidationError: If the name is blank, the due date precedes the
                start date, or a non-`all` scope lists no targets.
        """
        _validate_campaign_config(config)
        campaign = await self._campaign_repo.create_campaign(
            Campaign(
                tenant_id=self._tenant_id,
                name=config.name.strip(),
                description=config.description,
                campaign_type=config.campaign_type,
                frequency=config.frequency,
                scope_type=config.scope_type,
                scope_config=config.scope_config,
                start_date=config.start_date,
                due_date=config.due_date,
                auto_approve_on_timeout=config.auto_approve_on_timeout,
                status="draft",
                created_by=created_by,
                created_at=self._clock(),
            )
        )
        logger.info(
            "Campaign created",
            campaign_id=campaign.id,
            name=campaign.name,
            campaign_type=campaign.campaign_type,
            scope_type=campaign.scope_type,
        )
        return campaign.id

    async def get_campaign(self, campaign_id: str) -> Campaign:
        """Return a campaign.

        Raises:
            NotFoundError: If the campaign does not exist in this tenant.
        """
        campaign = await self._campaign_repo.get_campaign(campaign_id, self._tenant_id)
        if campaign is None:
            raise NotFoundError(resource="Campaign", resource_id=campaign_id)
        return campaign

    async def list_campaigns(self, status: str | None = None) -> list[Campaign]:
        """List this tenant's campaigns, optionally filtered by status."""
        return await self._campaign_repo.list_campaigns(self._tenant_id, status=status)

    async def generate_review_items(self, campaign_id: str) -> int:
        """Create one review item per in-scope access grant and activate the campaign.

        Grants already represented in the campaign (same user and app) are
        skipped, so calling this twice leaves total_items unchanged. Grants
        whose user or app cannot be resolved are skipped and logged.

        Args:
            campaign_id: Campaign to populate.

        Returns:
            Number of items created by this call.

        Raises:
            NotFoundError: If the campaign does not exist.
            ConflictError: If the campaign is completed.
        """
        campaign = await self.get_campaign(campaign_id)
        if campaign.status == "completed":
            raise ConflictError(f"Campaign '{campaign_id}' is completed")

        grants = await self._grants_in_scope(campaign.scope_type, campaign.scope_config)
        existing = {
            (item.user_id, item.app_id)
            for item in await self._campaign_repo.list_review_items(campaign_id)
        }
        logger.info(
            "Generating review items",
            campaign_id=campaign_id,
            grants_in_scope=len(grants),
            existing_items=len(existing),
        )

        created = 0
        for grant in grants:
            key = (grant.user_id, grant.app_id)
            if key in existing:
                continue
            item = await self._build_review_item(campaign_id, grant)
            if item is None:
                continue
            await self._campaign_repo.create_review_item(item)
            existing.add(key)
            created += 1

        total_items = len(await self._campaign_repo.list_review_items(campaign_id))
        await self._campaign_repo.update_campaign(
            campaign_id,
            self._tenant_id,
            {"total_items": total_items, "status": "active"},
        )
        logger.info(
            "Review items generated",
            campaign_id=campaign_id,
            items_created=created,
            total_items=total_items,
        )
        return created

    async def _grants_in_scope(self, scope_type: str, scope: ScopeConfig) -> list[AccessGrant]:
        grants = await self._access_store.get_all_user_app_access(self._tenant_id)
        if scope_type == "apps":
            app_ids = set(scope.app_ids)
            return [g for g in grants if g.app_id in app_ids]
        if scope_type == "users":
            user_ids = set(scope.user_ids)
            return [g for g in grants if g.user_id in user_ids]
        if scope_type == "department":
            departments = set(scope.departments)
            users = await self._directory.get_users(self._tenant_id)
            in_scope = {u.id for u in users if u.department in departments}
            return [g for g in grants if g.user_id in in_scope]
        return grants

    async def _resolve_user_reference(self, reference: str | None) -> DirectoryUser | None:
        """Resolve a manager reference, which may be a user id or a username."""
        if not reference:
            return None
        user = await self._directory.get_user(reference)
        if user is None:
            user = await self._directory.get_user_by_username(reference)
        return user

    async def _build_review_item(self, campaign_id: str, grant: AccessGrant) -> ReviewItem | None:
        user = await self._directory.get_user(grant.user_id)
        app = await self._app_catalog.get_saas_app(grant.app_id, self._tenant_id)
        if user is None or app is None:
            logger.warning(
                "Skipping review item for unresolvable grant",
                campaign_id=campaign_id,
                user_id=grant.user_id,
                app_id=grant.app_id,
                user_found=user is not None,
                app_found=app is not None,
            )
            return None

        now = self._clock()
        days_unused = (
            days_between(grant.last_access_date, now) if grant.last_access_date is not None else None
        )
        reviewer = await self._resolve_user_reference(user.manager_id)

        return ReviewItem(
            tenant_id=self._tenant_id,
            campaign_id=campaign_id,
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            user_department=user.department,
            user_manager=user.manager_id,
            app_id=app.id,
            app_name=app.name,
            access_type=grant.access_type,
            granted_date=grant.granted_date,
            last_used_date=grant.last_access_date,
            days_since_last_use=days_unused,
            business_justification=grant.business_justification,
            risk_level=score_review_item(
                grant.access_type,
                app.risk_score,
                days_unused,
                bool(grant.business_justification),
            ),
            reviewer_id=reviewer.id if reviewer else None,
            reviewer_name=reviewer.name if reviewer else None,
            created_at=now,
        )

    async def _recount(self, campaign_id: str) -> Campaign:
        items = await self._campaign_repo.list_review_items(campaign_id)
        changes = {
            "total_items": len(items),
            "reviewed_items": sum(1 for i in items if i.decision != "pending"),
            "approved_items": sum(1 for i in items if i.decision == "approved"),
            "revoked_items": sum(1 for i in items if i.decision == "revoked"),
            "deferred_items": sum(1 for i in items if i.decision == "deferred"),
        }
        return await self._campaign_repo.update_campaign(campaign_id, self._tenant_id, changes)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def submit_decision(
        self,
        item_id: str,
        decision: str,
        notes: str | None,
        reviewer_id: str,
        reviewer_name: str,
    ) -> ReviewItem:
        """Record a reviewer decision on a review item.

        For `revoked` executes the revocation first, then appends an immutable
        decision record carrying the execution outcome and recounts the
        campaign counters. A revocation failure is recorded on the item and
        the decision (execution_status failed) and never raised.
        Re-submitting the decision the item already carries is a no-op.

        Args:
            item_id: Review item to decide.
            decision: approved | revoked | deferred.
            notes: Reviewer notes, stored as the decision rationale.
            reviewer_id: Acting reviewer id.
            reviewer_name: Acting reviewer display name.

        Returns:
            The review item after the decision (and any revocation).

        Raises:
            ValidationError: If the decision value is unknown.
            NotFoundError: If the item or its campaign does not exist.
            ConflictError: If the campaign is completed or the item already
                carries a different decision.
        """
        if decision not in REVIEWER_DECISIONS:
            raise ValidationError(message=f"Unknown decision '{decision}'", field="decision")

        item = await self._campaign_repo.get_review_item(item_id)
        if item is None or item.tenant_id != self._tenant_id:
            raise NotFoundError(resource="ReviewItem", resource_id=item_id)
        campaign = await self.get_campaign(item.campaign_id)
        if campaign.status == "completed":
            raise ConflictError(f"Campaign '{campaign.id}' is completed")

        if item.decision == decision:
            logger.info("Decision unchanged, nothing to do", item_id=item_id, decision=decision)
            return item
        if item.decision != "pending":
            raise ConflictError(
                f"Review item '{item_id}' already decided as '{item.decision}'"
            )

        reviewer = await self._directory.get_user(reviewer_id)
        updated = await self._campaign_repo.update_review_item(
            item_id,
            {
                "decision": decision,
                "decision_notes": notes,
                "reviewer_id": reviewer_id,
                "reviewer_name": reviewer_name,
                "reviewed_at": self._clock(),
            },
        )
        if decision == "revoked":
            updated = await self._execute_revocation(updated)

        await self._campaign_repo.append_decision(
            AccessReviewDecision(
                tenant_id=self._tenant_id,
                campaign_id=item.campaign_id,
                review_item_id=item_id,
                decision=decision,
                rationale=notes,
                reviewer_id=reviewer_id,
                reviewer_name=reviewer_name,
                reviewer_email=reviewer.email if reviewer else None,
                execution_status=updated.execution_status,
                timestamp=self._clock(),
            )
        )
        await self._recount(item.campaign_id)
        logger.info(
            "Review item decided",
            item_id=item_id,
            campaign_id=item.campaign_id,
            decision=decision,
            reviewer_id=reviewer_id,
        )
        return updated

    async def _execute_revocation(self, item: ReviewItem) -> ReviewItem:
        try:
            await self._access_store.revoke_user_app_access(item.user_id, item.app_id, self._tenant_id)
        except Exception as exc:
            logger.error(
                "Revocation failed",
                item_id=item.id,
                user_id=item.user_id,
                app_id=item.app_id,
                error=str(exc),
            )
            return await self._campaign_repo.update_review_item(
                item.id,
                {"execution_status": "failed", "execution_error": str(exc) or type(exc).__name__},
            )

        logger.info("Revocation completed", item_id=item.id, user_id=item.user_id, app_id=item.app_id)
        return await self._campaign_repo.update_review_item(
            item.id,
            {"execution_status": "completed", "executed_at": self._clock()},
        )

    async def submit_bulk_decision(self, bulk: BulkDecision) -> BulkDecisionResult:
        """Apply one decision to many items, isolating per-item failures.

        Raises:
            ValidationError: If the decision value is unknown. Nothing is applied.
        """
        if bulk.decision not in REVIEWER_DECISIONS:
            raise ValidationError(message=f"Unknown decision '{bulk.decision}'", field="decision")

        result = BulkDecisionResult()
        for item_id in bulk.item_ids:
            try:
                await self.submit_decision(
                    item_id, bulk.decision, bulk.notes, bulk.reviewer_id, bulk.reviewer_name
                )
            except Exception as exc:
                logger.warning("Bulk decision item failed", item_id=item_id, error=str(exc))
                result.failed[item_id] = str(exc) or type(exc).__name__
            else:
                result.succeeded.append(item_id)

        logger.info(
            "Bulk decision processed",
            decision=bulk.decision,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result

    async def list_review_items(
        self,
        campaign_id: str,
        reviewer_id: str | None = None,
    ) -> list[ReviewItem]:
        """List a campaign's items, optionally only those routed to one reviewer."""
        await self.get_campaign(campaign_id)
        items = await self._campaign_repo.list_review_items(campaign_id)
        if reviewer_id is not None:
            items = [item for item in items if item.reviewer_id == reviewer_id]
        return items

    # ------------------------------------------------------------------
    # Progress and completion
    # ------------------------------------------------------------------

    async def get_campaign_progress(self, campaign_id: str) -> CampaignProgress:
        """Return a progress snapshot. Pure read."""
        campaign = await self.get_campaign(campaign_id)
        percent = (
            round_half_up(campaign.reviewed_items / campaign.total_items * 100)
            if campaign.total_items
            else 0
        )
        days_remaining = days_until(campaign.due_date, self._clock())
        return CampaignProgress(
            campaign_id=campaign.id,
            status=campaign.status,
            total_items=campaign.total_items,
            reviewed_items=campaign.reviewed_items,
            approved_items=campaign.approved_items,
            revoked_items=campaign.revoked_items,
            deferred_items=campaign.deferred_items,
            percent_complete=percent,
            days_remaining=days_remaining,
            is_overdue=days_remaining < 0,
        )

    async def complete_campaign(self, campaign_id: str) -> Campaign:
        """Complete an active campaign.

        Builds and stores the completion report, marks the campaign completed,
        and emits access_review.completed.

        Raises:
            NotFoundError: If the campaign does not exist.
            ConflictError: If the campaign is still a draft or already completed.
        """
        campaign = await self.get_campaign(campaign_id)
        if campaign.status != "active":
            raise ConflictError(
                f"Campaign '{campaign_id}' cannot be completed from status '{campaign.status}'"
            )

        campaign = await self._recount(campaign_id)
        completed_at = self._clock()
        report_url = await self._store_report(campaign, completed_at)
        campaign = await self._campaign_repo.update_campaign(
            campaign_id,
            self._tenant_id,
            {
                "status": "completed",
                "completed_at": completed_at,
                "completion_report_url": report_url,
            },
        )

        await emit_event(
            self._event_sink,
            ACCESS_REVIEW_COMPLETED,
            {
                "tenant_id": self._tenant_id,
                "campaign_id": campaign.id,
                "campaign_name": campaign.name,
                "total_items": campaign.total_items,
                "reviewed_items": campaign.reviewed_items,
                "revoked_items": campaign.revoked_items,
            },
        )
        logger.info("Campaign completed", campaign_id=campaign_id, report_url=report_url)
        return campaign

    async def regenerate_completion_report(self, campaign_id: str) -> str:
        """Rebuild and store the report of a completed campaign.

        Returns:
            The new report reference.

        Raises:
            NotFoundError: If the campaign does not exist.
            ConflictError: If the campaign is not completed.
        """
        campaign = await self.get_campaign(campaign_id)
        if campaign.status != "completed":
            raise ConflictError(f"Campaign '{campaign_id}' is not completed")

        report_url = await self._store_report(campaign, campaign.completed_at or self._clock())
        await self._campaign_repo.update_campaign(
            campaign_id, self._tenant_id, {"completion_report_url": report_url}
        )
        logger.info("Completion report regenerated", campaign_id=campaign_id, report_url=report_url)
        return report_url

    async def _store_report(self, campaign: Campaign, completed_at: datetime) -> str:
        items = await self._campaign_repo.list_review_items(campaign.id)
        decisions = await self._campaign_repo.list_decisions(campaign.id)
        report = build_completion_report(campaign, items, decisions, completed_at)
        return await self._report_store.save_report(self._tenant_id, campaign.id, report)

    async def auto_approve_pending_items(self, campaign_id: str) -> int:
        """Approve every pending item on behalf of the system.

        Does nothing unless the campaign has auto_approve_on_timeout. Counters
        are recounted afterwards.

        Returns:
            Number of items approved.

        Raises:
            NotFoundError: If the campaign does not exist.
            ConflictError: If the campaign is completed.
        """
        campaign = await self.get_campaign(campaign_id)
        if campaign.status == "completed":
            raise ConflictError(f"Campaign '{campaign_id}' is completed")
        if not campaign.auto_approve_on_timeout:
            logger.info("Auto-approve not enabled for campaign", campaign_id=campaign_id)
            return 0

        pending = await self._campaign_repo.list_pending_review_items(campaign_id)
        approved = 0
        for item in pending:
            now = self._clock()
            try:
                await self._campaign_repo.update_review_item(
                    item.id,
                    {
                        "decision": "approved",
                        "decision_notes": AUTO_APPROVE_NOTE,
                        "reviewed_at": now,
                        "execution_status": "completed",
                        "executed_at": now,
                    },
                )
                await self._campaign_repo.append_decision(
                    AccessReviewDecision(
                        tenant_id=self._tenant_id,
                        campaign_id=campaign_id,
                        review_item_id=item.id,
                        decision="approved",
                        rationale=AUTO_APPROVE_NOTE,
                        reviewer_id=SYSTEM_REVIEWER_ID,
                        reviewer_name=SYSTEM_REVIEWER_NAME,
                        execution_status="completed",
                        timestamp=now,
                    )
                )
            except Exception as exc:
                logger.error("Auto-approve failed for item", item_id=item.id, error=str(exc))
                continue
            approved += 1

        await self._recount(campaign_id)
        logger.info("Pending items auto-approved", campaign_id=campaign_id, approved=approved)
        return approved

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def _pending_by_reviewer(self, campaign_id: str) -> dict[str, list[ReviewItem]]:
        grouped: dict[str, list[ReviewItem]] = defaultdict(list)
        unassigned = 0
        for item in await self._campaign_repo.list_pending_review_items(campaign_id):
            if item.reviewer_id:
                grouped[item.reviewer_id].append(item)
            else:
                unassigned += 1
        if unassigned:
            logger.warning(
                "Pending items without a reviewer",
                campaign_id=campaign_id,
                unassigned_items=unassigned,
            )
        return grouped

    async def send_reminders(self, campaign_id: str) -> NotificationSummary:
        """Email every reviewer who still has pending items in the campaign.

        One reviewer's failure never blocks the others.
        """
        campaign = await self.get_campaign(campaign_id)
        days_remaining = days_until(campaign.due_date, self._clock())
        summary = NotificationSummary()

        for reviewer_id, items in (await self._pending_by_reviewer(campaign_id)).items():
            try:
                reviewer = await self._directory.get_user(reviewer_id)
                if reviewer is None or not reviewer.email:
                    logger.info("Reviewer has no email, skipping reminder", reviewer_id=reviewer_id)
                    summary.skipped += 1
                    continue

                subject, text, html = render_reminder(
                    reviewer_name=reviewer.name,
                    campaign_name=campaign.name,
                    due_date=campaign.due_date,
                    days_remaining=days_remaining,
                    items=items,
                    org_name=self._org_name,
                    app_url=self._app_url,
                )
                sent = await self._notifier.send_email(
                    EmailMessage(
                        to=reviewer.email,
                        from_address=self._from_email,
                        subject=subject,
                        text=text,
                        html=html,
                    )
                )
            except Exception as exc:
                logger.error("Reminder failed", reviewer_id=reviewer_id, error=str(exc))
                summary.failed += 1
                continue

            if sent:
                summary.sent += 1
                logger.info("Reminder sent", reviewer_id=reviewer_id, pending_items=len(items))
            else:
                summary.failed += 1
                logger.error("Reminder email rejected", reviewer_id=reviewer_id)

        logger.info(
            "Reminders processed",
            campaign_id=campaign_id,
            sent=summary.sent,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary

    async def escalate_overdue_reviews(self, campaign_id: str, days_overdue: int) -> NotificationSummary:
        """Notify each overdue reviewer's manager about the reviewer's pending items.

        Reviewers without a resolvable manager, or whose manager has no email,
        are skipped.
        """
        campaign = await self.get_campaign(campaign_id)
        summary = NotificationSummary()

        for reviewer_id, items in (await self._pending_by_reviewer(campaign_id)).items():
            try:
                reviewer = await self._directory.get_user(reviewer_id)
                manager = await self._resolve_user_reference(reviewer.manager_id if reviewer else None)
                if reviewer is None or manager is None or not manager.email:
                    logger.info("No escalation target for reviewer", reviewer_id=reviewer_id)
                    summary.skipped += 1
                    continue

                subject, text, html = render_escalation(
                    manager_name=manager.name,
                    reviewer_name=reviewer.name,
                    reviewer_email=reviewer.email,
                    campaign_name=campaign.name,
                    days_overdue=days_overdue,
                    items=items,
                    org_name=self._org_name,
                    app_url=self._app_url,
                )
                sent = await self._notifier.send_email(
                    EmailMessage(
                        to=manager.email,
                        from_address=self._from_email,
                        subject=subject,
                        text=text,
                        html=html,
                    )
                )
            except Exception as exc:
                logger.error("Escalation failed", reviewer_id=reviewer_id, error=str(exc))
                summary.failed += 1
                continue

            if sent:
                summary.sent += 1
                logger.info(
                    "Escalation sent",
                    reviewer_id=reviewer_id,
                    manager_id=manager.id,
                    pending_items=len(items),
                )
            else:
                summary.failed += 1
                logger.error("Escalation email rejected", reviewer_id=reviewer_id)

        logger.info(
            "Escalations processed",
            campaign_id=campaign_id,
            days_overdue=days_overdue,
            sent=summary.sent,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary

    # ------------------------------------------------------------------
    # Export and ad hoc campaigns
    # ------------------------------------------------------------------

    async def export_campaign_csv(self, campaign_id: str) -> str:
        """Render the campaign's items and decisions as CSV for auditors."""
        campaign = await self.get_campaign(campaign_id)
        items = await self._campaign_repo.list_review_items(campaign_id)
        decisions = await self._campaign_repo.list_decisions(campaign_id)
        return render_campaign_csv(campaign, items, decisions)

    async def launch_ad_hoc_campaign(
        self,
        name: str,
        user_ids: list[str],
        due_in_days: int,
        created_by: str,
        campaign_type: str = "high_risk",
    ) -> tuple[str, int]:
        """Create and populate a one-time campaign scoped to specific users.

        Returns:
            Tuple of (campaign id, items created).
        """
        now = self._clock()
        config = CampaignConfig(
            name=name,
            description=f"Ad hoc review of {len(user_ids)} flagged user(s)",
            campaign_type=campaign_type,
            frequency="one_time",
            scope_type="users",
            scope_config=ScopeConfig(user_ids=list(user_ids)),
            start_date=now,
            due_date=now + timedelta(days=due_in_days),
        )
        campaign_id = await self.create_campaign(config, created_by)
        created = await self.generate_review_items(campaign_id)
        return campaign_id, created
