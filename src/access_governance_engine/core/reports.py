"""Campaign completion report and auditor CSV export."""

import csv
import io
from datetime import datetime
from typing import Any

from access_governance_engine.core.models import AccessReviewDecision, Campaign, ReviewItem
from access_governance_engine.core.scoring import round_half_up

CSV_HEADERS: list[str] = [
    "Campaign Name",
    "Campaign Type",
    "User Name",
    "User Email",
    "User Department",
    "Application",
    "Access Type",
    "Risk Level",
    "Granted Date",
    "Last Used Date",
    "Days Since Last Use",
    "Business Justification",
    "Decision",
    "Reviewer Name",
    "Decision Date",
    "Decision Notes",
    "Execution Status",
    "Executed At",
]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def execution_success_rate(items: list[ReviewItem]) -> int:
    """Percentage of revoked items whose revocation completed; 100 when none were revoked."""
    revoked = [item for item in items if item.decision == "revoked"]
    if not revoked:
        return 100
    completed = sum(1 for item in revoked if item.execution_status == "completed")
    return round_half_up(completed / len(revoked) * 100)


def build_completion_report(
    campaign: Campaign,
    items: list[ReviewItem],
    decisions: list[AccessReviewDecision],
    completed_at: datetime,
) -> dict[str, Any]:
    """Build the JSON-serialisable compliance report for a campaign.

    Args:
        campaign: The campaign, with recounted counters.
        items: All review items of the campaign.
        decisions: The campaign's decision audit trail.
        completed_at: Completion timestamp to stamp on the report.

    Returns:
        Report dictionary with campaign, summary, decisions and audit_trail sections.
    """
    items_by_id = {item.id: item for item in items}
    completion_rate = (
        round_half_up(campaign.reviewed_items / campaign.total_items * 100)
        if campaign.total_items
        else 0
    )

    decision_rows = []
    for decision in decisions:
        item = items_by_id.get(decision.review_item_id)
        decision_rows.append(
            {
                "review_item_id": decision.review_item_id,
                "user": item.user_name if item else None,
                "app": item.app_name if item else None,
                "decision": decision.decision,
                "rationale": decision.rationale,
                "reviewer": decision.reviewer_name,
                "timestamp": _iso(decision.timestamp),
            }
        )

    return {
        "campaign": {
            "id": campaign.id,
            "name": campaign.name,
            "type": campaign.campaign_type,
            "start_date": _iso(campaign.start_date),
            "due_date": _iso(campaign.due_date),
            "completed_at": _iso(completed_at),
        },
        "summary": {
            "total_items": campaign.total_items,
            "reviewed_items": campaign.reviewed_items,
            "approved_items": campaign.approved_items,
            "revoked_items": campaign.revoked_items,
            "deferred_items": campaign.deferred_items,
            "completion_rate": completion_rate,
        },
        "decisions": decision_rows,
        "audit_trail": {
            "total_decisions": len(decisions),
            "unique_reviewers": len({d.reviewer_id for d in decisions}),
            "access_revoked": campaign.revoked_items,
            "execution_success_rate": execution_success_rate(items),
        },
    }


def render_campaign_csv(
    campaign: Campaign,
    items: list[ReviewItem],
    decisions: list[AccessReviewDecision],
) -> str:
    """Render one CSV row per review item, joined with its latest decision.

    Rows are ordered by item creation time, then id. Quoting follows the csv
    module's minimal quoting: fields containing commas, quotes or newlines are
    quoted with embedded quotes doubled.
    """
    latest_decision: dict[str, AccessReviewDecision] = {}
    for decision in decisions:
        latest_decision[decision.review_item_id] = decision

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)

    for item in sorted(items, key=lambda i: (i.created_at, i.id)):
        decision = latest_decision.get(item.id)
        writer.writerow(
            [
                campaign.name,
                campaign.campaign_type,
                item.user_name,
                item.user_email or "",
                item.user_department or "",
                item.app_name,
                item.access_type,
                item.risk_level,
                item.granted_date.date().isoformat() if item.granted_date else "",
                item.last_used_date.date().isoformat() if item.last_used_date else "",
                "" if item.days_since_last_use is None else str(item.days_since_last_use),
                item.business_justification or "",
                item.decision,
                decision.reviewer_name if decision else "",
                decision.timestamp.isoformat() if decision else "",
                item.decision_notes or "",
                item.execution_status,
                item.executed_at.isoformat() if item.executed_at else "",
            ]
        )

    return buffer.getvalue()
