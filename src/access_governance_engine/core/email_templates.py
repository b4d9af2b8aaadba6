"""Jinja2 templates for access review reminder and escalation emails."""

from datetime import datetime

import jinja2

from access_governance_engine.core.models import ReviewItem

MAX_LISTED_ITEMS_REMINDER = 5
MAX_LISTED_ITEMS_ESCALATION = 10

_RISK_COLORS = {
    "critical": "#dc2626",
    "high": "#f59e0b",
    "medium": "#3b82f6",
    "low": "#10b981",
}

_TEMPLATES = {
    "reminder.html": """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333; border-bottom: 2px solid #4f46e5; padding-bottom: 10px;">Access Review Reminder</h2>
  <p>Hello {{ reviewer_name }},</p>
  <p>You have <strong>{{ pending_count }}</strong> pending access review{{ "s" if pending_count != 1 }} that require your attention.</p>
  <div style="border-left: 4px solid {{ urgency_color }}; padding: 15px; margin: 20px 0;">
    <h3 style="margin-top: 0; color: {{ urgency_color }};">{{ urgency_label }}</h3>
    <p style="margin-bottom: 0;">
      <strong>Campaign:</strong> {{ campaign_name }}<br>
      <strong>Due Date:</strong> {{ due_date }}<br>
      <strong>Time Remaining:</strong> {{ days_remaining }} day{{ "s" if days_remaining != 1 }}
    </p>
  </div>
  <h3 style="color: #333;">Pending Reviews</h3>
  <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
    <thead><tr><th>User</th><th>Application</th><th>Risk</th></tr></thead>
    <tbody>
    {% for item in items %}
      <tr>
        <td>{{ item.user_name }}</td>
        <td>{{ item.app_name }}</td>
        <td><span style="background-color: {{ risk_colors[item.risk_level] }}; color: white; padding: 2px 8px;">{{ item.risk_level | upper }}</span></td>
      </tr>
    {% endfor %}
    </tbody>
  </table>
  {% if remaining %}<p style="color: #666; font-style: italic;">...and {{ remaining }} more</p>{% endif %}
  <p><a href="{{ app_url }}/access-reviews">Review Access Now</a></p>
  <hr>
  <p style="font-size: 12px; color: #666;">This reminder was sent automatically by the {{ org_name }} access governance system.</p>
</div>
""",
    "reminder.txt": """\
Access Review Reminder

Hello {{ reviewer_name }},

You have {{ pending_count }} pending access review{{ "s" if pending_count != 1 }} that require your attention.

{{ urgency_label }}
Campaign: {{ campaign_name }}
Due Date: {{ due_date }}
Time Remaining: {{ days_remaining }} day{{ "s" if days_remaining != 1 }}

Pending Reviews:
{% for item in items %}  - {{ item.user_name }} - {{ item.app_name }} ({{ item.risk_level | upper }})
{% endfor %}{% if remaining %}...and {{ remaining }} more
{% endif %}
Visit: {{ app_url }}/access-reviews

---
This reminder was sent automatically by the {{ org_name }} access governance system.
""",
    "escalation.html": """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333; border-bottom: 2px solid #dc2626; padding-bottom: 10px;">Escalation: Overdue Access Reviews</h2>
  <p>Hello {{ manager_name }},</p>
  <p>This is an escalation notice regarding overdue access reviews.</p>
  <div style="background-color: #fee2e2; border-left: 4px solid #dc2626; padding: 15px; margin: 20px 0;">
    <h3 style="margin-top: 0; color: #dc2626;">OVERDUE</h3>
    <p style="margin-bottom: 0;">
      <strong>Reviewer:</strong> {{ reviewer_name }}{% if reviewer_email %} ({{ reviewer_email }}){% endif %}<br>
      <strong>Campaign:</strong> {{ campaign_name }}<br>
      <strong>Pending Reviews:</strong> {{ pending_count }}<br>
      <strong>Days Overdue:</strong> {{ days_overdue }}
    </p>
  </div>
  <p>The following reviews have not been completed by the assigned reviewer:</p>
  <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
    <thead><tr><th>User</th><th>Application</th><th>Risk</th></tr></thead>
    <tbody>
    {% for item in items %}
      <tr>
        <td>{{ item.user_name }}</td>
        <td>{{ item.app_name }}</td>
        <td><span style="background-color: {{ risk_colors[item.risk_level] }}; color: white; padding: 2px 8px;">{{ item.risk_level | upper }}</span></td>
      </tr>
    {% endfor %}
    </tbody>
  </table>
  {% if remaining %}<p style="color: #666; font-style: italic;">...and {{ remaining }} more</p>{% endif %}
  <p>Please follow up with {{ reviewer_name }} to ensure these reviews are completed promptly.
  Overdue access reviews can impact security compliance and audit requirements.</p>
  <p><a href="{{ app_url }}/access-reviews">View Campaign</a></p>
  <hr>
  <p style="font-size: 12px; color: #666;">This escalation email was sent automatically by the {{ org_name }} access governance system.</p>
</div>
""",
    "escalation.txt": """\
ESCALATION: Overdue Access Reviews

Hello {{ manager_name }},

This is an escalation notice regarding overdue access reviews.

OVERDUE
Reviewer: {{ reviewer_name }}{% if reviewer_email %} ({{ reviewer_email }}){% endif %}
Campaign: {{ campaign_name }}
Pending Reviews: {{ pending_count }}
Days Overdue: {{ days_overdue }}

The following reviews have not been completed by the assigned reviewer:
{% for item in items %}  - {{ item.user_name }} - {{ item.app_name }} ({{ item.risk_level | upper }})
{% endfor %}{% if remaining %}...and {{ remaining }} more
{% endif %}
Action Required:
Please follow up with {{ reviewer_name }} to ensure these reviews are completed promptly.

Visit: {{ app_url }}/access-reviews

---
This escalation email was sent automatically by the {{ org_name }} access governance system.
""",
}

_env = jinja2.Environment(
    loader=jinja2.DictLoader(_TEMPLATES),
    autoescape=jinja2.select_autoescape(["html"]),
    keep_trailing_newline=True,
)


def _format_due_date(due_date: datetime) -> str:
    return f"{due_date:%A, %B} {due_date.day}, {due_date.year}"


def reminder_subject(pending_count: int, days_remaining: int) -> str:
    """Subject line for a reviewer reminder; urgent from one day out."""
    if days_remaining < 0:
        return f"URGENT: {pending_count} Access Reviews Overdue"
    if days_remaining <= 1:
        when = "Today" if days_remaining == 0 else "Tomorrow"
        return f"URGENT: {pending_count} Access Reviews Due {when}"
    return f"Reminder: {pending_count} Access Reviews Due in {days_remaining} Days"


def render_reminder(
    reviewer_name: str,
    campaign_name: str,
    due_date: datetime,
    days_remaining: int,
    items: list[ReviewItem],
    org_name: str,
    app_url: str,
) -> tuple[str, str, str]:
    """Render a reviewer reminder.

    Returns:
        Tuple of (subject, text body, html body).
    """
    if days_remaining <= 1:
        urgency_label, urgency_color = "URGENT", "#dc2626"
    elif days_remaining <= 3:
        urgency_label, urgency_color = "HIGH PRIORITY", "#f59e0b"
    else:
        urgency_label, urgency_color = "REMINDER", "#3b82f6"

    context = {
        "reviewer_name": reviewer_name,
        "campaign_name": campaign_name,
        "pending_count": len(items),
        "due_date": _format_due_date(due_date),
        "days_remaining": days_remaining,
        "items": items[:MAX_LISTED_ITEMS_REMINDER],
        "remaining": max(0, len(items) - MAX_LISTED_ITEMS_REMINDER),
        "urgency_label": urgency_label,
        "urgency_color": urgency_color,
        "risk_colors": _RISK_COLORS,
        "org_name": org_name,
        "app_url": app_url.rstrip("/"),
    }
    subject = reminder_subject(len(items), days_remaining)
    text = _env.get_template("reminder.txt").render(context)
    html = _env.get_template("reminder.html").render(context)
    return subject, text, html


def render_escalation(
    manager_name: str,
    reviewer_name: str,
    reviewer_email: str | None,
    campaign_name: str,
    days_overdue: int,
    items: list[ReviewItem],
    org_name: str,
    app_url: str,
) -> tuple[str, str, str]:
    """Render an escalation notice addressed to a reviewer's manager.

    Returns:
        Tuple of (subject, text body, html body).
    """
    context = {
        "manager_name": manager_name,
        "reviewer_name": reviewer_name,
        "reviewer_email": reviewer_email,
        "campaign_name": campaign_name,
        "pending_count": len(items),
        "days_overdue": days_overdue,
        "items": items[:MAX_LISTED_ITEMS_ESCALATION],
        "remaining": max(0, len(items) - MAX_LISTED_ITEMS_ESCALATION),
        "risk_colors": _RISK_COLORS,
        "org_name": org_name,
        "app_url": app_url.rstrip("/"),
    }
    subject = f"ESCALATION: Overdue Access Reviews - {reviewer_name}"
    text = _env.get_template("escalation.txt").render(context)
    html = _env.get_template("escalation.html").render(context)
    return subject, text, html
