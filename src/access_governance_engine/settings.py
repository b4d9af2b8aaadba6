"""Service settings for access-governance-engine.

All settings use the ACCESS_GOV_ environment prefix and cover:
- Logging (level, JSON rendering)
- Kafka event publishing
- Outbound email delivery (transactional mail HTTP API)
- Scan worker pool sizing
- Campaign deadline milestones evaluated by the external scheduler
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for access-governance-engine.

    Environment variable prefix: ACCESS_GOV_
    """

    service_name: str = "access-governance-engine"

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    log_level: str = Field(default="INFO", description="Root log level.")
    log_json: bool = Field(
        default=True,
        description="Render structured logs as JSON. Disable for local console output.",
    )

    # -------------------------------------------------------------------------
    # Kafka event sink
    # -------------------------------------------------------------------------

    kafka_enabled: bool = Field(
        default=False,
        description="Publish governance events to Kafka. When disabled, events are kept in process.",
    )
    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Comma-separated Kafka bootstrap server addresses.",
    )
    kafka_topic_prefix: str = Field(
        default="access_governance",
        description="Topic prefix. Events are published to {prefix}.{event domain}.",
    )

    # -------------------------------------------------------------------------
    # Outbound email
    # -------------------------------------------------------------------------

    email_api_url: str = Field(
        default="",
        description="Transactional mail API endpoint. Leave empty to keep mail in the in-memory outbox.",
    )
    email_api_token: str = Field(default="", description="Bearer token for the mail API.")
    email_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for a single email send.",
    )
    from_email: str = Field(
        default="noreply@assetinfo.example.com",
        description="Sender address for reminder and escalation emails.",
    )
    app_url: str = Field(
        default="https://assetinfo.example.com",
        description="Base URL linked from notification emails.",
    )
    org_name: str = Field(
        default="AssetInfo",
        description="Organisation name shown in notification footers.",
    )

    # -------------------------------------------------------------------------
    # Reports and scans
    # -------------------------------------------------------------------------

    report_base_path: str = Field(
        default="/api/v1/access-reviews/campaigns",
        description="Base path used to build completion report references.",
    )
    scan_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum number of users scanned concurrently by detector sweeps.",
    )

    # -------------------------------------------------------------------------
    # Campaign deadlines (evaluated by the external scheduler)
    # -------------------------------------------------------------------------

    reminder_days_before_due: list[int] = Field(
        default_factory=lambda: [7, 3, 1],
        description="Days-remaining milestones on which reviewers are reminded.",
    )
    escalation_days_overdue: list[int] = Field(
        default_factory=lambda: [3, 7, 14],
        description="Days-overdue milestones on which reviewers' managers are notified.",
    )
    auto_approve_after_days_overdue: int = Field(
        default=7,
        description="Auto-approve pending items once a campaign is this many days overdue.",
    )
    quarterly_due_days: int = Field(
        default=30,
        description="Days granted to complete a scheduler-created quarterly campaign.",
    )
    ad_hoc_due_days: int = Field(
        default=14,
        description="Days granted to complete an ad hoc campaign launched from detector output.",
    )

    model_config = SettingsConfigDict(env_prefix="ACCESS_GOV_")
