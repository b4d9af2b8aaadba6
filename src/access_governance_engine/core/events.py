"""Domain event names and the fire-and-forget emit helper.

Events are published through an injected IEventSink. Emission never fails the
operation that triggered it: sink errors are logged with the event name and
dropped.
"""

from typing import Any

from access_governance_engine.core.interfaces import IEventSink
from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

PRIVILEGE_DRIFT_DETECTED = "privilege_drift.detected"
OVERPRIVILEGED_ACCOUNT_DETECTED = "overprivileged_account.detected"
ACCESS_REVIEW_COMPLETED = "access_review.completed"
ACCESS_REVIEW_OVERDUE = "access_review.overdue"
DEPARTMENT_HIGH_RISK = "department.high_risk"


async def emit_event(sink: IEventSink, event_name: str, payload: dict[str, Any]) -> bool:
    """Emit an event, logging instead of raising on sink failure.

    Args:
        sink: The injected event sink.
        event_name: Dot-notation event name.
        payload: Event payload; must include tenant_id.

    Returns:
        True if the sink accepted the event.
    """
    try:
        await sink.emit(event_name, payload)
    except Exception:
        logger.warning(
            "Event emission failed",
            event_name=event_name,
            tenant_id=payload.get("tenant_id"),
            exc_info=True,
        )
        return False
    return True
