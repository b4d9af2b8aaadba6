"""Alert status lifecycle shared by drift and overprivileged alerts.

Status only moves forward:

    open ──► investigating ──► in_remediation ──► resolved
      │            │
      │            └─────────► accepted_risk ───► resolved
      └──► false_positive (terminal)

open may also jump straight to any later status. resolved and false_positive
are terminal.
"""

from access_governance_engine.core.errors import ConflictError

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "open": frozenset(
        {"investigating", "in_remediation", "accepted_risk", "resolved", "false_positive"}
    ),
    "investigating": frozenset({"in_remediation", "accepted_risk", "resolved", "false_positive"}),
    "in_remediation": frozenset({"resolved"}),
    "accepted_risk": frozenset({"resolved"}),
    "resolved": frozenset(),
    "false_positive": frozenset(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset({"resolved", "false_positive"})


def ensure_alert_transition(alert_id: str, current: str, target: str) -> None:
    """Reject a status change the lifecycle does not allow.

    Args:
        alert_id: Alert identifier, for the error message.
        current: Current status.
        target: Requested status.

    Raises:
        ConflictError: If `target` is not reachable from `current`.
    """
    if target not in _ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise ConflictError(f"Alert '{alert_id}' cannot move from '{current}' to '{target}'")
