"""Error taxonomy for the access governance engine.

- NotFoundError   — campaign, review item, template, or alert absent
- ValidationError — malformed input, rejected before any state change
- ConflictError   — illegal lifecycle transition or conflicting re-decision

Partial execution failures, unavailable risk signals, notification failures
and event emission failures are NOT raised: they are recorded or logged by
the component that observes them.
"""


class GovernanceError(Exception):
    """Base class for all engine errors.

    Args:
        message: Human-readable error message.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(GovernanceError):
    """A referenced entity does not exist for the tenant.

    Args:
        resource: Entity type name, e.g. "Campaign".
        resource_id: Identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} '{resource_id}' not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(GovernanceError):
    """Input failed validation.

    Args:
        message: What was wrong.
        field: Name of the offending field, if any.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ConflictError(GovernanceError):
    """The requested change conflicts with the entity's current state."""
