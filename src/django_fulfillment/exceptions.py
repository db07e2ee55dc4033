"""Custom exceptions for django-fulfillment."""


class FulfillmentError(Exception):
    """Base exception for fulfillment errors."""
    pass


class InvalidTransition(FulfillmentError):
    """Raised when an event is not defined from the entity's current status."""

    code = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, from_status: str, event: str, reasons: list[str] = None):
        self.entity_type = entity_type
        self.from_status = from_status
        self.event = event
        self.reasons = reasons or [
            f"Event '{event}' not allowed for {entity_type} in status '{from_status}'"
        ]
        super().__init__("; ".join(self.reasons))


class PreconditionMissing(InvalidTransition):
    """Raised when the graph allows an event but a required field or condition is absent."""

    code = "PRECONDITION_MISSING"


class CutoffExceeded(FulfillmentError):
    """Raised when a time-windowed action is attempted past its cutoff."""

    def __init__(self, entity_id, action: str, reason: str):
        self.entity_id = entity_id
        self.action = action
        self.reason = reason
        super().__init__(reason)


class NoEligiblePartner(FulfillmentError):
    """No partner in the pool can take the work item."""

    def __init__(self, kind: str, work_item_id=None, reason: str = None):
        self.kind = kind
        self.work_item_id = work_item_id
        self.reason = reason or f"No eligible {kind} available"
        super().__init__(self.reason)


class ConcurrentModification(FulfillmentError):
    """Raised when an entity changed between read and write."""

    def __init__(self, entity_type: str, entity_id, expected_version: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently "
            f"(expected version {expected_version}); re-read and retry"
        )


class CommandInProgress(FulfillmentError):
    """Raised when a retried command is still running under the same idempotency key."""

    def __init__(self, scope: str, key: str, locked_at=None):
        self.scope = scope
        self.key = key
        self.locked_at = locked_at
        super().__init__(f"Command '{key}' is still being processed; retry later")


class RoleNotPermitted(FulfillmentError):
    """Raised when the actor's role (or identity) may not fire the event."""

    def __init__(self, role: str, event: str, reason: str = None):
        self.role = role
        self.event = event
        self.reason = reason or f"Role '{role}' may not fire '{event}'"
        super().__init__(self.reason)


class EntityNotFound(FulfillmentError):
    """Raised when the target entity does not exist."""

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} '{entity_id}' not found")


class UnknownEntityType(FulfillmentError):
    """Raised when a command names an entity type with no state machine."""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unknown entity type '{entity_type}'")


class RefillConfigError(FulfillmentError):
    """Raised for invalid auto-refill configuration requests."""
    pass


class ConfigurationError(FulfillmentError):
    """Raised when a configured dotted path cannot be loaded."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load '{path}': {reason}")
