"""Django Fulfillment - Telehealth order state machines and partner assignment."""

__version__ = "0.1.0"

__all__ = [
    # Orchestrator
    "execute",
    "Command",
    "Actor",
    "Result",
    "SYSTEM_ACTOR",
    # State machines
    "validate",
    "get_machine",
    # Allocation
    "allocate",
    "allocate_manual",
    # Scheduling
    "tick",
    "create_refill_config",
    "cancel_refill_config",
    "daily_roster",
    # Exceptions
    "FulfillmentError",
    "InvalidTransition",
    "PreconditionMissing",
    "CutoffExceeded",
    "NoEligiblePartner",
    "ConcurrentModification",
    "CommandInProgress",
    "RoleNotPermitted",
    "EntityNotFound",
]


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name == "execute":
        from django_fulfillment import orchestrator
        return getattr(orchestrator, name)
    if name in ("Command", "Actor", "Result", "SYSTEM_ACTOR"):
        from django_fulfillment import commands
        return getattr(commands, name)
    if name in ("validate", "get_machine"):
        from django_fulfillment import machines
        return getattr(machines, name)
    if name in ("allocate", "allocate_manual"):
        from django_fulfillment import allocation
        return getattr(allocation, name)
    if name in ("tick", "create_refill_config", "cancel_refill_config"):
        from django_fulfillment import refills
        return getattr(refills, name)
    if name == "daily_roster":
        from django_fulfillment import roster
        return getattr(roster, name)
    if name in (
        "FulfillmentError",
        "InvalidTransition",
        "PreconditionMissing",
        "CutoffExceeded",
        "NoEligiblePartner",
        "ConcurrentModification",
        "CommandInProgress",
        "RoleNotPermitted",
        "EntityNotFound",
    ):
        from django_fulfillment import exceptions
        return getattr(exceptions, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
