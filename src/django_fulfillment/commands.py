"""Command, actor and result value types for the orchestrator."""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from .choices import Role

APPLIED = "applied"
ASSIGNMENT_PENDING = "assignment_pending"


@dataclass(frozen=True)
class Actor:
    """
    The authenticated principal issuing a command.

    partner_id ties PHLEBOTOMIST, LAB_STAFF and PHARMACY_STAFF actors to
    the partner record they work for.
    """

    role: str
    id: Any = None
    partner_id: Any = None


SYSTEM_ACTOR = Actor(role=Role.SYSTEM)


@dataclass(frozen=True)
class Command:
    entity_type: str
    entity_id: Any
    event: str
    actor: Actor
    payload: dict = field(default_factory=dict)
    expected_version: Optional[int] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class Result:
    """Outcome of an executed command. JSON-safe so it can be replayed."""

    entity_type: str
    entity_id: str
    event: str
    outcome: str
    from_status: str
    status: str
    version: int
    partner_id: Optional[str] = None
    warnings: list = field(default_factory=list)

    @property
    def applied(self) -> bool:
        return self.outcome == APPLIED

    def to_snapshot(self) -> dict:
        return asdict(self)

    @classmethod
    def from_snapshot(cls, data: dict) -> "Result":
        return cls(**data)
