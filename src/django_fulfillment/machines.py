"""
Explicit state machines for consultations, lab orders and pharmacy orders.

Each entity type has one directed graph of events. There are no implicit
any-to-any transitions: an event is legal only from the statuses listed on
its edge. Graphs are checked with graph_errors when built: loops are only
allowed back through each machine's re-entry statuses.

validate() is pure. It never touches the database or raises for business
rejections; it returns Accepted or Rejected.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from django.core.exceptions import ImproperlyConfigured

from .choices import (
    ConsultationStatus,
    EntityType,
    LabOrderStatus,
    PartnerKind,
    PharmacyOrderStatus,
    Role,
)
from .conf import get_global_validators
from .exceptions import UnknownEntityType
from .graph import graph_errors
from .validators import (
    FastingSlotWarning,
    RequiresField,
    RequiresLabResults,
    RequiresPositiveInt,
)

INVALID_TRANSITION = "INVALID_TRANSITION"
PRECONDITION_MISSING = "PRECONDITION_MISSING"


@dataclass(frozen=True)
class Edge:
    """
    One event in a state machine.

    Attributes:
        event: Event name, e.g. "BOOK_SLOT"
        sources: Statuses the event may fire from
        target: Status after the event
        roles: Roles allowed to fire the event
        validators: Precondition validators run after the graph check
        writes: Payload keys copied onto the entity
        allocates: PartnerKind to allocate, if the event assigns a partner
        reassign: Exclude the current partner when allocating
        releases: Partner field cleared by the event
        cutoff_action: Action name checked by the cutoff evaluator
        stamp: Timestamp field set by this event, overriding the status timestamp
        actor_field: Entity field set to the acting user (e.g. the claiming doctor)
    """

    event: str
    sources: tuple
    target: str
    roles: frozenset
    validators: tuple = ()
    writes: tuple = ()
    allocates: Optional[str] = None
    reassign: bool = False
    releases: Optional[str] = None
    cutoff_action: Optional[str] = None
    stamp: Optional[str] = None
    actor_field: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "sources", tuple(str(s) for s in self.sources))
        object.__setattr__(self, "target", str(self.target))
        object.__setattr__(self, "roles", frozenset(str(r) for r in self.roles))
        if self.allocates is not None:
            object.__setattr__(self, "allocates", str(self.allocates))


@dataclass(frozen=True)
class Accepted:
    next_status: str
    edge: Edge
    warnings: list = field(default_factory=list)


@dataclass(frozen=True)
class Rejected:
    code: str
    reasons: list

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)


class StateMachine:
    """A validated transition graph for one entity type."""

    def __init__(self, entity_type, states, initial_state, terminal_states, edges, timestamps=None,
                 reentry_states=()):
        self.entity_type = str(entity_type)
        self.states = [str(s) for s in states]
        self.initial_state = str(initial_state)
        self.terminal_states = [str(s) for s in terminal_states]
        self.reentry_states = [str(s) for s in reentry_states]
        self.edges = list(edges)
        self.timestamps = {str(k): v for k, v in (timestamps or {}).items()}

        self._by_key = {}
        for edge in self.edges:
            for source in edge.sources:
                key = (source, edge.event)
                if key in self._by_key:
                    raise ImproperlyConfigured(
                        f"{entity_type}: duplicate event '{edge.event}' from '{source}'"
                    )
                self._by_key[key] = edge

        errors = graph_errors(
            states=self.states,
            transitions=self.transition_map(),
            initial_state=self.initial_state,
            terminal_states=self.terminal_states,
            reentry_states=self.reentry_states,
        )
        if errors:
            raise ImproperlyConfigured(f"{entity_type} state machine invalid: " + "; ".join(errors))

    def transition_map(self) -> dict[str, list[str]]:
        """Map each status to its reachable next statuses."""
        transitions = {}
        for edge in self.edges:
            for source in edge.sources:
                targets = transitions.setdefault(source, [])
                if edge.target not in targets:
                    targets.append(edge.target)
        return transitions

    @property
    def events(self) -> list[str]:
        seen = []
        for edge in self.edges:
            if edge.event not in seen:
                seen.append(edge.event)
        return seen

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal_states

    def get_edge(self, status: str, event: str) -> Optional[Edge]:
        return self._by_key.get((status, event))

    def allowed_events(self, status: str, role: str = None) -> list[str]:
        """Events that may fire from status, optionally narrowed to a role."""
        status = str(status)
        role = str(role) if role is not None else None
        return [
            edge.event
            for edge in self.edges
            if status in edge.sources and (role is None or role in edge.roles)
        ]

    def roles_for(self, event: str) -> frozenset:
        event = str(event)
        roles = set()
        for edge in self.edges:
            if edge.event == event:
                roles |= edge.roles
        return frozenset(roles)

    def validate(
        self,
        current_status: str,
        event: str,
        context: dict = None,
        entity=None,
    ) -> Union[Accepted, Rejected]:
        """
        Validate an event against the graph, then against preconditions.

        Checks:
        1. Graph membership (INVALID_TRANSITION)
        2. Edge validators plus global validators (PRECONDITION_MISSING)
        """
        context = context or {}
        current_status = str(current_status)
        event = str(event)

        if current_status not in self.states:
            return Rejected(INVALID_TRANSITION, [f"Unknown {self.entity_type} status '{current_status}'"])

        edge = self.get_edge(current_status, event)
        if edge is None:
            if self.is_terminal(current_status):
                reason = f"Cannot transition from terminal status '{current_status}'"
            else:
                reason = f"Event '{event}' not allowed from '{current_status}'"
            return Rejected(INVALID_TRANSITION, [reason])

        hard_blocks = []
        soft_warnings = []
        for validator in list(edge.validators) + get_global_validators():
            blocks, warnings = validator.validate(entity, current_status, edge.target, context)
            hard_blocks.extend(blocks)
            soft_warnings.extend(warnings)

        if hard_blocks:
            return Rejected(PRECONDITION_MISSING, hard_blocks)
        return Accepted(edge.target, edge, soft_warnings)


def _roles(*roles) -> frozenset:
    return frozenset(roles)


# Lab orders

_LAB = LabOrderStatus
_LAB_NON_TERMINAL = (
    _LAB.ORDERED,
    _LAB.SLOT_BOOKED,
    _LAB.PHLEBOTOMIST_ASSIGNED,
    _LAB.PHLEBOTOMIST_EN_ROUTE,
    _LAB.SAMPLE_COLLECTED,
    _LAB.COLLECTION_FAILED,
    _LAB.SAMPLE_IN_TRANSIT,
    _LAB.SAMPLE_RECEIVED,
    _LAB.PROCESSING,
    _LAB.RESULTS_UPLOADED,
    _LAB.DOCTOR_REVIEWED,
)
_SLOT_FIELDS = ("booked_date", "booked_time_slot")
_RESULT_FIELDS = ("result_file_url", "critical_values")

LAB_ORDER_MACHINE = StateMachine(
    entity_type=EntityType.LAB_ORDER,
    states=_LAB.values,
    initial_state=_LAB.ORDERED,
    terminal_states=[_LAB.CLOSED, _LAB.CANCELLED, _LAB.EXPIRED],
    # Rescheduling and failed collections book a slot again.
    reentry_states=[_LAB.SLOT_BOOKED],
    edges=[
        Edge(
            "BOOK_SLOT", (_LAB.ORDERED, _LAB.COLLECTION_FAILED), _LAB.SLOT_BOOKED,
            _roles(Role.PATIENT, Role.ADMIN),
            validators=(RequiresField("booked_date", "Booked date"), FastingSlotWarning()),
            writes=_SLOT_FIELDS,
            releases="phlebotomist",
        ),
        Edge(
            "SELF_UPLOAD_RESULTS", (_LAB.ORDERED,), _LAB.RESULTS_UPLOADED,
            _roles(Role.PATIENT, Role.ADMIN),
            validators=(RequiresField("result_file_url", "Result file"),),
            writes=_RESULT_FIELDS,
        ),
        Edge(
            "RESCHEDULE", (_LAB.SLOT_BOOKED, _LAB.PHLEBOTOMIST_ASSIGNED), _LAB.SLOT_BOOKED,
            _roles(Role.PATIENT, Role.ADMIN),
            validators=(
                RequiresField("booked_date", "New booked date", from_entity=False),
                FastingSlotWarning(),
            ),
            writes=_SLOT_FIELDS,
            releases="phlebotomist",
            cutoff_action="reschedule",
        ),
        Edge(
            "ASSIGN_PHLEBOTOMIST", (_LAB.SLOT_BOOKED,), _LAB.PHLEBOTOMIST_ASSIGNED,
            _roles(Role.ADMIN, Role.SYSTEM),
            validators=(RequiresField("booked_date", "Booked date", from_payload=False),),
            allocates=PartnerKind.PHLEBOTOMIST,
        ),
        Edge(
            "REASSIGN_PHLEBOTOMIST", (_LAB.PHLEBOTOMIST_ASSIGNED,), _LAB.PHLEBOTOMIST_ASSIGNED,
            _roles(Role.ADMIN, Role.SYSTEM),
            allocates=PartnerKind.PHLEBOTOMIST,
            reassign=True,
        ),
        Edge(
            "START_ROUTE", (_LAB.PHLEBOTOMIST_ASSIGNED,), _LAB.PHLEBOTOMIST_EN_ROUTE,
            _roles(Role.PHLEBOTOMIST),
        ),
        Edge(
            "MARK_COLLECTED", (_LAB.PHLEBOTOMIST_EN_ROUTE,), _LAB.SAMPLE_COLLECTED,
            _roles(Role.PHLEBOTOMIST),
            validators=(RequiresPositiveInt("tube_count", "Tube count", from_entity=False),),
            writes=("tube_count",),
        ),
        Edge(
            "MARK_COLLECTION_FAILED", (_LAB.PHLEBOTOMIST_EN_ROUTE,), _LAB.COLLECTION_FAILED,
            _roles(Role.PHLEBOTOMIST, Role.ADMIN),
            validators=(RequiresField("collection_failed_reason", "Failure reason", from_entity=False),),
            writes=("collection_failed_reason",),
        ),
        Edge(
            "DISPATCH_SAMPLE", (_LAB.SAMPLE_COLLECTED,), _LAB.SAMPLE_IN_TRANSIT,
            _roles(Role.PHLEBOTOMIST, Role.ADMIN, Role.SYSTEM),
            allocates=PartnerKind.LAB,
        ),
        Edge(
            "RECEIVE_SAMPLE", (_LAB.SAMPLE_IN_TRANSIT,), _LAB.SAMPLE_RECEIVED,
            _roles(Role.LAB_STAFF, Role.ADMIN),
        ),
        Edge(
            "START_PROCESSING", (_LAB.SAMPLE_RECEIVED,), _LAB.PROCESSING,
            _roles(Role.LAB_STAFF, Role.ADMIN),
        ),
        Edge(
            "UPLOAD_RESULTS", (_LAB.PROCESSING,), _LAB.RESULTS_UPLOADED,
            _roles(Role.LAB_STAFF, Role.ADMIN),
            validators=(RequiresField("result_file_url", "Result file"),),
            writes=_RESULT_FIELDS,
        ),
        Edge(
            "REVIEW_RESULTS", (_LAB.RESULTS_UPLOADED,), _LAB.DOCTOR_REVIEWED,
            _roles(Role.DOCTOR),
            actor_field="doctor",
            validators=(RequiresField("result_file_url", "Result file", from_payload=False),),
        ),
        Edge(
            "CLOSE", (_LAB.DOCTOR_REVIEWED,), _LAB.CLOSED,
            _roles(Role.DOCTOR, Role.ADMIN, Role.SYSTEM),
        ),
        Edge(
            "CANCEL", _LAB_NON_TERMINAL, _LAB.CANCELLED,
            _roles(Role.PATIENT, Role.DOCTOR, Role.ADMIN),
            writes=("cancellation_reason",),
            cutoff_action="cancel",
        ),
        Edge(
            "EXPIRE", _LAB_NON_TERMINAL, _LAB.EXPIRED,
            _roles(Role.SYSTEM, Role.ADMIN),
        ),
    ],
    timestamps={
        _LAB.SLOT_BOOKED: "slot_booked_at",
        _LAB.PHLEBOTOMIST_ASSIGNED: "phlebotomist_assigned_at",
        _LAB.PHLEBOTOMIST_EN_ROUTE: "en_route_at",
        _LAB.SAMPLE_COLLECTED: "sample_collected_at",
        _LAB.COLLECTION_FAILED: "collection_failed_at",
        _LAB.SAMPLE_IN_TRANSIT: "sample_in_transit_at",
        _LAB.SAMPLE_RECEIVED: "sample_received_at",
        _LAB.PROCESSING: "processing_started_at",
        _LAB.RESULTS_UPLOADED: "results_uploaded_at",
        _LAB.DOCTOR_REVIEWED: "doctor_reviewed_at",
        _LAB.CLOSED: "closed_at",
        _LAB.CANCELLED: "cancelled_at",
        _LAB.EXPIRED: "expired_at",
    },
)


# Pharmacy orders

_PH = PharmacyOrderStatus
_PH_NON_TERMINAL = (
    _PH.PRESCRIPTION_CREATED,
    _PH.SENT_TO_PHARMACY,
    _PH.ACCEPTED,
    _PH.PHARMACY_PREPARING,
    _PH.PHARMACY_READY,
    _PH.PICKUP_ARRANGED,
    _PH.OUT_FOR_DELIVERY,
    _PH.PHARMACY_ISSUE,
    _PH.DELIVERY_FAILED,
)
_DELIVERY_PERSON = ("delivery_person_name", "delivery_person_phone")

PHARMACY_ORDER_MACHINE = StateMachine(
    entity_type=EntityType.PHARMACY_ORDER,
    states=_PH.values,
    initial_state=_PH.PRESCRIPTION_CREATED,
    terminal_states=[_PH.DELIVERED, _PH.CANCELLED, _PH.RETURNED],
    # Pharmacy issues resend the order; failed deliveries arrange a new pickup.
    reentry_states=[_PH.SENT_TO_PHARMACY, _PH.PICKUP_ARRANGED],
    edges=[
        Edge(
            "SEND_TO_PHARMACY", (_PH.PRESCRIPTION_CREATED,), _PH.SENT_TO_PHARMACY,
            _roles(Role.ADMIN, Role.SYSTEM),
            allocates=PartnerKind.PHARMACY,
        ),
        Edge(
            "REASSIGN_PHARMACY", (_PH.SENT_TO_PHARMACY, _PH.PHARMACY_ISSUE), _PH.SENT_TO_PHARMACY,
            _roles(Role.ADMIN, Role.SYSTEM),
            allocates=PartnerKind.PHARMACY,
            reassign=True,
        ),
        Edge(
            "ACCEPT", (_PH.SENT_TO_PHARMACY,), _PH.ACCEPTED,
            _roles(Role.PHARMACY_STAFF),
        ),
        Edge(
            "START_PREPARING", (_PH.ACCEPTED,), _PH.PHARMACY_PREPARING,
            _roles(Role.PHARMACY_STAFF),
        ),
        Edge(
            "MARK_READY", (_PH.PHARMACY_PREPARING,), _PH.PHARMACY_READY,
            _roles(Role.PHARMACY_STAFF),
        ),
        Edge(
            "REPORT_ISSUE", (_PH.SENT_TO_PHARMACY, _PH.ACCEPTED, _PH.PHARMACY_PREPARING), _PH.PHARMACY_ISSUE,
            _roles(Role.PHARMACY_STAFF, Role.ADMIN),
            validators=(RequiresField("issue_reason", "Issue reason", from_entity=False),),
            writes=("issue_reason",),
        ),
        Edge(
            "ARRANGE_PICKUP", (_PH.PHARMACY_READY,), _PH.PICKUP_ARRANGED,
            _roles(Role.ADMIN),
            validators=(RequiresField("delivery_person_name", "Delivery person"),),
            writes=_DELIVERY_PERSON,
        ),
        Edge(
            "DISPATCH", (_PH.PHARMACY_READY, _PH.PICKUP_ARRANGED), _PH.OUT_FOR_DELIVERY,
            _roles(Role.ADMIN, Role.PHARMACY_STAFF),
            validators=(RequiresField("delivery_person_name", "Delivery person"),),
            writes=_DELIVERY_PERSON,
        ),
        Edge(
            "CONFIRM_DELIVERY", (_PH.OUT_FOR_DELIVERY,), _PH.DELIVERED,
            _roles(Role.ADMIN, Role.SYSTEM),
        ),
        Edge(
            "REPORT_DELIVERY_FAILED", (_PH.PICKUP_ARRANGED, _PH.OUT_FOR_DELIVERY), _PH.DELIVERY_FAILED,
            _roles(Role.ADMIN, Role.SYSTEM),
            validators=(RequiresField("delivery_failed_reason", "Failure reason", from_entity=False),),
            writes=("delivery_failed_reason",),
        ),
        Edge(
            "RETRY_DELIVERY", (_PH.DELIVERY_FAILED,), _PH.PICKUP_ARRANGED,
            _roles(Role.ADMIN),
            validators=(RequiresField("delivery_person_name", "New delivery person", from_entity=False),),
            writes=_DELIVERY_PERSON,
        ),
        Edge(
            "CANCEL", _PH_NON_TERMINAL, _PH.CANCELLED,
            _roles(Role.PATIENT, Role.ADMIN),
            writes=("cancellation_reason",),
        ),
        Edge(
            "RETURN", _PH_NON_TERMINAL, _PH.RETURNED,
            _roles(Role.ADMIN),
        ),
    ],
    timestamps={
        _PH.SENT_TO_PHARMACY: "assigned_at",
        _PH.ACCEPTED: "accepted_at",
        _PH.PHARMACY_PREPARING: "preparing_at",
        _PH.PHARMACY_READY: "ready_for_pickup_at",
        _PH.PICKUP_ARRANGED: "pickup_arranged_at",
        _PH.OUT_FOR_DELIVERY: "dispatched_at",
        _PH.DELIVERED: "delivered_at",
        _PH.PHARMACY_ISSUE: "issue_reported_at",
        _PH.DELIVERY_FAILED: "delivery_failed_at",
        _PH.CANCELLED: "cancelled_at",
        _PH.RETURNED: "returned_at",
    },
)


# Consultations

_C = ConsultationStatus
_DECIDING = (_C.DOCTOR_REVIEWING, _C.VIDEO_COMPLETED)

CONSULTATION_MACHINE = StateMachine(
    entity_type=EntityType.CONSULTATION,
    states=_C.values,
    initial_state=_C.PENDING_ASSESSMENT,
    terminal_states=[_C.APPROVED, _C.REJECTED],
    reentry_states=[_C.DOCTOR_REVIEWING],
    edges=[
        Edge(
            "COMPLETE_ASSESSMENT", (_C.PENDING_ASSESSMENT,), _C.AI_REVIEWED,
            _roles(Role.SYSTEM),
        ),
        Edge(
            "CLAIM", (_C.AI_REVIEWED,), _C.DOCTOR_REVIEWING,
            _roles(Role.DOCTOR),
            stamp="claimed_at",
            actor_field="doctor",
        ),
        Edge("APPROVE", _DECIDING, _C.APPROVED, _roles(Role.DOCTOR)),
        Edge(
            "REJECT", _DECIDING, _C.REJECTED,
            _roles(Role.DOCTOR),
            validators=(RequiresField("rejection_reason", "Rejection reason", from_entity=False),),
            writes=("rejection_reason",),
        ),
        Edge("REQUEST_INFO", (_C.DOCTOR_REVIEWING,), _C.NEEDS_INFO, _roles(Role.DOCTOR)),
        Edge("ORDER_LABS", _DECIDING, _C.AWAITING_LABS, _roles(Role.DOCTOR)),
        Edge("SCHEDULE_VIDEO", (_C.DOCTOR_REVIEWING,), _C.VIDEO_SCHEDULED, _roles(Role.DOCTOR)),
        Edge(
            "PATIENT_REPLIED", (_C.NEEDS_INFO,), _C.DOCTOR_REVIEWING,
            _roles(Role.PATIENT),
            validators=(RequiresField("last_patient_reply", "Reply", from_entity=False),),
            writes=("last_patient_reply",),
            stamp="patient_replied_at",
        ),
        Edge(
            "LAB_RESULTS_READY", (_C.AWAITING_LABS,), _C.DOCTOR_REVIEWING,
            _roles(Role.SYSTEM, Role.DOCTOR),
            validators=(RequiresLabResults(),),
        ),
        Edge("COMPLETE_VIDEO", (_C.VIDEO_SCHEDULED,), _C.VIDEO_COMPLETED, _roles(Role.DOCTOR)),
    ],
    timestamps={
        _C.AI_REVIEWED: "ai_reviewed_at",
        _C.NEEDS_INFO: "info_requested_at",
        _C.APPROVED: "decided_at",
        _C.REJECTED: "decided_at",
    },
)


MACHINES = {
    machine.entity_type: machine
    for machine in (CONSULTATION_MACHINE, LAB_ORDER_MACHINE, PHARMACY_ORDER_MACHINE)
}


def get_machine(entity_type: str) -> StateMachine:
    try:
        return MACHINES[str(entity_type)]
    except KeyError:
        raise UnknownEntityType(entity_type)


def validate(
    entity_type: str,
    current_status: str,
    event: str,
    context: dict = None,
    entity=None,
) -> Union[Accepted, Rejected]:
    """Validate an event for an entity type. See StateMachine.validate."""
    return get_machine(entity_type).validate(current_status, event, context, entity)
