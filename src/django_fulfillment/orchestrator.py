"""
Fulfillment orchestrator.

execute(command) is the single write path for consultations, lab orders and
pharmacy orders:

1. load the entity
2. check the actor's role and ownership
3. validate the event (graph, then preconditions)
4. apply time cutoffs
5. allocate a partner where the event assigns one
6. persist with an optimistic version check, plus an audit record
7. publish domain events and schedule reactions after commit

When no partner is eligible the item is parked and admins are notified;
the caller gets an ASSIGNMENT_PENDING result instead of an error.
"""

import json
import logging
from datetime import timezone as dt_timezone

from django.core.exceptions import FieldDoesNotExist, ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from . import events
from .allocation import Allocation, allocate, allocate_manual
from .choices import EntityType, LabOrderStatus, PartnerKind, Role
from .commands import APPLIED, ASSIGNMENT_PENDING, Command, Result
from .cutoffs import cutoff_reason, is_action_allowed, is_credential_expiring_soon
from .exceptions import (
    ConcurrentModification,
    CutoffExceeded,
    EntityNotFound,
    FulfillmentError,
    InvalidTransition,
    NoEligiblePartner,
    PreconditionMissing,
)
from .idempotency import idempotent
from .machines import PRECONDITION_MISSING, Rejected, get_machine
from .models import (
    PARTNER_MODELS,
    Consultation,
    LabOrder,
    PharmacyOrder,
    TransitionRecord,
)
from .permissions import check_actor, patient_id_for
from .reactions import follow_ups
from .selectors import build_partner_pool, partner_load

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    EntityType.CONSULTATION.value: Consultation,
    EntityType.LAB_ORDER.value: LabOrder,
    EntityType.PHARMACY_ORDER.value: PharmacyOrder,
}

_RELATED = {
    EntityType.CONSULTATION.value: ("patient", "doctor"),
    EntityType.LAB_ORDER.value: ("consultation", "phlebotomist", "lab"),
    EntityType.PHARMACY_ORDER.value: ("prescription__consultation", "pharmacy"),
}

# Entity field holding the partner of each kind.
PARTNER_FIELDS = {
    PartnerKind.LAB.value: "lab",
    PartnerKind.PHLEBOTOMIST.value: "phlebotomist",
    PartnerKind.PHARMACY.value: "pharmacy",
}


def _json_safe(data: dict) -> dict:
    return json.loads(json.dumps(data or {}, cls=DjangoJSONEncoder))


def _working_partner(entity_type: str, entity):
    """The partner currently holding the work item, if any."""
    if entity_type == EntityType.LAB_ORDER:
        return entity.lab if entity.lab_id else entity.phlebotomist
    if entity_type == EntityType.PHARMACY_ORDER:
        return entity.pharmacy
    return None


def _load(entity_type: str, entity_id):
    model = ENTITY_MODELS[entity_type]
    try:
        return model.objects.select_related(*_RELATED[entity_type]).get(pk=entity_id)
    except (model.DoesNotExist, ValidationError, ValueError):
        raise EntityNotFound(entity_type, entity_id)


def _clean_payload(entity_type: str, entity, event: str, status: str, payload: dict) -> dict:
    """Coerce payload values for model fields (e.g. "2026-03-10" to a date)."""
    cleaned = dict(payload or {})
    opts = type(entity)._meta
    for name, value in cleaned.items():
        try:
            model_field = opts.get_field(name)
        except FieldDoesNotExist:
            continue
        if value in (None, "") or not getattr(model_field, "concrete", False) or model_field.is_relation:
            continue
        try:
            cleaned[name] = model_field.to_python(value)
        except ValidationError as e:
            raise PreconditionMissing(entity_type, status, event, [f"{name}: {'; '.join(e.messages)}"])
    return cleaned


def _build_context(command: Command, entity, payload: dict, now) -> dict:
    context = {
        "payload": payload,
        "actor": command.actor,
        "now": now,
    }
    if command.entity_type == EntityType.CONSULTATION and command.event == "LAB_RESULTS_READY":
        context["lab_results_present"] = (
            LabOrder.objects.filter(consultation=entity).exclude(result_file_url="").exists()
        )
    return context


def _allocation_date(entity, kind: str, now):
    if kind == PartnerKind.PHLEBOTOMIST and entity.booked_date is not None:
        return entity.booked_date
    return now.astimezone(dt_timezone.utc).date()


def _allocate(command: Command, entity, edge, now):
    """
    Choose and lock a partner for the edge.

    Returns an Allocation, or None when no partner is eligible. Each chosen
    candidate is re-checked under select_for_update; if its capacity was taken
    concurrently the next candidate is tried.
    """
    kind = edge.allocates
    model = PARTNER_MODELS[kind]
    on_date = _allocation_date(entity, kind, now)

    override = (command.payload or {}).get("partner_id")
    if override and str(command.actor.role) == Role.ADMIN:
        try:
            partner = model.objects.select_for_update().filter(pk=override).first()
        except (ValidationError, ValueError):
            raise PreconditionMissing(
                command.entity_type, entity.status, command.event, [f"Unknown {kind} id '{override}'"]
            )
        result = allocate_manual(partner, partner_load(partner, on_date) if partner else 0, kind)
        if isinstance(result, NoEligiblePartner):
            raise PreconditionMissing(command.entity_type, entity.status, command.event, [result.reason])
        return result

    exclude = []
    current_id = getattr(entity, f"{PARTNER_FIELDS[kind]}_id")
    if edge.reassign and current_id is not None:
        exclude.append(current_id)

    pool = build_partner_pool(kind, on_date)
    while True:
        result = allocate(entity, pool, exclude=exclude, kind=kind)
        if isinstance(result, NoEligiblePartner):
            return None
        locked = model.objects.select_for_update().get(pk=result.partner.pk)
        load = partner_load(locked, on_date)
        if locked.is_available() and locked.has_capacity(load):
            return Allocation(partner=locked, load=load)
        exclude.append(locked.pk)


def _record(command, entity, from_status, to_status, version_after, now, metadata):
    TransitionRecord.objects.create(
        entity_type=command.entity_type,
        entity_id=entity.pk,
        event=command.event,
        from_status=from_status,
        to_status=to_status,
        actor_role=str(command.actor.role),
        actor_id=str(command.actor.id) if command.actor.id is not None else "",
        version_after=version_after,
        metadata=metadata,
        effective_at=now,
    )


def _conditional_update(entity_type: str, entity, changes: dict) -> None:
    updated = type(entity).objects.filter(pk=entity.pk, version=entity.version).update(
        version=F("version") + 1,
        **changes,
    )
    if updated == 0:
        raise ConcurrentModification(entity_type, entity.pk, entity.version)


def _park(command: Command, entity, edge, now) -> Result:
    """Leave status (and any current partner) unchanged and flag for admins."""
    from_status = entity.status
    reason = f"No eligible {edge.allocates} for {command.event}"

    _conditional_update(command.entity_type, entity, {"parked_at": entity.parked_at or now, "updated_at": now})
    version_after = entity.version + 1
    _record(
        command, entity, from_status, from_status, version_after, now,
        {"outcome": ASSIGNMENT_PENDING, "reason": reason, "payload": _json_safe(command.payload)},
    )
    events.publish(events.assignment_pending(command.entity_type, entity, edge.allocates, reason))
    logger.warning("%s %s parked: %s", command.entity_type, entity.pk, reason)

    return Result(
        entity_type=str(command.entity_type),
        entity_id=str(entity.pk),
        event=command.event,
        outcome=ASSIGNMENT_PENDING,
        from_status=from_status,
        status=from_status,
        version=version_after,
        partner_id=None,
        warnings=[reason],
    )


def _results_events(lab_order):
    """Tell the ordering doctor results are in; raise the alarm on critical values."""
    doctor_id = lab_order.doctor_id or lab_order.consultation.doctor_id
    published = events.results_ready(lab_order, doctor_id)
    if lab_order.critical_values:
        logger.warning("Lab order %s has critical values: %s", lab_order.pk, lab_order.critical_values)
        published += events.critical_value_alert(lab_order, doctor_id, lab_order.critical_values)
    return published


def _schedule_reactions(entity_type: str, entity) -> None:
    for follow_up in follow_ups(entity_type, entity):
        transaction.on_commit(lambda cmd=follow_up: _run_reaction(cmd))


def _run_reaction(command: Command) -> None:
    try:
        result = execute(command)
    except FulfillmentError as e:
        logger.warning(
            "Reaction %s on %s %s failed: %s",
            command.event,
            command.entity_type,
            command.entity_id,
            e,
        )
        return
    logger.info(
        "Reaction %s on %s %s: %s",
        command.event,
        command.entity_type,
        command.entity_id,
        result.outcome,
    )


def _execute(command: Command, now=None) -> Result:
    now = now or timezone.now()
    entity_type = str(command.entity_type)
    command = Command(
        entity_type=entity_type,
        entity_id=command.entity_id,
        event=command.event,
        actor=command.actor,
        payload=dict(command.payload or {}),
        expected_version=command.expected_version,
        idempotency_key=command.idempotency_key,
    )
    machine = get_machine(entity_type)

    with transaction.atomic():
        entity = _load(entity_type, command.entity_id)
        from_status = entity.status

        check_actor(machine, entity, command.event, command.actor)

        if command.expected_version is not None and command.expected_version != entity.version:
            raise ConcurrentModification(entity_type, entity.pk, command.expected_version)

        payload = _clean_payload(entity_type, entity, command.event, from_status, command.payload)
        context = _build_context(command, entity, payload, now)

        decision = machine.validate(from_status, command.event, context, entity)
        if isinstance(decision, Rejected):
            exc_class = PreconditionMissing if decision.code == PRECONDITION_MISSING else InvalidTransition
            raise exc_class(entity_type, from_status, command.event, decision.reasons)
        edge = decision.edge
        warnings = list(decision.warnings)

        if edge.cutoff_action and not is_action_allowed(entity, edge.cutoff_action, now):
            raise CutoffExceeded(entity.pk, edge.cutoff_action, cutoff_reason(edge.cutoff_action))

        changes = {"status": edge.target, "updated_at": now}
        stamp = edge.stamp or machine.timestamps.get(edge.target)
        if stamp:
            changes[stamp] = now
        for name in edge.writes:
            if name in payload:
                changes[name] = payload[name]
        if edge.releases:
            changes[edge.releases] = None
        if edge.actor_field:
            changes[f"{edge.actor_field}_id"] = command.actor.id

        allocation = None
        if edge.allocates:
            allocation = _allocate(command, entity, edge, now)
            if allocation is None:
                return _park(command, entity, edge, now)
            changes[PARTNER_FIELDS[edge.allocates]] = allocation.partner
            if is_credential_expiring_soon(allocation.partner, now):
                warnings.append(f"{allocation.partner.name}'s credentials expire within 30 days")

        # Any applied transition resolves a parked item.
        if getattr(entity, "parked_at", None) is not None:
            changes["parked_at"] = None

        _conditional_update(entity_type, entity, changes)

        if allocation is not None:
            type(allocation.partner).objects.filter(pk=allocation.partner.pk).update(last_assigned_at=now)

        entity.refresh_from_db()
        _record(
            command, entity, from_status, entity.status, entity.version, now,
            {
                "payload": _json_safe(command.payload),
                "partner_id": str(allocation.partner.pk) if allocation else None,
                "warnings": warnings,
            },
        )

        published = events.status_changed(
            entity_type,
            entity,
            patient_id_for(entity_type, entity),
            command.event,
            from_status,
            _working_partner(entity_type, entity),
        )
        if allocation is not None:
            published += events.partner_assigned(entity_type, entity, allocation.partner, warnings)
        if entity_type == EntityType.LAB_ORDER.value and entity.status == LabOrderStatus.RESULTS_UPLOADED:
            published += _results_events(entity)
        events.publish(published)
        _schedule_reactions(entity_type, entity)

    logger.info(
        "%s %s: %s %s -> %s (v%s)",
        entity_type,
        entity.pk,
        command.event,
        from_status,
        entity.status,
        entity.version,
    )

    return Result(
        entity_type=entity_type,
        entity_id=str(entity.pk),
        event=command.event,
        outcome=APPLIED,
        from_status=from_status,
        status=entity.status,
        version=entity.version,
        partner_id=str(allocation.partner.pk) if allocation else None,
        warnings=warnings,
    )


@idempotent(
    scope="fulfillment_command",
    key_from=lambda command, now=None: f"{str(command.entity_type)}:{command.entity_id}:{command.idempotency_key}",
    replay=Result.from_snapshot,
)
def _execute_idempotent(command: Command, now=None) -> Result:
    return _execute(command, now)


def execute(command: Command, now=None) -> Result:
    """
    Execute a command against a consultation, lab order or pharmacy order.

    Args:
        command: What to do, to which entity, on whose behalf
        now: Business time of the command (defaults to timezone.now())

    Returns:
        Result with outcome APPLIED or ASSIGNMENT_PENDING

    Raises:
        EntityNotFound: entity does not exist
        RoleNotPermitted: actor may not fire the event on this entity
        InvalidTransition: event not defined from the current status
        PreconditionMissing: required field or condition absent
        CutoffExceeded: cancel/reschedule inside the 4-hour window
        ConcurrentModification: entity changed since it was read
        CommandInProgress: same idempotency key still running elsewhere
    """
    if command.idempotency_key:
        return _execute_idempotent(command, now)
    return _execute(command, now)
