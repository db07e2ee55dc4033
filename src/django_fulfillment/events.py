"""
Domain events and notification dispatch.

Events are published after the surrounding transaction commits. Dispatch is
fire-and-forget: a failing dispatcher is logged and never undoes or blocks
the state change that produced the event.

Recipients are strings: "user:<pk>", "phlebotomist:<uuid>", "pharmacy:<uuid>",
"lab:<uuid>" or "role:ADMIN".
"""

import logging
from dataclasses import dataclass, field

from django.db import transaction

from .choices import EntityType
from .conf import get_dispatcher

logger = logging.getLogger(__name__)

LAB_ORDER_STATUS_CHANGED = "LabOrderStatusChanged"
PHARMACY_ORDER_STATUS_CHANGED = "PharmacyOrderStatusChanged"
CONSULTATION_STATUS_CHANGED = "ConsultationStatusChanged"
PARTNER_ASSIGNED = "PartnerAssigned"
ASSIGNMENT_PENDING = "AssignmentPending"
REFILL_ORDER_CREATED = "RefillOrderCreated"
REFILL_SKIPPED = "RefillSkipped"
CREDENTIAL_EXPIRING = "CredentialExpiring"
PARTNER_SUSPENDED = "PartnerSuspended"
LAB_RESULTS_READY = "LabResultsReady"
CRITICAL_VALUE_ALERT = "CriticalValueAlert"

ADMIN_RECIPIENT = "role:ADMIN"

_STATUS_CHANGED = {
    EntityType.CONSULTATION.value: CONSULTATION_STATUS_CHANGED,
    EntityType.LAB_ORDER.value: LAB_ORDER_STATUS_CHANGED,
    EntityType.PHARMACY_ORDER.value: PHARMACY_ORDER_STATUS_CHANGED,
}


@dataclass(frozen=True)
class DomainEvent:
    event_type: str
    recipient_id: str
    payload: dict = field(default_factory=dict)


class LoggingDispatcher:
    """Default dispatcher: writes each notification to the log."""

    def dispatch(self, event_type: str, recipient_id: str, payload: dict) -> None:
        logger.info("Notification %s to %s: %s", event_type, recipient_id, payload)


def user_recipient(user_id) -> str:
    return f"user:{user_id}"


def partner_recipient(partner) -> str:
    return f"{str(partner.kind)}:{partner.pk}"


def dispatch_now(events) -> None:
    """Hand events to the configured dispatcher, logging any failure."""
    dispatcher = get_dispatcher()
    for event in events:
        try:
            dispatcher.dispatch(event.event_type, event.recipient_id, event.payload)
        except Exception as e:
            logger.warning(
                "Dispatch of %s to %s failed: %s",
                event.event_type,
                event.recipient_id,
                e,
            )


def publish(events) -> None:
    """Dispatch events once the current transaction commits."""
    events = list(events)
    if not events:
        return
    transaction.on_commit(lambda: dispatch_now(events))


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------


def status_changed(entity_type: str, entity, patient_id, event: str, from_status: str, partner=None):
    """Status change notice for the patient and, if assigned, the partner."""
    payload = {
        "entity_type": str(entity_type),
        "entity_id": str(entity.pk),
        "event": event,
        "from_status": from_status,
        "to_status": entity.status,
        "version": entity.version,
    }
    event_type = _STATUS_CHANGED[str(entity_type)]
    events = [DomainEvent(event_type, user_recipient(patient_id), payload)]
    if partner is not None:
        events.append(DomainEvent(event_type, partner_recipient(partner), payload))
    return events


def partner_assigned(entity_type: str, entity, partner, warnings=()):
    payload = {
        "entity_type": str(entity_type),
        "entity_id": str(entity.pk),
        "partner_kind": str(partner.kind),
        "partner_id": str(partner.pk),
        "partner_name": partner.name,
    }
    if warnings:
        payload["warnings"] = list(warnings)
    return [DomainEvent(PARTNER_ASSIGNED, partner_recipient(partner), payload)]


def assignment_pending(entity_type: str, entity, kind: str, reason: str):
    payload = {
        "entity_type": str(entity_type),
        "entity_id": str(entity.pk),
        "partner_kind": str(kind),
        "reason": reason,
    }
    return [DomainEvent(ASSIGNMENT_PENDING, ADMIN_RECIPIENT, payload)]


def refill_order_created(config, order):
    payload = {
        "refill_config_id": str(config.pk),
        "pharmacy_order_id": str(order.pk),
        "due_date": order.refill_due_date.isoformat(),
        "next_refill_date": config.next_refill_date.isoformat(),
    }
    return [DomainEvent(REFILL_ORDER_CREATED, user_recipient(config.patient_id), payload)]


def refill_skipped(config, reason: str):
    payload = {
        "refill_config_id": str(config.pk),
        "due_date": config.next_refill_date.isoformat(),
        "reason": reason,
    }
    return [
        DomainEvent(REFILL_SKIPPED, user_recipient(config.patient_id), payload),
        DomainEvent(REFILL_SKIPPED, ADMIN_RECIPIENT, payload),
    ]


def credential_expiring(phlebotomist, days_remaining: int):
    payload = {
        "phlebotomist_id": str(phlebotomist.pk),
        "name": phlebotomist.name,
        "credential_expiry": phlebotomist.credential_expiry.isoformat(),
        "days_remaining": days_remaining,
    }
    return [
        DomainEvent(CREDENTIAL_EXPIRING, partner_recipient(phlebotomist), payload),
        DomainEvent(CREDENTIAL_EXPIRING, ADMIN_RECIPIENT, payload),
    ]


def partner_suspended(partner, reason: str, reassigned: int):
    payload = {
        "partner_kind": str(partner.kind),
        "partner_id": str(partner.pk),
        "reason": reason,
        "reassigned": reassigned,
    }
    return [DomainEvent(PARTNER_SUSPENDED, ADMIN_RECIPIENT, payload)]


def results_ready(lab_order, doctor_id):
    """Results waiting for the ordering doctor's review; flagged urgent when critical."""
    if doctor_id is None:
        return []
    payload = {
        "lab_order_id": str(lab_order.pk),
        "consultation_id": str(lab_order.consultation_id),
        "result_file_url": lab_order.result_file_url,
        "urgent": bool(lab_order.critical_values),
    }
    return [DomainEvent(LAB_RESULTS_READY, user_recipient(doctor_id), payload)]


def critical_value_alert(lab_order, doctor_id, critical_values):
    """Urgent alert to the ordering doctor and admins."""
    payload = {
        "lab_order_id": str(lab_order.pk),
        "consultation_id": str(lab_order.consultation_id),
        "critical_values": list(critical_values),
    }
    recipients = [ADMIN_RECIPIENT]
    if doctor_id is not None:
        recipients.insert(0, user_recipient(doctor_id))
    return [DomainEvent(CRITICAL_VALUE_ALERT, recipient, payload) for recipient in recipients]
