"""Service functions for fulfillment entities and partners.

Provides:
- create_consultation / create_lab_order / create_prescription / create_pharmacy_order
- suspend_partner / activate_partner: partner lifecycle
- check_partner_credentials: expiry warnings and auto-suspension
- expire_stale_lab_orders: close out lab orders nobody booked
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from . import events
from .choices import (
    EntityType,
    LabOrderStatus,
    PartnerKind,
    PartnerStatus,
    PharmacyOrderStatus,
)
from .commands import SYSTEM_ACTOR, Command
from .conf import get_setting
from .cutoffs import is_credential_expired, is_credential_expiring_soon
from .exceptions import FulfillmentError
from .models import Consultation, LabOrder, PharmacyOrder, Prescription
from .orchestrator import execute
from .selectors import credential_watchlist

logger = logging.getLogger(__name__)

# Work the partner has not started yet; moved to another partner on suspension.
UNSTARTED_WORK = {
    PartnerKind.PHLEBOTOMIST.value: (
        LabOrder, "phlebotomist", LabOrderStatus.PHLEBOTOMIST_ASSIGNED, "REASSIGN_PHLEBOTOMIST",
    ),
    PartnerKind.PHARMACY.value: (
        PharmacyOrder, "pharmacy", PharmacyOrderStatus.SENT_TO_PHARMACY, "REASSIGN_PHARMACY",
    ),
}

CREDENTIALS_EXPIRED = "Credentials expired"


def create_consultation(patient, vertical: str) -> Consultation:
    return Consultation.objects.create(patient=patient, vertical=vertical)


def create_lab_order(
    consultation,
    test_panel: list,
    panel_name: str = "",
    doctor=None,
    collection_address: str = "",
    collection_area: str = "",
    collection_city: str = "",
    collection_pincode: str = "",
    contact_phone: str = "",
    now=None,
) -> LabOrder:
    """
    Order blood work for a consultation.

    The order starts ORDERED; the patient books a slot next. Doctor defaults
    to the consultation's assigned doctor.
    """
    return LabOrder.objects.create(
        consultation=consultation,
        doctor=doctor or consultation.doctor,
        test_panel=list(test_panel),
        panel_name=panel_name,
        collection_address=collection_address,
        collection_area=collection_area,
        collection_city=collection_city,
        collection_pincode=collection_pincode,
        contact_phone=contact_phone,
        ordered_at=now or timezone.now(),
    )


def create_prescription(
    consultation,
    medications: list,
    delivery_address: str = "",
    delivery_city: str = "",
    delivery_pincode: str = "",
    valid_until=None,
    pdf_url: str = "",
) -> Prescription:
    return Prescription.objects.create(
        consultation=consultation,
        medications=list(medications),
        delivery_address=delivery_address,
        delivery_city=delivery_city,
        delivery_pincode=delivery_pincode,
        valid_until=valid_until,
        pdf_url=pdf_url,
    )


def create_pharmacy_order(prescription, send: bool = True, now=None) -> PharmacyOrder:
    """
    Create a pharmacy order from a prescription.

    With send=True the order is routed to a pharmacy straight away (or
    parked when none is eligible).
    """
    now = now or timezone.now()
    order = PharmacyOrder.objects.create(
        prescription=prescription,
        medications=list(prescription.medications or []),
        delivery_address=prescription.delivery_address,
        delivery_city=prescription.delivery_city,
        delivery_pincode=prescription.delivery_pincode,
        ordered_at=now,
    )
    if send:
        execute(
            Command(
                entity_type=EntityType.PHARMACY_ORDER,
                entity_id=order.pk,
                event="SEND_TO_PHARMACY",
                actor=SYSTEM_ACTOR,
            ),
            now=now,
        )
        order.refresh_from_db()
    return order


def _reassign_unstarted(partner, now) -> int:
    work = UNSTARTED_WORK.get(str(partner.kind))
    if work is None:
        return 0
    model, field_name, status, event = work
    entity_type = EntityType.LAB_ORDER if model is LabOrder else EntityType.PHARMACY_ORDER

    moved = 0
    item_ids = list(model.objects.filter(**{field_name: partner, "status": status}).values_list("pk", flat=True))
    for item_id in item_ids:
        try:
            result = execute(
                Command(entity_type=entity_type, entity_id=item_id, event=event, actor=SYSTEM_ACTOR),
                now=now,
            )
        except FulfillmentError as e:
            logger.warning("Could not reassign %s %s from %s: %s", entity_type, item_id, partner.pk, e)
            continue
        if result.applied:
            moved += 1
    return moved


def suspend_partner(partner, reason: str, now=None, reassign_unstarted: bool = True) -> int:
    """
    Suspend a partner so it receives no new work.

    Work already in progress stays with the partner. With reassign_unstarted,
    work it has not started is re-allocated; items with no alternative are
    parked and keep the suspended partner until an admin steps in.

    Returns the number of work items moved to another partner.
    """
    now = now or timezone.now()
    with transaction.atomic():
        type(partner).objects.filter(pk=partner.pk).update(
            status=PartnerStatus.SUSPENDED,
            suspended_at=now,
            suspension_reason=reason,
            updated_at=now,
        )
    partner.refresh_from_db()

    moved = _reassign_unstarted(partner, now) if reassign_unstarted else 0

    events.publish(events.partner_suspended(partner, reason, moved))
    logger.warning("%s %s suspended (%s); %d items reassigned", partner.kind, partner.pk, reason, moved)
    return moved


def activate_partner(partner, now=None):
    """Make a partner eligible for allocation."""
    now = now or timezone.now()
    type(partner).objects.filter(pk=partner.pk).update(
        status=PartnerStatus.ACTIVE,
        suspended_at=None,
        suspension_reason="",
        updated_at=now,
    )
    partner.refresh_from_db()
    logger.info("%s %s activated", partner.kind, partner.pk)
    return partner


def check_partner_credentials(now=None, dry_run: bool = False) -> dict:
    """
    Warn on credentials expiring within 30 days; suspend active phlebotomists
    whose credentials have lapsed.

    Returns {"expiring": [ids], "suspended": [ids]}.
    """
    now = now or timezone.now()
    report = {"expiring": [], "suspended": []}

    for entry in credential_watchlist(now):
        phlebotomist = entry["phlebotomist"]
        if is_credential_expired(phlebotomist, now):
            if phlebotomist.status != PartnerStatus.ACTIVE:
                continue
            report["suspended"].append(phlebotomist.pk)
            if not dry_run:
                suspend_partner(phlebotomist, CREDENTIALS_EXPIRED, now=now)
        elif is_credential_expiring_soon(phlebotomist, now):
            report["expiring"].append(phlebotomist.pk)
            if not dry_run:
                events.publish(events.credential_expiring(phlebotomist, entry["days_remaining"]))

    logger.info(
        "Credential check: %d expiring, %d suspended",
        len(report["expiring"]),
        len(report["suspended"]),
    )
    return report


def stale_lab_orders(now, days: int = None):
    days = days if days is not None else get_setting("LAB_ORDER_EXPIRY_DAYS")
    return LabOrder.objects.filter(
        status=LabOrderStatus.ORDERED,
        ordered_at__lt=now - timedelta(days=days),
    )


def expire_stale_lab_orders(now=None, days: int = None) -> list:
    """
    Expire lab orders still un-booked after the expiry window (default 14 days).

    Returns the ids of the orders expired.
    """
    now = now or timezone.now()
    expired = []
    for order_id in list(stale_lab_orders(now, days).values_list("pk", flat=True)):
        try:
            execute(
                Command(
                    entity_type=EntityType.LAB_ORDER,
                    entity_id=order_id,
                    event="EXPIRE",
                    actor=SYSTEM_ACTOR,
                ),
                now=now,
            )
        except FulfillmentError as e:
            logger.warning("Could not expire lab order %s: %s", order_id, e)
            continue
        expired.append(order_id)

    logger.info("Expired %d stale lab orders", len(expired))
    return expired
