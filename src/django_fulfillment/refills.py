"""
Auto-refill scheduling.

tick(now) creates at most one pharmacy order per due config. The
fire-and-advance step runs under a row lock on the config, and
last_fired_for plus the (refill_config, refill_due_date) unique constraint
make a repeated tick for the same due date a no-op.
"""

import logging
from datetime import timedelta, timezone as dt_timezone

from django.db import transaction
from django.utils import timezone

from . import events
from .choices import EntityType, Role
from .commands import SYSTEM_ACTOR, Command
from .cutoffs import is_refill_due
from .exceptions import FulfillmentError, RefillConfigError, RoleNotPermitted
from .models import AutoRefillConfig, PharmacyOrder
from .orchestrator import execute

logger = logging.getLogger(__name__)

PRESCRIPTION_EXPIRED = "prescription_expired"


def _utc_date(now):
    return now.astimezone(dt_timezone.utc).date()


def create_refill_config(prescription, interval_days: int, now=None) -> AutoRefillConfig:
    """
    Start recurring refills for a prescription.

    The first refill falls interval_days after today.
    """
    now = now or timezone.now()
    try:
        interval_days = int(interval_days)
    except (TypeError, ValueError):
        raise RefillConfigError("interval_days must be a whole number of days")
    if interval_days <= 0:
        raise RefillConfigError("interval_days must be positive")

    config = AutoRefillConfig.objects.create(
        prescription=prescription,
        patient=prescription.consultation.patient,
        interval_days=interval_days,
        next_refill_date=_utc_date(now) + timedelta(days=interval_days),
    )
    logger.info("Auto-refill %s created: every %sd from %s", config.pk, interval_days, config.next_refill_date)
    return config


def cancel_refill_config(config_id, actor, now=None) -> AutoRefillConfig:
    """
    Stop a refill config. Terminal; cancelling twice is a no-op.

    Only the config's patient (or an admin) may cancel.
    """
    now = now or timezone.now()
    with transaction.atomic():
        config = AutoRefillConfig.objects.select_for_update().get(pk=config_id)

        role = str(actor.role)
        if role == Role.PATIENT:
            if str(config.patient_id) != str(actor.id):
                raise RoleNotPermitted(role, "CANCEL_REFILL", "Patients may only cancel their own refills")
        elif role != Role.ADMIN:
            raise RoleNotPermitted(role, "CANCEL_REFILL")

        if not config.is_active:
            return config

        config.is_active = False
        config.cancelled_at = now
        config.version += 1
        config.save(update_fields=["is_active", "cancelled_at", "version", "updated_at"])

    logger.info("Auto-refill %s cancelled by %s", config.pk, role)
    return config


def due_configs(now):
    return AutoRefillConfig.objects.filter(is_active=True, next_refill_date__lte=_utc_date(now))


def fire_refill(config_id, now):
    """
    Create the refill order for one config if it is due.

    Returns the new PharmacyOrder, or None when the config was not due,
    had already fired for this due date, or was skipped.
    """
    with transaction.atomic():
        config = (
            AutoRefillConfig.objects.select_for_update()
            .select_related("prescription")
            .get(pk=config_id)
        )
        if not is_refill_due(config, now):
            return None

        due_date = config.next_refill_date
        if config.last_fired_for == due_date:
            return None

        prescription = config.prescription
        if prescription.valid_until is not None and prescription.valid_until < _utc_date(now):
            config.is_active = False
            config.cancelled_at = now
            config.version += 1
            config.save(update_fields=["is_active", "cancelled_at", "version", "updated_at"])
            events.publish(events.refill_skipped(config, PRESCRIPTION_EXPIRED))
            logger.warning(
                "Auto-refill %s skipped: prescription %s expired on %s",
                config.pk,
                prescription.pk,
                prescription.valid_until,
            )
            return None

        order = PharmacyOrder.objects.create(
            prescription=prescription,
            medications=list(prescription.medications or []),
            delivery_address=prescription.delivery_address,
            delivery_city=prescription.delivery_city,
            delivery_pincode=prescription.delivery_pincode,
            refill_config=config,
            refill_due_date=due_date,
            ordered_at=now,
        )

        config.last_fired_for = due_date
        config.next_refill_date = due_date + timedelta(days=config.interval_days)
        config.total_refills_created += 1
        config.last_pharmacy_order = order
        config.version += 1
        config.save(update_fields=[
            "last_fired_for",
            "next_refill_date",
            "total_refills_created",
            "last_pharmacy_order",
            "version",
            "updated_at",
        ])
        events.publish(events.refill_order_created(config, order))

    logger.info("Auto-refill %s fired for %s: order %s", config.pk, due_date, order.pk)
    return order


def _send_to_pharmacy(order, now):
    try:
        return execute(
            Command(
                entity_type=EntityType.PHARMACY_ORDER,
                entity_id=order.pk,
                event="SEND_TO_PHARMACY",
                actor=SYSTEM_ACTOR,
            ),
            now=now,
        )
    except FulfillmentError as e:
        logger.warning("Refill order %s created but not sent: %s", order.pk, e)
        return None


def tick(now=None) -> list:
    """
    Fire every due refill once and route the new orders to pharmacies.

    Returns the ids of the pharmacy orders created.
    """
    now = now or timezone.now()
    created = []
    config_ids = list(due_configs(now).values_list("pk", flat=True))

    for config_id in config_ids:
        order = fire_refill(config_id, now)
        if order is None:
            continue
        created.append(order.pk)
        _send_to_pharmacy(order, now)

    logger.info("Refill tick at %s: %d due, %d orders created", now, len(config_ids), len(created))
    return created
