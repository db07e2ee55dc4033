"""
Read-only queries: partner pools and loads, operational queues, summaries.

Nothing in this module writes.
"""

from datetime import date, datetime, time, timedelta, timezone as dt_timezone

from django.db.models import Count, Q

from .allocation import Candidate
from .choices import LabOrderStatus, PartnerKind, PartnerStatus, PharmacyOrderStatus
from .cutoffs import CREDENTIAL_WARNING_WINDOW
from .machines import LAB_ORDER_MACHINE, PHARMACY_ORDER_MACHINE
from .models import (
    PARTNER_MODELS,
    AutoRefillConfig,
    LabOrder,
    PharmacyOrder,
    Phlebotomist,
)

# Lab orders that occupy a phlebotomist's day.
PHLEBOTOMIST_LOAD_STATUSES = (
    LabOrderStatus.PHLEBOTOMIST_ASSIGNED,
    LabOrderStatus.PHLEBOTOMIST_EN_ROUTE,
    LabOrderStatus.SAMPLE_COLLECTED,
)

OPEN_PHARMACY_STATUSES = tuple(
    status for status in PharmacyOrderStatus.values
    if status not in PHARMACY_ORDER_MACHINE.terminal_states
    and status != PharmacyOrderStatus.PRESCRIPTION_CREATED
)

_TERMINAL_STATES = {
    LabOrder: LAB_ORDER_MACHINE.terminal_states,
    PharmacyOrder: PHARMACY_ORDER_MACHINE.terminal_states,
}

PHARMACY_QUEUE_TABS = {
    "new": (PharmacyOrderStatus.SENT_TO_PHARMACY,),
    "preparing": (PharmacyOrderStatus.ACCEPTED, PharmacyOrderStatus.PHARMACY_PREPARING),
    "ready": (PharmacyOrderStatus.PHARMACY_READY,),
}


def _day_bounds(on_date: date):
    start = datetime.combine(on_date, time.min, tzinfo=dt_timezone.utc)
    return start, start + timedelta(days=1)


def _load_filter(kind: str, on_date: date) -> Q:
    if kind == PartnerKind.PHLEBOTOMIST:
        return Q(
            lab_orders__booked_date=on_date,
            lab_orders__status__in=PHLEBOTOMIST_LOAD_STATUSES,
        )
    if kind == PartnerKind.LAB:
        start, end = _day_bounds(on_date)
        return Q(
            lab_orders__sample_in_transit_at__gte=start,
            lab_orders__sample_in_transit_at__lt=end,
        )
    return Q(orders__status__in=OPEN_PHARMACY_STATUSES)


def _load_relation(kind: str) -> str:
    return "orders" if kind == PartnerKind.PHARMACY else "lab_orders"


def build_partner_pool(kind: str, on_date: date) -> list[Candidate]:
    """
    ACTIVE partners of a kind, each with its load for on_date.

    Phlebotomist load counts collections booked that day; lab load counts
    samples dispatched to it that day; pharmacy load counts open orders.
    """
    model = PARTNER_MODELS[str(kind)]
    partners = (
        model.objects.filter(status=PartnerStatus.ACTIVE)
        .annotate(current_load=Count(_load_relation(kind), filter=_load_filter(kind, on_date)))
        .order_by("pk")
    )
    return [Candidate(partner=p, load=p.current_load) for p in partners]


def partner_load(partner, on_date: date) -> int:
    """Current load of a single partner; used to re-check under a row lock."""
    kind = str(partner.kind)
    if kind == PartnerKind.PHLEBOTOMIST:
        return LabOrder.objects.filter(
            phlebotomist=partner,
            booked_date=on_date,
            status__in=PHLEBOTOMIST_LOAD_STATUSES,
        ).count()
    if kind == PartnerKind.LAB:
        start, end = _day_bounds(on_date)
        return LabOrder.objects.filter(
            lab=partner,
            sample_in_transit_at__gte=start,
            sample_in_transit_at__lt=end,
        ).count()
    return PharmacyOrder.objects.filter(pharmacy=partner, status__in=OPEN_PHARMACY_STATUSES).count()


def unassigned_queue():
    """Open work items parked awaiting a partner, oldest first."""
    lab_orders = (
        LabOrder.objects.filter(parked_at__isnull=False)
        .exclude(status__in=LAB_ORDER_MACHINE.terminal_states)
        .order_by("parked_at")
    )
    pharmacy_orders = (
        PharmacyOrder.objects.filter(parked_at__isnull=False)
        .exclude(status__in=PHARMACY_ORDER_MACHINE.terminal_states)
        .order_by("parked_at")
    )
    return {
        "lab_orders": list(lab_orders),
        "pharmacy_orders": list(pharmacy_orders),
    }


def pharmacy_queue(pharmacy_id, tab: str = "new"):
    """Orders for one pharmacy portal tab: new, preparing or ready."""
    try:
        statuses = PHARMACY_QUEUE_TABS[tab]
    except KeyError:
        raise ValueError(f"Unknown pharmacy queue tab '{tab}'")
    return (
        PharmacyOrder.objects.filter(pharmacy_id=pharmacy_id, status__in=statuses)
        .select_related("prescription")
        .order_by("ordered_at")
    )


def pharmacy_today_summary(pharmacy_id, today: date) -> dict:
    start, end = _day_bounds(today)
    orders = PharmacyOrder.objects.filter(pharmacy_id=pharmacy_id)
    counts = orders.aggregate(
        new=Count("id", filter=Q(status__in=PHARMACY_QUEUE_TABS["new"])),
        preparing=Count("id", filter=Q(status__in=PHARMACY_QUEUE_TABS["preparing"])),
        ready=Count("id", filter=Q(status__in=PHARMACY_QUEUE_TABS["ready"])),
        issues=Count("id", filter=Q(status=PharmacyOrderStatus.PHARMACY_ISSUE)),
        dispatched_today=Count("id", filter=Q(dispatched_at__gte=start, dispatched_at__lt=end)),
        delivered_today=Count("id", filter=Q(delivered_at__gte=start, delivered_at__lt=end)),
    )
    return counts


def phlebotomist_today_summary(phlebotomist_id, today: date) -> dict:
    """Totals for the phlebotomist's collections booked on a given day."""
    orders = LabOrder.objects.filter(phlebotomist_id=phlebotomist_id, booked_date=today)
    return orders.aggregate(
        total=Count("id"),
        pending=Count(
            "id",
            filter=Q(status__in=[
                LabOrderStatus.PHLEBOTOMIST_ASSIGNED,
                LabOrderStatus.PHLEBOTOMIST_EN_ROUTE,
            ]),
        ),
        completed=Count("id", filter=Q(sample_collected_at__isnull=False)),
        failed=Count("id", filter=Q(status=LabOrderStatus.COLLECTION_FAILED)),
    )


def credential_watchlist(now: datetime) -> list[dict]:
    """Phlebotomists whose credentials have lapsed or lapse within 30 days."""
    horizon = now + CREDENTIAL_WARNING_WINDOW
    phlebotomists = (
        Phlebotomist.objects.filter(credential_expiry__isnull=False, credential_expiry__lte=horizon)
        .exclude(status=PartnerStatus.INACTIVE)
        .order_by("credential_expiry")
    )
    return [
        {
            "phlebotomist": p,
            "credential_expiry": p.credential_expiry,
            "expired": p.credential_expiry <= now,
            "days_remaining": max((p.credential_expiry - now).days, 0),
        }
        for p in phlebotomists
    ]


def refill_status(config_id) -> dict:
    config = AutoRefillConfig.objects.select_related("last_pharmacy_order").get(pk=config_id)
    last_order = config.last_pharmacy_order
    return {
        "id": config.pk,
        "is_active": config.is_active,
        "interval_days": config.interval_days,
        "next_refill_date": config.next_refill_date if config.is_active else None,
        "total_refills_created": config.total_refills_created,
        "last_pharmacy_order_id": last_order.pk if last_order else None,
        "last_order_status": last_order.status if last_order else None,
        "cancelled_at": config.cancelled_at,
    }


def patient_facing_status(entity) -> str:
    """Status shown to patients; open parked items read as "processing"."""
    terminal = _TERMINAL_STATES.get(type(entity), ())
    if getattr(entity, "parked_at", None) is not None and entity.status not in terminal:
        return "processing"
    return entity.status
