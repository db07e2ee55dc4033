"""Daily collection roster for a phlebotomist."""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from .choices import LabOrderStatus
from .models import LabOrder
from .panels import requires_fasting
from .slots import normalize_slot_start

ROSTER_STATUSES = (
    LabOrderStatus.PHLEBOTOMIST_ASSIGNED,
    LabOrderStatus.PHLEBOTOMIST_EN_ROUTE,
)

# Sorts slots that can't be read after every real slot.
_UNKNOWN_SLOT = "99:99"


@dataclass(frozen=True)
class RosterItem:
    lab_order_id: str
    patient_first_name: str
    contact_phone: str
    area: str
    address: str
    pincode: str
    booked_date: date
    time_slot: str
    slot_start: Optional[str]
    panel_name: str
    tests: tuple
    requires_fasting: bool
    status: str


def _to_item(order: LabOrder) -> RosterItem:
    patient = order.consultation.patient
    return RosterItem(
        lab_order_id=str(order.pk),
        patient_first_name=getattr(patient, "first_name", "") or "",
        contact_phone=order.contact_phone,
        area=order.collection_area.strip(),
        address=order.collection_address,
        pincode=order.collection_pincode,
        booked_date=order.booked_date,
        time_slot=order.booked_time_slot,
        slot_start=normalize_slot_start(order.booked_time_slot),
        panel_name=order.panel_name,
        tests=tuple(order.test_panel or ()),
        requires_fasting=requires_fasting(order.test_panel),
        status=order.status,
    )


def _slot_key(item: RosterItem):
    return (item.slot_start or _UNKNOWN_SLOT, item.lab_order_id)


def group_roster(items) -> list[tuple[str, list[RosterItem]]]:
    """
    Group roster items by area.

    Items within an area are ordered by slot start. Areas are ordered by
    their earliest slot, then by name.
    """
    groups = {}
    for item in items:
        groups.setdefault(item.area, []).append(item)

    for area_items in groups.values():
        area_items.sort(key=_slot_key)

    return sorted(
        groups.items(),
        key=lambda pair: (_slot_key(pair[1][0])[0], pair[0].casefold()),
    )


def daily_roster(phlebotomist_id, on_date: date) -> list[RosterItem]:
    """
    The phlebotomist's collections for a day, area by area, in slot order.

    Pure read: includes only assigned and en-route collections.
    """
    orders = (
        LabOrder.objects.filter(
            phlebotomist_id=phlebotomist_id,
            booked_date=on_date,
            status__in=ROSTER_STATUSES,
        )
        .select_related("consultation__patient")
    )
    items = [_to_item(order) for order in orders]
    return [item for _, area_items in group_roster(items) for item in area_items]
