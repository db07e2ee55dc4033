"""
Time-windowed business rules.

All functions are pure: they take `now` explicitly and never read the clock.
Datetimes are compared as aware UTC instants; booked dates and slots are
interpreted in FULFILLMENT_SLOT_TIMEZONE.
"""

from datetime import datetime, time, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo

from .choices import LabOrderStatus
from .conf import get_setting
from .slots import slot_start_time

CANCELLATION_CUTOFF = timedelta(hours=4)
CREDENTIAL_WARNING_WINDOW = timedelta(days=30)

CUTOFF_ACTIONS = ("cancel", "reschedule")

# The cutoff applies once a phlebotomist holds the slot.
_CUTOFF_STATUSES = (LabOrderStatus.PHLEBOTOMIST_ASSIGNED,)


def slot_timezone():
    name = get_setting("SLOT_TIMEZONE")
    if not name or name == "UTC":
        return dt_timezone.utc
    return ZoneInfo(name)


def scheduled_at(lab_order):
    """
    The instant the collection is scheduled to start, in UTC.

    Combines booked_date with the slot start (midnight when the slot can't be
    read). Returns None when no date is booked.
    """
    if lab_order.booked_date is None:
        return None
    start = slot_start_time(lab_order.booked_time_slot) or time(0, 0)
    local = datetime.combine(lab_order.booked_date, start, tzinfo=slot_timezone())
    return local.astimezone(dt_timezone.utc)


def is_action_allowed(lab_order, action: str, now: datetime) -> bool:
    """
    Whether a cancel or reschedule is still permitted at `now`.

    Disallowed only for an assigned collection less than four hours away.
    Exactly four hours before the slot is still allowed.
    """
    if action not in CUTOFF_ACTIONS:
        return True
    if lab_order.status not in _CUTOFF_STATUSES:
        return True
    start = scheduled_at(lab_order)
    if start is None:
        return True
    return start - now >= CANCELLATION_CUTOFF


def cutoff_reason(action: str) -> str:
    verb = "reschedule" if action == "reschedule" else "cancel"
    return f"Cannot {verb} within 4 hours of your scheduled collection. Contact support."


def is_refill_due(config, now: datetime) -> bool:
    """An active config is due on or after its next refill date (UTC calendar day)."""
    if not config.is_active:
        return False
    return now.astimezone(dt_timezone.utc).date() >= config.next_refill_date


def is_credential_expired(partner, now: datetime) -> bool:
    expiry = getattr(partner, "credential_expiry", None)
    return expiry is not None and expiry <= now


def is_credential_expiring_soon(partner, now: datetime) -> bool:
    """True inside the 30-day warning window; already expired is not "soon"."""
    expiry = getattr(partner, "credential_expiry", None)
    if expiry is None:
        return False
    remaining = expiry - now
    return timedelta(0) < remaining <= CREDENTIAL_WARNING_WINDOW
