"""
Partner allocation.

Pure ranking over an explicit candidate pool. Callers build the pool
(selectors.build_partner_pool) and pass it in; nothing here queries the
database or mutates partners.

A partner is anything implementing:
    is_available() -> bool
    serves(pincode, city) -> bool
    has_capacity(load) -> bool
plus `pk` and `last_assigned_at` attributes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Protocol, Union

from .exceptions import NoEligiblePartner


class Allocatable(Protocol):
    pk: Any
    last_assigned_at: Any

    def is_available(self) -> bool: ...

    def serves(self, pincode: str, city: str) -> bool: ...

    def has_capacity(self, load: int) -> bool: ...


@dataclass(frozen=True)
class Candidate:
    """A partner with its current-day load."""

    partner: Allocatable
    load: int = 0


@dataclass(frozen=True)
class Allocation:
    partner: Allocatable
    load: int
    manual: bool = False


def _rank_key(candidate: Candidate):
    last = candidate.partner.last_assigned_at
    # Never-assigned partners first, then the longest idle.
    return (
        candidate.load,
        last is not None,
        last or datetime.min,
        str(candidate.partner.pk),
    )


def rank_candidates(work_item, pool: Iterable[Candidate], exclude=()) -> list[Candidate]:
    """
    Filter and order the pool for a work item.

    Filters, in order: excluded ids, ACTIVE status, serviceability, capacity.
    Orders by ascending load, then oldest last_assigned_at, then id.
    """
    excluded = {str(pk) for pk in exclude if pk is not None}
    pincode = getattr(work_item, "pincode", "") or ""
    city = getattr(work_item, "city", "") or ""

    eligible = [
        candidate
        for candidate in pool
        if str(candidate.partner.pk) not in excluded
        and candidate.partner.is_available()
        and candidate.partner.serves(pincode, city)
        and candidate.partner.has_capacity(candidate.load)
    ]
    return sorted(eligible, key=_rank_key)


def allocate(
    work_item,
    pool: Iterable[Candidate],
    exclude=(),
    kind: str = "partner",
) -> Union[Allocation, NoEligiblePartner]:
    """
    Pick the best partner for a work item.

    Returns an Allocation, or a NoEligiblePartner value (not raised) when the
    filtered pool is empty. Reassignment passes the current partner in exclude.
    """
    ranked = rank_candidates(work_item, pool, exclude)
    if not ranked:
        return NoEligiblePartner(kind, getattr(work_item, "pk", None))
    best = ranked[0]
    return Allocation(partner=best.partner, load=best.load)


def allocate_manual(partner, load: int = 0, kind: str = "partner") -> Union[Allocation, NoEligiblePartner]:
    """
    Admin override: the named partner is used if it is ACTIVE.

    Serviceability and capacity are left to the admin's judgement.
    """
    if partner is None or not partner.is_available():
        return NoEligiblePartner(kind, reason=f"Selected {kind} is not active")
    return Allocation(partner=partner, load=load, manual=True)
