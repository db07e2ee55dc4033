"""Tests for partner allocation.

Ranking is pure: partners here are unsaved model instances.
"""

from datetime import datetime, timezone as dt_timezone
from types import SimpleNamespace

from django_fulfillment.allocation import Allocation, Candidate, allocate, allocate_manual, rank_candidates
from django_fulfillment.choices import PartnerStatus
from django_fulfillment.exceptions import NoEligiblePartner
from django_fulfillment.models import Pharmacy, Phlebotomist

UTC = dt_timezone.utc


def phlebotomist(name, areas=("400058",), status=PartnerStatus.ACTIVE, city="Mumbai",
                 capacity=10, last_assigned_at=None):
    return Phlebotomist(
        name=name,
        status=status,
        city=city,
        serviceable_areas=list(areas),
        max_daily_collections=capacity,
        last_assigned_at=last_assigned_at,
    )


def work_item(pincode="400058", city="Mumbai"):
    return SimpleNamespace(pk="order-1", pincode=pincode, city=city)


class TestServiceability:

    def test_only_partner_serving_pincode_chosen(self):
        """Three active phlebotomists; only one covers 400058."""
        bandra = phlebotomist("Bandra", areas=["400050"])
        andheri = phlebotomist("Andheri", areas=["400058", "400053"])
        thane = phlebotomist("Thane", areas=["400601"])
        pool = [Candidate(bandra), Candidate(andheri), Candidate(thane)]

        result = allocate(work_item("400058"), pool, kind="phlebotomist")

        assert isinstance(result, Allocation)
        assert result.partner is andheri

    def test_city_fallback_when_partner_lists_no_pincodes(self):
        partner = phlebotomist("Citywide", areas=[], city="Mumbai")

        assert partner.serves("400058", "mumbai") is True

    def test_no_city_fallback_when_pincodes_disagree(self):
        partner = phlebotomist("Bandra", areas=["400050"], city="Mumbai")

        assert partner.serves("400058", "Mumbai") is False

    def test_area_name_match_when_item_has_no_pincode(self):
        partner = phlebotomist("Pune", areas=["411001", "Pune"], city="")

        assert partner.serves("", "PUNE") is True

    def test_nothing_to_match_on(self):
        partner = phlebotomist("Andheri")

        assert partner.serves("", "") is False


class TestNoEligiblePartner:

    def test_all_at_capacity(self):
        pool = [
            Candidate(phlebotomist("A", capacity=2), load=2),
            Candidate(phlebotomist("B", capacity=1), load=1),
        ]

        result = allocate(work_item(), pool, kind="phlebotomist")

        assert isinstance(result, NoEligiblePartner)
        assert result.reason == "No eligible phlebotomist available"
        assert result.work_item_id == "order-1"

    def test_inactive_partners_skipped(self):
        pool = [
            Candidate(phlebotomist("Suspended", status=PartnerStatus.SUSPENDED)),
            Candidate(phlebotomist("Pending", status=PartnerStatus.PENDING_REVIEW)),
        ]

        assert isinstance(allocate(work_item(), pool), NoEligiblePartner)

    def test_empty_pool(self):
        assert isinstance(allocate(work_item(), []), NoEligiblePartner)

    def test_unlimited_capacity(self):
        partner = Pharmacy(
            name="Open all hours",
            status=PartnerStatus.ACTIVE,
            serviceable_areas=["400058"],
            daily_order_limit=None,
        )

        result = allocate(work_item(), [Candidate(partner, load=500)], kind="pharmacy")

        assert result.partner is partner


class TestRanking:

    def test_lowest_load_wins(self):
        busy = phlebotomist("Busy")
        idle = phlebotomist("Idle")

        result = allocate(work_item(), [Candidate(busy, load=4), Candidate(idle, load=1)])

        assert result.partner is idle
        assert result.load == 1

    def test_never_assigned_beats_recently_assigned(self):
        veteran = phlebotomist("Veteran", last_assigned_at=datetime(2026, 3, 1, tzinfo=UTC))
        newcomer = phlebotomist("Newcomer")

        result = allocate(work_item(), [Candidate(veteran), Candidate(newcomer)])

        assert result.partner is newcomer

    def test_longest_idle_wins_tie(self):
        recent = phlebotomist("Recent", last_assigned_at=datetime(2026, 3, 9, tzinfo=UTC))
        stale = phlebotomist("Stale", last_assigned_at=datetime(2026, 3, 1, tzinfo=UTC))

        result = allocate(work_item(), [Candidate(recent), Candidate(stale)])

        assert result.partner is stale

    def test_identifier_breaks_remaining_tie(self):
        first = phlebotomist("First")
        second = phlebotomist("Second")
        expected = min((first, second), key=lambda p: str(p.pk))

        result = allocate(work_item(), [Candidate(second), Candidate(first)])

        assert result.partner is expected

    def test_rank_candidates_orders_whole_pool(self):
        a = phlebotomist("A")
        b = phlebotomist("B")
        c = phlebotomist("C", areas=["400050"])

        ranked = rank_candidates(work_item(), [Candidate(a, load=3), Candidate(b, load=0), Candidate(c)])

        assert [candidate.partner for candidate in ranked] == [b, a]

    def test_excluded_partner_skipped(self):
        current = phlebotomist("Current")
        other = phlebotomist("Other")

        result = allocate(work_item(), [Candidate(current), Candidate(other, load=5)], exclude=[current.pk])

        assert result.partner is other


class TestManualAllocation:

    def test_active_partner_used(self):
        partner = phlebotomist("Chosen", areas=["999999"])

        result = allocate_manual(partner, load=3, kind="phlebotomist")

        assert result.partner is partner
        assert result.manual is True

    def test_suspended_partner_rejected(self):
        partner = phlebotomist("Chosen", status=PartnerStatus.SUSPENDED)

        result = allocate_manual(partner, kind="phlebotomist")

        assert isinstance(result, NoEligiblePartner)
        assert result.reason == "Selected phlebotomist is not active"

    def test_missing_partner_rejected(self):
        assert isinstance(allocate_manual(None, kind="pharmacy"), NoEligiblePartner)
