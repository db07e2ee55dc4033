"""Tests for the fulfillment management commands."""

from datetime import date, datetime, timedelta, timezone as dt_timezone
from io import StringIO

import pytest
from django.core.management import call_command
from freezegun import freeze_time

from django_fulfillment.choices import LabOrderStatus, PartnerStatus
from django_fulfillment.models import AutoRefillConfig, IdempotencyKey, LabOrder, PharmacyOrder, Phlebotomist

UTC = dt_timezone.utc
FROZEN = "2026-03-09 12:00:00"
NOW = datetime(2026, 3, 9, 12, 0, tzinfo=UTC)


def run(name, *args):
    out = StringIO()
    call_command(name, *args, stdout=out)
    return out.getvalue()


@pytest.fixture
def due_config(prescription, patient):
    return AutoRefillConfig.objects.create(
        prescription=prescription,
        patient=patient,
        interval_days=30,
        next_refill_date=date(2026, 3, 9),
    )


@pytest.mark.django_db
class TestRunRefills:

    @freeze_time(FROZEN)
    def test_creates_due_orders(self, due_config, pharmacy):
        output = run("run_refills")

        assert "Created 1 refill orders" in output
        assert PharmacyOrder.objects.filter(refill_config=due_config).count() == 1

    @freeze_time(FROZEN)
    def test_dry_run_lists_due_configs(self, due_config):
        output = run("run_refills", "--dry-run")

        assert "Would fire 1 due refills" in output
        assert f"{due_config.pk}: due 2026-03-09" in output
        assert not PharmacyOrder.objects.exists()


@pytest.mark.django_db
class TestExpireLabOrders:

    @pytest.fixture
    def stale_order(self, consultation):
        return LabOrder.objects.create(consultation=consultation, ordered_at=NOW - timedelta(days=20))

    @freeze_time(FROZEN)
    def test_expires_stale_orders(self, stale_order):
        output = run("expire_lab_orders")

        stale_order.refresh_from_db()
        assert "Expired 1 lab orders" in output
        assert stale_order.status == LabOrderStatus.EXPIRED

    @freeze_time(FROZEN)
    def test_dry_run(self, stale_order):
        output = run("expire_lab_orders", "--dry-run")

        stale_order.refresh_from_db()
        assert "Would expire 1 lab orders (unbooked for more than 14 days)" in output
        assert stale_order.status == LabOrderStatus.ORDERED

    @freeze_time(FROZEN)
    def test_days_option(self, stale_order):
        output = run("expire_lab_orders", "--days", "30", "--dry-run")

        assert "Would expire 0 lab orders (unbooked for more than 30 days)" in output


@pytest.mark.django_db
class TestCheckPartnerCredentials:

    @pytest.fixture
    def lapsed(self):
        return Phlebotomist.objects.create(
            name="Lapsed", status=PartnerStatus.ACTIVE, credential_expiry=NOW - timedelta(days=2),
        )

    @freeze_time(FROZEN)
    def test_suspends_lapsed(self, lapsed):
        output = run("check_partner_credentials")

        lapsed.refresh_from_db()
        assert "Notified 0 expiring, suspended 1 expired phlebotomists" in output
        assert lapsed.status == PartnerStatus.SUSPENDED

    @freeze_time(FROZEN)
    def test_dry_run(self, lapsed):
        output = run("check_partner_credentials", "--dry-run")

        lapsed.refresh_from_db()
        assert "Would notify 0 expiring and suspend 1 expired phlebotomists" in output
        assert lapsed.status == PartnerStatus.ACTIVE


@pytest.mark.django_db
class TestCleanupIdempotencyKeys:
    """Tests for the cleanup_idempotency_keys command."""

    @pytest.fixture
    def keys(self):
        old = IdempotencyKey.objects.create(scope="fulfillment_command", key="old", state=IdempotencyKey.State.SUCCEEDED)
        stuck = IdempotencyKey.objects.create(
            scope="fulfillment_command", key="stuck", state=IdempotencyKey.State.PROCESSING,
        )
        recent = IdempotencyKey.objects.create(scope="fulfillment_command", key="recent")
        IdempotencyKey.objects.filter(pk__in=[old.pk, stuck.pk]).update(created_at=NOW - timedelta(days=10))
        IdempotencyKey.objects.filter(pk=recent.pk).update(created_at=NOW - timedelta(days=1))
        return old, stuck, recent

    @freeze_time(FROZEN)
    def test_deletes_old_settled_keys(self, keys):
        old, stuck, recent = keys

        output = run("cleanup_idempotency_keys")

        assert "Deleted 1 old idempotency keys" in output
        assert set(IdempotencyKey.objects.values_list("key", flat=True)) == {"stuck", "recent"}

    @freeze_time(FROZEN)
    def test_dry_run(self, keys):
        output = run("cleanup_idempotency_keys", "--dry-run")

        assert "Would delete 1 idempotency keys (older than 7 days)" in output
        assert IdempotencyKey.objects.count() == 3

    @freeze_time(FROZEN)
    def test_days_option(self, keys):
        output = run("cleanup_idempotency_keys", "--days", "0")

        assert "Deleted 2 old idempotency keys" in output
