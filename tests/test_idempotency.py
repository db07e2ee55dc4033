"""Tests for idempotent command execution."""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from django_fulfillment.choices import EntityType, LabOrderStatus
from django_fulfillment.commands import Command, Result
from django.utils import timezone

from django_fulfillment.exceptions import CommandInProgress, InvalidTransition, PreconditionMissing
from django_fulfillment.idempotency import idempotent
from django_fulfillment.models import IdempotencyKey, LabOrder, TransitionRecord
from django_fulfillment.orchestrator import execute

NOW = datetime(2026, 3, 9, 12, 0, tzinfo=dt_timezone.utc)


def book_command(lab_order, actor, key, payload=None):
    if payload is None:
        payload = {"booked_date": "2026-03-10", "booked_time_slot": "7:00-8:00"}
    return Command(EntityType.LAB_ORDER, lab_order.pk, "BOOK_SLOT", actor, payload=payload, idempotency_key=key)


@pytest.mark.django_db
class TestIdempotentExecute:
    """Retried commands with the same key apply once."""

    def test_retry_returns_recorded_result(self, lab_order, patient_actor):
        first = execute(book_command(lab_order, patient_actor, "book-1"), now=NOW)
        second = execute(book_command(lab_order, patient_actor, "book-1"), now=NOW)

        assert isinstance(second, Result)
        assert second == first
        assert second.applied
        lab_order.refresh_from_db()
        assert lab_order.version == 2
        assert TransitionRecord.objects.filter(entity_id=lab_order.pk).count() == 1

    def test_new_key_runs_again(self, lab_order, patient_actor):
        execute(book_command(lab_order, patient_actor, "book-1"), now=NOW)

        with pytest.raises(InvalidTransition):
            execute(book_command(lab_order, patient_actor, "book-2"), now=NOW)

    def test_failed_attempt_can_be_retried(self, lab_order, patient_actor):
        with pytest.raises(PreconditionMissing):
            execute(book_command(lab_order, patient_actor, "book-1", payload={}), now=NOW)

        idem = IdempotencyKey.objects.get(scope="fulfillment_command")
        assert idem.state == IdempotencyKey.State.FAILED
        assert idem.error_code == "PreconditionMissing"

        result = execute(book_command(lab_order, patient_actor, "book-1"), now=NOW)

        idem.refresh_from_db()
        assert result.status == LabOrderStatus.SLOT_BOOKED
        assert idem.state == IdempotencyKey.State.SUCCEEDED
        assert idem.response_snapshot["status"] == "SLOT_BOOKED"

    def test_retry_while_first_attempt_running_is_refused(self, lab_order, patient_actor):
        IdempotencyKey.objects.create(
            scope="fulfillment_command",
            key=f"lab_order:{lab_order.pk}:k1",
            state=IdempotencyKey.State.PROCESSING,
            locked_at=timezone.now(),
        )

        with pytest.raises(CommandInProgress):
            execute(book_command(lab_order, patient_actor, "k1"), now=NOW)

        lab_order.refresh_from_db()
        idem = IdempotencyKey.objects.get(scope="fulfillment_command")
        assert lab_order.status == LabOrderStatus.ORDERED
        assert lab_order.version == 1
        assert not TransitionRecord.objects.filter(entity_id=lab_order.pk).exists()
        assert idem.state == IdempotencyKey.State.PROCESSING

    def test_expired_lock_is_taken_over(self, lab_order, patient_actor, settings):
        settings.FULFILLMENT_IDEMPOTENCY_LOCK_SECONDS = 60
        IdempotencyKey.objects.create(
            scope="fulfillment_command",
            key=f"lab_order:{lab_order.pk}:k1",
            state=IdempotencyKey.State.PROCESSING,
            locked_at=timezone.now() - timedelta(minutes=5),
        )

        result = execute(book_command(lab_order, patient_actor, "k1"), now=NOW)

        idem = IdempotencyKey.objects.get(scope="fulfillment_command")
        assert result.status == LabOrderStatus.SLOT_BOOKED
        assert idem.state == IdempotencyKey.State.SUCCEEDED
        assert TransitionRecord.objects.filter(entity_id=lab_order.pk).count() == 1

    def test_keys_scoped_per_entity(self, lab_order, consultation, patient_actor):
        other = LabOrder.objects.create(consultation=consultation)

        execute(book_command(lab_order, patient_actor, "same-key"), now=NOW)
        result = execute(book_command(other, patient_actor, "same-key"), now=NOW)

        assert result.entity_id == str(other.pk)
        assert IdempotencyKey.objects.count() == 2

    def test_no_key_no_record(self, lab_order, patient_actor):
        execute(book_command(lab_order, patient_actor, None), now=NOW)

        assert not IdempotencyKey.objects.exists()


@pytest.mark.django_db
class TestIdempotentDecorator:

    def test_scope_required(self):
        with pytest.raises(TypeError):
            idempotent(scope=None)

    def test_plain_values_replayed(self):
        calls = []

        @idempotent(scope="test")
        def work(key):
            calls.append(key)
            return {"done": key}

        assert work("k1") == {"done": "k1"}
        assert work("k1") == {"done": "k1"}
        assert calls == ["k1"]

    def test_key_required(self):
        @idempotent(scope="test")
        def work():
            return None

        with pytest.raises(ValueError):
            work()

    def test_running_key_blocks_second_call(self):
        IdempotencyKey.objects.create(
            scope="test", key="k1", state=IdempotencyKey.State.PROCESSING, locked_at=timezone.now()
        )
        calls = []

        @idempotent(scope="test")
        def work(key):
            calls.append(key)

        with pytest.raises(CommandInProgress) as exc_info:
            work("k1")

        assert exc_info.value.key == "k1"
        assert calls == []
