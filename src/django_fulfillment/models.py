"""Models for django-fulfillment: consultations, orders, refills, partners and audit."""

import uuid

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from .choices import (
    ConsultationStatus,
    EntityType,
    LabOrderStatus,
    PartnerKind,
    PartnerStatus,
    PharmacyOrderStatus,
    Vertical,
)


class FulfillmentBaseModel(models.Model):
    """Abstract base: UUID primary key plus created/updated timestamps."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class VersionedModel(FulfillmentBaseModel):
    """
    Abstract base for entities written through the orchestrator.

    version is bumped on every state write; writers update with
    filter(pk=..., version=n) and treat zero rows as a concurrent modification.
    """

    version = models.PositiveIntegerField(default=1)

    class Meta:
        abstract = True


# =============================================================================
# Partners
# =============================================================================


class Partner(FulfillmentBaseModel):
    """
    Abstract partner (lab, phlebotomist, pharmacy).

    Only ACTIVE partners are eligible for new work. Suspending a partner
    does not touch work it already holds.
    """

    kind = None
    capacity_field = None

    name = models.CharField(max_length=255)
    status = models.CharField(
        max_length=20,
        choices=PartnerStatus.choices,
        default=PartnerStatus.PENDING_REVIEW,
        db_index=True,
    )
    city = models.CharField(max_length=100, blank=True, default="")
    serviceable_areas = models.JSONField(
        default=list,
        blank=True,
        help_text="Pincodes and/or area or city names this partner covers"
    )
    last_assigned_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When work was last allocated to this partner (tie-breaker)"
    )
    suspended_at = models.DateTimeField(null=True, blank=True)
    suspension_reason = models.TextField(blank=True, default="")

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.name} ({self.status})"

    @property
    def daily_capacity(self):
        if self.capacity_field is None:
            return None
        return getattr(self, self.capacity_field)

    def is_available(self) -> bool:
        return self.status == PartnerStatus.ACTIVE

    def serves(self, pincode: str = "", city: str = "") -> bool:
        """
        Exact pincode match; city match only when pincode-level data is absent.

        Pincode data is absent when the work item has no pincode or the
        partner lists no pincodes among its serviceable areas.
        """
        areas = [str(area).strip() for area in self.serviceable_areas or [] if str(area).strip()]
        pincodes = {area for area in areas if area.isdigit()}
        names = {area.casefold() for area in areas if not area.isdigit()}

        pincode = (pincode or "").strip()
        if pincode and pincodes:
            return pincode in pincodes

        city = (city or "").strip().casefold()
        if not city:
            return False
        return city == self.city.strip().casefold() or city in names

    def has_capacity(self, load: int) -> bool:
        capacity = self.daily_capacity
        if capacity is None:
            return True
        return load < capacity


class PartnerLab(Partner):
    """Diagnostic lab that receives and processes samples."""

    kind = PartnerKind.LAB
    capacity_field = "daily_case_limit"

    address = models.TextField(blank=True, default="")
    phone = models.CharField(max_length=20, blank=True, default="")
    daily_case_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Samples accepted per day; blank means unlimited"
    )


class Phlebotomist(Partner):
    """Field technician who collects samples at the patient's address."""

    kind = PartnerKind.PHLEBOTOMIST
    capacity_field = "max_daily_collections"

    phone = models.CharField(max_length=20, blank=True, default="")
    max_daily_collections = models.PositiveIntegerField(
        null=True,
        blank=True,
        default=10,
        help_text="Collections per day; blank means unlimited"
    )
    credential_expiry = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the phlebotomist's certification lapses"
    )


class Pharmacy(Partner):
    """Pharmacy that prepares prescriptions for delivery."""

    kind = PartnerKind.PHARMACY
    capacity_field = "daily_order_limit"

    address = models.TextField(blank=True, default="")
    phone = models.CharField(max_length=20, blank=True, default="")
    daily_order_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Open orders the pharmacy will hold; blank means unlimited"
    )

    class Meta:
        verbose_name_plural = "pharmacies"


PARTNER_MODELS = {str(model.kind): model for model in (PartnerLab, Phlebotomist, Pharmacy)}


# =============================================================================
# Consultations and prescriptions
# =============================================================================


class Consultation(VersionedModel):
    """A patient's request for care, reviewed by a doctor."""

    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="consultations",
    )
    vertical = models.CharField(max_length=30, choices=Vertical.choices)
    status = models.CharField(
        max_length=30,
        choices=ConsultationStatus.choices,
        default=ConsultationStatus.PENDING_ASSESSMENT,
        db_index=True,
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="claimed_consultations",
        help_text="Set when a doctor claims the case"
    )
    rejection_reason = models.TextField(blank=True, default="")
    last_patient_reply = models.TextField(blank=True, default="")

    ai_reviewed_at = models.DateTimeField(null=True, blank=True)
    claimed_at = models.DateTimeField(null=True, blank=True)
    info_requested_at = models.DateTimeField(null=True, blank=True)
    patient_replied_at = models.DateTimeField(null=True, blank=True)
    decided_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Consultation {self.pk} ({self.status})"


class Prescription(FulfillmentBaseModel):
    """Medications issued on an approved consultation."""

    consultation = models.ForeignKey(
        Consultation,
        on_delete=models.CASCADE,
        related_name="prescriptions",
    )
    pdf_url = models.CharField(max_length=500, blank=True, default="")
    medications = models.JSONField(
        default=list,
        blank=True,
        help_text="Ordered list of {name, dosage, quantity}"
    )
    delivery_address = models.TextField(blank=True, default="")
    delivery_city = models.CharField(max_length=100, blank=True, default="")
    delivery_pincode = models.CharField(max_length=10, blank=True, default="")
    valid_until = models.DateField(null=True, blank=True)

    def __str__(self):
        return f"Prescription {self.pk}"

    @property
    def patient(self):
        return self.consultation.patient


# =============================================================================
# Lab orders
# =============================================================================


class LabOrder(VersionedModel):
    """A blood-work order from booking through collection to doctor review."""

    consultation = models.ForeignKey(
        Consultation,
        on_delete=models.CASCADE,
        related_name="lab_orders",
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    test_panel = models.JSONField(default=list, blank=True, help_text="Test codes")
    panel_name = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(
        max_length=30,
        choices=LabOrderStatus.choices,
        default=LabOrderStatus.ORDERED,
        db_index=True,
    )

    booked_date = models.DateField(null=True, blank=True)
    booked_time_slot = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text='Collection window, e.g. "7:00-8:00"'
    )

    phlebotomist = models.ForeignKey(
        Phlebotomist,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="lab_orders",
    )
    lab = models.ForeignKey(
        PartnerLab,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="lab_orders",
    )

    collection_address = models.TextField(blank=True, default="")
    collection_area = models.CharField(max_length=100, blank=True, default="")
    collection_city = models.CharField(max_length=100, blank=True, default="")
    collection_pincode = models.CharField(max_length=10, blank=True, default="")
    contact_phone = models.CharField(max_length=20, blank=True, default="")

    result_file_url = models.CharField(max_length=500, blank=True, default="")
    critical_values = models.JSONField(default=list, blank=True)
    tube_count = models.PositiveSmallIntegerField(null=True, blank=True)
    collection_failed_reason = models.TextField(blank=True, default="")
    cancellation_reason = models.TextField(blank=True, default="")
    parked_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set while no partner could be allocated"
    )

    ordered_at = models.DateTimeField(default=timezone.now)
    slot_booked_at = models.DateTimeField(null=True, blank=True)
    phlebotomist_assigned_at = models.DateTimeField(null=True, blank=True)
    en_route_at = models.DateTimeField(null=True, blank=True)
    sample_collected_at = models.DateTimeField(null=True, blank=True)
    collection_failed_at = models.DateTimeField(null=True, blank=True)
    sample_in_transit_at = models.DateTimeField(null=True, blank=True)
    sample_received_at = models.DateTimeField(null=True, blank=True)
    processing_started_at = models.DateTimeField(null=True, blank=True)
    results_uploaded_at = models.DateTimeField(null=True, blank=True)
    doctor_reviewed_at = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-ordered_at"]
        indexes = [
            models.Index(fields=["phlebotomist", "booked_date"], name="ful_lab_phleb_date_idx"),
            models.Index(fields=["status", "ordered_at"], name="ful_lab_status_ordered_idx"),
        ]

    def __str__(self):
        return f"LabOrder {self.pk} ({self.status})"

    @property
    def patient(self):
        return self.consultation.patient

    @property
    def pincode(self):
        return self.collection_pincode

    @property
    def city(self):
        return self.collection_city


# =============================================================================
# Pharmacy orders and auto-refill
# =============================================================================


class PharmacyOrder(VersionedModel):
    """A prescription routed to a pharmacy and delivered to the patient."""

    prescription = models.ForeignKey(
        Prescription,
        on_delete=models.CASCADE,
        related_name="pharmacy_orders",
    )
    pharmacy = models.ForeignKey(
        Pharmacy,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    status = models.CharField(
        max_length=30,
        choices=PharmacyOrderStatus.choices,
        default=PharmacyOrderStatus.PRESCRIPTION_CREATED,
        db_index=True,
    )
    medications = models.JSONField(default=list, blank=True)
    delivery_address = models.TextField(blank=True, default="")
    delivery_city = models.CharField(max_length=100, blank=True, default="")
    delivery_pincode = models.CharField(max_length=10, blank=True, default="")

    delivery_person_name = models.CharField(max_length=255, blank=True, default="")
    delivery_person_phone = models.CharField(max_length=20, blank=True, default="")
    issue_reason = models.TextField(blank=True, default="")
    delivery_failed_reason = models.TextField(blank=True, default="")
    cancellation_reason = models.TextField(blank=True, default="")

    refill_config = models.ForeignKey(
        "AutoRefillConfig",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    refill_due_date = models.DateField(
        null=True,
        blank=True,
        help_text="Due date this refill order was created for"
    )
    parked_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set while no partner could be allocated"
    )

    ordered_at = models.DateTimeField(default=timezone.now)
    assigned_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    preparing_at = models.DateTimeField(null=True, blank=True)
    ready_for_pickup_at = models.DateTimeField(null=True, blank=True)
    pickup_arranged_at = models.DateTimeField(null=True, blank=True)
    dispatched_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    issue_reported_at = models.DateTimeField(null=True, blank=True)
    delivery_failed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    returned_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-ordered_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["refill_config", "refill_due_date"],
                name="fulfillment_one_order_per_refill_date",
            ),
        ]
        indexes = [
            models.Index(fields=["pharmacy", "status"], name="ful_pharm_order_status_idx"),
        ]

    def __str__(self):
        return f"PharmacyOrder {self.pk} ({self.status})"

    @property
    def patient(self):
        return self.prescription.consultation.patient

    @property
    def pincode(self):
        return self.delivery_pincode

    @property
    def city(self):
        return self.delivery_city


class AutoRefillConfig(VersionedModel):
    """
    Recurring pharmacy order for a prescription.

    next_refill_date only moves forward. Cancellation is terminal.
    """

    prescription = models.ForeignKey(
        Prescription,
        on_delete=models.CASCADE,
        related_name="refill_configs",
    )
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="refill_configs",
    )
    interval_days = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    next_refill_date = models.DateField(db_index=True)
    is_active = models.BooleanField(default=True)
    last_fired_for = models.DateField(
        null=True,
        blank=True,
        help_text="Due date of the most recent refill order"
    )
    last_pharmacy_order = models.ForeignKey(
        PharmacyOrder,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    total_refills_created = models.PositiveIntegerField(default=0)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Refill every {self.interval_days}d, next {self.next_refill_date}"


# =============================================================================
# Audit and idempotency
# =============================================================================


class TransitionRecord(models.Model):
    """
    Audit log of every applied state change.

    effective_at is the business time of the command; recorded_at is when
    the row was written.
    """

    entity_type = models.CharField(max_length=30, choices=EntityType.choices)
    entity_id = models.UUIDField(db_index=True)
    event = models.CharField(max_length=50)
    from_status = models.CharField(max_length=30)
    to_status = models.CharField(max_length=30)
    actor_role = models.CharField(max_length=20)
    actor_id = models.CharField(max_length=64, blank=True, default="")
    version_after = models.PositiveIntegerField()
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Payload, assigned partner, validator warnings"
    )
    effective_at = models.DateTimeField(default=timezone.now, db_index=True)
    recorded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["effective_at", "id"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="ful_transition_entity_idx"),
        ]

    def __str__(self):
        return f"{self.entity_type} {self.entity_id}: {self.from_status} -> {self.to_status}"


class IdempotencyKey(models.Model):
    """
    Prevents duplicate command execution from client retries.

    State machine: pending -> processing -> succeeded/failed
    """

    class State(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        SUCCEEDED = "succeeded", "Succeeded"
        FAILED = "failed", "Failed"

    scope = models.CharField(max_length=100)
    key = models.CharField(max_length=255)
    state = models.CharField(
        max_length=20,
        choices=State.choices,
        default=State.PENDING,
    )
    locked_at = models.DateTimeField(null=True, blank=True)
    error_code = models.CharField(max_length=100, blank=True, default="")
    error_message = models.TextField(blank=True, default="")
    response_snapshot = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["scope", "key"], name="fulfillment_unique_idempotency_key"),
        ]

    def __str__(self):
        return f"{self.scope}:{self.key} ({self.state})"
