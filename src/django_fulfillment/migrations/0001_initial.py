# Generated manually for standalone django-fulfillment package

import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


PARTNER_STATUS_CHOICES = [
    ("PENDING_REVIEW", "Pending review"),
    ("ACTIVE", "Active"),
    ("SUSPENDED", "Suspended"),
    ("INACTIVE", "Inactive"),
]

CONSULTATION_STATUS_CHOICES = [
    ("PENDING_ASSESSMENT", "Pending assessment"),
    ("AI_REVIEWED", "AI reviewed"),
    ("DOCTOR_REVIEWING", "Doctor reviewing"),
    ("NEEDS_INFO", "Needs info"),
    ("AWAITING_LABS", "Awaiting labs"),
    ("VIDEO_SCHEDULED", "Video scheduled"),
    ("VIDEO_COMPLETED", "Video completed"),
    ("APPROVED", "Approved"),
    ("REJECTED", "Rejected"),
]

LAB_ORDER_STATUS_CHOICES = [
    ("ORDERED", "Ordered"),
    ("SLOT_BOOKED", "Slot booked"),
    ("PHLEBOTOMIST_ASSIGNED", "Phlebotomist assigned"),
    ("PHLEBOTOMIST_EN_ROUTE", "Phlebotomist en route"),
    ("SAMPLE_COLLECTED", "Sample collected"),
    ("COLLECTION_FAILED", "Collection failed"),
    ("SAMPLE_IN_TRANSIT", "Sample in transit"),
    ("SAMPLE_RECEIVED", "Sample received"),
    ("PROCESSING", "Processing"),
    ("RESULTS_UPLOADED", "Results uploaded"),
    ("DOCTOR_REVIEWED", "Doctor reviewed"),
    ("CLOSED", "Closed"),
    ("CANCELLED", "Cancelled"),
    ("EXPIRED", "Expired"),
]

PHARMACY_ORDER_STATUS_CHOICES = [
    ("PRESCRIPTION_CREATED", "Prescription created"),
    ("SENT_TO_PHARMACY", "Sent to pharmacy"),
    ("ACCEPTED", "Accepted"),
    ("PHARMACY_PREPARING", "Preparing"),
    ("PHARMACY_READY", "Ready for pickup"),
    ("PICKUP_ARRANGED", "Pickup arranged"),
    ("OUT_FOR_DELIVERY", "Out for delivery"),
    ("DELIVERED", "Delivered"),
    ("PHARMACY_ISSUE", "Pharmacy issue"),
    ("DELIVERY_FAILED", "Delivery failed"),
    ("CANCELLED", "Cancelled"),
    ("RETURNED", "Returned"),
]

VERTICAL_CHOICES = [
    ("HAIR_LOSS", "Hair loss"),
    ("SEXUAL_HEALTH", "Sexual health"),
    ("PCOS", "PCOS"),
    ("WEIGHT_MANAGEMENT", "Weight management"),
]

ENTITY_TYPE_CHOICES = [
    ("consultation", "Consultation"),
    ("lab_order", "Lab order"),
    ("pharmacy_order", "Pharmacy order"),
]


def _base_fields():
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


def _partner_fields():
    return _base_fields() + [
        ("name", models.CharField(max_length=255)),
        ("status", models.CharField(choices=PARTNER_STATUS_CHOICES, db_index=True, default="PENDING_REVIEW", max_length=20)),
        ("city", models.CharField(blank=True, default="", max_length=100)),
        ("serviceable_areas", models.JSONField(blank=True, default=list, help_text="Pincodes and/or area or city names this partner covers")),
        ("last_assigned_at", models.DateTimeField(blank=True, help_text="When work was last allocated to this partner (tie-breaker)", null=True)),
        ("suspended_at", models.DateTimeField(blank=True, null=True)),
        ("suspension_reason", models.TextField(blank=True, default="")),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PartnerLab",
            fields=_partner_fields() + [
                ("address", models.TextField(blank=True, default="")),
                ("phone", models.CharField(blank=True, default="", max_length=20)),
                ("daily_case_limit", models.PositiveIntegerField(blank=True, help_text="Samples accepted per day; blank means unlimited", null=True)),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Phlebotomist",
            fields=_partner_fields() + [
                ("phone", models.CharField(blank=True, default="", max_length=20)),
                ("max_daily_collections", models.PositiveIntegerField(blank=True, default=10, help_text="Collections per day; blank means unlimited", null=True)),
                ("credential_expiry", models.DateTimeField(blank=True, help_text="When the phlebotomist's certification lapses", null=True)),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Pharmacy",
            fields=_partner_fields() + [
                ("address", models.TextField(blank=True, default="")),
                ("phone", models.CharField(blank=True, default="", max_length=20)),
                ("daily_order_limit", models.PositiveIntegerField(blank=True, help_text="Open orders the pharmacy will hold; blank means unlimited", null=True)),
            ],
            options={
                "verbose_name_plural": "pharmacies",
            },
        ),
        migrations.CreateModel(
            name="Consultation",
            fields=_base_fields() + [
                ("version", models.PositiveIntegerField(default=1)),
                ("vertical", models.CharField(choices=VERTICAL_CHOICES, max_length=30)),
                ("status", models.CharField(choices=CONSULTATION_STATUS_CHOICES, db_index=True, default="PENDING_ASSESSMENT", max_length=30)),
                ("rejection_reason", models.TextField(blank=True, default="")),
                ("last_patient_reply", models.TextField(blank=True, default="")),
                ("ai_reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("claimed_at", models.DateTimeField(blank=True, null=True)),
                ("info_requested_at", models.DateTimeField(blank=True, null=True)),
                ("patient_replied_at", models.DateTimeField(blank=True, null=True)),
                ("decided_at", models.DateTimeField(blank=True, null=True)),
                (
                    "doctor",
                    models.ForeignKey(
                        blank=True,
                        help_text="Set when a doctor claims the case",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="claimed_consultations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "patient",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="consultations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Prescription",
            fields=_base_fields() + [
                ("pdf_url", models.CharField(blank=True, default="", max_length=500)),
                ("medications", models.JSONField(blank=True, default=list, help_text="Ordered list of {name, dosage, quantity}")),
                ("delivery_address", models.TextField(blank=True, default="")),
                ("delivery_city", models.CharField(blank=True, default="", max_length=100)),
                ("delivery_pincode", models.CharField(blank=True, default="", max_length=10)),
                ("valid_until", models.DateField(blank=True, null=True)),
                (
                    "consultation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="prescriptions",
                        to="django_fulfillment.consultation",
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="LabOrder",
            fields=_base_fields() + [
                ("version", models.PositiveIntegerField(default=1)),
                ("test_panel", models.JSONField(blank=True, default=list, help_text="Test codes")),
                ("panel_name", models.CharField(blank=True, default="", max_length=255)),
                ("status", models.CharField(choices=LAB_ORDER_STATUS_CHOICES, db_index=True, default="ORDERED", max_length=30)),
                ("booked_date", models.DateField(blank=True, null=True)),
                ("booked_time_slot", models.CharField(blank=True, default="", help_text='Collection window, e.g. "7:00-8:00"', max_length=50)),
                ("collection_address", models.TextField(blank=True, default="")),
                ("collection_area", models.CharField(blank=True, default="", max_length=100)),
                ("collection_city", models.CharField(blank=True, default="", max_length=100)),
                ("collection_pincode", models.CharField(blank=True, default="", max_length=10)),
                ("contact_phone", models.CharField(blank=True, default="", max_length=20)),
                ("result_file_url", models.CharField(blank=True, default="", max_length=500)),
                ("critical_values", models.JSONField(blank=True, default=list)),
                ("tube_count", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("collection_failed_reason", models.TextField(blank=True, default="")),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("parked_at", models.DateTimeField(blank=True, help_text="Set while no partner could be allocated", null=True)),
                ("ordered_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("slot_booked_at", models.DateTimeField(blank=True, null=True)),
                ("phlebotomist_assigned_at", models.DateTimeField(blank=True, null=True)),
                ("en_route_at", models.DateTimeField(blank=True, null=True)),
                ("sample_collected_at", models.DateTimeField(blank=True, null=True)),
                ("collection_failed_at", models.DateTimeField(blank=True, null=True)),
                ("sample_in_transit_at", models.DateTimeField(blank=True, null=True)),
                ("sample_received_at", models.DateTimeField(blank=True, null=True)),
                ("processing_started_at", models.DateTimeField(blank=True, null=True)),
                ("results_uploaded_at", models.DateTimeField(blank=True, null=True)),
                ("doctor_reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("expired_at", models.DateTimeField(blank=True, null=True)),
                (
                    "consultation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lab_orders",
                        to="django_fulfillment.consultation",
                    ),
                ),
                (
                    "doctor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "lab",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="lab_orders",
                        to="django_fulfillment.partnerlab",
                    ),
                ),
                (
                    "phlebotomist",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="lab_orders",
                        to="django_fulfillment.phlebotomist",
                    ),
                ),
            ],
            options={
                "ordering": ["-ordered_at"],
                "indexes": [
                    models.Index(fields=["phlebotomist", "booked_date"], name="ful_lab_phleb_date_idx"),
                    models.Index(fields=["status", "ordered_at"], name="ful_lab_status_ordered_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PharmacyOrder",
            fields=_base_fields() + [
                ("version", models.PositiveIntegerField(default=1)),
                ("status", models.CharField(choices=PHARMACY_ORDER_STATUS_CHOICES, db_index=True, default="PRESCRIPTION_CREATED", max_length=30)),
                ("medications", models.JSONField(blank=True, default=list)),
                ("delivery_address", models.TextField(blank=True, default="")),
                ("delivery_city", models.CharField(blank=True, default="", max_length=100)),
                ("delivery_pincode", models.CharField(blank=True, default="", max_length=10)),
                ("delivery_person_name", models.CharField(blank=True, default="", max_length=255)),
                ("delivery_person_phone", models.CharField(blank=True, default="", max_length=20)),
                ("issue_reason", models.TextField(blank=True, default="")),
                ("delivery_failed_reason", models.TextField(blank=True, default="")),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("refill_due_date", models.DateField(blank=True, help_text="Due date this refill order was created for", null=True)),
                ("parked_at", models.DateTimeField(blank=True, help_text="Set while no partner could be allocated", null=True)),
                ("ordered_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("assigned_at", models.DateTimeField(blank=True, null=True)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("preparing_at", models.DateTimeField(blank=True, null=True)),
                ("ready_for_pickup_at", models.DateTimeField(blank=True, null=True)),
                ("pickup_arranged_at", models.DateTimeField(blank=True, null=True)),
                ("dispatched_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("issue_reported_at", models.DateTimeField(blank=True, null=True)),
                ("delivery_failed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("returned_at", models.DateTimeField(blank=True, null=True)),
                (
                    "pharmacy",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to="django_fulfillment.pharmacy",
                    ),
                ),
                (
                    "prescription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pharmacy_orders",
                        to="django_fulfillment.prescription",
                    ),
                ),
            ],
            options={
                "ordering": ["-ordered_at"],
                "indexes": [
                    models.Index(fields=["pharmacy", "status"], name="ful_pharm_order_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AutoRefillConfig",
            fields=_base_fields() + [
                ("version", models.PositiveIntegerField(default=1)),
                ("interval_days", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ("next_refill_date", models.DateField(db_index=True)),
                ("is_active", models.BooleanField(default=True)),
                ("last_fired_for", models.DateField(blank=True, help_text="Due date of the most recent refill order", null=True)),
                ("total_refills_created", models.PositiveIntegerField(default=0)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "last_pharmacy_order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="django_fulfillment.pharmacyorder",
                    ),
                ),
                (
                    "patient",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="refill_configs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "prescription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="refill_configs",
                        to="django_fulfillment.prescription",
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.AddField(
            model_name="pharmacyorder",
            name="refill_config",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="orders",
                to="django_fulfillment.autorefillconfig",
            ),
        ),
        migrations.AddConstraint(
            model_name="pharmacyorder",
            constraint=models.UniqueConstraint(
                fields=("refill_config", "refill_due_date"),
                name="fulfillment_one_order_per_refill_date",
            ),
        ),
        migrations.CreateModel(
            name="TransitionRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("entity_type", models.CharField(choices=ENTITY_TYPE_CHOICES, max_length=30)),
                ("entity_id", models.UUIDField(db_index=True)),
                ("event", models.CharField(max_length=50)),
                ("from_status", models.CharField(max_length=30)),
                ("to_status", models.CharField(max_length=30)),
                ("actor_role", models.CharField(max_length=20)),
                ("actor_id", models.CharField(blank=True, default="", max_length=64)),
                ("version_after", models.PositiveIntegerField()),
                ("metadata", models.JSONField(blank=True, default=dict, help_text="Payload, assigned partner, validator warnings")),
                ("effective_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("recorded_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["effective_at", "id"],
                "indexes": [
                    models.Index(fields=["entity_type", "entity_id"], name="ful_transition_entity_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scope", models.CharField(max_length=100)),
                ("key", models.CharField(max_length=255)),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("locked_at", models.DateTimeField(blank=True, null=True)),
                ("error_code", models.CharField(blank=True, default="", max_length=100)),
                ("error_message", models.TextField(blank=True, default="")),
                ("response_snapshot", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("scope", "key"), name="fulfillment_unique_idempotency_key"),
                ],
            },
        ),
    ]
