"""Status, role and entity enumerations shared across django-fulfillment."""

from django.db import models


class Vertical(models.TextChoices):
    HAIR_LOSS = "HAIR_LOSS", "Hair loss"
    SEXUAL_HEALTH = "SEXUAL_HEALTH", "Sexual health"
    PCOS = "PCOS", "PCOS"
    WEIGHT_MANAGEMENT = "WEIGHT_MANAGEMENT", "Weight management"


class EntityType(models.TextChoices):
    CONSULTATION = "consultation", "Consultation"
    LAB_ORDER = "lab_order", "Lab order"
    PHARMACY_ORDER = "pharmacy_order", "Pharmacy order"


class PartnerKind(models.TextChoices):
    LAB = "lab", "Diagnostic lab"
    PHLEBOTOMIST = "phlebotomist", "Phlebotomist"
    PHARMACY = "pharmacy", "Pharmacy"


class Role(models.TextChoices):
    PATIENT = "PATIENT", "Patient"
    DOCTOR = "DOCTOR", "Doctor"
    PHLEBOTOMIST = "PHLEBOTOMIST", "Phlebotomist"
    LAB_STAFF = "LAB_STAFF", "Lab staff"
    PHARMACY_STAFF = "PHARMACY_STAFF", "Pharmacy staff"
    ADMIN = "ADMIN", "Admin"
    SYSTEM = "SYSTEM", "System"


class ConsultationStatus(models.TextChoices):
    PENDING_ASSESSMENT = "PENDING_ASSESSMENT", "Pending assessment"
    AI_REVIEWED = "AI_REVIEWED", "AI reviewed"
    DOCTOR_REVIEWING = "DOCTOR_REVIEWING", "Doctor reviewing"
    NEEDS_INFO = "NEEDS_INFO", "Needs info"
    AWAITING_LABS = "AWAITING_LABS", "Awaiting labs"
    VIDEO_SCHEDULED = "VIDEO_SCHEDULED", "Video scheduled"
    VIDEO_COMPLETED = "VIDEO_COMPLETED", "Video completed"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"


class LabOrderStatus(models.TextChoices):
    ORDERED = "ORDERED", "Ordered"
    SLOT_BOOKED = "SLOT_BOOKED", "Slot booked"
    PHLEBOTOMIST_ASSIGNED = "PHLEBOTOMIST_ASSIGNED", "Phlebotomist assigned"
    PHLEBOTOMIST_EN_ROUTE = "PHLEBOTOMIST_EN_ROUTE", "Phlebotomist en route"
    SAMPLE_COLLECTED = "SAMPLE_COLLECTED", "Sample collected"
    COLLECTION_FAILED = "COLLECTION_FAILED", "Collection failed"
    SAMPLE_IN_TRANSIT = "SAMPLE_IN_TRANSIT", "Sample in transit"
    SAMPLE_RECEIVED = "SAMPLE_RECEIVED", "Sample received"
    PROCESSING = "PROCESSING", "Processing"
    RESULTS_UPLOADED = "RESULTS_UPLOADED", "Results uploaded"
    DOCTOR_REVIEWED = "DOCTOR_REVIEWED", "Doctor reviewed"
    CLOSED = "CLOSED", "Closed"
    CANCELLED = "CANCELLED", "Cancelled"
    EXPIRED = "EXPIRED", "Expired"


class PharmacyOrderStatus(models.TextChoices):
    PRESCRIPTION_CREATED = "PRESCRIPTION_CREATED", "Prescription created"
    SENT_TO_PHARMACY = "SENT_TO_PHARMACY", "Sent to pharmacy"
    ACCEPTED = "ACCEPTED", "Accepted"
    PHARMACY_PREPARING = "PHARMACY_PREPARING", "Preparing"
    PHARMACY_READY = "PHARMACY_READY", "Ready for pickup"
    PICKUP_ARRANGED = "PICKUP_ARRANGED", "Pickup arranged"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY", "Out for delivery"
    DELIVERED = "DELIVERED", "Delivered"
    PHARMACY_ISSUE = "PHARMACY_ISSUE", "Pharmacy issue"
    DELIVERY_FAILED = "DELIVERY_FAILED", "Delivery failed"
    CANCELLED = "CANCELLED", "Cancelled"
    RETURNED = "RETURNED", "Returned"


class PartnerStatus(models.TextChoices):
    PENDING_REVIEW = "PENDING_REVIEW", "Pending review"
    ACTIVE = "ACTIVE", "Active"
    SUSPENDED = "SUSPENDED", "Suspended"
    INACTIVE = "INACTIVE", "Inactive"
