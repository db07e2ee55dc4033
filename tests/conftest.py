"""Shared fixtures for django-fulfillment tests."""

from datetime import date

import pytest

from django_fulfillment.choices import ConsultationStatus, PartnerStatus, Role, Vertical
from django_fulfillment.commands import Actor
from django_fulfillment.conf import clear_caches
from django_fulfillment.models import Consultation, PartnerLab, Pharmacy, Phlebotomist
from django_fulfillment.services import create_lab_order, create_prescription
from tests.testapp.dispatchers import RecordingDispatcher


@pytest.fixture(autouse=True)
def reset_fulfillment_state():
    """Fresh loader caches and an empty notification outbox for every test."""
    clear_caches()
    RecordingDispatcher.reset()
    yield
    clear_caches()
    RecordingDispatcher.reset()


@pytest.fixture
def patient(db, django_user_model):
    return django_user_model.objects.create_user(username="patient", password="test", first_name="Priya")


@pytest.fixture
def other_patient(db, django_user_model):
    return django_user_model.objects.create_user(username="other_patient", password="test", first_name="Kiran")


@pytest.fixture
def doctor(db, django_user_model):
    return django_user_model.objects.create_user(username="doctor", password="test")


@pytest.fixture
def other_doctor(db, django_user_model):
    return django_user_model.objects.create_user(username="other_doctor", password="test")


@pytest.fixture
def admin_user(db, django_user_model):
    return django_user_model.objects.create_user(username="ops_admin", password="test")


@pytest.fixture
def patient_actor(patient):
    return Actor(role=Role.PATIENT, id=patient.pk)


@pytest.fixture
def doctor_actor(doctor):
    return Actor(role=Role.DOCTOR, id=doctor.pk)


@pytest.fixture
def admin_actor(admin_user):
    return Actor(role=Role.ADMIN, id=admin_user.pk)


@pytest.fixture
def phlebotomist(db):
    return Phlebotomist.objects.create(
        name="Asha",
        status=PartnerStatus.ACTIVE,
        city="Mumbai",
        serviceable_areas=["400058", "400053"],
    )


@pytest.fixture
def lab(db):
    return PartnerLab.objects.create(
        name="Metro Diagnostics",
        status=PartnerStatus.ACTIVE,
        city="Mumbai",
        serviceable_areas=["400058"],
    )


@pytest.fixture
def pharmacy(db):
    return Pharmacy.objects.create(
        name="Andheri Pharmacy",
        status=PartnerStatus.ACTIVE,
        city="Mumbai",
        serviceable_areas=["400058"],
    )


@pytest.fixture
def consultation(patient, doctor):
    """A consultation the doctor has claimed and is reviewing."""
    return Consultation.objects.create(
        patient=patient,
        vertical=Vertical.HAIR_LOSS,
        status=ConsultationStatus.DOCTOR_REVIEWING,
        doctor=doctor,
    )


@pytest.fixture
def lab_order(consultation):
    return create_lab_order(
        consultation,
        ["cbc", "vitamin_d"],
        panel_name="Hair health panel",
        collection_address="12 Link Road",
        collection_area="Andheri West",
        collection_city="Mumbai",
        collection_pincode="400058",
        contact_phone="9800000000",
    )


@pytest.fixture
def prescription(consultation):
    return create_prescription(
        consultation,
        [{"name": "Minoxidil 5%", "dosage": "1ml twice daily", "quantity": 1}],
        delivery_address="12 Link Road",
        delivery_city="Mumbai",
        delivery_pincode="400058",
        valid_until=date(2026, 12, 31),
    )
