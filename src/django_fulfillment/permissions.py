"""Role and ownership checks for commands."""

from .choices import EntityType, Role
from .exceptions import RoleNotPermitted


def _same(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def patient_id_for(entity_type: str, entity):
    if entity_type == EntityType.CONSULTATION:
        return entity.patient_id
    if entity_type == EntityType.LAB_ORDER:
        return entity.consultation.patient_id
    return entity.prescription.consultation.patient_id


def _doctor_ids(entity_type: str, entity) -> set:
    if entity_type == EntityType.CONSULTATION:
        ids = {entity.doctor_id}
    elif entity_type == EntityType.LAB_ORDER:
        ids = {entity.doctor_id, entity.consultation.doctor_id}
    else:
        ids = {entity.prescription.consultation.doctor_id}
    return {str(i) for i in ids if i is not None}


def check_actor(machine, entity, event: str, actor) -> None:
    """
    Raise RoleNotPermitted unless the actor may fire event on entity.

    The role must be listed on the event's edge. Beyond the role:
    - patients act only on their own items
    - doctors act only on cases they claimed (an unclaimed case is open)
    - partner staff act only on work assigned to their partner
    """
    role = str(actor.role)
    roles = machine.roles_for(event)
    if not roles:
        # Unknown event; the transition validator reports it.
        return
    if role not in roles:
        raise RoleNotPermitted(role, event)

    entity_type = machine.entity_type

    if role == Role.PATIENT:
        if not _same(patient_id_for(entity_type, entity), actor.id):
            raise RoleNotPermitted(role, event, "Patients may only act on their own orders")

    elif role == Role.DOCTOR:
        doctors = _doctor_ids(entity_type, entity)
        if doctors and str(actor.id) not in doctors:
            raise RoleNotPermitted(role, event, "Case is assigned to another doctor")

    elif role == Role.PHLEBOTOMIST:
        if not _same(entity.phlebotomist_id, actor.partner_id):
            raise RoleNotPermitted(role, event, "Lab order is not assigned to this phlebotomist")

    elif role == Role.LAB_STAFF:
        if not _same(entity.lab_id, actor.partner_id):
            raise RoleNotPermitted(role, event, "Sample is not assigned to this lab")

    elif role == Role.PHARMACY_STAFF:
        if not _same(entity.pharmacy_id, actor.partner_id):
            raise RoleNotPermitted(role, event, "Order is not assigned to this pharmacy")
