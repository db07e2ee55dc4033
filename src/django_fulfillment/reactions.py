"""
Cross-entity reaction table.

Maps (entity type, new status) to a follow-up command run by the SYSTEM
actor after the triggering transaction commits. Reactions only build
commands; the orchestrator schedules and executes them.
"""

from .choices import ConsultationStatus, EntityType, LabOrderStatus
from .commands import SYSTEM_ACTOR, Command
from .conf import get_setting


def _assign_after_booking(lab_order):
    if not get_setting("AUTO_ASSIGN_ON_BOOKING"):
        return None
    return Command(
        entity_type=EntityType.LAB_ORDER,
        entity_id=lab_order.pk,
        event="ASSIGN_PHLEBOTOMIST",
        actor=SYSTEM_ACTOR,
    )


def _results_ready(lab_order):
    consultation = lab_order.consultation
    if consultation.status != ConsultationStatus.AWAITING_LABS:
        return None
    return Command(
        entity_type=EntityType.CONSULTATION,
        entity_id=consultation.pk,
        event="LAB_RESULTS_READY",
        actor=SYSTEM_ACTOR,
    )


REACTIONS = {
    (EntityType.LAB_ORDER.value, LabOrderStatus.SLOT_BOOKED.value): [_assign_after_booking],
    (EntityType.LAB_ORDER.value, LabOrderStatus.RESULTS_UPLOADED.value): [_results_ready],
}


def follow_ups(entity_type: str, entity) -> list[Command]:
    """Commands triggered by entity having just entered its current status."""
    commands = []
    for reaction in REACTIONS.get((str(entity_type), str(entity.status)), []):
        command = reaction(entity)
        if command is not None:
            commands.append(command)
    return commands
