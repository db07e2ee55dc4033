"""Precondition validators for fulfillment transitions."""

from typing import Any

from .panels import requires_fasting
from .slots import normalize_slot_start


class BaseTransitionValidator:
    """
    Base class for transition precondition validators.

    A validator inspects the entity (may be None when validating a bare status),
    the transition being attempted, and the command context. It never writes.

    Example:

        class RequiresInsuranceValidator(BaseTransitionValidator):
            def validate(self, entity, from_status, to_status, context):
                if not context.get("payload", {}).get("insurance_id"):
                    return ["Insurance id required"], []
                return [], []

    Register global validators with FULFILLMENT_GLOBAL_VALIDATORS.
    """

    def validate(
        self,
        entity: Any,
        from_status: str,
        to_status: str,
        context: dict,
    ) -> tuple[list[str], list[str]]:
        """
        Validate a state transition.

        Returns:
            Tuple of (hard_blocks, soft_warnings)
            - hard_blocks: Transition cannot proceed (list of reasons)
            - soft_warnings: Transition allowed but with warnings (list)
        """
        return [], []


def _lookup(field: str, entity, context: dict, from_payload=True, from_entity=True):
    if from_payload:
        value = (context.get("payload") or {}).get(field)
        if value not in (None, ""):
            return value
    if from_entity and entity is not None:
        value = getattr(entity, field, None)
        if value not in (None, ""):
            return value
    return None


class RequiresField(BaseTransitionValidator):
    """Blocks unless a field is supplied in the payload or already set on the entity."""

    def __init__(self, field: str, label: str = None, from_payload=True, from_entity=True):
        self.field = field
        self.label = label or field.replace("_", " ")
        self.from_payload = from_payload
        self.from_entity = from_entity

    def validate(self, entity, from_status, to_status, context):
        value = _lookup(self.field, entity, context, self.from_payload, self.from_entity)
        if value is None:
            return [f"{self.label} is required"], []
        return [], []

    def __repr__(self):
        return f"RequiresField({self.field!r})"


class RequiresPositiveInt(RequiresField):
    """Blocks unless the field is an integer greater than zero."""

    def validate(self, entity, from_status, to_status, context):
        value = _lookup(self.field, entity, context, self.from_payload, self.from_entity)
        try:
            number = int(value)
        except (TypeError, ValueError):
            return [f"{self.label} must be a positive number"], []
        if number <= 0:
            return [f"{self.label} must be a positive number"], []
        return [], []


class RequiresLabResults(BaseTransitionValidator):
    """Consultation may leave AWAITING_LABS only once a lab order carries results."""

    def validate(self, entity, from_status, to_status, context):
        if not context.get("lab_results_present"):
            return ["No lab results uploaded for this consultation"], []
        return [], []


class FastingSlotWarning(BaseTransitionValidator):
    """Warns when a fasting panel is booked for a late-morning or later slot."""

    latest_start = "10:00"

    def validate(self, entity, from_status, to_status, context):
        slot = _lookup("booked_time_slot", entity, context)
        tests = getattr(entity, "test_panel", None) or []
        if not slot or not requires_fasting(tests):
            return [], []
        start = normalize_slot_start(slot)
        if start and start >= self.latest_start:
            return [], [
                f"Panel requires fasting; slot starting {start} is after {self.latest_start}"
            ]
        return [], []
