"""Test validators for django-fulfillment tests."""

from django_fulfillment.validators import BaseTransitionValidator


class BlockingValidator(BaseTransitionValidator):
    """Validator that always blocks."""

    def validate(self, entity, from_status, to_status, context):
        return ["Blocked by test validator"], []


class WarningValidator(BaseTransitionValidator):
    """Validator that always warns."""

    def validate(self, entity, from_status, to_status, context):
        return [], ["Warning from test validator"]


class PassingValidator(BaseTransitionValidator):
    """Validator that always passes."""

    def validate(self, entity, from_status, to_status, context):
        return [], []


class NotAValidator:
    """Not a validator - for testing error handling."""
    pass
