"""Tests for configuration, validator and dispatcher loading."""

import pytest

from django_fulfillment.conf import (
    DEFAULTS,
    get_dispatcher,
    get_global_validators,
    get_setting,
    load_validator,
)
from django_fulfillment.events import LoggingDispatcher
from django_fulfillment.exceptions import ConfigurationError
from django_fulfillment.validators import BaseTransitionValidator
from tests.testapp.dispatchers import RecordingDispatcher


class TestGetSetting:

    def test_defaults_used_when_unset(self):
        assert get_setting("LAB_ORDER_EXPIRY_DAYS") == DEFAULTS["LAB_ORDER_EXPIRY_DAYS"] == 14
        assert get_setting("SLOT_TIMEZONE") == "UTC"
        assert get_setting("AUTO_ASSIGN_ON_BOOKING") is True

    def test_prefixed_setting_overrides_default(self, settings):
        settings.FULFILLMENT_LAB_ORDER_EXPIRY_DAYS = 7

        assert get_setting("LAB_ORDER_EXPIRY_DAYS") == 7

    def test_explicit_default_for_unknown_name(self):
        assert get_setting("NOT_A_SETTING", "fallback") == "fallback"


class TestLoadValidator:
    """Tests for load_validator function."""

    def test_load_valid_validator(self):
        validator = load_validator("tests.testapp.validators.PassingValidator")

        assert isinstance(validator, BaseTransitionValidator)

    def test_validator_instances_are_cached(self):
        first = load_validator("tests.testapp.validators.PassingValidator")
        second = load_validator("tests.testapp.validators.PassingValidator")

        assert first is second

    def test_bad_dotted_path_format(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_validator("invalid")

        assert "Invalid dotted path format" in str(exc_info.value)

    def test_module_not_found(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_validator("nonexistent.module.Validator")

        assert "Cannot import module" in str(exc_info.value)

    def test_class_not_found(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_validator("tests.testapp.validators.NonexistentValidator")

        assert "not found in module" in str(exc_info.value)

    def test_not_a_validator_subclass(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_validator("tests.testapp.validators.NotAValidator")

        assert "BaseTransitionValidator" in str(exc_info.value)

    def test_global_validators_read_from_settings(self, settings):
        settings.FULFILLMENT_GLOBAL_VALIDATORS = [
            "tests.testapp.validators.PassingValidator",
            "tests.testapp.validators.WarningValidator",
        ]

        validators = get_global_validators()

        assert [type(v).__name__ for v in validators] == ["PassingValidator", "WarningValidator"]


class TestGetDispatcher:

    def test_configured_dispatcher(self):
        assert isinstance(get_dispatcher(), RecordingDispatcher)

    def test_default_dispatcher_logs(self, settings):
        del settings.FULFILLMENT_EVENT_DISPATCHER

        assert isinstance(get_dispatcher(), LoggingDispatcher)

    def test_dispatcher_without_dispatch_method(self, settings):
        settings.FULFILLMENT_EVENT_DISPATCHER = "tests.testapp.dispatchers.NotADispatcher"

        with pytest.raises(ConfigurationError) as exc_info:
            get_dispatcher()

        assert "dispatch()" in str(exc_info.value)
