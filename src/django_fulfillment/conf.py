"""Configuration helpers for django-fulfillment."""

from functools import lru_cache
from importlib import import_module

from django.conf import settings

from .exceptions import ConfigurationError


DEFAULTS = {
    "EVENT_DISPATCHER": "django_fulfillment.events.LoggingDispatcher",
    "GLOBAL_VALIDATORS": [],
    "SLOT_TIMEZONE": "UTC",
    "LAB_ORDER_EXPIRY_DAYS": 14,
    "AUTO_ASSIGN_ON_BOOKING": True,
    "IDEMPOTENCY_LOCK_SECONDS": 300,
}


def get_setting(name: str, default=None):
    """Get a setting with FULFILLMENT_ prefix, falling back to package defaults."""
    if default is None:
        default = DEFAULTS.get(name)
    return getattr(settings, f"FULFILLMENT_{name}", default)


def _import_dotted(dotted_path: str):
    try:
        module_path, attr_name = dotted_path.rsplit(".", 1)
    except ValueError:
        raise ConfigurationError(dotted_path, "Invalid dotted path format")

    try:
        module = import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(dotted_path, f"Cannot import module: {e}")

    try:
        return getattr(module, attr_name)
    except AttributeError:
        raise ConfigurationError(dotted_path, f"'{attr_name}' not found in module")


@lru_cache(maxsize=128)
def load_validator(dotted_path: str):
    """
    Import and instantiate a transition validator from dotted path.

    Raises ConfigurationError for bad imports or non-subclass validators.
    """
    from .validators import BaseTransitionValidator

    validator_class = _import_dotted(dotted_path)
    if not isinstance(validator_class, type) or not issubclass(validator_class, BaseTransitionValidator):
        raise ConfigurationError(
            dotted_path,
            "must be a subclass of BaseTransitionValidator"
        )
    return validator_class()


def get_global_validators() -> list:
    """Validators from FULFILLMENT_GLOBAL_VALIDATORS, applied to every machine."""
    return [load_validator(path) for path in get_setting("GLOBAL_VALIDATORS") or []]


@lru_cache(maxsize=16)
def _load_dispatcher(dotted_path: str):
    dispatcher = _import_dotted(dotted_path)
    if isinstance(dispatcher, type):
        dispatcher = dispatcher()
    if not callable(getattr(dispatcher, "dispatch", None)):
        raise ConfigurationError(dotted_path, "dispatcher must define dispatch()")
    return dispatcher


def get_dispatcher():
    """Return the configured notification dispatcher instance."""
    return _load_dispatcher(get_setting("EVENT_DISPATCHER"))


def clear_caches():
    """Clear the validator and dispatcher loading caches. Useful for testing."""
    load_validator.cache_clear()
    _load_dispatcher.cache_clear()
