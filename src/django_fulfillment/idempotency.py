"""Idempotent execution for client-retried commands."""
import functools
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from .conf import get_setting
from .exceptions import CommandInProgress


def _serialize_result(result):
    """Serialize result for JSON storage."""
    if result is None:
        return None
    if hasattr(result, "to_snapshot"):
        return result.to_snapshot()
    return result


def _lock_expired(idem, now):
    """True when an in-flight key has been held past FULFILLMENT_IDEMPOTENCY_LOCK_SECONDS."""
    if idem.locked_at is None:
        return True
    return now - idem.locked_at >= timedelta(seconds=get_setting("IDEMPOTENCY_LOCK_SECONDS"))


def idempotent(scope, key_from=None, replay=None):
    """
    Decorator for idempotent operations.

    Ensures the decorated function executes at most once for a given key.
    Retries return the recorded result. Failed operations can be retried.
    A retry that arrives while the first attempt still holds the key raises
    CommandInProgress; the key is taken over once its lock has expired.

    Args:
        scope: The scope for the idempotency key (e.g., 'fulfillment_command')
               REQUIRED - raises TypeError if not provided
        key_from: Function to derive key from args
                  (e.g., lambda command, now=None: command.idempotency_key)
                  If not provided, uses the first positional arg or 'key' kwarg
        replay: Function turning the stored snapshot back into a result.
                Results with a to_snapshot() method are stored through it.

    Usage:
        @idempotent(scope='refill_cancel', key_from=lambda config, actor: str(config.pk))
        def cancel(config, actor):
            ...
    """
    if scope is None:
        raise TypeError("idempotent() requires 'scope' parameter")

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            from .models import IdempotencyKey

            if key_from is not None:
                key = key_from(*args, **kwargs)
            elif args:
                key = str(args[0])
            elif "key" in kwargs:
                key = str(kwargs["key"])
            else:
                raise ValueError("Cannot derive idempotency key: no key_from provided and no arguments")

            # Phase 1: Acquire/check idempotency key
            with transaction.atomic():
                idem, created = IdempotencyKey.objects.select_for_update().get_or_create(
                    scope=scope,
                    key=key,
                    defaults={
                        "state": IdempotencyKey.State.PROCESSING,
                        "locked_at": timezone.now(),
                    },
                )

                if not created:
                    if idem.state == IdempotencyKey.State.SUCCEEDED:
                        snapshot = idem.response_snapshot
                        return replay(snapshot) if replay and snapshot is not None else snapshot

                    now = timezone.now()
                    if idem.state == IdempotencyKey.State.PROCESSING and not _lock_expired(idem, now):
                        raise CommandInProgress(scope, key, idem.locked_at)

                    # Failed, pending or expired in-flight: take over and run again
                    idem.state = IdempotencyKey.State.PROCESSING
                    idem.locked_at = now
                    idem.error_code = ""
                    idem.error_message = ""
                    idem.save()

            # Phase 2: Execute function in its own transaction
            try:
                with transaction.atomic():
                    result = func(*args, **kwargs)

                # Phase 3: Mark success (separate transaction)
                with transaction.atomic():
                    idem.refresh_from_db()
                    idem.state = IdempotencyKey.State.SUCCEEDED
                    idem.response_snapshot = _serialize_result(result)
                    idem.save()

                return result

            except Exception as e:
                # Phase 4: Mark failure (separate transaction so it persists)
                with transaction.atomic():
                    idem.refresh_from_db()
                    idem.state = IdempotencyKey.State.FAILED
                    idem.error_code = type(e).__name__
                    idem.error_message = str(e)
                    idem.save()
                raise

        return wrapper
    return decorator
