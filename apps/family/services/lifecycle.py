"""
Pending-record lifecycle shared by invitations, connections, ownership
transfers and relationship cards.

Every record starts ``pending`` and moves exactly once into a terminal
status. Expiry is lazy: an overdue pending record is persisted as
``expired`` when it is next looked up, never by a background sweep.
Call :func:`expire_if_due` before opening the transaction that acts on a
record so the expiry survives a rollback of that action.
"""

import logging

from django.utils import timezone

from .exceptions import InvalidStateTransitionError

logger = logging.getLogger(__name__)

PENDING = 'pending'
EXPIRED = 'expired'


def expire_if_due(record, now=None) -> bool:
    """Persist ``expired`` on an overdue pending record. Returns True if it changed."""
    now = now or timezone.now()
    if record.status != PENDING or record.expires_at is None or record.expires_at > now:
        return False

    record.status = EXPIRED
    record.save(update_fields=['status', 'updated_at'])
    logger.info("%s %s expired", record._meta.verbose_name.capitalize(), record.pk)
    return True


def expire_overdue(records, now=None):
    """Apply :func:`expire_if_due` to every record and return them as a list."""
    now = now or timezone.now()
    records = list(records)
    for record in records:
        expire_if_due(record, now)
    return records


def ensure_pending(record, error_class=InvalidStateTransitionError):
    """Refuse any transition out of a terminal status."""
    if record.status != PENDING:
        raise error_class(
            f"{record._meta.verbose_name.capitalize()} is already {record.status}"
        )


def transition(record, status, error_class=InvalidStateTransitionError, **changes):
    """
    Move a pending record into ``status`` and save it.

    Extra keyword arguments are assigned as field values alongside the
    status change.
    """
    ensure_pending(record, error_class)

    record.status = status
    for field, value in changes.items():
        setattr(record, field, value)
    record.save(update_fields=['status', 'updated_at', *changes])

    logger.info(
        "%s %s -> %s",
        record._meta.verbose_name.capitalize(), record.pk, status,
    )
    return record
