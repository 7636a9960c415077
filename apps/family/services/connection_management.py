"""
Family connection service.

A connection proposes a parent/child edge between two units anchored by
different users. The receiving unit's trust anchor approves or rejects
it; approving a hierarchical connection re-parents the child unit.

When both sides propose a connection to each other, the second proposal
approves the first one instead of creating another record.
"""

import logging
from typing import List
from uuid import UUID

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.accounts.models import User
from apps.family import notifications
from apps.family.models import (
    ConnectionDirection,
    ConnectionStatus,
    ConnectionType,
    FamilyConnection,
    FamilyUnit,
)

from .exceptions import (
    ConnectionNotFoundError,
    DuplicateConnectionError,
    FamilyCycleError,
    InsufficientPermissionsError,
    ValidationFailedError,
)
from .lifecycle import ensure_pending, expire_if_due, expire_overdue, transition
from .unit_management import get_family_unit, get_member_unit, reparent_family_unit

logger = logging.getLogger(__name__)


def _between(unit_a: FamilyUnit, unit_b: FamilyUnit):
    return FamilyConnection.objects.filter(
        Q(parent_family_unit=unit_a, child_family_unit=unit_b) |
        Q(parent_family_unit=unit_b, child_family_unit=unit_a)
    )


def _get_connection(connection_id: UUID) -> FamilyConnection:
    try:
        connection = (
            FamilyConnection.objects
            .select_related('parent_family_unit', 'child_family_unit')
            .get(id=connection_id)
        )
    except FamilyConnection.DoesNotExist:
        raise ConnectionNotFoundError(f"Connection with ID {connection_id} not found")
    expire_if_due(connection)
    return connection


def _lock_units(*unit_ids) -> dict:
    # fixed lock order keeps concurrent proposals between the same pair from deadlocking
    units = (
        FamilyUnit.objects
        .select_for_update()
        .filter(id__in=unit_ids)
        .order_by('id')
    )
    return {unit.id: unit for unit in units}


def _check_acyclic(parent: FamilyUnit, child: FamilyUnit) -> None:
    if parent.id == child.id or child.id in parent.ancestor_ids():
        raise FamilyCycleError(
            f"{parent.family_label} already descends from {child.family_label}"
        )


def _approve(connection: FamilyConnection, user: User) -> FamilyConnection:
    ensure_pending(connection)
    parent, child = connection.parent_family_unit, connection.child_family_unit
    if connection.connection_type == ConnectionType.HIERARCHICAL:
        reparent_family_unit(unit=child, parent=parent)

    return transition(
        connection,
        ConnectionStatus.APPROVED,
        approved_by=user,
        approved_at=timezone.now(),
    )


def send_connection(
    *,
    user: User,
    from_unit_id: UUID,
    target_unit_id: UUID,
    connection_direction: str,
    connection_type: str = ConnectionType.HIERARCHICAL,
    personal_message: str = ''
) -> FamilyConnection:
    """
    Propose a connection from the user's unit to another unit.

    ``invitation`` makes the user's unit the parent, ``request`` makes the
    target the parent. If the target unit already proposed a connection to
    the user's unit, that proposal is approved and returned as it stands.

    Returns:
        The new pending connection, or the approved mirror connection

    Raises:
        FamilyUnitNotFoundError: If either unit doesn't exist
        InsufficientPermissionsError: If user does not anchor from_unit
        ValidationFailedError: If the units are the same or input is invalid
        DuplicateConnectionError: If another pending connection links the units
        FamilyCycleError: If the edge would create a cycle
    """
    if connection_direction not in ConnectionDirection.values:
        raise ValidationFailedError(f"Unsupported connection direction: {connection_direction}")
    if connection_type not in ConnectionType.values:
        raise ValidationFailedError(f"Unsupported connection type: {connection_type}")

    from_unit = get_family_unit(unit_id=from_unit_id)
    if not from_unit.is_trust_anchor(user):
        raise InsufficientPermissionsError("You must anchor a family unit to connect it")
    target_unit = get_family_unit(unit_id=target_unit_id)
    if from_unit.id == target_unit.id:
        raise ValidationFailedError("Cannot connect a family unit to itself")

    expire_overdue(_between(from_unit, target_unit).filter(status=ConnectionStatus.PENDING))

    with transaction.atomic():
        units = _lock_units(from_unit.id, target_unit.id)
        from_unit, target_unit = units[from_unit.id], units[target_unit.id]

        if connection_direction == ConnectionDirection.INVITATION:
            parent, child = from_unit, target_unit
        else:
            parent, child = target_unit, from_unit

        pending = list(
            _between(from_unit, target_unit)
            .filter(status=ConnectionStatus.PENDING)
            .select_related('parent_family_unit', 'child_family_unit')
        )
        mirror = next((c for c in pending if c.initiating_unit_id == target_unit.id), None)
        if mirror is not None:
            connection = _approve(mirror, user)
            logger.info("Connection %s approved by matching proposal from %s", connection.id, user.id)
            return connection

        if pending:
            raise DuplicateConnectionError(
                f"A pending connection between {from_unit.family_label} "
                f"and {target_unit.family_label} already exists"
            )

        if connection_type == ConnectionType.HIERARCHICAL:
            _check_acyclic(parent, child)

        connection = FamilyConnection.objects.create(
            parent_family_unit=parent,
            child_family_unit=child,
            connection_type=connection_type,
            connection_direction=connection_direction,
            initiated_by=user,
            personal_message=personal_message,
        )

    logger.info(
        "Connection %s sent from %s to %s (%s)",
        connection.id, from_unit.id, target_unit.id, connection_direction,
    )
    notifications.send_connection_email(connection)
    return connection


def respond_to_connection(*, connection_id: UUID, user: User, approve: bool) -> FamilyConnection:
    """
    Approve or reject a pending connection (receiving trust anchor only).

    Raises:
        ConnectionNotFoundError: If connection doesn't exist
        InsufficientPermissionsError: If user does not anchor the receiving unit
        InvalidStateTransitionError: If it is no longer pending
        FamilyCycleError: If approving would create a cycle
    """
    connection = _get_connection(connection_id)

    with transaction.atomic():
        _lock_units(connection.parent_family_unit_id, connection.child_family_unit_id)
        connection = (
            FamilyConnection.objects
            .select_for_update()
            .select_related('parent_family_unit', 'child_family_unit')
            .get(id=connection.id)
        )

        receiving = (
            connection.child_family_unit
            if connection.receiving_unit_id == connection.child_family_unit_id
            else connection.parent_family_unit
        )
        if not receiving.is_trust_anchor(user):
            raise InsufficientPermissionsError("Only the receiving family's trust anchor can respond")

        if approve:
            return _approve(connection, user)
        return transition(connection, ConnectionStatus.REJECTED, approved_by=user)


def cancel_connection(*, connection_id: UUID, user: User) -> FamilyConnection:
    """
    Withdraw a pending connection (initiating side only).

    Raises:
        ConnectionNotFoundError: If connection doesn't exist
        InsufficientPermissionsError: If user is not on the initiating side
        InvalidStateTransitionError: If it is no longer pending
    """
    connection = _get_connection(connection_id)

    with transaction.atomic():
        connection = FamilyConnection.objects.select_for_update().get(id=connection.id)
        initiating = FamilyUnit.objects.get(id=connection.initiating_unit_id)
        if connection.initiated_by_id != user.id and not initiating.is_trust_anchor(user):
            raise InsufficientPermissionsError("Only the initiating family can cancel the connection")
        return transition(connection, ConnectionStatus.CANCELLED)


def get_unit_connections(*, unit_id: UUID, user: User) -> List[FamilyConnection]:
    """Connections touching a unit, newest first, with overdue ones expired."""
    unit = get_member_unit(unit_id=unit_id, user=user)
    return expire_overdue(
        FamilyConnection.objects
        .filter(Q(parent_family_unit=unit) | Q(child_family_unit=unit))
        .select_related('parent_family_unit', 'child_family_unit', 'initiated_by', 'approved_by')
        .order_by('-created_at')
    )
