"""
Family unit management service.

Handles unit CRUD, membership listing and the parent/child tree.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import Q, QuerySet

from apps.accounts.models import User
from apps.family.models import (
    ConnectionStatus,
    FamilyConnection,
    FamilyMembership,
    FamilyUnit,
    MembershipStatus,
)

from .exceptions import (
    FamilyCycleError,
    FamilyUnitNotFoundError,
    InsufficientPermissionsError,
    ValidationFailedError,
)
from .lifecycle import expire_overdue

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10


def get_family_unit(*, unit_id: UUID, for_update: bool = False) -> FamilyUnit:
    """
    Get an active family unit by ID.

    Raises:
        FamilyUnitNotFoundError: If the unit doesn't exist or is inactive
    """
    queryset = FamilyUnit.objects.select_related('trust_anchor')
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(id=unit_id, is_active=True)
    except FamilyUnit.DoesNotExist:
        raise FamilyUnitNotFoundError(f"Family unit with ID {unit_id} not found")


def get_member_unit(*, unit_id: UUID, user: User) -> FamilyUnit:
    """
    Get a unit the user anchors or belongs to.

    Raises:
        FamilyUnitNotFoundError: If the unit doesn't exist
        InsufficientPermissionsError: If the user is not part of the unit
    """
    unit = get_family_unit(unit_id=unit_id)
    if not unit.has_member(user):
        raise InsufficientPermissionsError("You are not a member of this family unit")
    return unit


def _require_trust_anchor(unit: FamilyUnit, user: User, action: str) -> None:
    if not unit.is_trust_anchor(user):
        raise InsufficientPermissionsError(f"Only the trust anchor can {action}")


@transaction.atomic
def create_family_unit(
    *,
    user: User,
    family_label: str,
    parent_family_unit_id: Optional[UUID] = None,
    family_metadata: Optional[Dict[str, Any]] = None
) -> FamilyUnit:
    """
    Create a family unit anchored by ``user``.

    Nesting under a parent requires anchoring the parent too; the new unit
    sits one generation below it.

    Args:
        user: Trust anchor of the new unit
        family_label: Display name, e.g. "Smiths"
        parent_family_unit_id: Optional parent unit
        family_metadata: Free-form metadata

    Returns:
        Created FamilyUnit instance

    Raises:
        ValidationFailedError: If the label is blank
        FamilyUnitNotFoundError: If the parent doesn't exist
        InsufficientPermissionsError: If user does not anchor the parent
    """
    family_label = (family_label or '').strip()
    if not family_label:
        raise ValidationFailedError("Family label is required")

    parent = None
    generation_level = 1
    if parent_family_unit_id:
        parent = get_family_unit(unit_id=parent_family_unit_id)
        _require_trust_anchor(parent, user, "add child units")
        generation_level = parent.generation_level + 1

    unit = FamilyUnit.objects.create(
        family_label=family_label,
        trust_anchor=user,
        parent_family_unit=parent,
        generation_level=generation_level,
        family_metadata=family_metadata or {},
    )
    logger.info("Family unit %s created by %s (generation %s)", unit.id, user.id, generation_level)
    return unit


@transaction.atomic
def update_family_unit(
    *,
    unit_id: UUID,
    user: User,
    family_label: Optional[str] = None,
    family_metadata: Optional[Dict[str, Any]] = None
) -> FamilyUnit:
    """
    Update unit label/metadata (trust anchor only).

    Raises:
        FamilyUnitNotFoundError: If the unit doesn't exist
        InsufficientPermissionsError: If user is not the trust anchor
        ValidationFailedError: If the new label is blank
    """
    unit = get_family_unit(unit_id=unit_id, for_update=True)
    _require_trust_anchor(unit, user, "update the family unit")

    update_fields = ['updated_at']

    if family_label is not None:
        family_label = family_label.strip()
        if not family_label:
            raise ValidationFailedError("Family label is required")
        unit.family_label = family_label
        update_fields.append('family_label')

    if family_metadata is not None:
        unit.family_metadata = family_metadata
        update_fields.append('family_metadata')

    unit.save(update_fields=update_fields)
    return unit


@transaction.atomic
def deactivate_family_unit(*, unit_id: UUID, user: User) -> None:
    """Deactivate a unit (trust anchor only). Child units are detached."""
    unit = get_family_unit(unit_id=unit_id, for_update=True)
    _require_trust_anchor(unit, user, "deactivate the family unit")

    for child in FamilyUnit.objects.select_for_update().filter(parent_family_unit=unit):
        reparent_family_unit(unit=child, parent=None)

    unit.is_active = False
    unit.save(update_fields=['is_active', 'updated_at'])
    logger.info("Family unit %s deactivated", unit.id)


def get_family_units(*, user: User) -> QuerySet[FamilyUnit]:
    """Active units the user anchors or belongs to."""
    return (
        FamilyUnit.objects
        .filter(is_active=True)
        .filter(
            Q(trust_anchor=user) |
            Q(memberships__member=user, memberships__status=MembershipStatus.ACTIVE)
        )
        .select_related('trust_anchor')
        .distinct()
    )


def get_family_members(*, unit_id: UUID, user: User) -> QuerySet[FamilyMembership]:
    """
    Active memberships of a unit.

    Raises:
        FamilyUnitNotFoundError: If the unit doesn't exist
        InsufficientPermissionsError: If user is not part of the unit
    """
    unit = get_member_unit(unit_id=unit_id, user=user)
    return (
        unit.memberships
        .filter(status=MembershipStatus.ACTIVE)
        .select_related('member')
    )


def search_family_units(*, user: User, term: str) -> QuerySet[FamilyUnit]:
    """Active units whose label contains ``term``, excluding the user's own."""
    term = (term or '').strip()
    if not term:
        return FamilyUnit.objects.none()

    return (
        FamilyUnit.objects
        .filter(is_active=True, family_label__icontains=term)
        .exclude(trust_anchor=user)
        .select_related('trust_anchor')
        [:SEARCH_LIMIT]
    )


def _recompute_generations(unit: FamilyUnit) -> None:
    """Walk the subtree below ``unit`` and fix every generation level."""
    frontier = [unit]
    while frontier:
        parent = frontier.pop()
        for child in FamilyUnit.objects.filter(parent_family_unit=parent):
            child.generation_level = parent.generation_level + 1
            child.save(update_fields=['generation_level', 'updated_at'])
            frontier.append(child)


def reparent_family_unit(*, unit: FamilyUnit, parent: Optional[FamilyUnit]) -> FamilyUnit:
    """
    Attach ``unit`` under ``parent`` (or make it a root) without checking
    ownership. Call inside a transaction.

    Raises:
        FamilyCycleError: If the link would make the unit its own ancestor
    """
    if parent is not None:
        if parent.id == unit.id:
            raise FamilyCycleError("A family unit cannot be its own parent")
        if unit.id in parent.ancestor_ids():
            raise FamilyCycleError(
                f"{parent.family_label} already descends from {unit.family_label}"
            )

    unit.parent_family_unit = parent
    unit.generation_level = parent.generation_level + 1 if parent else 1
    unit.save(update_fields=['parent_family_unit', 'generation_level', 'updated_at'])
    _recompute_generations(unit)

    logger.info(
        "Family unit %s moved under %s (generation %s)",
        unit.id, parent.id if parent else None, unit.generation_level,
    )
    return unit


@transaction.atomic
def set_parent_family_unit(
    *,
    unit_id: UUID,
    user: User,
    parent_family_unit_id: Optional[UUID] = None
) -> FamilyUnit:
    """
    Move a unit under another unit the same user anchors.

    Units anchored by different users are linked through connections.

    Raises:
        FamilyUnitNotFoundError: If either unit doesn't exist
        InsufficientPermissionsError: If user does not anchor both units
        FamilyCycleError: If the move would create a cycle
    """
    unit = get_family_unit(unit_id=unit_id, for_update=True)
    _require_trust_anchor(unit, user, "move the family unit")

    parent = None
    if parent_family_unit_id:
        parent = get_family_unit(unit_id=parent_family_unit_id, for_update=True)
        _require_trust_anchor(parent, user, "add child units")

    return reparent_family_unit(unit=unit, parent=parent)


def get_family_tree(*, unit_id: UUID, user: User) -> Dict[str, Any]:
    """
    The unit with its approved parent/child connections and pending ones.

    Returns:
        Dict with ``current_unit``, ``parent_connection`` (or None),
        ``child_connections``, ``pending_connections`` and ``child_units``
    """
    unit = get_member_unit(unit_id=unit_id, user=user)

    connections = expire_overdue(
        FamilyConnection.objects
        .filter(Q(parent_family_unit=unit) | Q(child_family_unit=unit))
        .select_related('parent_family_unit', 'child_family_unit', 'initiated_by')
    )

    parent_connection = next(
        (
            c for c in connections
            if c.child_family_unit_id == unit.id and c.status == ConnectionStatus.APPROVED
        ),
        None,
    )
    return {
        'current_unit': unit,
        'parent_connection': parent_connection,
        'child_connections': [
            c for c in connections
            if c.parent_family_unit_id == unit.id and c.status == ConnectionStatus.APPROVED
        ],
        'pending_connections': [c for c in connections if c.status == ConnectionStatus.PENDING],
        'child_units': list(unit.child_units.filter(is_active=True)),
    }
