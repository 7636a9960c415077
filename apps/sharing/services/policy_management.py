"""
Sharing policy management service.

Creates, lists and revokes the policies through which owners share their
cards and family data.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.sharing.granularity import get_composition
from apps.sharing.models import (
    ConditionType,
    PermissionAction,
    PermissionResource,
    PolicyPermission,
    ResourceType,
    SharingPolicy,
    UserCard,
)

from .exceptions import (
    InsufficientPermissionsError,
    InvalidPolicyError,
    PolicyNotFoundError,
    ResourceNotFoundError,
)
from .permission_evaluation import resolve_resource_owner_id

logger = logging.getLogger(__name__)


PERMISSION_TEMPLATES: Dict[str, List[Dict[str, Any]]] = {
    'family-view-only': [
        {'action': 'view', 'resource': 'card', 'granted': True},
        {'action': 'edit', 'resource': 'card', 'granted': False},
        {'action': 'share', 'resource': 'card', 'granted': False},
    ],
    'family-collaborate': [
        {'action': 'view', 'resource': 'card', 'granted': True},
        {'action': 'edit', 'resource': 'field', 'granted': True},
        {'action': 'share', 'resource': 'relationship', 'granted': True},
    ],
    'professional-limited': [
        {'action': 'view', 'resource': 'card', 'granted': True},
        {'action': 'download', 'resource': 'card', 'granted': False},
    ],
    'public-basic': [
        {'action': 'view', 'resource': 'card', 'granted': True},
    ],
}


def get_permission_templates() -> Dict[str, List[Dict[str, Any]]]:
    return {name: [dict(p) for p in permissions] for name, permissions in PERMISSION_TEMPLATES.items()}


def _validate_conditions(conditions) -> List[Dict[str, Any]]:
    if conditions is None:
        return []
    if not isinstance(conditions, list):
        raise InvalidPolicyError("Conditions must be a list")
    for condition in conditions:
        if not isinstance(condition, dict) or condition.get('type') not in ConditionType.values:
            raise InvalidPolicyError(f"Unsupported condition: {condition!r}")
    return conditions


def _validate_shared_components(shared_components, card: Optional[UserCard]) -> Dict[str, List[str]]:
    if not shared_components:
        return {}
    if not isinstance(shared_components, dict):
        raise InvalidPolicyError("Shared components must map field keys to component lists")

    for field_key, component_ids in shared_components.items():
        if not isinstance(component_ids, list) or not all(isinstance(c, str) for c in component_ids):
            raise InvalidPolicyError(f"Shared components for '{field_key}' must be a list of ids")
        if card is None:
            continue
        if field_key not in card.fields:
            raise InvalidPolicyError(f"Card has no field '{field_key}'")

        composition = get_composition(card.fields[field_key]['field_type'])
        if composition is None:
            continue
        unknown = set(component_ids) - set(composition.component_ids) - {'*'}
        if unknown:
            raise InvalidPolicyError(
                f"Unknown components for '{field_key}': {', '.join(sorted(unknown))}"
            )

    return shared_components


@transaction.atomic
def create_policy(
    *,
    resource_id: UUID,
    resource_type: str,
    granted_to: Optional[User],
    created_by: User,
    permissions: Optional[List[Dict[str, Any]]] = None,
    expires_at: Optional[datetime] = None,
    conditions: Optional[List[Dict[str, Any]]] = None,
    shared_components: Optional[Dict[str, List[str]]] = None,
    template: Optional[str] = None
) -> SharingPolicy:
    """
    Create a sharing policy with granular permissions.

    Each permission defaults to ``view`` on ``card``, granted. Policy-level
    conditions and expiry apply to permissions that do not set their own.

    Args:
        resource_id: UUID of the shared resource
        resource_type: One of ResourceType values
        granted_to: Grantee, or None to share publicly
        created_by: Resource owner creating the policy
        permissions: Partial permission dicts (action, resource, granted,
            conditions, expires_at)
        expires_at: Optional policy expiry
        conditions: Default conditions for permissions
        shared_components: ``{field_key: [component_id, ...]}`` visible to
            the grantee
        template: Name of a permission template used when ``permissions``
            is not given

    Returns:
        Created SharingPolicy instance

    Raises:
        ResourceNotFoundError: If the resource cannot be resolved
        InsufficientPermissionsError: If created_by does not own the resource
        InvalidPolicyError: If permissions/conditions/components are malformed
    """
    if resource_type not in ResourceType.values:
        raise InvalidPolicyError(f"Unsupported resource type: {resource_type}")

    owner_id = resolve_resource_owner_id(resource_id, resource_type)
    if owner_id is None:
        raise ResourceNotFoundError(f"{resource_type} {resource_id} not found")
    if owner_id != created_by.id:
        raise InsufficientPermissionsError("Only the resource owner can share it")
    if granted_to is not None and granted_to.id == created_by.id:
        raise InvalidPolicyError("Cannot create a sharing policy for yourself")

    if permissions is None:
        if template is None:
            permissions = [{}]
        elif template in PERMISSION_TEMPLATES:
            permissions = PERMISSION_TEMPLATES[template]
        else:
            raise InvalidPolicyError(f"Unknown permission template: {template}")

    default_conditions = _validate_conditions(conditions)
    card = None
    if resource_type == ResourceType.CARD:
        card = UserCard.objects.get(id=resource_id)

    policy = SharingPolicy.objects.create(
        resource_id=resource_id,
        resource_type=resource_type,
        granted_to=granted_to,
        created_by=created_by,
        expires_at=expires_at,
        shared_components=_validate_shared_components(shared_components, card),
        metadata={'template': template} if template else {},
    )

    now = timezone.now()
    rows = []
    for index, entry in enumerate(permissions):
        action = entry.get('action') or PermissionAction.VIEW
        resource = entry.get('resource') or PermissionResource.CARD
        if action not in PermissionAction.values:
            raise InvalidPolicyError(f"Unsupported action: {action}")
        if resource not in PermissionResource.values:
            raise InvalidPolicyError(f"Unsupported permission resource: {resource}")

        rows.append(PolicyPermission(
            policy=policy,
            action=action,
            resource=resource,
            granted=entry.get('granted') is not False,
            conditions=_validate_conditions(entry.get('conditions')) or default_conditions,
            expires_at=entry.get('expires_at') or expires_at,
            # keep write order stable for last-writer-wins evaluation
            created_at=now + timedelta(microseconds=index),
        ))
    PolicyPermission.objects.bulk_create(rows)

    logger.info(
        "Sharing policy %s created on %s %s for %s",
        policy.id, resource_type, resource_id,
        granted_to.id if granted_to else 'public',
    )
    return policy


@transaction.atomic
def revoke_policy(*, policy_id: UUID, user: User) -> SharingPolicy:
    """
    Deactivate a policy (creator only).

    Raises:
        PolicyNotFoundError: If policy doesn't exist
        InsufficientPermissionsError: If user did not create the policy
    """
    try:
        policy = SharingPolicy.objects.select_for_update().get(id=policy_id)
    except SharingPolicy.DoesNotExist:
        raise PolicyNotFoundError(f"Policy with ID {policy_id} not found")

    if policy.created_by_id != user.id:
        raise InsufficientPermissionsError("Only the policy creator can revoke it")

    policy.is_active = False
    policy.save(update_fields=['is_active'])
    logger.info("Sharing policy %s revoked", policy.id)
    return policy


def get_resource_policies(*, resource_id: UUID, user: User) -> QuerySet[SharingPolicy]:
    """
    Active policies on a resource (owner only).

    Raises:
        ResourceNotFoundError: If the resource cannot be resolved
        InsufficientPermissionsError: If user does not own the resource
    """
    owner_id = resolve_resource_owner_id(resource_id)
    if owner_id is None:
        raise ResourceNotFoundError(f"Resource {resource_id} not found")
    if owner_id != user.id:
        raise InsufficientPermissionsError("Only the resource owner can list its policies")

    return (
        SharingPolicy.objects
        .filter(resource_id=resource_id, is_active=True)
        .select_related('granted_to')
        .prefetch_related('permissions')
    )
