"""
Permission evaluation service.

Decides whether a user may perform an action on a resource by evaluating
the sharing policies addressed to that user or to the public.

Resolution rules:
    1. The resource owner is always granted.
    2. Inactive or expired policies and expired permissions are ignored.
    3. Permissions whose conditions do not hold for the request context
       are ignored.
    4. Among the remaining permissions for the action, the most recently
       written one decides, whether it grants or denies.
    5. With nothing applicable the request is denied.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.accounts.models import User
from apps.sharing.models import (
    ConditionType,
    PolicyPermission,
    ResourceType,
    UserCard,
)

logger = logging.getLogger(__name__)

ADMIN_PERMISSION = 'admin'


@dataclass
class PermissionDecision:
    granted: bool
    reason: str
    policy: Optional[Any] = None
    permission: Optional[PolicyPermission] = None


def resolve_resource_owner_id(resource_id: UUID, resource_type: Optional[str] = None) -> Optional[UUID]:
    """
    Return the id of the user who owns a resource, or None if unknown.

    Cards are owned by their owner, family units by their trust anchor.
    """
    from apps.family.models import FamilyUnit

    if resource_type in (None, ResourceType.CARD):
        owner_id = (
            UserCard.objects
            .filter(id=resource_id)
            .values_list('owner_id', flat=True)
            .first()
        )
        if owner_id is not None or resource_type == ResourceType.CARD:
            return owner_id

    if resource_type in (None, ResourceType.FAMILY_UNIT):
        return (
            FamilyUnit.objects
            .filter(id=resource_id)
            .values_list('trust_anchor_id', flat=True)
            .first()
        )

    return None


def _parse_moment(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        moment = parse_datetime(value)
    else:
        return None
    if moment is not None and timezone.is_naive(moment):
        moment = timezone.make_aware(moment, dt_timezone.utc)
    return moment


def evaluate_conditions(
    conditions: Iterable[Dict[str, Any]],
    context: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None
) -> bool:
    """
    Check that every condition holds for the request context.

    ``time_range`` expects ``{"start": iso, "end": iso}`` (inclusive).
    ``purpose``, ``context``, ``location`` and ``device`` compare the
    condition value with the context entry of the same name.
    Unknown condition types never hold.
    """
    context = context or {}
    now = now or timezone.now()

    for condition in conditions or []:
        condition_type = condition.get('type')
        value = condition.get('value')

        if condition_type == ConditionType.TIME_RANGE:
            if not isinstance(value, dict):
                return False
            start = _parse_moment(value.get('start'))
            end = _parse_moment(value.get('end'))
            if start is None or end is None or not (start <= now <= end):
                return False

        elif condition_type in (
            ConditionType.PURPOSE,
            ConditionType.CONTEXT,
            ConditionType.LOCATION,
            ConditionType.DEVICE,
        ):
            if context.get(condition_type) != value:
                return False

        else:
            return False

    return True


def check_permission(
    *,
    user: User,
    resource_id: UUID,
    action: str,
    context: Optional[Dict[str, Any]] = None,
    resource_type: Optional[str] = None,
    now: Optional[datetime] = None
) -> PermissionDecision:
    """
    Decide whether ``user`` may perform ``action`` on a resource.

    Args:
        user: User requesting access
        resource_id: UUID of the card/family unit
        action: One of PermissionAction values
        context: Request context used by policy conditions
        resource_type: Narrows owner resolution when known
        now: Evaluation time (defaults to now)

    Returns:
        PermissionDecision with the deciding policy, if any
    """
    now = now or timezone.now()

    if resolve_resource_owner_id(resource_id, resource_type) == user.id:
        return PermissionDecision(granted=True, reason='Resource owner')

    candidates: List[PolicyPermission] = list(
        PolicyPermission.objects
        .select_related('policy')
        .filter(
            policy__resource_id=resource_id,
            policy__is_active=True,
            action=action,
        )
        .filter(Q(policy__granted_to=user) | Q(policy__granted_to__isnull=True))
        .filter(Q(policy__expires_at__isnull=True) | Q(policy__expires_at__gt=now))
        .filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))
        .order_by('created_at', 'policy__created_at')
    )

    applicable = [
        permission for permission in candidates
        if evaluate_conditions(permission.conditions, context, now)
    ]

    if not applicable:
        reason = 'No policy grants this action'
        if candidates:
            reason = 'Policy conditions are not met'
        return PermissionDecision(granted=False, reason=reason)

    deciding = applicable[-1]
    if deciding.granted:
        reason = f"Granted by policy {deciding.policy_id}"
    else:
        reason = f"Denied by policy {deciding.policy_id}"

    logger.debug(
        "Permission %s for user %s on %s: %s",
        action, user.id, resource_id, reason,
    )
    return PermissionDecision(
        granted=deciding.granted,
        reason=reason,
        policy=deciding.policy,
        permission=deciding,
    )


def has_access_permission(
    permissions: Dict[str, List[str]],
    resource: str,
    required: str
) -> bool:
    """Check a ``{resource: [permission, ...]}`` map; ``admin`` implies all."""
    granted = permissions.get(resource) or []
    return required in granted or ADMIN_PERMISSION in granted
