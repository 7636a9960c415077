"""
Card management service.

Handles profile card CRUD and the granular view of card fields.
"""

from typing import Dict, Optional
from uuid import UUID

from django.db import transaction

from apps.accounts.models import User
from apps.sharing.granularity import (
    compose_display_value,
    get_composition,
    get_default_sharing_config,
    parse_field,
)
from apps.sharing.models import PermissionAction, UserCard

from .exceptions import (
    CardNotFoundError,
    InsufficientPermissionsError,
    InvalidCardFieldsError,
)
from .permission_evaluation import check_permission

ALL_COMPONENTS = '*'


def _clean_fields(fields: Dict) -> Dict[str, Dict[str, str]]:
    if not isinstance(fields, dict):
        raise InvalidCardFieldsError("Card fields must be an object keyed by field name")

    cleaned = {}
    for key, field in fields.items():
        if not isinstance(field, dict) or not isinstance(field.get('value'), str):
            raise InvalidCardFieldsError(f"Field '{key}' must provide a string value")
        cleaned[key] = {
            'field_type': str(field.get('field_type') or 'text'),
            'value': field['value'].strip(),
        }
    return cleaned


def create_card(*, owner: User, title: str, fields: Optional[Dict] = None) -> UserCard:
    """
    Create a profile card.

    Raises:
        InvalidCardFieldsError: If fields are malformed
    """
    return UserCard.objects.create(
        owner=owner,
        title=title,
        fields=_clean_fields(fields or {}),
    )


def get_card(*, card_id: UUID) -> UserCard:
    try:
        return UserCard.objects.select_related('owner').get(id=card_id)
    except UserCard.DoesNotExist:
        raise CardNotFoundError(f"Card with ID {card_id} not found")


@transaction.atomic
def update_card(
    *,
    card_id: UUID,
    user: User,
    title: Optional[str] = None,
    fields: Optional[Dict] = None
) -> UserCard:
    """
    Update a card (owner only).

    Raises:
        CardNotFoundError: If card doesn't exist
        InsufficientPermissionsError: If user is not the owner
        InvalidCardFieldsError: If fields are malformed
    """
    try:
        card = UserCard.objects.select_for_update().get(id=card_id)
    except UserCard.DoesNotExist:
        raise CardNotFoundError(f"Card with ID {card_id} not found")

    if card.owner_id != user.id:
        raise InsufficientPermissionsError("Only the card owner can update the card")

    update_fields = ['updated_at']

    if title is not None:
        card.title = title
        update_fields.append('title')

    if fields is not None:
        card.fields = _clean_fields(fields)
        update_fields.append('fields')

    card.save(update_fields=update_fields)
    return card


@transaction.atomic
def delete_card(*, card_id: UUID, user: User) -> None:
    """Delete a card (owner only)."""
    try:
        card = UserCard.objects.select_for_update().get(id=card_id)
    except UserCard.DoesNotExist:
        raise CardNotFoundError(f"Card with ID {card_id} not found")

    if card.owner_id != user.id:
        raise InsufficientPermissionsError("Only the card owner can delete the card")

    card.delete()


def get_card_components(card: UserCard) -> Dict[str, Dict]:
    """Parse every card field into its granular components."""
    result = {}
    for key, field in card.fields.items():
        result[key] = {
            'field_type': field['field_type'],
            'value': field['value'],
            'components': parse_field(field['field_type'], field['value']),
        }
    return result


def _allowed_components(field_key, field_type, shared_components):
    composition = get_composition(field_type)
    if field_key in shared_components:
        allowed = shared_components[field_key]
        if ALL_COMPONENTS in allowed and composition is not None:
            return set(composition.component_ids)
        return set(allowed)
    if composition is None:
        return set()
    return {
        component_id
        for component_id, shared in get_default_sharing_config(composition).items()
        if shared
    }


def get_shared_card_view(*, card_id: UUID, viewer: User, context: Optional[Dict] = None) -> Dict:
    """
    Return the card as ``viewer`` is allowed to see it.

    The owner sees every field. Anyone else needs a granted ``view``
    permission; each field then exposes only the components the deciding
    policy shares (or the composition defaults when the policy is silent
    about that field). A value that cannot be split is shown whole, and
    only when the policy names the field explicitly.

    Raises:
        CardNotFoundError: If card doesn't exist
        InsufficientPermissionsError: If viewer may not view the card
    """
    card = get_card(card_id=card_id)

    if card.owner_id == viewer.id:
        return {
            'card_id': card.id,
            'title': card.title,
            'policy_id': None,
            'fields': get_card_components(card),
        }

    decision = check_permission(
        user=viewer,
        resource_id=card.id,
        action=PermissionAction.VIEW,
        context=context,
    )
    if not decision.granted:
        raise InsufficientPermissionsError(decision.reason)

    shared_components = decision.policy.shared_components or {}
    visible_fields = {}

    for key, field in card.fields.items():
        field_type = field['field_type']
        components = parse_field(field_type, field['value'])

        if not components:
            if key in shared_components:
                visible_fields[key] = {
                    'field_type': field_type,
                    'value': field['value'],
                    'components': {},
                }
            continue

        allowed = _allowed_components(key, field_type, shared_components)
        visible = {
            component_id: value
            for component_id, value in components.items()
            if component_id in allowed
        }
        if not visible:
            continue

        visible_fields[key] = {
            'field_type': field_type,
            'value': compose_display_value(visible, get_composition(field_type)),
            'components': visible,
        }

    return {
        'card_id': card.id,
        'title': card.title,
        'policy_id': decision.policy.id,
        'fields': visible_fields,
    }
