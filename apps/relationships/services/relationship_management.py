"""
Relationship card service.

A user invites someone by email to a named relationship ("Sister" /
"Brother"). The invitee accepts with the emailed token, optionally
renaming their own side, which creates their reciprocal card in the
same transaction.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.accounts.models import User
from apps.family import notifications
from apps.family.services.lifecycle import expire_if_due, expire_overdue, transition
from apps.relationships.models import RelationshipCard, RelationshipStatus

from .exceptions import (
    DuplicateRelationshipError,
    InsufficientPermissionsError,
    InvalidStateTransitionError,
    RelationshipNotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

INDICATOR_SELF = 'self'
INDICATOR_HYBRID = 'hybrid'


def _clean_label(label: str, name: str) -> str:
    label = (label or '').strip()
    if not label:
        raise ValidationFailedError(f"{name} is required")
    return label


def _get_card(card_id: UUID) -> RelationshipCard:
    try:
        card = RelationshipCard.objects.select_related('from_user', 'to_user').get(id=card_id)
    except RelationshipCard.DoesNotExist:
        raise RelationshipNotFoundError(f"Relationship with ID {card_id} not found")
    expire_if_due(card)
    return card


def _lock(card_id: UUID) -> RelationshipCard:
    return (
        RelationshipCard.objects
        .select_for_update()
        .select_related('from_user', 'to_user')
        .get(id=card_id)
    )


def create_relationship_invitation(
    *,
    from_user: User,
    to_user_email: str,
    relationship_label_from: str,
    relationship_label_to: str,
    metadata: Optional[Dict[str, Any]] = None,
    shared_attributes: Optional[List[str]] = None,
    network_rules: str = ''
) -> RelationshipCard:
    """
    Invite someone by email into a relationship.

    Args:
        from_user: Sender
        to_user_email: Invitee address
        relationship_label_from: What the sender is to the invitee
        relationship_label_to: What the invitee is to the sender
        metadata: Free-form metadata
        shared_attributes: Card attributes shared with the invitee
        network_rules: Free-form visibility rules

    Returns:
        The pending RelationshipCard

    Raises:
        ValidationFailedError: If the email or labels are invalid, or the
            email is the sender's own
        DuplicateRelationshipError: If a pending or active relationship
            with that email already exists
    """
    to_user_email = (to_user_email or '').strip().lower()
    try:
        validate_email(to_user_email)
    except ValidationError:
        raise ValidationFailedError(f"Invalid email address: {to_user_email or '(empty)'}")
    if to_user_email == from_user.email.lower():
        raise ValidationFailedError("You cannot invite yourself")

    relationship_label_from = _clean_label(relationship_label_from, "Your relationship label")
    relationship_label_to = _clean_label(relationship_label_to, "Their relationship label")

    open_cards = RelationshipCard.objects.filter(
        from_user=from_user,
        to_user_email__iexact=to_user_email,
        status__in=[RelationshipStatus.PENDING, RelationshipStatus.ACCEPTED],
        terminated_at__isnull=True,
    )
    expire_overdue(open_cards.filter(status=RelationshipStatus.PENDING))

    with transaction.atomic():
        if open_cards.select_for_update().exists():
            raise DuplicateRelationshipError(
                f"An active relationship with {to_user_email} already exists"
            )

        card = RelationshipCard.objects.create(
            from_user=from_user,
            to_user=User.objects.get_by_email(to_user_email),
            to_user_email=to_user_email,
            relationship_label_from=relationship_label_from,
            relationship_label_to=relationship_label_to,
            metadata=metadata or {},
            shared_attributes=shared_attributes or [],
            network_rules=network_rules,
            confidence={
                'indicator_type': INDICATOR_SELF,
                'timestamp': timezone.now().isoformat(),
            },
        )

    logger.info("Relationship invitation %s sent by %s to %s", card.id, from_user.id, to_user_email)
    notifications.send_relationship_email(card)
    return card


def accept_relationship_invitation(
    *,
    token: str,
    user: User,
    modified_label_to: Optional[str] = None
) -> RelationshipCard:
    """
    Accept a relationship invitation.

    Creates the acceptor's reciprocal card (labels swapped) and links both
    cards in one transaction. ``modified_label_to`` renames the acceptor's
    side when the sender's label doesn't fit.

    A card sent to a registered address can only be accepted by that
    account; one sent to an unknown address can be accepted by whoever
    holds the token.

    Returns:
        The sender's card, now accepted

    Raises:
        RelationshipNotFoundError: If the token matches nothing
        InsufficientPermissionsError: If user sent the invitation, or it is
            addressed to another account
        InvalidStateTransitionError: If the card is no longer pending
        ValidationFailedError: If modified_label_to is blank
    """
    try:
        card = RelationshipCard.objects.get(invitation_token=token)
    except RelationshipCard.DoesNotExist:
        raise RelationshipNotFoundError("Invalid relationship invitation token")
    expire_if_due(card)

    if card.from_user_id == user.id:
        raise InsufficientPermissionsError("You cannot accept your own invitation")

    addressee = card.to_user or User.objects.get_by_email(card.to_user_email)
    if addressee is not None and addressee.id != user.id:
        raise InsufficientPermissionsError("This relationship invitation is not addressed to you")

    label_modified = modified_label_to is not None
    if label_modified:
        modified_label_to = _clean_label(modified_label_to, "Relationship label")

    with transaction.atomic():
        card = _lock(card.id)
        if card.status != RelationshipStatus.PENDING:
            raise InvalidStateTransitionError(f"Relationship invitation is already {card.status}")

        now = timezone.now()
        label_to = modified_label_to if label_modified else card.relationship_label_to

        reciprocal = RelationshipCard.objects.create(
            from_user=user,
            to_user=card.from_user,
            to_user_email=card.from_user.email,
            relationship_label_from=label_to,
            relationship_label_to=card.relationship_label_from,
            status=RelationshipStatus.ACCEPTED,
            accepted_at=now,
            label_modified=label_modified,
            shared_attributes=list(card.shared_attributes),
            network_rules=card.network_rules,
            confidence={
                'indicator_type': INDICATOR_HYBRID,
                'verified_by': str(card.from_user_id),
                'timestamp': now.isoformat(),
            },
            reciprocal_card=card,
        )

        transition(
            card,
            RelationshipStatus.ACCEPTED,
            error_class=InvalidStateTransitionError,
            to_user=user,
            accepted_at=now,
            relationship_label_to=label_to,
            label_modified=label_modified,
            reciprocal_card=reciprocal,
            confidence={**card.confidence, 'indicator_type': INDICATOR_HYBRID, 'verified_by': str(user.id)},
        )

    logger.info("Relationship %s accepted by %s", card.id, user.id)
    return card


def reject_relationship_invitation(*, card_id: UUID, user: User) -> RelationshipCard:
    """
    Reject a pending invitation (invitee only).

    Raises:
        RelationshipNotFoundError: If card doesn't exist
        InsufficientPermissionsError: If the card is not addressed to user
        InvalidStateTransitionError: If it is no longer pending
    """
    card = _get_card(card_id)
    if not card.is_addressed_to(user):
        raise InsufficientPermissionsError("This relationship invitation is not addressed to you")

    with transaction.atomic():
        card = _lock(card.id)
        return transition(
            card, RelationshipStatus.REJECTED,
            error_class=InvalidStateTransitionError, to_user=user,
        )


def cancel_relationship_invitation(*, card_id: UUID, user: User) -> RelationshipCard:
    """
    Withdraw a pending invitation (sender only).

    Raises:
        RelationshipNotFoundError: If card doesn't exist
        InsufficientPermissionsError: If user did not send it
        InvalidStateTransitionError: If it is no longer pending
    """
    card = _get_card(card_id)
    if card.from_user_id != user.id:
        raise InsufficientPermissionsError("Only the sender can cancel this invitation")

    with transaction.atomic():
        card = _lock(card.id)
        return transition(card, RelationshipStatus.CANCELLED, error_class=InvalidStateTransitionError)


def terminate_relationship(*, card_id: UUID, user: User) -> RelationshipCard:
    """
    End an accepted relationship (either party).

    Both linked cards get ``terminated_at``; their status stays accepted.

    Raises:
        RelationshipNotFoundError: If card doesn't exist
        InsufficientPermissionsError: If user is not a party
        InvalidStateTransitionError: If the relationship is not active
    """
    card = _get_card(card_id)
    if not card.involves(user):
        raise InsufficientPermissionsError("You are not part of this relationship")

    with transaction.atomic():
        card = _lock(card.id)
        if not card.is_active:
            raise InvalidStateTransitionError("Only active relationships can be terminated")

        now = timezone.now()
        linked = [card]
        if card.reciprocal_card_id:
            linked.append(_lock(card.reciprocal_card_id))
        for linked_card in linked:
            linked_card.terminated_at = now
            linked_card.save(update_fields=['terminated_at', 'updated_at'])

    logger.info("Relationship %s terminated by %s", card.id, user.id)
    return card


def get_user_relationships(*, user: User, status: Optional[str] = None) -> List[RelationshipCard]:
    """Cards the user sent or received (including by email), newest first."""
    queryset = (
        RelationshipCard.objects
        .filter(
            Q(from_user=user) |
            Q(to_user=user) |
            Q(to_user__isnull=True, to_user_email__iexact=user.email)
        )
        .select_related('from_user', 'to_user')
        .order_by('-created_at')
    )
    cards = expire_overdue(queryset)
    if status:
        cards = [card for card in cards if card.status == status]
    return cards
