"""
Family ownership transfer service.

The trust anchor offers a unit to someone else by email. Accepting moves
the trust anchor role; the previous anchor stays on as an active member.
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
    DEFAULT_MEMBER_PERMISSIONS,
    FamilyMembership,
    FamilyOwnershipTransfer,
    MembershipStatus,
    TransferStatus,
)

from .exceptions import (
    DuplicateTransferError,
    InsufficientPermissionsError,
    InvalidStateTransitionError,
    TransferNotFoundError,
    ValidationFailedError,
)
from .invitation_management import normalize_email
from .lifecycle import ensure_pending, expire_if_due, expire_overdue, transition
from .unit_management import get_family_unit

logger = logging.getLogger(__name__)

FORMER_ANCHOR_LABEL = 'Former Trust Anchor'


def _get_transfer(transfer_id: UUID) -> FamilyOwnershipTransfer:
    try:
        transfer = (
            FamilyOwnershipTransfer.objects
            .select_related('family_unit', 'current_owner')
            .get(id=transfer_id)
        )
    except FamilyOwnershipTransfer.DoesNotExist:
        raise TransferNotFoundError(f"Ownership transfer with ID {transfer_id} not found")
    expire_if_due(transfer)
    return transfer


def _lock(transfer: FamilyOwnershipTransfer) -> FamilyOwnershipTransfer:
    return (
        FamilyOwnershipTransfer.objects
        .select_for_update()
        .select_related('family_unit', 'current_owner')
        .get(id=transfer.id)
    )


def initiate_transfer(
    *,
    unit_id: UUID,
    user: User,
    proposed_owner_email: str,
    message: str = ''
) -> FamilyOwnershipTransfer:
    """
    Offer a family unit to another person.

    Args:
        unit_id: UUID of the family unit
        user: Current trust anchor
        proposed_owner_email: Email of the proposed owner
        message: Optional note included in the email

    Returns:
        The pending FamilyOwnershipTransfer

    Raises:
        FamilyUnitNotFoundError: If the unit doesn't exist
        InsufficientPermissionsError: If user is not the trust anchor
        ValidationFailedError: If the email is invalid or is the user's own
        DuplicateTransferError: If the unit already has a pending transfer
    """
    unit = get_family_unit(unit_id=unit_id)
    if not unit.is_trust_anchor(user):
        raise InsufficientPermissionsError("Only the current owner can transfer ownership")

    proposed_owner_email = normalize_email(proposed_owner_email)
    if proposed_owner_email == user.email.lower():
        raise ValidationFailedError("You cannot transfer ownership to yourself")

    expire_overdue(unit.ownership_transfers.filter(status=TransferStatus.PENDING))

    with transaction.atomic():
        unit = get_family_unit(unit_id=unit_id, for_update=True)
        if unit.ownership_transfers.filter(status=TransferStatus.PENDING).exists():
            raise DuplicateTransferError(
                f"{unit.family_label} already has a pending ownership transfer"
            )

        transfer = FamilyOwnershipTransfer.objects.create(
            family_unit=unit,
            current_owner=user,
            proposed_owner_email=proposed_owner_email,
            proposed_owner=User.objects.get_by_email(proposed_owner_email),
            message=message,
        )

    logger.info("Ownership transfer %s of unit %s offered to %s", transfer.id, unit.id, proposed_owner_email)
    if notifications.send_transfer_email(transfer):
        transfer.sent_at = timezone.now()
        transfer.save(update_fields=['sent_at', 'updated_at'])
    return transfer


def respond_to_transfer(*, transfer_id: UUID, user: User, accept: bool) -> FamilyOwnershipTransfer:
    """
    Accept or decline an ownership transfer (proposed owner only).

    Accepting makes ``user`` the trust anchor, gives the previous anchor an
    active membership and ends any membership the new anchor held.

    Raises:
        TransferNotFoundError: If transfer doesn't exist
        InsufficientPermissionsError: If the transfer is not addressed to user
        InvalidStateTransitionError: If it is no longer pending, or the unit
            changed hands since the offer
    """
    transfer = _get_transfer(transfer_id)
    if not transfer.is_addressed_to(user):
        raise InsufficientPermissionsError("This ownership transfer is not addressed to you")

    with transaction.atomic():
        transfer = _lock(transfer)
        ensure_pending(transfer)
        now = timezone.now()

        if not accept:
            return transition(transfer, TransferStatus.DECLINED, responded_at=now, proposed_owner=user)

        unit = get_family_unit(unit_id=transfer.family_unit_id, for_update=True)
        if unit.trust_anchor_id != transfer.current_owner_id:
            raise InvalidStateTransitionError("The family unit has changed owner since this offer")

        previous_anchor = unit.trust_anchor
        unit.trust_anchor = user
        unit.save(update_fields=['trust_anchor', 'updated_at'])

        for membership in FamilyMembership.objects.filter(
            family_unit=unit, member=user, status=MembershipStatus.ACTIVE,
        ):
            membership.status = MembershipStatus.REMOVED
            membership.save(update_fields=['status', 'updated_at'])

        if unit.get_membership(previous_anchor) is None:
            FamilyMembership.objects.create(
                family_unit=unit,
                member=previous_anchor,
                relationship_label=FORMER_ANCHOR_LABEL,
                family_generation=unit.generation_level,
                permissions={key: list(value) for key, value in DEFAULT_MEMBER_PERMISSIONS.items()},
            )

        transition(transfer, TransferStatus.ACCEPTED, responded_at=now, proposed_owner=user)

    logger.info(
        "Family unit %s ownership moved from %s to %s",
        unit.id, previous_anchor.id, user.id,
    )
    return transfer


def cancel_transfer(*, transfer_id: UUID, user: User) -> FamilyOwnershipTransfer:
    """
    Withdraw a pending transfer (current owner only).

    Raises:
        TransferNotFoundError: If transfer doesn't exist
        InsufficientPermissionsError: If user did not offer the transfer
        InvalidStateTransitionError: If it is no longer pending
    """
    transfer = _get_transfer(transfer_id)
    if transfer.current_owner_id != user.id:
        raise InsufficientPermissionsError("Only the current owner can cancel the transfer")

    with transaction.atomic():
        transfer = _lock(transfer)
        return transition(transfer, TransferStatus.CANCELLED)


def get_user_transfers(*, user: User) -> List[FamilyOwnershipTransfer]:
    """Transfers the user offered or received, newest first."""
    return expire_overdue(
        FamilyOwnershipTransfer.objects
        .filter(
            Q(current_owner=user) |
            Q(proposed_owner=user) |
            Q(proposed_owner__isnull=True, proposed_owner_email__iexact=user.email)
        )
        .select_related('family_unit', 'current_owner', 'proposed_owner')
        .order_by('-created_at')
    )
