"""
Family invitation service.

Invitations are sent to an email address, carry a token and expire after
FAMILY_INVITATION_EXPIRY_DAYS. Accepting one creates the membership and
closes the invitation in a single transaction.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.family import notifications
from apps.family.models import (
    DEFAULT_MEMBER_PERMISSIONS,
    FamilyInvitation,
    FamilyMembership,
    FamilyUnit,
    InvitationStatus,
    MembershipStatus,
    generate_token,
)
from apps.sharing.models import PermissionAction, ResourceType
from apps.sharing.services import check_permission, has_access_permission

from .exceptions import (
    AlreadyMemberError,
    DuplicateInvitationError,
    InsufficientPermissionsError,
    InvitationNotFoundError,
    ValidationFailedError,
)
from .lifecycle import ensure_pending, expire_if_due, expire_overdue, transition
from .unit_management import get_family_unit, get_member_unit

logger = logging.getLogger(__name__)

REACTIVATABLE_STATUSES = [InvitationStatus.CANCELLED, InvitationStatus.EXPIRED]

# lookup_invitation results
LOOKUP_VALID = 'valid'
LOOKUP_NOT_FOUND = 'not_found'


def normalize_email(email: str) -> str:
    """
    Trim and lowercase an email address.

    Raises:
        ValidationFailedError: If the address is not a valid email
    """
    email = (email or '').strip().lower()
    try:
        validate_email(email)
    except ValidationError:
        raise ValidationFailedError(f"Invalid email address: {email or '(empty)'}")
    return email


def can_invite(unit: FamilyUnit, user: User) -> bool:
    """
    Whether ``user`` may invite people into ``unit``.

    Trust anchors always may. An active member may when a sharing policy on
    the unit grants them ``share``; with no policy deciding, their
    membership permissions must include ``share`` on members.
    """
    if unit.is_trust_anchor(user):
        return True
    membership = unit.get_membership(user)
    if membership is None:
        return False

    decision = check_permission(
        user=user,
        resource_id=unit.id,
        action=PermissionAction.SHARE,
        resource_type=ResourceType.FAMILY_UNIT,
    )
    if decision.policy is not None:
        return decision.granted
    return has_access_permission(membership.permissions, 'members', 'share')


def _get_invitation(invitation_id: UUID) -> FamilyInvitation:
    try:
        invitation = (
            FamilyInvitation.objects
            .select_related('family_unit', 'invited_by')
            .get(id=invitation_id)
        )
    except FamilyInvitation.DoesNotExist:
        raise InvitationNotFoundError(f"Invitation with ID {invitation_id} not found")
    expire_if_due(invitation)
    return invitation


def _get_invitation_by_token(token: str) -> FamilyInvitation:
    try:
        invitation = (
            FamilyInvitation.objects
            .select_related('family_unit', 'invited_by')
            .get(invitation_token=token)
        )
    except FamilyInvitation.DoesNotExist:
        raise InvitationNotFoundError("Invalid invitation token")
    expire_if_due(invitation)
    return invitation


def _lock(invitation: FamilyInvitation) -> FamilyInvitation:
    return (
        FamilyInvitation.objects
        .select_for_update()
        .select_related('family_unit', 'invited_by')
        .get(id=invitation.id)
    )


def _require_manager(invitation: FamilyInvitation, user: User) -> None:
    if invitation.invited_by_id != user.id and not invitation.family_unit.is_trust_anchor(user):
        raise InsufficientPermissionsError(
            "Only the sender or the trust anchor can manage this invitation"
        )


def _deliver(invitation: FamilyInvitation) -> FamilyInvitation:
    if notifications.send_invitation_email(invitation):
        invitation.sent_at = timezone.now()
        invitation.save(update_fields=['sent_at', 'updated_at'])
    return invitation


def send_family_invitation(
    *,
    unit_id: UUID,
    invited_by: User,
    invitee_email: str,
    relationship_role: str,
    invitee_name: str = '',
    personal_message: str = ''
) -> FamilyInvitation:
    """
    Invite someone to a family unit by email.

    A cancelled or expired invitation for the same address is reactivated
    with a fresh token and expiry instead of creating a second record.
    The email is sent after the invitation is stored; a delivery failure
    leaves ``sent_at`` empty.

    Args:
        unit_id: UUID of the family unit
        invited_by: Trust anchor (or member allowed to share members)
        invitee_email: Address to invite
        relationship_role: Role the invitee will hold, e.g. "Daughter"
        invitee_name: Optional display name for the email
        personal_message: Optional note included in the email

    Returns:
        The pending FamilyInvitation

    Raises:
        FamilyUnitNotFoundError: If the unit doesn't exist
        InsufficientPermissionsError: If invited_by may not invite
        ValidationFailedError: If the email or role is invalid
        AlreadyMemberError: If the invitee already belongs to the unit
        DuplicateInvitationError: If a pending invitation exists
    """
    unit = get_family_unit(unit_id=unit_id)
    if not can_invite(unit, invited_by):
        raise InsufficientPermissionsError("You are not allowed to invite members to this family unit")

    invitee_email = normalize_email(invitee_email)
    relationship_role = (relationship_role or '').strip()
    if not relationship_role:
        raise ValidationFailedError("Relationship role is required")

    invitee = User.objects.get_by_email(invitee_email)
    if invitee is not None and unit.has_member(invitee):
        raise AlreadyMemberError(f"{invitee_email} is already a member of {unit.family_label}")

    expire_overdue(FamilyInvitation.objects.filter(
        family_unit=unit,
        invitee_email=invitee_email,
        status=InvitationStatus.PENDING,
    ))

    with transaction.atomic():
        unit = get_family_unit(unit_id=unit_id, for_update=True)
        previous = (
            FamilyInvitation.objects
            .select_for_update()
            .filter(family_unit=unit, invitee_email=invitee_email)
        )
        if previous.filter(status=InvitationStatus.PENDING).exists():
            raise DuplicateInvitationError(
                f"A pending invitation for {invitee_email} already exists"
            )

        existing = (
            previous
            .filter(status__in=REACTIVATABLE_STATUSES)
            .order_by('-updated_at')
            .first()
        )
        if existing is not None:
            existing.status = InvitationStatus.PENDING
            existing.invitation_token = generate_token()
            existing.expires_at = FamilyInvitation.default_expiry()
            existing.invited_by = invited_by
            existing.invitee_name = invitee_name
            existing.relationship_role = relationship_role
            existing.personal_message = personal_message
            existing.sent_at = None
            existing.save()
            invitation = existing
            logger.info("Family invitation %s reactivated for %s", invitation.id, invitee_email)
        else:
            invitation = FamilyInvitation.objects.create(
                family_unit=unit,
                invited_by=invited_by,
                invitee_email=invitee_email,
                invitee_name=invitee_name,
                relationship_role=relationship_role,
                personal_message=personal_message,
            )
            logger.info("Family invitation %s created for %s", invitation.id, invitee_email)

    return _deliver(invitation)


def cancel_invitation(*, invitation_id: UUID, user: User) -> FamilyInvitation:
    """
    Cancel a pending invitation (sender or trust anchor).

    Raises:
        InvitationNotFoundError: If invitation doesn't exist
        InsufficientPermissionsError: If user may not manage it
        InvalidStateTransitionError: If it is no longer pending
    """
    invitation = _get_invitation(invitation_id)
    _require_manager(invitation, user)

    with transaction.atomic():
        invitation = _lock(invitation)
        return transition(invitation, InvitationStatus.CANCELLED)


def resend_invitation(*, invitation_id: UUID, user: User) -> FamilyInvitation:
    """
    Send the invitation email again (pending invitations only).

    Raises:
        InvitationNotFoundError: If invitation doesn't exist
        InsufficientPermissionsError: If user may not manage it
        InvalidStateTransitionError: If it is no longer pending
    """
    invitation = _get_invitation(invitation_id)
    _require_manager(invitation, user)
    ensure_pending(invitation)
    return _deliver(invitation)


def lookup_invitation(*, token: str) -> Tuple[str, Optional[FamilyInvitation]]:
    """
    Resolve an invitation token for the landing page.

    Returns:
        ``(status, invitation)`` where status is ``valid`` for a usable
        invitation, the terminal status otherwise, or ``not_found``
    """
    try:
        invitation = _get_invitation_by_token(token)
    except InvitationNotFoundError:
        return LOOKUP_NOT_FOUND, None

    if invitation.status == InvitationStatus.PENDING:
        return LOOKUP_VALID, invitation
    return invitation.status, invitation


def accept_invitation(*, token: str, user: User) -> FamilyMembership:
    """
    Accept an invitation and join the family unit.

    Membership creation and invitation acceptance commit together.

    Raises:
        InvitationNotFoundError: If the token matches nothing
        InvalidStateTransitionError: If the invitation is no longer pending
        AlreadyMemberError: If user already belongs to the unit
    """
    invitation = _get_invitation_by_token(token)

    with transaction.atomic():
        invitation = _lock(invitation)
        ensure_pending(invitation)

        unit = get_family_unit(unit_id=invitation.family_unit_id, for_update=True)
        if unit.has_member(user):
            raise AlreadyMemberError(f"You are already a member of {unit.family_label}")

        membership = FamilyMembership.objects.create(
            family_unit=unit,
            member=user,
            relationship_label=invitation.relationship_role,
            family_generation=unit.generation_level,
            permissions={key: list(value) for key, value in DEFAULT_MEMBER_PERMISSIONS.items()},
            status=MembershipStatus.ACTIVE,
        )
        transition(
            invitation,
            InvitationStatus.ACCEPTED,
            accepted_at=timezone.now(),
            accepted_by=user,
        )

    logger.info("User %s joined family unit %s", user.id, unit.id)
    return membership


def decline_invitation(*, token: str, user: User) -> FamilyInvitation:
    """
    Decline an invitation.

    Raises:
        InvitationNotFoundError: If the token matches nothing
        InvalidStateTransitionError: If the invitation is no longer pending
    """
    invitation = _get_invitation_by_token(token)

    with transaction.atomic():
        invitation = _lock(invitation)
        transition(invitation, InvitationStatus.REJECTED)

    logger.info("User %s declined family invitation %s", user.id, invitation.id)
    return invitation


def get_unit_invitations(*, unit_id: UUID, user: User) -> List[FamilyInvitation]:
    """Invitations of a unit, newest first, with overdue ones expired."""
    unit = get_member_unit(unit_id=unit_id, user=user)
    return expire_overdue(
        unit.invitations.select_related('invited_by', 'accepted_by').order_by('-created_at')
    )
