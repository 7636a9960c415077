"""
Outbound email for invitations, connections, ownership transfers, profile
claims and relationship invitations.

Delivery never fails the action that triggered it: when the mail backend
raises, the failure and the action link are logged and the caller carries
on with the record already saved.
"""

import logging
from urllib.parse import urlencode

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

from apps.family.models import ConnectionDirection, FamilyUnit

logger = logging.getLogger(__name__)


def build_action_url(path: str, **params) -> str:
    base = settings.FRONTEND_URL.rstrip('/')
    return f"{base}/{path.lstrip('/')}?{urlencode(params)}"


def deliver(*, subject: str, template: str, context: dict, recipient: str, action_url: str) -> bool:
    """
    Render ``template`` and send it to ``recipient``.

    Returns:
        True when the backend accepted the message, False otherwise
    """
    body = render_to_string(template, {**context, 'action_url': action_url})
    try:
        send_mail(
            subject,
            body,
            settings.DEFAULT_FROM_EMAIL,
            [recipient],
            fail_silently=False,
        )
    except Exception:
        logger.warning(
            "Email '%s' to %s could not be sent; action link: %s",
            subject, recipient, action_url,
            exc_info=True,
        )
        return False

    logger.info("Email '%s' sent to %s", subject, recipient)
    return True


def send_invitation_email(invitation) -> bool:
    unit = invitation.family_unit
    sender = invitation.invited_by.get_display_name()
    return deliver(
        subject=f"{sender} invited you to join the {unit.family_label} family",
        template='family/email/invitation.txt',
        context={
            'invitation': invitation,
            'sender_name': sender,
            'family_label': unit.family_label,
            'expiry_days': settings.FAMILY_INVITATION_EXPIRY_DAYS,
        },
        recipient=invitation.invitee_email,
        action_url=build_action_url('register', invitation=invitation.invitation_token),
    )


def send_connection_email(connection) -> bool:
    initiating = FamilyUnit.objects.get(id=connection.initiating_unit_id)
    receiving = FamilyUnit.objects.select_related('trust_anchor').get(id=connection.receiving_unit_id)
    sender = connection.initiated_by.get_display_name()

    if connection.connection_direction == ConnectionDirection.INVITATION:
        subject = f"{sender} invited {receiving.family_label} to connect families"
    else:
        subject = f"{sender} requested to connect to {receiving.family_label} family"

    return deliver(
        subject=subject,
        template='family/email/connection.txt',
        context={
            'connection': connection,
            'sender_name': sender,
            'initiating_label': initiating.family_label,
            'receiving_label': receiving.family_label,
            'parent_label': connection.parent_family_unit.family_label,
            'child_label': connection.child_family_unit.family_label,
            'expiry_days': settings.FAMILY_CONNECTION_EXPIRY_DAYS,
        },
        recipient=receiving.trust_anchor.email,
        action_url=build_action_url('family-connection', token=connection.invitation_token),
    )


def send_transfer_email(transfer) -> bool:
    unit = transfer.family_unit
    owner = transfer.current_owner
    return deliver(
        subject=(
            f"{owner.get_display_name()} wants to transfer "
            f"\"{unit.family_label}\" family unit ownership to you"
        ),
        template='family/email/ownership_transfer.txt',
        context={
            'transfer': transfer,
            'owner_name': owner.get_display_name(),
            'owner_email': owner.email,
            'family_label': unit.family_label,
            'decline_url': build_action_url('decline-ownership', token=transfer.transfer_token),
            'expiry_days': settings.OWNERSHIP_TRANSFER_EXPIRY_DAYS,
        },
        recipient=transfer.proposed_owner_email,
        action_url=build_action_url('accept-ownership', token=transfer.transfer_token),
    )


def send_profile_claim_email(profile) -> bool:
    unit = profile.family_unit
    creator = profile.created_by.get_display_name()
    return deliver(
        subject=f"{creator} created a profile for you in the {unit.family_label} family",
        template='family/email/profile_claim.txt',
        context={
            'profile': profile,
            'creator_name': creator,
            'family_label': unit.family_label,
            'expiry_days': settings.PENDING_PROFILE_EXPIRY_DAYS,
        },
        recipient=profile.email,
        action_url=build_action_url('claim-profile', token=profile.invitation_token),
    )


def send_relationship_email(card) -> bool:
    sender = card.from_user.get_display_name()
    return deliver(
        subject=f"{sender} wants to connect with you as {card.relationship_label_to}",
        template='family/email/relationship_invitation.txt',
        context={
            'card': card,
            'sender_name': sender,
            'expiry_days': settings.RELATIONSHIP_INVITATION_EXPIRY_DAYS,
        },
        recipient=card.to_user_email,
        action_url=build_action_url('relationship-invitation', token=card.invitation_token),
    )
