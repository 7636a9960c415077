"""
Pending family profile service.

A member who may invite can seed a profile for a relative without an
account. Minor profiles stay with their creator; adult profiles get a
claim link by email, and claiming one makes the claimant a member of the
unit with the seeded label and generation.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.family import notifications
from apps.family.models import (
    DEFAULT_MEMBER_PERMISSIONS,
    FamilyMembership,
    MemberType,
    PendingFamilyProfile,
    ProfileStatus,
)

from .exceptions import (
    AlreadyMemberError,
    DuplicateProfileError,
    ExistingAccountError,
    InsufficientPermissionsError,
    InvalidStateTransitionError,
    ProfileNotFoundError,
    ValidationFailedError,
)
from .invitation_management import can_invite, normalize_email
from .lifecycle import ensure_pending, expire_if_due, expire_overdue, transition
from .unit_management import get_family_unit, get_member_unit

logger = logging.getLogger(__name__)


def _get_profile(profile_id: UUID) -> PendingFamilyProfile:
    try:
        profile = (
            PendingFamilyProfile.objects
            .select_related('family_unit', 'created_by')
            .get(id=profile_id)
        )
    except PendingFamilyProfile.DoesNotExist:
        raise ProfileNotFoundError(f"Pending profile with ID {profile_id} not found")
    expire_if_due(profile)
    return profile


def _get_profile_by_token(token: str) -> PendingFamilyProfile:
    try:
        profile = (
            PendingFamilyProfile.objects
            .select_related('family_unit', 'created_by')
            .get(invitation_token=token)
        )
    except PendingFamilyProfile.DoesNotExist:
        raise ProfileNotFoundError("Invalid profile claim token")
    expire_if_due(profile)
    return profile


def _lock(profile: PendingFamilyProfile) -> PendingFamilyProfile:
    return (
        PendingFamilyProfile.objects
        .select_for_update()
        .select_related('family_unit', 'created_by')
        .get(id=profile.id)
    )


def _require_manager(profile: PendingFamilyProfile, user: User) -> None:
    if profile.created_by_id != user.id and not profile.family_unit.is_trust_anchor(user):
        raise InsufficientPermissionsError(
            "Only the creator or the trust anchor can manage this profile"
        )


def _check_claimable_email(unit, email: str, exclude_id: Optional[UUID] = None) -> None:
    if User.objects.get_by_email(email) is not None:
        raise ExistingAccountError(
            f"{email} already has an account; invite them to the family instead"
        )

    pending = PendingFamilyProfile.objects.filter(
        family_unit=unit,
        email__iexact=email,
        status=ProfileStatus.PENDING,
    )
    if exclude_id is not None:
        pending = pending.exclude(id=exclude_id)
    if any(profile.status == ProfileStatus.PENDING for profile in expire_overdue(pending)):
        raise DuplicateProfileError(f"A pending profile for {email} already exists")


def _deliver(profile: PendingFamilyProfile) -> PendingFamilyProfile:
    if notifications.send_profile_claim_email(profile):
        profile.sent_at = timezone.now()
        profile.save(update_fields=['sent_at', 'updated_at'])
    return profile


def create_seed_profile(
    *,
    unit_id: UUID,
    user: User,
    first_name: str,
    relationship_label: str,
    member_type: str = MemberType.ADULT,
    last_name: str = '',
    email: str = '',
    phone: str = '',
    generation_level: Optional[int] = None,
    seed_data: Optional[Dict[str, Any]] = None
) -> PendingFamilyProfile:
    """
    Seed a profile for a relative who has no account yet.

    Adult profiles need an email and are sent a claim link right away;
    minor profiles may omit the email and are never emailed.

    Args:
        unit_id: UUID of the family unit
        user: Member allowed to invite into the unit
        first_name: Relative's first name
        relationship_label: Label the relative will hold, e.g. "Son"
        member_type: ``adult`` or ``minor``
        last_name: Optional last name
        email: Claim address (required for adults)
        phone: Optional phone number
        generation_level: Defaults to the unit's generation
        seed_data: Free-form card data to carry over on claim

    Returns:
        The pending PendingFamilyProfile

    Raises:
        FamilyUnitNotFoundError: If the unit doesn't exist
        InsufficientPermissionsError: If user may not invite into the unit
        ValidationFailedError: If names, email or member type are invalid
        ExistingAccountError: If the email already has an account
        DuplicateProfileError: If a pending profile exists for the email
    """
    unit = get_family_unit(unit_id=unit_id)
    if not can_invite(unit, user):
        raise InsufficientPermissionsError("You are not allowed to add profiles to this family unit")

    if member_type not in MemberType.values:
        raise ValidationFailedError(f"Unsupported member type: {member_type}")
    first_name = (first_name or '').strip()
    relationship_label = (relationship_label or '').strip()
    if not first_name:
        raise ValidationFailedError("First name is required")
    if not relationship_label:
        raise ValidationFailedError("Relationship label is required")

    email = (email or '').strip()
    if email:
        email = normalize_email(email)
    elif member_type == MemberType.ADULT:
        raise ValidationFailedError("An email address is required for adult profiles")

    if email:
        _check_claimable_email(unit, email)

    profile = PendingFamilyProfile.objects.create(
        family_unit=unit,
        created_by=user,
        first_name=first_name,
        last_name=(last_name or '').strip(),
        email=email,
        phone=(phone or '').strip(),
        relationship_label=relationship_label,
        generation_level=generation_level or unit.generation_level,
        member_type=member_type,
        seed_data=seed_data or {},
    )
    logger.info("Pending %s profile %s created in unit %s", member_type, profile.id, unit.id)

    if profile.member_type == MemberType.ADULT:
        _deliver(profile)
    return profile


def send_profile_claim_invitation(*, profile_id: UUID, user: User) -> PendingFamilyProfile:
    """
    Email the claim link of an adult profile (again).

    Raises:
        ProfileNotFoundError: If profile doesn't exist
        InsufficientPermissionsError: If user may not manage it
        InvalidStateTransitionError: If it is no longer pending
        ValidationFailedError: If it is a minor profile
    """
    profile = _get_profile(profile_id)
    _require_manager(profile, user)
    ensure_pending(profile)
    if profile.member_type != MemberType.ADULT:
        raise ValidationFailedError("Minor profiles cannot be sent a claim invitation")
    return _deliver(profile)


def upgrade_profile_to_adult(
    *,
    profile_id: UUID,
    user: User,
    email: Optional[str] = None
) -> PendingFamilyProfile:
    """
    Turn a minor profile into an adult one so it can be claimed.

    ``email`` sets the claim address; it is required when the minor
    profile was created without one.

    Raises:
        ProfileNotFoundError: If profile doesn't exist
        InsufficientPermissionsError: If user may not manage it
        InvalidStateTransitionError: If it is no longer pending
        ValidationFailedError: If it is already an adult or has no email
        ExistingAccountError: If the email already has an account
        DuplicateProfileError: If another pending profile uses the email
    """
    profile = _get_profile(profile_id)
    _require_manager(profile, user)

    email = normalize_email(email) if email else profile.email
    if not email:
        raise ValidationFailedError("An email address is required for adult profiles")
    if email != profile.email:
        _check_claimable_email(profile.family_unit, email, exclude_id=profile.id)

    with transaction.atomic():
        profile = _lock(profile)
        ensure_pending(profile)
        if profile.member_type == MemberType.ADULT:
            raise ValidationFailedError("Profile is already an adult profile")

        profile.member_type = MemberType.ADULT
        profile.email = email
        profile.save(update_fields=['member_type', 'email', 'updated_at'])

    logger.info("Pending profile %s upgraded to adult", profile.id)
    return profile


def claim_pending_profile(*, token: str, user: User) -> FamilyMembership:
    """
    Claim an adult profile and join its family unit.

    The profile must be addressed to the user's email. Membership creation
    and the claim commit together.

    Raises:
        ProfileNotFoundError: If the token matches nothing
        InsufficientPermissionsError: If the profile is for another address
        InvalidStateTransitionError: If it is no longer pending or is a minor
        AlreadyMemberError: If user already belongs to the unit
    """
    profile = _get_profile_by_token(token)
    if not profile.is_addressed_to(user):
        raise InsufficientPermissionsError("This profile was not created for your email address")
    if profile.member_type != MemberType.ADULT:
        raise InvalidStateTransitionError("Minor profiles cannot be claimed")

    with transaction.atomic():
        profile = _lock(profile)
        ensure_pending(profile)

        unit = get_family_unit(unit_id=profile.family_unit_id, for_update=True)
        if unit.has_member(user):
            raise AlreadyMemberError(f"You are already a member of {unit.family_label}")

        membership = FamilyMembership.objects.create(
            family_unit=unit,
            member=user,
            relationship_label=profile.relationship_label,
            family_generation=profile.generation_level,
            permissions={key: list(value) for key, value in DEFAULT_MEMBER_PERMISSIONS.items()},
        )
        transition(
            profile,
            ProfileStatus.CLAIMED,
            claimed_by=user,
            claimed_at=timezone.now(),
        )

    logger.info("User %s claimed pending profile %s in unit %s", user.id, profile.id, unit.id)
    return membership


def decline_profile_claim(*, token: str, user: User) -> PendingFamilyProfile:
    """
    Decline a profile claim addressed to the user.

    Raises:
        ProfileNotFoundError: If the token matches nothing
        InsufficientPermissionsError: If the profile is for another address
        InvalidStateTransitionError: If it is no longer pending
    """
    profile = _get_profile_by_token(token)
    if not profile.is_addressed_to(user):
        raise InsufficientPermissionsError("This profile was not created for your email address")

    with transaction.atomic():
        profile = _lock(profile)
        return transition(profile, ProfileStatus.DECLINED)


def delete_pending_profile(*, profile_id: UUID, user: User) -> None:
    """
    Delete a profile (creator or trust anchor).

    Raises:
        ProfileNotFoundError: If profile doesn't exist
        InsufficientPermissionsError: If user may not manage it
    """
    profile = _get_profile(profile_id)
    _require_manager(profile, user)
    profile.delete()
    logger.info("Pending profile %s deleted by %s", profile_id, user.id)


def get_pending_profiles(*, user: User, unit_id: Optional[UUID] = None) -> List[PendingFamilyProfile]:
    """
    Profiles of a unit the user belongs to, or every profile the user
    created when no unit is given. Newest first, overdue ones expired.
    """
    if unit_id is not None:
        queryset = get_member_unit(unit_id=unit_id, user=user).pending_profiles.all()
    else:
        queryset = PendingFamilyProfile.objects.filter(created_by=user)
    return expire_overdue(
        queryset.select_related('family_unit', 'created_by', 'claimed_by').order_by('-created_at')
    )


def get_claimable_profiles(*, user: User) -> List[PendingFamilyProfile]:
    """Pending adult profiles seeded for the user's email."""
    profiles = expire_overdue(
        PendingFamilyProfile.objects
        .filter(
            email__iexact=user.email,
            member_type=MemberType.ADULT,
            status=ProfileStatus.PENDING,
            family_unit__is_active=True,
        )
        .select_related('family_unit', 'created_by')
        .order_by('-created_at')
    )
    return [profile for profile in profiles if profile.status == ProfileStatus.PENDING]
