# ==========================================
# apps/family/models.py
# ==========================================

from datetime import timedelta

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
import uuid
import secrets


def generate_token():
    return secrets.token_urlsafe(32)


class MembershipStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    REMOVED = 'removed', 'Removed'


class InvitationStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'
    EXPIRED = 'expired', 'Expired'
    CANCELLED = 'cancelled', 'Cancelled'


class ConnectionStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    EXPIRED = 'expired', 'Expired'
    CANCELLED = 'cancelled', 'Cancelled'


class TransferStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    DECLINED = 'declined', 'Declined'
    EXPIRED = 'expired', 'Expired'
    CANCELLED = 'cancelled', 'Cancelled'


class ProfileStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    CLAIMED = 'claimed', 'Claimed'
    EXPIRED = 'expired', 'Expired'
    DECLINED = 'declined', 'Declined'


class MemberType(models.TextChoices):
    MINOR = 'minor', 'Minor'
    ADULT = 'adult', 'Adult'


class ConnectionType(models.TextChoices):
    HIERARCHICAL = 'hierarchical', 'Hierarchical'
    SIBLING = 'sibling', 'Sibling'
    EXTENDED = 'extended', 'Extended'


class ConnectionDirection(models.TextChoices):
    INVITATION = 'invitation', 'Invitation'
    REQUEST = 'request', 'Request'


DEFAULT_MEMBER_PERMISSIONS = {
    'cards': ['view'],
    'members': ['view'],
}


class FamilyUnit(models.Model):
    """
    Family unit anchored by one user.

    Units form a tree through ``parent_family_unit``; the root sits at
    generation 1 and every child one generation below its parent.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    family_label = models.CharField(max_length=200)
    trust_anchor = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='anchored_family_units',
    )
    parent_family_unit = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='child_units',
    )
    generation_level = models.PositiveIntegerField(default=1)
    family_metadata = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'family_units'
        indexes = [
            models.Index(fields=['trust_anchor', 'is_active'], name='family_units_anchor_idx'),
            models.Index(fields=['family_label'], name='family_units_label_idx'),
        ]
        ordering = ['generation_level', 'family_label']

    def __str__(self):
        return self.family_label

    def is_trust_anchor(self, user):
        return self.trust_anchor_id == user.id

    def get_membership(self, user):
        return self.memberships.filter(member=user, status=MembershipStatus.ACTIVE).first()

    def has_member(self, user):
        return self.is_trust_anchor(user) or self.get_membership(user) is not None

    def ancestor_ids(self):
        """Ids of every unit above this one, nearest first."""
        ids = []
        parent_id = self.parent_family_unit_id
        while parent_id is not None and parent_id not in ids:
            ids.append(parent_id)
            parent_id = (
                FamilyUnit.objects
                .filter(id=parent_id)
                .values_list('parent_family_unit_id', flat=True)
                .first()
            )
        return ids


class FamilyMembership(models.Model):
    """Membership of a user in a family unit."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    family_unit = models.ForeignKey(FamilyUnit, on_delete=models.CASCADE, related_name='memberships')
    member = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='family_memberships')
    relationship_label = models.CharField(max_length=100, blank=True)
    family_generation = models.PositiveIntegerField(default=1)
    permissions = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=MembershipStatus.choices, default=MembershipStatus.ACTIVE)
    joined_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'family_memberships'
        constraints = [
            models.UniqueConstraint(
                fields=['family_unit', 'member'],
                condition=Q(status='active'),
                name='unique_active_family_membership',
            ),
        ]
        indexes = [
            models.Index(fields=['member', 'status'], name='family_members_member_idx'),
        ]
        ordering = ['joined_at']

    def __str__(self):
        return f"{self.member.get_display_name()} in {self.family_unit.family_label}"


class PendingLifecycleModel(models.Model):
    """
    Shared shape of invitation-like records.

    A record starts ``pending`` with a token and an expiry; every other
    status is terminal.
    """

    PENDING = 'pending'
    EXPIRED = 'expired'
    expiry_setting = None

    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self.expires_at:
            self.expires_at = self.default_expiry()
        super().save(*args, **kwargs)

    @classmethod
    def default_expiry(cls, now=None):
        now = now or timezone.now()
        return now + timedelta(days=getattr(settings, cls.expiry_setting))

    @property
    def is_terminal(self):
        return self.status != self.PENDING

    def is_overdue(self, now=None):
        now = now or timezone.now()
        return self.status == self.PENDING and self.expires_at <= now


class FamilyInvitation(PendingLifecycleModel):
    """Invitation for someone (by email) to join a family unit."""

    expiry_setting = 'FAMILY_INVITATION_EXPIRY_DAYS'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    family_unit = models.ForeignKey(FamilyUnit, on_delete=models.CASCADE, related_name='invitations')
    invited_by = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='sent_family_invitations')
    invitee_email = models.EmailField()
    invitee_name = models.CharField(max_length=200, blank=True)
    relationship_role = models.CharField(max_length=100)
    personal_message = models.TextField(blank=True)
    invitation_token = models.CharField(max_length=64, unique=True, default=generate_token)
    status = models.CharField(max_length=20, choices=InvitationStatus.choices, default=InvitationStatus.PENDING)
    sent_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    accepted_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='accepted_family_invitations',
    )

    class Meta:
        db_table = 'family_invitations'
        indexes = [
            models.Index(fields=['family_unit', 'invitee_email', 'status'], name='family_inv_unit_email_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.invitee_email} -> {self.family_unit.family_label} ({self.status})"


class FamilyConnection(PendingLifecycleModel):
    """
    Proposed edge between two family units.

    ``invitation`` means the initiating unit is the parent, ``request``
    means the initiating unit asks to become the child.
    """

    expiry_setting = 'FAMILY_CONNECTION_EXPIRY_DAYS'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    parent_family_unit = models.ForeignKey(FamilyUnit, on_delete=models.CASCADE, related_name='child_connections')
    child_family_unit = models.ForeignKey(FamilyUnit, on_delete=models.CASCADE, related_name='parent_connections')
    connection_type = models.CharField(max_length=20, choices=ConnectionType.choices, default=ConnectionType.HIERARCHICAL)
    connection_direction = models.CharField(max_length=20, choices=ConnectionDirection.choices)
    initiated_by = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='initiated_family_connections')
    approved_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='approved_family_connections',
    )
    invitation_token = models.CharField(max_length=64, unique=True, default=generate_token)
    personal_message = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=ConnectionStatus.choices, default=ConnectionStatus.PENDING)
    approved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'family_connections'
        indexes = [
            models.Index(fields=['parent_family_unit', 'status'], name='family_conn_parent_idx'),
            models.Index(fields=['child_family_unit', 'status'], name='family_conn_child_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.parent_family_unit} -> {self.child_family_unit} ({self.status})"

    @property
    def initiating_unit_id(self):
        if self.connection_direction == ConnectionDirection.INVITATION:
            return self.parent_family_unit_id
        return self.child_family_unit_id

    @property
    def receiving_unit_id(self):
        if self.connection_direction == ConnectionDirection.INVITATION:
            return self.child_family_unit_id
        return self.parent_family_unit_id


class FamilyOwnershipTransfer(PendingLifecycleModel):
    """Offer to hand a family unit's trust anchor role to someone else."""

    expiry_setting = 'OWNERSHIP_TRANSFER_EXPIRY_DAYS'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    family_unit = models.ForeignKey(FamilyUnit, on_delete=models.CASCADE, related_name='ownership_transfers')
    current_owner = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='outgoing_ownership_transfers')
    proposed_owner_email = models.EmailField()
    proposed_owner = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='incoming_ownership_transfers',
    )
    transfer_token = models.CharField(max_length=64, unique=True, default=generate_token)
    message = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=TransferStatus.choices, default=TransferStatus.PENDING)
    sent_at = models.DateTimeField(null=True, blank=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'family_ownership_transfers'
        indexes = [
            models.Index(fields=['family_unit', 'status'], name='family_transfer_unit_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.family_unit} -> {self.proposed_owner_email} ({self.status})"

    def is_addressed_to(self, user):
        if self.proposed_owner_id is not None:
            return self.proposed_owner_id == user.id
        return self.proposed_owner_email.lower() == user.email.lower()


class PendingFamilyProfile(PendingLifecycleModel):
    """
    Placeholder for a relative who has no account yet.

    Minors are kept by the creator without an email. Adults can be sent a
    claim link; claiming turns the profile into a membership of the unit.
    """

    expiry_setting = 'PENDING_PROFILE_EXPIRY_DAYS'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    family_unit = models.ForeignKey(FamilyUnit, on_delete=models.CASCADE, related_name='pending_profiles')
    created_by = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='created_family_profiles')
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    relationship_label = models.CharField(max_length=100)
    generation_level = models.PositiveIntegerField(default=1)
    member_type = models.CharField(max_length=10, choices=MemberType.choices, default=MemberType.ADULT)
    seed_data = models.JSONField(default=dict, blank=True)
    invitation_token = models.CharField(max_length=64, unique=True, default=generate_token)
    status = models.CharField(max_length=20, choices=ProfileStatus.choices, default=ProfileStatus.PENDING)
    claimed_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='claimed_family_profiles',
    )
    claimed_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'pending_family_profiles'
        indexes = [
            models.Index(fields=['family_unit', 'status'], name='family_profile_unit_idx'),
            models.Index(fields=['email', 'status'], name='family_profile_email_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.full_name} in {self.family_unit.family_label} ({self.status})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def is_addressed_to(self, user):
        return bool(self.email) and self.email.lower() == user.email.lower()
