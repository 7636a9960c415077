# ==========================================
# apps/relationships/models.py
# ==========================================

from django.db import models
import uuid

from apps.family.models import PendingLifecycleModel, generate_token


class RelationshipStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'
    EXPIRED = 'expired', 'Expired'
    CANCELLED = 'cancelled', 'Cancelled'


class RelationshipCard(PendingLifecycleModel):
    """
    One side of a person-to-person relationship.

    The sender's card starts pending and addressed by email. Accepting it
    creates the acceptor's reciprocal card, with the labels swapped, and
    links the two through ``reciprocal_card``.
    """

    expiry_setting = 'RELATIONSHIP_INVITATION_EXPIRY_DAYS'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    from_user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='relationship_cards',
    )
    to_user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='incoming_relationship_cards',
    )
    to_user_email = models.EmailField()
    relationship_label_from = models.CharField(max_length=100)
    relationship_label_to = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=RelationshipStatus.choices, default=RelationshipStatus.PENDING)
    confidence = models.JSONField(default=dict, blank=True)
    network_rules = models.TextField(blank=True)
    shared_attributes = models.JSONField(default=list, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    invitation_token = models.CharField(max_length=64, unique=True, default=generate_token)
    accepted_at = models.DateTimeField(null=True, blank=True)
    label_modified = models.BooleanField(default=False)
    reciprocal_card = models.OneToOneField(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    terminated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'relationship_cards'
        indexes = [
            models.Index(fields=['from_user', 'status'], name='rel_cards_from_status_idx'),
            models.Index(fields=['to_user_email', 'status'], name='rel_cards_email_status_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.from_user} -> {self.to_user_email} as {self.relationship_label_to} ({self.status})"

    @property
    def is_active(self):
        return self.status == RelationshipStatus.ACCEPTED and self.terminated_at is None

    def is_addressed_to(self, user):
        if self.to_user_id is not None:
            return self.to_user_id == user.id
        return self.to_user_email.lower() == user.email.lower()

    def involves(self, user):
        return self.from_user_id == user.id or self.to_user_id == user.id
