# ==========================================
# apps/sharing/models.py
# ==========================================

from django.db import models
from django.utils import timezone
import uuid


class ResourceType(models.TextChoices):
    CARD = 'card', 'Card'
    FAMILY_UNIT = 'family_unit', 'Family Unit'
    ORGANIZATION = 'organization', 'Organization'


class PermissionAction(models.TextChoices):
    VIEW = 'view', 'View'
    EDIT = 'edit', 'Edit'
    SHARE = 'share', 'Share'
    DELETE = 'delete', 'Delete'
    DOWNLOAD = 'download', 'Download'


class PermissionResource(models.TextChoices):
    CARD = 'card', 'Card'
    FIELD = 'field', 'Field'
    RELATIONSHIP = 'relationship', 'Relationship'
    FAMILY_DATA = 'family_data', 'Family Data'


class ConditionType(models.TextChoices):
    TIME_RANGE = 'time_range', 'Time Range'
    LOCATION = 'location', 'Location'
    DEVICE = 'device', 'Device'
    PURPOSE = 'purpose', 'Purpose'
    CONTEXT = 'context', 'Context'


class UserCard(models.Model):
    """
    Profile card owned by a user.

    ``fields`` maps a field key to ``{"field_type": ..., "value": ...}``;
    composite values are split into granular components on read.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='cards')
    title = models.CharField(max_length=200)
    fields = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_cards'
        indexes = [
            models.Index(fields=['owner', 'created_at'], name='user_cards_owner_created_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class SharingPolicy(models.Model):
    """Grant of permissions on one resource to one user (or the public)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    resource_id = models.UUIDField(db_index=True)
    resource_type = models.CharField(max_length=20, choices=ResourceType.choices, default=ResourceType.CARD)
    granted_to = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='received_policies',
        help_text='NULL grants the policy to everyone',
    )
    created_by = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='created_policies')
    shared_components = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'sharing_policies'
        indexes = [
            models.Index(fields=['resource_id', 'is_active'], name='policies_resource_active_idx'),
            models.Index(fields=['granted_to', 'is_active'], name='policies_grantee_active_idx'),
        ]
        ordering = ['created_at']
        verbose_name_plural = 'sharing policies'

    def __str__(self):
        grantee = self.granted_to.email if self.granted_to_id else 'public'
        return f"{self.resource_type}:{self.resource_id} -> {grantee}"

    @property
    def is_public(self):
        return self.granted_to_id is None

    def is_expired(self, now=None):
        now = now or timezone.now()
        return self.expires_at is not None and self.expires_at <= now


class PolicyPermission(models.Model):
    """One action on one resource kind, granted or denied, under conditions."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    policy = models.ForeignKey(SharingPolicy, on_delete=models.CASCADE, related_name='permissions')
    action = models.CharField(max_length=20, choices=PermissionAction.choices, default=PermissionAction.VIEW)
    resource = models.CharField(max_length=20, choices=PermissionResource.choices, default=PermissionResource.CARD)
    granted = models.BooleanField(default=True)
    conditions = models.JSONField(default=list, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'policy_permissions'
        indexes = [
            models.Index(fields=['policy', 'action'], name='policy_perms_action_idx'),
        ]
        ordering = ['created_at']

    def __str__(self):
        verb = 'allow' if self.granted else 'deny'
        return f"{verb} {self.action} on {self.resource}"

    def is_expired(self, now=None):
        now = now or timezone.now()
        return self.expires_at is not None and self.expires_at <= now
