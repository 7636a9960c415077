from rest_framework import serializers

from apps.accounts.serializers import UserMinimalSerializer
from .models import (
    ConditionType,
    PermissionAction,
    PermissionResource,
    PolicyPermission,
    ResourceType,
    SharingPolicy,
    UserCard,
)
from .services import PERMISSION_TEMPLATES


class CardFieldSerializer(serializers.Serializer):
    field_type = serializers.CharField(max_length=50, default='text')
    value = serializers.CharField(allow_blank=True, trim_whitespace=True)


class UserCardSerializer(serializers.ModelSerializer):
    """Serializer for profile cards (owner view)."""

    owner = UserMinimalSerializer(read_only=True)
    fields = serializers.DictField(child=CardFieldSerializer(), required=False)

    class Meta:
        model = UserCard
        fields = ['id', 'owner', 'title', 'fields', 'created_at', 'updated_at']
        read_only_fields = ['id', 'owner', 'created_at', 'updated_at']


class ConditionSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=ConditionType.choices)
    value = serializers.JSONField()
    description = serializers.CharField(required=False, allow_blank=True)


class PermissionInputSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=PermissionAction.choices, default=PermissionAction.VIEW)
    resource = serializers.ChoiceField(choices=PermissionResource.choices, default=PermissionResource.CARD)
    granted = serializers.BooleanField(default=True)
    conditions = ConditionSerializer(many=True, required=False)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)


class PolicyPermissionSerializer(serializers.ModelSerializer):

    class Meta:
        model = PolicyPermission
        fields = ['id', 'action', 'resource', 'granted', 'conditions', 'expires_at', 'created_at']
        read_only_fields = fields


class SharingPolicySerializer(serializers.ModelSerializer):
    """Read serializer for sharing policies."""

    granted_to = UserMinimalSerializer(read_only=True)
    permissions = PolicyPermissionSerializer(many=True, read_only=True)

    class Meta:
        model = SharingPolicy
        fields = [
            'id',
            'resource_id',
            'resource_type',
            'granted_to',
            'created_by',
            'shared_components',
            'metadata',
            'permissions',
            'is_active',
            'expires_at',
            'created_at',
        ]
        read_only_fields = fields


class SharingPolicyCreateSerializer(serializers.Serializer):
    """
    Input for creating a policy.

    Omit ``granted_to_email`` to share publicly.
    """

    resource_id = serializers.UUIDField()
    resource_type = serializers.ChoiceField(choices=ResourceType.choices, default=ResourceType.CARD)
    granted_to_email = serializers.EmailField(required=False, allow_null=True)
    permissions = PermissionInputSerializer(many=True, required=False)
    template = serializers.ChoiceField(choices=list(PERMISSION_TEMPLATES), required=False)
    conditions = ConditionSerializer(many=True, required=False)
    shared_components = serializers.DictField(
        child=serializers.ListField(child=serializers.CharField()),
        required=False,
    )
    expires_at = serializers.DateTimeField(required=False, allow_null=True)


class ParseFieldSerializer(serializers.Serializer):
    field_type = serializers.CharField(max_length=50)
    value = serializers.CharField(allow_blank=True, trim_whitespace=False)


class CheckPermissionSerializer(serializers.Serializer):
    resource_id = serializers.UUIDField()
    action = serializers.ChoiceField(choices=PermissionAction.choices)
    context = serializers.DictField(required=False)
