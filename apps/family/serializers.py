from rest_framework import serializers

from apps.accounts.serializers import UserMinimalSerializer
from .models import (
    ConnectionDirection,
    ConnectionType,
    FamilyConnection,
    FamilyInvitation,
    FamilyMembership,
    FamilyOwnershipTransfer,
    FamilyUnit,
    MemberType,
    PendingFamilyProfile,
)


class FamilyUnitMinimalSerializer(serializers.ModelSerializer):
    """Minimal unit info for nested serialization."""

    class Meta:
        model = FamilyUnit
        fields = ['id', 'family_label', 'generation_level']
        read_only_fields = fields


class FamilyUnitSerializer(serializers.ModelSerializer):
    """Main serializer for family units."""

    trust_anchor = UserMinimalSerializer(read_only=True)
    member_count = serializers.SerializerMethodField()
    is_trust_anchor = serializers.SerializerMethodField()

    class Meta:
        model = FamilyUnit
        fields = [
            'id',
            'family_label',
            'trust_anchor',
            'parent_family_unit',
            'generation_level',
            'family_metadata',
            'member_count',
            'is_trust_anchor',
            'is_active',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id', 'trust_anchor', 'parent_family_unit', 'generation_level',
            'is_active', 'created_at', 'updated_at',
        ]

    def get_member_count(self, obj):
        return obj.memberships.filter(status='active').count()

    def get_is_trust_anchor(self, obj):
        request = self.context.get('request')
        if request and request.user.is_authenticated:
            return obj.is_trust_anchor(request.user)
        return False


class FamilyUnitCreateSerializer(serializers.Serializer):
    family_label = serializers.CharField(max_length=200)
    parent_family_unit_id = serializers.UUIDField(required=False, allow_null=True)
    family_metadata = serializers.JSONField(required=False)


class FamilyUnitUpdateSerializer(serializers.Serializer):
    family_label = serializers.CharField(max_length=200, required=False)
    family_metadata = serializers.JSONField(required=False)


class SetParentSerializer(serializers.Serializer):
    parent_family_unit_id = serializers.UUIDField(required=False, allow_null=True)


class FamilyMembershipSerializer(serializers.ModelSerializer):
    """Member of a family unit."""

    member = UserMinimalSerializer(read_only=True)

    class Meta:
        model = FamilyMembership
        fields = [
            'id',
            'member',
            'relationship_label',
            'family_generation',
            'permissions',
            'status',
            'joined_at',
            'updated_at',
        ]
        read_only_fields = fields


class FamilyInvitationSerializer(serializers.ModelSerializer):
    family_unit = FamilyUnitMinimalSerializer(read_only=True)
    invited_by = UserMinimalSerializer(read_only=True)

    class Meta:
        model = FamilyInvitation
        fields = [
            'id',
            'family_unit',
            'invited_by',
            'invitee_email',
            'invitee_name',
            'relationship_role',
            'personal_message',
            'status',
            'expires_at',
            'sent_at',
            'accepted_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class FamilyInvitationCreateSerializer(serializers.Serializer):
    family_unit_id = serializers.UUIDField()
    invitee_email = serializers.CharField(max_length=254)
    relationship_role = serializers.CharField(max_length=100)
    invitee_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    personal_message = serializers.CharField(required=False, allow_blank=True, default='')


class TokenSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=64)


class FamilyConnectionSerializer(serializers.ModelSerializer):
    parent_family_unit = FamilyUnitMinimalSerializer(read_only=True)
    child_family_unit = FamilyUnitMinimalSerializer(read_only=True)
    initiated_by = UserMinimalSerializer(read_only=True)
    approved_by = UserMinimalSerializer(read_only=True)

    class Meta:
        model = FamilyConnection
        fields = [
            'id',
            'parent_family_unit',
            'child_family_unit',
            'connection_type',
            'connection_direction',
            'initiated_by',
            'approved_by',
            'personal_message',
            'status',
            'expires_at',
            'approved_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class FamilyConnectionCreateSerializer(serializers.Serializer):
    from_family_unit_id = serializers.UUIDField()
    target_family_unit_id = serializers.UUIDField()
    connection_direction = serializers.ChoiceField(choices=ConnectionDirection.choices)
    connection_type = serializers.ChoiceField(
        choices=ConnectionType.choices, default=ConnectionType.HIERARCHICAL
    )
    personal_message = serializers.CharField(required=False, allow_blank=True, default='')


class RespondSerializer(serializers.Serializer):
    """Approve/accept (true) or reject/decline (false)."""
    accept = serializers.BooleanField()


class FamilyOwnershipTransferSerializer(serializers.ModelSerializer):
    family_unit = FamilyUnitMinimalSerializer(read_only=True)
    current_owner = UserMinimalSerializer(read_only=True)
    proposed_owner = UserMinimalSerializer(read_only=True)

    class Meta:
        model = FamilyOwnershipTransfer
        fields = [
            'id',
            'family_unit',
            'current_owner',
            'proposed_owner_email',
            'proposed_owner',
            'message',
            'status',
            'expires_at',
            'sent_at',
            'responded_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class FamilyOwnershipTransferCreateSerializer(serializers.Serializer):
    family_unit_id = serializers.UUIDField()
    proposed_owner_email = serializers.CharField(max_length=254)
    message = serializers.CharField(required=False, allow_blank=True, default='')


class FamilyTreeSerializer(serializers.Serializer):
    current_unit = FamilyUnitSerializer()
    parent_connection = FamilyConnectionSerializer(allow_null=True)
    child_connections = FamilyConnectionSerializer(many=True)
    pending_connections = FamilyConnectionSerializer(many=True)
    child_units = FamilyUnitMinimalSerializer(many=True)


class PendingFamilyProfileSerializer(serializers.ModelSerializer):
    """Seeded profile; the claim token only travels by email."""

    family_unit = FamilyUnitMinimalSerializer(read_only=True)
    created_by = UserMinimalSerializer(read_only=True)
    claimed_by = UserMinimalSerializer(read_only=True)

    class Meta:
        model = PendingFamilyProfile
        fields = [
            'id',
            'family_unit',
            'created_by',
            'first_name',
            'last_name',
            'email',
            'phone',
            'relationship_label',
            'generation_level',
            'member_type',
            'seed_data',
            'status',
            'claimed_by',
            'claimed_at',
            'sent_at',
            'expires_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class PendingFamilyProfileCreateSerializer(serializers.Serializer):
    family_unit_id = serializers.UUIDField()
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    email = serializers.CharField(max_length=254, required=False, allow_blank=True, default='')
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    relationship_label = serializers.CharField(max_length=100)
    generation_level = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    member_type = serializers.ChoiceField(choices=MemberType.choices, default=MemberType.ADULT)
    seed_data = serializers.JSONField(required=False)


class ProfileUpgradeSerializer(serializers.Serializer):
    email = serializers.CharField(max_length=254, required=False, allow_blank=True)
