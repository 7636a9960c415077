from rest_framework import serializers

from apps.accounts.serializers import UserMinimalSerializer
from .models import RelationshipCard, RelationshipStatus


class RelationshipCardSerializer(serializers.ModelSerializer):
    """Relationship card as seen by either party."""

    from_user = UserMinimalSerializer(read_only=True)
    to_user = UserMinimalSerializer(read_only=True)
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = RelationshipCard
        fields = [
            'id',
            'from_user',
            'to_user',
            'to_user_email',
            'relationship_label_from',
            'relationship_label_to',
            'status',
            'is_active',
            'confidence',
            'network_rules',
            'shared_attributes',
            'metadata',
            'label_modified',
            'reciprocal_card',
            'expires_at',
            'accepted_at',
            'terminated_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class RelationshipInvitationSerializer(serializers.Serializer):
    to_user_email = serializers.CharField(max_length=254)
    relationship_label_from = serializers.CharField(max_length=100)
    relationship_label_to = serializers.CharField(max_length=100)
    metadata = serializers.JSONField(required=False)
    shared_attributes = serializers.ListField(
        child=serializers.CharField(max_length=100), required=False
    )
    network_rules = serializers.CharField(required=False, allow_blank=True, default='')


class AcceptRelationshipSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=64)
    modified_label_to = serializers.CharField(max_length=100, required=False)


class RelationshipStatusFilterSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RelationshipStatus.choices, required=False)
