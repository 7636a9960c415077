from django.contrib import admin
from apps.relationships.models import RelationshipCard


@admin.register(RelationshipCard)
class RelationshipCardAdmin(admin.ModelAdmin):
    list_display = [
        'from_user',
        'to_user_email',
        'relationship_label_from',
        'relationship_label_to',
        'status',
        'terminated_at',
        'created_at',
    ]
    list_filter = ['status', 'label_modified', 'created_at']
    search_fields = ['from_user__email', 'to_user_email', 'relationship_label_to']
    readonly_fields = ['invitation_token', 'reciprocal_card', 'created_at', 'updated_at']
