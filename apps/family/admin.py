# ==========================================
# apps/family/admin.py
# ==========================================

from django.contrib import admin
from apps.family.models import (
    FamilyConnection,
    FamilyInvitation,
    FamilyMembership,
    FamilyOwnershipTransfer,
    FamilyUnit,
    PendingFamilyProfile,
)


class FamilyMembershipInline(admin.TabularInline):
    """Inline admin for family memberships."""
    model = FamilyMembership
    extra = 0
    fields = ['member', 'relationship_label', 'family_generation', 'status', 'joined_at']
    readonly_fields = ['joined_at']


@admin.register(FamilyUnit)
class FamilyUnitAdmin(admin.ModelAdmin):
    """Admin interface for family units."""

    list_display = [
        'family_label',
        'trust_anchor',
        'parent_family_unit',
        'generation_level',
        'member_count',
        'is_active',
        'created_at',
    ]
    list_filter = ['is_active', 'generation_level', 'created_at']
    search_fields = ['family_label', 'trust_anchor__email']
    readonly_fields = ['generation_level', 'created_at', 'updated_at']
    inlines = [FamilyMembershipInline]
    ordering = ['generation_level', 'family_label']

    def member_count(self, obj):
        """Show number of active members."""
        return obj.memberships.filter(status='active').count()
    member_count.short_description = 'Members'


@admin.register(FamilyInvitation)
class FamilyInvitationAdmin(admin.ModelAdmin):
    list_display = ['invitee_email', 'family_unit', 'relationship_role', 'status', 'expires_at', 'sent_at']
    list_filter = ['status', 'created_at']
    search_fields = ['invitee_email', 'family_unit__family_label', 'invited_by__email']
    readonly_fields = ['invitation_token', 'created_at', 'updated_at']


@admin.register(FamilyConnection)
class FamilyConnectionAdmin(admin.ModelAdmin):
    list_display = [
        'parent_family_unit',
        'child_family_unit',
        'connection_type',
        'connection_direction',
        'status',
        'expires_at',
    ]
    list_filter = ['status', 'connection_type', 'connection_direction']
    search_fields = ['parent_family_unit__family_label', 'child_family_unit__family_label']
    readonly_fields = ['invitation_token', 'created_at', 'updated_at']


@admin.register(FamilyOwnershipTransfer)
class FamilyOwnershipTransferAdmin(admin.ModelAdmin):
    list_display = ['family_unit', 'current_owner', 'proposed_owner_email', 'status', 'expires_at']
    list_filter = ['status']
    search_fields = ['family_unit__family_label', 'current_owner__email', 'proposed_owner_email']
    readonly_fields = ['transfer_token', 'created_at', 'updated_at']


@admin.register(PendingFamilyProfile)
class PendingFamilyProfileAdmin(admin.ModelAdmin):
    list_display = ['first_name', 'last_name', 'family_unit', 'member_type', 'email', 'status', 'expires_at']
    list_filter = ['status', 'member_type']
    search_fields = ['first_name', 'last_name', 'email', 'family_unit__family_label']
    readonly_fields = ['invitation_token', 'claimed_by', 'claimed_at', 'created_at', 'updated_at']
