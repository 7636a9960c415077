# ==========================================
# apps/sharing/admin.py
# ==========================================

from django.contrib import admin
from apps.sharing.models import UserCard, SharingPolicy, PolicyPermission


@admin.register(UserCard)
class UserCardAdmin(admin.ModelAdmin):
    list_display = ['title', 'owner', 'created_at', 'updated_at']
    search_fields = ['title', 'owner__email']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']


class PolicyPermissionInline(admin.TabularInline):
    """Inline admin for policy permissions."""
    model = PolicyPermission
    extra = 0
    fields = ['action', 'resource', 'granted', 'conditions', 'expires_at', 'created_at']
    readonly_fields = ['created_at']


@admin.register(SharingPolicy)
class SharingPolicyAdmin(admin.ModelAdmin):
    """Admin interface for sharing policies."""

    list_display = [
        'resource_type',
        'resource_id',
        'created_by',
        'granted_to',
        'is_active',
        'expires_at',
        'created_at',
    ]
    list_filter = ['resource_type', 'is_active', 'created_at']
    search_fields = ['resource_id', 'created_by__email', 'granted_to__email']
    readonly_fields = ['created_at']
    inlines = [PolicyPermissionInline]
    date_hierarchy = 'created_at'
