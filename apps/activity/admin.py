"""
Admin configuration for activity app.
"""
from django.contrib import admin
from .models import ActivityLog


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    """Read-only admin interface for the activity log."""
    list_display = ['batch_number', 'action', 'owner', 'timestamp']
    list_filter = ['action', 'timestamp']
    search_fields = ['batch_number', 'details', 'owner__username']
    readonly_fields = ['batch', 'batch_number', 'action', 'details', 'owner', 'timestamp', 'changes']
    fieldsets = (
        ('Batch', {
            'fields': ('batch', 'batch_number')
        }),
        ('Entry', {
            'fields': ('action', 'details', 'changes')
        }),
        ('Owner', {
            'fields': ('owner', 'timestamp')
        }),
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
