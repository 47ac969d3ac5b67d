"""
Admin configuration for inventory app.
"""
from django.contrib import admin
from .models import Batch, BatchMedicine, DiscardRecord


class BatchMedicineInline(admin.TabularInline):
    model = BatchMedicine
    extra = 0
    fields = ['medicine', 'medicine_name', 'quantity', 'price', 'expiry_date', 'total_amount']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    """Admin interface for Batch model. Changes go through the API so they are logged."""
    list_display = ['batch_number', 'bill_id', 'is_draft', 'overall_price', 'created_by', 'created_at']
    list_filter = ['is_draft', 'created_at']
    search_fields = ['batch_number', 'bill_id', 'medicines__medicine_name']
    readonly_fields = [
        'batch_number', 'bill_id', 'overall_price', 'miscellaneous_amount', 'attachments',
        'is_draft', 'draft_note', 'finalized_at', 'created_by', 'created_at', 'updated_at', 'version'
    ]
    inlines = [BatchMedicineInline]
    fieldsets = (
        ('Batch', {
            'fields': ('batch_number', 'bill_id', 'is_draft', 'finalized_at')
        }),
        ('Amounts', {
            'fields': ('overall_price', 'miscellaneous_amount')
        }),
        ('Documents', {
            'fields': ('attachments', 'draft_note')
        }),
        ('Timestamps', {
            'fields': ('created_by', 'created_at', 'updated_at', 'version')
        }),
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DiscardRecord)
class DiscardRecordAdmin(admin.ModelAdmin):
    """Read-only admin interface for discard records."""
    list_display = ['medicine_name', 'batch_number', 'quantity_discarded', 'total_value', 'discarded_by', 'discarded_at']
    list_filter = ['reason', 'discarded_at']
    search_fields = ['medicine_name', 'batch_number', 'reason']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
