# utils/admin.py

from django.contrib import admin
from .models import FinancialAuditLog


@admin.register(FinancialAuditLog)
class FinancialAuditLogAdmin(admin.ModelAdmin):
    list_display = [
        'timestamp', 'action', 'object_type', 'object_repr',
        'company_code', 'amount_involved', 'risk_level', 'is_automated'
    ]
    list_filter = ['action', 'risk_level', 'is_automated', 'timestamp']
    search_fields = ['object_repr', 'object_id', 'company_code', 'batch_id', 'request_id']
    readonly_fields = [
        'id', 'timestamp', 'action', 'user_id', 'ip_address', 'request_id',
        'object_type', 'object_id', 'object_repr', 'amount_involved',
        'company_code', 'risk_level', 'additional_data', 'notes',
        'is_automated', 'batch_id',
    ]

    fieldsets = (
        ('What Happened', {
            'fields': ('action', 'object_type', 'object_id', 'object_repr', 'amount_involved', 'company_code')
        }),
        ('Who & Where', {
            'fields': ('user_id', 'ip_address', 'request_id', 'is_automated')
        }),
        ('Additional Info', {
            'fields': ('timestamp', 'risk_level', 'batch_id', 'notes', 'additional_data'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        # Audit logs should not be created manually
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
