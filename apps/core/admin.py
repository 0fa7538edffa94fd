# core/admin.py

from django.contrib import admin
from .models import BillingSettings


@admin.register(BillingSettings)
class BillingSettingsAdmin(admin.ModelAdmin):
    list_display = ['currency', 'invoice_prefix', 'shipping_flat_rate', 'max_settlement_batch_size', 'send_invoice_emails']

    fieldsets = (
        ('Currency', {
            'fields': ('currency', 'currency_position', 'decimal_places', 'use_thousand_separator')
        }),
        ('Invoicing', {
            'fields': ('invoice_prefix', 'shipping_flat_rate', 'send_invoice_emails', 'invoice_email_subject')
        }),
        ('Settlement', {
            'fields': ('max_settlement_batch_size',)
        }),
    )

    def has_add_permission(self, request):
        # Singleton: edit the existing row
        return not BillingSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
