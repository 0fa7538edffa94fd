# billing/admin.py

from django.contrib import admin
from .models import BillingRecord, InvoiceSequence, InvoiceDispatch, TransferIntent


class AppendOnlyAdmin(admin.ModelAdmin):
    """Ledger rows are written by the billing engine only."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(BillingRecord)
class BillingRecordAdmin(AppendOnlyAdmin):
    list_display = [
        'invoice_number', 'kind', 'company', 'billing_month',
        'total_amount', 'status', 'transaction_id', 'paid_at'
    ]
    list_filter = ['kind', 'status', 'billing_month']
    search_fields = ['invoice_number', 'transaction_id', 'company__code', 'company__name']
    raw_id_fields = ['company', 'settlement_intent']


@admin.register(InvoiceDispatch)
class InvoiceDispatchAdmin(AppendOnlyAdmin):
    list_display = ['filename', 'recipient', 'status', 'attempts', 'sent_at']
    list_filter = ['status']
    search_fields = ['filename', 'recipient']
    exclude = ['document']


@admin.register(TransferIntent)
class TransferIntentAdmin(AppendOnlyAdmin):
    list_display = [
        'idempotency_key', 'kind', 'status', 'company', 'amount',
        'instruction_count', 'transaction_id', 'created_at', 'completed_at'
    ]
    list_filter = ['kind', 'status']
    search_fields = ['idempotency_key', 'transaction_id', 'company__code']


@admin.register(InvoiceSequence)
class InvoiceSequenceAdmin(AppendOnlyAdmin):
    list_display = ['billing_month', 'last_number', 'updated_at']
