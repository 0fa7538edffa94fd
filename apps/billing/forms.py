# billing/forms.py

"""
Billing Forms

Validation of API input and list/export filters.
"""

from django import forms
from django.core.exceptions import ValidationError
import logging

from billing.models import BillingRecord
from billing.exceptions import InvalidPeriodFormat
from billing.utils import parse_billing_period

logger = logging.getLogger(__name__)


class BillingMonthForm(forms.Form):
    """A billing month in YYYY-MM form."""

    billingMonth = forms.CharField(max_length=7, strip=True)

    def clean_billingMonth(self):
        billing_month = self.cleaned_data.get('billingMonth')
        try:
            parse_billing_period(billing_month)
        except InvalidPeriodFormat as e:
            raise ValidationError(e.public_message)
        return billing_month


class InvoiceFilterForm(BillingMonthForm):
    """Filters for the invoice list and export."""

    STATUS_CHOICES = [('', 'All')] + BillingRecord.STATUS_CHOICES
    KIND_CHOICES = [('', 'All')] + BillingRecord.KIND_CHOICES

    status = forms.ChoiceField(choices=STATUS_CHOICES, required=False)
    kind = forms.ChoiceField(choices=KIND_CHOICES, required=False)
    companyId = forms.CharField(max_length=50, required=False, strip=True)

    def filter_queryset(self, queryset):
        data = self.cleaned_data
        queryset = queryset.for_month(data['billingMonth'])
        if data.get('status'):
            queryset = queryset.filter(status=data['status'])
        if data.get('kind'):
            queryset = queryset.filter(kind=data['kind'])
        if data.get('companyId'):
            queryset = queryset.filter(company__code=data['companyId'])
        return queryset
