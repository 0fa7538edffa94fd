# billing/managers.py

from django.db import models
from django.db.models import Q
import logging

logger = logging.getLogger(__name__)


class BillingRecordQuerySet(models.QuerySet):
    """Query helpers for billing records. Records are append-only."""

    def invoices(self):
        return self.filter(kind='INVOICE')

    def for_month(self, billing_month):
        return self.filter(billing_month=billing_month)

    def settleable(self):
        """Records that may be claimed by a new settlement."""
        return self.filter(status='UNPAID', settlement_intent__isnull=True)

    def settled_or_claimed(self):
        """Records the idempotency guard must reject."""
        return self.filter(~Q(status='UNPAID') | Q(settlement_intent__isnull=False))

    def delete(self):
        raise models.ProtectedError("Billing records are append-only and cannot be deleted", set(self))


class TransferIntentQuerySet(models.QuerySet):

    def needing_reconciliation(self, pending_before=None):
        """
        TRANSFERRED and UNKNOWN intents, plus PENDING intents opened at or
        before ``pending_before`` whose outcome was never recorded.
        """
        condition = Q(status__in=['TRANSFERRED', 'UNKNOWN'])
        if pending_before is not None:
            condition |= Q(status='PENDING', created_at__lte=pending_before)
        return self.filter(condition).order_by('created_at')
