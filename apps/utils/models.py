# utils/models.py

"""
Base models for the billing platform with audit trail support.

Key Features:
- UUID primary keys and creation/update timestamps
- Creator/updater tracking from the thread-local request context
- Change reason tracking
- Financial audit logging for invoices, settlements and withdrawals
"""

from django.db import models
from django.utils import timezone
import uuid
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# BASE MODEL
# =============================================================================

class BaseModel(models.Model):
    """
    Abstract base model with audit trail fields.

    - created_at / updated_at are set on save (timezone-aware)
    - created_by_id / updated_by_id come from utils.context when a request
      or management command has set one
    - change_reason lets callers explain why a record was touched
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    created_at = models.DateTimeField("Created At", db_index=True, editable=False)
    updated_at = models.DateTimeField("Updated At", db_index=True, editable=False)

    # CharField so audit fields never depend on the auth tables
    created_by_id = models.CharField("Created By ID", max_length=50, null=True, blank=True)
    updated_by_id = models.CharField("Updated By ID", max_length=50, null=True, blank=True)

    change_reason = models.CharField(
        "Change Reason",
        max_length=255,
        blank=True,
        null=True,
        help_text="Explanation for why this change was made"
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        Set timestamps and populate audit fields from the request context.
        """
        from utils.context import get_request_context

        is_new = self._state.adding
        now = timezone.now()

        if is_new and not self.created_at:
            self.created_at = now
        self.updated_at = now

        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | {'updated_at'}

        context = get_request_context()
        if context and context.get('user'):
            user_id = str(context['user'].pk)
            if is_new and not self.created_by_id:
                self.created_by_id = user_id
            self.updated_by_id = user_id
            if update_fields is not None:
                kwargs['update_fields'] |= {'updated_by_id'}

        return super().save(*args, **kwargs)

    def get_audit_trail(self):
        """
        Get audit information for this record.

        Returns:
            dict: Audit trail information
        """
        return {
            'id': str(self.id),
            'created_at': self.created_at,
            'created_by_id': self.created_by_id,
            'updated_at': self.updated_at,
            'updated_by_id': self.updated_by_id,
            'last_change_reason': self.change_reason,
        }


# =============================================================================
# FINANCIAL AUDIT LOG
# =============================================================================

class FinancialAuditLog(models.Model):
    """
    Audit log for financial operations: invoice issue, settlement batches,
    withdrawals and reconciliation. Rows are written by
    utils.audit.log_financial_activity and never edited.
    """

    FINANCIAL_ACTIONS = [
        ('INVOICE_CREATE', 'Invoice Created'),
        ('INVOICE_DISPATCH', 'Invoice Dispatched'),
        ('BULK_INVOICE_CREATE', 'Bulk Invoice Generation'),
        ('SETTLEMENT_SUBMIT', 'Settlement Batch Submitted'),
        ('SETTLEMENT_COMPLETE', 'Settlement Batch Completed'),
        ('SETTLEMENT_FAIL', 'Settlement Batch Failed'),
        ('WITHDRAWAL_COMPLETE', 'Withdrawal Completed'),
        ('WITHDRAWAL_FAIL', 'Withdrawal Failed'),
        ('TRANSFER_UNKNOWN', 'Transfer Outcome Unknown'),
        ('RECONCILE', 'Transfer Reconciled'),
        ('FINANCIAL_DATA_EXPORT', 'Financial Data Exported'),
    ]

    RISK_LEVELS = [
        ('LOW', 'Low Risk'),
        ('MEDIUM', 'Medium Risk'),
        ('HIGH', 'High Risk'),
        ('CRITICAL', 'Critical Risk'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    timestamp = models.DateTimeField(db_index=True)
    action = models.CharField(max_length=30, choices=FINANCIAL_ACTIONS, db_index=True)

    # Who / where
    user_id = models.CharField(max_length=100, null=True, blank=True, db_index=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    request_id = models.CharField(max_length=64, blank=True, default='')

    # What
    object_type = models.CharField(max_length=100, blank=True, default='')
    object_id = models.CharField(max_length=100, null=True, blank=True, db_index=True)
    object_repr = models.CharField(max_length=255, blank=True, default='')
    amount_involved = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    company_code = models.CharField(max_length=50, null=True, blank=True, db_index=True)

    risk_level = models.CharField(max_length=10, choices=RISK_LEVELS, default='LOW', db_index=True)
    additional_data = models.JSONField(default=dict, blank=True)
    notes = models.TextField(null=True, blank=True)
    is_automated = models.BooleanField(default=False)
    batch_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="For grouping related bulk operations"
    )

    class Meta:
        verbose_name = "Financial Audit Log"
        verbose_name_plural = "Financial Audit Logs"
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['timestamp', 'action']),
            models.Index(fields=['company_code', 'timestamp']),
        ]

    def __str__(self):
        return f"{self.get_action_display()} at {self.timestamp}"

    def save(self, *args, **kwargs):
        if not self.timestamp:
            self.timestamp = timezone.now()
        return super().save(*args, **kwargs)
