# billing/models.py

"""
Billing & Settlement Models

- BillingRecord: one invoice or withdrawal ledger entry per row
- InvoiceSequence: per-month atomic counter behind invoice numbers
- InvoiceDispatch: outbox row for each invoice email
- TransferIntent: durable record written before every external transfer

Billing records are append-only; they only move forward through
UNPAID -> PROCESSING -> PAID / COMPLETED.
"""

from django.db import models
from django.db.models import Q
from django.core.validators import MinValueValidator
from decimal import Decimal
import uuid
import logging

from utils.models import BaseModel
from tenants.models import Company
from .managers import BillingRecordQuerySet, TransferIntentQuerySet

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSFER INTENTS
# =============================================================================

class TransferIntent(BaseModel):
    """
    Written before the bank is called. The idempotency key is sent with the
    request, so an intent left TRANSFERRED or UNKNOWN can be reconciled
    against the bank without transferring twice.
    """

    KIND_CHOICES = [
        ('BULK_SETTLEMENT', 'Bulk Settlement'),
        ('WITHDRAWAL', 'Automatic Withdrawal'),
    ]

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('TRANSFERRED', 'Transferred, ledger not yet updated'),
        ('COMPLETED', 'Completed'),
        ('FAILED', 'Failed'),
        ('UNKNOWN', 'Outcome Unknown'),
    ]

    kind = models.CharField("Kind", max_length=20, choices=KIND_CHOICES, db_index=True)
    idempotency_key = models.UUIDField("Idempotency Key", default=uuid.uuid4, unique=True, editable=False)
    status = models.CharField("Status", max_length=12, choices=STATUS_CHOICES, default='PENDING', db_index=True)

    company = models.ForeignKey(
        Company,
        verbose_name="Company",
        on_delete=models.PROTECT,
        related_name='transfer_intents',
        null=True,
        blank=True,
        help_text="Tenant debited by a withdrawal"
    )
    amount = models.DecimalField("Amount", max_digits=14, decimal_places=2)
    instruction_count = models.PositiveIntegerField("Instruction Count", default=1)
    withdrawal_date = models.DateField("Withdrawal Date", null=True, blank=True)

    transaction_id = models.CharField("Transaction ID", max_length=100, blank=True, default='')
    last_error = models.TextField("Last Error", blank=True, default='')
    completed_at = models.DateTimeField("Completed At", null=True, blank=True)

    objects = TransferIntentQuerySet.as_manager()

    class Meta:
        verbose_name = "Transfer Intent"
        verbose_name_plural = "Transfer Intents"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.get_kind_display()} {self.idempotency_key} ({self.status})"

    @property
    def reference(self):
        return str(self.idempotency_key)


# =============================================================================
# BILLING RECORDS
# =============================================================================

class BillingRecord(BaseModel):
    """Invoice or withdrawal ledger entry for one tenant and one month."""

    KIND_CHOICES = [
        ('INVOICE', 'Monthly Invoice'),
        ('WITHDRAWAL', 'Automatic Withdrawal'),
    ]

    STATUS_CHOICES = [
        ('UNPAID', 'Unpaid'),
        ('PROCESSING', 'Processing'),
        ('PAID', 'Paid'),
        ('COMPLETED', 'Completed'),
    ]

    # Position in the lifecycle; a record may never move to a lower rank
    STATUS_RANK = {
        'UNPAID': 0,
        'PROCESSING': 1,
        'PAID': 2,
        'COMPLETED': 2,
    }
    TERMINAL_STATUSES = ('PAID', 'COMPLETED')

    # -------------------------------------------------------------------------
    # IDENTIFICATION
    # -------------------------------------------------------------------------

    company = models.ForeignKey(
        Company,
        verbose_name="Company",
        on_delete=models.PROTECT,
        related_name='billing_records'
    )
    kind = models.CharField("Kind", max_length=12, choices=KIND_CHOICES, default='INVOICE', db_index=True)
    billing_month = models.CharField("Billing Month", max_length=7, db_index=True, help_text="YYYY-MM")
    invoice_number = models.CharField("Invoice Number", max_length=50, null=True, blank=True, db_index=True)

    # -------------------------------------------------------------------------
    # AMOUNTS
    # -------------------------------------------------------------------------

    usage_fee = models.DecimalField(
        "Usage Fee", max_digits=12, decimal_places=2,
        default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))]
    )
    shipping_fee = models.DecimalField(
        "Shipping Fee", max_digits=12, decimal_places=2,
        default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))]
    )
    total_amount = models.DecimalField("Total Amount", max_digits=12, decimal_places=2, default=Decimal('0.00'))
    item_count = models.PositiveIntegerField("Lending Count", default=0)

    # -------------------------------------------------------------------------
    # SETTLEMENT
    # -------------------------------------------------------------------------

    status = models.CharField("Status", max_length=12, choices=STATUS_CHOICES, default='UNPAID', db_index=True)
    transaction_id = models.CharField("Transaction ID", max_length=100, null=True, blank=True, db_index=True)
    withdrawal_date = models.DateField("Withdrawal Date", null=True, blank=True)
    paid_at = models.DateTimeField("Paid At", null=True, blank=True)
    settlement_intent = models.ForeignKey(
        TransferIntent,
        verbose_name="Settlement Intent",
        on_delete=models.PROTECT,
        related_name='billing_records',
        null=True,
        blank=True,
        help_text="Transfer that claimed or settled this record"
    )

    objects = BillingRecordQuerySet.as_manager()

    class Meta:
        verbose_name = "Billing Record"
        verbose_name_plural = "Billing Records"
        ordering = ['-billing_month', 'invoice_number']
        constraints = [
            models.UniqueConstraint(
                fields=['billing_month', 'invoice_number'],
                condition=Q(kind='INVOICE'),
                name='unique_invoice_number_per_month',
            ),
            models.UniqueConstraint(
                fields=['company', 'billing_month'],
                condition=Q(kind='INVOICE'),
                name='one_invoice_per_company_month',
            ),
        ]
        indexes = [
            models.Index(fields=['billing_month', 'status']),
            models.Index(fields=['company', 'billing_month']),
        ]

    def __str__(self):
        label = self.invoice_number or f"{self.get_kind_display()} {self.billing_month}"
        return f"{label} - {self.company.code}"

    def save(self, *args, **kwargs):
        # total_amount is always derived from the line items
        self.total_amount = (self.usage_fee or Decimal('0')) + (self.shipping_fee or Decimal('0'))
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | {'total_amount'}
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise models.ProtectedError("Billing records are append-only and cannot be deleted", {self})

    # -------------------------------------------------------------------------
    # STATUS HELPERS
    # -------------------------------------------------------------------------

    @classmethod
    def is_forward_transition(cls, old_status, new_status):
        return cls.STATUS_RANK[new_status] >= cls.STATUS_RANK[old_status] and not (
            old_status in cls.TERMINAL_STATUSES and new_status != old_status
        )

    @property
    def is_settled(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def details(self):
        return {
            'usage_fee': self.usage_fee,
            'shipping_fee': self.shipping_fee,
        }


# =============================================================================
# INVOICE NUMBERING
# =============================================================================

class InvoiceSequence(models.Model):
    """Single atomic counter per billing month. Locked with select_for_update."""

    billing_month = models.CharField("Billing Month", max_length=7, unique=True)
    last_number = models.PositiveIntegerField("Last Number", default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Invoice Sequence"
        verbose_name_plural = "Invoice Sequences"

    def __str__(self):
        return f"{self.billing_month}: {self.last_number}"


# =============================================================================
# INVOICE DISPATCH OUTBOX
# =============================================================================

class InvoiceDispatch(BaseModel):
    """
    Invoice email waiting to be sent. Created in the same transaction as its
    billing record; marked SENT only after the mail backend accepted it.
    """

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('SENT', 'Sent'),
        ('FAILED', 'Failed'),
    ]

    billing_record = models.OneToOneField(
        BillingRecord,
        verbose_name="Billing Record",
        on_delete=models.PROTECT,
        related_name='dispatch'
    )
    recipient = models.EmailField("Recipient")
    subject = models.CharField("Subject", max_length=255)
    body = models.TextField("Body")
    document = models.BinaryField("Invoice Document")
    filename = models.CharField("Filename", max_length=100)

    status = models.CharField("Status", max_length=10, choices=STATUS_CHOICES, default='PENDING', db_index=True)
    attempts = models.PositiveIntegerField("Attempts", default=0)
    last_error = models.TextField("Last Error", blank=True, default='')
    sent_at = models.DateTimeField("Sent At", null=True, blank=True)

    class Meta:
        verbose_name = "Invoice Dispatch"
        verbose_name_plural = "Invoice Dispatches"
        ordering = ['created_at']

    def __str__(self):
        return f"{self.filename} -> {self.recipient} ({self.status})"
