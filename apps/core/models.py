# core/models.py

"""
Platform-wide configuration models.

BillingSettings holds the business policy of the billing engine (currency
display, invoice numbering, shipping rate, settlement batch limit, invoice
email options). Secrets and endpoints stay in Django settings.
"""

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from decimal import Decimal, InvalidOperation
import logging

logger = logging.getLogger(__name__)

# Hard ceiling for a single settlement batch; the configured limit may be lower
MAX_SETTLEMENT_BATCH_SIZE = 100


class BillingSettings(models.Model):
    """
    Core billing settings for the platform.
    Singleton pattern - always pk=1.
    """

    CURRENCY_POSITION_CHOICES = [
        ('BEFORE', 'Before amount (JPY 100)'),
        ('AFTER', 'After amount (100 JPY)'),
        ('BEFORE_NO_SPACE', 'Before, no space (JPY100)'),
        ('AFTER_NO_SPACE', 'After, no space (100JPY)'),
    ]

    # -------------------------------------------------------------------------
    # CURRENCY DISPLAY
    # -------------------------------------------------------------------------

    currency = models.CharField(
        "Currency",
        max_length=3,
        default='JPY',
        help_text='Billing currency (ISO 4217 code)'
    )
    currency_position = models.CharField(
        "Currency Position",
        max_length=20,
        choices=CURRENCY_POSITION_CHOICES,
        default='BEFORE',
    )
    decimal_places = models.PositiveIntegerField(
        "Decimal Places",
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(4)],
    )
    use_thousand_separator = models.BooleanField("Use Thousand Separator", default=True)

    # -------------------------------------------------------------------------
    # NUMBERING
    # -------------------------------------------------------------------------

    invoice_prefix = models.CharField(
        "Invoice Number Prefix",
        max_length=10,
        default="INV",
        help_text="Invoice numbers are PREFIX-YYYYMM-0001"
    )

    # -------------------------------------------------------------------------
    # FEES
    # -------------------------------------------------------------------------

    shipping_flat_rate = models.DecimalField(
        "Shipping Flat Rate",
        max_digits=10,
        decimal_places=2,
        default=Decimal('500'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Shipping fee charged per lending record"
    )

    # -------------------------------------------------------------------------
    # SETTLEMENT
    # -------------------------------------------------------------------------

    max_settlement_batch_size = models.PositiveIntegerField(
        "Max Settlement Batch Size",
        default=MAX_SETTLEMENT_BATCH_SIZE,
        validators=[MinValueValidator(1), MaxValueValidator(MAX_SETTLEMENT_BATCH_SIZE)],
    )

    # -------------------------------------------------------------------------
    # NOTIFICATIONS
    # -------------------------------------------------------------------------

    send_invoice_emails = models.BooleanField("Send Invoice Emails", default=True)
    invoice_email_subject = models.CharField(
        "Invoice Email Subject",
        max_length=200,
        default="Invoice {invoice_number} for {billing_month}",
        help_text="Placeholders: {invoice_number}, {billing_month}, {company_name}"
    )

    class Meta:
        verbose_name = "Billing Settings"
        verbose_name_plural = "Billing Settings"

    def __str__(self):
        return f"Billing Settings ({self.currency})"

    def clean(self):
        errors = {}

        if '{billing_month}' not in self.invoice_email_subject:
            errors['invoice_email_subject'] = "Subject must include {billing_month}"

        if self.max_settlement_batch_size > MAX_SETTLEMENT_BATCH_SIZE:
            errors['max_settlement_batch_size'] = (
                f"Batch size cannot exceed {MAX_SETTLEMENT_BATCH_SIZE}"
            )

        if errors:
            raise ValidationError(errors)

    # -------------------------------------------------------------------------
    # SINGLETON PATTERN METHODS
    # -------------------------------------------------------------------------

    @classmethod
    def get_instance(cls):
        """Get or create the singleton instance of BillingSettings."""
        instance, created = cls.objects.get_or_create(pk=1)
        if created:
            logger.info("Created default BillingSettings")
        return instance

    @property
    def batch_limit(self):
        return min(self.max_settlement_batch_size, MAX_SETTLEMENT_BATCH_SIZE)

    # -------------------------------------------------------------------------
    # FORMATTING
    # -------------------------------------------------------------------------

    def format_currency(self, amount, include_symbol=True):
        """Format amount based on billing settings."""
        try:
            amount = Decimal(str(amount or 0))
            formatted = f"{amount:,.{self.decimal_places}f}"

            if not self.use_thousand_separator:
                formatted = formatted.replace(',', '')

            if include_symbol:
                symbol = self.currency
                if self.currency_position == 'BEFORE':
                    return f"{symbol} {formatted}"
                elif self.currency_position == 'AFTER':
                    return f"{formatted} {symbol}"
                elif self.currency_position == 'BEFORE_NO_SPACE':
                    return f"{symbol}{formatted}"
                elif self.currency_position == 'AFTER_NO_SPACE':
                    return f"{formatted}{symbol}"
            return formatted

        except (ValueError, TypeError, InvalidOperation) as e:
            logger.warning(f"Error formatting currency: {e}")
            return f"{self.currency} 0"

    def render_invoice_subject(self, invoice_number, billing_month, company_name=''):
        return self.invoice_email_subject.format(
            invoice_number=invoice_number,
            billing_month=billing_month,
            company_name=company_name,
        )
