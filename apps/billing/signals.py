# billing/signals.py

"""
Billing Signal Handlers

- Status monotonicity (UNPAID -> PROCESSING -> PAID / COMPLETED)
- Total recalculation guard
- Audit logging for issued invoices and ledger entries
"""

from django.core.exceptions import ValidationError
from django.db.models.signals import pre_save, post_save
from django.dispatch import receiver
import logging

from utils.audit import log_financial_activity

logger = logging.getLogger(__name__)


# =============================================================================
# BILLING RECORD SIGNALS
# =============================================================================

@receiver(pre_save, sender='billing.BillingRecord')
def billing_record_pre_save(sender, instance, **kwargs):
    """
    Pre-save validation for billing records:
    - total_amount must equal usage_fee + shipping_fee
    - status never moves backwards
    """
    if kwargs.get('raw', False):
        return

    if instance.total_amount != instance.usage_fee + instance.shipping_fee:
        raise ValidationError("Total amount must equal usage fee plus shipping fee")

    if instance._state.adding:
        return

    old_status = (
        sender.objects.filter(pk=instance.pk)
        .values_list('status', flat=True)
        .first()
    )
    if old_status and not sender.is_forward_transition(old_status, instance.status):
        logger.warning(
            f"Rejected status reversal for billing record {instance.pk}: "
            f"{old_status} -> {instance.status}"
        )
        raise ValidationError(
            f"Billing record status cannot change from {old_status} to {instance.status}"
        )


@receiver(post_save, sender='billing.BillingRecord')
def billing_record_post_save(sender, instance, created, **kwargs):
    """Audit log for new invoices and withdrawal ledger entries."""
    if kwargs.get('raw', False) or not created:
        return

    if instance.kind == 'INVOICE':
        logger.info(
            f"Invoice created: {instance.invoice_number} - "
            f"Company: {instance.company.code} - Amount: {instance.total_amount}"
        )
        action = 'INVOICE_CREATE'
    else:
        logger.info(
            f"Withdrawal recorded: {instance.transaction_id} - "
            f"Company: {instance.company.code} - Amount: {instance.total_amount}"
        )
        action = 'WITHDRAWAL_COMPLETE'

    log_financial_activity(
        action,
        target_object=instance,
        amount=instance.total_amount,
        company=instance.company,
        additional_data={'billing_month': instance.billing_month},
    )
