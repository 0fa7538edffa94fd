# billing/services.py

"""
Settlement state machine shared by bulk settlement and withdrawals.

A transfer runs in three durable steps:
    1. open an intent (PENDING) and claim the billing records it pays
    2. call the bank with the intent's idempotency key
    3. record the outcome: TRANSFERRED, then COMPLETED once the ledger is
       updated; FAILED (claims released) or UNKNOWN (records PROCESSING)

Claims are compare-and-swap updates on (status, settlement_intent), so two
transfers can never hold the same record. TransferReconciler finishes any
intent left TRANSFERRED or UNKNOWN.
"""

from datetime import timedelta
from decimal import Decimal
from django.conf import settings
from django.db import transaction, DatabaseError
from django.utils import timezone
import logging

from billing.models import BillingRecord, TransferIntent
from billing.exceptions import ConflictError
from billing.bank_client import TransferError
from billing.utils import billing_month_for
from utils.audit import log_financial_activity

logger = logging.getLogger(__name__)


# =============================================================================
# SETTLEMENT GUARD
# =============================================================================

class SettlementGuard:
    """Claim, release and finalize billing records for a transfer intent."""

    @staticmethod
    def open_intent(kind, amount, instruction_count=1, company=None, withdrawal_date=None):
        intent = TransferIntent.objects.create(
            kind=kind,
            amount=amount,
            instruction_count=instruction_count,
            company=company,
            withdrawal_date=withdrawal_date,
            status='PENDING',
        )
        logger.info(f"Opened {kind} intent {intent.reference} for {amount}")
        return intent

    @staticmethod
    @transaction.atomic
    def claim(intent, record_ids):
        """
        Attach every record to the intent, or none of them.

        Raises:
            ConflictError: a record is no longer UNPAID or is claimed elsewhere
        """
        record_ids = list(record_ids)
        if not record_ids:
            return 0

        claimed = (
            BillingRecord.objects
            .filter(pk__in=record_ids)
            .settleable()
            .update(settlement_intent=intent, updated_at=timezone.now())
        )
        if claimed != len(record_ids):
            logger.warning(
                f"Intent {intent.reference} claimed {claimed} of {len(record_ids)} records; rolling back"
            )
            raise ConflictError()
        return claimed

    @staticmethod
    @transaction.atomic
    def release(intent, error):
        """Definite failure: free the UNPAID claims and fail the intent."""
        released = (
            BillingRecord.objects
            .filter(settlement_intent=intent, status='UNPAID')
            .update(settlement_intent=None, updated_at=timezone.now())
        )
        intent.status = 'FAILED'
        intent.last_error = str(error)[:1000]
        intent.save(update_fields=['status', 'last_error'])

        log_financial_activity(
            'SETTLEMENT_FAIL' if intent.kind == 'BULK_SETTLEMENT' else 'WITHDRAWAL_FAIL',
            target_object=intent,
            amount=intent.amount,
            company=intent.company,
            notes=f"Transfer failed; {released} claims released",
            risk_level='MEDIUM',
            batch_id=intent.reference,
        )
        return released

    @staticmethod
    @transaction.atomic
    def mark_unknown(intent, error):
        """Timeout: the money may have moved. Claimed records go to PROCESSING."""
        moved = (
            BillingRecord.objects
            .filter(settlement_intent=intent, status='UNPAID')
            .update(status='PROCESSING', updated_at=timezone.now())
        )
        intent.status = 'UNKNOWN'
        intent.last_error = str(error)[:1000]
        intent.save(update_fields=['status', 'last_error'])

        log_financial_activity(
            'TRANSFER_UNKNOWN',
            target_object=intent,
            amount=intent.amount,
            company=intent.company,
            notes=f"Transfer outcome unknown; {moved} records PROCESSING",
            risk_level='HIGH',
            batch_id=intent.reference,
        )
        return moved

    @staticmethod
    def mark_transferred(intent, transaction_id=None):
        intent.status = 'TRANSFERRED'
        intent.transaction_id = transaction_id or intent.transaction_id or intent.reference
        intent.last_error = ''
        intent.save(update_fields=['status', 'transaction_id', 'last_error'])
        logger.info(f"Intent {intent.reference} transferred (transaction {intent.transaction_id})")

    @staticmethod
    @transaction.atomic
    def finalize(intent):
        """
        Write the ledger for a transferred intent and complete it.

        Bulk settlements flip their claimed records to PAID. Withdrawals
        flip a claimed invoice to COMPLETED or create a new withdrawal
        entry. Safe to call again for an intent already COMPLETED.

        Returns:
            int: number of billing records written
        """
        intent = TransferIntent.objects.select_for_update().get(pk=intent.pk)
        if intent.status == 'COMPLETED':
            return 0

        now = timezone.now()
        is_withdrawal = intent.kind == 'WITHDRAWAL'
        final_status = 'COMPLETED' if is_withdrawal else 'PAID'

        fields = {
            'status': final_status,
            'paid_at': now,
            'transaction_id': intent.transaction_id,
            'updated_at': now,
        }
        if is_withdrawal and intent.withdrawal_date:
            fields['withdrawal_date'] = intent.withdrawal_date

        written = (
            BillingRecord.objects
            .filter(settlement_intent=intent, status__in=['UNPAID', 'PROCESSING'])
            .update(**fields)
        )

        if is_withdrawal and not intent.billing_records.exists():
            # post_save audits the new entry
            SettlementGuard._create_withdrawal_entry(intent, now)
            written = 1
        else:
            log_financial_activity(
                'WITHDRAWAL_COMPLETE' if is_withdrawal else 'SETTLEMENT_COMPLETE',
                target_object=intent,
                amount=intent.amount,
                company=intent.company,
                notes=f"{written} billing records {final_status}",
                additional_data={'transaction_id': intent.transaction_id},
                batch_id=intent.reference,
            )

        intent.status = 'COMPLETED'
        intent.completed_at = now
        intent.save(update_fields=['status', 'completed_at'])

        logger.info(f"Intent {intent.reference} completed; {written} billing records written")
        return written

    @staticmethod
    def _create_withdrawal_entry(intent, now):
        withdrawal_date = intent.withdrawal_date or timezone.localdate()
        return BillingRecord.objects.create(
            kind='WITHDRAWAL',
            company=intent.company,
            billing_month=billing_month_for(withdrawal_date),
            usage_fee=intent.amount,
            shipping_fee=Decimal('0'),
            item_count=0,
            status='COMPLETED',
            transaction_id=intent.transaction_id,
            withdrawal_date=withdrawal_date,
            paid_at=now,
            settlement_intent=intent,
        )


# =============================================================================
# RECONCILIATION
# =============================================================================

class TransferReconciler:
    """
    Resolve intents left TRANSFERRED, UNKNOWN or stale PENDING.

    TRANSFERRED intents only need their ledger write. UNKNOWN intents, and
    PENDING intents older than the grace period, are looked up at the bank
    by idempotency key first; nothing is ever transferred again.
    """

    def __init__(self, client, grace_period=None):
        self.client = client
        if grace_period is None:
            grace_period = settings.TRANSFER_PENDING_GRACE_SECONDS
        self.grace_period = timedelta(seconds=grace_period)

    def reconcile(self, limit=None):
        """
        Returns:
            dict: completed, failed and pending counts, plus manual_review,
            the ids of PROCESSING records whose transfer failed
        """
        summary = {'completed': 0, 'failed': 0, 'pending': 0, 'manual_review': []}

        intents = TransferIntent.objects.needing_reconciliation(
            pending_before=timezone.now() - self.grace_period
        )
        if limit:
            intents = intents[:limit]

        for intent in intents:
            if intent.status == 'TRANSFERRED':
                outcome = self._complete(intent)
            else:
                outcome = self._resolve_at_bank(intent, summary)
            summary[outcome] += 1

        logger.info(
            f"Reconciliation: {summary['completed']} completed, {summary['failed']} failed, "
            f"{summary['pending']} pending, {len(summary['manual_review'])} for manual review"
        )
        return summary

    def _complete(self, intent):
        try:
            SettlementGuard.finalize(intent)
        except DatabaseError as e:
            logger.error(f"Ledger write for intent {intent.reference} failed again: {e}", exc_info=True)
            return 'pending'

        log_financial_activity(
            'RECONCILE',
            target_object=intent,
            amount=intent.amount,
            company=intent.company,
            notes="Ledger completed by reconciliation",
            is_automated=True,
            batch_id=intent.reference,
        )
        return 'completed'

    def _resolve_at_bank(self, intent, summary):
        try:
            result = self.client.get_transfer(intent.idempotency_key)
        except TransferError as e:
            logger.warning(f"Could not look up intent {intent.reference}: {e}")
            return 'pending'

        bank_status = (result.get('status') or '').upper()

        if bank_status == 'COMPLETED':
            try:
                SettlementGuard.mark_transferred(intent, result.get('transactionId') or result.get('batchId'))
            except DatabaseError as e:
                logger.error(f"Recording transfer for intent {intent.reference} failed again: {e}", exc_info=True)
                return 'pending'
            return self._complete(intent)

        if bank_status in ('FAILED', 'NOT_FOUND'):
            stuck = list(
                intent.billing_records.filter(status='PROCESSING').values_list('pk', flat=True)
            )
            SettlementGuard.release(intent, f"bank reported {bank_status}")
            if stuck:
                logger.error(
                    f"Intent {intent.reference} failed at the bank; "
                    f"{len(stuck)} PROCESSING records need manual review"
                )
                summary['manual_review'].extend(str(pk) for pk in stuck)
            return 'failed'

        return 'pending'
