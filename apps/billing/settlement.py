# billing/settlement.py

"""
Bulk settlement of billing records.

The whole batch is validated before anything leaves the building; one
bulk transfer is then issued and every record in the batch is paid
together or not at all.
"""

from django.db import DatabaseError
from django.utils import timezone
from decimal import Decimal
import logging
import uuid

from billing.models import BillingRecord
from billing.exceptions import (
    InputValidationError, BatchLimitExceeded, NotFoundError,
    ConflictError, DependencyError,
)
from billing.bank_client import TransferError, TransferOutcomeUnknown
from billing.services import SettlementGuard
from core.utils import parse_money, money_to_json
from utils.audit import log_financial_activity

logger = logging.getLogger(__name__)

BANK_INFO_FIELDS = ('bankName', 'branchCode', 'accountNumber')


class SettlementProcessor:
    """
    Validate and execute a batch of payment instructions.

    Each instruction is a dict:
        {id, companyId, amount, bankInfo: {bankName, branchCode, accountNumber}}
    """

    def __init__(self, client, billing_settings=None):
        self.client = client
        self._settings = billing_settings

    def get_settings(self):
        if self._settings is None:
            from core.models import BillingSettings
            self._settings = BillingSettings.get_instance()
        return self._settings

    # -------------------------------------------------------------------------
    # VALIDATION
    # -------------------------------------------------------------------------

    def validate(self, payment_requests):
        """
        Validate the whole batch without side effects.

        Returns:
            list: (instruction, amount, BillingRecord) tuples in request order
        """
        if not isinstance(payment_requests, list) or not payment_requests:
            raise InputValidationError("payment requests are required")

        if len(payment_requests) > self.get_settings().batch_limit:
            raise BatchLimitExceeded()

        if not all(isinstance(item, dict) for item in payment_requests):
            raise InputValidationError("invalid payment request")

        amounts = []
        for item in payment_requests:
            amount = parse_money(item.get('amount'))
            if amount is None:
                raise InputValidationError("invalid amount")
            amounts.append(amount)

        for item in payment_requests:
            if not self._bank_info_complete(item.get('bankInfo')):
                raise InputValidationError("incomplete bank info")

        record_ids = []
        for item in payment_requests:
            if item.get('id') in (None, ''):
                raise InputValidationError("billing record id is required")
            try:
                record_ids.append(uuid.UUID(str(item['id'])))
            except ValueError:
                raise NotFoundError("billing record not found")

        if len(set(record_ids)) != len(record_ids):
            raise InputValidationError("duplicate billing record id")

        try:
            records = BillingRecord.objects.select_related('company').in_bulk(record_ids)
        except DatabaseError as e:
            logger.error(f"Loading billing records for settlement failed: {e}", exc_info=True)
            raise DependencyError() from e

        if len(records) != len(record_ids):
            raise NotFoundError("billing record not found")

        for item, record_id in zip(payment_requests, record_ids):
            if str(item.get('companyId') or '') != records[record_id].company.code:
                raise InputValidationError("company does not match billing record")

        for record_id in record_ids:
            record = records[record_id]
            if record.status != 'UNPAID' or record.settlement_intent_id is not None:
                logger.info(f"Rejected settlement of {record.pk}: status {record.status}")
                raise ConflictError()

        return [
            (item, amount, records[record_id])
            for item, amount, record_id in zip(payment_requests, amounts, record_ids)
        ]

    @staticmethod
    def _bank_info_complete(bank_info):
        if not isinstance(bank_info, dict):
            return False
        return all(
            isinstance(bank_info.get(field), str) and bank_info[field].strip()
            for field in BANK_INFO_FIELDS
        )

    # -------------------------------------------------------------------------
    # EXECUTION
    # -------------------------------------------------------------------------

    def process(self, payment_requests):
        """
        Returns:
            dict: {'processed_count': int, 'batch_reference': str}

        Raises:
            InputValidationError, NotFoundError, ConflictError: before any transfer
            DependencyError: datastore or transfer service failure
        """
        batch = self.validate(payment_requests)
        total = sum((amount for _, amount, _ in batch), Decimal('0'))

        try:
            intent = SettlementGuard.open_intent('BULK_SETTLEMENT', total, instruction_count=len(batch))
        except DatabaseError as e:
            logger.error(f"Opening settlement intent failed: {e}", exc_info=True)
            raise DependencyError() from e

        try:
            SettlementGuard.claim(intent, [record.pk for _, _, record in batch])
        except ConflictError:
            self._fail(intent, "billing record claimed by another settlement")
            raise
        except DatabaseError as e:
            logger.error(f"Claiming records for intent {intent.reference} failed: {e}", exc_info=True)
            self._fail(intent, e)
            raise DependencyError() from e

        log_financial_activity(
            'SETTLEMENT_SUBMIT',
            target_object=intent,
            amount=total,
            notes=f"Bulk settlement of {len(batch)} billing records",
            additional_data={'billing_record_ids': [str(record.pk) for _, _, record in batch]},
            batch_id=intent.reference,
        )

        description = f"Usage fee payment - {timezone.localdate().strftime('%Y-%m-%d')}"
        transfers = [
            {
                'billingRecordId': str(record.pk),
                'amount': money_to_json(amount),
                'bankName': item['bankInfo']['bankName'].strip(),
                'branchCode': item['bankInfo']['branchCode'].strip(),
                'accountNumber': item['bankInfo']['accountNumber'].strip(),
                'recipientName': record.company.name,
                'description': description,
            }
            for item, amount, record in batch
        ]

        try:
            response = self.client.bulk_transfer(transfers, intent.idempotency_key)
        except TransferOutcomeUnknown as e:
            logger.error(f"Bulk transfer {intent.reference} timed out: {e}")
            SettlementGuard.mark_unknown(intent, e)
            raise DependencyError() from e
        except TransferError as e:
            logger.error(f"Bulk transfer {intent.reference} failed: {e}")
            self._fail(intent, e)
            raise DependencyError() from e

        try:
            SettlementGuard.mark_transferred(
                intent, response.get('batchId') or response.get('transactionId')
            )
            processed = SettlementGuard.finalize(intent)
        except DatabaseError as e:
            logger.error(
                f"Bulk transfer {intent.reference} succeeded but the ledger write failed; "
                f"left for reconciliation: {e}",
                exc_info=True
            )
            log_financial_activity(
                'SETTLEMENT_FAIL',
                target_object=intent,
                amount=total,
                notes="Transfer succeeded, ledger write pending reconciliation",
                risk_level='CRITICAL',
                batch_id=intent.reference,
            )
            raise DependencyError() from e

        logger.info(f"Settled {processed} billing records in batch {intent.transaction_id}")
        return {'processed_count': processed, 'batch_reference': intent.transaction_id}

    def _fail(self, intent, error):
        try:
            SettlementGuard.release(intent, error)
        except DatabaseError as e:
            logger.error(f"Releasing intent {intent.reference} failed: {e}", exc_info=True)
