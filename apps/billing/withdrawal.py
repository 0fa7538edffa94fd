# billing/withdrawal.py

"""
Automatic withdrawal from a single tenant's bank account.
"""

from django.db import DatabaseError
import logging
import uuid

from billing.models import BillingRecord
from billing.exceptions import (
    InputValidationError, NotFoundError, ConflictError, DependencyError,
)
from billing.bank_client import TransferError, TransferOutcomeUnknown
from billing.services import SettlementGuard
from core.utils import parse_money, money_to_json, parse_iso_date
from utils.audit import log_financial_activity

logger = logging.getLogger(__name__)


class WithdrawalAgent:
    """
    Debit a company's registered bank account and record the ledger entry.

    Without ``billing_record_id`` a new WITHDRAWAL billing record is
    created; with it, that UNPAID invoice is settled to COMPLETED.
    """

    def __init__(self, client):
        self.client = client

    def withdraw(self, company_id, amount, withdrawal_date, billing_record_id=None):
        """
        Returns:
            dict: {'success': True, 'transaction_id': str}

        Raises:
            InputValidationError: missing or malformed parameters, incomplete bank info
            NotFoundError: unknown company or billing record
            ConflictError: billing record already settled or claimed
            DependencyError: datastore or transfer service failure
        """
        if any(value in (None, '') for value in (company_id, amount, withdrawal_date)):
            raise InputValidationError("missing required parameters")

        amount = parse_money(amount)
        if amount is None:
            raise InputValidationError("invalid amount")

        withdrawal_date = parse_iso_date(withdrawal_date)
        if withdrawal_date is None:
            raise InputValidationError("invalid withdrawal date")

        company = self._get_company(company_id)

        bank_account = company.get_bank_account()
        if bank_account is None or not bank_account.is_complete():
            raise InputValidationError("incomplete bank info")

        record = None
        if billing_record_id not in (None, ''):
            record = self._get_record(company, billing_record_id)

        try:
            intent = SettlementGuard.open_intent(
                'WITHDRAWAL', amount, company=company, withdrawal_date=withdrawal_date
            )
            if record is not None:
                SettlementGuard.claim(intent, [record.pk])
        except ConflictError:
            SettlementGuard.release(intent, "billing record claimed by another transfer")
            raise
        except DatabaseError as e:
            logger.error(f"Preparing withdrawal for {company.code} failed: {e}", exc_info=True)
            raise DependencyError() from e

        payload = {
            'companyId': company.code,
            'amount': money_to_json(amount),
            'withdrawalDate': withdrawal_date.isoformat(),
            'bankName': bank_account.bank_name,
            'branchCode': bank_account.branch_code,
            'accountType': bank_account.account_type,
            'accountNumber': bank_account.account_number,
            'description': f"Automatic withdrawal - {withdrawal_date.isoformat()}",
        }

        logger.info(
            f"Withdrawing {amount} from {company.code} "
            f"({bank_account.bank_name} {bank_account.masked_account_number}), intent {intent.reference}"
        )

        try:
            response = self.client.withdraw(payload, intent.idempotency_key)
        except TransferOutcomeUnknown as e:
            logger.error(f"Withdrawal {intent.reference} for {company.code} timed out: {e}")
            SettlementGuard.mark_unknown(intent, e)
            raise DependencyError() from e
        except TransferError as e:
            logger.error(f"Withdrawal {intent.reference} for {company.code} failed: {e}")
            SettlementGuard.release(intent, e)
            raise DependencyError() from e

        try:
            SettlementGuard.mark_transferred(intent, response.get('transactionId'))
            SettlementGuard.finalize(intent)
        except DatabaseError as e:
            logger.error(
                f"Withdrawal {intent.reference} succeeded but the ledger write failed; "
                f"left for reconciliation: {e}",
                exc_info=True
            )
            log_financial_activity(
                'WITHDRAWAL_FAIL',
                target_object=intent,
                amount=amount,
                company=company,
                notes="Transfer succeeded, ledger write pending reconciliation",
                risk_level='CRITICAL',
                batch_id=intent.reference,
            )
            raise DependencyError() from e

        return {'success': True, 'transaction_id': intent.transaction_id}

    def _get_company(self, company_id):
        from tenants.models import Company
        try:
            return Company.objects.select_related('bank_account').get(code=str(company_id))
        except Company.DoesNotExist:
            raise NotFoundError("company not found")
        except DatabaseError as e:
            logger.error(f"Company lookup for {company_id} failed: {e}", exc_info=True)
            raise DependencyError() from e

    def _get_record(self, company, billing_record_id):
        try:
            record_pk = uuid.UUID(str(billing_record_id))
        except ValueError:
            raise NotFoundError("billing record not found")

        try:
            record = BillingRecord.objects.filter(pk=record_pk, company=company).first()
        except DatabaseError as e:
            logger.error(f"Billing record lookup failed: {e}", exc_info=True)
            raise DependencyError() from e

        if record is None:
            raise NotFoundError("billing record not found")
        if record.status != 'UNPAID' or record.settlement_intent_id is not None:
            raise ConflictError()
        return record
