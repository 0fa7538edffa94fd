"""
Unit tests for the settlement guard and transfer reconciliation.
"""
import pytest
from decimal import Decimal

from billing.bank_client import TransferServiceError
from billing.exceptions import ConflictError
from billing.models import BillingRecord, TransferIntent
from billing.services import SettlementGuard, TransferReconciler


pytestmark = [pytest.mark.unit, pytest.mark.django_db]


@pytest.fixture
def unknown_settlement(company, other_company, make_invoice):
    """A bulk settlement whose transfer timed out."""
    records = [make_invoice(company), make_invoice(other_company)]
    intent = SettlementGuard.open_intent('BULK_SETTLEMENT', Decimal('22000'), instruction_count=2)
    SettlementGuard.claim(intent, [record.pk for record in records])
    SettlementGuard.mark_unknown(intent, "timeout")
    return intent, records


class TestSettlementGuard:

    def test_claim_is_all_or_nothing(self, company, make_invoice):
        free = make_invoice(company)
        paid = make_invoice(company, billing_month='2024-02', status='PAID')
        intent = SettlementGuard.open_intent('BULK_SETTLEMENT', Decimal('22000'), instruction_count=2)

        with pytest.raises(ConflictError):
            SettlementGuard.claim(intent, [free.pk, paid.pk])

        free.refresh_from_db()
        assert free.settlement_intent is None

    def test_second_claim_on_same_record_conflicts(self, company, make_invoice):
        record = make_invoice(company)
        first = SettlementGuard.open_intent('BULK_SETTLEMENT', Decimal('11000'))
        second = SettlementGuard.open_intent('BULK_SETTLEMENT', Decimal('11000'))

        SettlementGuard.claim(first, [record.pk])
        with pytest.raises(ConflictError):
            SettlementGuard.claim(second, [record.pk])

        record.refresh_from_db()
        assert record.settlement_intent == first

    def test_finalize_is_idempotent(self, company, make_invoice):
        record = make_invoice(company)
        intent = SettlementGuard.open_intent('BULK_SETTLEMENT', Decimal('11000'))
        SettlementGuard.claim(intent, [record.pk])
        SettlementGuard.mark_transferred(intent, 'BATCH-9')

        assert SettlementGuard.finalize(intent) == 1
        assert SettlementGuard.finalize(intent) == 0

        record.refresh_from_db()
        assert record.status == 'PAID'
        assert record.transaction_id == 'BATCH-9'

    def test_withdrawal_finalize_creates_one_entry(self, company):
        intent = SettlementGuard.open_intent('WITHDRAWAL', Decimal('5000'), company=company)
        SettlementGuard.mark_transferred(intent, 'TX-5')

        SettlementGuard.finalize(intent)
        SettlementGuard.finalize(intent)

        assert BillingRecord.objects.filter(kind='WITHDRAWAL').count() == 1


class TestTransferReconciler:

    def test_unknown_completed_at_bank(self, unknown_settlement, transfer_client):
        intent, records = unknown_settlement
        transfer_client.lookup_response = {'status': 'COMPLETED', 'batchId': 'BATCH-77'}

        summary = TransferReconciler(transfer_client).reconcile()

        assert summary['completed'] == 1
        assert transfer_client.lookup_calls == [intent.idempotency_key]
        for record in records:
            record.refresh_from_db()
            assert record.status == 'PAID'
            assert record.transaction_id == 'BATCH-77'
        intent.refresh_from_db()
        assert intent.status == 'COMPLETED'

    @pytest.mark.parametrize('bank_status', ['FAILED', 'NOT_FOUND'])
    def test_unknown_failed_at_bank(self, unknown_settlement, transfer_client, bank_status):
        intent, records = unknown_settlement
        transfer_client.lookup_response = {'status': bank_status}

        summary = TransferReconciler(transfer_client).reconcile()

        assert summary['failed'] == 1
        assert sorted(summary['manual_review']) == sorted(str(record.pk) for record in records)
        intent.refresh_from_db()
        assert intent.status == 'FAILED'
        for record in records:
            record.refresh_from_db()
            assert record.status == 'PROCESSING'

    def test_unknown_still_pending(self, unknown_settlement, transfer_client):
        intent, _ = unknown_settlement
        transfer_client.lookup_response = {'status': 'PENDING'}

        summary = TransferReconciler(transfer_client).reconcile()

        assert summary['pending'] == 1
        intent.refresh_from_db()
        assert intent.status == 'UNKNOWN'

    def test_lookup_failure_left_for_next_run(self, unknown_settlement, transfer_client):
        intent, _ = unknown_settlement
        transfer_client.lookup_error = TransferServiceError("HTTP 503")

        summary = TransferReconciler(transfer_client).reconcile()

        assert summary['pending'] == 1
        intent.refresh_from_db()
        assert intent.status == 'UNKNOWN'

    def test_nothing_to_do(self, transfer_client, db):
        summary = TransferReconciler(transfer_client).reconcile()

        assert summary == {'completed': 0, 'failed': 0, 'pending': 0, 'manual_review': []}
        assert not TransferIntent.objects.exists()


class TestStalePendingIntents:

    @pytest.fixture
    def pending_settlement(self, company, make_invoice):
        """A bulk settlement whose outcome was never recorded."""
        record = make_invoice(company)
        intent = SettlementGuard.open_intent('BULK_SETTLEMENT', Decimal('11000'))
        SettlementGuard.claim(intent, [record.pk])
        return intent, record

    def test_recent_pending_intent_left_alone(self, pending_settlement, transfer_client):
        summary = TransferReconciler(transfer_client).reconcile()

        assert summary == {'completed': 0, 'failed': 0, 'pending': 0, 'manual_review': []}
        assert transfer_client.lookup_calls == []

    def test_completed_at_bank(self, pending_settlement, transfer_client):
        intent, record = pending_settlement
        transfer_client.lookup_response = {'status': 'COMPLETED', 'batchId': 'BATCH-12'}

        summary = TransferReconciler(transfer_client, grace_period=0).reconcile()

        assert summary['completed'] == 1
        record.refresh_from_db()
        assert record.status == 'PAID'
        assert record.transaction_id == 'BATCH-12'

    def test_never_reached_bank_releases_claims(self, pending_settlement, transfer_client):
        intent, record = pending_settlement
        transfer_client.lookup_response = {'status': 'NOT_FOUND'}

        summary = TransferReconciler(transfer_client, grace_period=0).reconcile()

        assert summary['failed'] == 1
        assert summary['manual_review'] == []
        intent.refresh_from_db()
        assert intent.status == 'FAILED'
        record.refresh_from_db()
        assert record.status == 'UNPAID'
        assert record.settlement_intent is None
