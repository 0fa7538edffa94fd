"""
Booklend Test Configuration

Pytest fixtures shared by the unit and integration suites.
"""
import os
import pytest
from datetime import date
from decimal import Decimal

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'booklend.settings.testing')


# ============================================================================
# Fake transfer service
# ============================================================================

class FakeTransferClient:
    """
    Stand-in for BankTransferClient.

    Set ``bulk_error`` / ``withdraw_error`` / ``lookup_error`` to an exception
    to make the matching call raise it.
    """

    def __init__(self):
        self.bulk_calls = []
        self.withdraw_calls = []
        self.lookup_calls = []
        self.bulk_error = None
        self.withdraw_error = None
        self.lookup_error = None
        self.bulk_response = {'batchId': 'BATCH-0001', 'status': 'COMPLETED'}
        self.withdraw_response = {'transactionId': 'TX-0001', 'status': 'COMPLETED'}
        self.lookup_response = {'status': 'PENDING'}
        self.closed = False

    def bulk_transfer(self, transfers, idempotency_key):
        self.bulk_calls.append((transfers, idempotency_key))
        if self.bulk_error:
            raise self.bulk_error
        return self.bulk_response

    def withdraw(self, withdrawal, idempotency_key):
        self.withdraw_calls.append((withdrawal, idempotency_key))
        if self.withdraw_error:
            raise self.withdraw_error
        return self.withdraw_response

    def get_transfer(self, idempotency_key):
        self.lookup_calls.append(idempotency_key)
        if self.lookup_error:
            raise self.lookup_error
        return self.lookup_response

    def close(self):
        self.closed = True


@pytest.fixture
def transfer_client():
    return FakeTransferClient()


# ============================================================================
# Factories
# ============================================================================

@pytest.fixture
def billing_settings(db):
    from core.models import BillingSettings
    return BillingSettings.get_instance()


@pytest.fixture
def make_company(db):
    """Create a company, with a complete bank account unless bank=False."""
    from tenants.models import Company, BankAccount

    def _make(code, name=None, bank=True):
        company = Company.objects.create(
            code=code,
            name=name or f"{code.title()} Ltd",
            contact_email=f"billing@{code}.example.com",
        )
        if bank:
            BankAccount.objects.create(
                company=company,
                bank_name='Mizuho Bank',
                branch_code='001',
                account_type='ORDINARY',
                account_number='1234567',
            )
        return company
    return _make


@pytest.fixture
def company(make_company):
    return make_company('company-1', name='Alpha Books Inc')


@pytest.fixture
def other_company(make_company):
    return make_company('company-2', name='Beta Learning Co')


@pytest.fixture
def make_book(db):
    from lending.models import Book

    def _make(fee, title='Sample Book'):
        return Book.objects.create(title=title, lending_fee_per_day=Decimal(fee))
    return _make


@pytest.fixture
def lend(db):
    """Record ``count`` lendings of ``book`` to ``company`` on ``lending_date``."""
    from lending.models import LendingRecord

    def _lend(company, book, lending_date, count=1, status='LENT'):
        return [
            LendingRecord.objects.create(
                book=book,
                company=company,
                lending_date=lending_date,
                return_due_date=lending_date,
                status=status,
            )
            for _ in range(count)
        ]
    return _lend


@pytest.fixture
def january_usage(company, other_company, make_book, lend, billing_settings):
    """
    company-1: 10 lendings at 4500 -> usage 45000, shipping 5000
    company-2: 4 lendings at 7000 -> usage 28000, shipping 2000
    """
    expensive = make_book('4500', title='Systems Design')
    premium = make_book('7000', title='Accounting Handbook')
    lend(company, expensive, date(2024, 1, 10), count=10)
    lend(other_company, premium, date(2024, 1, 20), count=4)
    return company, other_company


@pytest.fixture
def make_invoice(db):
    from billing.models import BillingRecord

    counter = {'n': 0}

    def _make(company, billing_month='2024-01', usage_fee='10000', shipping_fee='1000',
              status='UNPAID', invoice_number=None):
        counter['n'] += 1
        return BillingRecord.objects.create(
            kind='INVOICE',
            company=company,
            billing_month=billing_month,
            invoice_number=invoice_number or f"INV-{billing_month.replace('-', '')}-{counter['n']:04d}",
            usage_fee=Decimal(usage_fee),
            shipping_fee=Decimal(shipping_fee),
            item_count=2,
            status=status,
        )
    return _make


def payment_request(record, amount=None, **bank_overrides):
    bank_info = {'bankName': 'Mizuho Bank', 'branchCode': '001', 'accountNumber': '1234567'}
    bank_info.update(bank_overrides)
    return {
        'id': str(record.pk),
        'companyId': record.company.code,
        'amount': amount if amount is not None else int(record.total_amount),
        'bankInfo': bank_info,
    }


@pytest.fixture
def make_payment_request():
    return payment_request
