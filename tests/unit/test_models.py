"""
Unit tests for billing, tenant and configuration models.
"""
import pytest
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError

from billing.models import BillingRecord
from core.models import BillingSettings
from utils.models import FinancialAuditLog


pytestmark = [pytest.mark.unit, pytest.mark.django_db]


class TestBillingRecord:

    def test_total_is_usage_plus_shipping(self, company, make_invoice):
        record = make_invoice(company, usage_fee='45000', shipping_fee='5000')

        assert record.total_amount == Decimal('50000')

    def test_total_recomputed_on_update(self, company, make_invoice):
        record = make_invoice(company, usage_fee='100', shipping_fee='50')
        record.total_amount = Decimal('1')
        record.save(update_fields=['status'])

        record.refresh_from_db()
        assert record.total_amount == Decimal('150')

    def test_cannot_delete_record(self, company, make_invoice):
        record = make_invoice(company)

        with pytest.raises(ProtectedError):
            record.delete()
        assert BillingRecord.objects.filter(pk=record.pk).exists()

    def test_cannot_delete_queryset(self, company, make_invoice):
        make_invoice(company)

        with pytest.raises(ProtectedError):
            BillingRecord.objects.all().delete()
        assert BillingRecord.objects.count() == 1

    def test_status_moves_forward(self, company, make_invoice):
        record = make_invoice(company)
        for status in ['PROCESSING', 'PAID']:
            record.status = status
            record.save()
        record.refresh_from_db()
        assert record.status == 'PAID'

    @pytest.mark.parametrize('start, target', [
        ('PAID', 'UNPAID'),
        ('PAID', 'PROCESSING'),
        ('PROCESSING', 'UNPAID'),
        ('COMPLETED', 'PAID'),
    ])
    def test_status_never_reverses(self, company, make_invoice, start, target):
        record = make_invoice(company, status=start)
        record.status = target

        with pytest.raises(ValidationError):
            record.save()
        record.refresh_from_db()
        assert record.status == start

    def test_one_invoice_per_company_and_month(self, company, make_invoice):
        make_invoice(company, billing_month='2024-01')

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                make_invoice(company, billing_month='2024-01')

    def test_invoice_number_unique_within_month(self, company, other_company, make_invoice):
        make_invoice(company, invoice_number='INV-202401-0001')

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                make_invoice(other_company, invoice_number='INV-202401-0001')

    def test_creation_is_audited(self, company, make_invoice):
        record = make_invoice(company)

        log = FinancialAuditLog.objects.get(action='INVOICE_CREATE')
        assert log.object_id == str(record.pk)
        assert log.company_code == 'company-1'
        assert log.amount_involved == record.total_amount


class TestBankAccount:

    def test_masked_account_number(self, company):
        assert company.bank_account.masked_account_number == '***4567'

    def test_incomplete_account(self, company):
        account = company.get_bank_account()
        account.branch_code = ''

        assert not account.is_complete()

    def test_company_without_account(self, make_company):
        assert make_company('company-8', bank=False).get_bank_account() is None


class TestBillingSettings:

    def test_singleton_defaults(self, db):
        settings = BillingSettings.get_instance()

        assert settings.pk == 1
        assert settings.invoice_prefix == 'INV'
        assert settings.shipping_flat_rate == Decimal('500')
        assert settings.batch_limit == 100
        assert BillingSettings.get_instance().pk == settings.pk

    def test_format_currency(self, billing_settings):
        assert billing_settings.format_currency(Decimal('50000')) == 'JPY 50,000'

    def test_subject_template(self, billing_settings):
        subject = billing_settings.render_invoice_subject('INV-202401-0001', '2024-01')

        assert subject == 'Invoice INV-202401-0001 for 2024-01'

    def test_subject_must_mention_month(self, billing_settings):
        billing_settings.invoice_email_subject = 'Your invoice'

        with pytest.raises(ValidationError):
            billing_settings.full_clean()
