"""
Integration tests for the billing HTTP API.
"""
import io
import json

import pytest
from openpyxl import load_workbook

from billing.bank_client import TransferServiceError
from billing.models import BillingRecord


pytestmark = [pytest.mark.integration, pytest.mark.django_db]


def post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type='application/json')


@pytest.fixture
def bank(monkeypatch, transfer_client):
    monkeypatch.setattr('billing.views.build_transfer_client', lambda: transfer_client)
    return transfer_client


class TestAuthentication:

    @pytest.mark.parametrize('url, payload', [
        ('/billing/invoices/generate/', {'billingMonth': '2024-01'}),
        ('/billing/auto-payment/', {'companyId': 'company-1', 'amount': 50000, 'withdrawalDate': '2024-02-25'}),
        ('/payments/process/', {'paymentRequests': []}),
    ])
    def test_anonymous_post_rejected(self, client, bank, company, url, payload):
        response = post_json(client, url, payload)

        assert response.status_code == 401
        assert response.json() == {'error': 'authentication required'}
        assert bank.withdraw_calls == []
        assert bank.bulk_calls == []
        assert not BillingRecord.objects.exists()

    @pytest.mark.parametrize('url', [
        '/billing/invoices/?billingMonth=2024-01',
        '/billing/invoices/export/?billingMonth=2024-01',
        '/billing/invoices/00000000-0000-0000-0000-000000000000/pdf/',
    ])
    def test_anonymous_get_rejected(self, client, url):
        response = client.get(url)

        assert response.status_code == 401
        assert response.json() == {'error': 'authentication required'}


class TestGenerateInvoicesEndpoint:
    url = '/billing/invoices/generate/'

    def test_scenario_a(self, admin_client, january_usage, mailoutbox):
        response = post_json(admin_client, self.url, {'billingMonth': '2024-01'})

        assert response.status_code == 200
        data = response.json()
        assert [i['invoiceNumber'] for i in data['invoices']] == ['INV-202401-0001', 'INV-202401-0002']
        assert [i['totalAmount'] for i in data['invoices']] == [50000, 30000]
        assert data['invoices'][0]['billingMonth'] == '2024-01'
        assert data['skipped'] == []
        assert data['failures'] == []
        assert 'message' in data
        assert len(mailoutbox) == 2
        assert response['X-Request-ID']

    def test_scenario_b_invalid_month(self, admin_client, billing_settings):
        response = post_json(admin_client, self.url, {'billingMonth': 'invalid-date'})

        assert response.status_code == 400
        assert response.json() == {'error': 'invalid month format'}

    def test_missing_month(self, admin_client, billing_settings):
        response = post_json(admin_client, self.url, {})

        assert response.status_code == 400
        assert response.json() == {'error': 'invalid month format'}

    def test_malformed_json(self, admin_client):
        response = admin_client.post(self.url, data='{not json', content_type='application/json')

        assert response.status_code == 400

    def test_method_not_allowed(self, admin_client):
        response = admin_client.get(self.url)

        assert response.status_code == 405
        assert response.json() == {'error': 'Method not allowed'}

    def test_unexpected_error_is_generic(self, admin_client, monkeypatch, billing_settings):
        def explode():
            raise RuntimeError("secret detail")

        monkeypatch.setattr('billing.views.build_invoice_generator', explode)

        response = post_json(admin_client, self.url, {'billingMonth': '2024-01'})

        assert response.status_code == 500
        assert 'secret' not in response.content.decode()


class TestProcessPaymentsEndpoint:
    url = '/payments/process/'

    def test_success(self, admin_client, bank, company, make_invoice, make_payment_request):
        record = make_invoice(company)

        response = post_json(admin_client, self.url, {'paymentRequests': [make_payment_request(record)]})

        assert response.status_code == 200
        assert response.json() == {'success': True, 'processedCount': 1, 'batchReference': 'BATCH-0001'}
        assert bank.closed

    def test_missing_list(self, admin_client, bank, billing_settings):
        response = post_json(admin_client, self.url, {})

        assert response.status_code == 400
        assert response.json() == {'error': 'payment requests are required'}

    def test_scenario_c_batch_limit(self, admin_client, bank, company, make_invoice, make_payment_request):
        record = make_invoice(company)

        response = post_json(admin_client, self.url, {'paymentRequests': [make_payment_request(record)] * 101})

        assert response.status_code == 400
        assert response.json() == {'error': 'batch limit exceeded'}
        assert bank.bulk_calls == []

    def test_scenario_d_already_processed(self, admin_client, bank, company, make_invoice, make_payment_request):
        record = make_invoice(company, status='PAID')

        response = post_json(admin_client, self.url, {'paymentRequests': [make_payment_request(record)]})

        assert response.status_code == 409
        assert response.json() == {'error': 'already processed'}
        assert bank.bulk_calls == []

    def test_unknown_record(self, admin_client, bank, billing_settings, make_payment_request, company,
                            make_invoice):
        request = make_payment_request(make_invoice(company))
        request['id'] = '00000000-0000-0000-0000-000000000000'

        response = post_json(admin_client, self.url, {'paymentRequests': [request]})

        assert response.status_code == 404

    def test_scenario_f_transfer_failure(self, admin_client, bank, company, make_invoice, make_payment_request):
        record = make_invoice(company)
        bank.bulk_error = TransferServiceError("HTTP 503 from bank")

        response = post_json(admin_client, self.url, {'paymentRequests': [make_payment_request(record)]})

        assert response.status_code == 500
        assert response.json() == {'error': 'a dependent service failed, please retry later'}
        record.refresh_from_db()
        assert record.status == 'UNPAID'


class TestAutoPaymentEndpoint:
    url = '/billing/auto-payment/'

    def test_success(self, admin_client, bank, company):
        response = post_json(admin_client, self.url, {
            'companyId': 'company-1', 'amount': 50000, 'withdrawalDate': '2024-02-25',
        })

        assert response.status_code == 200
        assert response.json() == {'success': True, 'transactionId': 'TX-0001'}
        assert BillingRecord.objects.filter(kind='WITHDRAWAL', status='COMPLETED').count() == 1

    def test_scenario_e_unknown_company(self, admin_client, bank, company):
        response = post_json(admin_client, self.url, {
            'companyId': 'company-404', 'amount': 50000, 'withdrawalDate': '2024-02-25',
        })

        assert response.status_code == 404
        assert response.json() == {'error': 'company not found'}
        assert BillingRecord.objects.count() == 0

    def test_missing_parameters(self, admin_client, bank, company):
        response = post_json(admin_client, self.url, {'companyId': 'company-1'})

        assert response.status_code == 400
        assert response.json() == {'error': 'missing required parameters'}


class TestInvoiceManagementEndpoints:

    @pytest.fixture
    def issued(self, admin_client, january_usage, mailoutbox):
        post_json(admin_client, '/billing/invoices/generate/', {'billingMonth': '2024-01'})
        return BillingRecord.objects.invoices().order_by('invoice_number')

    def test_list(self, admin_client, issued):
        response = admin_client.get('/billing/invoices/?billingMonth=2024-01')

        assert response.status_code == 200
        invoices = response.json()['invoices']
        assert [i['invoiceNumber'] for i in invoices] == ['INV-202401-0001', 'INV-202401-0002']
        assert invoices[0]['status'] == 'UNPAID'
        assert invoices[0]['companyName'] == 'Alpha Books Inc'

    def test_list_filters_by_status(self, admin_client, issued):
        response = admin_client.get('/billing/invoices/?billingMonth=2024-01&status=PAID')

        assert response.json()['invoices'] == []

    def test_list_invalid_month(self, admin_client, billing_settings):
        response = admin_client.get('/billing/invoices/?billingMonth=2024-13')

        assert response.status_code == 400
        assert response.json() == {'error': 'invalid month format'}

    def test_pdf_download(self, admin_client, issued):
        record = issued[0]

        response = admin_client.get(f'/billing/invoices/{record.pk}/pdf/')

        assert response.status_code == 200
        assert response['Content-Type'] == 'application/pdf'
        assert 'invoice-INV-202401-0001.pdf' in response['Content-Disposition']
        assert response.content.startswith(b'%PDF')

    def test_pdf_unknown_invoice(self, admin_client, billing_settings):
        response = admin_client.get('/billing/invoices/00000000-0000-0000-0000-000000000000/pdf/')

        assert response.status_code == 404

    def test_excel_export(self, admin_client, issued):
        response = admin_client.get('/billing/invoices/export/?billingMonth=2024-01')

        assert response.status_code == 200
        workbook = load_workbook(io.BytesIO(response.content))
        sheet = workbook.active
        assert sheet['A1'].value == 'Billing Records - 2024-01'
        assert sheet['B5'].value == 'INV-202401-0001'
        assert sheet['I5'].value == 50000
        assert sheet['B6'].value == 'INV-202401-0002'
