# billing/views.py

"""
Billing & Settlement Views

JSON endpoints for:
- Monthly invoice generation
- Automatic withdrawal
- Bulk payment settlement
- Invoice list, PDF download and Excel export (dashboards)

Every endpoint requires an authenticated user (JSON 401 otherwise) and
answers errors as {"error": message} with the status code of the billing
error raised.
"""

from django.http import JsonResponse, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.utils import timezone
from functools import wraps
import json
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from billing.models import BillingRecord
from billing.forms import BillingMonthForm, InvoiceFilterForm
from billing.exceptions import (
    BillingError, InputValidationError, InvalidPeriodFormat, NotFoundError, InternalError,
)
from billing.aggregation import UsageAggregator
from billing.documents import InvoicePDFRenderer, invoice_filename
from billing.notifications import InvoiceMailer
from billing.invoice_generators import MonthlyInvoiceGenerator
from billing.bank_client import BankTransferClient
from billing.settlement import SettlementProcessor
from billing.withdrawal import WithdrawalAgent
from core.utils import money_to_json
from utils.audit import log_financial_activity

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def build_transfer_client():
    return BankTransferClient()


def build_invoice_generator():
    return MonthlyInvoiceGenerator(
        aggregator=UsageAggregator(),
        renderer=InvoicePDFRenderer(),
        mailer=InvoiceMailer(),
    )


def billing_api(methods):
    """
    Restrict a view to ``methods`` and translate billing errors into JSON.

    Unexpected exceptions are logged and answered with a generic 500.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if request.method not in methods:
                return JsonResponse({'error': 'Method not allowed'}, status=405)
            try:
                return view_func(request, *args, **kwargs)
            except BillingError as e:
                if e.status_code >= 500:
                    logger.error(f"{request.path} failed: {e.__class__.__name__}: {e.__cause__ or e}")
                return JsonResponse({'error': e.public_message}, status=e.status_code)
            except Exception:
                logger.exception(f"Unexpected error in {request.path}")
                return JsonResponse({'error': InternalError.default_message}, status=500)
        return wrapper
    return decorator


def api_login_required(view_func):
    """Like login_required, but answers anonymous callers with a JSON 401."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'error': 'authentication required'}, status=401)
        return view_func(request, *args, **kwargs)
    return wrapper


def parse_json_body(request):
    try:
        data = json.loads(request.body or b'{}')
    except (ValueError, UnicodeDecodeError):
        raise InputValidationError("invalid JSON body")
    if not isinstance(data, dict):
        raise InputValidationError("invalid JSON body")
    return data


def record_payload(record):
    return {
        'id': str(record.pk),
        'kind': record.kind,
        'invoiceNumber': record.invoice_number,
        'companyId': record.company.code,
        'companyName': record.company.name,
        'billingMonth': record.billing_month,
        'status': record.status,
        'totalAmount': money_to_json(record.total_amount),
        'details': {
            'usage_fee': money_to_json(record.usage_fee),
            'shipping_fee': money_to_json(record.shipping_fee),
        },
        'itemCount': record.item_count,
        'transactionId': record.transaction_id,
        'withdrawalDate': record.withdrawal_date.isoformat() if record.withdrawal_date else None,
        'paidAt': record.paid_at.isoformat() if record.paid_at else None,
    }


def filtered_records(request):
    form = InvoiceFilterForm(request.GET)
    if not form.is_valid():
        if 'billingMonth' in form.errors:
            raise InvalidPeriodFormat()
        raise InputValidationError("invalid filter")
    queryset = BillingRecord.objects.select_related('company').order_by('kind', 'invoice_number', 'company__code')
    return form.cleaned_data['billingMonth'], form.filter_queryset(queryset)


# =============================================================================
# INVOICE GENERATION
# =============================================================================

@csrf_exempt
@api_login_required
@billing_api(['POST'])
def generate_invoices(request):
    """Generate the invoices of a billing month: {billingMonth: "YYYY-MM"}."""
    body = parse_json_body(request)

    form = BillingMonthForm(data={'billingMonth': body.get('billingMonth')})
    if not form.is_valid():
        raise InvalidPeriodFormat()

    billing_month = form.cleaned_data['billingMonth']
    report = build_invoice_generator().generate(billing_month)

    return JsonResponse({
        'message': f"{len(report.invoices)} invoices generated for {billing_month}",
        'invoices': report.invoices,
        'skipped': report.skipped,
        'failures': report.failures,
    })


# =============================================================================
# SETTLEMENT
# =============================================================================

@csrf_exempt
@api_login_required
@billing_api(['POST'])
def auto_payment(request):
    """Automatic withdrawal: {companyId, amount, withdrawalDate, billingRecordId?}."""
    body = parse_json_body(request)

    client = build_transfer_client()
    try:
        result = WithdrawalAgent(client).withdraw(
            body.get('companyId'),
            body.get('amount'),
            body.get('withdrawalDate'),
            billing_record_id=body.get('billingRecordId'),
        )
    finally:
        client.close()

    return JsonResponse({'success': True, 'transactionId': result['transaction_id']})


@csrf_exempt
@api_login_required
@billing_api(['POST'])
def process_payments(request):
    """Bulk settlement: {paymentRequests: [{id, companyId, amount, bankInfo}]}."""
    body = parse_json_body(request)

    client = build_transfer_client()
    try:
        result = SettlementProcessor(client).process(body.get('paymentRequests'))
    finally:
        client.close()

    return JsonResponse({
        'success': True,
        'processedCount': result['processed_count'],
        'batchReference': result['batch_reference'],
    })


# =============================================================================
# INVOICE MANAGEMENT
# =============================================================================

@api_login_required
@billing_api(['GET'])
def invoice_list(request):
    """Billing records of a month, filterable by status, kind and company."""
    _, records = filtered_records(request)
    return JsonResponse({'invoices': [record_payload(record) for record in records]})


@api_login_required
@billing_api(['GET'])
def invoice_pdf(request, pk):
    """Download an invoice PDF; the document sent by email when available."""
    record = (
        BillingRecord.objects.invoices()
        .select_related('company')
        .filter(pk=pk)
        .first()
    )
    if record is None:
        raise NotFoundError("invoice not found")

    dispatch = getattr(record, 'dispatch', None)
    if dispatch is not None and dispatch.document:
        document = bytes(dispatch.document)
    else:
        document = InvoicePDFRenderer().render_record(record)

    response = HttpResponse(document, content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{invoice_filename(record.invoice_number)}"'
    return response


@api_login_required
@billing_api(['GET'])
def invoice_export(request):
    """Export the billing records of a month to Excel."""
    billing_month, records = filtered_records(request)

    wb = Workbook()
    ws = wb.active
    ws.title = f"Invoices {billing_month}"

    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF", size=12)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    border_style = Border(
        left=Side(style='thin', color='000000'),
        right=Side(style='thin', color='000000'),
        top=Side(style='thin', color='000000'),
        bottom=Side(style='thin', color='000000')
    )

    # Title row
    ws.merge_cells('A1:K1')
    title_cell = ws['A1']
    title_cell.value = f"Billing Records - {billing_month}"
    title_cell.font = Font(bold=True, size=16, color="4472C4")
    title_cell.alignment = Alignment(horizontal="center", vertical="center")

    ws.merge_cells('A2:K2')
    subtitle_cell = ws['A2']
    subtitle_cell.value = f"Generated on: {timezone.localtime().strftime('%Y-%m-%d %H:%M')}"
    subtitle_cell.font = Font(size=10, italic=True)
    subtitle_cell.alignment = Alignment(horizontal="center")

    ws.append([])

    headers = [
        '#', 'Invoice Number', 'Kind', 'Company ID', 'Company Name', 'Lendings',
        'Usage Fee', 'Shipping Fee', 'Total Amount', 'Status', 'Transaction ID'
    ]
    ws.append(headers)
    for cell in ws[4]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = border_style

    total = 0
    count = 0
    for idx, record in enumerate(records, start=1):
        ws.append([
            idx,
            record.invoice_number or '',
            record.get_kind_display(),
            record.company.code,
            record.company.name,
            record.item_count,
            float(record.usage_fee),
            float(record.shipping_fee),
            float(record.total_amount),
            record.get_status_display(),
            record.transaction_id or '',
        ])
        for cell in ws[ws.max_row]:
            cell.border = border_style
            cell.alignment = Alignment(vertical="center")
        total += record.total_amount
        count = idx

    column_widths = {
        'A': 5, 'B': 20, 'C': 20, 'D': 15, 'E': 30, 'F': 10,
        'G': 14, 'H': 14, 'I': 14, 'J': 12, 'K': 25
    }
    for col, width in column_widths.items():
        ws.column_dimensions[col].width = width

    summary_row = ws.max_row + 2
    ws[f'A{summary_row}'] = 'Records:'
    ws[f'B{summary_row}'] = count
    ws[f'A{summary_row + 1}'] = 'Total:'
    ws[f'B{summary_row + 1}'] = float(total)
    ws[f'A{summary_row}'].font = Font(bold=True)
    ws[f'A{summary_row + 1}'].font = Font(bold=True)

    ws.freeze_panes = 'A5'

    log_financial_activity(
        'FINANCIAL_DATA_EXPORT',
        amount=total,
        notes=f"Exported {count} billing records for {billing_month}",
        additional_data={'billing_month': billing_month, 'filters': request.GET.dict()},
    )

    response = HttpResponse(
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    filename = f"billing_records_{billing_month}_{timezone.localtime().strftime('%Y%m%d_%H%M%S')}.xlsx"
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    wb.save(response)
    return response
