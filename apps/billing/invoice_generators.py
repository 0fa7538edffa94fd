# billing/invoice_generators.py

"""
Monthly invoice generation.

Each company is invoiced independently: one company's failure is recorded
in the run report and the run moves on to the next company. The invoice
number, the billing record and its email outbox row are written in one
transaction; the email goes out after the commit.
"""

from django.db import transaction, DatabaseError, IntegrityError
from django.utils import timezone
import logging
import uuid

from billing.models import BillingRecord, InvoiceDispatch
from billing.exceptions import BillingError, DependencyError
from billing.utils import generate_invoice_number, parse_billing_period
from billing.documents import invoice_filename
from billing.notifications import build_invoice_body
from core.utils import money_to_json
from utils.audit import log_financial_activity

logger = logging.getLogger(__name__)


def invoice_payload(record, notified=False):
    """API representation of an issued invoice."""
    return {
        'invoiceNumber': record.invoice_number,
        'companyId': record.company.code,
        'billingMonth': record.billing_month,
        'totalAmount': money_to_json(record.total_amount),
        'details': {
            'usage_fee': money_to_json(record.usage_fee),
            'shipping_fee': money_to_json(record.shipping_fee),
        },
        'notified': notified,
    }


class InvoiceRunReport:
    """Outcome of one monthly invoicing run."""

    def __init__(self, billing_month):
        self.billing_month = billing_month
        self.invoices = []
        self.skipped = []
        self.failures = []

    def add_invoice(self, record, notified):
        self.invoices.append(invoice_payload(record, notified))

    def add_failure(self, company_code, error):
        self.failures.append({'companyId': company_code, 'error': error})

    @property
    def invoice_numbers(self):
        return [invoice['invoiceNumber'] for invoice in self.invoices]

    def as_dict(self):
        return {
            'billingMonth': self.billing_month,
            'invoices': self.invoices,
            'skipped': self.skipped,
            'failures': self.failures,
        }


# =============================================================================
# MONTHLY INVOICE GENERATOR
# =============================================================================

class MonthlyInvoiceGenerator:
    """
    Generate the invoices of a billing month.

    Args:
        aggregator: UsageAggregator
        renderer: InvoicePDFRenderer (anything with ``render(invoice) -> bytes``)
        mailer: InvoiceMailer (anything with ``send_dispatch(dispatch)``)
        billing_settings: BillingSettings, defaults to the singleton
    """

    def __init__(self, aggregator, renderer, mailer, billing_settings=None):
        self.aggregator = aggregator
        self.renderer = renderer
        self.mailer = mailer
        self._settings = billing_settings

    def get_settings(self):
        if self._settings is None:
            from core.models import BillingSettings
            self._settings = BillingSettings.get_instance()
        return self._settings

    def generate(self, billing_month):
        """
        Returns:
            InvoiceRunReport

        Raises:
            InvalidPeriodFormat: malformed billing month
            DependencyError: usage could not be aggregated
        """
        parse_billing_period(billing_month)
        totals = self.aggregator.aggregate(billing_month)
        billing_settings = self.get_settings()
        report = InvoiceRunReport(billing_month)
        batch_id = str(uuid.uuid4())

        from tenants.models import Company
        try:
            companies = Company.objects.in_bulk([row['company_id'] for row in totals.values()])
        except DatabaseError as e:
            logger.error(f"Loading companies for {billing_month} failed: {e}", exc_info=True)
            raise DependencyError() from e

        for company_code, row in totals.items():
            company = companies.get(row['company_id'])
            if company is None:
                report.add_failure(company_code, "company not found")
                continue

            try:
                if self._already_invoiced(company, billing_month):
                    logger.info(f"Skipping {company_code}: already invoiced for {billing_month}")
                    report.skipped.append(company_code)
                    continue

                with transaction.atomic():
                    record, dispatch = self._issue(company, row, billing_month, billing_settings)

            except IntegrityError as e:
                # Another run issued this company's invoice first
                logger.warning(f"Invoice for {company_code} {billing_month} already exists: {e}")
                report.skipped.append(company_code)
                continue
            except BillingError as e:
                logger.error(f"Invoicing {company_code} for {billing_month} failed: {e}")
                report.add_failure(company_code, e.public_message)
                continue
            except DatabaseError as e:
                logger.error(f"Invoicing {company_code} for {billing_month} failed: {e}", exc_info=True)
                report.add_failure(company_code, DependencyError.default_message)
                continue

            notified = False
            if billing_settings.send_invoice_emails:
                notified = self.deliver(dispatch)

            report.add_invoice(record, notified)

        if report.invoices:
            log_financial_activity(
                'BULK_INVOICE_CREATE',
                notes=f"{len(report.invoices)} invoices issued for {billing_month}",
                additional_data={
                    'billing_month': billing_month,
                    'invoice_numbers': report.invoice_numbers,
                    'skipped': report.skipped,
                    'failed': [failure['companyId'] for failure in report.failures],
                },
                batch_id=batch_id,
            )

        logger.info(
            f"Invoice run {billing_month}: {len(report.invoices)} issued, "
            f"{len(report.skipped)} skipped, {len(report.failures)} failed"
        )
        return report

    def _already_invoiced(self, company, billing_month):
        return BillingRecord.objects.invoices().filter(
            company=company, billing_month=billing_month
        ).exists()

    def _issue(self, company, row, billing_month, billing_settings):
        """Number, render and persist one invoice. Must run inside a transaction."""
        invoice_number = generate_invoice_number(billing_month, billing_settings.invoice_prefix)
        usage_fee = row['usage_fee']
        shipping_fee = row['shipping_fee']
        total_amount = usage_fee + shipping_fee

        document = self.renderer.render({
            'invoice_number': invoice_number,
            'billing_month': billing_month,
            'company_code': company.code,
            'company_name': company.name,
            'usage_fee': usage_fee,
            'shipping_fee': shipping_fee,
            'total_amount': total_amount,
            'item_count': row['item_count'],
        })

        record = BillingRecord.objects.create(
            kind='INVOICE',
            company=company,
            billing_month=billing_month,
            invoice_number=invoice_number,
            usage_fee=usage_fee,
            shipping_fee=shipping_fee,
            item_count=row['item_count'],
            status='UNPAID',
        )

        dispatch = InvoiceDispatch.objects.create(
            billing_record=record,
            recipient=company.contact_email,
            subject=billing_settings.render_invoice_subject(
                invoice_number, billing_month, company.name
            ),
            body=build_invoice_body(
                company.name,
                invoice_number,
                billing_month,
                billing_settings.format_currency(total_amount),
            ),
            document=document,
            filename=invoice_filename(invoice_number),
        )
        return record, dispatch

    # -------------------------------------------------------------------------
    # DELIVERY (OUTBOX)
    # -------------------------------------------------------------------------

    def deliver(self, dispatch):
        """Send one outbox row. Returns True when the mail was accepted."""
        dispatch.attempts += 1
        try:
            self.mailer.send_dispatch(dispatch)
        except DependencyError as e:
            dispatch.status = 'FAILED'
            dispatch.last_error = str(e.__cause__ or e)[:1000]
            dispatch.save(update_fields=['status', 'attempts', 'last_error'])
            logger.warning(
                f"Invoice email {dispatch.filename} failed "
                f"(attempt {dispatch.attempts}); left for replay"
            )
            return False

        dispatch.status = 'SENT'
        dispatch.sent_at = timezone.now()
        dispatch.last_error = ''
        dispatch.save(update_fields=['status', 'attempts', 'last_error', 'sent_at'])

        log_financial_activity(
            'INVOICE_DISPATCH',
            target_object=dispatch.billing_record,
            company=dispatch.billing_record.company,
            additional_data={'attempts': dispatch.attempts},
        )
        return True

    def replay_pending_dispatches(self, limit=None):
        """
        Resend PENDING and FAILED invoice emails, oldest first.

        Returns:
            dict: {'sent': int, 'failed': int}
        """
        queryset = (
            InvoiceDispatch.objects
            .filter(status__in=['PENDING', 'FAILED'])
            .select_related('billing_record__company')
            .order_by('created_at')
        )
        if limit:
            queryset = queryset[:limit]

        counts = {'sent': 0, 'failed': 0}
        for dispatch in queryset:
            if self.deliver(dispatch):
                counts['sent'] += 1
            else:
                counts['failed'] += 1

        logger.info(f"Replayed invoice dispatches: {counts['sent']} sent, {counts['failed']} failed")
        return counts
