# billing/management/commands/generate_monthly_invoices.py

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from datetime import timedelta

from billing.exceptions import BillingError
from billing.views import build_invoice_generator
from utils.context import RequestContext


class Command(BaseCommand):
    help = 'Generate and send the invoices of a billing month (defaults to last month)'

    def add_arguments(self, parser):
        parser.add_argument(
            'billing_month',
            nargs='?',
            help='Billing month as YYYY-MM'
        )

    def handle(self, *args, **options):
        billing_month = options.get('billing_month')
        if not billing_month:
            first_of_month = timezone.localdate().replace(day=1)
            last_month = first_of_month - timedelta(days=1)
            billing_month = last_month.strftime('%Y-%m')

        self.stdout.write(self.style.MIGRATE_HEADING(f"Generating invoices for {billing_month}"))

        with RequestContext(request_path='manage.py generate_monthly_invoices', is_automated=True):
            try:
                report = build_invoice_generator().generate(billing_month)
            except BillingError as e:
                raise CommandError(e.public_message)

        for invoice in report.invoices:
            status = 'sent' if invoice['notified'] else 'not sent'
            self.stdout.write(
                f"  {invoice['invoiceNumber']}  {invoice['companyId']}  "
                f"{invoice['totalAmount']}  (email {status})"
            )
        for company_code in report.skipped:
            self.stdout.write(self.style.WARNING(f"  skipped {company_code}: already invoiced"))
        for failure in report.failures:
            self.stderr.write(self.style.ERROR(f"  failed {failure['companyId']}: {failure['error']}"))

        self.stdout.write(self.style.SUCCESS(
            f"{len(report.invoices)} issued, {len(report.skipped)} skipped, "
            f"{len(report.failures)} failed"
        ))
