# billing/management/commands/replay_invoice_dispatches.py

from django.core.management.base import BaseCommand

from billing.views import build_invoice_generator
from utils.context import RequestContext


class Command(BaseCommand):
    help = 'Resend invoice emails that are still pending or failed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=None,
            help='Maximum number of emails to resend'
        )

    def handle(self, *args, **options):
        with RequestContext(request_path='manage.py replay_invoice_dispatches', is_automated=True):
            counts = build_invoice_generator().replay_pending_dispatches(limit=options.get('limit'))

        style = self.style.SUCCESS if not counts['failed'] else self.style.WARNING
        self.stdout.write(style(f"{counts['sent']} sent, {counts['failed']} failed"))
