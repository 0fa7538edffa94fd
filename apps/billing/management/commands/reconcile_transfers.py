# billing/management/commands/reconcile_transfers.py

from django.core.management.base import BaseCommand

from billing.services import TransferReconciler
from billing.views import build_transfer_client
from utils.context import RequestContext


class Command(BaseCommand):
    help = 'Finish transfers whose ledger write is pending or whose outcome is unknown'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=None,
            help='Maximum number of transfer intents to look at'
        )

    def handle(self, *args, **options):
        client = build_transfer_client()
        try:
            with RequestContext(request_path='manage.py reconcile_transfers', is_automated=True):
                summary = TransferReconciler(client).reconcile(limit=options.get('limit'))
        finally:
            client.close()

        self.stdout.write(self.style.SUCCESS(
            f"{summary['completed']} completed, {summary['failed']} failed, "
            f"{summary['pending']} still pending"
        ))
        for record_id in summary['manual_review']:
            self.stderr.write(self.style.ERROR(
                f"  billing record {record_id} is PROCESSING but its transfer failed; review manually"
            ))
