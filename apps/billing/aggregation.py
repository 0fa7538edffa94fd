# billing/aggregation.py

"""
Monthly usage aggregation.

Turns the lending records of one billing month into per-company fee totals:
usage_fee is the sum of the lent books' lending fees (one charge per
lending), shipping_fee is the flat rate times the number of lendings.
"""

from django.db import DatabaseError
from django.db.models import Sum, Count
from decimal import Decimal
import logging

from billing.exceptions import DependencyError
from billing.utils import parse_billing_period

logger = logging.getLogger(__name__)


class UsageAggregator:
    """
    Aggregate lending activity per company for a billing month.

    Args:
        queryset: LendingRecord queryset to read from (defaults to all records)
        billing_settings: BillingSettings instance (defaults to the singleton)
    """

    def __init__(self, queryset=None, billing_settings=None):
        self._queryset = queryset
        self._settings = billing_settings

    def get_queryset(self):
        if self._queryset is not None:
            return self._queryset.all()
        from lending.models import LendingRecord
        return LendingRecord.objects.all()

    def get_settings(self):
        if self._settings is None:
            from core.models import BillingSettings
            self._settings = BillingSettings.get_instance()
        return self._settings

    def aggregate(self, billing_month):
        """
        Returns:
            dict: company_code -> {company_id, company_code, usage_fee,
            shipping_fee, item_count}, ordered by company code. Companies
            without lendings in the month are absent.

        Raises:
            InvalidPeriodFormat: malformed billing month
            DependencyError: the datastore could not be read
        """
        start_date, end_date = parse_billing_period(billing_month)

        try:
            flat_rate = Decimal(self.get_settings().shipping_flat_rate)
            rows = list(
                self.get_queryset()
                .filter(lending_date__gte=start_date, lending_date__lte=end_date)
                .values('company_id', 'company__code')
                .annotate(
                    usage_fee=Sum('book__lending_fee_per_day'),
                    item_count=Count('id'),
                )
                .order_by('company__code')
            )
        except DatabaseError as e:
            logger.error(f"Usage aggregation for {billing_month} failed: {e}", exc_info=True)
            raise DependencyError() from e

        totals = {}
        for row in rows:
            item_count = row['item_count']
            if not item_count:
                continue
            totals[row['company__code']] = {
                'company_id': row['company_id'],
                'company_code': row['company__code'],
                'usage_fee': row['usage_fee'] or Decimal('0'),
                'shipping_fee': flat_rate * item_count,
                'item_count': item_count,
            }

        logger.info(f"Aggregated usage for {billing_month}: {len(totals)} companies")
        return totals
