# billing/utils.py

"""
Billing Utility Functions

Contains:
- Billing period parsing
- Invoice number generation (per-month atomic counter)
"""

from django.db import transaction
from datetime import date
import calendar
import re
import logging

from billing.exceptions import InvalidPeriodFormat

logger = logging.getLogger(__name__)

BILLING_MONTH_RE = re.compile(r"([0-9]{4})-(0[1-9]|1[0-2])")


# =============================================================================
# BILLING PERIODS
# =============================================================================

def parse_billing_period(value):
    """
    Parse a billing month.

    Only ``YYYY-MM`` with a month between 01 and 12 is accepted.

    Returns:
        tuple: (first_day, last_day) of the month as dates

    Raises:
        InvalidPeriodFormat: for anything else
    """
    if not isinstance(value, str):
        raise InvalidPeriodFormat()

    match = BILLING_MONTH_RE.fullmatch(value)
    if not match:
        raise InvalidPeriodFormat()

    year, month = int(match.group(1)), int(match.group(2))
    if year < 1:
        raise InvalidPeriodFormat()

    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def billing_month_for(day):
    """Billing month (YYYY-MM) a date falls in."""
    return f"{day.year:04d}-{day.month:02d}"


# =============================================================================
# REFERENCE NUMBER GENERATION
# =============================================================================

def generate_invoice_number(billing_month, prefix='INV'):
    """
    Take the next invoice number for a billing month.

    Format: INV-202401-0001. The counter row is locked with
    select_for_update, so callers must run inside the transaction that
    creates the invoice; if it rolls back the number is not consumed.

    Returns:
        str: Invoice number
    """
    from billing.models import InvoiceSequence

    parse_billing_period(billing_month)
    prefix = (prefix or '').strip() or 'INV'

    with transaction.atomic():
        sequence, created = InvoiceSequence.objects.select_for_update().get_or_create(
            billing_month=billing_month
        )
        sequence.last_number += 1
        sequence.save(update_fields=['last_number', 'updated_at'])

    number = f"{prefix}-{billing_month.replace('-', '')}-{sequence.last_number:04d}"
    logger.debug(f"Allocated invoice number {number}")
    return number
