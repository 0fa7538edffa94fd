# core/utils.py

"""
Central utilities for the billing platform
Money handling and parsing helpers shared across apps
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# CURRENCY & MONEY FORMATTING
# =============================================================================

def format_money(amount, include_symbol=True):
    """
    Format money amount according to billing settings.

    Example:
        >>> from core.utils import format_money
        >>> print(format_money(50000))  # "JPY 50,000"
    """
    from core.models import BillingSettings
    return BillingSettings.get_instance().format_currency(amount, include_symbol)


def safe_decimal(value, default=None):
    """
    Convert a request value to Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans, NaN and infinities
    are rejected.

    Returns:
        Decimal, or ``default`` when the value cannot be converted
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result


def parse_money(value, max_digits=12, decimal_places=2):
    """
    Convert a request amount to a positive Decimal that fits a money field.

    Amounts with more decimal places than the field stores, or more
    digits, are rejected rather than rounded.

    Returns:
        Decimal quantized to ``decimal_places``, or None
    """
    amount = safe_decimal(value)
    if amount is None or amount <= 0:
        return None
    if amount >= Decimal(10) ** (max_digits - decimal_places):
        return None
    step = Decimal(1).scaleb(-decimal_places)
    if amount != amount.quantize(step):
        return None
    return amount.quantize(step)


def money_to_json(amount):
    """
    Render a Decimal amount for a JSON response.

    Whole amounts become ints (50000), fractional ones strings ("12.50")
    so no precision is lost to float.
    """
    if amount is None:
        return None
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return int(amount)
    return str(amount)


# =============================================================================
# DATE HELPERS
# =============================================================================

def parse_iso_date(value):
    """
    Parse YYYY-MM-DD (or pass through a date).

    Returns:
        date or None if the value is not a valid ISO date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None
