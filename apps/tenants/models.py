# tenants/models.py

"""
Tenant Models

A Company is a corporate customer of the lending platform and the unit of
billing. Its bank account is used for automatic withdrawals.
"""

from django.db import models
import logging

from utils.models import BaseModel

logger = logging.getLogger(__name__)


class Company(BaseModel):
    """Corporate tenant. ``code`` is the public tenant id (companyId)."""

    code = models.CharField(
        "Company Code",
        max_length=50,
        unique=True,
        db_index=True,
        help_text="Public tenant identifier used by the API, e.g. company-1"
    )
    name = models.CharField("Company Name", max_length=200)
    contact_email = models.EmailField("Billing Contact Email")
    is_active = models.BooleanField("Active", default=True)

    class Meta:
        verbose_name = "Company"
        verbose_name_plural = "Companies"
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"

    def get_bank_account(self):
        """Return the company's bank account or None."""
        try:
            return self.bank_account
        except BankAccount.DoesNotExist:
            return None


class BankAccount(BaseModel):
    """Bank account used for automatic withdrawal."""

    ACCOUNT_TYPE_CHOICES = [
        ('ORDINARY', 'Ordinary'),
        ('CURRENT', 'Current'),
        ('SAVINGS', 'Savings'),
    ]

    company = models.OneToOneField(
        Company,
        verbose_name="Company",
        on_delete=models.CASCADE,
        related_name='bank_account'
    )
    bank_name = models.CharField("Bank Name", max_length=100)
    branch_code = models.CharField("Branch Name / Code", max_length=50)
    account_type = models.CharField(
        "Account Type",
        max_length=10,
        choices=ACCOUNT_TYPE_CHOICES,
        default='ORDINARY'
    )
    account_number = models.CharField("Account Number", max_length=30)

    class Meta:
        verbose_name = "Bank Account"
        verbose_name_plural = "Bank Accounts"

    def __str__(self):
        return f"{self.bank_name} {self.branch_code} {self.masked_account_number}"

    def is_complete(self):
        return all(
            (value or '').strip()
            for value in (self.bank_name, self.branch_code, self.account_number)
        )

    @property
    def masked_account_number(self):
        number = (self.account_number or '').strip()
        if len(number) <= 4:
            return '*' * len(number)
        return '*' * (len(number) - 4) + number[-4:]
