# lending/models.py

"""
Lending Models

Books carry their lending conditions; a LendingRecord is one book lent to
one company. The billing engine only reads these rows.
"""

from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
import logging

from utils.models import BaseModel
from tenants.models import Company

logger = logging.getLogger(__name__)


class Book(BaseModel):
    """A lendable book and its lending conditions."""

    isbn = models.CharField("ISBN", max_length=20, blank=True, db_index=True)
    title = models.CharField("Title", max_length=300)
    lending_fee_per_day = models.DecimalField(
        "Lending Fee Per Day",
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Fee charged for each lending of this book"
    )

    class Meta:
        verbose_name = "Book"
        verbose_name_plural = "Books"
        ordering = ['title']

    def __str__(self):
        return self.title


class LendingRecord(BaseModel):
    """A book lent to a tenant."""

    STATUS_CHOICES = [
        ('REQUESTED', 'Requested'),
        ('LENT', 'Lent'),
        ('RETURNED', 'Returned'),
        ('OVERDUE', 'Overdue'),
        ('CANCELLED', 'Cancelled'),
    ]

    book = models.ForeignKey(
        Book,
        verbose_name="Book",
        on_delete=models.PROTECT,
        related_name='lending_records'
    )
    company = models.ForeignKey(
        Company,
        verbose_name="Company",
        on_delete=models.PROTECT,
        related_name='lending_records'
    )
    lending_date = models.DateField("Lending Date", db_index=True)
    return_due_date = models.DateField("Return Due Date")
    actual_return_date = models.DateField("Actual Return Date", null=True, blank=True)
    status = models.CharField("Status", max_length=10, choices=STATUS_CHOICES, default='LENT', db_index=True)

    class Meta:
        verbose_name = "Lending Record"
        verbose_name_plural = "Lending Records"
        ordering = ['-lending_date']
        indexes = [
            models.Index(fields=['lending_date', 'company']),
        ]

    def __str__(self):
        return f"{self.book} -> {self.company.code} ({self.lending_date})"
