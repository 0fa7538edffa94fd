# billing/documents.py

"""
Invoice document rendering (reportlab).
"""

from io import BytesIO
from django.utils import timezone
import logging

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.platypus.doctemplate import LayoutError

from billing.exceptions import DependencyError

logger = logging.getLogger(__name__)


def invoice_filename(invoice_number):
    return f"invoice-{invoice_number}.pdf"


class InvoicePDFRenderer:
    """
    Render an invoice to PDF bytes.

    ``render`` takes plain invoice data so it can run before the billing
    record exists; ``render_record`` re-renders a stored record.
    """

    def __init__(self, billing_settings=None):
        self._settings = billing_settings

    def get_settings(self):
        if self._settings is None:
            from core.models import BillingSettings
            self._settings = BillingSettings.get_instance()
        return self._settings

    def render_record(self, record):
        return self.render({
            'invoice_number': record.invoice_number or str(record.pk),
            'billing_month': record.billing_month,
            'company_code': record.company.code,
            'company_name': record.company.name,
            'usage_fee': record.usage_fee,
            'shipping_fee': record.shipping_fee,
            'total_amount': record.total_amount,
            'item_count': record.item_count,
            'issue_date': record.created_at.date() if record.created_at else None,
        })

    def render(self, invoice):
        """
        Args:
            invoice (dict): invoice_number, billing_month, company_code,
                company_name, usage_fee, shipping_fee, total_amount,
                item_count and optionally issue_date

        Returns:
            bytes: PDF document

        Raises:
            DependencyError: the document could not be built
        """
        try:
            return self._build(invoice)
        except (LayoutError, KeyError, ValueError, TypeError) as e:
            logger.error(
                f"Rendering invoice {invoice.get('invoice_number')} failed: {e}",
                exc_info=True
            )
            raise DependencyError() from e

    def _build(self, invoice):
        settings = self.get_settings()
        money = settings.format_currency
        issue_date = invoice.get('issue_date') or timezone.localdate()

        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=40,
            leftMargin=40,
            topMargin=40,
            bottomMargin=30,
            title=f"Invoice {invoice['invoice_number']}",
        )

        elements = []

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            'InvoiceTitle',
            parent=styles['Heading1'],
            fontSize=22,
            textColor=colors.HexColor('#4472C4'),
            spaceAfter=12,
            alignment=TA_CENTER,
        )
        meta_style = ParagraphStyle(
            'InvoiceMeta',
            parent=styles['Normal'],
            fontSize=10,
            alignment=TA_RIGHT,
        )

        elements.append(Paragraph("INVOICE", title_style))
        elements.append(Paragraph(f"Invoice No: {invoice['invoice_number']}", meta_style))
        elements.append(Paragraph(f"Issue Date: {issue_date.strftime('%Y-%m-%d')}", meta_style))
        elements.append(Paragraph(f"Billing Month: {invoice['billing_month']}", meta_style))
        elements.append(Spacer(1, 0.3 * inch))

        elements.append(Paragraph(
            f"Bill To: {invoice['company_name']} ({invoice['company_code']})",
            styles['Heading3']
        ))
        elements.append(Spacer(1, 0.2 * inch))

        data = [
            ['Description', 'Quantity', 'Amount'],
            ['Book lending usage fee', str(invoice['item_count']), money(invoice['usage_fee'])],
            ['Shipping fee', str(invoice['item_count']), money(invoice['shipping_fee'])],
            ['Total', '', money(invoice['total_amount'])],
        ]

        table = Table(data, colWidths=[3.5 * inch, 1 * inch, 2 * inch])
        table.setStyle(TableStyle([
            # Header
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#4472C4')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('BOTTOMPADDING', (0, 0), (-1, 0), 10),

            # Line items
            ('FONTNAME', (0, 1), (-1, -2), 'Helvetica'),
            ('ALIGN', (1, 1), (-1, -1), 'RIGHT'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),

            # Total row
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('LINEABOVE', (0, -1), (-1, -1), 1, colors.black),

            ('GRID', (0, 0), (-1, -2), 0.5, colors.grey),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]))
        elements.append(table)

        doc.build(elements)
        pdf = buffer.getvalue()
        buffer.close()
        return pdf
