"""Render an invoice view to PDF with ReportLab."""

import io
import logging
from datetime import date
from typing import Any

from reportlab.lib.pagesizes import LETTER
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

LINE = 0.18 * inch


def format_money(value: float, currency: str = "USD") -> str:
    symbol = "$" if currency == "USD" else f"{currency} "
    return f"{symbol}{value:,.2f}"


def _format_date(value: str | None) -> str:
    if not value:
        return ""
    return date.fromisoformat(value[:10]).strftime("%m/%d/%Y")


def _draw_lines(c: canvas.Canvas, x: float, y: float, lines: list[str]) -> float:
    for line in lines:
        if line and line.strip():
            c.drawString(x, y, line.strip())
            y -= LINE
    return y


def render_invoice_pdf(invoice: dict[str, Any]) -> bytes:
    """
    Draw one invoice page from an ``invoice_view`` dict.

    Layout: title, company block (left), bill-to and invoice details
    (right), a line item table, then totals and status.
    """
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=LETTER)
    width, height = LETTER
    currency = invoice.get("currency", "USD")
    company = invoice.get("company") or {}
    client = invoice.get("client") or {}

    c.setTitle(invoice["invoice_number"])

    c.setFont("Helvetica-Bold", 24)
    c.drawCentredString(width / 2, height - 1 * inch, "INVOICE")

    # Company
    c.setFont("Helvetica-Bold", 16)
    c.drawString(1 * inch, height - 1.5 * inch, company.get("company", ""))
    c.setFont("Helvetica", 10)
    company_lines = [company.get("full_name", "")]
    company_lines.extend((company.get("address") or "").splitlines())
    if company.get("email"):
        company_lines.append(f"Email: {company['email']}")
    _draw_lines(c, 1 * inch, height - 1.75 * inch, company_lines)

    # Bill to
    c.setFont("Helvetica-Bold", 12)
    c.drawString(5 * inch, height - 1.5 * inch, "Bill To:")
    c.setFont("Helvetica", 10)
    client_lines = [client.get("name", ""), client.get("contact_person") or ""]
    client_lines.extend((client.get("address") or "").splitlines())
    if client.get("email"):
        client_lines.append(f"Email: {client['email']}")
    if client.get("phone"):
        client_lines.append(f"Phone: {client['phone']}")
    y = _draw_lines(c, 5 * inch, height - 1.75 * inch, client_lines)

    y -= LINE
    y = _draw_lines(
        c,
        5 * inch,
        y,
        [
            f"Number: {invoice['invoice_number']}",
            f"Date: {_format_date(invoice.get('invoice_date'))}",
            f"Due: {_format_date(invoice.get('due_date'))}",
            f"Period: {invoice.get('period', '')}",
        ],
    )

    # Line items
    y = min(y, height - 3.5 * inch) - 0.5 * inch
    c.setFont("Helvetica-Bold", 11)
    c.drawString(1 * inch, y, "Description")
    c.drawRightString(5.2 * inch, y, "Qty")
    c.drawRightString(6.3 * inch, y, "Rate")
    c.drawRightString(7.5 * inch, y, "Amount")
    y -= 0.1 * inch
    c.line(1 * inch, y, 7.5 * inch, y)
    y -= LINE

    c.setFont("Helvetica", 10)
    for item in invoice.get("items", []):
        c.drawString(1 * inch, y, item["description"])
        c.drawRightString(5.2 * inch, y, str(item.get("quantity", 1)))
        c.drawRightString(6.3 * inch, y, format_money(item["unit_price"], currency))
        c.drawRightString(7.5 * inch, y, format_money(item["amount"], currency))
        y -= LINE

    y -= 0.1 * inch
    c.line(4.5 * inch, y, 7.5 * inch, y)
    y -= LINE

    # Totals
    totals = [
        ("Total", invoice["amount"]),
        ("Paid", invoice["paid_amount"]),
        ("Balance Due", invoice["balance_due"]),
    ]
    for label, value in totals:
        c.setFont("Helvetica-Bold" if label == "Balance Due" else "Helvetica", 10)
        c.drawString(4.5 * inch, y, label)
        c.drawRightString(7.5 * inch, y, format_money(value, currency))
        y -= LINE

    y -= LINE
    c.setFont("Helvetica-Bold", 12)
    status = invoice.get("status", "unpaid").upper()
    c.drawString(1 * inch, y, f"Status: {status}")
    if invoice.get("paid_date"):
        c.setFont("Helvetica", 10)
        c.drawString(1 * inch, y - LINE, f"Paid on {_format_date(invoice['paid_date'])}")

    c.setFont("Helvetica-Oblique", 9)
    c.drawCentredString(width / 2, 0.75 * inch, "Thank you for your business.")

    c.showPage()
    c.save()
    logger.debug("Rendered %s (%d bytes)", invoice["invoice_number"], buffer.tell())
    return buffer.getvalue()
