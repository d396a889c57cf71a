from __future__ import annotations

from io import BytesIO
from typing import Iterable

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from wecare_portal.models.invoice import Invoice, Payment

CLINIC_NAME = "WeCare Medical Centre"
CLINIC_ADDRESS_LINES = [
    "Patient services",
    "wecare.example",
]


def format_amount(pence: int) -> str:
    return f"£{pence / 100:.2f}"


def receipt_filename(invoice: Invoice) -> str:
    return f"invoice-{invoice.invoice_number or invoice.id}.pdf"


def _draw_header(pdf: canvas.Canvas, title: str) -> None:
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(20 * mm, 280 * mm, CLINIC_NAME)
    pdf.setFont("Helvetica", 10)
    y = 274 * mm
    for line in CLINIC_ADDRESS_LINES:
        pdf.drawString(20 * mm, y, line)
        y -= 4 * mm
    pdf.setFont("Helvetica-Bold", 14)
    pdf.drawRightString(190 * mm, 280 * mm, title)
    pdf.setStrokeColor(colors.lightgrey)
    pdf.line(20 * mm, 262 * mm, 190 * mm, 262 * mm)


def _draw_meta(pdf: canvas.Canvas, invoice: Invoice) -> None:
    patient = invoice.patient
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(20 * mm, 250 * mm, "Billed to")
    pdf.setFont("Helvetica", 10)
    pdf.drawString(20 * mm, 245 * mm, patient.full_name or patient.email)

    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(120 * mm, 250 * mm, f"Invoice: {invoice.invoice_number}")
    pdf.setFont("Helvetica", 10)
    issue_date = invoice.issue_date.isoformat() if invoice.issue_date else "-"
    due_date = invoice.due_date.isoformat() if invoice.due_date else "-"
    pdf.drawString(120 * mm, 245 * mm, f"Issue date: {issue_date}")
    pdf.drawString(120 * mm, 240 * mm, f"Due date: {due_date}")
    pdf.drawString(120 * mm, 235 * mm, f"Status: {invoice.status.value}")


def _draw_lines_table(pdf: canvas.Canvas, invoice: Invoice) -> None:
    data = [["Description", "Qty", "Unit", "Line total"]]
    for line in invoice.lines:
        data.append(
            [
                line.description,
                str(line.quantity),
                format_amount(line.unit_price_pence),
                format_amount(line.line_total_pence),
            ]
        )
    table = Table(data, colWidths=[95 * mm, 15 * mm, 25 * mm, 25 * mm])
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f0f0f0")),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
            ]
        )
    )
    table.wrapOn(pdf, 20 * mm, 150 * mm)
    table.drawOn(pdf, 20 * mm, 170 * mm)


def _draw_payments(pdf: canvas.Canvas, payments: Iterable[Payment], y: float) -> None:
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(20 * mm, y, "Payments")
    pdf.setFont("Helvetica", 9)
    y -= 10
    payments = list(payments)
    if not payments:
        pdf.drawString(20 * mm, y, "No payments recorded.")
        return
    for payment in payments:
        line = f"{payment.paid_at.strftime('%Y-%m-%d')} - {format_amount(payment.amount_pence)} - {payment.method.value}"
        if payment.reference:
            line = f"{line} - {payment.reference}"
        pdf.drawString(20 * mm, y, line)
        y -= 10


def build_invoice_receipt(invoice: Invoice) -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    _draw_header(pdf, "Receipt")
    _draw_meta(pdf, invoice)
    _draw_lines_table(pdf, invoice)
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawRightString(170 * mm, 150 * mm, "Total")
    pdf.drawRightString(190 * mm, 150 * mm, format_amount(invoice.total_pence))
    pdf.setFont("Helvetica", 10)
    pdf.drawRightString(170 * mm, 144 * mm, "Paid")
    pdf.drawRightString(190 * mm, 144 * mm, format_amount(invoice.paid_pence))
    pdf.drawRightString(170 * mm, 138 * mm, "Balance")
    pdf.drawRightString(190 * mm, 138 * mm, format_amount(invoice.balance_pence))
    _draw_payments(pdf, invoice.payments, 120 * mm)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
