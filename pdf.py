import io
from datetime import datetime, timezone

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£"}


def format_amount(amount: float, currency: str = "EUR") -> str:
    return f"{CURRENCY_SYMBOLS.get(currency, currency + ' ')}{amount:,.2f}"


class InvoiceRenderer:
    """Draws invoices with reportlab and returns the PDF bytes."""

    def __init__(self, issuer_name: str, issuer_taxid: str, issuer_address: str):
        self.issuer_name = issuer_name
        self.issuer_taxid = issuer_taxid
        self.issuer_address = issuer_address

    def _draw_header(self, c):
        c.setFont("Helvetica-Bold", 16)
        c.drawString(20*mm, 280*mm, self.issuer_name)
        c.setFont("Helvetica", 10)
        c.drawString(20*mm, 275*mm, f"VAT: {self.issuer_taxid}")
        c.drawString(20*mm, 270*mm, self.issuer_address)

    def _draw_footer(self, c):
        c.setFont("Helvetica", 8)
        c.drawString(20*mm, 10*mm, f"Generated {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}")

    def _draw_lines(self, c, y, lines, currency):
        c.setFont("Helvetica-Bold", 11)
        c.drawString(20*mm, y, "Description")
        c.drawRightString(140*mm, y, "Qty")
        c.drawRightString(165*mm, y, "Unit price")
        c.drawRightString(190*mm, y, "Total")
        y -= 7*mm
        c.setFont("Helvetica", 10)
        for line in lines:
            if y < 30*mm:
                self._draw_footer(c)
                c.showPage()
                y = 270*mm
                c.setFont("Helvetica", 10)
            c.drawString(20*mm, y, str(line["description"])[:60])
            c.drawRightString(140*mm, y, str(line["quantity"]))
            c.drawRightString(165*mm, y, format_amount(line["unitPrice"], currency))
            c.drawRightString(190*mm, y, format_amount(line["total"], currency))
            y -= 6*mm
        return y

    def render_paid_invoice(self, invoice: dict) -> bytes:
        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=A4)
        currency = invoice.get("currency", "EUR")

        self._draw_header(c)

        c.setFont("Helvetica-Bold", 14)
        c.drawString(20*mm, 255*mm, f"Invoice {invoice['invoiceNumber']}")
        c.setFillColorRGB(0.1, 0.55, 0.2)
        c.drawRightString(190*mm, 255*mm, "PAID")
        c.setFillColorRGB(0, 0, 0)

        c.setFont("Helvetica", 11)
        y = 245*mm
        c.drawString(20*mm, y, f"Bill to: {invoice['organizationName']}")
        y -= 6*mm
        if invoice.get("contactName"):
            c.drawString(20*mm, y, invoice["contactName"])
            y -= 6*mm
        if invoice.get("address"):
            c.drawString(20*mm, y, invoice["address"])
            y -= 6*mm
        c.drawString(20*mm, y, f"Paid on: {invoice.get('paidAt', '')}")
        y -= 6*mm
        c.drawString(20*mm, y, f"Payment method: {invoice.get('paymentMethod', '')}")
        y -= 6*mm
        c.drawString(20*mm, y, f"Reference: {invoice.get('reference', '')}")

        y = self._draw_lines(c, y - 12*mm, invoice["lineItems"], currency)

        c.setFont("Helvetica-Bold", 12)
        c.drawRightString(190*mm, y - 6*mm, f"Total paid: {format_amount(invoice['totalAmount'], currency)}")

        self._draw_footer(c)
        c.showPage()
        c.save()

        buffer.seek(0)
        return buffer.getvalue()

    def render_registration_invoice(self, invoice_number: str, registration: dict) -> bytes:
        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=A4)
        billing = registration.get("billingInfo") or {}
        attendees = registration.get("attendees") or []
        currency = registration.get("currency", "EUR")

        self._draw_header(c)

        c.setFont("Helvetica-Bold", 14)
        c.drawString(20*mm, 255*mm, f"Invoice {invoice_number}")
        c.setFont("Helvetica", 11)
        c.drawString(20*mm, 249*mm, "MGA Rendezvous registration")

        y = 239*mm
        c.drawString(20*mm, y, f"Bill to: {billing.get('company', '')}")
        y -= 6*mm
        for value in (billing.get("billingEmail"), billing.get("address"), billing.get("country")):
            if value:
                c.drawString(20*mm, y, str(value))
                y -= 6*mm

        ticket_count = registration.get("numberOfAttendees") or len(attendees)
        price = registration.get("pricePerTicket") or 0
        lines = [
            {
                "description": "Rendezvous ticket",
                "quantity": ticket_count,
                "unitPrice": price,
                "total": ticket_count * price,
            }
        ]
        y = self._draw_lines(c, y - 8*mm, lines, currency)

        c.setFont("Helvetica", 10)
        for attendee in attendees:
            c.drawString(24*mm, y, f"- {attendee.get('firstName', '')} {attendee.get('lastName', '')}, {attendee.get('jobTitle', '')}")
            y -= 5*mm

        y -= 6*mm
        c.setFont("Helvetica", 11)
        if registration.get("discount"):
            c.drawRightString(190*mm, y, f"Discount: -{format_amount(registration['discount'], currency)}")
            y -= 6*mm
        c.drawRightString(190*mm, y, f"Subtotal: {format_amount(registration.get('subtotal') or 0, currency)}")
        y -= 6*mm
        c.drawRightString(190*mm, y, f"VAT ({registration.get('vatRate') or 0}%): {format_amount(registration.get('vatAmount') or 0, currency)}")
        y -= 8*mm
        c.setFont("Helvetica-Bold", 12)
        c.drawRightString(190*mm, y, f"Total: {format_amount(registration.get('totalPrice') or 0, currency)}")
        c.setFont("Helvetica", 11)
        c.drawString(20*mm, y - 12*mm, f"Status: {registration.get('paymentStatus', '')}")

        self._draw_footer(c)
        c.showPage()
        c.save()

        buffer.seek(0)
        return buffer.getvalue()
