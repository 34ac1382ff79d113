"""Paid-invoice issuance and registration invoice regeneration.

Issuing a paid invoice runs render → store PDF → write record → log activity.
The steps are not transactional: if a later step fails the earlier artifacts
stay where they are, and the failure is logged with the step that broke.
"""
import random
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import structlog

from activities import ActivityLog, payment_key
from database import DocumentStore
from emailer import Mailer, paid_invoice_message
from models import utcnow
from pdf import InvoiceRenderer, format_amount
from registrations import REGISTRATIONS, RegistrationService
from schemas import LineItem, PaidInvoiceRequest

logger = structlog.get_logger(__name__)

PAID_INVOICES = "paid_invoices"
REGISTRATION_INVOICES = "rendezvous-invoices"
INVOICE_PREFIX = "FASE-"
MAX_NUMBER_ATTEMPTS = 20
CENT = Decimal("0.01")


def line_total(item: LineItem) -> Decimal:
    return (Decimal(item.quantity) * Decimal(str(item.unit_price))).quantize(CENT, rounding=ROUND_HALF_UP)


def paid_invoice_path(invoice_number: str) -> str:
    return f"invoices/paid/{invoice_number}.pdf"


def registration_invoice_path(invoice_number: str) -> str:
    return f"rendezvous-invoices/{invoice_number}.pdf"


class InvoiceService:
    def __init__(
        self,
        store: DocumentStore,
        storage,
        renderer: InvoiceRenderer,
        activities: ActivityLog,
        mailer: Optional[Mailer] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.storage = storage
        self.renderer = renderer
        self.activities = activities
        self.mailer = mailer
        self.rng = rng or random.Random()

    def generate_invoice_number(self) -> str:
        for _ in range(MAX_NUMBER_ATTEMPTS):
            candidate = f"{INVOICE_PREFIX}{self.rng.randint(10000, 99999)}"
            if self.store.first(PAID_INVOICES, [("invoiceNumber", "==", candidate)]) is None:
                return candidate
        raise RuntimeError("Unable to allocate invoice number")

    def issue_paid_invoice(self, request: PaidInvoiceRequest) -> dict:
        key = payment_key(request.source, request.transaction_id)
        line_items = [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unitPrice": item.unit_price,
                "total": float(line_total(item)),
            }
            for item in request.line_items
        ]
        total_amount = float(sum((line_total(item) for item in request.line_items), Decimal("0")))
        invoice_number = self.generate_invoice_number()
        paid_at = request.paid_at or utcnow()

        invoice = {
            "invoiceNumber": invoice_number,
            "paymentKey": key,
            "transactionId": request.transaction_id,
            "source": request.source,
            "organizationName": request.organization_name,
            "contactName": request.contact_name,
            "address": request.address,
            "lineItems": line_items,
            "totalAmount": total_amount,
            "currency": request.currency,
            "paidAt": paid_at.isoformat(),
            "paymentMethod": request.payment_method or request.source,
            "reference": request.reference or request.transaction_id,
            "email": request.email,
            "accountId": request.account_id,
        }

        step = "render_pdf"
        try:
            pdf_bytes = self.renderer.render_paid_invoice(invoice)

            step = "store_pdf"
            path = self.storage.save(paid_invoice_path(invoice_number), pdf_bytes)
            pdf_url = self.storage.signed_url(path)

            step = "write_record"
            invoice_id = self.store.add(
                PAID_INVOICES,
                {**invoice, "pdfUrl": pdf_url, "storagePath": path, "generatedAt": utcnow(), "generatedBy": "admin"},
            )

            step = "log_activity"
            self.activities.log_activity(
                key,
                "invoice_generated",
                "PAID Invoice Generated",
                description=f"Invoice {invoice_number} generated for {request.organization_name}",
                performed_by="admin",
                performed_by_name="Admin",
                metadata={
                    "invoiceId": invoice_id,
                    "invoiceNumber": invoice_number,
                    "amount": total_amount,
                    "currency": request.currency,
                },
                source=request.source,
                transaction_id=request.transaction_id,
            )
        except Exception:
            logger.exception("paid_invoice_pipeline_failed", step=step, invoice_number=invoice_number, payment_key=key)
            raise

        logger.info("paid_invoice_issued", invoice_number=invoice_number, invoice_id=invoice_id, total=total_amount)

        if request.send_email and request.email:
            self._mail_invoice(request.email, invoice_number, request.organization_name,
                               format_amount(total_amount, request.currency), pdf_bytes)

        return {
            "invoiceNumber": invoice_number,
            "invoiceId": invoice_id,
            "paymentKey": key,
            "lineItems": line_items,
            "totalAmount": total_amount,
            "currency": request.currency,
            "pdfUrl": pdf_url,
        }

    def _mail_invoice(self, email: str, invoice_number: str, organization_name: str, total: str, pdf_bytes: bytes):
        if self.mailer is None:
            return
        subject, body = paid_invoice_message(invoice_number, organization_name, total)
        try:
            self.mailer.send(
                to_addrs=[email],
                subject=subject,
                body=body,
                attachments=[(f"{invoice_number}-PAID.pdf", pdf_bytes, "application/pdf")],
            )
        except Exception:
            logger.warning("paid_invoice_mail_failed", invoice_number=invoice_number, email=email, exc_info=True)

    def issue_registration_invoice(self, registration_id: str) -> dict:
        snapshot = RegistrationService(self.store).resolve(registration_id)

        invoice_number = snapshot.get("invoiceNumber") or f"RDV-{utcnow().year}-{registration_id[-8:].upper()}"
        pdf_bytes = self.renderer.render_registration_invoice(invoice_number, snapshot.data)
        path = self.storage.save(registration_invoice_path(invoice_number), pdf_bytes)
        pdf_url = self.storage.signed_url(path)

        invoice_id = self.store.add(
            REGISTRATION_INVOICES,
            {
                "invoiceNumber": invoice_number,
                "registrationId": snapshot.get("registrationId") or snapshot.id,
                "pdfUrl": pdf_url,
                "storagePath": path,
                "generatedAt": utcnow(),
            },
        )
        self.store.update(REGISTRATIONS, snapshot.id, {"invoiceNumber": invoice_number, "invoiceUrl": pdf_url})
        logger.info("registration_invoice_generated", registration_id=registration_id, invoice_number=invoice_number)
        return {"invoiceNumber": invoice_number, "invoiceId": invoice_id, "pdfUrl": pdf_url}
