"""Rendezvous registrations: payment status, check-in latch, guarded deletion."""
import random
import string
import time
from collections import Counter
from typing import Optional

import structlog

from database import DocumentStore, Snapshot
from errors import Forbidden, InvalidArgument, NotFound, PreconditionFailed, WriteConflict
from models import utcnow
from schemas import PaymentStatus, RegistrationCreate

logger = structlog.get_logger(__name__)

REGISTRATIONS = "rendezvous-registrations"
CONFIRMED_STATUSES = (PaymentStatus.paid.value, PaymentStatus.confirmed.value)
DELETE_PHRASE = "DELETE"


def derived_status(payment_status: str) -> str:
    return "confirmed" if payment_status in CONFIRMED_STATUSES else "pending_payment"


def attendee_info(snapshot: Snapshot) -> dict:
    """Display card for the first attendee, as shown at the check-in desk."""
    attendees = snapshot.get("attendees") or []
    first = attendees[0] if attendees else None
    return {
        "name": f"{first.get('firstName', '')} {first.get('lastName', '')}".strip() if first else "Unknown",
        "company": snapshot.get("billingInfo.company") or "Unknown",
        "email": (first or {}).get("email") or snapshot.get("billingInfo.billingEmail") or "",
        "ticketType": snapshot.get("billingInfo.organizationType") or "Attendee",
        "checkedInAt": snapshot.get("checkedInAt"),
    }


def _generate_invoice_number() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=8))
    return f"RDV-{utcnow().year}-{suffix}"


class RegistrationService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def find(self, registration_id: str) -> Optional[Snapshot]:
        return self.store.first(REGISTRATIONS, [("registrationId", "==", registration_id)])

    def resolve(self, registration_id: str) -> Snapshot:
        """Look up by business key first, then by store document id."""
        snapshot = self.find(registration_id) or self.store.get(REGISTRATIONS, registration_id)
        if snapshot is None:
            raise NotFound("Registration not found")
        return snapshot

    def create_registration(self, payload: RegistrationCreate) -> dict:
        registration_id = f"mga_admin_{int(time.time() * 1000)}"
        attendees = [
            {
                "id": f"attendee_{index}",
                "firstName": a.first_name,
                "lastName": a.last_name,
                "email": a.email,
                "jobTitle": a.job_title,
            }
            for index, a in enumerate(payload.attendees, start=1)
        ]
        payment_status = payload.payment_status.value
        registration = {
            "registrationId": registration_id,
            "invoiceNumber": payload.invoice_number or _generate_invoice_number(),
            "billingInfo": {
                "company": payload.billing_info.company,
                "billingEmail": payload.billing_info.billing_email,
                "country": payload.billing_info.country,
                "address": payload.billing_info.address,
                "organizationType": payload.billing_info.organization_type,
            },
            "attendees": attendees,
            "additionalInfo": {"specialRequests": payload.special_requests},
            "pricePerTicket": payload.price_per_ticket,
            "numberOfAttendees": len(attendees),
            "subtotal": payload.subtotal if payload.subtotal is not None else payload.total_price,
            "vatRate": payload.vat_rate,
            "vatAmount": payload.vat_amount,
            "totalPrice": payload.total_price,
            "discount": payload.discount,
            "currency": "EUR",
            "companyIsFaseMember": payload.company_is_fase_member,
            "paymentMethod": payload.payment_method,
            "paymentStatus": payment_status,
            "status": derived_status(payment_status),
            "source": "admin-portal",
            "createdAt": utcnow(),
        }
        snapshot = self.store.set(REGISTRATIONS, registration_id, registration)
        logger.info("registration_created", registration_id=registration_id, company=payload.billing_info.company)
        return snapshot.data

    def list_registrations(self) -> list[dict]:
        found = self.store.query(REGISTRATIONS, order_by="createdAt", descending=True)
        return [snapshot.to_dict() for snapshot in found]

    def update_status(self, registration_id: str, new_status: str) -> dict:
        if new_status not in {s.value for s in PaymentStatus}:
            raise InvalidArgument("Invalid status")
        snapshot = self.find(registration_id)
        if snapshot is None:
            raise NotFound("Registration not found")

        now = utcnow()
        values = {
            "paymentStatus": new_status,
            "status": derived_status(new_status),
            "updatedAt": now,
        }
        if new_status == PaymentStatus.confirmed.value and snapshot.get("paymentStatus") != new_status:
            values["confirmedAt"] = now
        updated = self.store.update(REGISTRATIONS, snapshot.id, values)
        logger.info(
            "registration_status_updated",
            registration_id=registration_id,
            old_status=snapshot.get("paymentStatus"),
            new_status=new_status,
        )
        return updated.data

    def check_in(self, registration_id: str) -> dict:
        snapshot = self.resolve(registration_id)
        if snapshot.get("paymentStatus") not in CONFIRMED_STATUSES:
            raise PreconditionFailed("Payment not confirmed for this registration")
        if snapshot.get("checkedInAt"):
            return {"attendee": attendee_info(snapshot), "alreadyCheckedIn": True}

        attendee_count = len(snapshot.get("attendees") or []) or 1
        try:
            updated = self.store.update(
                REGISTRATIONS,
                snapshot.id,
                {"checkedInAt": utcnow(), "checkedInCount": attendee_count},
                expected_version=snapshot.version,
            )
        except WriteConflict:
            # Another desk got there first; report its latch.
            current = self.store.get(REGISTRATIONS, snapshot.id)
            if current is None:
                raise NotFound("Registration not found")
            if not current.get("checkedInAt"):
                raise
            return {"attendee": attendee_info(current), "alreadyCheckedIn": True}

        logger.info("registration_checked_in", registration_id=registration_id, attendees=attendee_count)
        return {"attendee": attendee_info(updated), "alreadyCheckedIn": False}

    def delete_registration(
        self,
        registration_id: str,
        confirmation_phrase: Optional[str],
        invoice_number: Optional[str] = None,
    ) -> dict:
        if confirmation_phrase != DELETE_PHRASE:
            raise Forbidden('Invalid confirmation phrase. Type "DELETE" to confirm.')
        snapshot = self.find(registration_id)
        if snapshot is None:
            raise NotFound("Registration not found")
        if invoice_number and snapshot.get("invoiceNumber") != invoice_number:
            raise InvalidArgument("Invoice number mismatch - registration not deleted for safety")

        details = {
            "registrationId": snapshot.get("registrationId"),
            "invoiceNumber": snapshot.get("invoiceNumber"),
            "company": snapshot.get("billingInfo.company") or "Unknown",
            "attendeeCount": len(snapshot.get("attendees") or []),
            "totalPrice": snapshot.get("totalPrice") or 0,
        }
        self.store.delete(REGISTRATIONS, snapshot.id)
        logger.warning("registration_deleted", registration_id=registration_id, company=details["company"])
        return details

    def stats(self, detailed: bool = False) -> dict:
        total_registrations = total_attendees = checked_in = pending_payment = 0
        revenue = 0.0
        by_organization_type: Counter = Counter()
        by_country: Counter = Counter()

        snapshots = self.store.query(REGISTRATIONS, order_by="createdAt", descending=True)
        for snapshot in snapshots:
            total_registrations += 1
            attendee_count = len(snapshot.get("attendees") or [])
            total_attendees += attendee_count

            payment_status = snapshot.get("paymentStatus")
            if payment_status in CONFIRMED_STATUSES:
                revenue += snapshot.get("totalPrice") or 0
            elif payment_status == PaymentStatus.pending_bank_transfer.value:
                pending_payment += 1

            if snapshot.get("checkedInAt"):
                checked_in += snapshot.get("checkedInCount") or attendee_count

            if detailed:
                by_organization_type[snapshot.get("billingInfo.organizationType") or "other"] += attendee_count
                by_country[snapshot.get("billingInfo.country") or "Unknown"] += attendee_count

        stats = {
            "totalRegistrations": total_registrations,
            "totalAttendees": total_attendees,
            "checkedIn": checked_in,
            "pendingPayment": pending_payment,
            "revenue": revenue,
        }
        if detailed:
            stats["byOrganizationType"] = dict(by_organization_type)
            stats["byCountry"] = dict(by_country)
            stats["recentRegistrations"] = [
                {
                    "id": snapshot.id,
                    "company": snapshot.get("billingInfo.company") or "Unknown",
                    "attendeeCount": len(snapshot.get("attendees") or []),
                    "createdAt": snapshot.get("createdAt"),
                }
                for snapshot in snapshots[:10]
            ]
        return stats

    def _confirmed(self) -> list[Snapshot]:
        return self.store.query(REGISTRATIONS, where=[("paymentStatus", "in", CONFIRMED_STATUSES)])

    def list_attendees(self) -> list[dict]:
        attendees = []
        for snapshot in self._confirmed():
            for attendee in snapshot.get("attendees") or []:
                attendees.append(
                    {
                        "id": f"{snapshot.id}-{attendee.get('email')}",
                        "name": f"{attendee.get('firstName', '')} {attendee.get('lastName', '')}".strip(),
                        "company": snapshot.get("billingInfo.company") or "Unknown",
                        "jobTitle": attendee.get("jobTitle") or "Attendee",
                        "organizationType": snapshot.get("billingInfo.organizationType") or "other",
                        "country": snapshot.get("billingInfo.country") or "Unknown",
                    }
                )
        attendees.sort(key=lambda a: a["company"].lower())
        return attendees

    def find_ticket(self, email: str) -> dict:
        wanted = email.strip().lower()
        for snapshot in self._confirmed():
            for attendee in snapshot.get("attendees") or []:
                if (attendee.get("email") or "").lower() == wanted:
                    return {
                        "registrationId": snapshot.get("registrationId") or snapshot.id,
                        "company": snapshot.get("billingInfo.company") or "Unknown",
                        "attendeeName": f"{attendee.get('firstName', '')} {attendee.get('lastName', '')}".strip(),
                        "attendeeEmail": attendee.get("email"),
                        "ticketType": snapshot.get("billingInfo.organizationType") or "Attendee",
                        "isFaseMember": bool(snapshot.get("companyIsFaseMember")),
                    }
        raise NotFound("No registration found")
