from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """Inbound bodies: camelCase on the wire, immutable, unknown keys rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True)


class PaymentStatus(str, Enum):
    pending_bank_transfer = "pending_bank_transfer"
    paid = "paid"
    confirmed = "confirmed"


class TaskStatus(str, Enum):
    todo = "todo"
    in_progress = "in_progress"
    done = "done"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


# ── Registrations ────────────────────────────────────────────────────────
class Attendee(RequestModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    job_title: str = ""


class BillingInfo(RequestModel):
    company: str = Field(min_length=1)
    billing_email: EmailStr
    country: str = Field(min_length=1)
    address: str = ""
    organization_type: str = "mga"


class RegistrationCreate(RequestModel):
    billing_info: BillingInfo
    attendees: List[Attendee] = Field(min_length=1)
    price_per_ticket: float = Field(default=0, ge=0)
    subtotal: Optional[float] = Field(default=None, ge=0)
    vat_rate: float = Field(default=0, ge=0)
    vat_amount: float = Field(default=0, ge=0)
    total_price: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    company_is_fase_member: bool = False
    payment_method: str = "admin_manual"
    payment_status: PaymentStatus = PaymentStatus.confirmed
    invoice_number: Optional[str] = None
    special_requests: str = ""


class StatusUpdateRequest(RequestModel):
    registration_id: str = Field(min_length=1)
    status: str = Field(min_length=1)


class CheckInRequest(RequestModel):
    registration_id: str = Field(min_length=1)


class DeleteRegistrationRequest(RequestModel):
    registration_id: str = Field(min_length=1)
    confirmation_phrase: Optional[str] = None
    invoice_number: Optional[str] = None


# ── Finance ──────────────────────────────────────────────────────────────
class LineItem(RequestModel):
    description: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)


class PaidInvoiceRequest(RequestModel):
    transaction_id: str = Field(min_length=1)
    source: str = Field(min_length=1)
    organization_name: str = Field(min_length=1)
    line_items: List[LineItem] = Field(min_length=1)
    currency: str = "EUR"
    email: Optional[EmailStr] = None
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    reference: Optional[str] = None
    account_id: Optional[str] = None
    contact_name: str = ""
    address: Optional[str] = None
    send_email: bool = False


class ActivityCreate(RequestModel):
    transaction_id: str = Field(min_length=1)
    source: str = Field(min_length=1)
    type: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    performed_by: str = "system"
    performed_by_name: str = "System"
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ── Auth / verification ──────────────────────────────────────────────────
class SendVerificationRequest(RequestModel):
    email: str


class VerifyCodeRequest(RequestModel):
    email: str = Field(min_length=3)
    code: str = Field(pattern=r"^\d{6}$")


class VerifyUserEmailRequest(RequestModel):
    uid: str = Field(min_length=1)
    code: str = Field(pattern=r"^\d{6}$")


# ── Accounts ─────────────────────────────────────────────────────────────
class AccountCreate(RequestModel):
    email: EmailStr
    organization_name: str = Field(min_length=1)
    organization_type: str = "MGA"
    contact_name: str = ""


class AccountFilterRequest(RequestModel):
    organization_types: List[str] = Field(default_factory=list)
    account_statuses: List[str] = Field(default_factory=list)


# ── Event app ────────────────────────────────────────────────────────────
class TaskCreate(RequestModel):
    title: str = Field(min_length=1)
    description: str = ""
    assignee: str = "Unassigned"
    priority: TaskPriority = TaskPriority.medium
    due_date: Optional[str] = None
    created_by: str = "Unknown"


class TaskUpdate(RequestModel):
    id: str = Field(min_length=1)
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    assignee: Optional[str] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[str] = None


class TaskDelete(RequestModel):
    id: str = Field(min_length=1)


class BroadcastRequest(RequestModel):
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)


# ── Stripe ───────────────────────────────────────────────────────────────
class CheckoutRequest(RequestModel):
    user_id: str = Field(min_length=1)
    amount_cents: int = Field(gt=0)
    description: str = Field(min_length=1)
    invoice_number: Optional[str] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class PaymentLinkRequest(RequestModel):
    organization_name: str = Field(min_length=1)
    organization_type: str = Field(min_length=1)
    gross_written_premiums: Optional[str] = None
    user_email: Optional[EmailStr] = None
    user_id: Optional[str] = None
    invoice_number: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    test_payment: bool = False

    @field_validator("gross_written_premiums")
    @classmethod
    def _strip_bracket(cls, value: Optional[str]):
        return value.strip() if value else value


# ── PayPal ───────────────────────────────────────────────────────────────
class PayPalOrderRequest(RequestModel):
    organization_name: str = Field(min_length=1)
    organization_type: str = "MGA"
    membership_type: str = "corporate"
    gross_written_premiums: Optional[str] = None
    user_email: Optional[EmailStr] = None
    user_id: str = Field(min_length=1)
    test_payment: bool = False


class PayPalSubscriptionRequest(RequestModel):
    organization_name: str = Field(min_length=1)
    organization_type: str = "MGA"
    membership_type: str = "corporate"
    user_email: EmailStr
    user_id: str = Field(min_length=1)
    has_other_associations: bool = False
    exact_total_amount: Optional[float] = Field(default=None, gt=0)
    test_payment: bool = False
