import time
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

import requests
import stripe
import structlog

from errors import InvalidArgument, PaymentProviderError
from schemas import PaymentLinkRequest, PayPalOrderRequest, PayPalSubscriptionRequest

logger = structlog.get_logger(__name__)

DEFAULT_PRICE_CENTS = 90000
TEST_PRICE_CENTS = 50

# Annual MGA membership by gross written premium bracket, in euro cents.
PREMIUM_BRACKET_PRICES = {
    "<10m": 90000,
    "10-20m": 150000,
    "20-50m": 200000,
    "50-100m": 280000,
    "100-500m": 420000,
    "500m+": 640000,
}


def membership_price_cents(request: PaymentLinkRequest) -> int:
    if request.test_payment:
        return TEST_PRICE_CENTS
    if request.amount:
        return round(request.amount * 100)
    if request.organization_type == "MGA":
        return PREMIUM_BRACKET_PRICES.get(request.gross_written_premiums or "", DEFAULT_PRICE_CENTS)
    return DEFAULT_PRICE_CENTS


def _iso(timestamp: Optional[int]) -> Optional[str]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class StripeGateway:
    def __init__(self, api_key: Optional[str], webhook_secret: Optional[str] = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _key(self) -> str:
        if not self.api_key:
            raise InvalidArgument("Stripe is not configured")
        return self.api_key

    def create_checkout_session(
        self,
        user_id: str,
        amount_cents: int,
        description: str,
        success_url: str,
        cancel_url: str,
        invoice_number: Optional[str] = None,
    ) -> str:
        session_obj = stripe.checkout.Session.create(
            api_key=self._key(),
            mode="payment",
            line_items=[{"price_data": {"currency": "eur", "product_data": {"name": description}, "unit_amount": amount_cents}, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"user_id": user_id, "invoice_number": invoice_number or ""},
        )
        logger.info("stripe_checkout_created", session_id=session_obj.id, user_id=user_id)
        return session_obj.url

    def create_payment_link(self, request: PaymentLinkRequest, base_url: str) -> dict:
        if request.organization_type == "MGA" and not request.gross_written_premiums and not request.test_payment:
            raise InvalidArgument("Gross written premiums required for MGA subscriptions")
        api_key = self._key()
        price_cents = membership_price_cents(request)
        label = f"FASE {request.organization_type} Corporate Membership"
        metadata = {
            "organization_name": request.organization_name,
            "organization_type": request.organization_type,
            "invoice_number": request.invoice_number or "",
            "user_id": request.user_id or "",
        }
        if request.organization_type == "MGA" and request.gross_written_premiums:
            metadata["gross_written_premiums"] = request.gross_written_premiums

        product = stripe.Product.create(
            api_key=api_key,
            name=f"[ADMIN TEST] {label}" if request.test_payment else label,
            description=f"Annual membership for {request.organization_name}",
            metadata=metadata,
        )
        price_args = {"currency": "eur", "product": product.id, "unit_amount": price_cents}
        if not request.test_payment:
            price_args["recurring"] = {"interval": "year"}
        price = stripe.Price.create(api_key=api_key, **price_args)
        link = stripe.PaymentLink.create(
            api_key=api_key,
            line_items=[{"price": price.id, "quantity": 1}],
            metadata=metadata,
            after_completion={"type": "redirect", "redirect": {"url": f"{base_url}/payment-success"}},
        )
        logger.info("stripe_payment_link_created", link_id=link.id, organization=request.organization_name, amount=price_cents)
        return {"url": link.url, "paymentLinkId": link.id, "amountCents": price_cents}

    def list_invoices(
        self,
        customer_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        starting_after: Optional[str] = None,
    ) -> dict:
        params = {"limit": min(limit, 100)}
        if customer_id:
            params["customer"] = customer_id
        if status:
            params["status"] = status
        if starting_after:
            params["starting_after"] = starting_after
        invoices = stripe.Invoice.list(api_key=self._key(), **params)
        data = [
            {
                "id": inv.id,
                "number": inv.get("number"),
                "status": inv.get("status"),
                "amountDue": inv.get("amount_due"),
                "amountPaid": inv.get("amount_paid"),
                "currency": inv.get("currency"),
                "createdDate": _iso(inv.get("created")),
                "dueDate": _iso(inv.get("due_date")),
                "customerEmail": inv.get("customer_email"),
                "customerName": inv.get("customer_name"),
                "hostedInvoiceUrl": inv.get("hosted_invoice_url"),
                "invoicePdf": inv.get("invoice_pdf"),
                "description": inv.get("description"),
            }
            for inv in invoices.data
        ]
        return {"invoices": data, "hasMore": invoices.has_more, "nextCursor": data[-1]["id"] if data else None}

    def list_payments(self, limit: int = 50, starting_after: Optional[str] = None) -> dict:
        params = {"limit": min(limit, 100)}
        if starting_after:
            params["starting_after"] = starting_after
        intents = stripe.PaymentIntent.list(api_key=self._key(), **params)
        data = [
            {
                "id": pi.id,
                "amount": pi.get("amount"),
                "amountReceived": pi.get("amount_received"),
                "currency": pi.get("currency"),
                "status": pi.get("status"),
                "createdDate": _iso(pi.get("created")),
                "description": pi.get("description"),
                "customerId": pi.get("customer"),
                "metadata": dict(pi.get("metadata") or {}),
            }
            for pi in intents.data
        ]
        return {"payments": data, "hasMore": intents.has_more, "nextCursor": data[-1]["id"] if data else None}

    def construct_event(self, payload: bytes, signature: Optional[str]):
        if not self.webhook_secret:
            raise InvalidArgument("Missing STRIPE_WEBHOOK_SECRET")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise InvalidArgument(f"Webhook error: {e}")

    def subscription_metadata(self, subscription_id: str) -> dict:
        subscription = stripe.Subscription.retrieve(subscription_id, api_key=self._key())
        return dict(subscription.get("metadata") or {})


# ── PayPal ───────────────────────────────────────────────────────────────
PAYPAL_BASE_URLS = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}
PAYPAL_TIMEOUT = 15
PAYPAL_BRAND = "Federation of European MGAs (FASE)"

INDIVIDUAL_PRICE = 500.00
PAYPAL_DEFAULT_PRICE = 900.00
PAYPAL_TEST_ORDER_PRICE = 0.01
PAYPAL_TEST_SUBSCRIPTION_PRICE = 0.50

# PayPal orders are priced in euros, not cents.
PAYPAL_BRACKET_PRICES = {
    "<10m": 900.00,
    "10-20m": 1100.00,
    "20-50m": 1300.00,
    "50-100m": 1500.00,
    "100-500m": 1700.00,
    "500m+": 2000.00,
}


def paypal_order_price(request: PayPalOrderRequest) -> float:
    premiums = request.gross_written_premiums or ""
    if request.test_payment or "test" in premiums:
        return PAYPAL_TEST_ORDER_PRICE
    if request.membership_type == "individual":
        return INDIVIDUAL_PRICE
    if request.membership_type == "corporate" and request.organization_type == "MGA" and premiums:
        return PAYPAL_BRACKET_PRICES.get(premiums, PAYPAL_DEFAULT_PRICE)
    return PAYPAL_DEFAULT_PRICE


def membership_label(membership_type: str, organization_type: str) -> str:
    if membership_type == "individual":
        return "FASE Individual Membership"
    return f"FASE {organization_type} Corporate Membership"


def approval_url(resource: dict) -> str:
    for link in resource.get("links") or []:
        if link.get("rel") == "approve":
            return link["href"]
    raise PaymentProviderError("No approval URL received from PayPal")


def capture_custom_id(capture: dict) -> Optional[str]:
    """The user id carried on the first capture of a captured order."""
    for unit in capture.get("purchase_units") or []:
        for item in (unit.get("payments") or {}).get("captures") or []:
            if item.get("custom_id"):
                return item["custom_id"]
    return None


def _euros(amount: float) -> dict:
    return {"currency_code": "EUR", "value": f"{amount:.2f}"}


class PayPalGateway:
    """PayPal REST API client. Every call fetches a fresh client-credentials token."""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        environment: str = "sandbox",
        webhook_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.webhook_id = webhook_id
        self.base_url = PAYPAL_BASE_URLS["live" if environment == "live" else "sandbox"]
        self.session = session or requests.Session()

    def _json(self, response: requests.Response, operation: str) -> dict:
        if not response.ok:
            logger.error("paypal_request_failed", operation=operation, status=response.status_code, body=response.text[:500])
            raise PaymentProviderError(f"PayPal {operation} failed: {response.status_code}")
        return response.json()

    def _access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise InvalidArgument("PayPal is not configured")
        response = self.session.post(
            f"{self.base_url}/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
            timeout=PAYPAL_TIMEOUT,
        )
        return self._json(response, "oauth")["access_token"]

    def _post(self, path: str, payload: Optional[dict], operation: str, token: Optional[str] = None, headers: Optional[dict] = None) -> dict:
        token = token or self._access_token()
        response = self.session.post(
            f"{self.base_url}{path}",
            json=payload,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Prefer": "return=representation",
                **(headers or {}),
            },
            timeout=PAYPAL_TIMEOUT,
        )
        return self._json(response, operation)

    def create_order(self, request: PayPalOrderRequest, base_url: str) -> dict:
        amount = paypal_order_price(request)
        reference = f"FASE-{request.user_id}-{int(time.time() * 1000)}"
        order = self._post(
            "/v2/checkout/orders",
            {
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "amount": {**_euros(amount), "breakdown": {"item_total": _euros(amount)}},
                        "items": [
                            {
                                "name": membership_label(request.membership_type, request.organization_type),
                                "description": f"Annual FASE membership for {request.organization_name}",
                                "unit_amount": _euros(amount),
                                "quantity": "1",
                                "category": "DIGITAL_GOODS",
                            }
                        ],
                        "custom_id": request.user_id,
                        "description": f"FASE Annual Membership - {request.organization_name}",
                        "invoice_id": reference,
                    }
                ],
                "application_context": {
                    "brand_name": PAYPAL_BRAND,
                    "locale": "en-US",
                    "landing_page": "NO_PREFERENCE",
                    "shipping_preference": "NO_SHIPPING",
                    "user_action": "PAY_NOW",
                    "return_url": f"{base_url}/paypal/success",
                    "cancel_url": f"{base_url}/register?cancelled=true",
                },
            },
            "order creation",
            headers={"PayPal-Request-Id": reference},
        )
        logger.info("paypal_order_created", order_id=order.get("id"), user_id=request.user_id, amount=amount)
        return {"orderId": order.get("id"), "approvalUrl": approval_url(order), "amount": amount}

    def create_subscription(self, request: PayPalSubscriptionRequest, base_url: str) -> dict:
        if request.test_payment:
            amount = PAYPAL_TEST_SUBSCRIPTION_PRICE
        elif request.exact_total_amount:
            amount = request.exact_total_amount
        else:
            raise InvalidArgument("exactTotalAmount is required")

        plan_name = membership_label(request.membership_type, request.organization_type)
        if request.has_other_associations and request.membership_type == "corporate":
            plan_name += " (Discounted)"

        token = self._access_token()
        product = self._post(
            "/v1/catalogs/products",
            {"name": plan_name, "description": f"Annual FASE membership - {plan_name}", "type": "SERVICE", "category": "SOFTWARE"},
            "product creation",
            token=token,
        )
        plan = self._post(
            "/v1/billing/plans",
            {
                "product_id": product["id"],
                "name": plan_name,
                "description": f"Annual FASE membership - {plan_name}",
                "status": "ACTIVE",
                "billing_cycles": [
                    {
                        "frequency": {"interval_unit": "YEAR", "interval_count": 1},
                        "tenure_type": "REGULAR",
                        "sequence": 1,
                        "total_cycles": 0,
                        "pricing_scheme": {"fixed_price": _euros(amount)},
                    }
                ],
                "payment_preferences": {
                    "auto_bill_outstanding": True,
                    "setup_fee_failure_action": "CONTINUE",
                    "payment_failure_threshold": 3,
                },
            },
            "plan creation",
            token=token,
        )

        names = request.organization_name.split()
        start_time = datetime.now(timezone.utc) + timedelta(minutes=1)
        subscription = self._post(
            "/v1/billing/subscriptions",
            {
                "plan_id": plan["id"],
                "start_time": start_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "subscriber": {
                    "name": {"given_name": names[0] if names else "Member", "surname": " ".join(names[1:]) or "User"},
                    "email_address": request.user_email,
                },
                "application_context": {
                    "brand_name": PAYPAL_BRAND,
                    "locale": "en-US",
                    "shipping_preference": "NO_SHIPPING",
                    "user_action": "SUBSCRIBE_NOW",
                    "payment_method": {"payer_selected": "PAYPAL", "payee_preferred": "IMMEDIATE_PAYMENT_REQUIRED"},
                    "return_url": f"{base_url}/payment-succeeded",
                    "cancel_url": f"{base_url}/payment-failed",
                },
                # PayPal caps custom_id at 127 characters.
                "custom_id": request.user_id[:127],
            },
            "subscription creation",
            token=token,
        )
        logger.info("paypal_subscription_created", subscription_id=subscription.get("id"), plan_id=plan["id"], amount=amount)
        return {
            "subscriptionId": subscription.get("id"),
            "planId": plan["id"],
            "approvalUrl": approval_url(subscription),
            "amount": amount,
        }

    def capture_order(self, order_id: str) -> dict:
        capture = self._post(f"/v2/checkout/orders/{order_id}/capture", None, "capture")
        logger.info("paypal_order_captured", order_id=order_id, status=capture.get("status"))
        return capture

    def verify_webhook(self, headers: Mapping[str, str], event: dict[str, Any]) -> bool:
        if not self.webhook_id:
            raise InvalidArgument("Missing PAYPAL_WEBHOOK_ID")
        result = self._post(
            "/v1/notifications/verify-webhook-signature",
            {
                "auth_algo": headers.get("paypal-auth-algo"),
                "cert_url": headers.get("paypal-cert-url"),
                "transmission_id": headers.get("paypal-transmission-id"),
                "transmission_sig": headers.get("paypal-transmission-sig"),
                "transmission_time": headers.get("paypal-transmission-time"),
                "webhook_id": self.webhook_id,
                "webhook_event": event,
            },
            "webhook verification",
        )
        return result.get("verification_status") == "SUCCESS"
