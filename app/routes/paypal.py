from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import RedirectResponse

from accounts import AccountService
from config import Config
from deps import get_account_service, get_config, get_paypal
from errors import ApiError, InvalidArgument, NotFound
from payments import PayPalGateway, capture_custom_id
from schemas import PayPalOrderRequest, PayPalSubscriptionRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/paypal", tags=["PayPal"])


@router.post("/orders")
def create_order(
    payload: PayPalOrderRequest,
    gateway: PayPalGateway = Depends(get_paypal),
    config: Config = Depends(get_config),
):
    return {"success": True, **gateway.create_order(payload, config.public_base_url)}


@router.post("/subscriptions")
def create_subscription(
    payload: PayPalSubscriptionRequest,
    gateway: PayPalGateway = Depends(get_paypal),
    config: Config = Depends(get_config),
):
    return {"success": True, **gateway.create_subscription(payload, config.public_base_url)}


@router.get("/success")
def payment_success(
    token: Optional[str] = None,
    payer_id: Optional[str] = Query(default=None, alias="PayerID"),
    gateway: PayPalGateway = Depends(get_paypal),
    accounts: AccountService = Depends(get_account_service),
    config: Config = Depends(get_config),
):
    """PayPal return URL: capture the approved order, then send the payer back to the portal."""
    portal = f"{config.public_base_url}/member-portal/apply"
    if not token or not payer_id:
        return RedirectResponse(f"{portal}?error=missing_payment_info")

    try:
        capture = gateway.capture_order(token)
    except ApiError as e:
        logger.warning("paypal_capture_failed", order_id=token, error=e.message)
        return RedirectResponse(f"{portal}?error=payment_failed")
    if capture.get("status") != "COMPLETED":
        logger.warning("paypal_capture_incomplete", order_id=token, status=capture.get("status"))
        return RedirectResponse(f"{portal}?error=payment_failed")

    user_id = capture_custom_id(capture)
    if user_id:
        accounts.apply_payment(user_id, "paid", "paypal", capture.get("id") or token)
    else:
        logger.info("paypal_capture_without_user", order_id=token)
    return RedirectResponse(f"{portal}?success=true")


@router.post("/webhook")
def paypal_webhook(
    request: Request,
    event: Dict[str, Any] = Body(...),
    gateway: PayPalGateway = Depends(get_paypal),
    accounts: AccountService = Depends(get_account_service),
):
    event_type = event.get("event_type")
    if not gateway.verify_webhook(request.headers, event):
        logger.warning("paypal_webhook_rejected", event_type=event_type)
        raise InvalidArgument("Invalid signature")

    if event_type == "PAYMENT.CAPTURE.COMPLETED":
        resource = event.get("resource") or {}
        user_id = resource.get("custom_id")
        if not user_id:
            raise InvalidArgument("Missing user ID")
        amount = resource.get("amount") or {}
        account = accounts.apply_payment(
            user_id,
            "paid",
            "paypal",
            resource.get("id"),
            details={"captureId": resource.get("id"), "amount": amount.get("value"), "currency": amount.get("currency_code")},
        )
        if account is None:
            raise NotFound("Account not found")
    else:
        logger.info("paypal_event_ignored", event_type=event_type)

    return {"success": True}
