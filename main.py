import logging
import random
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from accounts import AccountService
from app.routes import admin, email_verification, event, files, finance, paypal, rendezvous
from config import Config
from database import DocumentStore, init_db, make_engine
from deps import get_account_service, get_config, get_gateway
from emailer import Mailer
from errors import ApiError
from payments import PayPalGateway, StripeGateway
from pdf import InvoiceRenderer
from schemas import AccountCreate, AccountFilterRequest, CheckoutRequest, PaymentLinkRequest
from storage import FileStorage

logger = structlog.get_logger(__name__)


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
    )
    logging.getLogger("stripe").setLevel(logging.WARNING)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())[1:])
        parts.append(f"{field}: {err['msg']}" if field else err["msg"])
    return "; ".join(parts)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        logger.info("request_rejected", path=request.url.path, status=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.info("request_invalid", path=request.url.path, error=message)
        return JSONResponse(status_code=400, content={"success": False, "error": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("request_failed", path=request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or "Internal error"})


def create_app(
    config: Optional[Config] = None,
    mailer: Optional[Mailer] = None,
    gateway: Optional[StripeGateway] = None,
    paypal_gateway: Optional[PayPalGateway] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    config = config or Config.from_env()
    configure_logging(config.log_level)

    app = FastAPI(title="FASE Members & Rendezvous API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine = make_engine(config.database_url)
    app.state.config = config
    app.state.store = DocumentStore(engine)
    app.state.storage = FileStorage(config.storage_dir, config.signing_secret, config.public_base_url, config.signed_url_ttl_days)
    app.state.renderer = InvoiceRenderer(config.issuer_name, config.issuer_taxid, config.issuer_address)
    app.state.mailer = mailer or Mailer(
        config.smtp_host,
        config.smtp_port,
        config.smtp_user,
        config.smtp_password,
        config.smtp_from,
        config.smtp_tls,
    )
    app.state.gateway = gateway or StripeGateway(config.stripe_secret_key, config.stripe_webhook_secret)
    app.state.paypal = paypal_gateway or PayPalGateway(
        config.paypal_client_id,
        config.paypal_client_secret,
        config.paypal_environment,
        config.paypal_webhook_id,
    )
    app.state.rng = rng

    @app.on_event("startup")
    def on_startup():
        init_db(engine)
        logger.info("app_started", database=engine.url.render_as_string(hide_password=True))

    register_error_handlers(app)
    register_routes(app)
    for module in (rendezvous, event, finance, email_verification, admin, files, paypal):
        app.include_router(module.router)
    return app


def register_routes(app: FastAPI) -> None:
    # ── Accounts ─────────────────────────────────────────────────────────
    @app.post("/accounts", tags=["Accounts"])
    def create_account(payload: AccountCreate, accounts: AccountService = Depends(get_account_service)):
        return {"success": True, "account": accounts.create_account(payload)}

    @app.post("/accounts/filter", tags=["Accounts"])
    def filter_accounts(payload: AccountFilterRequest, accounts: AccountService = Depends(get_account_service)):
        return {"success": True, "accounts": accounts.filter_accounts(payload.organization_types, payload.account_statuses)}

    @app.get("/accounts/{account_id}", tags=["Accounts"])
    def get_account(account_id: str, accounts: AccountService = Depends(get_account_service)):
        return {"success": True, "account": accounts.get_account(account_id)}

    # ── Stripe ───────────────────────────────────────────────────────────
    @app.post("/stripe/checkout", tags=["Stripe"])
    def create_checkout_session(
        payload: CheckoutRequest,
        gateway: StripeGateway = Depends(get_gateway),
        config: Config = Depends(get_config),
    ):
        url = gateway.create_checkout_session(
            user_id=payload.user_id,
            amount_cents=payload.amount_cents,
            description=payload.description,
            success_url=payload.success_url or f"{config.public_base_url}/payment-success",
            cancel_url=payload.cancel_url or f"{config.public_base_url}/payment-failed",
            invoice_number=payload.invoice_number,
        )
        return {"success": True, "checkoutUrl": url}

    @app.post("/stripe/payment-link", tags=["Stripe"])
    def create_payment_link(
        payload: PaymentLinkRequest,
        gateway: StripeGateway = Depends(get_gateway),
        config: Config = Depends(get_config),
    ):
        return {"success": True, **gateway.create_payment_link(payload, config.public_base_url)}

    @app.get("/stripe/invoices", tags=["Stripe"])
    def list_stripe_invoices(
        customer_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = Query(default=50, ge=1),
        starting_after: Optional[str] = None,
        gateway: StripeGateway = Depends(get_gateway),
    ):
        return {"success": True, **gateway.list_invoices(customer_id, status, limit, starting_after)}

    @app.get("/stripe/payments", tags=["Stripe"])
    def list_stripe_payments(
        limit: int = Query(default=50, ge=1),
        starting_after: Optional[str] = None,
        gateway: StripeGateway = Depends(get_gateway),
    ):
        return {"success": True, **gateway.list_payments(limit, starting_after)}

    @app.post("/stripe/webhook", tags=["Stripe"])
    async def stripe_webhook(
        request: Request,
        gateway: StripeGateway = Depends(get_gateway),
        accounts: AccountService = Depends(get_account_service),
    ):
        payload = await request.body()
        stripe_event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
        event_type = stripe_event["type"]
        data = stripe_event["data"]["object"]

        if event_type == "checkout.session.completed":
            user_id = (data.get("metadata") or {}).get("user_id")
            if user_id:
                accounts.apply_payment(user_id, "paid", "stripe", data.get("id"))
            else:
                logger.info("stripe_checkout_without_user", session_id=data.get("id"))
        elif event_type == "invoice.payment_succeeded":
            subscription = data.get("subscription")
            subscription_id = subscription.get("id") if isinstance(subscription, dict) else subscription
            if subscription_id:
                user_id = gateway.subscription_metadata(subscription_id).get("user_id")
                if user_id:
                    accounts.apply_payment(user_id, "paid", "stripe", data.get("id") or "")
        elif event_type == "payment_intent.payment_failed":
            logger.warning("stripe_payment_failed", payment_intent=data.get("id"))
        else:
            logger.info("stripe_event_ignored", event_type=event_type)

        return {"received": True}


app = create_app()
