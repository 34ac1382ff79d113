"""FastAPI dependency providers.

External clients are built once in ``main.create_app`` and kept on
``app.state``; services are cheap wrappers assembled per request.
"""
from fastapi import Depends, Request

from accounts import AccountService
from activities import ActivityLog
from config import Config
from database import DocumentStore
from emailer import Mailer
from event_app import EventAppService
from invoices import InvoiceService
from payments import PayPalGateway, StripeGateway
from pdf import InvoiceRenderer
from registrations import RegistrationService
from storage import FileStorage
from verification import VerificationService


def get_config(request: Request) -> Config:
    return request.app.state.config


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_gateway(request: Request) -> StripeGateway:
    return request.app.state.gateway


def get_paypal(request: Request) -> PayPalGateway:
    return request.app.state.paypal


def get_renderer(request: Request) -> InvoiceRenderer:
    return request.app.state.renderer


def get_activity_log(store: DocumentStore = Depends(get_store)) -> ActivityLog:
    return ActivityLog(store)


def get_registration_service(store: DocumentStore = Depends(get_store)) -> RegistrationService:
    return RegistrationService(store)


def get_account_service(
    store: DocumentStore = Depends(get_store),
    activities: ActivityLog = Depends(get_activity_log),
) -> AccountService:
    return AccountService(store, activities)


def get_event_app_service(store: DocumentStore = Depends(get_store)) -> EventAppService:
    return EventAppService(store)


def get_verification_service(
    store: DocumentStore = Depends(get_store),
    mailer: Mailer = Depends(get_mailer),
) -> VerificationService:
    return VerificationService(store, mailer)


def get_invoice_service(
    request: Request,
    store: DocumentStore = Depends(get_store),
    storage: FileStorage = Depends(get_storage),
    renderer: InvoiceRenderer = Depends(get_renderer),
    activities: ActivityLog = Depends(get_activity_log),
    mailer: Mailer = Depends(get_mailer),
) -> InvoiceService:
    return InvoiceService(store, storage, renderer, activities, mailer, rng=getattr(request.app.state, "rng", None))
