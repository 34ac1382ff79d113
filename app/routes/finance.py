from fastapi import APIRouter, Depends, Query

from activities import ActivityLog, payment_key
from deps import get_activity_log, get_invoice_service
from invoices import InvoiceService
from schemas import ActivityCreate, PaidInvoiceRequest

router = APIRouter(prefix="/finance", tags=["Finance"])


@router.post("/invoices/paid")
def generate_paid_invoice(payload: PaidInvoiceRequest, service: InvoiceService = Depends(get_invoice_service)):
    return {"success": True, **service.issue_paid_invoice(payload)}


@router.get("/activities")
def list_activities(
    transaction_id: str = Query(alias="transactionId", min_length=1),
    source: str = Query(min_length=1),
    limit: int = Query(default=50, ge=1, le=200),
    activities: ActivityLog = Depends(get_activity_log),
):
    return {"success": True, "activities": activities.list_activities(payment_key(source, transaction_id), limit=limit)}


@router.post("/activities")
def add_activity(payload: ActivityCreate, activities: ActivityLog = Depends(get_activity_log)):
    activity_id = activities.log_activity(
        payment_key(payload.source, payload.transaction_id),
        payload.type,
        payload.title,
        description=payload.description,
        performed_by=payload.performed_by,
        performed_by_name=payload.performed_by_name,
        metadata=payload.metadata,
        source=payload.source,
        transaction_id=payload.transaction_id,
    )
    return {"success": True, "activityId": activity_id}
