from fastapi import APIRouter, Depends

from deps import get_invoice_service, get_registration_service
from invoices import InvoiceService
from registrations import RegistrationService
from schemas import DeleteRegistrationRequest, RegistrationCreate, StatusUpdateRequest

router = APIRouter(prefix="/rendezvous-registrations", tags=["Rendezvous"])


@router.get("")
def list_registrations(service: RegistrationService = Depends(get_registration_service)):
    return {"success": True, "registrations": service.list_registrations()}


@router.post("")
def create_registration(payload: RegistrationCreate, service: RegistrationService = Depends(get_registration_service)):
    registration = service.create_registration(payload)
    return {"success": True, "registrationId": registration["registrationId"], "registration": registration}


@router.post("/status")
def update_status(payload: StatusUpdateRequest, service: RegistrationService = Depends(get_registration_service)):
    service.update_status(payload.registration_id, payload.status)
    return {"success": True, "message": "Status updated successfully"}


@router.post("/delete")
def delete_registration(payload: DeleteRegistrationRequest, service: RegistrationService = Depends(get_registration_service)):
    details = service.delete_registration(payload.registration_id, payload.confirmation_phrase, payload.invoice_number)
    return {
        "success": True,
        "message": f"Successfully deleted registration for {details['company']}",
        "details": details,
    }


@router.post("/{registration_id}/invoice")
def regenerate_invoice(registration_id: str, service: InvoiceService = Depends(get_invoice_service)):
    return {"success": True, **service.issue_registration_invoice(registration_id)}
