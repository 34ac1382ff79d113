from fastapi import APIRouter, Depends, Query

from deps import get_event_app_service, get_registration_service
from event_app import EventAppService
from registrations import RegistrationService
from schemas import BroadcastRequest, CheckInRequest, TaskCreate, TaskDelete, TaskUpdate

router = APIRouter(prefix="/event", tags=["Event app"])


# ── Check-in desk ────────────────────────────────────────────────────────
@router.post("/checkin")
def check_in(payload: CheckInRequest, service: RegistrationService = Depends(get_registration_service)):
    return {"success": True, **service.check_in(payload.registration_id)}


@router.get("/stats")
def stats(detailed: bool = False, service: RegistrationService = Depends(get_registration_service)):
    return service.stats(detailed=detailed)


@router.get("/attendees")
def attendees(service: RegistrationService = Depends(get_registration_service)):
    return service.list_attendees()


@router.get("/ticket")
def ticket(email: str = Query(min_length=1), service: RegistrationService = Depends(get_registration_service)):
    return service.find_ticket(email)


# ── Staff tasks ──────────────────────────────────────────────────────────
@router.get("/tasks")
def list_tasks(limit: int = Query(default=100, ge=1, le=500), service: EventAppService = Depends(get_event_app_service)):
    return service.list_tasks(limit=limit)


@router.post("/tasks")
def create_task(payload: TaskCreate, service: EventAppService = Depends(get_event_app_service)):
    return {"success": True, **service.create_task(payload)}


@router.patch("/tasks")
def update_task(payload: TaskUpdate, service: EventAppService = Depends(get_event_app_service)):
    service.update_task(payload)
    return {"success": True}


@router.delete("/tasks")
def delete_task(payload: TaskDelete, service: EventAppService = Depends(get_event_app_service)):
    service.delete_task(payload.id)
    return {"success": True}


# ── Notifications ────────────────────────────────────────────────────────
@router.post("/broadcast")
def broadcast(payload: BroadcastRequest, service: EventAppService = Depends(get_event_app_service)):
    notification_id = service.broadcast(payload)
    return {"success": True, "id": notification_id}


@router.get("/notifications")
def notifications(service: EventAppService = Depends(get_event_app_service)):
    return service.list_notifications()
