from fastapi import APIRouter, Depends

from deps import get_verification_service
from schemas import SendVerificationRequest, VerifyCodeRequest, VerifyUserEmailRequest
from verification import VerificationService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/send-verification")
def send_verification(payload: SendVerificationRequest, service: VerificationService = Depends(get_verification_service)):
    service.send_verification(payload.email)
    return {"success": True, "message": "Verification code sent"}


@router.post("/verify-code")
def verify_code(payload: VerifyCodeRequest, service: VerificationService = Depends(get_verification_service)):
    service.verify_code(payload.email, payload.code)
    return {"success": True, "verified": True}


@router.post("/verify-user-email")
def verify_user_email(payload: VerifyUserEmailRequest, service: VerificationService = Depends(get_verification_service)):
    service.verify_user_email(payload.uid, payload.code)
    return {"success": True, "message": "Email verification status updated"}
