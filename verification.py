"""E-mail verification codes: one active 6-digit code per address, 20 minute TTL."""
import random
from datetime import datetime, timedelta
from typing import Optional

import structlog

from accounts import ACCOUNTS
from database import DocumentStore
from emailer import Mailer, verification_message
from errors import InvalidArgument, NotFound
from models import utcnow

logger = structlog.get_logger(__name__)

VERIFICATION_CODES = "verification_codes"
CODE_TTL = timedelta(minutes=20)


def generate_code(rng: random.Random) -> str:
    return str(rng.randint(100000, 999999))


class VerificationService:
    def __init__(self, store: DocumentStore, mailer: Optional[Mailer] = None, rng: Optional[random.Random] = None):
        self.store = store
        self.mailer = mailer
        self.rng = rng or random.SystemRandom()

    def send_verification(self, email: str) -> str:
        email = (email or "").strip()
        if "@" not in email:
            raise InvalidArgument("Valid email address is required")

        code = generate_code(self.rng)
        now = utcnow()
        self.store.set(
            VERIFICATION_CODES,
            email.lower(),
            {"email": email, "code": code, "createdAt": now, "expiresAt": now + CODE_TTL, "used": False},
        )

        # The code stays valid even if dispatch fails, so it can be resent by hand.
        if self.mailer is None:
            logger.warning("verification_mail_skipped", email=email, reason="no mailer")
            return code
        subject, body = verification_message(code)
        try:
            self.mailer.send(to_addrs=[email], subject=subject, body=body)
        except Exception:
            logger.warning("verification_mail_failed", email=email, exc_info=True)
        return code

    def verify_code(self, email: str, code: str) -> None:
        key = (email or "").strip().lower()
        snapshot = self.store.get(VERIFICATION_CODES, key)
        if snapshot is None:
            raise InvalidArgument("No verification code found")
        if snapshot.get("code") != code:
            raise InvalidArgument("Invalid verification code")
        if snapshot.get("used"):
            raise InvalidArgument("Code already used")
        expires_at = snapshot.get("expiresAt")
        if not expires_at or datetime.fromisoformat(expires_at) < utcnow():
            raise InvalidArgument("Verification code expired")

        # Versioned write: a concurrent second use of the same code loses.
        self.store.update(VERIFICATION_CODES, key, {"used": True, "usedAt": utcnow()}, expected_version=snapshot.version)
        logger.info("verification_code_consumed", email=key)

    def verify_user_email(self, uid: str, code: str) -> dict:
        account = self.store.get(ACCOUNTS, uid)
        if account is None:
            raise NotFound("Account not found")
        email = account.get("email") or account.get("accountAdministrator.email")
        if not email:
            raise InvalidArgument("Account has no email address")
        self.verify_code(email, code)
        updated = self.store.update(ACCOUNTS, uid, {"emailVerified": True, "updatedAt": utcnow()})
        logger.info("account_email_verified", account_id=uid)
        return updated.to_dict()
