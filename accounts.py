"""Member accounts: signup, lookup, mailing-list filters and payment status."""
from typing import Optional

import structlog

from activities import ActivityLog
from database import DocumentStore, Snapshot
from errors import NotFound
from models import utcnow
from schemas import AccountCreate

logger = structlog.get_logger(__name__)

ACCOUNTS = "accounts"

_ORG_TYPE_ALIASES = {
    "mga": "MGA",
    "managing_general_agent": "MGA",
    "carrier": "carrier",
    "insurance_carrier": "carrier",
    "insurer": "carrier",
    "provider": "provider",
    "service_provider": "provider",
    "insurance_broker": "provider",
    "broker": "provider",
}


def normalize_org_type(value: Optional[str]) -> str:
    if not value:
        return "MGA"
    return _ORG_TYPE_ALIASES.get(value.lower(), value)


class AccountService:
    def __init__(self, store: DocumentStore, activities: ActivityLog):
        self.store = store
        self.activities = activities

    def get_account(self, account_id: str) -> dict:
        snapshot = self.store.get(ACCOUNTS, account_id)
        if snapshot is None:
            raise NotFound("Account not found")
        return snapshot.to_dict()

    def create_account(self, payload: AccountCreate) -> dict:
        now = utcnow()
        account_id = self.store.add(
            ACCOUNTS,
            {
                "email": payload.email,
                "organizationName": payload.organization_name,
                "organizationType": normalize_org_type(payload.organization_type),
                "accountAdministrator": {"name": payload.contact_name, "email": payload.email},
                "status": "pending",
                "paymentStatus": "unpaid",
                "emailVerified": False,
                "createdAt": now,
                "updatedAt": now,
            },
        )
        logger.info("account_created", account_id=account_id, organization=payload.organization_name)
        return self.get_account(account_id)

    def filter_accounts(self, organization_types: list[str], account_statuses: list[str]) -> list[dict]:
        accounts = []
        for snapshot in self.store.query(ACCOUNTS):
            account = {
                "id": snapshot.id,
                "email": snapshot.get("email") or snapshot.get("accountAdministrator.email") or "",
                "organizationName": snapshot.get("organizationName") or snapshot.get("displayName") or "",
                "organizationType": normalize_org_type(snapshot.get("organizationType")),
                "status": snapshot.get("status") or "pending",
                "contactName": snapshot.get("accountAdministrator.name") or snapshot.get("fullName") or "",
            }
            if not account["email"]:
                continue
            if organization_types and account["organizationType"] not in organization_types:
                continue
            if account_statuses and account["status"] not in account_statuses:
                continue
            accounts.append(account)
        logger.info("accounts_filtered", returned=len(accounts))
        return accounts

    def _payment_target(self, user_id: str) -> Optional[Snapshot]:
        account = self.store.get(ACCOUNTS, user_id)
        if account is not None:
            if account.get("redirectToOrg") and account.get("organizationId"):
                return self.store.get(ACCOUNTS, account.get("organizationId"))
            return account
        # Corporate accounts keep their users in a members sub-collection.
        for org in self.store.query(ACCOUNTS, where=[("membershipType", "==", "corporate")]):
            if self.store.first(f"{ACCOUNTS}/{org.id}/members", [("firebaseUid", "==", user_id)]):
                return org
        return None

    def apply_payment(
        self,
        user_id: str,
        payment_status: str,
        payment_method: str,
        payment_id: str,
        details: Optional[dict] = None,
    ) -> Optional[dict]:
        target = self._payment_target(user_id)
        if target is None:
            logger.warning("payment_account_not_found", user_id=user_id, payment_id=payment_id)
            return None

        old_status = target.get("status") or "pending"
        new_status = "approved" if payment_status == "paid" else payment_status
        now = utcnow()
        values = {
            "status": new_status,
            "paymentStatus": payment_status,
            "paymentMethod": payment_method,
            "paymentId": payment_id,
            "updatedAt": now,
        }
        if details:
            values["paymentDetails"] = {**details, "paymentTime": now}
        updated = self.store.update(ACCOUNTS, target.id, values)
        self.activities.log_account_activity(
            target.id,
            "status_change",
            f"Status changed to {new_status.replace('_', ' ').title()}",
            description=f"Changed from {old_status} to {new_status} via {payment_method}",
            performed_by_name=payment_method.title(),
            metadata={"oldStatus": old_status, "newStatus": new_status, "paymentId": payment_id},
        )
        logger.info("account_payment_applied", account_id=target.id, status=new_status, payment_id=payment_id)
        return updated.to_dict()
