"""Append-only audit trail for payments and accounts."""
from typing import Any, Optional

import structlog

from database import DocumentStore
from models import utcnow

logger = structlog.get_logger(__name__)

PAYMENT_ACTIVITIES = "payment_activities"


def payment_key(source: str, transaction_id: str) -> str:
    return f"{source}_{transaction_id}"


def account_activities(account_id: str) -> str:
    return f"accounts/{account_id}/activities"


class ActivityLog:
    def __init__(self, store: DocumentStore):
        self.store = store

    def log_activity(
        self,
        key: str,
        type: str,
        title: str,
        description: str = "",
        performed_by: str = "system",
        performed_by_name: str = "System",
        metadata: Optional[dict[str, Any]] = None,
        source: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> str:
        """Append one activity under ``key``; the document is written in a single insert."""
        activity_id = self.store.add(
            PAYMENT_ACTIVITIES,
            {
                "paymentKey": key,
                "source": source,
                "transactionId": transaction_id,
                "type": type,
                "title": title,
                "description": description,
                "performedBy": performed_by,
                "performedByName": performed_by_name,
                "metadata": metadata or {},
                "createdAt": utcnow(),
            },
        )
        logger.info("activity_logged", payment_key=key, type=type, activity_id=activity_id)
        return activity_id

    def list_activities(self, key: str, limit: int = 50) -> list[dict]:
        found = self.store.query(
            PAYMENT_ACTIVITIES,
            where=[("paymentKey", "==", key)],
            order_by="createdAt",
            descending=True,
            limit=limit,
        )
        return [snapshot.to_dict() for snapshot in found]

    def log_account_activity(
        self,
        account_id: str,
        type: str,
        title: str,
        description: str = "",
        performed_by: str = "system",
        performed_by_name: str = "System",
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        activity_id = self.store.add(
            account_activities(account_id),
            {
                "accountId": account_id,
                "type": type,
                "title": title,
                "description": description,
                "performedBy": performed_by,
                "performedByName": performed_by_name,
                "metadata": metadata or {},
                "createdAt": utcnow(),
            },
        )
        logger.info("account_activity_logged", account_id=account_id, type=type)
        return activity_id

    def list_account_activities(self, account_id: str, limit: int = 50) -> list[dict]:
        found = self.store.query(account_activities(account_id), order_by="createdAt", descending=True, limit=limit)
        return [snapshot.to_dict() for snapshot in found]
