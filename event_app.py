"""Event-day back office: staff tasks and broadcast notifications."""
import structlog

from database import DocumentStore
from errors import NotFound
from models import utcnow
from schemas import BroadcastRequest, TaskCreate, TaskUpdate

logger = structlog.get_logger(__name__)

TASKS = "event-tasks"
NOTIFICATIONS = "event-notifications"


class EventAppService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def list_tasks(self, limit: int = 100) -> list[dict]:
        found = self.store.query(TASKS, order_by="createdAt", descending=True, limit=limit)
        return [snapshot.to_dict() for snapshot in found]

    def create_task(self, payload: TaskCreate) -> dict:
        now = utcnow()
        task = {
            "title": payload.title,
            "description": payload.description,
            "assignee": payload.assignee,
            "priority": payload.priority.value,
            "status": "todo",
            "dueDate": payload.due_date,
            "createdBy": payload.created_by,
            "createdAt": now,
            "updatedAt": now,
        }
        task_id = self.store.add(TASKS, task)
        logger.info("task_created", task_id=task_id, title=payload.title)
        return self.store.get(TASKS, task_id).to_dict()

    def update_task(self, payload: TaskUpdate) -> dict:
        # Only fields the caller actually sent are applied.
        changes = payload.model_dump(by_alias=True, exclude={"id"}, exclude_unset=True, mode="json")
        if self.store.get(TASKS, payload.id) is None:
            raise NotFound("Task not found")
        updated = self.store.update(TASKS, payload.id, {**changes, "updatedAt": utcnow()})
        logger.info("task_updated", task_id=payload.id, fields=sorted(changes))
        return updated.to_dict()

    def delete_task(self, task_id: str) -> None:
        if not self.store.delete(TASKS, task_id):
            raise NotFound("Task not found")
        logger.info("task_deleted", task_id=task_id)

    def broadcast(self, payload: BroadcastRequest, sent_by: str = "admin") -> str:
        notification_id = self.store.add(
            NOTIFICATIONS,
            {
                "title": payload.title,
                "body": payload.body,
                "sentAt": utcnow(),
                "sentBy": sent_by,
                "recipientCount": 0,
            },
        )
        logger.info("notification_broadcast", notification_id=notification_id, title=payload.title)
        return notification_id

    def list_notifications(self, limit: int = 50) -> list[dict]:
        found = self.store.query(NOTIFICATIONS, order_by="sentAt", descending=True, limit=limit)
        return [snapshot.to_dict() for snapshot in found]
