from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("collection", "doc_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    # Slash-separated path, e.g. "accounts" or "accounts/abc123/activities"
    collection: str = Field(index=True)
    doc_id: str = Field(index=True)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
