"""Document store backed by a single SQL table.

Every document lives in the ``document`` table keyed by ``(collection, doc_id)``
with its body in a JSON column. Collections are slash-separated paths, so
``accounts/abc123/activities`` is a sub-collection of the ``accounts/abc123``
document. Each write bumps ``version``; ``update`` can be made conditional on
the version the caller read, which is how check-in latches exactly once.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

import structlog
from fastapi.encoders import jsonable_encoder
from sqlalchemy import update as sa_update
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from errors import NotFound, WriteConflict
from models import Document, utcnow

logger = structlog.get_logger(__name__)

Filter = tuple[str, str, Any]


def make_engine(database_url: str):
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def init_db(engine) -> None:
    SQLModel.metadata.create_all(bind=engine)


@dataclass(frozen=True)
class Snapshot:
    id: str
    data: dict = field(default_factory=dict)
    version: int = 1

    def get(self, path: str, default: Any = None) -> Any:
        return lookup(self.data, path, default)

    def to_dict(self) -> dict:
        return {"id": self.id, **self.data}


def lookup(data: dict, path: str, default: Any = None) -> Any:
    """Resolve a dotted path such as ``billingInfo.company``."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def _matches(data: dict, filters: Iterable[Filter]) -> bool:
    for path, op, value in filters:
        actual = lookup(data, path)
        if op == "==":
            if actual != value:
                return False
        elif op == "!=":
            if actual == value:
                return False
        elif op == "in":
            if actual not in value:
                return False
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return True


def _sort_key(value: Any):
    # Values of different types never compare with each other; group them by type.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return ("number", value)
    return (type(value).__name__, value)


def _snapshot(row: Document) -> Snapshot:
    return Snapshot(id=row.doc_id, data=dict(row.data or {}), version=row.version)


class DocumentStore:
    def __init__(self, engine):
        self.engine = engine

    def _row(self, session: Session, collection: str, doc_id: str) -> Optional[Document]:
        stmt = select(Document).where(Document.collection == collection, Document.doc_id == doc_id)
        return session.exec(stmt).first()

    def get(self, collection: str, doc_id: str) -> Optional[Snapshot]:
        with Session(self.engine) as session:
            row = self._row(session, collection, doc_id)
            return _snapshot(row) if row else None

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict) -> Snapshot:
        """Create the document or overwrite it entirely."""
        encoded = jsonable_encoder(data)
        with Session(self.engine) as session:
            row = self._row(session, collection, doc_id)
            if row is None:
                row = Document(collection=collection, doc_id=doc_id, data=encoded)
            else:
                row.data = encoded
                row.version += 1
                row.updated_at = utcnow()
            session.add(row)
            session.commit()
            session.refresh(row)
            return _snapshot(row)

    def update(
        self,
        collection: str,
        doc_id: str,
        values: dict,
        expected_version: Optional[int] = None,
    ) -> Snapshot:
        """Shallow-merge ``values`` into an existing document.

        With ``expected_version`` the write only applies if nobody wrote the
        document since it was read; otherwise ``WriteConflict`` is raised.
        """
        encoded = jsonable_encoder(values)
        with Session(self.engine) as session:
            row = self._row(session, collection, doc_id)
            if row is None:
                raise NotFound(f"Document {collection}/{doc_id} not found")
            read_version = row.version if expected_version is None else expected_version
            merged = {**(row.data or {}), **encoded}
            stmt = (
                sa_update(Document)
                .where(Document.id == row.id, Document.version == read_version)
                .values(data=merged, version=read_version + 1, updated_at=utcnow())
            )
            result = session.connection().execute(stmt)
            if result.rowcount != 1:
                session.rollback()
                logger.info("write_conflict", collection=collection, doc_id=doc_id, expected_version=read_version)
                raise WriteConflict(f"Document {collection}/{doc_id} was modified concurrently")
            session.commit()
            return Snapshot(id=doc_id, data=merged, version=read_version + 1)

    def delete(self, collection: str, doc_id: str) -> bool:
        with Session(self.engine) as session:
            row = self._row(session, collection, doc_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def query(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Snapshot]:
        with Session(self.engine) as session:
            rows = session.exec(select(Document).where(Document.collection == collection).order_by(Document.id)).all()
        snapshots = [_snapshot(row) for row in rows if _matches(row.data or {}, where)]
        if order_by:
            present = [s for s in snapshots if s.get(order_by) is not None]
            missing = [s for s in snapshots if s.get(order_by) is None]
            present.sort(key=lambda s: _sort_key(s.get(order_by)), reverse=descending)
            snapshots = present + missing
        if limit is not None:
            snapshots = snapshots[:limit]
        return snapshots

    def first(self, collection: str, where: Sequence[Filter]) -> Optional[Snapshot]:
        found = self.query(collection, where, limit=1)
        return found[0] if found else None

    def list_collections(self, parent_path: Optional[str] = None) -> list[str]:
        with Session(self.engine) as session:
            paths = session.exec(select(Document.collection).distinct()).all()
        if not parent_path:
            return sorted({path.split("/", 1)[0] for path in paths})
        prefix = parent_path.strip("/") + "/"
        names = set()
        for path in paths:
            if path.startswith(prefix):
                rest = path[len(prefix):]
                if rest and "/" not in rest:
                    names.add(rest)
        return sorted(names)
