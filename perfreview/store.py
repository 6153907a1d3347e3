"""
Document Store

Narrow persistence interface used by every service: documents are
JSON-safe dicts addressed by (collection, id). Two implementations:

- InMemoryDocumentStore: process-local, used in tests and embedding
- SqlDocumentStore: SQLAlchemy-backed, one row per document
"""
import copy
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from perfreview.core.exceptions import NotFoundError, StoreError, ValidationError
from perfreview.database import SessionLocal
from perfreview.models.document import StoredDocument

logger = logging.getLogger(__name__)

REVIEW_CYCLES = "reviewCycles"
REVIEWS = "reviews"
USERS = "users"

Document = Dict[str, Any]
Filter = Tuple[str, str, Any]
Ordering = Tuple[str, str]
# Receives the current document, returns the fields to merge into it
Change = Callable[[Document], Document]

FILTER_OPS = ("==", "!=", "in", "array-contains")


class DocumentStore(Protocol):
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    def put(self, collection: str, doc_id: str, document: Document) -> None:
        ...

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        ...

    def modify(self, collection: str, doc_id: str, change: Change) -> Document:
        ...
        """Read, change and write one document atomically; returns the stored result."""

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[Ordering]] = None,
    ) -> List[Document]:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...


def _matches(document: Document, filters: Sequence[Filter]) -> bool:
    for field, op, value in filters:
        current = document.get(field)
        if op == "==":
            if current != value:
                return False
        elif op == "!=":
            if current == value:
                return False
        elif op == "in":
            if current not in value:
                return False
        elif op == "array-contains":
            if not isinstance(current, list) or value not in current:
                return False
    return True


def _check_query(filters: Sequence[Filter], order_by: Sequence[Ordering]) -> None:
    for _, op, _ in filters:
        if op not in FILTER_OPS:
            raise ValidationError(f"Unsupported filter operator: {op}")
    for _, direction in order_by:
        if direction not in ("asc", "desc"):
            raise ValidationError(f"Unsupported sort direction: {direction}")


def _sort(documents: List[Document], order_by: Sequence[Ordering]) -> List[Document]:
    # Apply keys last-to-first; list.sort is stable. Missing values sort last.
    for field, direction in reversed(order_by):
        present = [d for d in documents if d.get(field) is not None]
        missing = [d for d in documents if d.get(field) is None]
        present.sort(key=lambda d: d[field], reverse=(direction == "desc"))
        documents = present + missing
    return documents


def apply_query(
    documents: List[Document],
    filters: Optional[Sequence[Filter]] = None,
    order_by: Optional[Sequence[Ordering]] = None,
) -> List[Document]:
    filters = list(filters or [])
    order_by = list(order_by or [])
    _check_query(filters, order_by)
    selected = [d for d in documents if _matches(d, filters)]
    return _sort(selected, order_by)


class InMemoryDocumentStore:
    """Dict-of-dicts store. Every read and write copies, so callers never share state."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = threading.Lock()

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            document = self._collections.get(collection, {}).get(doc_id)
            if document is None:
                return None
            return {**copy.deepcopy(document), "id": doc_id}

    def put(self, collection: str, doc_id: str, document: Document) -> None:
        data = {k: v for k, v in document.items() if k != "id"}
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        with self._lock:
            existing = self._collections.get(collection, {}).get(doc_id)
            if existing is None:
                raise NotFoundError(collection, doc_id)
            existing.update(copy.deepcopy({k: v for k, v in fields.items() if k != "id"}))

    def modify(self, collection: str, doc_id: str, change: Change) -> Document:
        with self._lock:
            existing = self._collections.get(collection, {}).get(doc_id)
            if existing is None:
                raise NotFoundError(collection, doc_id)
            fields = change({**copy.deepcopy(existing), "id": doc_id})
            existing.update(copy.deepcopy({k: v for k, v in fields.items() if k != "id"}))
            return {**copy.deepcopy(existing), "id": doc_id}

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[Ordering]] = None,
    ) -> List[Document]:
        with self._lock:
            documents = [
                {**copy.deepcopy(data), "id": doc_id}
                for doc_id, data in self._collections.get(collection, {}).items()
            ]
        return apply_query(documents, filters, order_by)

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)


class SqlDocumentStore:
    """
    Documents persisted through SQLAlchemy in the `documents` table.

    Each call runs in its own session and transaction. `update` and `modify` read,
    merge and write the row inside one transaction (row-locked where the backend
    supports SELECT ... FOR UPDATE). Filtering and ordering run in Python
    after loading the collection.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or SessionLocal

    def _run(self, action: str, collection: str, work: Callable[[Session], Any]) -> Any:
        db = self._session_factory()
        try:
            result = work(db)
            db.commit()
            return result
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Document store {action} failed on {collection}: {e}")
            raise StoreError(
                f"Document store {action} failed",
                details={"collection": collection, "error": str(e)}
            ) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _to_document(row: StoredDocument) -> Document:
        return {**copy.deepcopy(row.data or {}), "id": row.doc_id}

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        def work(db: Session):
            row = db.get(StoredDocument, (collection, doc_id))
            return self._to_document(row) if row is not None else None
        return self._run("get", collection, work)

    def put(self, collection: str, doc_id: str, document: Document) -> None:
        data = {k: v for k, v in document.items() if k != "id"}

        def work(db: Session):
            row = db.get(StoredDocument, (collection, doc_id))
            if row is None:
                db.add(StoredDocument(collection=collection, doc_id=doc_id, data=data))
            else:
                row.data = data
        self._run("put", collection, work)

    @staticmethod
    def _locked_row(db: Session, collection: str, doc_id: str) -> StoredDocument:
        row = (
            db.query(StoredDocument)
            .filter(StoredDocument.collection == collection, StoredDocument.doc_id == doc_id)
            .with_for_update()
            .first()
        )
        if row is None:
            raise NotFoundError(collection, doc_id)
        return row

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        changes = {k: v for k, v in fields.items() if k != "id"}

        def work(db: Session):
            row = self._locked_row(db, collection, doc_id)
            # Assign a new dict so the JSON column is flagged as modified
            row.data = {**(row.data or {}), **changes}
        self._run("update", collection, work)

    def modify(self, collection: str, doc_id: str, change: Change) -> Document:
        def work(db: Session):
            row = self._locked_row(db, collection, doc_id)
            fields = change(self._to_document(row))
            row.data = {**(row.data or {}), **{k: v for k, v in fields.items() if k != "id"}}
            return self._to_document(row)
        return self._run("modify", collection, work)

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[Ordering]] = None,
    ) -> List[Document]:
        def work(db: Session):
            rows = db.query(StoredDocument).filter(StoredDocument.collection == collection).all()
            return [self._to_document(row) for row in rows]
        return apply_query(self._run("query", collection, work), filters, order_by)

    def delete(self, collection: str, doc_id: str) -> None:
        def work(db: Session):
            row = db.get(StoredDocument, (collection, doc_id))
            if row is not None:
                db.delete(row)
        self._run("delete", collection, work)
