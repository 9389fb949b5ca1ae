from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ConfigurationError, DocumentNotFound
from .logging import logger
from .models import Document, DocumentChange, QuerySnapshot
from .settings import SUPPORTED_BACKENDS, Settings, get_settings

SnapshotCallback = Callable[[QuerySnapshot], None]
ErrorCallback = Callable[[Exception], None]


class ListenerRegistration:
    """
    Handle returned by DocumentStore.subscribe.

    unsubscribe() is idempotent; once it returns, the listener receives no
    further callbacks.
    """

    def __init__(self, release: Callable[["ListenerRegistration"], None]) -> None:
        self._release = release
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._release(self)


class _Listener:
    def __init__(
        self,
        collection: str,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        registration: ListenerRegistration,
    ) -> None:
        self.collection = collection
        self.order_by = order_by
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.registration = registration


# PUBLIC_INTERFACE
class DocumentStore(ABC):
    """
    Abstract contract for document store backends.

    Implementations assign document identifiers and creation timestamps,
    order query results, and fan out a fresh QuerySnapshot to every
    subscriber of a collection after each committed write. Listener callbacks
    are invoked while the store lock is held, so subscribers observe
    snapshots in commit order and must not block.
    """

    backend_name = "abstract"

    def __init__(self) -> None:
        self._lock = RLock()
        self._listeners: List[_Listener] = []

    # ---- contract ----
    @abstractmethod
    def _query(self, collection: str, order_by: str) -> List[Document]:
        """Return all documents of a collection, ordered by (order_by, id) ascending."""

    @abstractmethod
    def _insert(self, collection: str, doc: Document) -> None:
        """Persist a new document."""

    @abstractmethod
    def _patch(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        """Merge fields into an existing document. Return False if it does not exist."""

    @abstractmethod
    def _remove(self, collection: str, doc_id: str) -> bool:
        """Remove a document. Return False if it does not exist."""

    def readiness(self) -> bool:
        """Return True if the backend answers queries."""
        return True

    def close(self) -> None:
        """Release backend resources. Subscriptions are dropped."""
        with self._lock:
            for listener in list(self._listeners):
                listener.registration.active = False
            self._listeners.clear()

    # ---- public operations ----
    def subscribe(
        self,
        collection: str,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> ListenerRegistration:
        """
        Subscribe to an ordered query over a collection.

        The current contents are delivered immediately, then a complete
        snapshot after every insert/update/delete in that collection.
        Raises DocumentStoreError if the initial query fails.
        """
        with self._lock:
            documents = self._query(collection, order_by)
            registration = ListenerRegistration(self._release)
            self._listeners.append(_Listener(collection, order_by, on_snapshot, on_error, registration))
            changes = [DocumentChange("added", d.id) for d in documents]
            on_snapshot(QuerySnapshot(documents=documents, changes=changes))
            return registration

    def add(self, collection: str, data: Dict[str, Any]) -> Document:
        """Insert a document; the store assigns its id and created_at."""
        with self._lock:
            doc = Document(id=self._new_id(), created_at=self._now(), data=dict(data))
            self._insert(collection, doc)
            self._notify(collection, [DocumentChange("added", doc.id)])
            return doc

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Partially update a document. Raises DocumentNotFound if it is missing."""
        with self._lock:
            if not self._patch(collection, doc_id, dict(fields)):
                raise DocumentNotFound(collection, doc_id)
            self._notify(collection, [DocumentChange("modified", doc_id)])

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Raises DocumentNotFound if it is missing."""
        with self._lock:
            if not self._remove(collection, doc_id):
                raise DocumentNotFound(collection, doc_id)
            self._notify(collection, [DocumentChange("removed", doc_id)])

    # ---- internals ----
    def _new_id(self) -> str:
        return uuid.uuid4().hex

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _release(self, registration: ListenerRegistration) -> None:
        with self._lock:
            self._listeners = [l for l in self._listeners if l.registration is not registration]

    def _notify(self, collection: str, changes: List[DocumentChange]) -> None:
        # One query per distinct ordering; listeners of one collection usually share it.
        cache: Dict[str, List[Document]] = {}
        for listener in [l for l in self._listeners if l.collection == collection]:
            if not listener.registration.active:
                continue
            try:
                if listener.order_by not in cache:
                    cache[listener.order_by] = self._query(collection, listener.order_by)
            except Exception as exc:
                logger.error("Query for %s listener failed: %s", collection, exc)
                self._fail(listener, exc)
                continue
            try:
                listener.on_snapshot(QuerySnapshot(documents=list(cache[listener.order_by]), changes=changes))
            except Exception as exc:
                # The write is already committed.
                logger.exception("Dropping %s listener after a failed callback", collection)
                self._fail(listener, exc)

    def _fail(self, listener: _Listener, exc: Exception) -> None:
        """Deliver a terminal error to a listener and drop it."""
        listener.registration.unsubscribe()
        try:
            listener.on_error(exc)
        except Exception:
            logger.exception("Error callback of %s listener failed", listener.collection)


def _sort_key(order_by: str) -> Callable[[Document], Tuple[Any, str]]:
    def key(doc: Document) -> Tuple[Any, str]:
        value = doc.created_at if order_by == "created_at" else doc.data.get(order_by)
        # Missing values first, then values grouped by type, so mixed types never compare.
        if value is None:
            return ((0, "", ""), doc.id)
        if not isinstance(value, (str, int, float, datetime)):
            value = repr(value)
        return ((1, type(value).__name__, value), doc.id)

    return key


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe in-memory document store suitable for testing and default runtime.
    """

    backend_name = "memory"

    def __init__(self) -> None:
        super().__init__()
        self._collections: Dict[str, Dict[str, Document]] = {}

    def _query(self, collection: str, order_by: str) -> List[Document]:
        docs = self._collections.get(collection, {}).values()
        return sorted(docs, key=_sort_key(order_by))

    def _insert(self, collection: str, doc: Document) -> None:
        self._collections.setdefault(collection, {})[doc.id] = doc

    def _patch(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        docs = self._collections.get(collection, {})
        existing = docs.get(doc_id)
        if existing is None:
            return False
        docs[doc_id] = Document(id=existing.id, created_at=existing.created_at, data={**existing.data, **fields})
        return True

    def _remove(self, collection: str, doc_id: str) -> bool:
        return self._collections.get(collection, {}).pop(doc_id, None) is not None


# PUBLIC_INTERFACE
def get_document_store(settings: Optional[Settings] = None) -> DocumentStore:
    """
    Factory to return the configured document store based on settings.
    - memory: InMemoryDocumentStore
    - sqlite: SQLiteDocumentStore

    Raises:
        ConfigurationError if the backend is unsupported or cannot be opened.
    """
    settings = settings or get_settings()
    backend = settings.persistence_backend
    if backend not in SUPPORTED_BACKENDS:
        raise ConfigurationError(
            f"Unsupported PERSISTENCE_BACKEND '{backend}'. Use one of: {', '.join(SUPPORTED_BACKENDS)}."
        )
    if backend == "sqlite":
        from .db import SQLiteDocumentStore

        if not settings.sqlite_db_path:
            raise ConfigurationError("SQLITE_DB_PATH must be set when PERSISTENCE_BACKEND is 'sqlite'.")
        return SQLiteDocumentStore(settings.sqlite_db_path)
    return InMemoryDocumentStore()
