from __future__ import annotations

from threading import RLock
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from .documents import DocumentStore, ListenerRegistration
from .errors import AssignmentNotFound, DocumentNotFound, DocumentStoreError, OperationError
from .logging import logger
from .models import COLLECTION, AssignmentDocument, QuerySnapshot
from .schemas import Assignment, AssignmentDraft, MutationResult, StoreSnapshot

SnapshotListener = Callable[[StoreSnapshot], None]

ORDER_BY = "due_date"

SUBSCRIPTION_ERROR = "Failed to connect to database. Please check your configuration."
INITIALIZATION_ERROR = "Failed to initialize database connection."


# PUBLIC_INTERFACE
class AssignmentStore:
    """
    Live view over the assignments collection.

    open() subscribes to the collection ordered by due date; every change
    reported by the document store is turned into a complete StoreSnapshot
    that replaces the previous one and is pushed to all listeners. A
    subscription error publishes an error snapshot and ends the subscription
    for good. close() releases it.

    Mutations go straight to the document store and never touch the published
    snapshot; their effect is observed only through the subscription.
    """

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents
        self._lock = RLock()
        self._registration: Optional[ListenerRegistration] = None
        self._released = False
        self._listeners: List[SnapshotListener] = []
        self._snapshot = StoreSnapshot()

    @property
    def documents(self) -> DocumentStore:
        return self._documents

    @property
    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    @property
    def is_open(self) -> bool:
        return self._registration is not None and self._registration.active

    # ---- lifecycle ----
    def open(self) -> None:
        """Open the subscription. Does nothing if it is already open, released or failed."""
        if self._registration is not None or self._released or self._snapshot.status == "error":
            return
        try:
            registration = self._documents.subscribe(COLLECTION, ORDER_BY, self._on_snapshot, self._on_error)
        except DocumentStoreError as exc:
            logger.error("Error setting up assignments listener: %s", exc)
            with self._lock:
                self._publish(status="error", assignments=[], error=INITIALIZATION_ERROR)
            return
        self._registration = registration
        logger.info("Subscribed to %s ordered by %s", COLLECTION, ORDER_BY)

    def close(self) -> None:
        """Release the subscription; no callbacks are delivered afterwards."""
        self._released = True
        registration, self._registration = self._registration, None
        if registration is None:
            return
        registration.unsubscribe()
        logger.info("Released %s subscription", COLLECTION)

    # ---- listeners ----
    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """
        Register a listener and deliver the current snapshot to it right away.

        Listeners run on whichever thread committed the change and must not
        block; one that raises is removed. Returns a callable that removes the
        listener.
        """
        with self._lock:
            listener(self._snapshot)
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _on_snapshot(self, query: QuerySnapshot) -> None:
        assignments = []
        for doc in query.documents:
            try:
                assignments.append(Assignment.model_validate(doc.to_dict()))
            except ValidationError as exc:
                logger.warning("Skipping malformed assignment %s: %s", doc.id, exc.errors())
        with self._lock:
            if self._released or self._snapshot.status == "error":
                return
            logger.debug("Snapshot with %d assignments (%d changes)", len(assignments), len(query.changes))
            self._publish(status="ready", assignments=assignments, error=None)

    def _on_error(self, exc: Exception) -> None:
        logger.error("Assignments listener error: %s", exc)
        registration, self._registration = self._registration, None
        if registration is not None:
            registration.unsubscribe()
        with self._lock:
            self._publish(status="error", assignments=self._snapshot.assignments, error=SUBSCRIPTION_ERROR)

    def _publish(self, status: str, assignments: List[Assignment], error: Optional[str]) -> None:
        self._snapshot = StoreSnapshot(
            status=status,
            assignments=assignments,
            error=error,
            version=self._snapshot.version + 1,
        )
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception:
                logger.exception("Removing snapshot listener that failed on version %d", self._snapshot.version)
                self._listeners.remove(listener)

    # ---- mutations ----
    def create(self, draft: AssignmentDraft) -> MutationResult:
        """Insert a new assignment. The store assigns its id and created_at."""
        data: AssignmentDocument = {
            "title": draft.title,
            "course": draft.course,
            "description": draft.description or "",
            "due_date": draft.due_date.isoformat(),
            "priority": draft.priority.value,
            "completed": False,
        }
        try:
            doc = self._documents.add(COLLECTION, dict(data))
        except DocumentStoreError as exc:
            logger.error("Error adding assignment: %s", exc)
            raise OperationError("create", "Failed to add assignment. Please try again.") from exc
        logger.info("Added assignment %s", doc.id)
        return MutationResult(id=doc.id, title="Success!", message="Assignment added successfully.")

    def set_completed(self, assignment_id: str, completed: bool) -> MutationResult:
        """Replace the completed flag of one assignment."""
        try:
            self._documents.update(COLLECTION, assignment_id, {"completed": completed})
        except DocumentNotFound as exc:
            raise AssignmentNotFound(assignment_id) from exc
        except DocumentStoreError as exc:
            logger.error("Error updating assignment %s: %s", assignment_id, exc)
            raise OperationError("update", "Failed to update assignment.") from exc

        current = self._find(assignment_id)
        title = current.title if current else "Assignment"
        return MutationResult(
            id=assignment_id,
            title="Assignment completed!" if completed else "Assignment marked incomplete",
            message=f"{title} has been updated.",
        )

    def toggle_completed(self, assignment_id: str) -> MutationResult:
        """Flip completed, starting from the value in the current snapshot."""
        current = self._find(assignment_id)
        if current is None:
            raise AssignmentNotFound(assignment_id)
        return self.set_completed(assignment_id, not current.completed)

    def delete(self, assignment_id: str) -> MutationResult:
        """Remove one assignment."""
        try:
            self._documents.delete(COLLECTION, assignment_id)
        except DocumentNotFound as exc:
            raise AssignmentNotFound(assignment_id) from exc
        except DocumentStoreError as exc:
            logger.error("Error deleting assignment %s: %s", assignment_id, exc)
            raise OperationError("delete", "Failed to delete assignment.") from exc
        logger.info("Deleted assignment %s", assignment_id)
        return MutationResult(id=assignment_id, title="Assignment deleted", message="Assignment has been removed.")

    def _find(self, assignment_id: str) -> Optional[Assignment]:
        by_id: Dict[str, Assignment] = {a.id: a for a in self._snapshot.assignments}
        return by_id.get(assignment_id)
