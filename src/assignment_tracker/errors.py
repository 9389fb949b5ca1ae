from __future__ import annotations


class TrackerError(Exception):
    """Base class for errors raised by the assignment tracker."""


class ConfigurationError(TrackerError):
    """
    The document store is unreachable or misconfigured.

    Reported once as a persistent banner; every data operation is disabled
    while it stands.
    """


# PUBLIC_INTERFACE
class OperationError(TrackerError):
    """
    A single insert/update/delete request failed in the document store.

    Attributes:
        action: 'create', 'update' or 'delete'.
        message: User-facing text for the transient notification.
    """

    def __init__(self, action: str, message: str) -> None:
        super().__init__(message)
        self.action = action
        self.message = message


class AssignmentNotFound(TrackerError):
    """No assignment with the requested identifier exists in the collection."""

    def __init__(self, assignment_id: str) -> None:
        super().__init__(f"Assignment {assignment_id} not found")
        self.assignment_id = assignment_id


class DocumentStoreError(TrackerError):
    """Backend failure reported by a document store."""


class DocumentNotFound(DocumentStoreError):
    """The addressed document does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id
