from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, TypedDict

COLLECTION = "assignments"

COURSES: List[str] = [
    "English I",
    "English II",
    "English III",
    "English IV",
    "Algebra I",
    "Geometry",
    "Algebra II",
    "Pre-Calculus",
    "Calculus AB",
    "Calculus BC",
    "Statistics",
    "Biology",
    "Chemistry",
    "Physics",
    "Anatomy & Physiology",
    "World History",
    "US History",
    "Government",
    "Economics",
    "Spanish I",
    "Spanish II",
    "French I",
    "French II",
    "Computer Science A",
    "Art I",
    "Theatre Arts",
    "Band",
    "Health",
    "PE",
    "Psychology",
]


# PUBLIC_INTERFACE
class AssignmentDocument(TypedDict):
    """
    Field layout of an assignment as written to the document store.

    The identifier is not part of the data; the store assigns it and keeps it
    on the Document. created_at is filled in by the store on insert.

    Fields:
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - course: One of COURSES
    - description: Free text, empty when not given
    - due_date: ISO date string 'YYYY-MM-DD' (sorts in calendar order)
    - priority: 'low' | 'medium' | 'high'
    - completed: Boolean completion flag
    """

    title: str
    course: str
    description: str
    due_date: str
    priority: str
    completed: bool


ChangeType = Literal["added", "modified", "removed"]


@dataclass(frozen=True)
class Document:
    """A stored document: store-assigned id, creation timestamp and data."""

    id: str
    created_at: datetime
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {**self.data, "id": self.id, "created_at": self.created_at}


@dataclass(frozen=True)
class DocumentChange:
    """One added/modified/removed document that produced a query snapshot."""

    type: ChangeType
    doc_id: str


@dataclass(frozen=True)
class QuerySnapshot:
    """Complete, ordered materialization of a query at one point in time."""

    documents: List[Document]
    changes: List[DocumentChange] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.documents)

    @property
    def empty(self) -> bool:
        return not self.documents
