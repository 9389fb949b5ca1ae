from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import COURSES

# Shared type for incoming due_date which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Urgency(str, Enum):
    OVERDUE = "Overdue"
    DUE_TODAY = "Due Today"
    DUE_TOMORROW = "Due Tomorrow"
    DUE_SOON = "Due Soon"


class ListState(str, Enum):
    LOADING = "loading"
    ERROR = "error"
    EMPTY = "empty"
    NO_MATCH = "no_match"
    READY = "ready"


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[date]:
    """
    Internal helper to normalize due_date input into a calendar date.
    - If value is a string, accept 'YYYY-MM-DD' or a full ISO datetime (time is dropped).
    - If value is a datetime, keep its date part.
    - If value is a date, return as-is.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            return date.fromisoformat(s)
        except ValueError:
            try:
                return datetime.fromisoformat(s).date()
            except ValueError as e:
                raise ValueError(
                    "Invalid due_date format. Use an ISO8601 date (e.g., '2025-01-31')."
                ) from e

    raise ValueError("Invalid type for due_date; expected date, datetime, or ISO8601 string.")


# PUBLIC_INTERFACE
class AssignmentDraft(BaseModel):
    """
    Schema for creating a new assignment.

    title, course and due_date are required; a request missing any of them is
    rejected here, before the document store is ever called.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Lab report: titration",
                "course": "Chemistry",
                "description": "Include error analysis",
                "due_date": "2025-02-01",
                "priority": "high",
            }
        }
    )

    title: str = Field(..., description="Short title of the assignment, 1 to 200 characters after trimming")
    course: str = Field(..., description="Course the assignment belongs to")
    description: Optional[str] = Field(default="", description="Optional details")
    due_date: date = Field(..., description="Due date (ISO8601 date)")
    priority: Priority = Field(default=Priority.MEDIUM, description="low, medium or high")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        s = v.strip()
        if not (1 <= len(s) <= 200):
            raise ValueError("title length must be between 1 and 200 characters")
        return s

    @field_validator("course")
    @classmethod
    def validate_course(cls, v: str) -> str:
        if v not in COURSES:
            raise ValueError("course must be one of the known courses")
        return v

    @field_validator("description")
    @classmethod
    def normalize_description(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[date]:
        """
        Normalize due_date from str/date/datetime to date.
        """
        return _parse_due_date(v)


# PUBLIC_INTERFACE
class CompletedUpdate(BaseModel):
    """Whole-field replacement of the completed flag."""

    model_config = ConfigDict(json_schema_extra={"example": {"completed": True}})

    completed: bool = Field(..., description="New completion status")


# PUBLIC_INTERFACE
class Assignment(BaseModel):
    """
    An assignment as published in store snapshots.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Store-assigned identifier")
    title: str = Field(..., description="Short title of the assignment")
    course: str = Field(..., description="Course the assignment belongs to")
    description: str = Field(default="", description="Optional details")
    due_date: date = Field(..., description="Due date")
    priority: Priority = Field(default=Priority.MEDIUM, description="low, medium or high")
    completed: bool = Field(default=False, description="Completion status flag")
    created_at: datetime = Field(..., description="Creation timestamp set by the store")

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[date]:
        return _parse_due_date(v)


class StoreSnapshot(BaseModel):
    """
    Published state of the assignment store. Always replaced as a whole.

    status is 'loading' until the first snapshot arrives and 'error' once the
    subscription has failed.
    """

    model_config = ConfigDict(frozen=True)

    status: Literal["loading", "ready", "error"] = "loading"
    assignments: List[Assignment] = Field(default_factory=list)
    error: Optional[str] = None
    version: int = 0


# PUBLIC_INTERFACE
class MutationResult(BaseModel):
    """
    Acknowledgement of a mutation request. The new state itself arrives
    through the subscription, never through this response.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "4f6c0a1e2b8d4c0f9a3e5d7b1c2a3f4e",
                "title": "Success!",
                "message": "Assignment added successfully.",
            }
        }
    )

    id: str = Field(..., description="Identifier of the affected assignment")
    title: str = Field(..., description="Notification title")
    message: str = Field(..., description="Notification text")


class AssignmentItem(Assignment):
    """An assignment together with its derived display fields."""

    urgency: Optional[Urgency] = Field(default=None, description="Urgency badge, if any")
    days_until_due: int = Field(..., description="Signed days until the due date")
    due_label: str = Field(..., description="e.g. '3 days left' or '2 days overdue'")


# PUBLIC_INTERFACE
class ListView(BaseModel):
    """
    The rendered assignment list for one (snapshot, course, show_completed) triple.
    """

    state: ListState = Field(..., description="loading, error, empty, no_match or ready")
    banner: Optional[str] = Field(default=None, description="Persistent error banner text")
    selected_course: str = Field(default="all", description="Course filter applied")
    show_completed: bool = Field(default=True, description="Whether completed items are kept")
    total: int = Field(..., description="Number of assignments in the snapshot")
    count: int = Field(..., description="Number of assignments after filtering")
    count_label: str = Field(..., description="e.g. '1 assignment' or '4 assignments'")
    empty_message: Optional[str] = Field(default=None, description="Message shown when nothing is listed")
    items: List[AssignmentItem] = Field(default_factory=list)


class ViewFilters(BaseModel):
    """Filter message a live client sends over the stream."""

    course: str = Field(default="all")
    show_completed: bool = Field(default=True)
    today: Optional[date] = Field(default=None, description="Viewer's local date; urgency is computed against it")
