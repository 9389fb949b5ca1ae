from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from .schemas import Assignment, AssignmentItem, ListState, ListView, StoreSnapshot, Urgency

ALL_COURSES = "all"

EMPTY_MESSAGE = "Get started by adding your first assignment!"
NO_MATCH_MESSAGE = "No assignments match your current filters."


# PUBLIC_INTERFACE
def filter_assignments(
    assignments: Iterable[Assignment],
    selected_course: str = ALL_COURSES,
    show_completed: bool = True,
) -> List[Assignment]:
    """
    Keep assignments of the selected course ("all" matches every course) and,
    unless show_completed is set, drop the completed ones. Order is preserved.
    """
    filtered = list(assignments)
    if selected_course and selected_course != ALL_COURSES:
        filtered = [a for a in filtered if a.course == selected_course]
    if not show_completed:
        filtered = [a for a in filtered if not a.completed]
    return filtered


def days_until_due(due_date: date, today: Optional[date] = None) -> int:
    """Signed number of calendar days from today to the due date."""
    today = today or date.today()
    return (due_date - today).days


# PUBLIC_INTERFACE
def urgency_badge(due_date: date, completed: bool, today: Optional[date] = None) -> Optional[Urgency]:
    """
    Classify how close an open assignment is to its due date.

    Completed assignments never get a badge. Otherwise: past due is Overdue,
    0 days is Due Today, 1 day is Due Tomorrow, 2 or 3 days is Due Soon, and
    anything further out gets no badge.
    """
    if completed:
        return None
    days = days_until_due(due_date, today)
    if days < 0:
        return Urgency.OVERDUE
    if days == 0:
        return Urgency.DUE_TODAY
    if days == 1:
        return Urgency.DUE_TOMORROW
    if days <= 3:
        return Urgency.DUE_SOON
    return None


def due_label(days: int) -> str:
    if days >= 0:
        return f"{days} day left" if days == 1 else f"{days} days left"
    overdue = abs(days)
    return f"{overdue} day overdue" if overdue == 1 else f"{overdue} days overdue"


def count_label(count: int) -> str:
    return f"{count} assignment" if count == 1 else f"{count} assignments"


def format_due_date(value: date) -> str:
    """'Jan 5, 2025' style date for display."""
    return f"{value:%b} {value.day}, {value.year}"


def to_item(assignment: Assignment, today: Optional[date] = None) -> AssignmentItem:
    days = days_until_due(assignment.due_date, today)
    return AssignmentItem(
        **assignment.model_dump(),
        urgency=urgency_badge(assignment.due_date, assignment.completed, today),
        days_until_due=days,
        due_label=due_label(days),
    )


# PUBLIC_INTERFACE
def build_list_view(
    snapshot: StoreSnapshot,
    selected_course: str = ALL_COURSES,
    show_completed: bool = True,
    today: Optional[date] = None,
) -> ListView:
    """
    Render the list shown to the user for one snapshot and filter selection.

    States:
    - loading: no snapshot has arrived yet
    - error: the subscription failed; banner carries the message and the last
      known assignments are still listed
    - empty: the collection holds no assignments at all
    - no_match: assignments exist but the filters exclude all of them
    - ready: at least one assignment is listed
    """
    today = today or date.today()
    selected_course = selected_course or ALL_COURSES
    filtered = filter_assignments(snapshot.assignments, selected_course, show_completed)
    items = [to_item(a, today) for a in filtered]

    if snapshot.status == "loading":
        state = ListState.LOADING
    elif snapshot.status == "error":
        state = ListState.ERROR
    elif not snapshot.assignments:
        state = ListState.EMPTY
    elif not items:
        state = ListState.NO_MATCH
    else:
        state = ListState.READY

    empty_message = None
    if not items and state != ListState.LOADING:
        empty_message = EMPTY_MESSAGE if not snapshot.assignments else NO_MATCH_MESSAGE

    return ListView(
        state=state,
        banner=snapshot.error,
        selected_course=selected_course,
        show_completed=show_completed,
        total=len(snapshot.assignments),
        count=len(items),
        count_label=count_label(len(items)),
        empty_message=empty_message,
        items=items,
    )
