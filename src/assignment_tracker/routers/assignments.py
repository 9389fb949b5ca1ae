from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from ..assignment_store import AssignmentStore
from ..dependencies import config_error_from_state, get_assignment_store, store_from_state
from ..errors import AssignmentNotFound
from ..logging import logger
from ..models import COURSES
from ..schemas import (
    AssignmentDraft,
    CompletedUpdate,
    ListState,
    ListView,
    MutationResult,
    StoreSnapshot,
    ViewFilters,
)
from ..views import ALL_COURSES, build_list_view, count_label

router = APIRouter(
    prefix="/api/v1",
    tags=["assignments"],
)


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")


# PUBLIC_INTERFACE
@router.get(
    "/courses",
    response_model=List[str],
    summary="List Courses",
    description="Course names an assignment can belong to.",
)
def list_courses() -> List[str]:
    """Return the known course names."""
    return list(COURSES)


# PUBLIC_INTERFACE
@router.get(
    "/assignments/",
    response_model=ListView,
    summary="List Assignments",
    description=(
        "Current assignment list as seen through the live subscription, ordered by due date.\n\n"
        "Query parameters:\n"
        "- course: course name, or 'all' for every course\n"
        "- show_completed: keep completed assignments (default true)\n"
        "- today: the viewer's local date, used for urgency (default: server date)\n\n"
        "Each item carries its urgency badge and days until due."
    ),
    responses={
        200: {"description": "List view rendered"},
        503: {"description": "Document store is not configured"},
    },
)
def list_assignments(
    course: str = Query(ALL_COURSES, description="Course filter, 'all' for every course"),
    show_completed: bool = Query(True, description="Include completed assignments"),
    today: Optional[date] = Query(None, description="Viewer's local date (YYYY-MM-DD); defaults to the server date"),
    store: AssignmentStore = Depends(get_assignment_store),
) -> ListView:
    """
    Render the derived list view from the current snapshot.
    """
    return build_list_view(store.snapshot, course.strip() or ALL_COURSES, show_completed, today)


# PUBLIC_INTERFACE
@router.post(
    "/assignments/",
    response_model=MutationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create Assignment",
    description=(
        "Request a new assignment. The response only acknowledges the request; the "
        "assignment shows up in the list once the subscription delivers it."
    ),
    responses={
        201: {"description": "Assignment created"},
        422: {"description": "Validation error (missing title, course or due date)"},
        502: {"description": "The document store rejected the request"},
    },
)
def create_assignment(payload: AssignmentDraft, store: AssignmentStore = Depends(get_assignment_store)) -> MutationResult:
    """
    Create a new assignment.
    """
    return store.create(payload)


# PUBLIC_INTERFACE
@router.patch(
    "/assignments/{assignment_id}",
    response_model=MutationResult,
    summary="Set Completed",
    description="Replace the completed flag of an assignment.",
    responses={
        200: {"description": "Update requested"},
        404: {"description": "Assignment not found"},
        502: {"description": "The document store rejected the request"},
    },
)
def set_completed(
    assignment_id: str,
    payload: CompletedUpdate,
    store: AssignmentStore = Depends(get_assignment_store),
) -> MutationResult:
    """
    Set the completed flag.
    """
    try:
        return store.set_completed(assignment_id, payload.completed)
    except AssignmentNotFound:
        raise _not_found()


# PUBLIC_INTERFACE
@router.post(
    "/assignments/{assignment_id}/toggle",
    response_model=MutationResult,
    summary="Toggle Completed",
    description="Flip the completed flag of an assignment, starting from the value currently listed.",
    responses={
        200: {"description": "Update requested"},
        404: {"description": "Assignment not found"},
        502: {"description": "The document store rejected the request"},
    },
)
def toggle_completed(assignment_id: str, store: AssignmentStore = Depends(get_assignment_store)) -> MutationResult:
    """
    Toggle the completed flag.
    """
    try:
        return store.toggle_completed(assignment_id)
    except AssignmentNotFound:
        raise _not_found()


# PUBLIC_INTERFACE
@router.delete(
    "/assignments/{assignment_id}",
    response_model=MutationResult,
    summary="Delete Assignment",
    description="Delete an assignment by ID.",
    responses={
        200: {"description": "Assignment deleted"},
        404: {"description": "Assignment not found"},
        502: {"description": "The document store rejected the request"},
    },
)
def delete_assignment(assignment_id: str, store: AssignmentStore = Depends(get_assignment_store)) -> MutationResult:
    """
    Delete an assignment. Returns 404 if it does not exist.
    """
    try:
        return store.delete(assignment_id)
    except AssignmentNotFound:
        raise _not_found()


async def stop_sender(sender: asyncio.Task) -> None:
    """Cancel the view sender; a send that already failed on a closed socket is not an error."""
    sender.cancel()
    with suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
        await sender


# PUBLIC_INTERFACE
@router.websocket("/assignments/stream")
async def stream_assignments(
    websocket: WebSocket,
    course: str = ALL_COURSES,
    show_completed: bool = True,
    today: Optional[date] = None,
) -> None:
    """
    Push the rendered list view on connect and after every snapshot.

    The client may send {"course": ..., "show_completed": ..., "today": ...} at
    any time to change its filters or local date; the view is re-rendered right
    away.
    """
    await websocket.accept()

    store = store_from_state(websocket.app.state)
    if store is None:
        view = ListView(
            state=ListState.ERROR,
            banner=config_error_from_state(websocket.app.state),
            total=0,
            count=0,
            count_label=count_label(0),
        )
        await websocket.send_json(view.model_dump(mode="json"))
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    loop = asyncio.get_running_loop()
    # None means "filters changed, render the current snapshot again"
    events: asyncio.Queue[Optional[StoreSnapshot]] = asyncio.Queue()
    filters = ViewFilters(course=course, show_completed=show_completed, today=today)

    async def _send_views() -> None:
        current = store.snapshot
        while True:
            snapshot = await events.get()
            if snapshot is not None:
                current = snapshot
            view = build_list_view(current, filters.course, filters.show_completed, filters.today)
            await websocket.send_json(view.model_dump(mode="json"))

    async def _receive_filters() -> None:
        nonlocal filters
        with suppress(WebSocketDisconnect):
            while True:
                message = await websocket.receive_text()
                try:
                    filters = ViewFilters.model_validate_json(message)
                except ValidationError as exc:
                    logger.warning("Ignoring invalid filter message: %s", exc.errors())
                    continue
                events.put_nowait(None)

    remove_listener = store.add_listener(lambda snapshot: loop.call_soon_threadsafe(events.put_nowait, snapshot))
    logger.debug("Live view connected")
    sender = asyncio.create_task(_send_views())
    try:
        await _receive_filters()
    finally:
        remove_listener()
        await stop_sender(sender)
        logger.debug("Live view disconnected")
