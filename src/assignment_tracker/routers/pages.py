from __future__ import annotations

from datetime import date
from http import HTTPStatus
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse
from jinja2 import Environment, FileSystemLoader

from ..dependencies import config_error_from_state, store_from_state
from ..models import COURSES
from ..schemas import Priority, StoreSnapshot
from ..views import ALL_COURSES, build_list_view, format_due_date

router = APIRouter(tags=["pages"])

# Jinja configuration
_jinja = Environment(
    auto_reload=False,
    autoescape=True,
    enable_async=True,
    loader=FileSystemLoader(Path(__file__).resolve().parent.parent / "templates"),
)
_jinja.filters["due_date"] = format_due_date


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_class=HTMLResponse,
    summary="Assignment Tracker Page",
)
async def index_get(
    request: Request,
    course: str = Query(ALL_COURSES, description="Course filter, 'all' for every course"),
    show_completed: bool = Query(True, description="Include completed assignments"),
    today: Optional[date] = Query(None, description="Viewer's local date (YYYY-MM-DD); defaults to the server date"),
) -> HTMLResponse:
    """
    The tracker page: filters, the add-assignment form and the assignment list.

    The list is rendered from the current snapshot and then kept live by the
    page script through the assignments stream. A configuration error shows a
    persistent banner instead and disables the form.
    """
    store = store_from_state(request.app.state)
    config_error = config_error_from_state(request.app.state)
    snapshot = store.snapshot if store else StoreSnapshot(status="error", error=config_error)
    view = build_list_view(snapshot, course or ALL_COURSES, show_completed, today)

    template = _jinja.get_template("index.html.jinja")
    render = await template.render_async(
        config_error=config_error,
        courses=COURSES,
        priorities=[p.value for p in Priority],
        view=view,
    )
    return HTMLResponse(content=render, status_code=HTTPStatus.OK)
