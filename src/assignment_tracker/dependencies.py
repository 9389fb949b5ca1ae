from __future__ import annotations

from typing import Optional

from fastapi import Request
from starlette.datastructures import State

from .assignment_store import AssignmentStore
from .errors import ConfigurationError


def store_from_state(state: State) -> Optional[AssignmentStore]:
    return getattr(state, "assignment_store", None)


def config_error_from_state(state: State) -> Optional[str]:
    return getattr(state, "config_error", None)


# PUBLIC_INTERFACE
def get_assignment_store(request: Request) -> AssignmentStore:
    """
    FastAPI dependency returning the app's AssignmentStore.

    Raises:
        ConfigurationError when the document store could not be configured;
        every data operation is disabled in that case.
    """
    store = store_from_state(request.app.state)
    if store is None:
        raise ConfigurationError(config_error_from_state(request.app.state) or "Document store is not configured.")
    return store
