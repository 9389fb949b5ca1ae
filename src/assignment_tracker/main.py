from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .assignment_store import AssignmentStore
from .dependencies import config_error_from_state, store_from_state
from .documents import DocumentStore, get_document_store
from .errors import ConfigurationError, OperationError
from .logging import logger
from .routers import assignments as assignments_router
from .routers import pages as pages_router
from .settings import Settings, get_settings

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "assignments",
        "description": "Create, complete and delete assignments; list and stream the live, filtered view.",
    },
    {"name": "pages", "description": "The tracker web page."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = store_from_state(app.state)
    if store is not None:
        store.open()
    try:
        yield
    finally:
        if store is not None:
            store.close()
            store.documents.close()


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, document_store: Optional[DocumentStore] = None) -> FastAPI:
    """
    Build the FastAPI application around its own AssignmentStore.

    The document store comes from settings unless one is given. When it cannot
    be configured the app still starts: the page shows a persistent banner and
    data endpoints answer 503.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Assignment Tracker",
        description="Track school assignments with a live, filterable list synchronized across sessions.",
        version=__version__,
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )

    app.state.config_error = None
    app.state.assignment_store = None
    try:
        documents = document_store or get_document_store(settings)
    except ConfigurationError as e:
        logger.error("Document store configuration is invalid: %s", e)
        app.state.config_error = str(e)
    else:
        logger.info("Using %s document store", documents.backend_name)
        app.state.assignment_store = AssignmentStore(documents)

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {
                "error": "ValidationError",
                "detail": [... pydantic/fastapi error details ...],
                "message": "Request validation failed"
            }
        """
        return JSONResponse(
            status_code=422,
            content={
                "error": "ValidationError",
                "message": "Request validation failed",
                "detail": jsonable_errors(exc),
            },
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_exception_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={
                "error": "ConfigurationError",
                "message": "The document store is not properly configured.",
                "detail": str(exc),
            },
        )

    @app.exception_handler(OperationError)
    async def operation_exception_handler(request: Request, exc: OperationError) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={
                "error": "OperationError",
                "action": exc.action,
                "message": exc.message,
            },
        )

    # PUBLIC_INTERFACE
    @app.get("/health", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object with the backend in use, whether the document store
            answers, and the state of the live subscription.
        """
        store = store_from_state(app.state)
        if store is None:
            return {
                "message": "Configuration error",
                "backend": settings.persistence_backend,
                "ready": False,
                "subscription": "error",
                "detail": config_error_from_state(app.state),
            }
        return {
            "message": "Healthy",
            "backend": store.documents.backend_name,
            "ready": store.documents.readiness(),
            "subscription": store.snapshot.status,
        }

    app.include_router(assignments_router.router)
    app.include_router(pages_router.router)
    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors with their context reduced to strings (ValueError is not JSON)."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


app = create_app()


def run() -> None:
    """Serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
