"""
ASGI entrypoint exposing the todo engine to a local UI.

Run with any ASGI server, e.g. `uvicorn todo_engine.main:app`.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers import todos as todos_router
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Liveness probe and active storage backend."},
    {
        "name": "todos",
        "description": "Todo engine operations: add, edit, toggle, delete, reorder, filters and key events.",
    },
]


def _configure_logging(level: int) -> None:
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("todo_engine").setLevel(level)


def _cors_origins(settings: Settings) -> List[str]:
    origins = settings.cors_allow_origins
    if not origins or origins == ["*"]:
        return ["*"]
    return origins


def _jsonable_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    # ctx may carry the raised ValueError itself, which is not JSON serializable
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": [... pydantic error details ...]
        }
    """
    logger.debug("Rejected %s %s: %d validation error(s)", request.method, request.url.path, len(exc.errors()))
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": _jsonable_errors(exc),
        },
    )


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    - Logging level comes from LOG_LEVEL
    - CORS origins from CORS_ALLOW_ORIGINS ('*' when empty)
    - The engine routes are mounted under /api/v1
    """
    settings = settings or get_settings()
    _configure_logging(settings.log_level)

    application = FastAPI(
        title="Todo Engine",
        description="Local single-user todo engine with natural-language scheduling and tag filters.",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(RequestValidationError, validation_exception_handler)

    # PUBLIC_INTERFACE
    @application.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health and the storage backend in use.
        """
        return {"message": "Healthy", "backend": settings.persistence_backend}

    application.include_router(todos_router.router)
    logger.info("Todo engine ready (backend=%s)", settings.persistence_backend)
    return application


app = create_app()
