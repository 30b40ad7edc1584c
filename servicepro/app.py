import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from servicepro.core.validation import (
    ConcurrencyError,
    NotFoundError,
    ServiceProError,
    StorageError,
    ValidationError,
)
from servicepro.infrastructure import ConnectTeamClient, ConnectTeamError, configure_connecteam_client
from servicepro.routes import connecteam, jobs, materials, notes, stages
from servicepro.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _status_for(exc: ServiceProError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConcurrencyError):
        return 409
    if isinstance(exc, ConnectTeamError):
        return 502
    if isinstance(exc, StorageError):
        return 503
    return 500


def create_app() -> FastAPI:
    app = FastAPI(title="ServicePro Jobs API", version="0.1.0")

    api_key = os.getenv("CONNECTEAM_API_KEY")
    form_id = os.getenv("CONNECTEAM_FORM_ID")
    if api_key and form_id:
        api_base = os.getenv("CONNECTEAM_API_URL") or "https://api.connecteam.com"
        configure_connecteam_client(ConnectTeamClient(api_key=api_key, form_id=form_id, api_base=api_base))
    else:
        configure_connecteam_client(None)

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ServiceProError)
    async def handle_service_error(request: Request, exc: ServiceProError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "retryable": exc.retryable},
        )

    app.include_router(jobs.router, prefix="/api")
    app.include_router(stages.router, prefix="/api")
    app.include_router(notes.router, prefix="/api")
    app.include_router(connecteam.router, prefix="/api")
    app.include_router(materials.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "ServicePro Jobs API",
                "docs": "/docs",
                "health": "/api/stages",
            }
        )

    return app


app = create_app()
