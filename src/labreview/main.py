from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from labreview.api.v1.routes_auth import router as auth_router_v1
from labreview.api.v1.routes_dashboard import router as dashboard_router_v1
from labreview.api.v1.routes_doctor import router as doctor_router_v1
from labreview.api.v1.routes_notifications import router as notifications_router_v1
from labreview.api.v1.routes_patient import router as patient_router_v1
from labreview.api.v1.routes_system import router as system_router_v1
from labreview.config import Settings, settings
from labreview.container import ServiceContainer, build_container


def create_app(container: Optional[ServiceContainer] = None, config: Optional[Settings] = None) -> FastAPI:
    """Build the API application.

    The container is created eagerly (from ``config`` or the process settings)
    and closed when the application shuts down.
    """

    config = config or (container.config if container is not None else settings)
    container = container or build_container(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await app.state.container.aclose()

    app = FastAPI(title="Lab Report Review API", lifespan=lifespan)
    app.state.container = container

    # CORS configuration – permissive by default for development. Tighten via
    # CORS_ALLOW_ORIGINS in production deployments.
    allow_origins = [origin.strip() for origin in config.cors_allow_origins.split(",") if origin.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["system"])
    async def health_check() -> dict:
        """Basic liveness probe for the API root."""
        return {"status": "ok"}

    # Versioned API routers
    app.include_router(system_router_v1, prefix="/api/v1")
    app.include_router(auth_router_v1, prefix="/api/v1")
    app.include_router(dashboard_router_v1, prefix="/api/v1")
    app.include_router(doctor_router_v1, prefix="/api/v1")
    app.include_router(patient_router_v1, prefix="/api/v1")
    app.include_router(notifications_router_v1, prefix="/api/v1")
    return app


app = create_app()
