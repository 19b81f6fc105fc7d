"""
Exames Users - FastAPI Application Entry Point.

Architecture: Clean Architecture with DDD
- Domain: Aggregates, Value Objects, Domain Events
- Application: Use Cases
- Infrastructure: Repositories, Event Bus, Password Hashing
- Presentation: REST API
"""
from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from exames_infrastructure.observability import ObservabilitySettings, configure_logging

from .api import router as api_router
from .config import ExamesSettings, get_settings
from .container import ServiceContainer

logger = structlog.get_logger(__name__)


def create_app(settings: ExamesSettings | None = None,
               container: ServiceContainer | None = None) -> FastAPI:
    """Create the application; a prebuilt container may be injected for tests."""
    settings = settings or (container.settings if container else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(ObservabilitySettings(
            service_name=settings.service_name,
            environment=settings.environment,
            log_format="console" if settings.is_development else "json",
        ))
        service = container or ServiceContainer(settings)
        await service.startup()
        app.state.container = service
        logger.info("exames_service_initialized", environment=settings.environment)
        yield
        await service.shutdown()
        app.state.container = None

    app = FastAPI(
        title="Exames Core",
        description="User profiles and LGPD consent management",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api/v1")
    return app


def run_server() -> None:
    """Run the API with uvicorn."""
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "exames_users.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.is_development else "info",
        access_log=settings.is_development,
    )


if __name__ == "__main__":
    run_server()
