"""
Exames Users - Service Container.

Builds the object graph once, in layer order:
1. Configuration
2. Infrastructure (metrics, event bus, database, password hashing)
3. Repositories
4. Use cases

Architecture Layer: Composition Root
"""
from __future__ import annotations

from typing import Any

import structlog

from exames_events import AuditLogHandler, InMemoryEventBus
from exames_common.domain import WILDCARD
from exames_infrastructure.database import DatabaseManager
from exames_infrastructure.health import HealthCheckResult, HealthMonitor
from exames_infrastructure.observability import MetricsRegistry

from .config import ExamesSettings, get_settings
from .infrastructure.password_service import Argon2PasswordHasher
from .infrastructure.repository import ConsentRepository, RepositoryFactory, UserRepository
from .use_cases import ManageConsentUseCase, UpdateUserProfileUseCase

logger = structlog.get_logger(__name__)


class ServiceContainer:
    """Holds every long-lived dependency of the application core."""

    def __init__(self, settings: ExamesSettings) -> None:
        self.settings = settings

        self.metrics = MetricsRegistry()
        self.event_bus = InMemoryEventBus(metrics=self.metrics)
        self.audit_handler = AuditLogHandler(self.metrics)
        self.event_bus.subscribe(WILDCARD, self.audit_handler)

        self.database: DatabaseManager | None = None
        if settings.use_database:
            self.database = DatabaseManager(
                settings.database.url,
                echo=settings.database.echo,
                pool_size=settings.database.pool_size,
                pool_timeout=settings.database.pool_timeout,
            )
        self.password_hasher = Argon2PasswordHasher()

        self.repository_factory = RepositoryFactory(
            use_database=settings.use_database,
            database=self.database,
            event_bus=self.event_bus,
            metrics=self.metrics,
        )
        self.user_repository: UserRepository = self.repository_factory.get_user_repository()
        self.consent_repository: ConsentRepository = self.repository_factory.get_consent_repository()

        self.update_user_profile = UpdateUserProfileUseCase(self.user_repository, self.metrics)
        self.manage_consent = ManageConsentUseCase(
            self.consent_repository, self.metrics, policy=settings.consent_policy,
        )

        self.health_monitor = HealthMonitor(service_name=settings.service_name)
        self.health_monitor.register("event_bus", self.event_bus)
        if self.database is not None:
            self.health_monitor.register("database", self.database)

        self.started = False

    async def startup(self) -> None:
        """Create the schema when running on a database."""
        if self.database is not None:
            await self.database.create_all()
        self.started = True
        logger.info("service_container_started", service=self.settings.service_name,
                    environment=self.settings.environment,
                    backend="sqlalchemy" if self.database is not None else "in_memory")

    async def shutdown(self) -> None:
        if self.database is not None:
            await self.database.dispose()
        self.started = False
        logger.info("service_container_stopped", metrics=self.metrics.get_all()["counters"])

    async def check_health(self) -> HealthCheckResult:
        return await self.health_monitor.check_all()

    def stats(self) -> dict[str, Any]:
        return {"event_bus": self.event_bus.stats(), "metrics": self.metrics.get_all()}


def create_container(settings: ExamesSettings | None = None) -> ServiceContainer:
    """Build a container from the given or cached environment settings."""
    return ServiceContainer(settings or get_settings())
