"""
Shared fixtures for Exames tests.
"""
from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from exames_common.domain import WILDCARD, DomainEvent
from exames_events import AuditLogHandler, InMemoryEventBus
from exames_infrastructure.database import DatabaseManager
from exames_infrastructure.observability import MetricsRegistry
from exames_users.domain import UserEmail, UserProfile, User


class RecordingHandler:
    """Wildcard subscriber that keeps every event it receives."""

    name = "recorder"

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def handle(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def metrics() -> MetricsRegistry:
    """Fresh metrics registry for each test."""
    return MetricsRegistry()


@pytest.fixture
def recorder() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def event_bus(metrics: MetricsRegistry, recorder: RecordingHandler) -> InMemoryEventBus:
    """Fresh event bus with the audit handler and a recorder attached."""
    bus = InMemoryEventBus(metrics=metrics)
    bus.subscribe(WILDCARD, AuditLogHandler(metrics))
    bus.subscribe(WILDCARD, recorder)
    return bus


@pytest_asyncio.fixture
async def database() -> AsyncIterator[DatabaseManager]:
    """In-memory SQLite database with the schema created."""
    # Registers the ORM tables on the declarative base
    import exames_users.infrastructure.models  # noqa: F401

    db = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await db.create_all()
    yield db
    await db.dispose()


def _make_user(email: str = "ana@example.com", name: str = "Ana Souza", **profile) -> User:
    return User.create(UserEmail.create(email), UserProfile.create(name, **profile))


@pytest.fixture
def make_user():
    """Factory for test users."""
    return _make_user
