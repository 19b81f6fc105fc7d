"""
Tests for the in-memory event bus and the audit handler.
"""
from __future__ import annotations

import asyncio

import pytest

from exames_common.domain import WILDCARD, DomainEvent
from exames_events import AuditLogHandler, EventPublishError, InMemoryEventBus
from exames_infrastructure.observability import MetricsRegistry


def make_event(event_type: str = "user.profile.updated", aggregate_id: str = "u1",
               **metadata: str) -> DomainEvent:
    return DomainEvent(event_type=event_type, aggregate_id=aggregate_id, metadata=metadata)


class TestSubscription:
    """Tests for subscribe/unsubscribe."""

    @pytest.mark.asyncio
    async def test_exact_type_handler_receives_event(self) -> None:
        bus = InMemoryEventBus()
        received: list[DomainEvent] = []

        async def on_update(event: DomainEvent) -> None:
            received.append(event)

        bus.subscribe("user.profile.updated", on_update)
        await bus.publish(make_event())
        await bus.publish(make_event("consent.granted"))
        assert [e.event_type for e in received] == ["user.profile.updated"]

    @pytest.mark.asyncio
    async def test_wildcard_receives_every_event(self) -> None:
        bus = InMemoryEventBus()
        received: list[str] = []

        async def on_any(event: DomainEvent) -> None:
            received.append(event.event_type)

        bus.subscribe(WILDCARD, on_any)
        await bus.publish(make_event("user.profile.updated"))
        await bus.publish(make_event("consent.revoked"))
        assert received == ["user.profile.updated", "consent.revoked"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = InMemoryEventBus()
        received: list[DomainEvent] = []

        async def on_update(event: DomainEvent) -> None:
            received.append(event)

        bus.subscribe("user.profile.updated", on_update)
        assert bus.unsubscribe("user.profile.updated", on_update)
        assert not bus.unsubscribe("user.profile.updated", on_update)
        await bus.publish(make_event())
        assert received == []

    def test_handler_count(self) -> None:
        bus = InMemoryEventBus()

        async def noop(event: DomainEvent) -> None:
            return None

        bus.subscribe("a", noop)
        bus.subscribe(WILDCARD, noop)
        assert bus.handler_count("a") == 1
        assert bus.handler_count(WILDCARD) == 1
        assert bus.handler_count("b") == 0


class TestPublish:
    """Tests for fan-out, storage and failure handling."""

    @pytest.mark.asyncio
    async def test_events_are_stored_in_order(self) -> None:
        bus = InMemoryEventBus()
        await bus.publish(make_event("a", "x1"))
        await bus.publish(make_event("b", "x2"))
        await bus.publish(make_event("a", "x2"))
        assert [e.event_type for e in bus.get_events()] == ["a", "b", "a"]
        assert len(bus.get_events(event_type="a")) == 2
        assert len(bus.get_events(aggregate_id="x2")) == 2
        assert len(bus.get_events(event_type="a", aggregate_id="x2")) == 1

    @pytest.mark.asyncio
    async def test_handlers_run_concurrently(self) -> None:
        bus = InMemoryEventBus()
        started: list[str] = []
        gate = asyncio.Event()

        async def first(event: DomainEvent) -> None:
            started.append("first")
            await gate.wait()

        async def second(event: DomainEvent) -> None:
            started.append("second")
            gate.set()

        bus.subscribe("a", first)
        bus.subscribe("a", second)
        await asyncio.wait_for(bus.publish(make_event("a")), timeout=1)
        assert sorted(started) == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self) -> None:
        metrics = MetricsRegistry()
        bus = InMemoryEventBus(metrics=metrics)
        received: list[DomainEvent] = []

        async def broken(event: DomainEvent) -> None:
            raise RuntimeError("handler exploded")

        async def healthy(event: DomainEvent) -> None:
            received.append(event)

        bus.subscribe("a", broken)
        bus.subscribe("a", healthy)
        with pytest.raises(EventPublishError) as exc_info:
            await bus.publish(make_event("a"))

        assert len(received) == 1
        error = exc_info.value
        assert error.code == "EVENT_PUBLISH_ERROR"
        assert error.service == "EventBus"
        assert len(error.failures) == 1
        assert isinstance(error.failures[0].error, RuntimeError)
        assert error.cause is error.failures[0].error
        assert len(bus.get_events()) == 1

    @pytest.mark.asyncio
    async def test_metrics_per_handler(self) -> None:
        metrics = MetricsRegistry()
        bus = InMemoryEventBus(metrics=metrics)

        async def broken(event: DomainEvent) -> None:
            raise RuntimeError("nope")

        async def healthy(event: DomainEvent) -> None:
            return None

        bus.subscribe("a", broken)
        bus.subscribe("a", healthy)
        with pytest.raises(EventPublishError):
            await bus.publish(make_event("a"))

        assert metrics.get_counter("domain_events_handled_total", {
            "event_type": "a", "handler": broken.__qualname__, "status": "error"}) == 1
        assert metrics.get_counter("domain_events_handled_total", {
            "event_type": "a", "handler": healthy.__qualname__, "status": "success"}) == 1
        assert len(metrics.get_histogram("domain_event_publish_duration_ms", {"event_type": "a"})) == 1

    @pytest.mark.asyncio
    async def test_publish_all_in_order(self) -> None:
        bus = InMemoryEventBus()
        await bus.publish_all([make_event("a"), make_event("b"), make_event("c")])
        assert [e.event_type for e in bus.get_events()] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        bus = InMemoryEventBus()

        async def noop(event: DomainEvent) -> None:
            return None

        bus.subscribe(WILDCARD, noop)
        await bus.publish(make_event())
        bus.clear()
        assert bus.get_events() == []
        assert bus.handler_count(WILDCARD) == 0

    @pytest.mark.asyncio
    async def test_check_health(self) -> None:
        health = await InMemoryEventBus().check_health()
        assert health["status"] == "healthy"
        assert health["events_stored"] == 0


class TestAuditLogHandler:
    """Tests for the wildcard audit subscriber."""

    @pytest.mark.asyncio
    async def test_audits_every_event(self) -> None:
        metrics = MetricsRegistry()
        bus = InMemoryEventBus(metrics=metrics)
        bus.subscribe(WILDCARD, AuditLogHandler(metrics))

        await bus.publish(make_event("user.profile.updated", user_id="u1"))
        await bus.publish(make_event("consent.granted", user_id="u1"))
        await bus.publish(make_event("consent.granted", user_id="u2"))

        assert metrics.get_counter("user_activities_total", {"event_type": "consent.granted"}) == 2
        assert metrics.get_counter("user_activities_total", {"event_type": "user.profile.updated"}) == 1
        assert metrics.get_counter("domain_events_handled_total", {
            "event_type": "consent.granted", "handler": "audit_log", "status": "success"}) == 2

    @pytest.mark.asyncio
    async def test_handles_event_without_user(self) -> None:
        metrics = MetricsRegistry()
        await AuditLogHandler(metrics).handle(make_event("system.tick", "agg-1"))
        assert metrics.get_counter("user_activities_total", {"event_type": "system.tick"}) == 1
