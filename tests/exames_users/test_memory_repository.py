"""
Tests for the in-memory user and consent repositories.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from exames_common.domain import DomainEvent
from exames_common.exceptions import (
    ConsentAlreadyExistsError,
    ConsentNotFoundError,
    EmailAlreadyExistsError,
    UserNotFoundError,
)
from exames_events import EventPublishError, InMemoryEventBus
from exames_users.domain import (
    Consent,
    ConsentSource,
    ConsentTemplates,
    LGPDDataType,
    LGPDPurpose,
    SubscriptionStatus,
    SubscriptionTier,
    UserEmail,
)
from exames_users.events import EventType
from exames_users.infrastructure import (
    ConsentSearchOptions,
    InMemoryConsentRepository,
    InMemoryUserRepository,
    RepositoryFactory,
    UserSearchOptions,
    publish_pending_events,
)


class TestInMemoryUserRepository:
    """Tests for InMemoryUserRepository."""

    @pytest.mark.asyncio
    async def test_save_and_find(self, make_user) -> None:
        repo = InMemoryUserRepository()
        user = make_user()
        await repo.save(user)

        found = await repo.find_by_id(user.id)
        assert found == user
        assert found is not user
        assert (await repo.find_by_email("  ANA@example.com")) == user
        assert await repo.exists_by_email("ana@example.com")
        assert await repo.find_by_id("missing") is None
        assert await repo.find_by_email("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_stored_copy_is_isolated(self, make_user) -> None:
        repo = InMemoryUserRepository()
        user = make_user()
        await repo.save(user)
        user.update_profile(name="Mudou Sem Salvar")
        assert (await repo.find_by_id(user.id)).profile.name == "Ana Souza"

    @pytest.mark.asyncio
    async def test_email_uniqueness(self, make_user) -> None:
        repo = InMemoryUserRepository()
        await repo.save(make_user())
        with pytest.raises(EmailAlreadyExistsError):
            await repo.save(make_user())

    @pytest.mark.asyncio
    async def test_email_change_moves_index(self, make_user) -> None:
        repo = InMemoryUserRepository()
        user = make_user()
        await repo.save(user)
        user.email = UserEmail.create("nova@example.com")
        await repo.save(user)
        assert not await repo.exists_by_email("ana@example.com")
        assert (await repo.find_by_email("nova@example.com")) == user

    @pytest.mark.asyncio
    async def test_delete(self, make_user) -> None:
        repo = InMemoryUserRepository()
        user = make_user()
        await repo.save(user)
        await repo.delete(user.id)
        assert await repo.find_by_id(user.id) is None
        assert not await repo.exists_by_email(user.email.value)
        with pytest.raises(UserNotFoundError):
            await repo.delete(user.id)

    @pytest.mark.asyncio
    async def test_save_publishes_events_in_order(self, make_user, event_bus, recorder) -> None:
        repo = InMemoryUserRepository(event_bus)
        user = make_user()
        user.update_profile(name="Ana Lima")
        user.verify_email()
        await repo.save(user)

        assert [e.event_type for e in recorder.events] == [
            EventType.USER_PROFILE_UPDATED.value,
            EventType.USER_EMAIL_VERIFIED.value,
        ]
        assert not user.has_pending_events()

    @pytest.mark.asyncio
    async def test_counts_and_statistics(self, make_user) -> None:
        repo = InMemoryUserRepository()
        free = make_user("a@example.com")
        pro = make_user("b@example.com")
        pro.update_subscription(SubscriptionTier.PRO, SubscriptionStatus.ACTIVE)
        pro.verify_email()
        pro.enable_two_factor()
        for user in (free, pro):
            await repo.save(user)

        assert await repo.count_by_subscription_tier(SubscriptionTier.PRO) == 1
        assert await repo.count_by_subscription_tier(SubscriptionTier.FAMILY) == 0
        assert len(await repo.find_recently_registered(days=7)) == 2

        stats = await repo.get_statistics()
        assert stats.total_users == 2
        assert stats.verified_users == 1
        assert stats.two_factor_users == 1
        assert stats.active_subscriptions == 1
        assert stats.recent_registrations == 2
        assert stats.subscription_breakdown == {"free": 1, "pro": 1, "family": 0}

    @pytest.mark.asyncio
    async def test_search(self, make_user) -> None:
        repo = InMemoryUserRepository()
        for i in range(5):
            await repo.save(make_user(f"user{i}@example.com", f"Pessoa {i}"))
        await repo.save(make_user("maria@clinic.com", "Maria Costa"))

        result = await repo.search(UserSearchOptions(query="maria"))
        assert result.total == 1
        assert result.users[0].profile.name == "Maria Costa"

        page = await repo.search(UserSearchOptions(query="example.com", limit=2, offset=2))
        assert page.total == 5
        assert len(page.users) == 2
        assert page.has_more

        last = await repo.search(UserSearchOptions(query="example.com", limit=2, offset=4))
        assert len(last.users) == 1
        assert not last.has_more

        verified = await repo.search(UserSearchOptions(email_verified=True))
        assert verified.total == 0

    @pytest.mark.asyncio
    async def test_clear(self, make_user) -> None:
        repo = InMemoryUserRepository()
        await repo.save(make_user())
        repo.clear()
        assert not await repo.exists_by_email("ana@example.com")


def health(user_id: str = "u1") -> Consent:
    return Consent.create(user_id, LGPDDataType.HEALTH_DATA, LGPDPurpose.SERVICE_PROVISION)


class TestInMemoryConsentRepository:
    """Tests for InMemoryConsentRepository."""

    @pytest.mark.asyncio
    async def test_save_and_find(self) -> None:
        repo = InMemoryConsentRepository()
        consent = health()
        await repo.save(consent)
        assert (await repo.find_by_id(consent.id)) == consent
        found = await repo.find_by_user_and_type("u1", LGPDDataType.HEALTH_DATA,
                                                 LGPDPurpose.SERVICE_PROVISION)
        assert found == consent
        assert await repo.find_by_user_and_type("u1", LGPDDataType.HEALTH_DATA,
                                                LGPDPurpose.MARKETING) is None

    @pytest.mark.asyncio
    async def test_natural_key_is_unique(self) -> None:
        repo = InMemoryConsentRepository()
        await repo.save(health())
        with pytest.raises(ConsentAlreadyExistsError):
            await repo.save(health())
        await repo.save(health("u2"))

    @pytest.mark.asyncio
    async def test_find_active_by_user_and_type(self) -> None:
        repo = InMemoryConsentRepository()
        consent = health()
        consent.revoke("motivo")
        await repo.save(consent)
        assert await repo.find_active_by_user_and_type(
            "u1", LGPDDataType.HEALTH_DATA, LGPDPurpose.SERVICE_PROVISION) is None
        assert await repo.find_by_user_and_type(
            "u1", LGPDDataType.HEALTH_DATA, LGPDPurpose.SERVICE_PROVISION) is not None

    @pytest.mark.asyncio
    async def test_find_by_user_filters(self) -> None:
        repo = InMemoryConsentRepository()
        for consent in ConsentTemplates.defaults("u1"):
            await repo.save(consent)
        await repo.save(health("u2"))

        assert len(await repo.find_by_user("u1")) == 4
        active = await repo.find_by_user("u1", ConsentSearchOptions(include_revoked=False))
        assert len(active) == 3
        personal = await repo.find_by_user(
            "u1", ConsentSearchOptions(data_type=LGPDDataType.PERSONAL_DATA))
        assert {c.purpose for c in personal} == {LGPDPurpose.SERVICE_PROVISION, LGPDPurpose.MARKETING}
        registration = await repo.find_by_user(
            "u1", ConsentSearchOptions(source=ConsentSource.REGISTRATION))
        assert len(registration) == 3
        future = await repo.find_by_user(
            "u1", ConsentSearchOptions(created_after=datetime.now(timezone.utc) + timedelta(days=1)))
        assert future == []

    @pytest.mark.asyncio
    async def test_age_queries_only_return_active(self) -> None:
        repo = InMemoryConsentRepository()
        old = Consent.create("u1", LGPDDataType.HEALTH_DATA, LGPDPurpose.SERVICE_PROVISION,
                             consent_date=datetime.now(timezone.utc) - timedelta(days=800))
        aging = Consent.create("u1", LGPDDataType.PERSONAL_DATA, LGPDPurpose.SERVICE_PROVISION,
                               consent_date=datetime.now(timezone.utc) - timedelta(days=600))
        old_revoked = Consent.create("u1", LGPDDataType.LOCATION_DATA, LGPDPurpose.SECURITY,
                                     consent_date=datetime.now(timezone.utc) - timedelta(days=800))
        old_revoked.revoke()
        for consent in (old, aging, old_revoked, health("u2")):
            await repo.save(consent)

        assert [c.id for c in await repo.find_expired_consents()] == [old.id]
        assert {c.id for c in await repo.find_consents_needing_renewal()} == {old.id, aging.id}

    @pytest.mark.asyncio
    async def test_revoke_all_user_consents(self, event_bus, recorder) -> None:
        repo = InMemoryConsentRepository(event_bus)
        for consent in ConsentTemplates.defaults("u1"):
            await repo.save(consent)
        recorder.events.clear()

        assert await repo.revoke_all_user_consents("u1", "Conta encerrada") == 3
        assert await repo.find_by_user("u1", ConsentSearchOptions(include_revoked=False)) == []
        revoked = recorder.of_type(EventType.CONSENT_REVOKED.value)
        assert len(revoked) == 3
        assert all(e.reason == "Conta encerrada" for e in revoked)
        assert await repo.revoke_all_user_consents("u1", "de novo") == 0

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        repo = InMemoryConsentRepository()
        consent = health()
        await repo.save(consent)
        await repo.delete(consent.id)
        with pytest.raises(ConsentNotFoundError):
            await repo.delete(consent.id)

    @pytest.mark.asyncio
    async def test_delete_all_user_data(self) -> None:
        repo = InMemoryConsentRepository()
        for consent in ConsentTemplates.defaults("u1"):
            await repo.save(consent)
        await repo.save(health("u2"))
        assert await repo.delete_all_user_data("u1") == 4
        assert await repo.find_by_user("u1") == []
        assert len(await repo.find_by_user("u2")) == 1

    @pytest.mark.asyncio
    async def test_statistics(self) -> None:
        repo = InMemoryConsentRepository()
        for consent in ConsentTemplates.defaults("u1"):
            await repo.save(consent)
        revoked = health("u2")
        revoked.revoke()
        await repo.save(revoked)

        now = datetime.now(timezone.utc)
        stats = await repo.get_consent_statistics(now - timedelta(hours=1), now + timedelta(hours=1))
        assert stats.total_consents == 5
        assert stats.active_consents == 3
        assert stats.revoked_consents == 1
        assert stats.by_data_type["personal_data"] == 2
        assert stats.by_purpose["service_provision"] == 3
        assert stats.by_legal_basis["legitimate_interest"] == 1

        empty = await repo.get_consent_statistics(now - timedelta(days=10), now - timedelta(days=9))
        assert empty.total_consents == 0


class TestPublishPendingEvents:
    """Tests for post-save event publication."""

    @pytest.mark.asyncio
    async def test_without_bus_clears_queue(self) -> None:
        consent = health()
        await publish_pending_events(consent, None)
        assert not consent.has_pending_events()

    @pytest.mark.asyncio
    async def test_failure_publishes_remaining_then_raises(self) -> None:
        bus = InMemoryEventBus()
        seen: list[str] = []

        async def flaky(event: DomainEvent) -> None:
            seen.append(event.event_type)
            if event.event_type == EventType.CONSENT_GRANTED.value:
                raise RuntimeError("broker down")

        bus.subscribe(EventType.CONSENT_GRANTED.value, flaky)
        bus.subscribe(EventType.CONSENT_REVOKED.value, flaky)

        consent = health()
        consent.revoke("motivo")
        with pytest.raises(EventPublishError):
            await publish_pending_events(consent, bus)
        assert seen == [EventType.CONSENT_GRANTED.value, EventType.CONSENT_REVOKED.value]
        assert not consent.has_pending_events()

    @pytest.mark.asyncio
    async def test_save_persists_even_when_publish_fails(self) -> None:
        bus = InMemoryEventBus()

        async def broken(event: DomainEvent) -> None:
            raise RuntimeError("broker down")

        bus.subscribe(EventType.CONSENT_GRANTED.value, broken)
        repo = InMemoryConsentRepository(bus)
        consent = health()
        with pytest.raises(EventPublishError):
            await repo.save(consent)
        assert await repo.find_by_id(consent.id) is not None


class TestRepositoryFactory:
    """Tests for backend selection."""

    def test_defaults_to_memory(self) -> None:
        factory = RepositoryFactory()
        assert not factory.uses_database
        assert isinstance(factory.get_user_repository(), InMemoryUserRepository)
        assert isinstance(factory.get_consent_repository(), InMemoryConsentRepository)

    def test_caches_instances(self) -> None:
        factory = RepositoryFactory()
        assert factory.get_user_repository() is factory.get_user_repository()
        assert factory.get_consent_repository() is factory.get_consent_repository()

    def test_database_flag_without_manager_uses_memory(self) -> None:
        factory = RepositoryFactory(use_database=True)
        assert not factory.uses_database
        assert isinstance(factory.get_user_repository(), InMemoryUserRepository)

    @pytest.mark.asyncio
    async def test_database_backend(self, database, metrics) -> None:
        from exames_users.infrastructure import SqlAlchemyConsentRepository, SqlAlchemyUserRepository

        factory = RepositoryFactory(use_database=True, database=database, metrics=metrics)
        assert factory.uses_database
        assert isinstance(factory.get_user_repository(), SqlAlchemyUserRepository)
        assert isinstance(factory.get_consent_repository(), SqlAlchemyConsentRepository)
