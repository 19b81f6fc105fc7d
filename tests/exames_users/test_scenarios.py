"""
End-to-end flows through use cases, repositories and the event bus.
"""
from __future__ import annotations

import pytest

from exames_common.exceptions import (
    AuthorizationError,
    EmailAlreadyExistsError,
    ValidationError,
)
from exames_users.domain import LGPDDataType, LGPDPurpose, User, UserEmail, UserProfile
from exames_users.events import ConsentGrantedEvent, EventType
from exames_users.infrastructure import (
    InMemoryConsentRepository,
    InMemoryUserRepository,
    SqlAlchemyUserRepository,
)
from exames_users.use_cases import (
    GrantConsentRequest,
    ManageConsentUseCase,
    ProfileUpdateData,
    UpdateUserProfileRequest,
    UpdateUserProfileUseCase,
)


class TestScenarios:
    """Flows a client of the core relies on."""

    @pytest.mark.asyncio
    async def test_grant_health_consent(self, event_bus, recorder, metrics) -> None:
        use_case = ManageConsentUseCase(InMemoryConsentRepository(event_bus), metrics)

        result = await use_case.grant_consent(GrantConsentRequest(
            user_id="u1", requesting_user_id="u1",
            data_type=LGPDDataType.HEALTH_DATA, purpose=LGPDPurpose.SERVICE_PROVISION,
        ))

        assert result.is_success()
        assert result.get_value().is_active()
        granted = recorder.of_type(EventType.CONSENT_GRANTED.value)
        assert len(granted) == 1
        assert isinstance(granted[0], ConsentGrantedEvent)
        assert metrics.get_counter("user_activities_total",
                                   {"event_type": EventType.CONSENT_GRANTED.value}) == 1

    @pytest.mark.asyncio
    async def test_profile_update_for_another_user(self, event_bus, metrics) -> None:
        use_case = UpdateUserProfileUseCase(InMemoryUserRepository(event_bus), metrics)

        result = await use_case.execute(UpdateUserProfileRequest(
            user_id="u1", requesting_user_id="u2", profile_data=ProfileUpdateData(name="X"),
        ))

        assert result.is_failure()
        assert isinstance(result.get_error(), AuthorizationError)

    @pytest.mark.asyncio
    async def test_empty_profile_update(self, event_bus, metrics) -> None:
        use_case = UpdateUserProfileUseCase(InMemoryUserRepository(event_bus), metrics)

        result = await use_case.execute(UpdateUserProfileRequest(
            user_id="u1", requesting_user_id="u1", profile_data=ProfileUpdateData(),
        ))

        assert result.is_failure()
        error = result.get_error()
        assert isinstance(error, ValidationError)
        assert "at least one" in error.message.lower()

    @pytest.mark.asyncio
    async def test_duplicate_email_in_memory(self) -> None:
        repo = InMemoryUserRepository()
        await repo.save(User.create(UserEmail.create("a@x.com"), UserProfile.create("Ana")))
        with pytest.raises(EmailAlreadyExistsError):
            await repo.save(User.create(UserEmail.create("a@x.com"), UserProfile.create("Bia")))

    @pytest.mark.asyncio
    async def test_duplicate_email_in_database(self, database, metrics) -> None:
        repo = SqlAlchemyUserRepository(database, metrics=metrics)
        await repo.save(User.create(UserEmail.create("a@x.com"), UserProfile.create("Ana")))
        with pytest.raises(EmailAlreadyExistsError):
            await repo.save(User.create(UserEmail.create("A@X.com"), UserProfile.create("Bia")))
