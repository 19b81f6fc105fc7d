"""
Exames Users - Repository Layer.

Repository contracts for the User and Consent aggregates, their in-memory
implementations, and the factory that picks a backend from configuration.

Architecture Layer: Infrastructure
Principles: Repository Pattern, Dependency Inversion, Interface Segregation
"""
from __future__ import annotations

import asyncio
from abc import abstractmethod
from collections import Counter
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
import structlog

from exames_common.domain import AggregateRoot, EventBus, Repository
from exames_common.exceptions import (
    ConsentAlreadyExistsError,
    ConsentNotFoundError,
    EmailAlreadyExistsError,
    ExamesError,
    UserNotFoundError,
)
from exames_common.utils import DateTimeUtils

from ..domain.consent import (
    Consent,
    ConsentSource,
    DEFAULT_MAX_AGE_MONTHS,
    DEFAULT_RENEWAL_THRESHOLD_MONTHS,
    LegalBasis,
    LGPDDataType,
    LGPDPurpose,
)
from ..domain.entities import SubscriptionStatus, SubscriptionTier, User

logger = structlog.get_logger(__name__)


# --- Query and report models ---


class UserSearchOptions(BaseModel):
    """Filters for user search."""

    query: str | None = Field(default=None, description="Substring of name or email")
    subscription_tier: SubscriptionTier | None = None
    subscription_status: SubscriptionStatus | None = None
    email_verified: bool | None = None
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class UserSearchResult(BaseModel):
    """A page of users."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    users: list[User]
    total: int
    has_more: bool


class UserStatistics(BaseModel):
    """Aggregate counts over all users."""

    total_users: int = 0
    verified_users: int = 0
    two_factor_users: int = 0
    subscription_breakdown: dict[str, int] = Field(default_factory=dict)
    recent_registrations: int = 0
    active_subscriptions: int = 0


class ConsentSearchOptions(BaseModel):
    """Filters for a user's consents."""

    include_revoked: bool = True
    data_type: LGPDDataType | None = None
    purpose: LGPDPurpose | None = None
    legal_basis: LegalBasis | None = None
    source: ConsentSource | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None

    def matches(self, consent: Consent) -> bool:
        if not self.include_revoked and not consent.is_active():
            return False
        if self.data_type is not None and consent.data_type != self.data_type:
            return False
        if self.purpose is not None and consent.purpose != self.purpose:
            return False
        if self.legal_basis is not None and consent.legal_basis != self.legal_basis:
            return False
        if self.source is not None and consent.source != self.source:
            return False
        if self.created_after is not None and consent.created_at < DateTimeUtils.ensure_utc(self.created_after):
            return False
        if self.created_before is not None and consent.created_at > DateTimeUtils.ensure_utc(self.created_before):
            return False
        return True


class ConsentStatistics(BaseModel):
    """Consent counts over a date range."""

    total_consents: int = 0
    active_consents: int = 0
    revoked_consents: int = 0
    by_data_type: dict[str, int] = Field(default_factory=dict)
    by_purpose: dict[str, int] = Field(default_factory=dict)
    by_legal_basis: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_consents(cls, consents: list[Consent]) -> ConsentStatistics:
        return cls(
            total_consents=len(consents),
            active_consents=sum(1 for c in consents if c.is_active()),
            revoked_consents=sum(1 for c in consents if c.revoked_date is not None),
            by_data_type=dict(Counter(c.data_type.value for c in consents)),
            by_purpose=dict(Counter(c.purpose.value for c in consents)),
            by_legal_basis=dict(Counter(c.legal_basis.value for c in consents)),
        )


# --- Event publication ---


async def publish_pending_events(aggregate: AggregateRoot[Any], event_bus: EventBus | None) -> None:
    """
    Publish an aggregate's queued events in order, then mark them committed.

    Every event is attempted even if an earlier publish failed; the first
    failure is re-raised after the queue has been cleared.
    """
    events = aggregate.get_uncommitted_events()
    if event_bus is None or not events:
        aggregate.mark_events_committed()
        return
    first_error: ExamesError | None = None
    for event in events:
        try:
            await event_bus.publish(event)
        except ExamesError as e:
            first_error = first_error or e
    aggregate.mark_events_committed()
    if first_error is not None:
        raise first_error


# --- Abstract Repositories ---


class UserRepository(Repository[User]):
    """
    Repository contract for the User aggregate.

    Email is the natural key: two users never share one.
    """

    @abstractmethod
    async def find_by_email(self, email: str) -> User | None:
        """
        Get user by email address.

        Args:
            email: User email (case-insensitive)

        Returns:
            User or None if not found
        """

    @abstractmethod
    async def exists_by_email(self, email: str) -> bool:
        """Check whether any user owns the email."""

    @abstractmethod
    async def count_by_subscription_tier(self, tier: SubscriptionTier) -> int:
        """Count users on a subscription tier."""

    @abstractmethod
    async def find_recently_registered(self, days: int = 7) -> list[User]:
        """Users created within the last `days` days, newest first."""

    @abstractmethod
    async def search(self, options: UserSearchOptions) -> UserSearchResult:
        """
        Filtered, paginated listing.

        Returns:
            Users of the requested page, total match count and has_more flag
        """

    @abstractmethod
    async def get_statistics(self) -> UserStatistics:
        """Counts for the admin dashboard."""


class ConsentRepository(Repository[Consent]):
    """
    Repository contract for the Consent aggregate.

    (user_id, data_type, purpose) is the natural key: a user has at most one
    consent record per data type and purpose, renewed in place.
    """

    @abstractmethod
    async def find_by_user(self, user_id: str,
                           options: ConsentSearchOptions | None = None) -> list[Consent]:
        """A user's consents, newest first."""

    @abstractmethod
    async def find_by_user_and_type(self, user_id: str, data_type: LGPDDataType,
                                    purpose: LGPDPurpose) -> Consent | None:
        """The consent record for a data type and purpose, active or not."""

    async def find_active_by_user_and_type(self, user_id: str, data_type: LGPDDataType,
                                           purpose: LGPDPurpose) -> Consent | None:
        consent = await self.find_by_user_and_type(user_id, data_type, purpose)
        return consent if consent is not None and consent.is_active() else None

    @abstractmethod
    async def find_expired_consents(self, max_age_months: int = DEFAULT_MAX_AGE_MONTHS) -> list[Consent]:
        """Active consents older than max_age_months."""

    @abstractmethod
    async def find_consents_needing_renewal(
        self, threshold_months: int = DEFAULT_RENEWAL_THRESHOLD_MONTHS,
    ) -> list[Consent]:
        """Active consents older than threshold_months."""

    @abstractmethod
    async def revoke_all_user_consents(self, user_id: str, reason: str) -> int:
        """
        Revoke every active consent of a user.

        Returns:
            Number of consents revoked
        """

    @abstractmethod
    async def delete_all_user_data(self, user_id: str) -> int:
        """
        Erase every consent record of a user.

        Returns:
            Number of records deleted
        """

    @abstractmethod
    async def get_consent_statistics(self, start: datetime, end: datetime) -> ConsentStatistics:
        """Counts over consents created in [start, end]."""


# --- In-Memory Implementations ---


class InMemoryUserRepository(UserRepository):
    """
    In-memory user repository.

    Stores persistence rows rather than live aggregates, so callers never
    share state with the store.
    """

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._rows: dict[str, dict[str, Any]] = {}
        self._email_index: dict[str, str] = {}
        self._event_bus = event_bus
        self._lock = asyncio.Lock()

    async def find_by_id(self, entity_id: str) -> User | None:
        row = self._rows.get(entity_id)
        return User.from_persistence(row) if row else None

    async def find_by_email(self, email: str) -> User | None:
        user_id = self._email_index.get(email.strip().lower())
        return await self.find_by_id(user_id) if user_id else None

    async def exists_by_email(self, email: str) -> bool:
        return email.strip().lower() in self._email_index

    async def save(self, entity: User) -> User:
        async with self._lock:
            owner = self._email_index.get(entity.email.value)
            if owner is not None and owner != entity.id:
                raise EmailAlreadyExistsError(entity.email.value)
            previous = self._rows.get(entity.id)
            if previous and previous["email"] != entity.email.value:
                self._email_index.pop(previous["email"], None)
            self._rows[entity.id] = entity.to_persistence()
            self._email_index[entity.email.value] = entity.id
        logger.debug("user_saved", user_id=entity.id, created=previous is None)
        await publish_pending_events(entity, self._event_bus)
        return entity

    async def delete(self, entity_id: str) -> None:
        async with self._lock:
            row = self._rows.pop(entity_id, None)
            if row is None:
                raise UserNotFoundError(entity_id)
            self._email_index.pop(row["email"], None)
        logger.debug("user_deleted", user_id=entity_id)

    def _all(self) -> list[User]:
        return [User.from_persistence(row) for row in self._rows.values()]

    async def count_by_subscription_tier(self, tier: SubscriptionTier) -> int:
        return sum(1 for row in self._rows.values() if row["subscription_tier"] == SubscriptionTier(tier).value)

    async def find_recently_registered(self, days: int = 7) -> list[User]:
        since = DateTimeUtils.days_ago(days)
        users = [u for u in self._all() if u.created_at >= since]
        return sorted(users, key=lambda u: u.created_at, reverse=True)

    async def search(self, options: UserSearchOptions) -> UserSearchResult:
        users = self._all()
        if options.query:
            needle = options.query.lower()
            users = [u for u in users if needle in u.email.value or needle in u.profile.name.lower()]
        if options.subscription_tier is not None:
            users = [u for u in users if u.subscription_tier == options.subscription_tier]
        if options.subscription_status is not None:
            users = [u for u in users if u.subscription_status == options.subscription_status]
        if options.email_verified is not None:
            users = [u for u in users if u.is_email_verified == options.email_verified]
        users.sort(key=lambda u: u.created_at, reverse=True)
        page = users[options.offset:options.offset + options.limit]
        return UserSearchResult(users=page, total=len(users),
                                has_more=options.offset + len(page) < len(users))

    async def get_statistics(self) -> UserStatistics:
        users = self._all()
        since = DateTimeUtils.days_ago(30)
        return UserStatistics(
            total_users=len(users),
            verified_users=sum(1 for u in users if u.is_email_verified),
            two_factor_users=sum(1 for u in users if u.is_two_factor_enabled),
            subscription_breakdown={tier.value: sum(1 for u in users if u.subscription_tier == tier)
                                    for tier in SubscriptionTier},
            recent_registrations=sum(1 for u in users if u.created_at >= since),
            active_subscriptions=sum(1 for u in users
                                     if u.subscription_status == SubscriptionStatus.ACTIVE),
        )

    def clear(self) -> None:
        """Clear all data (testing utility)."""
        self._rows.clear()
        self._email_index.clear()


class InMemoryConsentRepository(ConsentRepository):
    """In-memory consent repository keyed by id with a natural-key index."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._rows: dict[str, dict[str, Any]] = {}
        self._event_bus = event_bus
        self._lock = asyncio.Lock()

    def _all(self) -> list[Consent]:
        return [Consent.from_persistence(row) for row in self._rows.values()]

    async def find_by_id(self, entity_id: str) -> Consent | None:
        row = self._rows.get(entity_id)
        return Consent.from_persistence(row) if row else None

    async def save(self, entity: Consent) -> Consent:
        async with self._lock:
            for row in self._rows.values():
                if (row["id"] != entity.id and row["user_id"] == entity.user_id
                        and row["data_type"] == entity.data_type.value
                        and row["purpose"] == entity.purpose.value):
                    raise ConsentAlreadyExistsError(entity.user_id, entity.data_type.value,
                                                    entity.purpose.value)
            self._rows[entity.id] = entity.to_persistence()
        await publish_pending_events(entity, self._event_bus)
        return entity

    async def delete(self, entity_id: str) -> None:
        async with self._lock:
            if self._rows.pop(entity_id, None) is None:
                raise ConsentNotFoundError(entity_id)

    async def find_by_user(self, user_id: str,
                           options: ConsentSearchOptions | None = None) -> list[Consent]:
        options = options or ConsentSearchOptions()
        consents = [c for c in self._all() if c.user_id == user_id and options.matches(c)]
        return sorted(consents, key=lambda c: c.created_at, reverse=True)

    async def find_by_user_and_type(self, user_id: str, data_type: LGPDDataType,
                                    purpose: LGPDPurpose) -> Consent | None:
        for row in self._rows.values():
            if (row["user_id"] == user_id and row["data_type"] == LGPDDataType(data_type).value
                    and row["purpose"] == LGPDPurpose(purpose).value):
                return Consent.from_persistence(row)
        return None

    async def find_expired_consents(self, max_age_months: int = DEFAULT_MAX_AGE_MONTHS) -> list[Consent]:
        return [c for c in self._all() if c.is_active() and c.is_expired(max_age_months)]

    async def find_consents_needing_renewal(
        self, threshold_months: int = DEFAULT_RENEWAL_THRESHOLD_MONTHS,
    ) -> list[Consent]:
        return [c for c in self._all() if c.is_active() and c.needs_renewal(threshold_months)]

    async def revoke_all_user_consents(self, user_id: str, reason: str) -> int:
        active = [c for c in self._all() if c.user_id == user_id and c.is_active()]
        for consent in active:
            consent.revoke(reason)
            await self.save(consent)
        return len(active)

    async def delete_all_user_data(self, user_id: str) -> int:
        async with self._lock:
            ids = [cid for cid, row in self._rows.items() if row["user_id"] == user_id]
            for cid in ids:
                del self._rows[cid]
        logger.info("consent_user_data_deleted", user_id=user_id, count=len(ids))
        return len(ids)

    async def get_consent_statistics(self, start: datetime, end: datetime) -> ConsentStatistics:
        start, end = DateTimeUtils.ensure_utc(start), DateTimeUtils.ensure_utc(end)
        return ConsentStatistics.from_consents(
            [c for c in self._all() if start <= c.created_at <= end]
        )

    def clear(self) -> None:
        """Clear all data (testing utility)."""
        self._rows.clear()


# --- Factory ---


class RepositoryFactory:
    """
    Creates repository instances for the configured backend.

    SQLAlchemy repositories are used when `use_database` is set and a
    DatabaseManager is supplied; otherwise in-memory. Instances are cached.
    """

    def __init__(
        self,
        *,
        use_database: bool = False,
        database: Any | None = None,
        event_bus: EventBus | None = None,
        metrics: Any | None = None,
    ) -> None:
        self._use_database = use_database
        self._database = database
        self._event_bus = event_bus
        self._metrics = metrics
        self._user_repo: UserRepository | None = None
        self._consent_repo: ConsentRepository | None = None

    @property
    def uses_database(self) -> bool:
        return self._use_database and self._database is not None

    def get_user_repository(self) -> UserRepository:
        """Get or create user repository."""
        if self._user_repo is None:
            if self.uses_database:
                from .sql_repository import SqlAlchemyUserRepository
                self._user_repo = SqlAlchemyUserRepository(
                    self._database, event_bus=self._event_bus, metrics=self._metrics,
                )
                logger.info("user_repository_created", type="sqlalchemy")
            else:
                self._user_repo = InMemoryUserRepository(self._event_bus)
                logger.info("user_repository_created", type="in_memory")
        return self._user_repo

    def get_consent_repository(self) -> ConsentRepository:
        """Get or create consent repository."""
        if self._consent_repo is None:
            if self.uses_database:
                from .sql_repository import SqlAlchemyConsentRepository
                self._consent_repo = SqlAlchemyConsentRepository(
                    self._database, event_bus=self._event_bus, metrics=self._metrics,
                )
                logger.info("consent_repository_created", type="sqlalchemy")
            else:
                self._consent_repo = InMemoryConsentRepository(self._event_bus)
                logger.info("consent_repository_created", type="in_memory")
        return self._consent_repo
