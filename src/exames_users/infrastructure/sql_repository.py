"""
Exames Users - SQLAlchemy Repository Implementations.

Async SQLAlchemy repositories for the User and Consent aggregates. Every
operation is timed with measure_performance and counted per operation and
outcome; SQLAlchemy failures are translated into the error taxonomy.

Architecture Layer: Infrastructure
Principles: Repository Pattern, Dependency Inversion
"""
from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from exames_common.domain import EventBus
from exames_common.exceptions import (
    ConsentAlreadyExistsError,
    ConsentNotFoundError,
    DatabaseError,
    EmailAlreadyExistsError,
    ExamesError,
    UserNotFoundError,
)
from exames_common.utils import DateTimeUtils
from exames_infrastructure.database import DatabaseManager
from exames_infrastructure.observability import Metrics, MetricsRegistry, measure_performance

from ..domain.consent import (
    Consent,
    DEFAULT_MAX_AGE_MONTHS,
    DEFAULT_RENEWAL_THRESHOLD_MONTHS,
    LGPDDataType,
    LGPDPurpose,
)
from ..domain.entities import SubscriptionStatus, SubscriptionTier, User
from .models import ConsentModel, UserModel
from .repository import (
    ConsentRepository,
    ConsentSearchOptions,
    ConsentStatistics,
    UserRepository,
    UserSearchOptions,
    UserSearchResult,
    UserStatistics,
    publish_pending_events,
)

logger = structlog.get_logger(__name__)

# Shortest calendar month; used to pre-filter age queries before the exact check.
_MIN_DAYS_PER_MONTH = 28


class _SqlRepositoryBase:
    """Shared session, metrics and error translation."""

    _name: str = "repository"

    def __init__(self, database: DatabaseManager, *, event_bus: EventBus | None = None,
                 metrics: Metrics | None = None) -> None:
        self._db = database
        self._event_bus = event_bus
        self._metrics: Metrics = metrics or MetricsRegistry()

    @asynccontextmanager
    async def _operation(self, operation: str) -> AsyncIterator[None]:
        status = "success"
        try:
            async with measure_performance(f"{self._name}.{operation}", metrics=self._metrics,
                                           domain="users"):
                yield
        except ExamesError:
            status = "error"
            raise
        except SQLAlchemyError as e:
            status = "error"
            raise DatabaseError(f"{self._name} {operation} failed: {e}", cause=e) from e
        except Exception:
            status = "error"
            raise
        finally:
            self._metrics.counter(f"{self._name}_operations_total",
                                  labels={"operation": operation, "status": status})


class SqlAlchemyUserRepository(_SqlRepositoryBase, UserRepository):
    """User repository over the `users` table."""

    _name = "user_repository"

    async def find_by_id(self, entity_id: str) -> User | None:
        async with self._operation("find_by_id"):
            async with self._db.session() as session:
                model = await session.get(UserModel, entity_id)
                return User.from_persistence(model.to_row()) if model else None

    async def find_by_email(self, email: str) -> User | None:
        async with self._operation("find_by_email"):
            async with self._db.session() as session:
                model = await session.scalar(
                    select(UserModel).where(UserModel.email == email.strip().lower())
                )
                return User.from_persistence(model.to_row()) if model else None

    async def exists_by_email(self, email: str) -> bool:
        async with self._operation("exists_by_email"):
            async with self._db.session() as session:
                owner = await session.scalar(
                    select(UserModel.id).where(UserModel.email == email.strip().lower())
                )
                return owner is not None

    async def save(self, entity: User) -> User:
        """
        Insert or update a user, then publish its queued events.

        Raises:
            EmailAlreadyExistsError: If another user owns the email, including a
                concurrent insert caught by the unique index at commit
        """
        async with self._operation("save"):
            try:
                async with self._db.session() as session:
                    owner = await session.scalar(
                        select(UserModel.id).where(UserModel.email == entity.email.value)
                    )
                    if owner is not None and owner != entity.id:
                        raise EmailAlreadyExistsError(entity.email.value)
                    model = await session.get(UserModel, entity.id)
                    if model is None:
                        model = UserModel()
                        session.add(model)
                    model.apply_row(entity.to_persistence())
            except IntegrityError as e:
                raise EmailAlreadyExistsError(entity.email.value, cause=e) from e
        logger.debug("user_saved", user_id=entity.id)
        await publish_pending_events(entity, self._event_bus)
        return entity

    async def delete(self, entity_id: str) -> None:
        async with self._operation("delete"):
            async with self._db.session() as session:
                result = await session.execute(delete(UserModel).where(UserModel.id == entity_id))
                if result.rowcount == 0:
                    raise UserNotFoundError(entity_id)
        logger.debug("user_deleted", user_id=entity_id)

    async def count_by_subscription_tier(self, tier: SubscriptionTier) -> int:
        async with self._operation("count_by_subscription_tier"):
            async with self._db.session() as session:
                count = await session.scalar(
                    select(func.count()).select_from(UserModel)
                    .where(UserModel.subscription_tier == SubscriptionTier(tier).value)
                )
                return count or 0

    async def find_recently_registered(self, days: int = 7) -> list[User]:
        async with self._operation("find_recently_registered"):
            async with self._db.session() as session:
                models = await session.scalars(
                    select(UserModel).where(UserModel.created_at >= DateTimeUtils.days_ago(days))
                    .order_by(UserModel.created_at.desc())
                )
                return [User.from_persistence(m.to_row()) for m in models]

    @staticmethod
    def _apply_filters(stmt: Select[Any], options: UserSearchOptions) -> Select[Any]:
        if options.query:
            needle = options.query.lower()
            stmt = stmt.where(or_(UserModel.email.contains(needle),
                                  func.lower(UserModel.name).contains(needle)))
        if options.subscription_tier is not None:
            stmt = stmt.where(UserModel.subscription_tier == options.subscription_tier.value)
        if options.subscription_status is not None:
            stmt = stmt.where(UserModel.subscription_status == options.subscription_status.value)
        if options.email_verified is not None:
            stmt = stmt.where(UserModel.email_verified.is_(options.email_verified))
        return stmt

    async def search(self, options: UserSearchOptions) -> UserSearchResult:
        async with self._operation("search"):
            async with self._db.session() as session:
                total = await session.scalar(
                    self._apply_filters(select(func.count()).select_from(UserModel), options)
                ) or 0
                models = await session.scalars(
                    self._apply_filters(select(UserModel), options)
                    .order_by(UserModel.created_at.desc())
                    .offset(options.offset).limit(options.limit)
                )
                users = [User.from_persistence(m.to_row()) for m in models]
        return UserSearchResult(users=users, total=total,
                                has_more=options.offset + len(users) < total)

    async def get_statistics(self) -> UserStatistics:
        async with self._operation("get_statistics"):
            async with self._db.session() as session:
                def count(*conditions: Any) -> Any:
                    return session.scalar(select(func.count()).select_from(UserModel).where(*conditions))

                total = await count()
                verified = await count(UserModel.email_verified.is_(True))
                two_factor = await count(UserModel.two_factor_enabled.is_(True))
                recent = await count(UserModel.created_at >= DateTimeUtils.days_ago(30))
                active = await count(UserModel.subscription_status == SubscriptionStatus.ACTIVE.value)
                rows = await session.execute(
                    select(UserModel.subscription_tier, func.count()).group_by(UserModel.subscription_tier)
                )
                breakdown = {tier.value: 0 for tier in SubscriptionTier}
                breakdown.update({tier: n for tier, n in rows.all()})
        return UserStatistics(
            total_users=total or 0,
            verified_users=verified or 0,
            two_factor_users=two_factor or 0,
            subscription_breakdown=breakdown,
            recent_registrations=recent or 0,
            active_subscriptions=active or 0,
        )


class SqlAlchemyConsentRepository(_SqlRepositoryBase, ConsentRepository):
    """Consent repository over the `lgpd_consents` table."""

    _name = "consent_repository"

    @staticmethod
    def _active() -> tuple[Any, Any]:
        return ConsentModel.consent_given.is_(True), ConsentModel.revoked_date.is_(None)

    async def find_by_id(self, entity_id: str) -> Consent | None:
        async with self._operation("find_by_id"):
            async with self._db.session() as session:
                model = await session.get(ConsentModel, entity_id)
                return Consent.from_persistence(model.to_row()) if model else None

    async def save(self, entity: Consent) -> Consent:
        """
        Insert or update a consent, then publish its queued events.

        Raises:
            ConsentAlreadyExistsError: If another record holds the same user,
                data type and purpose
        """
        async with self._operation("save"):
            try:
                async with self._db.session() as session:
                    model = await session.get(ConsentModel, entity.id)
                    if model is None:
                        model = ConsentModel()
                        session.add(model)
                    model.apply_row(entity.to_persistence())
            except IntegrityError as e:
                raise ConsentAlreadyExistsError(entity.user_id, entity.data_type.value,
                                                entity.purpose.value, cause=e) from e
        await publish_pending_events(entity, self._event_bus)
        return entity

    async def delete(self, entity_id: str) -> None:
        async with self._operation("delete"):
            async with self._db.session() as session:
                result = await session.execute(delete(ConsentModel).where(ConsentModel.id == entity_id))
                if result.rowcount == 0:
                    raise ConsentNotFoundError(entity_id)

    async def find_by_user(self, user_id: str,
                           options: ConsentSearchOptions | None = None) -> list[Consent]:
        options = options or ConsentSearchOptions()
        stmt = select(ConsentModel).where(ConsentModel.user_id == user_id)
        if not options.include_revoked:
            stmt = stmt.where(*self._active())
        if options.data_type is not None:
            stmt = stmt.where(ConsentModel.data_type == options.data_type.value)
        if options.purpose is not None:
            stmt = stmt.where(ConsentModel.purpose == options.purpose.value)
        if options.legal_basis is not None:
            stmt = stmt.where(ConsentModel.legal_basis == options.legal_basis.value)
        if options.source is not None:
            stmt = stmt.where(ConsentModel.source == options.source.value)
        if options.created_after is not None:
            stmt = stmt.where(ConsentModel.created_at >= DateTimeUtils.ensure_utc(options.created_after))
        if options.created_before is not None:
            stmt = stmt.where(ConsentModel.created_at <= DateTimeUtils.ensure_utc(options.created_before))
        async with self._operation("find_by_user"):
            async with self._db.session() as session:
                models = await session.scalars(stmt.order_by(ConsentModel.created_at.desc()))
                return [Consent.from_persistence(m.to_row()) for m in models]

    async def find_by_user_and_type(self, user_id: str, data_type: LGPDDataType,
                                    purpose: LGPDPurpose) -> Consent | None:
        async with self._operation("find_by_user_and_type"):
            async with self._db.session() as session:
                model = await session.scalar(
                    select(ConsentModel).where(
                        ConsentModel.user_id == user_id,
                        ConsentModel.data_type == LGPDDataType(data_type).value,
                        ConsentModel.purpose == LGPDPurpose(purpose).value,
                    ).order_by(ConsentModel.created_at.desc()).limit(1)
                )
                return Consent.from_persistence(model.to_row()) if model else None

    async def _active_older_than(self, operation: str, months: int) -> list[Consent]:
        cutoff = DateTimeUtils.utc_now() - timedelta(days=_MIN_DAYS_PER_MONTH * months)
        async with self._operation(operation):
            async with self._db.session() as session:
                models = await session.scalars(
                    select(ConsentModel).where(*self._active(), ConsentModel.consent_date <= cutoff)
                )
                return [Consent.from_persistence(m.to_row()) for m in models]

    async def find_expired_consents(self, max_age_months: int = DEFAULT_MAX_AGE_MONTHS) -> list[Consent]:
        candidates = await self._active_older_than("find_expired_consents", max_age_months)
        return [c for c in candidates if c.is_expired(max_age_months)]

    async def find_consents_needing_renewal(
        self, threshold_months: int = DEFAULT_RENEWAL_THRESHOLD_MONTHS,
    ) -> list[Consent]:
        candidates = await self._active_older_than("find_consents_needing_renewal", threshold_months)
        return [c for c in candidates if c.needs_renewal(threshold_months)]

    async def revoke_all_user_consents(self, user_id: str, reason: str) -> int:
        """Revoke every active consent in one transaction, then publish the events."""
        revoked: list[Consent] = []
        async with self._operation("revoke_all_user_consents"):
            async with self._db.session() as session:
                models = await session.scalars(
                    select(ConsentModel).where(ConsentModel.user_id == user_id, *self._active())
                )
                for model in models.all():
                    consent = Consent.from_persistence(model.to_row())
                    consent.revoke(reason)
                    model.apply_row(consent.to_persistence())
                    revoked.append(consent)
        for consent in revoked:
            await publish_pending_events(consent, self._event_bus)
        logger.info("consents_revoked_for_user", user_id=user_id, count=len(revoked))
        return len(revoked)

    async def delete_all_user_data(self, user_id: str) -> int:
        async with self._operation("delete_all_user_data"):
            async with self._db.session() as session:
                result = await session.execute(
                    delete(ConsentModel).where(ConsentModel.user_id == user_id)
                )
                count = result.rowcount or 0
        logger.info("consent_user_data_deleted", user_id=user_id, count=count)
        return count

    async def get_consent_statistics(self, start: datetime, end: datetime) -> ConsentStatistics:
        async with self._operation("get_consent_statistics"):
            async with self._db.session() as session:
                models = await session.scalars(
                    select(ConsentModel).where(
                        ConsentModel.created_at >= DateTimeUtils.ensure_utc(start),
                        ConsentModel.created_at <= DateTimeUtils.ensure_utc(end),
                    )
                )
                consents = [Consent.from_persistence(m.to_row()) for m in models]
        return ConsentStatistics.from_consents(consents)
