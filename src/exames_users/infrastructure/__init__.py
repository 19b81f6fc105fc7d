"""
Exames Users - Infrastructure Layer.

Infrastructure implementations for external dependencies:
- Repositories: abstract contracts, in-memory and SQLAlchemy implementations
- Argon2PasswordHasher: password hashing with argon2-cffi
"""
from __future__ import annotations

from .models import ConsentModel, UserModel
from .password_service import Argon2PasswordHasher, PasswordConfig
from .repository import (
    ConsentRepository,
    ConsentSearchOptions,
    ConsentStatistics,
    InMemoryConsentRepository,
    InMemoryUserRepository,
    RepositoryFactory,
    UserRepository,
    UserSearchOptions,
    UserSearchResult,
    UserStatistics,
    publish_pending_events,
)
from .sql_repository import SqlAlchemyConsentRepository, SqlAlchemyUserRepository

__all__ = [
    # Repositories
    "UserRepository",
    "ConsentRepository",
    "InMemoryUserRepository",
    "InMemoryConsentRepository",
    "SqlAlchemyUserRepository",
    "SqlAlchemyConsentRepository",
    "RepositoryFactory",
    "publish_pending_events",
    # Query models
    "UserSearchOptions",
    "UserSearchResult",
    "UserStatistics",
    "ConsentSearchOptions",
    "ConsentStatistics",
    # ORM
    "UserModel",
    "ConsentModel",
    # Password hashing
    "Argon2PasswordHasher",
    "PasswordConfig",
]
