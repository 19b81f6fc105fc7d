"""
Exames Users - Password Hashing.

Argon2id implementation of the PasswordHashingService port consumed by the
Password value object.
"""
from __future__ import annotations

import structlog
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class PasswordConfig(BaseModel):
    """Argon2 parameters."""
    time_cost: int = Field(default=2, ge=1, description="Number of iterations")
    memory_cost: int = Field(default=65536, ge=8, description="Memory in KiB")
    parallelism: int = Field(default=1, ge=1, description="Number of parallel threads")
    hash_len: int = Field(default=32, ge=16, description="Hash length in bytes")
    salt_len: int = Field(default=16, ge=8, description="Salt length in bytes")


class Argon2PasswordHasher:
    """Hashes and verifies passwords with Argon2id."""

    def __init__(self, config: PasswordConfig | None = None) -> None:
        self.config = config or PasswordConfig()
        self._hasher = PasswordHasher(
            time_cost=self.config.time_cost,
            memory_cost=self.config.memory_cost,
            parallelism=self.config.parallelism,
            hash_len=self.config.hash_len,
            salt_len=self.config.salt_len,
        )

    def hash(self, plaintext: str) -> str:
        password_hash = self._hasher.hash(plaintext)
        logger.debug("password_hashed", algorithm="argon2id")
        return password_hash

    def verify(self, plaintext: str, hashed: str) -> bool:
        """False on mismatch or on a hash this hasher cannot read."""
        try:
            return self._hasher.verify(hashed, plaintext)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError) as e:
            logger.warning("password_verification_failed", error_type=type(e).__name__)
            return False

    def needs_rehash(self, hashed: str) -> bool:
        return self._hasher.check_needs_rehash(hashed)
