"""
Tests for the Argon2 password hasher.
"""
from __future__ import annotations

import pytest

from exames_users.domain import Password
from exames_users.infrastructure import Argon2PasswordHasher, PasswordConfig


@pytest.fixture
def hasher() -> Argon2PasswordHasher:
    # Low cost parameters keep the suite fast
    return Argon2PasswordHasher(PasswordConfig(time_cost=1, memory_cost=1024))


class TestArgon2PasswordHasher:
    """Tests for Argon2PasswordHasher."""

    def test_hash_is_argon2id_and_salted(self, hasher: Argon2PasswordHasher) -> None:
        first = hasher.hash("Str0ng!Pass")
        second = hasher.hash("Str0ng!Pass")
        assert first.startswith("$argon2id$")
        assert first != second

    def test_verify(self, hasher: Argon2PasswordHasher) -> None:
        hashed = hasher.hash("Str0ng!Pass")
        assert hasher.verify("Str0ng!Pass", hashed)
        assert not hasher.verify("Wr0ng!Pass", hashed)

    def test_verify_unreadable_hash(self, hasher: Argon2PasswordHasher) -> None:
        assert not hasher.verify("Str0ng!Pass", "not-a-hash")

    def test_needs_rehash_after_parameter_change(self, hasher: Argon2PasswordHasher) -> None:
        hashed = hasher.hash("Str0ng!Pass")
        assert not hasher.needs_rehash(hashed)
        stronger = Argon2PasswordHasher(PasswordConfig(time_cost=2, memory_cost=1024))
        assert stronger.needs_rehash(hashed)

    def test_config_bounds(self) -> None:
        with pytest.raises(ValueError):
            PasswordConfig(hash_len=4)


class TestPasswordWithArgon2:
    """Password value object backed by the real hasher."""

    @pytest.mark.asyncio
    async def test_round_trip(self, hasher: Argon2PasswordHasher) -> None:
        password = Password.create_from_plaintext("Str0ng!Pass", hasher)
        restored = Password.create_from_hash(password.hash)
        assert await restored.verify("Str0ng!Pass", hasher)
        assert not await restored.verify("str0ng!pass", hasher)
