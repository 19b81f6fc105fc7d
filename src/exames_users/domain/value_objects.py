"""
Exames Users - Domain Value Objects.

Value objects are immutable objects defined by their attributes.
Each one validates itself on construction; an invalid instance cannot exist.

Architecture Layer: Domain
Principles: Immutability, Value Equality, Self-Validation
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, ClassVar, Protocol

from pydantic import model_validator
import structlog

from exames_common.domain import SingleValueObject, ValueObject
from exames_common.exceptions import ValidationError
from exames_common.utils import ValidationPatterns, ValidationUtils

logger = structlog.get_logger(__name__)


class Theme(str, Enum):
    """UI theme."""

    LIGHT = "light"
    DARK = "dark"


class ColorPalette(str, Enum):
    """Closed palette for primary and secondary colors."""

    BLUE = "blue"
    GREEN = "green"
    PURPLE = "purple"
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    PINK = "pink"
    GRAY = "gray"


def _field_data(data: Any, field: str) -> Any:
    return data.get(field) if isinstance(data, dict) else data


class UserEmail(SingleValueObject[str]):
    """
    Validated, normalized email address.

    Business Rules:
    - Trimmed and lower-cased
    - Must match local@domain.tld with no whitespace
    - At most 254 characters
    """

    MAX_LENGTH: ClassVar[int] = 254

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> dict[str, Any]:
        raw = _field_data(data, "value")
        if raw is None or not isinstance(raw, str) or not raw.strip():
            raise ValidationError("email", raw, "Email is required")
        normalized = raw.strip().lower()
        if not ValidationPatterns.EMAIL.match(normalized):
            raise ValidationError("email", raw, "Invalid email format")
        if len(normalized) > cls.MAX_LENGTH:
            raise ValidationError("email", raw, "Email is too long")
        return {"value": normalized}

    @classmethod
    def create(cls, raw: str) -> UserEmail:
        return cls(value=raw)

    @property
    def domain(self) -> str:
        return self.value.split("@", 1)[1]

    @property
    def local_part(self) -> str:
        return self.value.split("@", 1)[0]


class UserProfile(ValueObject):
    """
    Public profile of a user.

    Business Rules:
    - name: trimmed, 2 to 100 characters
    - bio: trimmed, at most 500 characters; blank becomes None
    - image_url: absolute http(s) URL; blank becomes None
    """

    NAME_MIN: ClassVar[int] = 2
    NAME_MAX: ClassVar[int] = 100
    BIO_MAX: ClassVar[int] = 500

    name: str
    bio: str | None = None
    image_url: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError("name", data, "Name is required")
        name = data.get("name")
        if name is None or not isinstance(name, str) or not name.strip():
            raise ValidationError("name", name, "Name is required")
        name = name.strip()
        if len(name) < cls.NAME_MIN:
            raise ValidationError("name", name, "Name must be at least 2 characters")
        if len(name) > cls.NAME_MAX:
            raise ValidationError("name", name, "Name is too long (max 100 characters)")

        bio = data.get("bio")
        bio = bio.strip() if isinstance(bio, str) else None
        if bio and len(bio) > cls.BIO_MAX:
            raise ValidationError("bio", bio, "Bio is too long (max 500 characters)")

        image_url = data.get("image_url")
        image_url = image_url.strip() if isinstance(image_url, str) else None
        if image_url and not ValidationUtils.is_http_url(image_url):
            raise ValidationError("image_url", image_url, "Invalid image URL format")

        return {"name": name, "bio": bio or None, "image_url": image_url or None}

    @classmethod
    def create(cls, name: str, bio: str | None = None, image_url: str | None = None) -> UserProfile:
        return cls(name=name, bio=bio, image_url=image_url)

    def _equality_components(self) -> tuple[Any, ...]:
        return (self.name, self.bio, self.image_url)

    @property
    def initials(self) -> str:
        """First letter of each word, uppercased, at most two."""
        return "".join(word[0] for word in self.name.split()).upper()[:2]

    @property
    def display_name(self) -> str:
        return self.name

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "bio": self.bio, "image_url": self.image_url}


class UserPreferences(ValueObject):
    """Theme and palette choices of a user."""

    theme: Theme
    primary_color: ColorPalette
    secondary_color: ColorPalette

    @model_validator(mode="before")
    @classmethod
    def _validate_choices(cls, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError("theme", data, "Preferences must be a mapping")
        return {
            "theme": cls._coerce(Theme, "theme", data.get("theme"), "Theme"),
            "primary_color": cls._coerce(ColorPalette, "primary_color",
                                         data.get("primary_color"), "Primary color"),
            "secondary_color": cls._coerce(ColorPalette, "secondary_color",
                                           data.get("secondary_color"), "Secondary color"),
        }

    @staticmethod
    def _coerce(enum_cls: type[Enum], field: str, value: Any, label: str) -> Enum:
        try:
            return enum_cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            raise ValidationError(field, value, f"{label} must be one of: {allowed}") from None

    @classmethod
    def create(cls, theme: Theme | str, primary_color: ColorPalette | str,
               secondary_color: ColorPalette | str) -> UserPreferences:
        return cls(theme=theme, primary_color=primary_color, secondary_color=secondary_color)

    @classmethod
    def default(cls) -> UserPreferences:
        return cls.create(Theme.LIGHT, ColorPalette.BLUE, ColorPalette.GRAY)

    def _equality_components(self) -> tuple[Any, ...]:
        return (self.theme, self.primary_color, self.secondary_color)

    @property
    def css_variables(self) -> dict[str, str]:
        return {
            "--theme": self.theme.value,
            "--primary-color": self.primary_color.value,
            "--secondary-color": self.secondary_color.value,
        }

    def to_dict(self) -> dict[str, str]:
        return {
            "theme": self.theme.value,
            "primary_color": self.primary_color.value,
            "secondary_color": self.secondary_color.value,
        }


class PasswordHashingService(Protocol):
    """Hashing primitive used by Password; implemented in infrastructure."""

    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, hashed: str) -> bool: ...


class Password(SingleValueObject[str]):
    """
    Hashed password.

    Two construction paths: from plaintext (policy check, then hash) or
    from an existing hash (no policy check). The wrapped value is always a
    hash.
    """

    MIN_LENGTH: ClassVar[int] = 8
    MAX_LENGTH: ClassVar[int] = 128
    SPECIAL_CHARACTERS: ClassVar[frozenset[str]] = frozenset('!@#$%^&*(),.?":{}|<>')
    COMMON_PASSWORDS: ClassVar[frozenset[str]] = frozenset({"password123", "12345678", "qwerty123"})

    @model_validator(mode="before")
    @classmethod
    def _require_hash(cls, data: Any) -> dict[str, Any]:
        hashed = _field_data(data, "value")
        if not hashed or not isinstance(hashed, str):
            raise ValidationError("password", "***", "Password hash is required")
        return {"value": hashed}

    @classmethod
    def validate_policy(cls, plaintext: str | None) -> None:
        """Raise ValidationError if plaintext violates the complexity policy."""
        if not plaintext:
            raise ValidationError("password", "***", "Password is required")
        if len(plaintext) < cls.MIN_LENGTH:
            raise ValidationError("password", "***", "Password must be at least 8 characters")
        if len(plaintext) > cls.MAX_LENGTH:
            raise ValidationError("password", "***", "Password is too long")
        has_upper = any(c.isupper() for c in plaintext)
        has_lower = any(c.islower() for c in plaintext)
        has_digit = any(c.isdigit() for c in plaintext)
        has_special = any(c in cls.SPECIAL_CHARACTERS for c in plaintext)
        if not (has_upper and has_lower and has_digit and has_special):
            raise ValidationError(
                "password", "***",
                "Password must contain uppercase, lowercase, numbers, and special characters",
            )
        if plaintext.lower() in cls.COMMON_PASSWORDS:
            raise ValidationError("password", "***", "Password is too common")

    @classmethod
    def create_from_plaintext(cls, plaintext: str, hasher: PasswordHashingService) -> Password:
        cls.validate_policy(plaintext)
        return cls(value=hasher.hash(plaintext))

    @classmethod
    def create_from_hash(cls, hashed_password: str) -> Password:
        return cls(value=hashed_password)

    async def verify(self, plaintext: str, hasher: PasswordHashingService) -> bool:
        """Compare plaintext against the stored hash off the event loop."""
        return await asyncio.to_thread(hasher.verify, plaintext, self.value)

    @property
    def hash(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return "Password(***)"

    def __str__(self) -> str:
        return "***"
