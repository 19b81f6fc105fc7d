"""Exames database infrastructure: declarative base and async session management."""

from .base_models import Base, TimestampMixin
from .connection import DatabaseManager

__all__ = ["Base", "TimestampMixin", "DatabaseManager"]
