"""Storefront persistence layer: declarative base, records and session management."""

from storefront_backend.db.base import Base, prefixed
from storefront_backend.db.errors import InvalidEnumValueError, MassAssignmentError, ModelError
from storefront_backend.db import commerce, models  # noqa: F401  (registers every mapper)

__all__ = [
    "Base",
    "InvalidEnumValueError",
    "MassAssignmentError",
    "ModelError",
    "prefixed",
]
