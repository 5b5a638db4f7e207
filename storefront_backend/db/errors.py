"""
Model-level errors raised by the storefront records.

Store-level failures (integrity violations, missing foreign keys) are not
wrapped; they surface as SQLAlchemy exceptions.
"""

from __future__ import annotations

from typing import Iterable, Sequence


class ModelError(Exception):
    """Base class for errors raised by storefront models."""


class MassAssignmentError(ModelError):
    """Raised when create/update receives fields outside a model's fillable set."""

    def __init__(self, model: str, fields: Sequence[str]):
        self.model = model
        self.fields = tuple(fields)
        super().__init__(f"{model} does not accept field(s): {', '.join(self.fields)}")


class InvalidEnumValueError(ModelError, ValueError):
    """Raised when an enumerated attribute is set to a value outside its set."""

    def __init__(self, field: str, value: object, allowed: Iterable[str]):
        self.field = field
        self.value = value
        self.allowed = tuple(allowed)
        super().__init__(f"{field}={value!r} is not one of: {', '.join(self.allowed)}")
