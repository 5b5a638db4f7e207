"""
SQLAlchemy declarative base and the mixins shared by all storefront records.

Table names are built from a configurable prefix (DB_TABLE_PREFIX) plus an
entity-specific suffix. Use `prefixed()` for table names and `fk()` for
foreign keys so both follow the same prefix.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, ClassVar, Mapping, Optional, Tuple

from sqlalchemy import JSON, DateTime, ForeignKey, MetaData, event, func, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    ORMExecuteState,
    Session,
    mapped_column,
    with_loader_criteria,
)
from sqlalchemy.sql import Select

from storefront_backend.db.errors import InvalidEnumValueError, MassAssignmentError

logger = logging.getLogger(__name__)

# Naming conventions help Alembic/migrations; even though we don't generate migrations,
# they also make reflection/debugging more consistent across environments.
_NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# The storefront dropped the framework's default "lunar_" prefix, so the default is empty.
TABLE_PREFIX: str = os.getenv("DB_TABLE_PREFIX", "")

# Structured payloads: JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
Payload = JSON().with_variant(JSONB(), "postgresql")


def prefixed(suffix: str) -> str:
    """Return the full table name for an entity-specific suffix."""
    return f"{TABLE_PREFIX}{suffix}"


def fk(table_suffix: str, column: str = "id", **kwargs: Any) -> ForeignKey:
    """ForeignKey to `<prefix><table_suffix>.<column>`."""
    return ForeignKey(f"{prefixed(table_suffix)}.{column}", **kwargs)


def check_choice(field: str, value: Optional[str], allowed: Tuple[str, ...], nullable: bool = True) -> Optional[str]:
    """Validate an enumerated value; used from `@validates` hooks."""
    if value is None and nullable:
        return value
    if value not in allowed:
        raise InvalidEnumValueError(field, value, allowed)
    return value


def choice_sql(column: str, allowed: Tuple[str, ...]) -> str:
    """SQL predicate for a CHECK constraint restricting `column` to `allowed`."""
    quoted = ",".join(f"'{value}'" for value in allowed)
    return f"{column} in ({quoted})"


class Base(DeclarativeBase):
    """Declarative base for ORM models."""

    metadata = MetaData(naming_convention=_NAMING_CONVENTION)


class TimestampMixin:
    """Common timestamp columns in the schema."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class FillableMixin:
    """
    Mass assignment restricted to a declared field set.

    `__fillable__` lists exactly the storable fields a record accepts on
    create/update. Keys outside it are rejected as a whole; nothing is
    assigned when any key is rejected.
    """

    __fillable__: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def _guard(cls, values: Mapping[str, Any]) -> None:
        rejected = sorted(set(values) - set(cls.__fillable__))
        if rejected:
            logger.debug("Rejected mass assignment on %s: %s", cls.__name__, rejected)
            raise MassAssignmentError(cls.__name__, rejected)

    @classmethod
    def create(cls, session: Session, **values: Any):
        """Build a record from fillable values, add it to the session and flush."""
        cls._guard(values)
        record = cls(**values)
        session.add(record)
        session.flush()
        return record

    def fill(self, **values: Any):
        self._guard(values)
        for key, value in values.items():
            setattr(self, key, value)
        return self

    def update(self, session: Session, **values: Any):
        """Fill fillable values and flush the change."""
        self.fill(**values)
        session.flush()
        return self


class SoftDeleteMixin:
    """
    Records retained with a deletion marker instead of being removed.

    ORM selects exclude marked rows unless executed with
    `include_deleted=True` (see `with_trashed()` / `only_trashed()`).
    """

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    @property
    def trashed(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        self.deleted_at = datetime.now(timezone.utc)
        logger.debug("Soft-deleted %s id=%s", type(self).__name__, getattr(self, "id", None))

    def restore(self) -> None:
        self.deleted_at = None
        logger.debug("Restored %s id=%s", type(self).__name__, getattr(self, "id", None))

    @classmethod
    def with_trashed(cls) -> Select:
        return select(cls).execution_options(include_deleted=True)

    @classmethod
    def only_trashed(cls) -> Select:
        return select(cls).where(cls.deleted_at.is_not(None)).execution_options(include_deleted=True)


@event.listens_for(Session, "do_orm_execute")
def _exclude_soft_deleted(execute_state: ORMExecuteState) -> None:
    # Also filters lazy loads that emit SQL. Many-to-one loads served from the identity
    # map skip it, so an already-loaded trashed parent is still returned.
    if (
        execute_state.is_select
        and not execute_state.is_column_load
        and not execute_state.execution_options.get("include_deleted", False)
    ):
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                SoftDeleteMixin,
                lambda cls: cls.deleted_at.is_(None),
                include_aliases=True,
            )
        )
