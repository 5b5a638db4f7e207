"""
Records provided by the commerce framework.

Two kinds of definitions live here:
- `*Fields` mixins: the framework's column set for an entity the storefront
  extends (see `storefront_backend.db.models`). They carry no table of their own.
- Concrete framework records the storefront only references (channels, users,
  referral programs, reviews, media, ...). Only the columns the storefront
  touches are mapped.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront_backend.db.base import Base, FillableMixin, Payload, TimestampMixin, fk, prefixed


# --- Field sets extended by storefront models -------------------------------------------


class AttributeFields:
    """lunar attributes columns."""

    __fillable__ = (
        "attributable_type",
        "attribute_type",
        "attribute_group_id",
        "handle",
        "section",
        "position",
        "name",
        "description",
        "configuration",
        "required",
        "system",
        "searchable",
        "filterable",
    )

    attributable_type: Mapped[str] = mapped_column(Text, nullable=False)
    attribute_type: Mapped[str] = mapped_column(Text, nullable=False)
    attribute_group_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    handle: Mapped[str] = mapped_column(Text, nullable=False)
    section: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[dict] = mapped_column(Payload, nullable=False)
    description: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)
    configuration: Mapped[dict] = mapped_column(Payload, nullable=False, default=dict)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    searchable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    filterable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CollectionFields:
    """lunar collections columns."""

    __fillable__ = ("collection_group_id", "parent_id", "type", "sort", "attribute_data")

    collection_group_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    parent_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="static")
    sort: Mapped[str] = mapped_column(Text, nullable=False, default="custom")
    attribute_data: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)


class ProductTypeFields:
    """lunar product_types columns."""

    __fillable__ = ("name",)

    name: Mapped[str] = mapped_column(Text, nullable=False)


class CartFields:
    """lunar carts columns."""

    __fillable__ = (
        "user_id",
        "merged_id",
        "currency_code",
        "channel_id",
        "coupon_code",
        "completed_at",
        "meta",
    )

    user_id: Mapped[Optional[int]] = mapped_column(Integer, fk("users", ondelete="SET NULL"), nullable=True)
    merged_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    channel_id: Mapped[int] = mapped_column(Integer, fk("channels", ondelete="RESTRICT"), nullable=False)
    coupon_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    meta: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)


# --- Framework records referenced by the storefront --------------------------------------


class Channel(Base, FillableMixin, TimestampMixin):
    """channels table."""

    __tablename__ = prefixed("channels")
    __fillable__ = ("name", "handle", "default", "url")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    handle: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    carts: Mapped[List["Cart"]] = relationship("Cart", back_populates="channel")


class User(Base, FillableMixin, TimestampMixin):
    """users table."""

    __tablename__ = prefixed("users")
    __fillable__ = ("name", "email", "user_group_id")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    user_group_id: Mapped[Optional[int]] = mapped_column(
        Integer, fk("user_groups", ondelete="SET NULL"), nullable=True
    )

    group: Mapped[Optional["UserGroup"]] = relationship("UserGroup", back_populates="users")
    referral_clicks: Mapped[List["ReferralClick"]] = relationship("ReferralClick", back_populates="referrer")


class FitFinderQuestion(Base, FillableMixin, TimestampMixin):
    """fit_finder_questions table."""

    __tablename__ = prefixed("fit_finder_questions")
    __fillable__ = ("question_text", "question_type", "display_order", "is_active")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(Text, nullable=False, default="single_choice")
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    answers: Mapped[List["FitFinderAnswer"]] = relationship(
        "FitFinderAnswer",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="FitFinderAnswer.display_order",
    )


class ProductImport(Base, FillableMixin, TimestampMixin):
    """product_imports table."""

    __tablename__ = prefixed("product_imports")
    __fillable__ = ("file_name", "status", "total_rows", "processed_rows", "successful_rows", "failed_rows")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    errors: Mapped[List["ProductImportError"]] = relationship(
        "ProductImportError",
        back_populates="product_import",
        cascade="all, delete-orphan",
        order_by="ProductImportError.row_number",
    )


class ReferralProgram(Base, FillableMixin, TimestampMixin):
    """referral_programs table."""

    __tablename__ = prefixed("referral_programs")
    __fillable__ = ("name", "handle", "status")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    handle: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")

    rules: Mapped[List["ReferralRule"]] = relationship(
        "ReferralRule", back_populates="program", cascade="all, delete-orphan"
    )


class ReferralRule(Base, FillableMixin, TimestampMixin):
    """referral_rules table."""

    __tablename__ = prefixed("referral_rules")
    __fillable__ = ("referral_program_id", "trigger_event", "stacking_mode")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    referral_program_id: Mapped[int] = mapped_column(
        Integer, fk("referral_programs", ondelete="CASCADE"), nullable=False
    )
    trigger_event: Mapped[str] = mapped_column(Text, nullable=False)
    stacking_mode: Mapped[str] = mapped_column(Text, nullable=False, default="exclusive")

    program: Mapped[ReferralProgram] = relationship("ReferralProgram", back_populates="rules")


class ReferralAttribution(Base, FillableMixin, TimestampMixin):
    """referral_attributions table."""

    __tablename__ = prefixed("referral_attributions")
    __fillable__ = (
        "referee_user_id",
        "referrer_user_id",
        "program_id",
        "code_used",
        "status",
        "device_fingerprint_hash",
        "payment_fingerprint_hash",
        "attributed_at",
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    referee_user_id: Mapped[int] = mapped_column(Integer, fk("users", ondelete="CASCADE"), nullable=False)
    referrer_user_id: Mapped[int] = mapped_column(Integer, fk("users", ondelete="CASCADE"), nullable=False)
    program_id: Mapped[int] = mapped_column(Integer, fk("referral_programs", ondelete="CASCADE"), nullable=False)
    code_used: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    device_fingerprint_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    payment_fingerprint_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    attributed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    referee: Mapped[User] = relationship("User", foreign_keys=[referee_user_id])
    referrer: Mapped[User] = relationship("User", foreign_keys=[referrer_user_id])
    program: Mapped[ReferralProgram] = relationship("ReferralProgram")


class Review(Base, FillableMixin, TimestampMixin):
    """reviews table."""

    __tablename__ = prefixed("reviews")
    __fillable__ = ("product_id", "customer_name", "rating", "title", "content")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Products are owned by the catalog service; no FK is declared here.
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    customer_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Media(Base, FillableMixin, TimestampMixin):
    """media table."""

    __tablename__ = prefixed("media")
    __fillable__ = ("file_name", "mime_type", "disk", "size")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    disk: Mapped[str] = mapped_column(Text, nullable=False, default="public")
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("disk", "file_name", name="media_disk_file_name_key"),)
