"""
SQLAlchemy ORM models for the storefront.

Important:
- Attribute, Collection, ProductType and Cart extend the framework's column sets
  from `storefront_backend.db.commerce`; they add no local columns (Cart adds only
  its channel relationship).
- Structured payload columns hold arbitrary nested key/value data with no declared
  schema.
- Enumerated columns are validated on assignment and guarded by CHECK constraints.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Integer,
    Numeric,
    String,
    Text,
    select,
    update,
)
from sqlalchemy.orm import Mapped, Session, foreign, mapped_column, relationship, validates
from sqlalchemy.sql import Select

from storefront_backend.db.base import (
    Base,
    FillableMixin,
    Payload,
    SoftDeleteMixin,
    TimestampMixin,
    check_choice,
    choice_sql,
    fk,
    prefixed,
)
from storefront_backend.db.commerce import (
    AttributeFields,
    CartFields,
    Channel,
    CollectionFields,
    FitFinderQuestion,
    ProductImport,
    ProductTypeFields,
    ReferralAttribution,
    ReferralProgram,
    ReferralRule,
    User,
)

STACKING_EXCLUSIVE = "exclusive"
STACKING_BEST_OF = "best_of"
STACKING_STACKABLE = "stackable"
STACKING_MODES = (STACKING_EXCLUSIVE, STACKING_BEST_OF, STACKING_STACKABLE)

VIP_TIERS = ("bronze", "silver", "gold", "platinum", "vip")

EARTH_RADIUS_KM = 6371.0


class Attribute(AttributeFields, Base, FillableMixin, TimestampMixin):
    """attributes table."""

    __tablename__ = prefixed("attributes")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class Collection(CollectionFields, Base, FillableMixin, TimestampMixin):
    """collections table."""

    __tablename__ = prefixed("collections")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class ProductType(ProductTypeFields, Base, FillableMixin, TimestampMixin):
    """product_types table."""

    __tablename__ = prefixed("product_types")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class Cart(CartFields, Base, FillableMixin, TimestampMixin):
    """carts table."""

    __tablename__ = prefixed("carts")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    channel: Mapped[Channel] = relationship("Channel", back_populates="carts")
    pricing_snapshots: Mapped[List["CartPricingSnapshot"]] = relationship(
        "CartPricingSnapshot",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartPricingSnapshot.id",
    )


class CartPricingSnapshot(Base, FillableMixin, TimestampMixin):
    """cart_pricing_snapshots table."""

    __tablename__ = prefixed("cart_pricing_snapshots")
    __fillable__ = ("cart_id", "snapshot_type", "pricing_data", "trigger", "pricing_version")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cart_id: Mapped[int] = mapped_column(Integer, fk("carts", ondelete="CASCADE"), nullable=False, index=True)
    snapshot_type: Mapped[str] = mapped_column(Text, nullable=False, default="calculation")
    pricing_data: Mapped[dict] = mapped_column(Payload, nullable=False)
    trigger: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pricing_version: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cart: Mapped[Cart] = relationship("Cart", back_populates="pricing_snapshots")


class CustomizationTemplate(Base, FillableMixin, TimestampMixin):
    """customization_templates table."""

    __tablename__ = prefixed("customization_templates")
    __fillable__ = (
        "name",
        "description",
        "category",
        "template_data",
        "preview_image",
        "usage_count",
        "is_active",
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    template_data: Mapped[dict] = mapped_column(Payload, nullable=False, default=dict)
    preview_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @classmethod
    def active(cls) -> Select:
        return select(cls).where(cls.is_active.is_(True))

    @classmethod
    def in_category(cls, category: str) -> Select:
        return select(cls).where(cls.category == category)

    @classmethod
    def catalog(cls, category: Optional[str] = None) -> Select:
        """Active templates, most used first, optionally limited to one category."""
        stmt = cls.active()
        if category:
            stmt = stmt.where(cls.category == category)
        return stmt.order_by(cls.usage_count.desc(), cls.id)

    def increment_usage(self, session: Session) -> int:
        """Increment the usage counter in the store and return the refreshed value."""
        # Done in SQL so concurrent increments are not lost.
        session.execute(
            update(CustomizationTemplate)
            .where(CustomizationTemplate.id == self.id)
            .values(usage_count=CustomizationTemplate.usage_count + 1)
        )
        session.refresh(self, ["usage_count"])
        return self.usage_count


class DeviceFingerprint(Base, FillableMixin, TimestampMixin):
    """device_fingerprints table."""

    __tablename__ = prefixed("device_fingerprints")
    __fillable__ = (
        "fingerprint_hash",
        "user_agent_hash",
        "screen_resolution",
        "timezone",
        "language",
        "metadata_",
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fingerprint_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_agent_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    screen_resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timezone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes.
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", Payload, nullable=True)

    attributions: Mapped[List[ReferralAttribution]] = relationship(
        "ReferralAttribution",
        primaryjoin=lambda: DeviceFingerprint.fingerprint_hash
        == foreign(ReferralAttribution.device_fingerprint_hash),
        viewonly=True,
    )


class PaymentFingerprint(Base, FillableMixin, TimestampMixin):
    """payment_fingerprints table."""

    __tablename__ = prefixed("payment_fingerprints")
    __fillable__ = ("fingerprint_hash", "card_last4", "card_brand", "card_country", "metadata_")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fingerprint_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    card_last4: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    card_brand: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    card_country: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", Payload, nullable=True)

    attributions: Mapped[List[ReferralAttribution]] = relationship(
        "ReferralAttribution",
        primaryjoin=lambda: PaymentFingerprint.fingerprint_hash
        == foreign(ReferralAttribution.payment_fingerprint_hash),
        viewonly=True,
    )


class FitFinderAnswer(Base, FillableMixin, TimestampMixin):
    """fit_finder_answers table."""

    __tablename__ = prefixed("fit_finder_answers")
    __fillable__ = (
        "fit_finder_question_id",
        "answer_text",
        "size_recommendation",
        "display_order",
        "size_adjustment",
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fit_finder_question_id: Mapped[int] = mapped_column(
        Integer, fk("fit_finder_questions", ondelete="CASCADE"), nullable=False, index=True
    )
    answer_text: Mapped[str] = mapped_column(Text, nullable=False)
    size_recommendation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    size_adjustment: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)

    question: Mapped[FitFinderQuestion] = relationship("FitFinderQuestion", back_populates="answers")


class ProductImportError(Base, FillableMixin, TimestampMixin):
    """product_import_errors table."""

    __tablename__ = prefixed("product_import_errors")
    __fillable__ = ("import_id", "row_number", "field", "error_message", "error_type", "row_data")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    import_id: Mapped[int] = mapped_column(Integer, fk("product_imports", ondelete="CASCADE"), nullable=False, index=True)
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    field: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    error_type: Mapped[str] = mapped_column(Text, nullable=False, default="validation")
    row_data: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)

    product_import: Mapped[ProductImport] = relationship("ProductImport", back_populates="errors")


class ReferralClick(Base, FillableMixin, TimestampMixin):
    """referral_clicks table."""

    __tablename__ = prefixed("referral_clicks")
    __fillable__ = ("referrer_user_id", "referral_code", "ip_hash", "user_agent_hash", "landing_url", "session_id")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    referrer_user_id: Mapped[int] = mapped_column(Integer, fk("users", ondelete="CASCADE"), nullable=False, index=True)
    referral_code: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    ip_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    landing_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    referrer: Mapped[User] = relationship("User", back_populates="referral_clicks")


class ReferralUserOverride(Base, FillableMixin, TimestampMixin):
    """referral_user_overrides table."""

    __tablename__ = prefixed("referral_user_overrides")
    __fillable__ = (
        "user_id",
        "referral_program_id",
        "referral_rule_id",
        "reward_value_override",
        "stacking_mode_override",
        "max_redemptions_override",
        "block_referrals",
        "vip_tier",
        "metadata_",
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, fk("users", ondelete="CASCADE"), nullable=False, index=True)
    # A null program or rule means the override applies to all of them.
    referral_program_id: Mapped[Optional[int]] = mapped_column(
        Integer, fk("referral_programs", ondelete="CASCADE"), nullable=True
    )
    referral_rule_id: Mapped[Optional[int]] = mapped_column(
        Integer, fk("referral_rules", ondelete="CASCADE"), nullable=True
    )
    reward_value_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    stacking_mode_override: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    max_redemptions_override: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    block_referrals: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vip_tier: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", Payload, nullable=True)

    user: Mapped[User] = relationship("User")
    program: Mapped[Optional[ReferralProgram]] = relationship("ReferralProgram")
    rule: Mapped[Optional[ReferralRule]] = relationship("ReferralRule")

    __table_args__ = (
        CheckConstraint(
            choice_sql("stacking_mode_override", STACKING_MODES),
            name="referral_user_overrides_stacking_mode_override_check",
        ),
        CheckConstraint(choice_sql("vip_tier", VIP_TIERS), name="referral_user_overrides_vip_tier_check"),
    )

    @validates("stacking_mode_override")
    def _validate_stacking_mode(self, key: str, value: Optional[str]) -> Optional[str]:
        return check_choice(key, value, STACKING_MODES)

    @validates("vip_tier")
    def _validate_vip_tier(self, key: str, value: Optional[str]) -> Optional[str]:
        return check_choice(key, value, VIP_TIERS)

    @classmethod
    def for_user(cls, user_id: int, program_id: Optional[int] = None) -> Select:
        """Overrides of one user; with a program, those for it or for all programs."""
        stmt = select(cls).where(cls.user_id == user_id)
        if program_id is not None:
            stmt = stmt.where(
                (cls.referral_program_id == program_id) | cls.referral_program_id.is_(None)
            ).order_by(cls.referral_program_id.is_(None), cls.id)
        return stmt

    def effective_stacking_mode(self, default: str = STACKING_EXCLUSIVE) -> str:
        return self.stacking_mode_override or default


class ReviewMedia(Base, FillableMixin, TimestampMixin):
    """review_media table."""

    __tablename__ = prefixed("review_media")
    __fillable__ = ("review_id", "media_id", "position")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    review_id: Mapped[int] = mapped_column(Integer, fk("reviews", ondelete="CASCADE"), nullable=False, index=True)
    media_id: Mapped[int] = mapped_column(Integer, fk("media", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UserGroup(Base, FillableMixin, TimestampMixin, SoftDeleteMixin):
    """user_groups table."""

    __tablename__ = prefixed("user_groups")
    __fillable__ = ("name", "type", "default_discount_stack_policy", "meta")

    TYPE_B2C = "b2c"
    TYPE_B2B = "b2b"
    TYPE_VIP = "vip"
    TYPE_STAFF = "staff"
    TYPES = (TYPE_B2C, TYPE_B2B, TYPE_VIP, TYPE_STAFF)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False, default=TYPE_B2C)
    default_discount_stack_policy: Mapped[str] = mapped_column(Text, nullable=False, default=STACKING_EXCLUSIVE)
    meta: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)

    users: Mapped[List[User]] = relationship("User", back_populates="group")

    __table_args__ = (
        CheckConstraint(choice_sql("type", TYPES), name="user_groups_type_check"),
        CheckConstraint(
            choice_sql("default_discount_stack_policy", STACKING_MODES),
            name="user_groups_default_discount_stack_policy_check",
        ),
    )

    @validates("type")
    def _validate_type(self, key: str, value: str) -> str:
        return check_choice(key, value, self.TYPES, nullable=False)

    @validates("default_discount_stack_policy")
    def _validate_stacking_policy(self, key: str, value: str) -> str:
        return check_choice(key, value, STACKING_MODES, nullable=False)

    @property
    def is_b2b(self) -> bool:
        return self.type == self.TYPE_B2B

    @property
    def is_vip(self) -> bool:
        return self.type == self.TYPE_VIP

    @property
    def is_staff(self) -> bool:
        return self.type == self.TYPE_STAFF


class Warehouse(Base, FillableMixin, TimestampMixin, SoftDeleteMixin):
    """warehouses table."""

    __tablename__ = prefixed("warehouses")
    __fillable__ = (
        "name",
        "code",
        "address",
        "city",
        "state",
        "postcode",
        "country",
        "is_active",
        "priority",
        "latitude",
        "longitude",
        "service_areas",
        "fulfillment_rules",
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    postcode: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Lower number = higher priority.
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 8), nullable=True)
    longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(11, 8), nullable=True)
    service_areas: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)
    fulfillment_rules: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)

    rules: Mapped[List["WarehouseFulfillmentRule"]] = relationship(
        "WarehouseFulfillmentRule",
        back_populates="warehouse",
        cascade="all, delete-orphan",
        order_by="WarehouseFulfillmentRule.priority",
    )

    @classmethod
    def active(cls) -> Select:
        return select(cls).where(cls.is_active.is_(True))

    @classmethod
    def by_priority(cls, stmt: Optional[Select] = None) -> Select:
        """Order `stmt` (all warehouses by default) by priority, lower number first."""
        return (stmt if stmt is not None else select(cls)).order_by(cls.priority, cls.id)

    @property
    def full_address(self) -> str:
        parts = [self.address, self.city, self.state, self.postcode, self.country]
        return ", ".join(part for part in parts if part)

    def serves_location(self, location: Mapping[str, Any]) -> bool:
        """
        Whether this warehouse ships to `location`.

        `service_areas` may hold `countries`, `regions` and `postal_codes` lists;
        each list only restricts when it is set and the location carries a non-null
        value for the matching key (`country`, `region`, `postcode`). No service
        areas means no restriction.
        """
        areas = self.service_areas or {}
        for area_key, location_key in (("countries", "country"), ("regions", "region"), ("postal_codes", "postcode")):
            allowed = areas.get(area_key)
            value = location.get(location_key)
            if allowed is not None and value is not None and value not in allowed:
                return False
        return True

    def distance_to(self, latitude: float, longitude: float) -> Optional[float]:
        """Great-circle distance in kilometres, or None without coordinates."""
        if self.latitude is None or self.longitude is None:
            return None

        lat1, lng1 = math.radians(float(self.latitude)), math.radians(float(self.longitude))
        lat2, lng2 = math.radians(latitude), math.radians(longitude)
        d_lat = lat2 - lat1
        d_lng = lng2 - lng1

        a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
        return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class WarehouseFulfillmentRule(Base, FillableMixin, TimestampMixin):
    """warehouse_fulfillment_rules table."""

    __tablename__ = prefixed("warehouse_fulfillment_rules")
    __fillable__ = ("warehouse_id", "rule_type", "rule_config", "priority", "conditions", "is_active")

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    warehouse_id: Mapped[int] = mapped_column(Integer, fk("warehouses", ondelete="CASCADE"), nullable=False, index=True)
    rule_type: Mapped[str] = mapped_column(Text, nullable=False)
    rule_config: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conditions: Mapped[Optional[dict]] = mapped_column(Payload, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    warehouse: Mapped[Warehouse] = relationship("Warehouse", back_populates="rules")

    @classmethod
    def active(cls) -> Select:
        return select(cls).where(cls.is_active.is_(True))

    @classmethod
    def for_warehouse(cls, warehouse_id: int, stmt: Optional[Select] = None) -> Select:
        return (stmt if stmt is not None else select(cls)).where(cls.warehouse_id == warehouse_id)

    @classmethod
    def by_priority(cls, stmt: Optional[Select] = None) -> Select:
        return (stmt if stmt is not None else select(cls)).order_by(cls.priority, cls.id)
