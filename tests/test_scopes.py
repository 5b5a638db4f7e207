"""Named query scopes and record helpers."""

from decimal import Decimal

import pytest
from conftest import TestSessionLocal

from storefront_backend.db import InvalidEnumValueError
from storefront_backend.db.commerce import ReferralProgram
from storefront_backend.db.models import (
    STACKING_BEST_OF,
    STACKING_EXCLUSIVE,
    CustomizationTemplate,
    ReferralUserOverride,
    Warehouse,
    WarehouseFulfillmentRule,
)


@pytest.fixture
def templates(db_session):
    return {
        "engraving": CustomizationTemplate.create(db_session, name="Engraving", category="metal", usage_count=5),
        "etching": CustomizationTemplate.create(db_session, name="Etching", category="metal", usage_count=9),
        "patch": CustomizationTemplate.create(db_session, name="Patch", category="textile", usage_count=1),
        "retired": CustomizationTemplate.create(
            db_session, name="Retired", category="metal", usage_count=50, is_active=False
        ),
    }


def test_active_templates_only(db_session, templates):
    names = {t.name for t in db_session.scalars(CustomizationTemplate.active())}

    assert names == {"Engraving", "Etching", "Patch"}


def test_templates_in_category(db_session, templates):
    names = {t.name for t in db_session.scalars(CustomizationTemplate.in_category("metal"))}

    assert names == {"Engraving", "Etching", "Retired"}
    assert db_session.scalars(CustomizationTemplate.in_category("paper")).all() == []


def test_catalog_orders_by_usage(db_session, templates):
    assert [t.name for t in db_session.scalars(CustomizationTemplate.catalog("metal"))] == ["Etching", "Engraving"]
    assert [t.name for t in db_session.scalars(CustomizationTemplate.catalog())] == ["Etching", "Engraving", "Patch"]


def test_increment_usage(db_session, templates):
    patch = templates["patch"]

    assert patch.increment_usage(db_session) == 2
    assert patch.increment_usage(db_session) == 3

    assert patch.usage_count == 3
    assert isinstance(patch.usage_count, int)


def test_increment_usage_keeps_increments_from_other_sessions(db_session, templates):
    patch = templates["patch"]
    db_session.commit()

    with TestSessionLocal() as other:
        other.get(CustomizationTemplate, patch.id).increment_usage(other)
        other.commit()

    assert patch.increment_usage(db_session) == 3


def test_fulfillment_rules_by_priority(db_session):
    warehouse = Warehouse.create(db_session, name="Berlin", code="BER")
    other = Warehouse.create(db_session, name="Paris", code="PAR")
    low = WarehouseFulfillmentRule.create(db_session, warehouse_id=warehouse.id, rule_type="stock", priority=20)
    high = WarehouseFulfillmentRule.create(db_session, warehouse_id=warehouse.id, rule_type="geo", priority=1)
    off = WarehouseFulfillmentRule.create(db_session, warehouse_id=warehouse.id, rule_type="off", priority=0, is_active=False)
    foreign = WarehouseFulfillmentRule.create(db_session, warehouse_id=other.id, rule_type="geo", priority=5)

    active = WarehouseFulfillmentRule.active()
    assert db_session.scalars(
        WarehouseFulfillmentRule.by_priority(WarehouseFulfillmentRule.for_warehouse(warehouse.id, active))
    ).all() == [high, low]
    assert db_session.scalars(WarehouseFulfillmentRule.by_priority(active)).all() == [high, foreign, low]
    assert db_session.scalars(WarehouseFulfillmentRule.by_priority()).all() == [off, high, foreign, low]
    assert len(db_session.scalars(WarehouseFulfillmentRule.active()).all()) == 3


def test_warehouses_by_priority_orders_and_composes_with_active(db_session):
    second = Warehouse.create(db_session, name="Hamburg", code="HAM", priority=2)
    first = Warehouse.create(db_session, name="Berlin", code="BER", priority=1)
    closed = Warehouse.create(db_session, name="Closed", code="OLD", priority=0, is_active=False)
    trashed = Warehouse.create(db_session, name="Moved", code="MOV", priority=0)
    trashed.soft_delete()
    db_session.flush()

    assert db_session.scalars(Warehouse.by_priority(Warehouse.active())).all() == [first, second]
    assert db_session.scalars(Warehouse.by_priority()).all() == [closed, first, second]


@pytest.mark.unit
def test_warehouse_full_address_skips_blank_parts():
    warehouse = Warehouse(name="Berlin", code="BER", address="Hauptstr. 1", city="Berlin", postcode="10115", country="DE")

    assert warehouse.full_address == "Hauptstr. 1, Berlin, 10115, DE"


@pytest.mark.unit
def test_warehouse_serves_location():
    warehouse = Warehouse(
        name="Berlin",
        code="BER",
        service_areas={"countries": ["DE", "AT"], "postal_codes": ["10115", "1010"]},
    )

    assert warehouse.serves_location({"country": "DE", "postcode": "10115"})
    assert warehouse.serves_location({"country": "AT"})
    assert not warehouse.serves_location({"country": "FR"})
    assert not warehouse.serves_location({"country": "DE", "postcode": "80331"})
    assert Warehouse(name="Any", code="ANY").serves_location({"country": "US"})


@pytest.mark.unit
def test_warehouse_serves_location_ignores_null_areas_and_values():
    unrestricted = Warehouse(name="Berlin", code="BER", service_areas={"countries": None, "regions": ["BE"]})
    germany_only = Warehouse(name="Munich", code="MUC", service_areas={"countries": ["DE"]})

    assert unrestricted.serves_location({"country": "DE", "region": "BE"})
    assert not unrestricted.serves_location({"country": "DE", "region": "BY"})
    assert germany_only.serves_location({"country": None})
    assert germany_only.serves_location({"postcode": "80331"})


@pytest.mark.unit
def test_warehouse_distance():
    berlin = Warehouse(name="Berlin", code="BER", latitude=Decimal("52.52000000"), longitude=Decimal("13.40500000"))

    assert berlin.distance_to(52.52, 13.405) == pytest.approx(0.0, abs=1e-6)
    # Berlin to Paris is roughly 878 km.
    assert berlin.distance_to(48.8566, 2.3522) == pytest.approx(878, rel=0.01)
    assert Warehouse(name="Virtual", code="VIRT").distance_to(0.0, 0.0) is None


def test_overrides_for_user_prefer_program_specific(db_session, user):
    program = ReferralProgram.create(db_session, name="Friends", handle="friends")
    other_program = ReferralProgram.create(db_session, name="Creators", handle="creators")
    catch_all = ReferralUserOverride.create(db_session, user_id=user.id, vip_tier="silver")
    specific = ReferralUserOverride.create(
        db_session, user_id=user.id, referral_program_id=program.id, stacking_mode_override=STACKING_BEST_OF
    )
    ReferralUserOverride.create(db_session, user_id=user.id, referral_program_id=other_program.id)

    assert db_session.scalars(ReferralUserOverride.for_user(user.id, program.id)).all() == [specific, catch_all]
    assert len(db_session.scalars(ReferralUserOverride.for_user(user.id)).all()) == 3
    assert db_session.scalars(ReferralUserOverride.for_user(user.id + 100)).all() == []

    assert specific.effective_stacking_mode() == STACKING_BEST_OF
    assert catch_all.effective_stacking_mode() == STACKING_EXCLUSIVE


@pytest.mark.unit
def test_override_enumerations_are_validated():
    with pytest.raises(InvalidEnumValueError):
        ReferralUserOverride(user_id=1, vip_tier="diamond")
    with pytest.raises(InvalidEnumValueError):
        ReferralUserOverride(user_id=1, stacking_mode_override="sum")

    assert ReferralUserOverride(user_id=1, vip_tier=None).vip_tier is None


def test_scopes_compose_with_further_filters(db_session, templates):
    stmt = CustomizationTemplate.active().where(CustomizationTemplate.usage_count > 4)

    assert {t.name for t in db_session.scalars(stmt)} == {"Engraving", "Etching"}
