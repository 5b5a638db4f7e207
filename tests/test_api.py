"""HTTP surface of the storefront backend."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront_backend.api.main import app, create_app
from storefront_backend.db import prefixed
from storefront_backend.db.session import get_db

client = TestClient(app)


@pytest.fixture
def unreachable_client():
    application = create_app()
    broken = sessionmaker(bind=create_engine("sqlite:////nonexistent-dir/storefront.db"))

    def _broken_db():
        db = broken()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = _broken_db
    return TestClient(application)


def test_health_check():
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "Healthy"}


def test_health_db_check():
    response = client.get("/health/db")

    assert response.status_code == 200
    assert response.json() == {"database": "ok", "ok": True}


def test_health_db_check_reports_unreachable_database(unreachable_client):
    response = unreachable_client.get("/health/db")

    assert response.status_code == 200
    assert response.json() == {"database": "unreachable", "ok": False}


def test_schema_tables_lists_prefixed_names():
    response = client.get("/schema/tables")
    tables = response.json()["tables"]

    assert response.status_code == 200
    assert tables == sorted(tables)
    for suffix in (
        "cart_pricing_snapshots",
        "customization_templates",
        "review_media",
        "product_import_errors",
        "warehouse_fulfillment_rules",
        "user_groups",
    ):
        assert prefixed(suffix) in tables


def test_describe_table_lists_columns_and_foreign_keys():
    response = client.get(f"/schema/tables/{prefixed('review_media')}")
    body = response.json()

    assert response.status_code == 200
    assert body["table"] == prefixed("review_media")
    assert {"review_id", "media_id"} <= {column["name"] for column in body["columns"]}
    assert body["foreign_keys"] == sorted([f"{prefixed('media')}.id", f"{prefixed('reviews')}.id"])


def test_describe_unknown_table_is_not_found():
    response = client.get("/schema/tables/no_such_table")

    assert response.status_code == 404
    assert response.json() == {"detail": "Unknown table: no_such_table"}
