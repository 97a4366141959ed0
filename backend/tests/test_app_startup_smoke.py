"""Smoke tests focused on startup-critical components."""

from fastapi.testclient import TestClient

from app.startup import REQUIRED_TABLES, StartupValidator, init_db
from core.database import Base


def test_tables_router_is_mounted():
    from app.main import app

    paths = {route.path for route in app.router.routes}

    assert "/api/v1/tables/{table_id}/session" in paths
    assert "/api/v1/tables/ws/{outlet_id}/{floor_id}" in paths


def test_root_handler_returns_expected_message():
    from app.main import app

    response = TestClient(app).get("/")

    assert response.json() == {"message": "FloorState backend is running"}


def test_required_tables_match_models():
    init_db()

    assert set(REQUIRED_TABLES) <= set(Base.metadata.tables)


def test_validator_passes_against_test_database():
    init_db()
    validator = StartupValidator()

    passed, errors, _warnings = validator.validate_all()

    assert passed, errors
    assert not any("Missing database tables" in w for w in validator.warnings)
