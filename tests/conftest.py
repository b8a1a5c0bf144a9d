"""
Shared pytest fixtures for the Fire-Proofing Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup + group cache flush (autouse)
    - client: Flask test client (function-scoped)
    - store: Empty InMemoryDataAccess
    - seeded: InMemoryDataAccess with one project and three elements
"""

import pytest

from tracker import create_app
from tracker.models import db as _db
from tracker.services import cache_service
from tracker.services.data_access import InMemoryDataAccess
from tracker.services.records import ElementRecord, ProjectRecord


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        cache_service.clear_all()
        yield
        cache_service.clear_all()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── In-memory store fixtures ─────────────────────────────────────────────


@pytest.fixture()
def store():
    return InMemoryDataAccess()


@pytest.fixture()
def seeded(store):
    """Project 1 with elements A, B, C on two grids."""
    project = store.add_project(ProjectRecord(title="Refinery Unit 3"))
    for mark, grid, area in (("A", "G1", 10.0), ("B", "G1", 5.0), ("C", "G2", 7.5)):
        store.add_element(ElementRecord(
            project_id=project.id,
            part_mark_no=mark,
            grid_no=grid,
            level="L1",
            member_type="Beam",
            qty=1,
            surface_area_sqm=area,
        ))
    return store
