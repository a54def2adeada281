"""Shared fixtures: a Flask app on in-memory SQLite and a store bound to its session."""
import pytest

from tracker import create_app
from tracker.config import TestingConfig
from tracker.models import db
from tracker.production.store import ProductionStore


@pytest.fixture
def app():
    """Create Flask application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def store(app):
    """Store bound to the app's session, as the routes build it per request."""
    return ProductionStore(db.session)
