"""
Pytest configuration and shared fixtures for the car wash backend tests.
"""

import os

# Must be set before the app modules read the environment
os.environ["TESTING"] = "True"
os.environ["FLASK_ENV"] = "testing"

import sys  # noqa: E402
import bcrypt  # noqa: E402
import pytest  # noqa: E402
from flask import Flask  # noqa: E402
from main import create_app  # noqa: E402
from carwash.config import is_production_database  # noqa: E402
from carwash.extensions import db as database  # noqa: E402
from carwash.models import Base, User  # noqa: E402

TEST_PASSWORD = "password123"


@pytest.fixture(scope="session")
def app():
    """Create and configure a test app instance."""
    app = create_app()

    app.config.update(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key-for-testing-only-0123456789",
            "SCHEDULER_ENABLED": False,
        }
    )

    # Double-check we're not using production
    actual_db_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if is_production_database(actual_db_uri):
        print(f" CRITICAL: App is configured with a production database: {actual_db_uri}")
        sys.exit(1)

    print(f"✅ Running tests against: {actual_db_uri}")

    yield app


@pytest.fixture
def db(app: Flask):
    """Fresh tables for every test."""
    with app.app_context():
        Base.metadata.create_all(bind=database.engine)

        yield database

        database.session.remove()
        Base.metadata.drop_all(bind=database.engine)


@pytest.fixture
def client(app, db):
    return app.test_client()


@pytest.fixture
def make_user(db):
    """Factory for users with the shared test password."""

    def _make_user(email, role="user", full_name="Test User", is_active=True):
        hashed_pw = bcrypt.hashpw(TEST_PASSWORD.encode("utf-8"), bcrypt.gensalt())
        user = User(
            email=email,
            full_name=full_name,
            password_hash=hashed_pw.decode("utf-8"),
            role=role,
            contact_number="09171234567",
            is_active=is_active,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def sample_user(make_user):
    return make_user("customer@example.com", full_name="Juan Dela Cruz")


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@example.com", role="admin", full_name="Admin User")


@pytest.fixture
def cashier_user(make_user):
    return make_user("cashier@example.com", role="cashier", full_name="Cashier User")


@pytest.fixture
def login(client):
    """Log in and return bearer headers."""

    def _login(email, password=TEST_PASSWORD):
        response = client.post(
            "/api/auth/login",
            json={"email": email, "password": password},
        )
        assert response.status_code == 200, response.data
        token = response.get_json()["token"]
        return {"Authorization": f"Bearer {token}"}

    return _login


@pytest.fixture
def auth_headers(login, sample_user):
    return login("customer@example.com")


@pytest.fixture
def admin_headers(login, admin_user):
    return login("admin@example.com")


@pytest.fixture
def cashier_headers(login, cashier_user):
    return login("cashier@example.com")
