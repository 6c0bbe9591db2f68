import os

# Must be set before the app module creates its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest

import store
from app import app as flask_app
from models import db
from role_policy import Actor, Role

PASSWORD = "password123"


def email_for(role, suffix=""):
    return f"{role.value.lower()}{suffix}@example.com"


def payload(shipment="SHP001", trailers=None, **fields):
    """A valid create/edit payload; trailers given as {trailer: [(part, qty), ...]}"""
    trailers = trailers if trailers is not None else {"T1": [("P1", 48)]}
    data = {
        "shipmentNumber": shipment,
        "trailers": [
            {
                "trailerNumber": trailer_number,
                "parts": [{"partNumber": p, "quantity": q} for p, q in parts],
            }
            for trailer_number, parts in trailers.items()
        ],
    }
    data.update(fields)
    return data


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """An app context for tests that call services directly"""
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture
def users(ctx):
    return {
        role: store.create_user(f"{role.value.title()} User", email_for(role), PASSWORD, role=role)
        for role in Role
    }


@pytest.fixture
def actors(users):
    return {role: Actor.from_user(user) for role, user in users.items()}


@pytest.fixture
def other_cs(ctx):
    user = store.create_user("Second Service", email_for(Role.CUSTOMER_SERVICE, "2"), PASSWORD,
                             role=Role.CUSTOMER_SERVICE)
    return Actor.from_user(user)


@pytest.fixture
def make_user(app):
    """Create a user outside any request; returns its id"""
    def _make(role, suffix=""):
        with app.app_context():
            user = store.create_user(f"{role.value.title()} User{suffix}", email_for(role, suffix),
                                     PASSWORD, role=role)
            return user.id
    return _make


@pytest.fixture
def login(app, make_user):
    """Create a user with the role and return a test client signed in as them"""
    def _login(role, suffix=""):
        make_user(role, suffix)
        client = app.test_client()
        response = client.post("/api/auth/login", json={
            "email": email_for(role, suffix),
            "password": PASSWORD,
        })
        assert response.status_code == 200, response.get_json()
        return client
    return _login
