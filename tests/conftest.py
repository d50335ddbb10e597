from types import SimpleNamespace

import pytest

from app import create_app
from models import db
from models.temple import Temple, TempleService
from models.user import Role, User
from security.password import hash_password

PASSWORD = "lotus-pond-42"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'bookings.db'}",
        # worker threads share the pool in the concurrency test
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"check_same_thread": False, "timeout": 15}},
        "AUTO_CREATE_TABLES": True,
        "BCRYPT_ROUNDS": 4,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    with app.app_context():
        yield db.session


def make_user(app, email, full_name=None, phone_number=None, admin=False) -> int:
    with app.app_context():
        user = User(
            email=email,
            password_hash=hash_password(PASSWORD),
            full_name=full_name,
            phone_number=phone_number,
        )
        role_names = ["USER", "ADMIN"] if admin else ["USER"]
        user.roles.extend(Role.query.filter(Role.name.in_(role_names)).all())
        db.session.add(user)
        db.session.commit()
        return user.id


@pytest.fixture
def users(app):
    return SimpleNamespace(
        alice=make_user(app, "alice@example.com", "Alice Rao", "+91 90000 00001"),
        bob=make_user(app, "bob@example.com", "Bob Iyer", "+91 90000 00002"),
        admin=make_user(app, "admin@example.com", "Temple Admin", admin=True),
    )


@pytest.fixture
def catalog(app):
    """One active temple with a 30 minute puja, plus inactive fixtures."""
    with app.app_context():
        temple = Temple(name="Sri Meenakshi Temple", address="1 East Chitrai St")
        closed = Temple(name="Closed Shrine", status="inactive")
        db.session.add_all([temple, closed])
        db.session.flush()

        puja = TempleService(temple_id=temple.id, name="Archana", price=25100, duration=30)
        homam = TempleService(temple_id=temple.id, name="Ganapathi Homam", price=150000, duration=90)
        retired = TempleService(temple_id=temple.id, name="Old Seva", duration=30, is_active=False)
        elsewhere = TempleService(temple_id=closed.id, name="Abhishekam", duration=45)
        db.session.add_all([puja, homam, retired, elsewhere])
        db.session.commit()

        return SimpleNamespace(
            temple_id=temple.id,
            closed_temple_id=closed.id,
            service_id=puja.id,
            long_service_id=homam.id,
            retired_service_id=retired.id,
            foreign_service_id=elsewhere.id,
        )


def login(client, email, password=PASSWORD) -> dict:
    """Log in through the API; returns the headers a mutating request needs."""
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return {"X-CSRF-Token": client.get_cookie("csrf_token").value}
