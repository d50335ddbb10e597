from datetime import datetime, timedelta

from flask import g

from models import db
from models.session import UserSession
from models.user import User
from security.rbac import current_role
from tests.conftest import login


def _session(**overrides):
    now = datetime(2024, 6, 1, 12, 0, 0)
    fields = dict(
        user_id=1,
        token_hash="x" * 64,
        created_at=now - timedelta(minutes=30),
        last_seen_at=now - timedelta(minutes=5),
        expires_at=now + timedelta(hours=1),
        revoked=False,
    )
    fields.update(overrides)
    return now, UserSession(**fields)


def test_session_live_within_idle_window():
    now, sess = _session()
    assert sess.is_live(now, idle_seconds=20 * 60)


def test_session_dead_after_idle_timeout():
    now, sess = _session(last_seen_at=datetime(2024, 6, 1, 11, 30))
    assert not sess.is_live(now, idle_seconds=20 * 60)


def test_session_dead_when_revoked_or_expired():
    now, revoked = _session(revoked=True)
    assert not revoked.is_live(now, idle_seconds=1200)

    now, expired = _session(expires_at=datetime(2024, 6, 1, 12, 0, 0))
    assert not expired.is_live(now, idle_seconds=1200)


def test_second_login_rotates_previous_session(app, users):
    first = app.test_client()
    second = app.test_client()
    login(first, "alice@example.com")
    login(second, "alice@example.com")

    assert first.get("/auth/me").status_code == 401
    assert second.get("/auth/me").status_code == 200


def test_current_role_maps_admin(app, users):
    with app.test_request_context():
        g.user = db.session.get(User, users.admin)
        assert current_role() == "admin"
        g.user = db.session.get(User, users.alice)
        assert current_role() == "user"
        g.user = None
        assert current_role() == "user"
