from datetime import date, time, timedelta

import pytest
from flask import g

from app import create_app
from config import TestingConfig
from extensions import db
from models import Event, User


# ──────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────


@pytest.fixture
def app(tmp_path):
    config = type(
        "Config",
        (TestingConfig,),
        {
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "UPLOAD_FOLDER": str(tmp_path / "posters"),
        },
    )
    app = create_app(config)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(email, full_name, role):
    user = User(email=email, full_name=full_name, role=role)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin(app):
    return _user("admin@nmamit.in", "Ada Admin", "admin")


@pytest.fixture
def staff(app):
    return _user("staff@nmamit.in", "Sam Staff", "staff")


@pytest.fixture
def participant(app):
    return _user("priya@nmamit.in", "Priya Participant", "participant")


@pytest.fixture
def other_participant(app):
    return _user("omar@nmamit.in", "Omar Other", "participant")


def make_event(creator, days_from_today=1, **overrides):
    fields = {
        "name": "Tech Talk",
        "description": "Lightning talks",
        "event_date": date.today() + timedelta(days=days_from_today),
        "start_time": time(10, 0),
        "end_time": time(12, 0),
        "location": "Main Hall",
        "qr_code_data": f"event_test_{creator.id}_{days_from_today}_{overrides.get('name', '')}",
        "created_by": creator.id,
    }
    fields.update(overrides)
    event = Event(**fields)
    db.session.add(event)
    db.session.commit()
    return event


@pytest.fixture
def event(admin):
    """An event dated tomorrow."""
    return make_event(admin)


def login_as(client, user):
    with client.session_transaction() as sess:
        sess["_user_id"] = user.id
        sess["_fresh"] = True
    # Requests reuse the fixture's app context, so drop the user Flask-Login cached on g
    g.pop("_login_user", None)
