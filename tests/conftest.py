"""
Shared fixtures for the intake test suite.

Every test gets a fresh app on in-memory SQLite with email disabled.

Run with: python -m pytest tests/ -v
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from flask import g
from flask_login import FlaskLoginClient

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from config import TestingConfig
from models import db, FormTemplate, Owner
from services.audit_service import AuditService
from services.draft_store import DraftStore
from services.form_lifecycle import FormLifecycleController
from services.template_loader import TemplateLoader

T0 = datetime(2026, 3, 2, 9, 30, 0)

CONTACT_SCHEMA = {
    'type': 'object',
    'properties': {
        'name': {'type': 'string', 'minLength': 2},
        'email': {'type': 'string', 'format': 'email'},
        'age': {'type': 'integer', 'minimum': 18, 'maximum': 120},
        'newsletter': {'type': 'boolean'},
    },
    'required': ['name', 'email'],
}

VALID_ANSWERS = {'name': 'Ada Lovelace', 'email': 'ada@example.com', 'age': 36}


class FakeClock:
    """Callable clock returning a settable naive UTC time."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class IsolatedLoginClient(FlaskLoginClient):
    """FlaskLoginClient that drops Flask-Login's per-request user cache.

    The app fixture keeps one app context pushed, which Flask reuses for
    test requests, so ``g._login_user`` would otherwise leak between clients.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.test_client_class = IsolatedLoginClient
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def owner(session):
    owner = Owner(email='advisor@example.com', business_name='Maple Immigration')
    owner.set_password('correct horse')
    session.add(owner)
    session.commit()
    return owner


@pytest.fixture
def other_owner(session):
    owner = Owner(email='other@example.com', business_name='Other Practice')
    session.add(owner)
    session.commit()
    return owner


@pytest.fixture
def template(session):
    template = FormTemplate(
        name='Contact Details',
        slug='contact-details',
        description='Basic contact details',
        field_schema=CONTACT_SCHEMA,
        ui_schema={'name': {'ui:autofocus': True}},
        version=1,
        is_active=True,
    )
    session.add(template)
    session.commit()
    return template


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit(session):
    return AuditService(session)


@pytest.fixture
def controller(session, audit, clock):
    return FormLifecycleController(session, DraftStore(session), audit, clock=clock)


@pytest.fixture
def instance(controller, template, owner):
    """A SENT instance created at T0 with the default 7 day lifetime."""
    result = controller.create_instance(template.id, owner.id, 'Client@Example.com ')
    assert result.success
    return result.instance


@pytest.fixture
def client(app):
    """Anonymous client for the public token routes."""
    return app.test_client()


@pytest.fixture
def owner_client(app, owner):
    return app.test_client(user=owner)


@pytest.fixture
def loader():
    """TemplateLoader with a clean cache before and after the test."""
    TemplateLoader.clear()
    yield TemplateLoader
    TemplateLoader.clear()
