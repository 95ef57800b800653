from __future__ import annotations

from pathlib import Path

import pytest

from app import create_app
from models import db

OWNER = "abc123"
COOKIE = "portfolio_user_id"


class FakeTimer:
    """threading.Timer stand-in that only runs when fire() is called."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.function()


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """requests.Session stand-in; each post() consumes the next outcome."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def gemini_reply(text):
    return FakeResponse(200, {"candidates": [{"content": {"parts": [{"text": text}]}}]})


@pytest.fixture()
def timers():
    created = []

    def factory(interval, function):
        timer = FakeTimer(interval, function)
        created.append(timer)
        return timer

    factory.created = created
    return factory


@pytest.fixture()
def make_app(tmp_path: Path):
    apps = []

    def _make(**overrides):
        settings = {
            "DATA_SERVICE_URL": f"sqlite:///{tmp_path / 'portfolio.db'}",
            "DATA_SERVICE_KEY": "local-key",
            "OWNER_ID": OWNER,
            # Long window: tests flush the debounced create themselves.
            "CREATE_DEBOUNCE_SECONDS": 60,
        }
        settings.update(overrides)
        app = create_app("testing", settings)
        if app.extensions["portfolio"].service is not None:
            with app.app_context():
                db.create_all()
        apps.append(app)
        return app

    yield _make

    for app in apps:
        app.extensions["portfolio"].close()


@pytest.fixture()
def app(make_app):
    return make_app()


@pytest.fixture()
def portfolio(app):
    return app.extensions["portfolio"]


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def owner_client(app):
    client = app.test_client()
    client.set_cookie(COOKIE, OWNER)
    return client


@pytest.fixture()
def visitor_client(app):
    client = app.test_client()
    client.set_cookie(COOKIE, "xyz")
    return client
