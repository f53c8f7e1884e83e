# tests/conftest.py
import tempfile

import pytest
from fastapi.testclient import TestClient
from freezegun import freeze_time

from jobboard.config import AppConfig
from jobboard.models import NewJob, NewRole
from jobboard.notify import Services
from jobboard.store import ListingStore
from jobboard.web import create_app

SECRET = "sup"


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="jobboard-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    for key in (
        "CONFIG_PATH",
        "APP_SECRET",
        "APP_URL",
        "ADMIN_USER",
        "ADMIN_PASSWORD",
        "SLACK_HOOK",
        "SMTP_HOST",
        "TW_ACCESS_TOKEN",
        "TW_ACCESS_TOKEN_SECRET",
        "TW_API_KEY",
        "TW_API_SECRET_KEY",
    ):
        monkeypatch.delenv(key, raising=False)
    yield tmp_logs


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Recording fakes for notification channels
# ---------------------------------------------------------------------
class RecordingEmail:
    def __init__(self):
        self.sent = []

    def notify(self, recipient, subject, body):
        self.sent.append({"to": recipient, "subject": subject, "body": body})


class RecordingChannel:
    def __init__(self):
        self.posted = []

    def post(self, listing):
        self.posted.append(listing)


@pytest.fixture
def services():
    return Services(email=RecordingEmail(), slack=RecordingChannel(), twitter=RecordingChannel())


# ---------------------------------------------------------------------
# App + store
# ---------------------------------------------------------------------
@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        app_secret=SECRET,
        url="http://testserver",
        env="debug",
        database_path=str(tmp_path / "jobboard.db"),
    )


@pytest.fixture
def admin_config(app_config):
    from dataclasses import replace

    return replace(app_config, admin_user="admin", admin_password="hunter2")


@pytest.fixture
def store(app_config):
    s = ListingStore(app_config.database_path)
    s.init_db()
    return s


@pytest.fixture
def client(app_config, store, services):
    app = create_app(app_config, store=store, services=services)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_client(admin_config, store, services):
    app = create_app(admin_config, store=store, services=services)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_job(store):
    def _make(**overrides):
        fields = {
            "position": "Pos",
            "organization": "Org",
            "url": "https://example.com/job",
            "description": "",
            "email": "owner@example.com",
        }
        fields.update(overrides)
        return store.create_job(NewJob(**fields))

    return _make


@pytest.fixture
def make_role(store):
    def _make(**overrides):
        fields = {
            "name": "Ada",
            "email": "ada@example.com",
            "role": "Backend engineer",
            "resume": "Did **things**.",
            "github": "https://github.com/ada",
        }
        fields.update(overrides)
        return store.create_role(NewRole(**fields))

    return _make
