"""Shared fixtures: an in-memory store, a controllable clock and a wired ReportService."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# gosafe.main builds an app at import time; keep it off DynamoDB and out of the repo dir
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="gosafe-uploads-"))
os.environ.setdefault("AWS_REGION", "eu-north-1")

from gosafe.db.memory import MemoryStore  # noqa: E402
from gosafe.errors import UnauthorizedError  # noqa: E402
from gosafe.models.user import Principal  # noqa: E402
from gosafe.services.reports import ReportService  # noqa: E402
from gosafe.settings import Settings  # noqa: E402

NAIROBI = [36.8219, -1.2921]  # [lng, lat]


class FrozenClock:
    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeIdentity:
    """token "token-<user_id>" -> user, "admin-<user_id>" -> admin."""

    def authenticate(self, token: str) -> Principal:
        if token.startswith("token-"):
            return Principal(user_id=token[len("token-"):], role="user")
        if token.startswith("admin-"):
            return Principal(user_id=token[len("admin-"):], role="admin")
        raise UnauthorizedError("Invalid or expired token")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def settings():
    return Settings(store_backend="memory")


@pytest.fixture
def service(store, settings, clock):
    return ReportService(store, settings, clock=clock)


@pytest.fixture
def make_report(service):
    def _make(author_id="author-1", category="pothole", location=None, description="Deep pothole, left lane", severity=2):
        return service.create_report(author_id, category, location or list(NAIROBI), description, severity)
    return _make


@pytest.fixture
def identity():
    return FakeIdentity()
