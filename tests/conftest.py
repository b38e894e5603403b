"""Pytest configuration and shared fixtures."""
from datetime import datetime, timedelta, timezone

import dns.resolver
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base_class import Base
from app.models.business import (
    Business,
    HOST_TYPE_CUSTOM_DOMAIN,
    STATUS_CNAME_MONITORING,
)
from app.tasks.scheduler import set_scheduler


# --- Fakes ---

class RecordingScheduler:
    """Captures (task_name, args, delay) instead of enqueueing."""

    def __init__(self, fail_on=None):
        self.calls = []
        self._fail_on = fail_on

    def schedule(self, task_name, *args, delay=None):
        if self._fail_on and task_name == self._fail_on:
            raise RuntimeError("broker unavailable")
        self.calls.append((task_name, args, delay))

    def for_task(self, task_name):
        return [c for c in self.calls if c[0] == task_name]


class FakeHealthChecker:
    def __init__(self, healthy=False, ssl_ready=False, error=None):
        self.healthy = healthy
        self.ssl_ready = ssl_ready
        self.error = error
        self.checked = []

    def check_health(self, hostname):
        self.checked.append(hostname)
        if self.error:
            raise self.error
        return {
            "domain": hostname,
            "healthy": self.healthy,
            "ssl_ready": self.ssl_ready,
            "status_code": 200 if self.healthy else None,
            "error": None if self.healthy else "SSL error: certificate verify failed",
        }


class FakeDnsChecker:
    def __init__(self, domain_name):
        self.domain_name = domain_name

    def verify_cname(self):
        return {"domain": self.domain_name, "verified": True, "target": "bizblasts.onrender.com"}


class _Target:
    def __init__(self, text):
        self._text = text

    def to_text(self):
        return self._text


class CnameRecord:
    def __init__(self, target):
        self.target = _Target(target)


class ARecord:
    def __init__(self, ip):
        self._ip = ip

    def to_text(self):
        return self._ip


class FakeResolver:
    """Answers from a {(name, rdtype): records | exception} map; missing keys raise NoAnswer."""

    def __init__(self, records):
        self.records = records

    def resolve(self, name, rdtype):
        value = self.records.get((name, rdtype))
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise dns.resolver.NoAnswer()
        return value


class FakeRenderService:
    """In-memory stand-in for RenderDomainService."""

    def __init__(self, domains=None, fail_with=None, add_error=None):
        self.domains = {d["name"]: d for d in (domains or [])}
        self.fail_with = fail_with
        self.add_error = add_error
        self.added = []
        self.removed = []
        self.verified = []
        self.closed = 0

    def __call__(self):
        return self

    def _maybe_fail(self):
        if self.fail_with:
            raise self.fail_with

    def find_domain_by_name(self, name):
        self._maybe_fail()
        return self.domains.get(name)

    def remove_domain(self, domain_id):
        self._maybe_fail()
        self.removed.append(domain_id)
        for name, d in list(self.domains.items()):
            if d["id"] == domain_id:
                del self.domains[name]
        return True

    def add_domain(self, name):
        self._maybe_fail()
        if self.add_error:
            raise self.add_error
        record = {"id": f"cdm-{len(self.added) + 1}", "name": name}
        self.domains[name] = record
        self.added.append(name)
        return record

    def verify_domain(self, domain_id):
        self._maybe_fail()
        self.verified.append(domain_id)
        return {"id": domain_id, "verified": False}

    def domain_status(self, name):
        domain = self.find_domain_by_name(name)
        if not domain:
            return {"exists": False, "verified": False, "domain_id": None}
        return {"exists": True, "verified": bool(domain.get("verified")), "domain_id": domain["id"]}

    def close(self):
        self.closed += 1

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


# --- Fixtures ---

@pytest.fixture
def scheduler():
    recorder = RecordingScheduler()
    previous = set_scheduler(recorder)
    yield recorder
    set_scheduler(previous)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_business(db):
    """Factory: a premium custom-domain business in CNAME monitoring, last touched 10 minutes ago."""

    def _make(**overrides):
        fields = {
            "name": "Acme Plumbing",
            "tier": "premium",
            "hostname": "example.com",
            "host_type": HOST_TYPE_CUSTOM_DOMAIN,
            "status": STATUS_CNAME_MONITORING,
            "canonical_preference": "www",
            "cname_monitoring_active": True,
            "cname_check_attempts": 0,
            "updated_at": datetime.now(timezone.utc) - timedelta(minutes=10),
        }
        fields.update(overrides)
        business = Business(**fields)
        db.add(business)
        db.commit()
        db.refresh(business)
        return business

    return _make


@pytest_asyncio.fixture
async def client(session_factory, scheduler, monkeypatch):
    """Async HTTP client against the FastAPI app with get_db bound to the test database."""
    from app.main import app as fastapi_app
    from app.api.deps import get_db
    from app.config import settings

    monkeypatch.setattr(settings, "SERVICE_TOKEN", "test-service-token")

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def service_headers():
    return {"X-Service-Token": "test-service-token"}
