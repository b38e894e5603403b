"""Tests for the certificate propagation retry chain and domain rebuild."""
from datetime import timedelta

import pytest

from app.models.business import HOST_TYPE_SUBDOMAIN, STATUS_ACTIVE, STATUS_CNAME_ACTIVE
from app.services.render_domain import RenderApiError
from app.tasks.domain_jobs import (
    CertificatePropagationRetryJob,
    DomainRebuildContinueJob,
    RenderDomainVerificationJob,
)
from app.tasks.scheduler import (
    CERTIFICATE_RETRY_TASK,
    REBUILD_CONTINUE_TASK,
    RENDER_VERIFICATION_TASK,
)
from tests.conftest import FakeHealthChecker, FakeRenderService, RecordingScheduler

RENDER_DOMAINS = [
    {"id": "cdm-apex", "name": "example.com"},
    {"id": "cdm-www", "name": "www.example.com"},
]


def _job(db, scheduler, render=None, health=None):
    return CertificatePropagationRetryJob(
        db,
        scheduler=scheduler,
        health_checker=health or FakeHealthChecker(),
        render_service_factory=render or FakeRenderService(RENDER_DOMAINS),
    )


def test_early_retry_triggers_verification(db, make_business):
    business = make_business(status=STATUS_CNAME_ACTIVE, cname_monitoring_active=False)
    scheduler = RecordingScheduler()
    render = FakeRenderService(RENDER_DOMAINS)

    _job(db, scheduler, render).perform(business.id, 2)

    assert scheduler.calls == [
        (RENDER_VERIFICATION_TASK, ("example.com",), None),
        (RENDER_VERIFICATION_TASK, ("www.example.com",), timedelta(seconds=30)),
        (CERTIFICATE_RETRY_TASK, (business.id, 3), timedelta(minutes=20)),
    ]
    assert render.removed == []


def test_rebuild_at_threshold(db, make_business):
    business = make_business(render_domain_added=True)
    scheduler = RecordingScheduler()
    render = FakeRenderService(RENDER_DOMAINS)

    _job(db, scheduler, render).perform(business.id, 3)

    assert render.removed == ["cdm-apex", "cdm-www"]
    assert render.closed == 1
    assert scheduler.calls == [
        (REBUILD_CONTINUE_TASK, (business.id,), timedelta(seconds=10)),
        (CERTIFICATE_RETRY_TASK, (business.id, 4), timedelta(minutes=30)),
    ]
    db.refresh(business)
    assert business.render_domain_added is False


def test_rebuild_skips_domains_missing_at_provider(db, make_business):
    business = make_business()
    render = FakeRenderService([{"id": "cdm-www", "name": "www.example.com"}])

    _job(db, RecordingScheduler(), render).perform(business.id, 4)

    assert render.removed == ["cdm-www"]


def test_rebuild_provider_error_propagates(db, make_business):
    business = make_business()
    scheduler = RecordingScheduler()
    render = FakeRenderService(fail_with=RenderApiError("Request failed: 502"))

    with pytest.raises(RenderApiError):
        _job(db, scheduler, render).perform(business.id, 3)

    assert scheduler.calls == []
    assert render.closed == 1


def test_ssl_working_ends_chain(db, make_business):
    business = make_business()
    scheduler = RecordingScheduler()
    health = FakeHealthChecker(healthy=True, ssl_ready=True)

    _job(db, scheduler, health=health).perform(business.id, 1)

    assert health.checked == ["www.example.com"]
    assert scheduler.calls == []


def test_health_check_exception_counts_as_not_working(db, make_business):
    business = make_business()
    scheduler = RecordingScheduler()

    _job(db, scheduler, health=FakeHealthChecker(error=RuntimeError("checker crashed"))).perform(business.id, 0)

    assert scheduler.for_task(CERTIFICATE_RETRY_TASK) == [
        (CERTIFICATE_RETRY_TASK, (business.id, 1), timedelta(minutes=5)),
    ]


def test_max_retries_gives_up(db, make_business, caplog):
    business = make_business()
    scheduler = RecordingScheduler()
    health = FakeHealthChecker()

    with caplog.at_level("WARNING", logger="bizdomains.jobs"):
        _job(db, scheduler, health=health).perform(business.id, 6)

    assert scheduler.calls == []
    assert health.checked == []
    assert "Max retries exceeded" in caplog.text


@pytest.mark.parametrize("overrides", [
    {"host_type": HOST_TYPE_SUBDOMAIN},
    {"status": STATUS_ACTIVE},
    {"hostname": ""},
])
def test_ineligible_business_stops(db, make_business, overrides):
    business = make_business(**overrides)
    scheduler = RecordingScheduler()

    _job(db, scheduler).perform(business.id, 0)

    assert scheduler.calls == []


def test_missing_business(db):
    scheduler = RecordingScheduler()
    _job(db, scheduler).perform(12345, 0)
    assert scheduler.calls == []


def test_verification_scheduling_failure_is_logged(db, make_business, caplog):
    business = make_business()
    scheduler = RecordingScheduler(fail_on=RENDER_VERIFICATION_TASK)

    with caplog.at_level("ERROR", logger="bizdomains.scheduler"):
        _job(db, scheduler).perform(business.id, 1)

    assert "Failed to schedule verification" in caplog.text
    assert scheduler.calls == [(CERTIFICATE_RETRY_TASK, (business.id, 2), timedelta(minutes=10))]


@pytest.mark.parametrize("retry_count,minutes", [(0, 5), (1, 10), (2, 20), (3, 30), (5, 30), (9, 30)])
def test_calculate_next_delay(db, retry_count, minutes):
    job = _job(db, RecordingScheduler())
    assert job.calculate_next_delay(retry_count) == minutes


# ── DomainRebuildContinueJob ──

def test_rebuild_continue_adds_canonical_domain(db, make_business):
    business = make_business(canonical_preference="www", render_domain_added=False)
    scheduler = RecordingScheduler()
    render = FakeRenderService()

    DomainRebuildContinueJob(db, scheduler=scheduler, render_service_factory=render).perform(business.id)

    assert render.added == ["www.example.com"]
    assert render.closed == 1
    assert scheduler.calls == [
        (RENDER_VERIFICATION_TASK, ("example.com",), None),
        (RENDER_VERIFICATION_TASK, ("www.example.com",), timedelta(seconds=30)),
    ]
    db.refresh(business)
    assert business.render_domain_added is True


def test_rebuild_continue_apex_preference(db, make_business):
    business = make_business(hostname="www.example.com", canonical_preference="apex")
    render = FakeRenderService()

    DomainRebuildContinueJob(db, scheduler=RecordingScheduler(), render_service_factory=render).perform(business.id)

    assert render.added == ["example.com"]


def test_rebuild_continue_skips_non_custom_domain(db, make_business):
    business = make_business(host_type=HOST_TYPE_SUBDOMAIN)
    scheduler = RecordingScheduler()
    render = FakeRenderService()

    DomainRebuildContinueJob(db, scheduler=scheduler, render_service_factory=render).perform(business.id)

    assert render.added == []
    assert scheduler.calls == []


# ── RenderDomainVerificationJob ──

def test_verification_job_verifies_found_domain():
    render = FakeRenderService(RENDER_DOMAINS)
    result = RenderDomainVerificationJob(render_service_factory=render).perform("www.example.com")

    assert render.verified == ["cdm-www"]
    assert result == {"id": "cdm-www", "verified": False}
    assert render.closed == 1


def test_verification_job_missing_domain():
    render = FakeRenderService()
    assert RenderDomainVerificationJob(render_service_factory=render).perform("example.com") is None
    assert render.verified == []
