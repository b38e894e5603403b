"""Tests for DomainRemovalService: removal, disable and preview."""
from app.config import settings
from app.models.business import HOST_TYPE_SUBDOMAIN, STATUS_ACTIVE, STATUS_CNAME_ACTIVE, STATUS_INACTIVE
from app.services.domain_removal import DomainRemovalService
from app.services.render_domain import RenderApiError
from tests.conftest import FakeRenderService

RENDER_DOMAINS = [
    {"id": "cdm-apex", "name": "example.com"},
    {"id": "cdm-www", "name": "www.example.com", "verified": True},
]


def test_remove_domain_reverts_to_subdomain(db, make_business):
    business = make_business(subdomain="acme", render_domain_added=True, cname_check_attempts=3)
    render = FakeRenderService(domains=RENDER_DOMAINS)

    result = DomainRemovalService(db, business, render_service_factory=render).remove_domain()

    assert result["success"] is True
    assert result["removed_domain"] == "example.com"
    assert result["removed_from_render"] == ["example.com", "www.example.com"]
    assert result["reverted_to"] == "http://acme.lvh.me:3000"
    assert render.removed == ["cdm-apex", "cdm-www"]
    assert render.closed == 1

    db.refresh(business)
    assert business.host_type == HOST_TYPE_SUBDOMAIN
    assert business.status == STATUS_ACTIVE
    assert business.hostname == "acme"
    assert business.cname_monitoring_active is False
    assert business.cname_check_attempts == 0
    assert business.render_domain_added is False


def test_render_errors_do_not_block_revert(db, make_business):
    business = make_business()
    render = FakeRenderService(fail_with=RenderApiError("Request failed: boom"))

    result = DomainRemovalService(db, business, render_service_factory=render).remove_domain()

    assert result["success"] is True
    assert result["removed_from_render"] == []
    assert result["reverted_to"] == f"http://business-{business.id}.lvh.me:3000"
    db.refresh(business)
    assert business.host_type == HOST_TYPE_SUBDOMAIN


def test_subdomain_url_in_production(db, make_business, monkeypatch):
    monkeypatch.setattr(settings, "APP_ENV", "production")
    business = make_business(subdomain="acme")

    assert DomainRemovalService(db, business).subdomain_url() == "https://acme.bizblasts.com"


def test_disable_domain(db, make_business):
    business = make_business(status=STATUS_CNAME_ACTIVE, cname_monitoring_active=False)

    result = DomainRemovalService(db, business).disable_domain()

    assert result["status"] == STATUS_INACTIVE
    db.refresh(business)
    assert business.hostname == "example.com"
    assert business.cname_monitoring_active is False


def test_removal_preview(db, make_business):
    business = make_business(subdomain="acme")
    render = FakeRenderService(domains=RENDER_DOMAINS)

    preview = DomainRemovalService(db, business, render_service_factory=render).removal_preview()

    assert preview["current_domain"] == "example.com"
    assert preview["will_revert_to"] == "http://acme.lvh.me:3000"
    assert preview["render_domain_exists"] is True
    assert preview["monitoring_active"] is True
    assert preview["warnings"]


def test_removal_preview_tolerates_render_errors(db, make_business):
    business = make_business()
    render = FakeRenderService(fail_with=RenderApiError("Request failed: boom"))

    preview = DomainRemovalService(db, business, render_service_factory=render).removal_preview()

    assert preview["render_domain_exists"] is False
