"""
Custom domain removal

Takes a business off its custom domain: monitoring stops, both apex and www
entries are dropped at Render, and the business falls back to its platform
subdomain. Render failures are logged per domain and never block the revert.
"""
import logging
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from app.config import settings
from app.crud import crud_business
from app.models.business import Business, HOST_TYPE_SUBDOMAIN, STATUS_ACTIVE, STATUS_INACTIVE
from app.services.render_domain import RenderApiError, RenderDomainService

logger = logging.getLogger("bizdomains.removal")


class DomainRemovalService:
    TAG = "DomainRemovalService"

    def __init__(
        self,
        db: Session,
        business: Business,
        render_service_factory: Callable[[], RenderDomainService] = RenderDomainService,
    ):
        self.db = db
        self.business = business
        self.render_service_factory = render_service_factory

    def remove_domain(self) -> Dict[str, Any]:
        business = self.business
        removed_domain = business.hostname
        logger.info("[%s] Starting domain removal for business %s (%s)", self.TAG, business.id, removed_domain)

        if business.cname_monitoring_active:
            logger.info("[%s] Stopping DNS monitoring", self.TAG)
            business.stop_cname_monitoring()

        removed = []
        if business.has_hostname and business.is_custom_domain:
            removed = self._remove_from_render()

        self._revert_to_subdomain()

        logger.info("[%s] Domain removal completed for business %s", self.TAG, business.id)
        return {
            "success": True,
            "message": "Custom domain removed successfully",
            "business_id": business.id,
            "removed_domain": removed_domain,
            "removed_from_render": removed,
            "reverted_to": self.subdomain_url(),
        }

    def disable_domain(self) -> Dict[str, Any]:
        """Take the site offline but keep the domain configuration for later."""
        business = self.business
        logger.info("[%s] Disabling domain for business %s", self.TAG, business.id)

        business.cname_monitoring_active = False
        business.status = STATUS_INACTIVE
        crud_business.save(self.db, business)

        return {
            "success": True,
            "message": "Custom domain disabled",
            "business_id": business.id,
            "domain": business.hostname,
            "status": business.status,
        }

    def removal_preview(self) -> Dict[str, Any]:
        business = self.business
        return {
            "business_id": business.id,
            "current_domain": business.hostname,
            "current_status": business.status,
            "will_revert_to": self.subdomain_url(),
            "render_domain_exists": self._render_domain_exists(),
            "monitoring_active": bool(business.cname_monitoring_active),
            "warnings": [
                "Your custom domain will stop working immediately",
                "Visitors will need to use your subdomain URL instead",
                "You will need to update any marketing materials with the custom domain",
                "DNS records at your domain registrar are not changed",
            ],
        }

    def subdomain_url(self) -> str:
        subdomain = self._fallback_subdomain()
        if settings.is_production:
            return f"https://{subdomain}.{settings.PLATFORM_DOMAIN}"
        return f"http://{subdomain}.{settings.PLATFORM_DEV_HOST}"

    # ── internals ──

    def _fallback_subdomain(self) -> str:
        return self.business.subdomain or f"business-{self.business.id}"

    def _remove_from_render(self) -> list:
        business = self.business
        removed = []
        try:
            render = self.render_service_factory()
        except RenderApiError as e:
            logger.warning("[%s] Render unavailable, skipping domain removal: %s", self.TAG, e)
            return removed

        try:
            for domain_name in dict.fromkeys((business.apex_domain, business.www_domain)):
                try:
                    domain = render.find_domain_by_name(domain_name)
                    if not domain:
                        logger.info("[%s] Domain not found in Render: %s", self.TAG, domain_name)
                        continue
                    render.remove_domain(domain["id"])
                    removed.append(domain_name)
                    logger.info("[%s] Removed domain from Render: %s", self.TAG, domain_name)
                except RenderApiError as e:
                    logger.warning("[%s] Failed to remove %s from Render: %s", self.TAG, domain_name, e)
        finally:
            render.close()
        return removed

    def _revert_to_subdomain(self) -> None:
        business = self.business
        subdomain = self._fallback_subdomain()
        logger.info("[%s] Reverting business %s to subdomain %s", self.TAG, business.id, subdomain)

        business.host_type = HOST_TYPE_SUBDOMAIN
        business.status = STATUS_ACTIVE
        business.hostname = subdomain
        business.subdomain = subdomain
        business.cname_monitoring_active = False
        business.cname_check_attempts = 0
        business.cname_setup_email_sent_at = None
        business.render_domain_added = False
        business.domain_health_verified = False
        crud_business.save(self.db, business)

    def _render_domain_exists(self) -> bool:
        if not self.business.has_hostname:
            return False
        try:
            with self.render_service_factory() as render:
                return bool(render.domain_status(self.business.hostname)["exists"])
        except RenderApiError as e:
            logger.warning("[%s] Could not check Render domain status: %s", self.TAG, e)
            return False
