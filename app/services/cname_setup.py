"""
Custom domain (CNAME) setup

Moves a premium business from "custom domain configured" into DNS monitoring:
  1. Register the canonical domain with Render (skipped when already there)
  2. Queue Render verification for apex and www
  3. Reset to cname_pending and record the DNS setup instructions
  4. Start monitoring; the first poll runs a minute later

A provider failure during setup rolls the business back to plain `active`
and removes whatever Render still holds for the domain.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.crud import crud_business
from app.models.business import Business, CanonicalPreference, STATUS_ACTIVE
from app.services.domain_state import Active, Pending, apply_state, determine_domains_to_add
from app.services.render_domain import RenderApiError, RenderDomainService
from app.tasks.scheduler import (
    DOMAIN_MONITORING_TASK,
    Scheduler,
    get_scheduler,
    schedule_dual_verification,
)

logger = logging.getLogger("bizdomains.setup")

MONITORING_START_DELAY = timedelta(minutes=1)


class SetupError(Exception):
    pass


class InvalidBusinessError(SetupError):
    pass


class DomainAlreadyExistsError(SetupError):
    pass


class CnameSetupService:
    TAG = "CnameSetupService"

    def __init__(
        self,
        db: Session,
        business: Business,
        render_service_factory: Callable[[], RenderDomainService] = RenderDomainService,
        scheduler: Optional[Scheduler] = None,
    ):
        self.db = db
        self.business = business
        # Render is only contacted by setup; status / restart work without credentials
        self.render_service_factory = render_service_factory
        self.scheduler = scheduler or get_scheduler()

    # ── Public API ──

    def start_setup(self) -> Dict[str, Any]:
        business = self.business
        logger.info("[%s] Starting setup for business %s (%s)", self.TAG, business.id, business.hostname)

        try:
            self._validate_eligibility()
        except SetupError as e:
            logger.warning("[%s] Setup rejected: %s", self.TAG, e)
            return self._failure(e, "ineligible")

        try:
            self._add_domain_to_render()
        except RenderApiError as e:
            logger.error("[%s] Setup failed: %s", self.TAG, e)
            self._rollback()
            return self._failure(e, "provider_error")

        schedule_dual_verification(self.scheduler, business, self.TAG)
        self._reset_to_pending()
        dns_records = self._send_setup_instructions()
        self._start_monitoring()

        logger.info("[%s] Setup initiated successfully for %s", self.TAG, business.hostname)
        return {
            "success": True,
            "message": "Custom domain setup initiated successfully",
            "business_id": business.id,
            "domain": business.hostname,
            "status": business.status,
            "dns_records": dns_records,
        }

    def restart_monitoring(self) -> Dict[str, Any]:
        """Manual retry: attempts back to 0 and a poll enqueued right away."""
        business = self.business
        logger.info("[%s] Restarting monitoring for %s", self.TAG, business.hostname)

        try:
            self._validate_for_restart()
        except SetupError as e:
            logger.warning("[%s] Failed to restart monitoring: %s", self.TAG, e)
            return self._failure(e, "ineligible")

        business.start_cname_monitoring()
        crud_business.save(self.db, business)
        self.scheduler.schedule(DOMAIN_MONITORING_TASK, business.id)

        logger.info("[%s] Monitoring restarted for %s", self.TAG, business.hostname)
        return {
            "success": True,
            "message": "Domain monitoring restarted successfully",
            "business_id": business.id,
            "domain": business.hostname,
        }

    def force_activate(self) -> Dict[str, Any]:
        """Operator override: mark the domain active without waiting for a healthy check."""
        business = self.business
        logger.info("[%s] Force activating domain for %s", self.TAG, business.hostname)

        apply_state(business, Active())
        crud_business.save(self.db, business)

        return {
            "success": True,
            "message": "Domain activated successfully",
            "business_id": business.id,
            "domain": business.hostname,
            "status": business.status,
        }

    def status(self) -> Dict[str, Any]:
        business = self.business
        return {
            "business_id": business.id,
            "domain": business.hostname,
            "status": business.status,
            "monitoring_active": bool(business.cname_monitoring_active),
            "check_attempts": business.cname_check_attempts,
            "setup_email_sent": business.cname_setup_email_sent_at is not None,
            "render_domain_added": bool(business.render_domain_added),
            "can_setup": business.can_setup_custom_domain(),
            "can_restart": business.can_restart_monitoring(),
            "created_at": business.created_at,
            "updated_at": business.updated_at,
        }

    # ── Steps ──

    def _validate_eligibility(self) -> None:
        business = self.business
        if business.tier != "premium":
            raise InvalidBusinessError("Custom domains are only available for Premium tier businesses")
        if not business.is_custom_domain:
            raise InvalidBusinessError("Business must be configured for custom domain hosting")
        if business.is_cname_active:
            raise DomainAlreadyExistsError("Custom domain is already active")
        if not business.has_hostname:
            raise InvalidBusinessError("Business hostname is not configured")

    def _validate_for_restart(self) -> None:
        business = self.business
        if business.tier != "premium":
            raise InvalidBusinessError("Custom domains are only available for Premium tier businesses")
        if not business.can_restart_monitoring():
            raise InvalidBusinessError(
                "Domain monitoring can only be restarted from pending, monitoring, or timeout status"
            )

    def _domains_to_add(self) -> List[str]:
        preference = CanonicalPreference.parse(self.business.canonical_preference)
        return determine_domains_to_add(self.business.hostname, preference)

    def _add_domain_to_render(self) -> None:
        render = self.render_service_factory()
        try:
            for domain_name in self._domains_to_add():
                if render.find_domain_by_name(domain_name):
                    logger.info("[%s] Domain already exists in Render: %s", self.TAG, domain_name)
                    continue
                domain = render.add_domain(domain_name)
                logger.info("[%s] Domain added to Render: %s (%s)", self.TAG, domain_name, domain.get("id"))
        finally:
            render.close()

        self.business.render_domain_added = True
        crud_business.save(self.db, self.business)

    def _reset_to_pending(self) -> None:
        apply_state(self.business, Pending())
        self.business.cname_check_attempts = 0
        crud_business.save(self.db, self.business)

    def _send_setup_instructions(self) -> List[Dict[str, str]]:
        records = [
            {"type": "CNAME", "name": "www", "value": settings.RENDER_CNAME_TARGET},
            {"type": "A", "name": "@", "value": settings.RENDER_APEX_IP},
        ]
        # delivery belongs to the notification layer; record what was handed over
        logger.info(
            "[%s] Sending setup instructions for %s: %s",
            self.TAG, self.business.hostname,
            ", ".join(f"{r['type']} {r['name']} -> {r['value']}" for r in records),
        )
        self.business.cname_setup_email_sent_at = datetime.now(timezone.utc)
        crud_business.save(self.db, self.business)
        return records

    def _start_monitoring(self) -> None:
        logger.info("[%s] Starting DNS monitoring", self.TAG)
        self.business.start_cname_monitoring()
        crud_business.save(self.db, self.business)
        self.scheduler.schedule(DOMAIN_MONITORING_TASK, self.business.id, delay=MONITORING_START_DELAY)

    def _rollback(self) -> None:
        business = self.business
        logger.info("[%s] Rolling back changes", self.TAG)
        domain_was_added = bool(business.render_domain_added)

        business.status = STATUS_ACTIVE
        business.cname_monitoring_active = False
        business.cname_check_attempts = 0
        business.render_domain_added = False
        crud_business.save(self.db, business)

        if not domain_was_added:
            return
        try:
            render = self.render_service_factory()
            try:
                for domain_name in dict.fromkeys((business.apex_domain, business.www_domain)):
                    domain = render.find_domain_by_name(domain_name)
                    if domain:
                        render.remove_domain(domain["id"])
                        logger.info("[%s] Removed domain during rollback: %s", self.TAG, domain_name)
            finally:
                render.close()
        except RenderApiError as e:
            logger.warning("[%s] Failed to remove domain during rollback: %s", self.TAG, e)

    def _failure(self, error: Exception, code: str) -> Dict[str, Any]:
        return {
            "success": False,
            "error": str(error),
            "error_code": code,
            "business_id": self.business.id,
            "domain": self.business.hostname,
        }
