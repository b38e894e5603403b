"""
Custom-domain background jobs.

Each job is a plain class holding one run's logic against a DB session; the
Celery tasks in `app.tasks.domain_tasks` are thin wrappers around them.
Follow-up work is always requested through the scheduler seam so a run
never waits in-process.

Error policy shared by all jobs:
  - business not found: log an error, end the run, schedule nothing
  - business no longer eligible: log, end the run, schedule nothing
  - provider / monitoring errors on the main path: propagate, so the Celery
    task retries the whole run; the failing run never schedules its successor
  - failure to enqueue a verification nudge: log and keep going
"""
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.crud import crud_business
from app.models.business import Business, check_interval, max_check_attempts
from app.services.domain_health import DomainHealthChecker
from app.services.domain_monitoring import DomainMonitoringService
from app.services.domain_state import CanonicalPreference, determine_domains_to_add
from app.services.render_domain import RenderApiError, RenderDomainService
from app.tasks.scheduler import (
    CERTIFICATE_RETRY_TASK,
    DOMAIN_MONITORING_TASK,
    REBUILD_CONTINUE_TASK,
    Scheduler,
    get_scheduler,
    schedule_dual_verification,
)

logger = logging.getLogger("bizdomains.jobs")

REBUILD_COOLDOWN = timedelta(seconds=10)


# ═══════════════════════════════════════════
#  DomainMonitoringJob
# ═══════════════════════════════════════════

class DomainMonitoringJob:
    """Polls one business every few minutes until its domain serves TLS or attempts run out."""

    TAG = "DomainMonitoringJob"

    def __init__(
        self,
        db: Session,
        scheduler: Optional[Scheduler] = None,
        service: Optional[DomainMonitoringService] = None,
    ):
        self.db = db
        self.scheduler = scheduler or get_scheduler()
        self.service = service or DomainMonitoringService(db)

    def perform(self, business_id: int) -> Optional[Dict[str, Any]]:
        business = crud_business.get(self.db, business_id)
        if business is None:
            logger.error("[%s] Business %s not found", self.TAG, business_id)
            return None

        if not self.should_continue_monitoring(business):
            logger.info("[%s] Monitoring no longer needed for business %s", self.TAG, business_id)
            return None

        if not business.cname_due_for_check():
            logger.debug("[%s] Business %s checked recently, rescheduling", self.TAG, business_id)
            self._schedule_next_check(business_id)
            return None

        # errors here propagate to the task's retry policy; no reschedule from this run
        result = self.service.perform_check(business)

        if result.get("should_continue"):
            self._schedule_next_check(business_id)
        elif result.get("verified"):
            logger.info("[%s] Domain verified for business %s, monitoring complete", self.TAG, business_id)
        else:
            logger.info(
                "[%s] Monitoring stopped for business %s after %s/%s attempts",
                self.TAG, business_id, result.get("attempts"), result.get("max_attempts"),
            )
        return result

    def should_continue_monitoring(self, business: Business) -> bool:
        return (
            business.is_cname_monitoring
            and bool(business.cname_monitoring_active)
            and (business.cname_check_attempts or 0) < max_check_attempts()
            and business.is_custom_domain
            and business.has_hostname
        )

    def _schedule_next_check(self, business_id: int) -> None:
        self.scheduler.schedule(DOMAIN_MONITORING_TASK, business_id, delay=check_interval())

    # ── entry points used by the setup flow, ops API and beat ──

    @staticmethod
    def start_monitoring(business_id: int, scheduler: Optional[Scheduler] = None) -> None:
        logger.info("[DomainMonitoringJob] Starting monitoring for business %s", business_id)
        (scheduler or get_scheduler()).schedule(DOMAIN_MONITORING_TASK, business_id)

    @staticmethod
    def stop_monitoring(db: Session, business_id: int) -> bool:
        """Clear the monitoring flag; an already-queued run exits at its gate. Idempotent."""
        business = crud_business.get(db, business_id)
        if business is None:
            logger.warning("[DomainMonitoringJob] Cannot stop monitoring, business %s not found", business_id)
            return False
        DomainMonitoringService(db).stop_monitoring(business, reason="stop_monitoring requested")
        return True

    @staticmethod
    def monitor_all_pending(db: Session, scheduler: Optional[Scheduler] = None) -> int:
        """Enqueue one poll per stale, eligible business. Duplicates are absorbed by the due gate."""
        scheduler = scheduler or get_scheduler()
        businesses = crud_business.due_for_monitoring(db)
        for business in businesses:
            scheduler.schedule(DOMAIN_MONITORING_TASK, business.id)
        logger.info("[DomainMonitoringJob] Queued monitoring for %d businesses", len(businesses))
        return len(businesses)


# ═══════════════════════════════════════════
#  CertificatePropagationRetryJob
# ═══════════════════════════════════════════

class CertificatePropagationRetryJob:
    """
    Bounded escalation for a domain whose certificate never reaches the edge.

    Retries 0-2 only nudge provider-side verification. From retry 3 on the
    domain is rebuilt: both entries are removed and DomainRebuildContinueJob
    re-adds the canonical one after a short cooldown.
    """

    TAG = "CertificatePropagationRetryJob"
    DELAY_TABLE_MINUTES = (5, 10, 20, 30, 30, 30)
    REBUILD_THRESHOLD = 3

    def __init__(
        self,
        db: Session,
        scheduler: Optional[Scheduler] = None,
        health_checker: Optional[DomainHealthChecker] = None,
        render_service_factory: Callable[[], RenderDomainService] = RenderDomainService,
    ):
        self.db = db
        self.scheduler = scheduler or get_scheduler()
        self.health_checker = health_checker or DomainHealthChecker()
        self.render_service_factory = render_service_factory

    @property
    def max_retry_attempts(self) -> int:
        return settings.CERT_RETRY_MAX_ATTEMPTS

    def perform(self, business_id: int, retry_count: int = 0) -> None:
        business = crud_business.get(self.db, business_id)
        if business is None:
            logger.error("[%s] Business %s not found", self.TAG, business_id)
            return

        logger.info(
            "[%s] Retry attempt %d for business %s (%s)",
            self.TAG, retry_count, business_id, business.hostname,
        )

        if not self.should_continue_retry(business, retry_count):
            if retry_count >= self.max_retry_attempts:
                logger.warning("[%s] Max retries exceeded for %s, giving up", self.TAG, business.hostname)
            logger.info("[%s] Stopping retries for business %s", self.TAG, business_id)
            return

        if self.ssl_now_working(business):
            logger.info("[%s] SSL now working for %s, stopping retries", self.TAG, business.hostname)
            return

        if retry_count >= self.REBUILD_THRESHOLD:
            logger.info("[%s] Rebuild threshold reached, rebuilding domains for %s", self.TAG, business.hostname)
            self.rebuild_domains_in_render(business)
        else:
            self.trigger_render_verification(business)

        next_delay = self.calculate_next_delay(retry_count)
        logger.info(
            "[%s] Scheduling retry %d in %d minutes for %s",
            self.TAG, retry_count + 1, next_delay, business.hostname,
        )
        self.scheduler.schedule(
            CERTIFICATE_RETRY_TASK, business_id, retry_count + 1, delay=timedelta(minutes=next_delay),
        )

    def should_continue_retry(self, business: Business, retry_count: int) -> bool:
        if not (business.is_cname_monitoring or business.is_cname_active):
            return False
        if retry_count >= self.max_retry_attempts:
            return False
        return business.is_custom_domain and business.has_hostname

    def ssl_now_working(self, business: Business) -> bool:
        domain = business.canonical_domain
        try:
            result = self.health_checker.check_health(domain)
        except Exception as e:
            logger.warning("[%s] Health check failed for %s: %s", self.TAG, domain, e)
            return False
        return bool(result.get("healthy") and result.get("ssl_ready"))

    def trigger_render_verification(self, business: Business) -> None:
        schedule_dual_verification(self.scheduler, business, self.TAG)

    def rebuild_domains_in_render(self, business: Business) -> None:
        """Remove apex and www at the provider, then hand over to DomainRebuildContinueJob."""
        logger.info("[%s] Starting domain rebuild for %s", self.TAG, business.hostname)

        render = self.render_service_factory()
        try:
            logger.info("[%s] Removing existing domains from Render", self.TAG)
            for domain_name in (business.apex_domain, business.www_domain):
                domain = render.find_domain_by_name(domain_name)
                if domain:
                    logger.info("[%s] Removing domain: %s", self.TAG, domain_name)
                    render.remove_domain(domain["id"])
        except RenderApiError as e:
            logger.error("[%s] Failed to rebuild domains: %s", self.TAG, e)
            raise
        finally:
            render.close()

        business.render_domain_added = False
        crud_business.save(self.db, business)

        logger.info("[%s] Scheduling domain re-addition after 10 seconds", self.TAG)
        self.scheduler.schedule(REBUILD_CONTINUE_TASK, business.id, delay=REBUILD_COOLDOWN)

    def calculate_next_delay(self, retry_count: int) -> int:
        """Minutes until the next retry: 5, 10, 20, then 30 from there on."""
        index = min(max(retry_count, 0), len(self.DELAY_TABLE_MINUTES) - 1)
        return self.DELAY_TABLE_MINUTES[index]


# ═══════════════════════════════════════════
#  DomainRebuildContinueJob
# ═══════════════════════════════════════════

class DomainRebuildContinueJob:
    TAG = "DomainRebuildContinueJob"

    def __init__(
        self,
        db: Session,
        scheduler: Optional[Scheduler] = None,
        render_service_factory: Callable[[], RenderDomainService] = RenderDomainService,
    ):
        self.db = db
        self.scheduler = scheduler or get_scheduler()
        self.render_service_factory = render_service_factory

    def perform(self, business_id: int) -> None:
        business = crud_business.get(self.db, business_id)
        if business is None:
            logger.error("[%s] Business %s not found", self.TAG, business_id)
            return

        if not business.is_custom_domain or not business.has_hostname:
            logger.warning(
                "[%s] Business %s no longer uses a custom domain, skipping rebuild",
                self.TAG, business_id,
            )
            return

        preference = CanonicalPreference.parse(business.canonical_preference)
        render = self.render_service_factory()
        try:
            for domain_name in determine_domains_to_add(business.hostname, preference):
                logger.info("[%s] Re-adding domain: %s", self.TAG, domain_name)
                render.add_domain(domain_name)
        finally:
            render.close()

        business.render_domain_added = True
        crud_business.save(self.db, business)

        # verify both: the provider tracks DNS status for the redirect sibling too
        schedule_dual_verification(self.scheduler, business, self.TAG)
        logger.info("[%s] Domain rebuild completed for %s", self.TAG, business.hostname)


# ═══════════════════════════════════════════
#  RenderDomainVerificationJob
# ═══════════════════════════════════════════

class RenderDomainVerificationJob:
    TAG = "RenderDomainVerificationJob"

    def __init__(self, render_service_factory: Callable[[], RenderDomainService] = RenderDomainService):
        self.render_service_factory = render_service_factory

    def perform(self, domain_name: str) -> Optional[Dict[str, Any]]:
        render = self.render_service_factory()
        try:
            domain = render.find_domain_by_name(domain_name)
            if not domain:
                logger.warning("[%s] Domain not found in Render: %s", self.TAG, domain_name)
                return None
            logger.info("[%s] Re-triggering verification for: %s", self.TAG, domain_name)
            return render.verify_domain(domain["id"])
        finally:
            render.close()
