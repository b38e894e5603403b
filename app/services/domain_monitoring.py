"""
Domain monitoring service

Runs one monitoring step for a business in CNAME monitoring: DNS check
(informational), health check of the canonical domain, attempt counter
bump, and the resulting lifecycle transition.
"""
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.crud import crud_business
from app.models.business import Business, max_check_attempts
from app.services.cname_dns import CnameDnsChecker
from app.services.domain_health import DomainHealthChecker
from app.services.domain_state import (
    Active,
    CheckFailed,
    CheckSucceeded,
    Failed,
    apply_state,
    state_from_business,
    transition,
)

logger = logging.getLogger("bizdomains.monitoring")


class MonitoringError(Exception):
    pass


class DomainMonitoringService:
    def __init__(
        self,
        db: Session,
        health_checker: Optional[DomainHealthChecker] = None,
        dns_checker_factory: Callable[[str], CnameDnsChecker] = CnameDnsChecker,
        max_attempts: Optional[int] = None,
    ):
        self.db = db
        self.health_checker = health_checker or DomainHealthChecker()
        self.dns_checker_factory = dns_checker_factory
        self.max_attempts = max_attempts or max_check_attempts()

    def perform_check(self, business: Business) -> Dict[str, Any]:
        """
        One monitoring step.

        Returns {success, verified, should_continue, attempts, max_attempts,
        dns_result, health_result}. A business that is no longer eligible
        yields success=False and should_continue=False.
        """
        logger.info("[DomainMonitoringService] Checking domain: %s", business.hostname)

        try:
            self._validate_monitoring_state(business)
        except MonitoringError as e:
            logger.error("[DomainMonitoringService] Monitoring check failed: %s", e)
            return {
                "success": False,
                "error": str(e),
                "verified": False,
                "should_continue": False,
                "attempts": business.cname_check_attempts,
                "max_attempts": self.max_attempts,
            }

        dns_result = self._check_dns(business)
        health_result = self._check_domain_health(business)
        verified = bool(health_result.get("healthy") and health_result.get("ssl_ready"))

        previous = state_from_business(business)
        event = CheckSucceeded() if verified else CheckFailed()
        new_state = transition(previous, event, max_attempts=self.max_attempts)

        business.increment_cname_check()
        business.mark_domain_health_status(bool(health_result.get("healthy")))
        apply_state(business, new_state)
        crud_business.save(self.db, business)

        if isinstance(new_state, Active):
            logger.info("[DomainMonitoringService] Domain fully verified and healthy: %s", business.hostname)
        elif isinstance(new_state, Failed):
            logger.warning("[DomainMonitoringService] Domain verification timed out: %s", business.hostname)
        else:
            logger.debug(
                "[DomainMonitoringService] Continuing monitoring: %s (attempt %d/%d)",
                business.hostname, business.cname_check_attempts, self.max_attempts,
            )

        should_continue = not isinstance(new_state, (Active, Failed))
        return {
            "success": True,
            "verified": verified,
            "should_continue": should_continue,
            "attempts": business.cname_check_attempts,
            "max_attempts": self.max_attempts,
            "dns_result": dns_result,
            "health_result": health_result,
            "next_check_in": f"{settings.DOMAIN_MONITOR_INTERVAL_MINUTES} minutes" if should_continue else "stopped",
        }

    def stop_monitoring(self, business: Business, reason: str = "Manual stop") -> None:
        logger.info("[DomainMonitoringService] Stopping monitoring for %s: %s", business.hostname, reason)
        business.stop_cname_monitoring()
        crud_business.save(self.db, business)

    def monitoring_status(self, business: Business) -> Dict[str, Any]:
        return {
            "business_id": business.id,
            "domain": business.hostname,
            "status": business.status,
            "monitoring_active": bool(business.cname_monitoring_active),
            "attempts": business.cname_check_attempts,
            "max_attempts": self.max_attempts,
            "time_remaining": self._time_remaining_estimate(business),
            "can_check": business.cname_due_for_check(),
            "last_updated": business.updated_at,
        }

    # ── internals ──

    def _validate_monitoring_state(self, business: Business) -> None:
        if not business.cname_monitoring_active:
            raise MonitoringError("Business monitoring is not active")
        if not business.is_cname_monitoring:
            raise MonitoringError("Business is not in monitoring status")
        if (business.cname_check_attempts or 0) >= self.max_attempts:
            raise MonitoringError("Maximum monitoring attempts exceeded")

    def _check_dns(self, business: Business) -> Dict[str, Any]:
        try:
            return self.dns_checker_factory(business.hostname).verify_cname()
        except Exception as e:
            logger.warning("[DomainMonitoringService] DNS check failed for %s: %s", business.hostname, e)
            return {"verified": False, "error": str(e)}

    def _check_domain_health(self, business: Business) -> Dict[str, Any]:
        canonical = business.canonical_domain
        result = self.health_checker.check_health(canonical)
        logger.info(
            "[DomainMonitoringService] Health check result for %s: healthy=%s, ssl_ready=%s",
            canonical, result.get("healthy"), result.get("ssl_ready"),
        )
        return result

    def _time_remaining_estimate(self, business: Business) -> str:
        if not business.cname_monitoring_active:
            return "Complete"

        attempts_left = self.max_attempts - (business.cname_check_attempts or 0)
        minutes_left = attempts_left * settings.DOMAIN_MONITOR_INTERVAL_MINUTES
        if minutes_left <= 0:
            return "Timeout"
        if minutes_left < 60:
            return f"~{minutes_left} minutes"
        return f"~{minutes_left // 60}h {minutes_left % 60}m"
