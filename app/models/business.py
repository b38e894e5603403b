"""
Business Model

Only the hosting / custom-domain columns are modelled here. Status and
attempt columns are written by the domain monitoring and certificate retry
jobs; everything else belongs to the wider application.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, func

from app.config import settings
from app.db.base_class import Base

# status values
STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUS_SUSPENDED = "suspended"
STATUS_CNAME_PENDING = "cname_pending"
STATUS_CNAME_MONITORING = "cname_monitoring"
STATUS_CNAME_ACTIVE = "cname_active"
STATUS_CNAME_TIMEOUT = "cname_timeout"

STATUSES = (
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    STATUS_SUSPENDED,
    STATUS_CNAME_PENDING,
    STATUS_CNAME_MONITORING,
    STATUS_CNAME_ACTIVE,
    STATUS_CNAME_TIMEOUT,
)

# monitoring can be (re)started from these
RESTARTABLE_STATUSES = (STATUS_CNAME_PENDING, STATUS_CNAME_MONITORING, STATUS_CNAME_TIMEOUT)

HOST_TYPE_SUBDOMAIN = "subdomain"
HOST_TYPE_CUSTOM_DOMAIN = "custom_domain"


class CanonicalPreference(str, Enum):
    APEX = "apex"
    WWW = "www"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CanonicalPreference"]:
        """Map a stored column value; unknown or empty values mean 'unset'."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def max_check_attempts() -> int:
    return settings.DOMAIN_MONITOR_MAX_ATTEMPTS


def check_interval() -> timedelta:
    return timedelta(minutes=settings.DOMAIN_MONITOR_INTERVAL_MINUTES)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; every timestamp we write is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def strip_www(hostname: str) -> str:
    hostname = (hostname or "").strip().lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


class Business(Base):
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    tier = Column(String(20), default="free", nullable=False)          # free, standard, premium
    hostname = Column(String(255), nullable=True, index=True)
    subdomain = Column(String(63), nullable=True, index=True)              # platform subdomain, kept for fallback
    host_type = Column(String(20), default=HOST_TYPE_SUBDOMAIN, nullable=False)
    status = Column(String(32), default=STATUS_ACTIVE, nullable=False, index=True)
    canonical_preference = Column(String(8), nullable=True)              # apex, www, NULL

    # ── CNAME monitoring ──
    cname_monitoring_active = Column(Boolean, default=False, nullable=False)
    cname_check_attempts = Column(Integer, default=0, nullable=False)
    cname_setup_email_sent_at = Column(DateTime(timezone=True), nullable=True)
    render_domain_added = Column(Boolean, default=False, nullable=False)
    domain_health_verified = Column(Boolean, default=False, nullable=False)
    domain_health_checked_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Business {self.id} {self.hostname} [{self.status}]>"

    # ── Predicates ──

    @property
    def is_custom_domain(self) -> bool:
        return self.host_type == HOST_TYPE_CUSTOM_DOMAIN

    @property
    def is_cname_monitoring(self) -> bool:
        return self.status == STATUS_CNAME_MONITORING

    @property
    def is_cname_active(self) -> bool:
        return self.status == STATUS_CNAME_ACTIVE

    @property
    def has_hostname(self) -> bool:
        return bool(self.hostname and self.hostname.strip())

    # ── Domain names ──

    @property
    def apex_domain(self) -> str:
        return strip_www(self.hostname)

    @property
    def www_domain(self) -> str:
        return f"www.{self.apex_domain}"

    @property
    def canonical_domain(self) -> str:
        """The host that serves content: www or apex, or the stored hostname when unset."""
        preference = CanonicalPreference.parse(self.canonical_preference)
        if preference is CanonicalPreference.WWW:
            return self.www_domain
        if preference is CanonicalPreference.APEX:
            return self.apex_domain
        return (self.hostname or "").strip().lower()

    # ── Monitoring lifecycle ──

    def can_setup_custom_domain(self) -> bool:
        return (
            self.tier == "premium"
            and self.is_custom_domain
            and not self.is_cname_active
        )

    def can_restart_monitoring(self) -> bool:
        return (
            self.tier == "premium"
            and self.is_custom_domain
            and self.status in RESTARTABLE_STATUSES
        )

    def start_cname_monitoring(self) -> bool:
        if not self.can_setup_custom_domain():
            return False
        from app.services.domain_state import Started, apply_state, state_from_business, transition

        apply_state(self, transition(state_from_business(self), Started()))
        return True

    def stop_cname_monitoring(self) -> None:
        self.cname_monitoring_active = False
        if self.status != STATUS_CNAME_ACTIVE:
            self.status = STATUS_ACTIVE

    def cname_due_for_check(
        self,
        now: Optional[datetime] = None,
        max_attempts: Optional[int] = None,
        interval: Optional[timedelta] = None,
    ) -> bool:
        """True when the next poll may run: first attempt, or last write older than the interval.

        Limit and interval default to the monitoring settings.
        """
        if not self.cname_monitoring_active:
            return False
        attempts = self.cname_check_attempts or 0
        if attempts >= (max_attempts or max_check_attempts()):
            return False
        if attempts == 0 or self.updated_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return _as_utc(self.updated_at) <= now - (interval or check_interval())

    def increment_cname_check(self) -> None:
        self.cname_check_attempts = (self.cname_check_attempts or 0) + 1

    def cname_success(self) -> None:
        self.status = STATUS_CNAME_ACTIVE
        self.cname_monitoring_active = False

    def cname_timeout(self) -> None:
        self.status = STATUS_CNAME_TIMEOUT
        self.cname_monitoring_active = False

    def mark_domain_health_status(self, healthy: bool) -> None:
        self.domain_health_verified = bool(healthy)
        self.domain_health_checked_at = datetime.now(timezone.utc)
