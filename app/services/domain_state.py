"""
Custom-domain lifecycle as an explicit state machine.

The Business row stores the lifecycle as a status string plus an attempt
counter. This module lifts that into a closed set of states and events with
a pure `transition` function, and keeps the row mapping in two small adapter
functions (`state_from_business` / `apply_state`).
"""
from dataclasses import dataclass
from typing import List, Optional, Union

from app.models.business import (
    CanonicalPreference,
    STATUS_CNAME_ACTIVE,
    STATUS_CNAME_MONITORING,
    STATUS_CNAME_PENDING,
    STATUS_CNAME_TIMEOUT,
    max_check_attempts,
    strip_www,
)


def determine_domains_to_add(hostname: str, preference: Optional[CanonicalPreference]) -> List[str]:
    """The single canonical domain to register with the provider.

    The provider creates the non-canonical sibling itself as a redirect.
    """
    apex = strip_www(hostname)
    if preference is CanonicalPreference.WWW:
        return [f"www.{apex}"]
    return [apex]


# ═══════════════════════════════════════════
#  States
# ═══════════════════════════════════════════

@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Monitoring:
    attempts: int = 0


@dataclass(frozen=True)
class Active:
    pass


@dataclass(frozen=True)
class Failed:
    pass


DomainState = Union[Pending, Monitoring, Active, Failed]


# ═══════════════════════════════════════════
#  Events
# ═══════════════════════════════════════════

@dataclass(frozen=True)
class Started:
    """Monitoring (re)started by an operator or the setup flow."""


@dataclass(frozen=True)
class CheckSucceeded:
    """Domain is healthy and its certificate is serving."""


@dataclass(frozen=True)
class CheckFailed:
    """One poll finished without a healthy TLS response."""


DomainEvent = Union[Started, CheckSucceeded, CheckFailed]


def transition(
    state: DomainState,
    event: DomainEvent,
    max_attempts: Optional[int] = None,
) -> DomainState:
    max_attempts = max_attempts or max_check_attempts()

    if isinstance(event, Started):
        if isinstance(state, Active):
            return state
        return Monitoring(attempts=0)

    if not isinstance(state, Monitoring):
        # checks only move a monitored domain
        return state

    if isinstance(event, CheckSucceeded):
        return Active()

    if isinstance(event, CheckFailed):
        attempts = state.attempts + 1
        if attempts >= max_attempts:
            return Failed()
        return Monitoring(attempts=attempts)

    raise TypeError(f"Unknown domain event: {event!r}")


# ═══════════════════════════════════════════
#  Row adapter
# ═══════════════════════════════════════════

def state_from_business(business) -> DomainState:
    status = business.status
    if status == STATUS_CNAME_MONITORING:
        return Monitoring(attempts=business.cname_check_attempts or 0)
    if status == STATUS_CNAME_ACTIVE:
        return Active()
    if status == STATUS_CNAME_TIMEOUT:
        return Failed()
    # cname_pending and every non-domain status (active, suspended, ...)
    return Pending()


def apply_state(business, state: DomainState) -> None:
    if isinstance(state, Monitoring):
        business.status = STATUS_CNAME_MONITORING
        business.cname_monitoring_active = True
        business.cname_check_attempts = state.attempts
    elif isinstance(state, Active):
        business.cname_success()
    elif isinstance(state, Failed):
        business.cname_timeout()
    elif isinstance(state, Pending):
        business.status = STATUS_CNAME_PENDING
        business.cname_monitoring_active = False
    else:
        raise TypeError(f"Unknown domain state: {state!r}")
