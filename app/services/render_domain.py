"""
Render Custom Domain API client

Thin wrapper around the hosting provider's custom-domain endpoints:
add / verify / list / remove, plus lookup by name. Every failure surfaces
as a RenderApiError subclass; 429 responses are retried with exponential
backoff (honoring Retry-After) before giving up with RateLimitError.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings

logger = logging.getLogger("bizdomains.render")

# Rate-limit retry configuration
MAX_RETRIES = 3
BASE_DELAY = 2   # seconds
MAX_DELAY = 60   # seconds


class RenderApiError(Exception):
    pass


class DomainNotFoundError(RenderApiError):
    pass


class InvalidCredentialsError(RenderApiError):
    pass


class RateLimitError(RenderApiError):
    pass


class _RateLimited(Exception):
    def __init__(self, retry_after: Optional[float]):
        super().__init__("429 Too Many Requests")
        self.retry_after = retry_after


_exponential_wait = wait_exponential(multiplier=BASE_DELAY, max=MAX_DELAY)


def _rate_limit_wait(retry_state) -> float:
    exc = retry_state.outcome.exception()
    retry_after = getattr(exc, "retry_after", None)
    if retry_after and retry_after > 0:
        return min(retry_after, MAX_DELAY)
    return _exponential_wait(retry_state)


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _extract_error_message(response: httpx.Response) -> str:
    if not response.content:
        return f"HTTP {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:100]}"
    if isinstance(data, dict):
        return data.get("message") or data.get("error") or f"HTTP {response.status_code}"
    return f"HTTP {response.status_code}"


def _unwrap_domain(item: Dict[str, Any]) -> Dict[str, Any]:
    # list responses wrap each entry as {"customDomain": {...}, "cursor": "..."}
    if isinstance(item, dict) and isinstance(item.get("customDomain"), dict):
        return item["customDomain"]
    return item


class RenderDomainService:
    """Client for https://api.render.com/v1/services/{id}/custom-domains"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        service_id: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.RENDER_API_KEY
        self.service_id = service_id if service_id is not None else settings.RENDER_SERVICE_ID

        if not self.api_key:
            raise InvalidCredentialsError("RENDER_API_KEY not configured")
        if not self.service_id:
            raise InvalidCredentialsError("RENDER_SERVICE_ID not configured")

        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url or settings.RENDER_API_BASE_URL,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=settings.RENDER_API_TIMEOUT,
            transport=transport,
        )

    @property
    def _domains_path(self) -> str:
        return f"/services/{self.service_id}/custom-domains"

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RenderDomainService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Public API ──

    def add_domain(self, domain_name: str) -> Dict[str, Any]:
        """Register a custom domain; returns the provider's domain record."""
        logger.info("[RenderDomainService] Adding domain: %s", domain_name)
        response = self._request("POST", self._domains_path, json={"name": domain_name})

        if not response.is_success:
            error_msg = _extract_error_message(response)
            logger.error("[RenderDomainService] Failed to add domain: %s", error_msg)
            raise RenderApiError(f"Failed to add domain: {error_msg}")

        try:
            data = response.json()
        except ValueError:
            raise RenderApiError(f"Unexpected Render response format: {response.text!r}")

        # the create endpoint answers with a list holding the new domain (and its sibling)
        if isinstance(data, list):
            data = next(
                (_unwrap_domain(d) for d in data if _unwrap_domain(d).get("name") == domain_name),
                _unwrap_domain(data[0]) if data else None,
            )
        if not isinstance(data, dict) or not data.get("id"):
            raise RenderApiError(f"Missing domain id in Render response: {data!r}")

        logger.info("[RenderDomainService] Domain added successfully: %s", data["id"])
        return data

    def verify_domain(self, domain_id: str) -> Dict[str, Any]:
        """Ask the provider to re-check DNS for a domain."""
        logger.info("[RenderDomainService] Verifying domain: %s", domain_id)
        response = self._request("POST", f"{self._domains_path}/{domain_id}/verify", json={})

        if response.status_code == 404:
            raise DomainNotFoundError(f"Domain not found: {domain_id}")
        if not response.is_success:
            error_msg = _extract_error_message(response)
            logger.error("[RenderDomainService] Failed to verify domain: %s", error_msg)
            raise RenderApiError(f"Failed to verify domain: {error_msg}")

        data = response.json() if response.content else {}
        logger.info("[RenderDomainService] Domain verification result: %s", data.get("verified"))
        return data

    def list_domains(self) -> List[Dict[str, Any]]:
        logger.info("[RenderDomainService] Listing domains")
        response = self._request("GET", self._domains_path, params={"limit": 100})

        if not response.is_success:
            error_msg = _extract_error_message(response)
            logger.error("[RenderDomainService] Failed to list domains: %s", error_msg)
            raise RenderApiError(f"Failed to list domains: {error_msg}")

        domains = [_unwrap_domain(d) for d in response.json()]
        logger.info("[RenderDomainService] Found %d domains", len(domains))
        return domains

    def remove_domain(self, domain_id: str) -> bool:
        logger.info("[RenderDomainService] Removing domain: %s", domain_id)
        response = self._request("DELETE", f"{self._domains_path}/{domain_id}")

        if response.status_code == 404:
            raise DomainNotFoundError(f"Domain not found: {domain_id}")
        if not response.is_success:
            error_msg = _extract_error_message(response)
            logger.error("[RenderDomainService] Failed to remove domain: %s", error_msg)
            raise RenderApiError(f"Failed to remove domain: {error_msg}")

        logger.info("[RenderDomainService] Domain removed successfully")
        return True

    def find_domain_by_name(self, domain_name: str) -> Optional[Dict[str, Any]]:
        for domain in self.list_domains():
            if domain.get("name") == domain_name:
                return domain
        return None

    def domain_status(self, domain_name: str) -> Dict[str, Any]:
        domain = self.find_domain_by_name(domain_name)
        if domain is None:
            return {"exists": False, "verified": False, "domain_id": None}
        return {
            "exists": True,
            "verified": domain.get("verificationStatus") == "verified" or domain.get("verified") is True,
            "domain_id": domain.get("id"),
            "domain_data": domain,
        }

    # ── Transport ──

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        retrying = Retrying(
            retry=retry_if_exception_type(_RateLimited),
            stop=stop_after_attempt(MAX_RETRIES + 1),
            wait=_rate_limit_wait,
            sleep=self._sleep,
            before_sleep=lambda rs: logger.warning(
                "[RenderDomainService] Rate limited (429), retrying (attempt %d/%d)",
                rs.attempt_number + 1, MAX_RETRIES + 1,
            ),
        )
        try:
            return retrying(self._send, method, path, **kwargs)
        except RetryError:
            logger.error("[RenderDomainService] Max retries exceeded for rate limit")
            raise RateLimitError(f"Rate limit exceeded after {MAX_RETRIES} retries")

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        logger.debug("[RenderDomainService] %s %s", method, path)
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("[RenderDomainService] Request failed: %s", e)
            raise RenderApiError(f"Request failed: {e}") from e

        if response.status_code == 429:
            raise _RateLimited(_parse_retry_after(response))
        logger.debug("[RenderDomainService] Response: %d", response.status_code)
        return response
