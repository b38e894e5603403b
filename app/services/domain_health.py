"""
Domain health check.

Issues a GET over HTTPS to a hostname, following a few redirects, and
reports whether it answered 200 (healthy) and whether the TLS handshake
with certificate verification succeeded (ssl_ready). Never raises; the
caller owns the retry policy.
"""
import logging
import ssl
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import httpx

from app.config import settings

logger = logging.getLogger("bizdomains.health")


def _is_ssl_failure(exc: BaseException) -> bool:
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, ssl.SSLError):
            return True
        text = str(exc).lower()
        if "certificate" in text or "ssl" in text or "tls" in text:
            return True
        exc = exc.__cause__ or exc.__context__
    return False


class DomainHealthChecker:
    def __init__(
        self,
        timeout: Optional[float] = None,
        max_redirects: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.HEALTH_CHECK_TIMEOUT
        self.max_redirects = (
            max_redirects if max_redirects is not None else settings.HEALTH_CHECK_MAX_REDIRECTS
        )
        self._transport = transport

    def check_health(self, hostname: str) -> Dict[str, Any]:
        domain = (hostname or "").strip().lower()
        logger.info("[DomainHealthChecker] Checking health for: %s", domain)

        result: Dict[str, Any] = {
            "domain": domain,
            "healthy": False,
            "ssl_ready": False,
            "status_code": None,
            "response_time": None,
            "final_url": None,
            "redirect_count": 0,
            "error": None,
            "checked_at": datetime.now(timezone.utc),
        }

        try:
            start = time.perf_counter()
            outcome = self._fetch(f"https://{domain}")
            result["response_time"] = round(time.perf_counter() - start, 3)
            result.update(outcome)
        except Exception as e:
            logger.error("[DomainHealthChecker] Health check exception for %s: %s", domain, e)
            result["error"] = f"Health check exception: {e}"
            return result

        if result["error"]:
            logger.warning("[DomainHealthChecker] Health check failed for %s: %s", domain, result["error"])
        elif result["healthy"]:
            logger.info(
                "[DomainHealthChecker] Domain is healthy: %s (%s in %ss)",
                domain, result["status_code"], result["response_time"],
            )
        else:
            logger.warning(
                "[DomainHealthChecker] Domain returned non-200 status: %s (%s)",
                domain, result["status_code"],
            )
        return result

    # ── internals ──

    def _fetch(self, url: str) -> Dict[str, Any]:
        outcome: Dict[str, Any] = {
            "healthy": False,
            "ssl_ready": False,
            "status_code": None,
            "final_url": None,
            "redirect_count": 0,
            "error": None,
        }
        headers = {
            "User-Agent": settings.HEALTH_CHECK_USER_AGENT,
            "Accept": "text/html,*/*",
            "Connection": "close",
        }

        with httpx.Client(
            timeout=self.timeout,
            follow_redirects=False,
            verify=True,
            transport=self._transport,
        ) as client:
            redirect_count = 0
            while True:
                try:
                    response = client.get(url, headers=headers)
                except httpx.TimeoutException as e:
                    outcome["error"] = f"Request timeout: {e}"
                    return outcome
                except httpx.ConnectError as e:
                    if _is_ssl_failure(e):
                        outcome["error"] = f"SSL error: {e}"
                    else:
                        outcome["error"] = f"DNS/Socket error: {e}"
                    return outcome
                except httpx.HTTPError as e:
                    outcome["error"] = f"HTTP error: {e}"
                    return outcome

                location = response.headers.get("Location")
                if response.is_redirect and location:
                    if redirect_count >= self.max_redirects:
                        outcome["error"] = "Too many redirects"
                        return outcome
                    next_url = urljoin(url, location)
                    logger.debug("[DomainHealthChecker] Following redirect: %s -> %s", url, next_url)
                    url = next_url
                    redirect_count += 1
                    continue

                # ssl_ready reflects the hop that served content, not earlier redirects
                outcome["ssl_ready"] = url.startswith("https://")
                outcome["status_code"] = response.status_code
                outcome["healthy"] = response.status_code == 200
                outcome["final_url"] = url
                outcome["redirect_count"] = redirect_count
                return outcome
