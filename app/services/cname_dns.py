"""
CNAME DNS checker

Confirms that a custom domain routes to the hosting provider: either a CNAME
pointing at the service host, or (for apex domains that cannot carry a CNAME)
an A record equal to the provider's anycast IP.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import dns.exception
import dns.resolver

from app.config import settings

logger = logging.getLogger("bizdomains.dns")


def _normalize(name: str) -> str:
    return (name or "").strip().lower().rstrip(".")


class CnameDnsChecker:
    def __init__(
        self,
        domain_name: str,
        resolver: Optional[dns.resolver.Resolver] = None,
        expected_target: Optional[str] = None,
        apex_ip: Optional[str] = None,
    ):
        self.domain_name = _normalize(domain_name)
        self.resolver = resolver or dns.resolver.Resolver()
        self.expected_target = _normalize(expected_target or settings.RENDER_CNAME_TARGET)
        self.apex_ip = apex_ip or settings.RENDER_APEX_IP

    def verify_cname(self) -> Dict[str, Any]:
        logger.info("[CnameDnsChecker] Checking CNAME for: %s", self.domain_name)

        result: Dict[str, Any] = {
            "domain": self.domain_name,
            "verified": False,
            "target": None,
            "expected_target": self.expected_target,
            "error": None,
            "checked_at": datetime.now(timezone.utc),
        }

        try:
            target = self._resolve_cname(self.domain_name)
            if target:
                result["target"] = target
                result["verified"] = target == self.expected_target
                logger.info("[CnameDnsChecker] CNAME found: %s -> %s", self.domain_name, target)
            elif self._apex_a_matches():
                result["target"] = self.apex_ip
                result["verified"] = True
                logger.info("[CnameDnsChecker] Apex A-record matches provider IP for %s", self.domain_name)
            else:
                result["error"] = "No CNAME record found"
                logger.warning("[CnameDnsChecker] No CNAME record (and apex A mismatch) for: %s", self.domain_name)
        except dns.exception.DNSException as e:
            logger.error("[CnameDnsChecker] DNS resolution failed: %s", e)
            result["error"] = str(e) or e.__class__.__name__

        return result

    def _resolve_cname(self, domain: str) -> Optional[str]:
        try:
            answers = self.resolver.resolve(domain, "CNAME")
        except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN):
            return None
        for rdata in answers:
            return _normalize(rdata.target.to_text())
        return None

    def _apex_a_matches(self) -> bool:
        root = self.domain_name[4:] if self.domain_name.startswith("www.") else self.domain_name
        try:
            answers = self.resolver.resolve(root, "A")
        except dns.exception.DNSException as e:
            logger.warning("[CnameDnsChecker] A-record lookup failed for %s: %s", root, e)
            return False
        return any(rdata.to_text() == self.apex_ip for rdata in answers)
